"""
Startup balance check run by the process entry point.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest

from test_mocks import MOCK_RELAYER_ADDRESS, FakeLedgerClient, ledger_error

from gasless_relayer.__main__ import check_relayer_balance, main
from gasless_relayer.adapters.evm.adapter import EVMRelayAdapter
from gasless_relayer.engine.exceptions import BlockchainInteractionError


class TestBalanceCheck:

    @pytest.mark.asyncio
    async def test_funded(self):
        ledger = FakeLedgerClient()
        ledger.native_balances[MOCK_RELAYER_ADDRESS] = 2 * 10**18

        with patch("gasless_relayer.__main__.logger") as log:
            balance = await check_relayer_balance(EVMRelayAdapter(ledger), Decimal("0.1"))

        assert balance == Decimal("2.0")
        log.warning.assert_not_called()

    @pytest.mark.asyncio
    async def test_low_balance_warns(self):
        ledger = FakeLedgerClient()
        ledger.native_balances[MOCK_RELAYER_ADDRESS] = 5 * 10**16

        with patch("gasless_relayer.__main__.logger") as log:
            balance = await check_relayer_balance(EVMRelayAdapter(ledger), Decimal("0.1"))

        assert balance == Decimal("0.05")
        log.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_ledger_error_propagates(self):
        ledger = FakeLedgerClient()
        ledger.failures["get_native_balance"] = ledger_error("connection refused")

        with pytest.raises(BlockchainInteractionError):
            await check_relayer_balance(EVMRelayAdapter(ledger), Decimal("0.1"))


def test_main_rejects_missing_config(monkeypatch):
    monkeypatch.delenv("RELAYER_PRIVATE_KEY", raising=False)
    monkeypatch.delenv("FORWARDER_ADDRESS", raising=False)
    assert main() == 1
