"""
Failure diagnoser tests: precedence of error name, revert data and message.
"""

import pytest
from eth_abi import encode as abi_encode

from test_mocks import FakeLedgerClient

from gasless_relayer.adapters.evm.diagnostics import (
    ERROR_STRING_SELECTOR,
    PANIC_SELECTOR,
    FailureDiagnoser,
    build_error_catalog,
    extract_error_payload,
)
from gasless_relayer.adapters.evm.ERC20_ABI import get_erc20_error_abi, get_forwarder_error_abi
from gasless_relayer.engine.exceptions import BlockchainInteractionError, ContractRevertError


def _selector(name: str) -> str:
    catalog = build_error_catalog(get_forwarder_error_abi() + get_erc20_error_abi())
    return next(sel for sel, entry in catalog.items() if entry["name"] == name)


class TestErrorCatalog:

    def test_known_selectors(self):
        catalog = build_error_catalog(get_erc20_error_abi())
        # keccak("ERC20InsufficientBalance(address,uint256,uint256)")[:4]
        assert catalog["0xe450d38c"]["name"] == "ERC20InsufficientBalance"
        # keccak("ERC20InsufficientAllowance(address,uint256,uint256)")[:4]
        assert catalog["0xfb8f41b2"]["name"] == "ERC20InsufficientAllowance"


class TestDecode:

    def test_error_name_wins(self):
        exc = ContractRevertError("execution reverted", data="0x08c379a0", error_name="InsufficientFee")
        diagnosis = FailureDiagnoser().decode(exc, phase="simulation")

        assert diagnosis.error_name == "InsufficientFee"
        assert diagnosis.reason == "Contract reverted: InsufficientFee"

    def test_custom_error_from_data(self):
        exc = ContractRevertError("execution reverted", data=_selector("RequestExpired"))
        diagnosis = FailureDiagnoser().decode(exc, phase="simulation")

        assert diagnosis.error_name == "RequestExpired"
        assert diagnosis.reason == "Contract reverted: RequestExpired"

    def test_custom_error_arguments(self):
        owner = "0x" + "11" * 20
        data = _selector("ERC20InsufficientAllowance") + abi_encode(
            ["address", "uint256", "uint256"], [owner, 85, 90]
        ).hex()
        diagnosis = FailureDiagnoser().decode(ContractRevertError("reverted", data=data), phase="estimateGas")

        assert diagnosis.error_name == "ERC20InsufficientAllowance"
        assert list(diagnosis.error_args.values())[1:] == [85, 90]

    def test_error_string(self):
        data = ERROR_STRING_SELECTOR + abi_encode(["string"], ["Ownable: caller"]).hex()
        diagnosis = FailureDiagnoser().decode(ContractRevertError("reverted", data=data), phase="simulation")

        assert diagnosis.error_name == "Error"
        assert diagnosis.reason == "Contract reverted: Ownable: caller"

    def test_panic(self):
        data = PANIC_SELECTOR + abi_encode(["uint256"], [0x11]).hex()
        diagnosis = FailureDiagnoser().decode(ContractRevertError("reverted", data=data), phase="simulation")

        assert diagnosis.error_name == "Panic"
        assert "overflow" in diagnosis.reason
        assert diagnosis.error_args == {"code": 0x11}

    def test_unknown_data_in_simulation(self):
        exc = ContractRevertError("execution reverted", data="0xdeadbeef")
        diagnosis = FailureDiagnoser().decode(exc, phase="simulation")

        assert diagnosis.error_name is None
        assert diagnosis.reason == "revert data: 0xdeadbeef"

    def test_unknown_data_elsewhere_keeps_message(self):
        exc = ContractRevertError("execution reverted", data="0xdeadbeef")
        diagnosis = FailureDiagnoser().decode(exc, phase="estimateGas")
        assert diagnosis.reason == "execution reverted"
        assert diagnosis.revert_data == "0xdeadbeef"

    def test_truncated_data_never_raises(self):
        exc = ContractRevertError("execution reverted", data=ERROR_STRING_SELECTOR + "00")
        diagnosis = FailureDiagnoser().decode(exc, phase="simulation")
        assert diagnosis.reason == "revert data: " + ERROR_STRING_SELECTOR + "00"

    def test_plain_message(self):
        diagnosis = FailureDiagnoser().decode(BlockchainInteractionError("nonce too low"), phase="sendTransaction")
        assert diagnosis.summary() == "sendTransaction failed: nonce too low"

    def test_rpc_error_dict(self):
        exc = ValueError({"code": 3, "message": "execution reverted", "data": _selector("ZeroAmount")})
        message, data = extract_error_payload(exc)
        assert message == "execution reverted"
        assert FailureDiagnoser().decode(exc, phase="simulation").error_name == "ZeroAmount"


class TestDiagnose:

    @pytest.mark.asyncio
    async def test_empty_calldata_is_flagged(self):
        ledger = FakeLedgerClient()
        ledger.transaction_input = "0x"
        diagnosis = await FailureDiagnoser(ledger=ledger).diagnose(
            ContractRevertError("transaction reverted"), phase="transaction", tx_hash="0xabc"
        )

        assert diagnosis.calldata_empty is True
        assert diagnosis.explorer_url.endswith("/tx/0xabc")
        assert "[TX had no calldata - relayer bug]" in diagnosis.summary()
        assert "Inspect tx:" in diagnosis.summary()

    @pytest.mark.asyncio
    async def test_calldata_length_reported(self):
        ledger = FakeLedgerClient()
        ledger.transaction_input = "0xabcdef"
        diagnosis = await FailureDiagnoser(ledger=ledger).diagnose(
            ContractRevertError("transaction reverted"), phase="transaction", tx_hash="0xabc"
        )

        assert diagnosis.calldata_empty is False
        assert diagnosis.calldata_length == 8
        assert "[calldata length: 8 chars]" in diagnosis.summary()

    @pytest.mark.asyncio
    async def test_missing_transaction_is_reported(self):
        ledger = FakeLedgerClient()
        ledger.transaction_input = None
        diagnosis = await FailureDiagnoser(ledger=ledger).diagnose(
            ContractRevertError("transaction reverted"), phase="transaction", tx_hash="0xabc"
        )

        assert diagnosis.tx_found is False
        assert diagnosis.calldata_empty is None
        assert diagnosis.to_details()["tx_found"] is False
        assert "[TX not found on node, calldata unknown]" in diagnosis.summary()

    @pytest.mark.asyncio
    async def test_lookup_failure_is_ignored(self):
        ledger = FakeLedgerClient()
        ledger.failures["get_transaction"] = BlockchainInteractionError("down")
        diagnosis = await FailureDiagnoser(ledger=ledger).diagnose(
            BlockchainInteractionError("timed out"), phase="transaction", tx_hash="0xabc"
        )

        assert diagnosis.reason == "timed out"
        assert diagnosis.calldata_empty is None
        assert diagnosis.tx_hash == "0xabc"
