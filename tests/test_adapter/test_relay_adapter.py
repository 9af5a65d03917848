"""
Relay Engine Test Suite

Tests for EVMRelayAdapter covering:
- The full single-payment pipeline against an in-memory ledger
- Terminal failures at each step and what they leave unsubmitted
- The counter race recheck
- Receipt reconciliation and diagnosis
- The batch path
- Read helpers (nonce, fee, decimals, relayer balance)

Test Structure:
    - In-memory ledger and signed request factories in test_mocks.py

Usage:
    pytest tests/test_adapter/test_relay_adapter.py -v
"""

import pytest

from test_mocks import (
    MOCK_FORWARDER_ADDRESS,
    MOCK_GAS_ESTIMATE,
    MOCK_LEDGER_TIME,
    MOCK_OTHER_ADDRESS,
    MOCK_RECIPIENT_ADDRESS,
    MOCK_RELAYER_ADDRESS,
    MOCK_SENDER_ADDRESS,
    FakeLedgerClient,
    create_funded_relayer,
    create_foreign_signed_request,
    create_signed_request,
    ledger_error,
)

from gasless_relayer.adapters.evm.adapter import EVMRelayAdapter
from gasless_relayer.engine.exceptions import (
    CounterRaceLostError,
    ContractRevertError,
    MalformedRequestError,
)
from gasless_relayer.schemas.bases import RecoveryAction, RelayStatus


class TestExecutePayment:

    @pytest.mark.asyncio
    async def test_happy_path(self):
        """100 balance, 80 amount, 10 fee, 90 allowance, minimum fee 5."""
        relayer, ledger = create_funded_relayer(balance=100, allowance=90)
        result = await relayer.execute_payment(create_signed_request(amount=80, fee=10))

        assert result.is_success()
        assert result.status == RelayStatus.SUCCESS
        assert result.recovery == RecoveryAction.NONE
        assert result.block_number == ledger.block_number
        assert result.gas_used == ledger.gas_used
        assert result.tx_hash.startswith("0x")
        assert result.explorer_url.endswith(f"/tx/{result.tx_hash}")

        assert len(ledger.sent) == 1
        kind, args, gas_limit = ledger.sent[0]
        assert kind == "single"
        assert args[:5] == (MOCK_SENDER_ADDRESS, MOCK_RECIPIENT_ADDRESS, 80, 10, args[4])
        assert gas_limit >= MOCK_GAS_ESTIMATE * 1.3
        assert result.gas_limit == gas_limit

    @pytest.mark.asyncio
    async def test_pipeline_order(self):
        relayer, ledger = create_funded_relayer()
        await relayer.execute_payment(create_signed_request())

        order = [c for c in ledger.calls if c in (
            "simulate_payment", "estimate_payment_gas", "send_payment", "wait_for_receipt",
        )]
        assert order == ["simulate_payment", "estimate_payment_gas", "send_payment", "wait_for_receipt"]
        assert ledger.calls.count("get_nonce") == 2

    def test_gas_ceiling_rounds_up(self):
        relayer = EVMRelayAdapter(FakeLedgerClient())
        assert relayer.gas_ceiling(100_000) == 130_000
        assert relayer.gas_ceiling(85_001) == 110_502
        assert relayer.gas_ceiling(1) == 2

    def test_gas_buffer_below_estimate_rejected(self):
        with pytest.raises(ValueError):
            EVMRelayAdapter(FakeLedgerClient(), gas_buffer_percent=90)

    @pytest.mark.asyncio
    async def test_malformed(self):
        relayer, ledger = create_funded_relayer()
        raw = create_signed_request()
        raw["amount"] = "lots"
        result = await relayer.execute_payment(raw)

        assert result.status == RelayStatus.MALFORMED_REQUEST
        assert result.error_details["field"] == "amount"
        assert result.recovery == RecoveryAction.FIX_INPUT
        assert ledger.calls == []

    @pytest.mark.asyncio
    async def test_signer_mismatch(self):
        relayer, ledger = create_funded_relayer()
        raw = create_foreign_signed_request()
        result = await relayer.execute_payment(raw)

        assert result.status == RelayStatus.SIGNER_MISMATCH
        assert result.recovery == RecoveryAction.RESIGN
        assert result.error_details["recovered"] == MOCK_OTHER_ADDRESS
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_stale_nonce_is_mismatch(self):
        relayer, ledger = create_funded_relayer()
        ledger.nonces[MOCK_SENDER_ADDRESS] = 1
        result = await relayer.execute_payment(create_signed_request(nonce=0))

        assert result.status == RelayStatus.SIGNER_MISMATCH
        assert "nonce (expected 1)" in result.error_message

    @pytest.mark.asyncio
    async def test_expired_even_with_valid_signature(self):
        relayer, ledger = create_funded_relayer()
        result = await relayer.execute_payment(create_signed_request(deadline=MOCK_LEDGER_TIME - 60))

        assert result.status == RelayStatus.REQUEST_EXPIRED
        assert result.recovery == RecoveryAction.RESIGN
        assert "simulate_payment" not in ledger.calls
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_allowance_85_is_rejected_before_dry_run(self):
        relayer, ledger = create_funded_relayer(balance=100, allowance=85)
        result = await relayer.execute_payment(create_signed_request(amount=80, fee=10))

        assert result.status == RelayStatus.INSUFFICIENT_ALLOWANCE
        assert result.error_details["required"] == 90
        assert "simulate_payment" not in ledger.calls
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_fee_too_low(self):
        relayer, ledger = create_funded_relayer()
        result = await relayer.execute_payment(create_signed_request(amount=80, fee=3))

        assert result.status == RelayStatus.FEE_TOO_LOW
        assert result.error_message == "Fee too low. Minimum: 0.000005 FXRP"
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_ledger_unavailable_on_counter_read(self):
        relayer, ledger = create_funded_relayer()
        ledger.failures["get_nonce"] = ledger_error()
        result = await relayer.execute_payment(create_signed_request())

        assert result.status == RelayStatus.LEDGER_UNAVAILABLE
        assert result.recovery == RecoveryAction.RETRY

    @pytest.mark.asyncio
    async def test_simulation_failure_is_decoded(self):
        relayer, ledger = create_funded_relayer()
        ledger.failures["simulate_payment"] = ContractRevertError(
            "execution reverted", error_name="InvalidRecipient"
        )
        result = await relayer.execute_payment(create_signed_request())

        assert result.status == RelayStatus.SIMULATION_FAILED
        assert result.error_message == "Contract simulation failed: Contract reverted: InvalidRecipient"
        assert result.error_details["error_name"] == "InvalidRecipient"
        assert "estimate_payment_gas" not in ledger.calls
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_counter_race_aborts_without_submission(self):
        relayer, ledger = create_funded_relayer()

        def consume_nonce():
            ledger.nonces[MOCK_SENDER_ADDRESS] = 1

        ledger.before["simulate_payment"] = consume_nonce
        result = await relayer.execute_payment(create_signed_request(nonce=0))

        assert result.status == RelayStatus.COUNTER_RACE_LOST
        assert result.recovery == RecoveryAction.RESIGN
        assert result.error_details == {"expected_nonce": 0, "current_nonce": 1}
        assert "Nonce changed (was 0, now 1)" in result.error_message
        assert "estimate_payment_gas" not in ledger.calls
        assert ledger.sent == []
        with pytest.raises(CounterRaceLostError):
            result.raise_for_status()

    @pytest.mark.asyncio
    async def test_estimation_failure(self):
        relayer, ledger = create_funded_relayer()
        ledger.failures["estimate_payment_gas"] = ContractRevertError("execution reverted")
        result = await relayer.execute_payment(create_signed_request())

        assert result.status == RelayStatus.ESTIMATION_FAILED
        assert result.error_message.startswith("Gas estimation failed (contract would revert):")
        assert result.recovery == RecoveryAction.RETRY
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_submission_failure(self):
        relayer, ledger = create_funded_relayer()
        ledger.failures["send_payment"] = ledger_error("insufficient funds for gas")
        result = await relayer.execute_payment(create_signed_request())

        assert result.status == RelayStatus.SUBMISSION_FAILED
        assert result.error_message == "sendTransaction failed: insufficient funds for gas"
        assert result.recovery == RecoveryAction.SYSTEM_FAULT
        assert result.tx_hash is None

    @pytest.mark.asyncio
    async def test_reverted_receipt(self):
        relayer, ledger = create_funded_relayer()
        ledger.receipt_status = 0
        ledger.transaction_input = "0x" + "ab" * 100
        result = await relayer.execute_payment(create_signed_request())

        assert not result.is_success()
        assert result.status == RelayStatus.FINALITY_WAIT_FAILED
        assert result.recovery == RecoveryAction.INSPECT
        assert result.tx_hash is not None
        assert result.block_number == ledger.block_number
        assert "[calldata length: 202 chars]" in result.error_message
        assert "Inspect tx:" in result.error_message

    @pytest.mark.asyncio
    async def test_empty_calldata_is_system_fault(self):
        relayer, ledger = create_funded_relayer()
        ledger.receipt_status = 0
        ledger.transaction_input = "0x"
        result = await relayer.execute_payment(create_signed_request())

        assert result.status == RelayStatus.FINALITY_WAIT_FAILED
        assert result.recovery == RecoveryAction.SYSTEM_FAULT
        assert result.error_details["calldata_empty"] is True

    @pytest.mark.asyncio
    async def test_receipt_timeout(self):
        relayer, ledger = create_funded_relayer()
        ledger.failures["wait_for_receipt"] = ledger_error("not confirmed within 120s")
        result = await relayer.execute_payment(create_signed_request())

        assert result.status == RelayStatus.FINALITY_WAIT_FAILED
        assert result.tx_hash is not None
        assert result.gas_used == 0
        assert "not confirmed within 120s" in result.error_message


class TestValidateRequest:

    @pytest.mark.asyncio
    async def test_valid_request_has_snapshot_and_signer(self):
        relayer, ledger = create_funded_relayer()
        result = await relayer.validate_request(create_signed_request())

        assert result.is_success()
        assert result.recovered_signer == MOCK_SENDER_ADDRESS
        assert result.snapshot.allowance == 100
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_domain_is_read_live(self):
        relayer, ledger = create_funded_relayer()
        ledger.chain_id = 14
        domain = await relayer.get_verification_domain()
        assert domain.chainId == 14
        assert domain.verifyingContract == MOCK_FORWARDER_ADDRESS


class TestExecuteBatchPayments:

    @pytest.mark.asyncio
    async def test_batch_of_three(self):
        relayer, ledger = create_funded_relayer(balance=1000, allowance=1000)
        requests = [create_signed_request(amount=10 * (i + 1), fee=5, nonce=i) for i in range(3)]
        result = await relayer.execute_batch_payments(requests)

        assert result.is_success()
        assert result.payments_processed == 3
        assert result.gas_limit == 300_000

        kind, sent_requests, gas_limit = ledger.sent[0]
        assert kind == "batch"
        assert gas_limit == 3 * 100_000
        assert [r[2] for r in sent_requests] == [10, 20, 30]
        assert "simulate_payment" not in ledger.calls
        assert "estimate_payment_gas" not in ledger.calls

    @pytest.mark.asyncio
    async def test_custom_gas_per_payment(self):
        ledger = FakeLedgerClient()
        ledger.fund(MOCK_SENDER_ADDRESS, balance=1000, allowance=1000)
        relayer = EVMRelayAdapter(ledger, batch_gas_per_payment=70_000)
        result = await relayer.execute_batch_payments([create_signed_request(), create_signed_request(nonce=1)])
        assert result.gas_limit == 140_000

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        relayer, ledger = create_funded_relayer()
        result = await relayer.execute_batch_payments([])

        assert result.status == RelayStatus.MALFORMED_REQUEST
        assert result.payments_processed == 0
        assert ledger.calls == []

    @pytest.mark.asyncio
    async def test_oversize_batch(self):
        ledger = FakeLedgerClient()
        relayer = EVMRelayAdapter(ledger, max_batch_size=2)
        result = await relayer.execute_batch_payments([create_signed_request()] * 3)

        assert result.status == RelayStatus.MALFORMED_REQUEST
        assert result.error_details["max_batch_size"] == 2

    @pytest.mark.asyncio
    async def test_malformed_item_names_its_index(self):
        relayer, ledger = create_funded_relayer()
        bad = create_signed_request()
        bad["to"] = "0x123"
        result = await relayer.execute_batch_payments([create_signed_request(), bad])

        assert result.status == RelayStatus.MALFORMED_REQUEST
        assert result.error_details["index"] == 1
        assert result.error_message.startswith("Request 1:")
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_failing_state_check_rejects_whole_batch(self):
        relayer, ledger = create_funded_relayer()
        requests = [create_signed_request(), create_signed_request(fee=1)]
        result = await relayer.execute_batch_payments(requests)

        assert result.status == RelayStatus.FEE_TOO_LOW
        assert result.error_details["index"] == 1
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_reverted_batch_still_counts_submitted(self):
        relayer, ledger = create_funded_relayer(balance=1000, allowance=1000)
        ledger.receipt_status = 0
        result = await relayer.execute_batch_payments([create_signed_request(), create_signed_request(nonce=1)])

        assert result.status == RelayStatus.FINALITY_WAIT_FAILED
        assert result.payments_processed == 2


class TestReads:

    @pytest.mark.asyncio
    async def test_get_nonce(self):
        relayer, ledger = create_funded_relayer()
        ledger.nonces[MOCK_SENDER_ADDRESS] = 9
        assert await relayer.get_nonce(MOCK_SENDER_ADDRESS.lower()) == 9

    @pytest.mark.asyncio
    async def test_get_nonce_rejects_bad_address(self):
        relayer, _ = create_funded_relayer()
        with pytest.raises(MalformedRequestError):
            await relayer.get_nonce("0xnot-an-address")

    @pytest.mark.asyncio
    async def test_fee_and_decimals(self):
        relayer, _ = create_funded_relayer()
        assert await relayer.get_relayer_fee() == 5
        assert await relayer.get_token_decimals() == 6

    @pytest.mark.asyncio
    async def test_relayer_balance(self):
        relayer, ledger = create_funded_relayer()
        ledger.native_balances[MOCK_RELAYER_ADDRESS] = 15 * 10**16
        balance = await relayer.get_relayer_balance()

        assert balance == {
            "address": MOCK_RELAYER_ADDRESS,
            "balance_wei": 15 * 10**16,
            "balance": "0.15",
        }
