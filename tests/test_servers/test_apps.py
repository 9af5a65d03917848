"""
HTTP surface tests for RelayServer, driven through FastAPI's TestClient.

The relay engine is either an AsyncMock (to pin the HTTP mapping) or a real
EVMRelayAdapter over the in-memory ledger (end-to-end through the routes).
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from test_mocks import (
    MOCK_SENDER_ADDRESS,
    create_funded_relayer,
    create_signed_request,
    ledger_error,
)

from gasless_relayer.adapters.evm.schemas import EVMBatchExecutionResult, EVMExecutionResult
from gasless_relayer.engine.events import PaymentRequestEvent
from gasless_relayer.engine.exceptions import MalformedRequestError
from gasless_relayer.schemas.bases import RecoveryAction, RelayStatus, recovery_for
from gasless_relayer.servers.apps import RelayServer, http_status_for


def _client(relayer) -> TestClient:
    return TestClient(RelayServer(relayer, enable_logging_hooks=False))


def _failure(status: RelayStatus, message: str = "failed", details=None) -> EVMExecutionResult:
    return EVMExecutionResult(
        status=status,
        error_message=message,
        error_details=details,
        recovery=recovery_for(status, details),
    )


class TestReadEndpoints:

    def test_nonce(self):
        relayer = AsyncMock()
        relayer.get_nonce.return_value = 7
        response = _client(relayer).get(f"/nonce/{MOCK_SENDER_ADDRESS}")

        assert response.status_code == 200
        assert response.json() == {"address": MOCK_SENDER_ADDRESS, "nonce": "7"}

    def test_nonce_bad_address(self):
        relayer = AsyncMock()
        relayer.get_nonce.side_effect = MalformedRequestError("Invalid address", field="address")
        response = _client(relayer).get("/nonce/0x123")

        assert response.status_code == 400
        assert response.json()["kind"] == "malformed_request"
        assert response.json()["recovery"] == "fix_input"

    def test_nonce_ledger_down(self):
        relayer = AsyncMock()
        relayer.get_nonce.side_effect = ledger_error("connection refused")
        response = _client(relayer).get(f"/nonce/{MOCK_SENDER_ADDRESS}")

        assert response.status_code == 502
        assert response.json()["error"] == "Failed to get nonce: connection refused"
        assert response.json()["recovery"] == "retry"

    def test_fee(self):
        relayer = AsyncMock()
        relayer.get_relayer_fee.return_value = 10_000
        relayer.get_token_decimals.return_value = 6
        response = _client(relayer).get("/fee")

        assert response.status_code == 200
        assert response.json() == {"fee": "10000", "feeFormatted": "0.01 FXRP"}

    def test_cors(self):
        response = _client(AsyncMock()).options(
            "/execute",
            headers={"Origin": "https://wallet.example", "Access-Control-Request-Method": "POST"},
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] in ("*", "https://wallet.example")


class TestExecute:

    def test_success_body(self):
        relayer = AsyncMock()
        relayer.execute_payment.return_value = EVMExecutionResult(
            status=RelayStatus.SUCCESS, success=True, tx_hash="0xabc", block_number=12, gas_used=61234,
            explorer_url="https://coston2-explorer.flare.network/tx/0xabc",
        )
        response = _client(relayer).post("/execute", json=create_signed_request())

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "transactionHash": "0xabc",
            "blockNumber": 12,
            "gasUsed": "61234",
            "explorerUrl": "https://coston2-explorer.flare.network/tx/0xabc",
        }

    @pytest.mark.parametrize(
        "status, http_status",
        [
            (RelayStatus.MALFORMED_REQUEST, 400),
            (RelayStatus.SIGNER_MISMATCH, 400),
            (RelayStatus.INSUFFICIENT_ALLOWANCE, 400),
            (RelayStatus.SIMULATION_FAILED, 400),
            (RelayStatus.REQUEST_EXPIRED, 409),
            (RelayStatus.COUNTER_RACE_LOST, 409),
            (RelayStatus.LEDGER_UNAVAILABLE, 502),
            (RelayStatus.SUBMISSION_FAILED, 502),
            (RelayStatus.FINALITY_WAIT_FAILED, 502),
        ],
    )
    def test_failure_mapping(self, status, http_status):
        relayer = AsyncMock()
        relayer.execute_payment.return_value = _failure(status, "nope", {"k": 1})
        response = _client(relayer).post("/execute", json=create_signed_request())

        assert response.status_code == http_status == http_status_for(status)
        body = response.json()
        assert body["error"] == "nope"
        assert body["kind"] == status.value
        assert body["recovery"] == recovery_for(status).value
        assert body["details"] == {"k": 1}

    def test_non_json_body(self):
        relayer = AsyncMock()
        response = _client(relayer).post("/execute", content=b"not json", headers={"content-type": "application/json"})

        assert response.status_code == 400
        assert response.json()["kind"] == "malformed_request"
        relayer.execute_payment.assert_not_called()

    def test_non_utf8_body(self):
        relayer = AsyncMock()
        response = _client(relayer).post(
            "/execute", content=b'{"from": "\xff\xfe"}', headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["kind"] == "malformed_request"
        relayer.execute_payment.assert_not_called()

    def test_hook_registration(self):
        relayer = AsyncMock()
        relayer.execute_payment.return_value = EVMExecutionResult(
            status=RelayStatus.SUCCESS, success=True, tx_hash="0xabc", block_number=1,
        )
        app = RelayServer(relayer, enable_logging_hooks=False)
        seen = []

        @app.hook(PaymentRequestEvent)
        async def on_request(event, deps):
            seen.append(event.request["from"])

        TestClient(app).post("/execute", json=create_signed_request())
        assert seen == [MOCK_SENDER_ADDRESS]


class TestExecuteBatch:

    def test_success_body(self):
        relayer = AsyncMock()
        relayer.execute_batch_payments.return_value = EVMBatchExecutionResult(
            status=RelayStatus.SUCCESS, success=True, tx_hash="0xbatch", block_number=5, gas_used=250000,
            payments_processed=3,
        )
        requests = [create_signed_request(nonce=i) for i in range(3)]
        response = _client(relayer).post("/execute-batch", json={"requests": requests})

        assert response.status_code == 200
        assert response.json()["paymentsProcessed"] == 3
        assert response.json()["gasUsed"] == "250000"
        relayer.execute_batch_payments.assert_awaited_once_with(requests)

    def test_bare_array_body(self):
        relayer = AsyncMock()
        relayer.execute_batch_payments.return_value = EVMBatchExecutionResult(
            status=RelayStatus.SUCCESS, success=True, tx_hash="0xbatch", block_number=5, gas_used=150000,
            payments_processed=2,
        )
        requests = [create_signed_request(nonce=i) for i in range(2)]
        response = _client(relayer).post("/execute-batch", json=requests)

        assert response.status_code == 200
        assert response.json()["paymentsProcessed"] == 2
        relayer.execute_batch_payments.assert_awaited_once_with(requests)

    def test_non_utf8_body(self):
        relayer = AsyncMock()
        response = _client(relayer).post(
            "/execute-batch", content=b"\xff\xfe\xfd", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["kind"] == "malformed_request"
        relayer.execute_batch_payments.assert_not_called()

    def test_requests_must_be_a_list(self):
        relayer = AsyncMock()
        response = _client(relayer).post("/execute-batch", json={"requests": "nope"})

        assert response.status_code == 400
        assert response.json()["details"] == {"field": "requests"}


class TestEndToEnd:

    def test_relays_through_in_memory_ledger(self):
        relayer, ledger = create_funded_relayer(balance=100, allowance=90)
        client = _client(relayer)

        assert client.get(f"/nonce/{MOCK_SENDER_ADDRESS}").json()["nonce"] == "0"
        response = client.post("/execute", json=create_signed_request(amount=80, fee=10))

        assert response.status_code == 200
        assert response.json()["gasUsed"] == str(ledger.gas_used)
        assert len(ledger.sent) == 1

    def test_race_is_409(self):
        relayer, ledger = create_funded_relayer()

        def consume_nonce():
            ledger.nonces[MOCK_SENDER_ADDRESS] = 1

        ledger.before["simulate_payment"] = consume_nonce
        response = _client(relayer).post("/execute", json=create_signed_request())

        assert response.status_code == 409
        assert response.json()["kind"] == "counter_race_lost"
        assert response.json()["recovery"] == RecoveryAction.RESIGN.value
        assert ledger.sent == []
