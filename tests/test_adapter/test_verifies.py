"""
Signature verifier tests.

Signatures are produced with real keys through ``sign_payment_request`` and
recovered through ``verify_payment_signature``, so both sides share nothing
but the typed data definition.
"""

import pytest

from test_mocks import (
    MOCK_CHAIN_ID,
    MOCK_FORWARDER_ADDRESS,
    MOCK_OTHER_ADDRESS,
    MOCK_SENDER_ADDRESS,
    create_foreign_signed_request,
    create_signed_request,
)

from gasless_relayer.adapters.evm.normalizers import normalize_payment_request
from gasless_relayer.adapters.evm.schemas import EVMECDSASignature
from gasless_relayer.adapters.evm.verifies import (
    build_forwarder_domain,
    build_payment_typed_data,
    recover_payment_signer,
    verify_payment_signature,
)
from gasless_relayer.engine.exceptions import SignerMismatchError
from gasless_relayer.schemas.bases import RelayStatus


@pytest.fixture
def domain():
    return build_forwarder_domain(chain_id=MOCK_CHAIN_ID, forwarder_address=MOCK_FORWARDER_ADDRESS)


class TestTypedData:

    def test_domain_and_message_shape(self, domain):
        request = normalize_payment_request(create_signed_request(amount=80, fee=10, nonce=3))
        typed = build_payment_typed_data(request, nonce=3, domain=domain).to_dict()

        assert typed["primaryType"] == "PaymentRequest"
        assert typed["domain"] == {
            "name": "GaslessPaymentForwarder",
            "version": "1",
            "chainId": MOCK_CHAIN_ID,
            "verifyingContract": MOCK_FORWARDER_ADDRESS,
        }
        assert [f["name"] for f in typed["types"]["PaymentRequest"]] == [
            "from", "to", "amount", "fee", "nonce", "deadline",
        ]
        assert typed["message"]["from"] == MOCK_SENDER_ADDRESS
        assert typed["message"]["nonce"] == 3


class TestVerifyPaymentSignature:

    def test_round_trip(self, domain):
        request = normalize_payment_request(create_signed_request(nonce=7))
        result = verify_payment_signature(request, nonce=7, domain=domain)

        assert result.is_success()
        assert result.recovered_signer == MOCK_SENDER_ADDRESS
        assert recover_payment_signer(request, nonce=7, domain=domain) == MOCK_SENDER_ADDRESS

    def test_signed_by_someone_else(self, domain):
        raw = create_foreign_signed_request()
        result = verify_payment_signature(normalize_payment_request(raw), nonce=0, domain=domain)

        assert result.status == RelayStatus.SIGNER_MISMATCH
        assert result.recovered_signer == MOCK_OTHER_ADDRESS
        assert result.error_details["expected"] == MOCK_SENDER_ADDRESS
        with pytest.raises(SignerMismatchError):
            result.raise_for_status()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"nonce": 1},
            {"chain_id": 14},
            {"forwarder_address": "0x000000000000000000000000000000000000dEaD"},
        ],
    )
    def test_wrong_domain_or_counter_is_a_mismatch(self, domain, overrides):
        request = normalize_payment_request(create_signed_request(**overrides))
        result = verify_payment_signature(request, nonce=0, domain=domain)

        assert result.status == RelayStatus.SIGNER_MISMATCH
        assert f"expected {MOCK_CHAIN_ID}" in result.message
        assert result.error_details["nonce"] == 0

    def test_tampered_amount(self, domain):
        raw = create_signed_request(amount=80)
        raw["amount"] = "81"
        result = verify_payment_signature(normalize_payment_request(raw), nonce=0, domain=domain)
        assert result.status == RelayStatus.SIGNER_MISMATCH

    def test_overlong_signature_is_format_error(self, domain):
        raw = create_signed_request()
        raw["signature"] = raw["signature"] + "00"
        result = verify_payment_signature(normalize_payment_request(raw), nonce=0, domain=domain)

        assert result.status == RelayStatus.INVALID_SIGNATURE_FORMAT
        assert result.message.startswith("Invalid signature format:")

    def test_bad_recovery_id_is_format_error(self, domain):
        raw = create_signed_request()
        raw["signature"] = raw["signature"][:-2] + "05"
        result = verify_payment_signature(normalize_payment_request(raw), nonce=0, domain=domain)
        assert result.status == RelayStatus.INVALID_SIGNATURE_FORMAT


class TestECDSASignature:

    def test_split_and_pack(self):
        signature = create_signed_request()["signature"]
        split = EVMECDSASignature.from_hex(signature)
        assert split.v in (27, 28)
        assert split.to_packed_hex() == signature

    def test_low_recovery_id_is_normalized(self):
        signature = create_signed_request()["signature"]
        v = int(signature[-2:], 16)
        low = signature[:-2] + format(v - 27, "02x")
        assert EVMECDSASignature.from_hex(low).v == v
