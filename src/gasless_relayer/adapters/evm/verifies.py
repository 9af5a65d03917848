"""
EVM Signature Verification Helpers

Off-chain verification of forwarder ``PaymentRequest`` signatures. The
verifier never trusts the declared sender: it rebuilds the EIP-712 message
from the request fields, the sender's current replay counter and the live
domain, recovers the signer, and compares.

All cryptographic operations are performed in-process using ``eth_account``.
Ledger values (counter, chain id) are supplied by the caller, so these
functions stay synchronous and free of I/O.
"""

from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.messages import encode_typed_data

from ...schemas.bases import RelayStatus
from .constants import FORWARDER_DOMAIN_NAME, FORWARDER_DOMAIN_VERSION
from .schemas import EVMECDSASignature, EVMVerificationResult, NormalizedPaymentRequest
from .standards import EIP712Domain, PaymentRequestMessage, PaymentRequestTypedData


def build_forwarder_domain(*, chain_id: int, forwarder_address: str) -> EIP712Domain:
    """Build the forwarder's EIP-712 domain for one network and deployment."""
    return EIP712Domain(
        name=FORWARDER_DOMAIN_NAME,
        version=FORWARDER_DOMAIN_VERSION,
        chainId=int(chain_id),
        verifyingContract=forwarder_address,
    )


def build_payment_typed_data(
    request: NormalizedPaymentRequest,
    *,
    nonce: int,
    domain: EIP712Domain,
) -> PaymentRequestTypedData:
    """
    Rebuild the typed data a sender signed for ``request`` at counter ``nonce``.

    The signature field of the request is not part of the message.
    """
    return PaymentRequestTypedData(
        domain=domain,
        message=PaymentRequestMessage(
            sender=request.sender,
            recipient=request.recipient,
            amount=request.amount,
            fee=request.fee,
            nonce=int(nonce),
            deadline=request.deadline,
        ),
    )


def recover_payment_signer(
    request: NormalizedPaymentRequest,
    *,
    nonce: int,
    domain: EIP712Domain,
) -> str:
    """
    Recover the address that signed ``request``.

    Raises:
        ValueError: If the signature cannot be split into (v, r, s) or the
            curve point cannot be recovered.
    """
    signature = EVMECDSASignature.from_hex(request.signature)
    typed_data = build_payment_typed_data(request, nonce=nonce, domain=domain)
    signable = encode_typed_data(full_message=typed_data.to_dict())
    return Account.recover_message(signable, vrs=signature.to_vrs())


def verify_payment_signature(
    request: NormalizedPaymentRequest,
    *,
    nonce: int,
    domain: EIP712Domain,
) -> EVMVerificationResult:
    """
    Verify that ``request`` was signed by its declared sender.

    Performs the following checks in order, returning on the first failure:

    1. **Format** -- the signature splits into (v, r, s) and an address can
       be recovered from it under the rebuilt typed data.
    2. **Signer** -- the recovered address equals ``request.sender``
       (case-insensitive).

    A wrong chain id, forwarder address or counter does not raise a
    distinct error: each changes the digest, so the recovered address
    differs and the failure is reported as a signer mismatch with the
    expected domain values attached.

    Args:
        request: Normalized request.
        nonce: Sender's replay counter as read from the forwarder.
        domain: Live verification domain (chain id read per request).

    Returns:
        ``EVMVerificationResult`` with ``status=SUCCESS`` only when the
        recovered signer matches.

    Example::

        domain = build_forwarder_domain(chain_id=114, forwarder_address=forwarder)
        result = verify_payment_signature(request, nonce=3, domain=domain)
        if not result.is_success():
            print(result.status, result.message)
    """

    def _fail(
        status: RelayStatus,
        message: str,
        error_details: Optional[Dict[str, Any]] = None,
        recovered: Optional[str] = None,
    ) -> EVMVerificationResult:
        return EVMVerificationResult(
            status=status,
            is_valid=False,
            message=message,
            error_details=error_details,
            sender=request.sender,
            recovered_signer=recovered,
        )

    # ------------------------------------------------------------------
    # 1. Signature format and recovery
    # ------------------------------------------------------------------
    try:
        recovered = recover_payment_signer(request, nonce=nonce, domain=domain)
    except Exception as e:
        return _fail(
            RelayStatus.INVALID_SIGNATURE_FORMAT,
            f"Invalid signature format: {e}",
            {"signature_length": len(request.signature) - 2},
        )

    # ------------------------------------------------------------------
    # 2. Recovered signer vs declared sender
    # ------------------------------------------------------------------
    if recovered.lower() != request.sender.lower():
        return _fail(
            RelayStatus.SIGNER_MISMATCH,
            (
                f"Signature invalid: recovered {recovered} but expected {request.sender}. "
                f"Check chainId (expected {domain.chainId}), forwarder address "
                f"({domain.verifyingContract}), and nonce (expected {nonce})."
            ),
            {
                "recovered": recovered,
                "expected": request.sender,
                "chain_id": domain.chainId,
                "verifying_contract": domain.verifyingContract,
                "nonce": int(nonce),
            },
            recovered=recovered,
        )

    return EVMVerificationResult(
        status=RelayStatus.SUCCESS,
        is_valid=True,
        message="Signature verified",
        sender=request.sender,
        recovered_signer=recovered,
    )
