"""
EVM Adapter Schema Models

Pydantic models for the relay pipeline. All classes inherit from the base
schema hierarchy in ``schemas.bases``.

Request classes:
    - PaymentRequest: Wire form of a signed payment authorization.
    - NormalizedPaymentRequest: Canonical, immutable form produced by the
      request normalizer.
    - EVMECDSASignature: (v, r, s) split of a 65-byte signature.

State classes:
    - LedgerSnapshot: Values read from the ledger for one check.

Result classes:
    - EVMVerificationResult: Signature or ledger-state check outcome.
    - EVMExecutionResult: Single payment submission outcome.
    - EVMBatchExecutionResult: Batch submission outcome.
    - RevertDiagnosis: Decoded explanation of a failed ledger call.
"""

from typing import Optional, Dict, Any, Literal, Tuple

from pydantic import ConfigDict, Field

from ...schemas.bases import (
    BaseVerificationResult,
    BaseExecutionResult,
    CanonicalModel,
    RelayStatus,
)
from ...engine.exceptions import error_for_status
from .constants import SIGNATURE_HEX_LENGTH


class PaymentRequest(CanonicalModel):
    """
    Signed payment authorization as exchanged over HTTP.

    Amounts travel as decimal strings so that uint256 values survive JSON
    clients that parse numbers as doubles.

    Attributes:
        sender: Paying address (``from`` on the wire).
        recipient: Receiving address (``to`` on the wire).
        amount: Amount in token base units.
        fee: Relayer fee in token base units.
        deadline: Unix timestamp after which the request is void.
        signature: 0x-prefixed 65-byte EIP-712 signature.

    Example::

        request = PaymentRequest.model_validate({
            "from": "0xSender...", "to": "0xRecipient...",
            "amount": "1000000", "fee": "10000",
            "deadline": 1_900_000_000, "signature": "0x...",
        })
        request.model_dump(by_alias=True)["from"]
    """

    sender: str = Field(..., alias="from", description="Paying address")
    recipient: str = Field(..., alias="to", description="Receiving address")
    amount: str = Field(..., description="Amount in token base units (decimal string)")
    fee: str = Field(..., description="Relayer fee in token base units (decimal string)")
    deadline: int = Field(..., ge=0, description="Unix timestamp after which the request is void")
    signature: str = Field(..., description="0x-prefixed 65-byte signature")

    def to_wire(self) -> Dict[str, Any]:
        """Return the JSON-ready dict with ``from``/``to`` keys."""
        return self.model_dump(mode="json", by_alias=True)


class EVMECDSASignature(CanonicalModel):
    """
    EVM ECDSA signature split into (v, r, s).

    Attributes:
        v: Recovery id normalized to 27 or 28.
        r: r component, 0x-prefixed 64-char hex.
        s: s component, 0x-prefixed 64-char hex.
    """

    v: int = Field(..., ge=27, le=28, description="ECDSA recovery ID (27 or 28)")
    r: str = Field(..., description="Signature r component (32 bytes, 0x-prefixed hex)")
    s: str = Field(..., description="Signature s component (32 bytes, 0x-prefixed hex)")

    @classmethod
    def from_hex(cls, signature: str) -> "EVMECDSASignature":
        """
        Split a packed ``r || s || v`` signature.

        Raises:
            ValueError: If the signature is not exactly 65 bytes of hex or
                the recovery id is not 0, 1, 27 or 28.
        """
        body = signature[2:] if signature[:2] in ("0x", "0X") else signature
        if len(body) != SIGNATURE_HEX_LENGTH:
            raise ValueError(f"expected {SIGNATURE_HEX_LENGTH} hex chars, got {len(body)}")
        try:
            raw = bytes.fromhex(body)
        except ValueError:
            raise ValueError("signature is not valid hexadecimal")

        v = raw[64]
        if v in (0, 1):
            v += 27
        if v not in (27, 28):
            raise ValueError(f"Invalid recovery ID: {raw[64]}. Must be 0, 1, 27 or 28")

        return cls(v=v, r="0x" + raw[:32].hex(), s="0x" + raw[32:64].hex())

    def to_vrs(self) -> Tuple[int, int, int]:
        """Return ``(v, r, s)`` as integers, the form ``Account.recover_message(vrs=...)`` takes."""
        return self.v, int(self.r, 16), int(self.s, 16)

    def to_packed_hex(self) -> str:
        """Encode back into a packed 65-byte hex string (``r || s || v``)."""
        return "0x" + self.r[2:].zfill(64) + self.s[2:].zfill(64) + format(self.v, "02x")


class NormalizedPaymentRequest(CanonicalModel):
    """
    Canonical payment authorization.

    Produced only by the request normalizer: checksummed addresses, integer
    base-unit amounts and a lowercase 0x-prefixed signature. Frozen.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    sender: str = Field(..., description="Checksummed paying address")
    recipient: str = Field(..., description="Checksummed receiving address")
    amount: int = Field(..., ge=0, description="Amount in token base units")
    fee: int = Field(..., ge=0, description="Relayer fee in token base units")
    deadline: int = Field(..., ge=0, description="Unix timestamp after which the request is void")
    signature: str = Field(..., description="0x-prefixed lowercase 65-byte signature")

    @property
    def total(self) -> int:
        """Amount plus fee, what the sender must hold and have approved."""
        return self.amount + self.fee

    def signature_bytes(self) -> bytes:
        return bytes.fromhex(self.signature[2:])

    def to_contract_args(self) -> Tuple[str, str, int, int, int, bytes]:
        """Arguments in ``executePayment`` order (also one ``PaymentRequest`` tuple)."""
        return (
            self.sender,
            self.recipient,
            self.amount,
            self.fee,
            self.deadline,
            self.signature_bytes(),
        )

    def to_wire(self) -> PaymentRequest:
        return PaymentRequest(
            sender=self.sender,
            recipient=self.recipient,
            amount=str(self.amount),
            fee=str(self.fee),
            deadline=self.deadline,
            signature=self.signature,
        )


class LedgerSnapshot(CanonicalModel):
    """
    Ledger values read for a single state check.

    Never cached across requests; each check builds a fresh snapshot.
    """

    ledger_time: int = Field(..., description="Latest block timestamp")
    nonce: int = Field(..., ge=0, description="Sender's replay counter")
    token_address: str = Field(..., description="Token resolved from the forwarder")
    token_decimals: int = Field(..., ge=0, description="Token decimals")
    balance: int = Field(..., ge=0, description="Sender token balance")
    allowance: int = Field(..., ge=0, description="Allowance granted to the forwarder")
    min_fee: int = Field(..., ge=0, description="Forwarder minimum relayer fee")


class EVMVerificationResult(BaseVerificationResult):
    """
    EVM verification outcome.

    Shared by the signature verifier and the ledger state checker.

    Attributes:
        sender: Declared sender of the request
        recovered_signer: Address recovered from the signature, when recovery ran
        snapshot: Ledger values the state check was decided on
    """

    verification_type: Literal["evm"] = Field(default="evm", description="Verification type identifier")
    sender: Optional[str] = Field(None, description="Declared sender")
    recovered_signer: Optional[str] = Field(None, description="Address recovered from the signature")
    snapshot: Optional[LedgerSnapshot] = Field(None, description="Ledger values used for the decision")

    def raise_for_status(self) -> None:
        """Raise the ``RelayError`` matching ``status`` unless it is SUCCESS."""
        if self.status != RelayStatus.SUCCESS:
            raise error_for_status(self.status, self.message, self.error_details)


class EVMExecutionResult(BaseExecutionResult):
    """
    Outcome of relaying one payment.

    ``success`` is True only after a receipt confirmed inclusion with a
    non-reverted status. ``gas_used`` is never null; it stays 0 when the
    receipt omits it or no transaction was mined.

    Attributes:
        tx_hash: Transaction hash, once broadcast
        block_number: Block the transaction was included in
        gas_used: Gas consumed according to the receipt
        gas_limit: Gas ceiling the transaction was sent with
        explorer_url: Explorer link for the transaction
    """

    confirmation_type: Literal["evm"] = Field(default="evm", description="Confirmation type identifier")
    tx_hash: Optional[str] = Field(None, description="Transaction hash")
    block_number: Optional[int] = Field(None, ge=0, description="Inclusion block number")
    gas_used: int = Field(default=0, ge=0, description="Gas used by the transaction")
    gas_limit: Optional[int] = Field(None, ge=0, description="Gas ceiling sent with the transaction")
    explorer_url: Optional[str] = Field(None, description="Explorer link for the transaction")

    def raise_for_status(self) -> None:
        """Raise the ``RelayError`` matching ``status`` unless it is SUCCESS."""
        if self.status != RelayStatus.SUCCESS:
            details = dict(self.error_details or {})
            if self.tx_hash:
                details.setdefault("tx_hash", self.tx_hash)
            raise error_for_status(self.status, self.error_message or self.status.value, details)


class EVMBatchExecutionResult(EVMExecutionResult):
    """
    Outcome of relaying a batch in one transaction.

    Attributes:
        payments_processed: Number of requests submitted in the batch. This
            counts submitted items, not items that individually succeeded.
    """

    payments_processed: int = Field(default=0, ge=0, description="Requests submitted in the batch")


class RevertDiagnosis(CanonicalModel):
    """
    Decoded explanation of a failed ledger call.

    Attributes:
        phase: Pipeline phase that failed (``simulation``, ``sendTransaction``, ...)
        reason: Best available human-readable reason
        error_name: Custom error name when one was identified
        error_args: Decoded custom error arguments
        revert_data: Raw revert data when the node returned it
        tx_hash: Transaction hash for post-submission failures
        tx_found: Whether the node returned the submitted transaction on lookup
        calldata_empty: Whether the submitted transaction had no calldata
        calldata_length: Length in hex characters of the submitted calldata
        explorer_url: Link to inspect the transaction
    """

    phase: str = Field(..., description="Failed pipeline phase")
    reason: str = Field(..., description="Best available reason")
    error_name: Optional[str] = Field(None, description="Identified custom error name")
    error_args: Optional[Dict[str, Any]] = Field(None, description="Decoded custom error arguments")
    revert_data: Optional[str] = Field(None, description="Raw revert data")
    tx_hash: Optional[str] = Field(None, description="Transaction hash")
    tx_found: Optional[bool] = Field(None, description="Node returned the transaction on lookup")
    calldata_empty: Optional[bool] = Field(None, description="Submitted transaction had no calldata")
    calldata_length: Optional[int] = Field(None, ge=0, description="Submitted calldata length (hex chars)")
    explorer_url: Optional[str] = Field(None, description="Explorer link")

    def summary(self) -> str:
        """One-line message: ``"<phase> failed: <reason>[ hint][ Inspect tx: url]"``."""
        message = f"{self.phase} failed: {self.reason}"
        if self.calldata_empty is True:
            message += " [TX had no calldata - relayer bug]"
        elif self.calldata_length is not None:
            message += f" [calldata length: {self.calldata_length} chars]"
        elif self.tx_found is False:
            message += " [TX not found on node, calldata unknown]"
        if self.explorer_url:
            message += f" Inspect tx: {self.explorer_url}"
        return message

    def to_details(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
