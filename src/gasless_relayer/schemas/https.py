"""
HTTP Request/Response Schema Models for the Relay API

Pydantic models for the JSON bodies exchanged between wallets and the relay
server. Field aliases keep the wire names callers already use
(``transactionHash``, ``gasUsed``...) while the Python side stays snake_case.

Endpoints:
1. ``GET /nonce/{address}`` -> NonceResponse
2. ``GET /fee`` -> FeeResponse
3. ``POST /execute`` (PaymentRequest body) -> ExecuteResponse
4. ``POST /execute-batch`` (BatchExecuteRequest body) -> BatchExecuteResponse

Any failure -> ErrorResponse.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class NonceResponse(_WireModel):
    """Current forwarder replay counter of an address."""
    address: str = Field(..., description="Queried address")
    nonce: str = Field(..., description="Replay counter (decimal string)")


class FeeResponse(_WireModel):
    """Forwarder minimum relayer fee."""
    fee: str = Field(..., description="Minimum fee in token base units")
    fee_formatted: str = Field(..., alias="feeFormatted", description="Minimum fee with symbol")


class BatchExecuteRequest(_WireModel):
    """Body of ``POST /execute-batch``."""
    requests: List[Dict[str, Any]] = Field(..., description="Signed payment requests")


class ExecuteResponse(_WireModel):
    """Confirmed single payment.

    ``gasUsed`` travels as a decimal string like the amounts.
    """
    success: bool = True
    transaction_hash: str = Field(..., alias="transactionHash")
    block_number: Optional[int] = Field(None, alias="blockNumber")
    gas_used: str = Field(..., alias="gasUsed")
    explorer_url: Optional[str] = Field(None, alias="explorerUrl")


class BatchExecuteResponse(ExecuteResponse):
    """Confirmed batch."""
    payments_processed: int = Field(..., alias="paymentsProcessed")


class ErrorResponse(_WireModel):
    """
    Failure body.

    Attributes:
        error: Human-readable message
        kind: Failure kind (``RelayStatus`` value)
        recovery: Recommended caller action (``RecoveryAction`` value)
        details: Structured diagnostics
    """
    error: str
    kind: str
    recovery: str
    details: Optional[Dict[str, Any]] = None
