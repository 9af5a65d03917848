"""
Relay API client

An ``httpx.AsyncClient`` with typed helpers for the relay server's four
endpoints. Failure bodies are turned into ``RelayRequestError`` carrying the
failure kind and recommended recovery, so callers can branch without
parsing messages.
"""

from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from ..adapters.evm.schemas import PaymentRequest
from ..engine.exceptions import BaseException
from ..schemas.https import (
    BatchExecuteResponse,
    ErrorResponse,
    ExecuteResponse,
    FeeResponse,
    NonceResponse,
)

RequestBody = Union[PaymentRequest, Dict[str, Any]]


class RelayRequestError(BaseException):
    """
    Raised when the relay server answers with an error body.

    Attributes:
        status_code: HTTP status code
        kind: Failure kind (``RelayStatus`` value), ``"unknown"`` if the body had none
        recovery: Recommended caller action (``RecoveryAction`` value)
        details: Structured diagnostics from the server
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        kind: str = "unknown",
        recovery: str = "inspect",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.kind = kind
        self.recovery = recovery
        self.details = details or {}


class RelayClient(httpx.AsyncClient):
    """
    Extended httpx.AsyncClient for the relay API.

    Fully compatible with httpx.AsyncClient - supports all methods, properties,
    and can be used as an async context manager.

    Usage:
        ```python
        async with RelayClient(base_url="http://localhost:3000") as client:
            nonce = await client.get_nonce(wallet_address)
            request = sign_payment_request(..., nonce=nonce, ...)
            receipt = await client.execute(request)
            print(receipt.transaction_hash)
        ```
    """

    def __init__(self, base_url: str = "http://localhost:3000", **kwargs):
        """
        Args:
            base_url: Relay server root URL
            **kwargs: All standard httpx.AsyncClient arguments (timeout, headers, transport, etc.)
        """
        kwargs.setdefault("timeout", 180.0)
        super().__init__(base_url=base_url, **kwargs)

    # =========================================================================
    # Endpoints
    # =========================================================================

    async def get_nonce(self, address: str) -> int:
        """Current forwarder counter of ``address``."""
        response = await self.get(f"/nonce/{address}")
        return int(NonceResponse.model_validate(self._json_or_raise(response)).nonce)

    async def get_fee(self) -> FeeResponse:
        """Forwarder minimum fee (raw base units and formatted)."""
        response = await self.get("/fee")
        return FeeResponse.model_validate(self._json_or_raise(response))

    async def execute(self, request: RequestBody) -> ExecuteResponse:
        """
        Relay one signed payment.

        Raises:
            RelayRequestError: If the server rejected or failed the payment.
        """
        response = await self.post("/execute", json=self._to_body(request))
        return ExecuteResponse.model_validate(self._json_or_raise(response))

    async def execute_batch(self, requests: Sequence[RequestBody]) -> BatchExecuteResponse:
        """
        Relay several signed payments in one transaction.

        Raises:
            RelayRequestError: If the server rejected or failed the batch.
        """
        body: Dict[str, List[Dict[str, Any]]] = {"requests": [self._to_body(r) for r in requests]}
        response = await self.post("/execute-batch", json=body)
        return BatchExecuteResponse.model_validate(self._json_or_raise(response))

    # =========================================================================
    # Utility Methods
    # =========================================================================

    @staticmethod
    def _to_body(request: RequestBody) -> Dict[str, Any]:
        if isinstance(request, PaymentRequest):
            return request.to_wire()
        return dict(request)

    @staticmethod
    def _json_or_raise(response: httpx.Response) -> Dict[str, Any]:
        """
        Return the JSON body of a 2xx response.

        Raises:
            RelayRequestError: For any other status, built from ``ErrorResponse`` when the body is one.
        """
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_success and isinstance(payload, dict):
            return payload

        if isinstance(payload, dict) and "kind" in payload:
            error = ErrorResponse.model_validate(payload)
            raise RelayRequestError(
                error.error,
                status_code=response.status_code,
                kind=error.kind,
                recovery=error.recovery,
                details=error.details,
            )

        message = payload.get("error") if isinstance(payload, dict) else None
        raise RelayRequestError(
            message or f"Relay server returned HTTP {response.status_code}",
            status_code=response.status_code,
        )
