"""
Gasless Relay Server - Event-driven FastAPI wrapper.

Exposes the relay engine over HTTP:

- ``GET  /nonce/{address}``  current forwarder counter of an address
- ``GET  /fee``              forwarder minimum relayer fee
- ``POST /execute``          relay one signed payment request
- ``POST /execute-batch``    relay several in one transaction; the body is
  a JSON array of requests or ``{"requests": [...]}``

Failures are returned as ``ErrorResponse`` bodies whose ``kind`` is the
``RelayStatus`` value and whose HTTP status follows ``http_status_for``.
"""

from typing import Any, Callable, Dict, Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..adapters.bases import AdapterFactory
from ..adapters.evm.constants import TOKEN_SYMBOL, format_units
from ..engine.events import (
    BaseEvent,
    BatchExecutedEvent,
    BatchPaymentRequestEvent,
    Dependencies,
    EventBus,
    PaymentExecutedEvent,
    PaymentRejectedEvent,
    PaymentRequestEvent,
)
from ..engine.exceptions import BlockchainInteractionError, MalformedRequestError
from ..engine.executors import EventChain
from ..schemas.bases import RelayStatus, recovery_for
from ..schemas.https import (
    BatchExecuteResponse,
    ErrorResponse,
    ExecuteResponse,
    FeeResponse,
    NonceResponse,
)
from ..utils import logger
from .flows import setup_event_bus

_HTTP_STATUS: Dict[RelayStatus, int] = {
    RelayStatus.SUCCESS: 200,
    RelayStatus.MALFORMED_REQUEST: 400,
    RelayStatus.INVALID_SIGNATURE_FORMAT: 400,
    RelayStatus.SIGNER_MISMATCH: 400,
    RelayStatus.INSUFFICIENT_BALANCE: 400,
    RelayStatus.INSUFFICIENT_ALLOWANCE: 400,
    RelayStatus.FEE_TOO_LOW: 400,
    RelayStatus.SIMULATION_FAILED: 400,
    RelayStatus.REQUEST_EXPIRED: 409,
    RelayStatus.COUNTER_RACE_LOST: 409,
    RelayStatus.ESTIMATION_FAILED: 502,
    RelayStatus.SUBMISSION_FAILED: 502,
    RelayStatus.FINALITY_WAIT_FAILED: 502,
    RelayStatus.LEDGER_UNAVAILABLE: 502,
}


def http_status_for(status: RelayStatus) -> int:
    """400 for request problems, 409 for stale authorizations, 502 for ledger-side failures."""
    return _HTTP_STATUS[status]


def error_response(
    status: RelayStatus,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=message,
        kind=status.value,
        recovery=recovery_for(status, details).value,
        details=details,
    )
    return JSONResponse(status_code=http_status_for(status), content=body.to_wire())


class RelayServer(FastAPI):
    """FastAPI server in front of a relay engine."""

    def __init__(
        self,
        relayer: AdapterFactory,
        enable_logging_hooks: bool = True,
        cors_origins: Sequence[str] = ("*",),
        **fastapi_kwargs
    ):
        """Initialize the relay server.

        Args:
            relayer: Relay engine (``EVMRelayAdapter`` in production)
            enable_logging_hooks: Log terminal events (default: True)
            cors_origins: Allowed CORS origins (default: any)
            **fastapi_kwargs: FastAPI arguments (title, version, etc.)
        """
        self.relayer = relayer
        self.depends = Dependencies(relayer=relayer)
        self.event_bus: EventBus = setup_event_bus(enable_logging_hooks=enable_logging_hooks)

        fastapi_kwargs.setdefault("title", "Gasless Payment Relayer")
        super().__init__(**fastapi_kwargs)

        self.add_middleware(
            CORSMiddleware,
            allow_origins=list(cors_origins),
            allow_methods=["*"],
            allow_headers=["*"],
        )
        self._setup_read_endpoints()
        self._setup_execute_endpoints()

    def subscribe(self, event_class: type[BaseEvent], handler: Callable) -> None:
        """Register event handler.

        Args:
            event_class: Event type to handle
            handler: Async function(event, deps) -> Optional[BaseEvent]
        """
        self.event_bus.subscribe(event_class, handler)

    def add_hook(self, event_class: type[BaseEvent], hook: Callable) -> None:
        """Register event hook for side effects.

        Example:
            ```python
            async def notify(event, deps):
                await webhook.post(event.result.tx_hash)

            app.add_hook(PaymentExecutedEvent, notify)
            ```
        """
        self.event_bus.hook(event_class, hook)

    def hook(self, event_class: type[BaseEvent]) -> Callable:
        """Decorator for registering event hooks.

        Example:
            @app.hook(PaymentRejectedEvent)
            async def on_rejected(event, deps):
                metrics.count(event.result.status)
        """
        def decorator(hook_func: Callable) -> Callable:
            self.event_bus.hook(event_class, hook_func)
            return hook_func
        return decorator

    async def _run_chain(self, initial_event: BaseEvent) -> JSONResponse:
        """Run a flow and map its first terminal event to a response."""
        event_chain = EventChain(self.event_bus, self.depends)
        async for event in event_chain.execute(initial_event):
            if isinstance(event, BatchExecutedEvent):
                result = event.result
                return JSONResponse(status_code=200, content=BatchExecuteResponse(
                    transaction_hash=result.tx_hash,
                    block_number=result.block_number,
                    gas_used=str(result.gas_used),
                    explorer_url=result.explorer_url,
                    payments_processed=result.payments_processed,
                ).to_wire())

            if isinstance(event, PaymentExecutedEvent):
                result = event.result
                return JSONResponse(status_code=200, content=ExecuteResponse(
                    transaction_hash=result.tx_hash,
                    block_number=result.block_number,
                    gas_used=str(result.gas_used),
                    explorer_url=result.explorer_url,
                ).to_wire())

            if isinstance(event, PaymentRejectedEvent):
                result = event.result
                return error_response(
                    result.status,
                    result.error_message or result.status.value,
                    result.error_details,
                )

        return JSONResponse(status_code=500, content={"error": "Relay flow produced no result"})

    def _setup_read_endpoints(self) -> None:
        @self.get("/nonce/{address}")
        async def get_nonce(address: str):
            """Current forwarder counter of ``address``."""
            try:
                nonce = await self.relayer.get_nonce(address)
            except MalformedRequestError as e:
                return error_response(RelayStatus.MALFORMED_REQUEST, e.message, e.details)
            except BlockchainInteractionError as e:
                logger.warning("Nonce read failed for %s: %s", address, e.reason)
                return error_response(RelayStatus.LEDGER_UNAVAILABLE, f"Failed to get nonce: {e.reason}")
            return NonceResponse(address=address, nonce=str(nonce)).to_wire()

        @self.get("/fee")
        async def get_fee():
            """Forwarder minimum relayer fee, raw and formatted."""
            try:
                fee = await self.relayer.get_relayer_fee()
                decimals = await self.relayer.get_token_decimals()
            except BlockchainInteractionError as e:
                logger.warning("Fee read failed: %s", e.reason)
                return error_response(RelayStatus.LEDGER_UNAVAILABLE, f"Failed to get fee: {e.reason}")
            return FeeResponse(
                fee=str(fee),
                fee_formatted=f"{format_units(fee, decimals)} {TOKEN_SYMBOL}",
            ).to_wire()

    def _setup_execute_endpoints(self) -> None:
        @self.post("/execute")
        async def execute(request: Request):
            """Relay one signed payment request."""
            try:
                payload = await request.json()
            except ValueError:  # bad JSON or non-UTF-8 bytes
                return error_response(RelayStatus.MALFORMED_REQUEST, "Request body must be JSON")
            if not isinstance(payload, dict):
                return error_response(RelayStatus.MALFORMED_REQUEST, "Payment request must be a JSON object")
            return await self._run_chain(PaymentRequestEvent(request=payload))

        @self.post("/execute-batch")
        async def execute_batch(request: Request):
            """Relay several signed payment requests in one transaction."""
            try:
                payload = await request.json()
            except ValueError:
                return error_response(RelayStatus.MALFORMED_REQUEST, "Request body must be JSON")
            requests = payload.get("requests") if isinstance(payload, dict) else payload
            if not isinstance(requests, list):
                return error_response(
                    RelayStatus.MALFORMED_REQUEST,
                    "Body must be an array of requests or an object with a 'requests' array",
                    {"field": "requests"},
                )
            return await self._run_chain(BatchPaymentRequestEvent(requests=requests))
