"""
Built-in event handlers for the relay workflow.

Implements the two flows the HTTP surface drives:
payment request -> executed | rejected, and batch request -> executed | rejected.
"""

import logging

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

logger = logging.getLogger(__name__)


# ==================== Event Handlers ====================

async def handle_payment_request(
    event: PaymentRequestEvent,
    deps: Dependencies
) -> PaymentExecutedEvent | PaymentRejectedEvent:
    """Relay one payment and report the outcome."""
    result = await deps.relayer.execute_payment(event.request)
    if result.is_success():
        return PaymentExecutedEvent(result=result)
    return PaymentRejectedEvent(result=result)


async def handle_batch_request(
    event: BatchPaymentRequestEvent,
    deps: Dependencies
) -> BatchExecutedEvent | PaymentRejectedEvent:
    """Relay a batch and report the outcome."""
    result = await deps.relayer.execute_batch_payments(event.requests)
    if result.is_success():
        return BatchExecutedEvent(result=result)
    return PaymentRejectedEvent(result=result, batch=True)


# ==================== Hooks ====================

async def log_outcome(event: BaseEvent, deps: Dependencies) -> None:
    """Log every terminal event: info for confirmations, warning for rejections."""
    if isinstance(event, PaymentRejectedEvent):
        result = event.result
        logger.warning(
            "%s rejected [%s, recovery=%s]: %s",
            "Batch" if event.batch else "Payment",
            result.status.value,
            result.recovery.value,
            result.error_message,
        )
    else:
        logger.info("%r", event)


# ==================== Event Bus Setup ====================

def setup_event_bus(enable_logging_hooks: bool = True) -> EventBus:
    """Initialize event bus with built-in handlers.

    Args:
        enable_logging_hooks: If True, terminal events are logged through ``log_outcome``.
    """
    event_bus = EventBus()

    event_bus.subscribe(PaymentRequestEvent, handle_payment_request)
    event_bus.subscribe(BatchPaymentRequestEvent, handle_batch_request)

    if enable_logging_hooks:
        for event_class in (PaymentExecutedEvent, BatchExecutedEvent, PaymentRejectedEvent):
            event_bus.hook(event_class, log_outcome)

    return event_bus
