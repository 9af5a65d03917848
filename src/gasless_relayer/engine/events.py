"""
Event-driven relay flow with typed events and clear data flow.

Events carry their own data, handlers return next events, and dependencies
are injected separately from business data.
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from ..adapters.bases import AdapterFactory
from ..adapters.evm.schemas import EVMBatchExecutionResult, EVMExecutionResult

# ==================== Base Event ====================

class BaseEvent(ABC):
    """Base class for all events in the system."""

    @abstractmethod
    def __repr__(self) -> str:
        """String representation of the event."""
        pass


# ==================== Trigger Events (External) ====================

class PaymentRequestEvent(BaseModel, BaseEvent):
    """External trigger: relay one signed payment request."""
    request: Dict[str, Any]

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"PaymentRequestEvent(from={self.request.get('from')}, to={self.request.get('to')})"


class BatchPaymentRequestEvent(BaseModel, BaseEvent):
    """External trigger: relay several signed payment requests in one transaction."""
    requests: List[Any]

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"BatchPaymentRequestEvent(size={len(self.requests)})"


# ==================== Result Events ====================

class PaymentExecutedEvent(BaseModel, BaseEvent):
    """Result: payment confirmed on-chain."""
    result: EVMExecutionResult

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"PaymentExecutedEvent(tx={self.result.tx_hash})"


class BatchExecutedEvent(BaseModel, BaseEvent):
    """Result: batch transaction confirmed on-chain."""
    result: EVMBatchExecutionResult

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"BatchExecutedEvent(tx={self.result.tx_hash}, processed={self.result.payments_processed})"


class PaymentRejectedEvent(BaseModel, BaseEvent):
    """Result: the request stopped at some step; ``result.status`` names it."""
    result: EVMExecutionResult
    batch: bool = False

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"PaymentRejectedEvent(status={self.result.status.value})"


class BreakEvent(BaseModel, BaseEvent):
    """Internal event to break the event chain."""
    break_reason: str = ""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return "BreakEvent()"


# ==================== Dependencies Container ====================

@dataclass(frozen=True)
class Dependencies:
    """Container for infrastructure dependencies (read-only)."""
    relayer: Optional[AdapterFactory] = None


# ==================== Event Bus ====================

EventHandlerFunc = Callable[[BaseEvent, Dependencies], Awaitable[Optional[BaseEvent]]]
EventHookFunc = Callable[[BaseEvent, Dependencies], Awaitable[None]]


class EventBus:
    """Event dispatcher for publishing and subscribing to events."""

    def __init__(self) -> None:
        """Initialize with empty subscribers and hooks."""
        self._subscribers: Dict[type, list[EventHandlerFunc]] = {}
        self._hooks: Dict[type, list[EventHookFunc]] = {}

    def subscribe(self, event_class: type[BaseEvent], handler: EventHandlerFunc) -> None:
        """
        Register an async handler for the given event class.
        Multiple handlers can be subscribed to the same event type and run in parallel.

        Args:
            event_class: The event class to subscribe to.
            handler: The async handler function to call when the event is published.

        Raises:
            TypeError: If handler is not a coroutine function.
        """
        if not inspect.iscoroutinefunction(handler):
            raise TypeError(f"Handler must be a coroutine function, got {type(handler).__name__}")

        self._subscribers.setdefault(event_class, []).append(handler)

    def hook(self, event_class: type[BaseEvent], hook_func: EventHookFunc) -> None:
        """
        Register a hook for the given event class.
        Hooks are executed before subscribers when the event is dispatched.

        Raises:
            TypeError: If hook_func is not a coroutine function.
        """
        if not inspect.iscoroutinefunction(hook_func):
            raise TypeError(f"Hook must be a coroutine function, got {type(hook_func).__name__}")

        self._hooks.setdefault(event_class, []).append(hook_func)

    async def dispatch(self, event: BaseEvent, deps: Dependencies) -> AsyncGenerator[Optional[BaseEvent], None]:
        """
        Dispatch an event to all registered hooks and subscribers.
        Hooks run first (concurrently, awaited together), then all subscribers run in parallel.

        Args:
            event: The event to dispatch.
            deps: Dependencies container with injected services.

        Yields:
            Results from all subscribers as they complete. Yields nothing if no subscribers are registered.
        """
        hooks = self._hooks.get(type(event), [])
        await asyncio.gather(*(hook(event, deps) for hook in hooks))

        handlers = self._subscribers.get(type(event), [])
        if not handlers:
            return

        tasks = [handler(event, deps) for handler in handlers]
        for coro in asyncio.as_completed(tasks):
            result = await coro
            yield result
