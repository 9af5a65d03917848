"""
Event chain execution engine.

Runs a relay flow on top of EventBus, following handler results until no
handler returns a further event.
"""

import asyncio
from typing import AsyncGenerator

from .events import BaseEvent, BreakEvent, EventBus, Dependencies


class EventChain:
    """Executes event-driven workflows by chaining event handler results.

    Events are yielded as soon as they are produced, so a caller can respond
    on the first terminal event while hooks on later events keep running.
    """

    def __init__(self, event_bus: EventBus, deps: Dependencies) -> None:
        self.event_bus = event_bus
        self.deps = deps

    async def execute(self, initial_event: BaseEvent) -> AsyncGenerator[BaseEvent, None]:
        """
        Execute event chain starting from initial event.

        Yields:
            Events encountered during chain execution, in production order.

        Raises:
            Whatever a handler raised, once the events before it were yielded.
        """
        events_queue: asyncio.Queue = asyncio.Queue()
        failure: list = []

        async def producer():
            try:
                async for event in self._process_event(initial_event):
                    await events_queue.put(event)
            except Exception as e:
                failure.append(e)
            finally:
                await events_queue.put(None)  # completion sentinel

        task = asyncio.create_task(producer())

        while True:
            event = await events_queue.get()
            if event is None:
                break
            yield event

        await task
        if failure:
            raise failure[0]

    async def _process_event(self, event: BaseEvent) -> AsyncGenerator[BaseEvent, None]:
        """Dispatch ``event`` and recurse into every event its handlers return."""
        if isinstance(event, BreakEvent):
            return

        async for result in self.event_bus.dispatch(event, self.deps):
            if result is None:
                continue
            if isinstance(result, BaseEvent):
                yield result
                async for e in self._process_event(result):
                    yield e
            else:
                raise TypeError(f"Handler returned unsupported type: {type(result).__name__}")
