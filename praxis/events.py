"""In-process async event bus for Praxis.

The execution relay publishes ``behavior_executed`` and ``behavior_failed``
here; handlers such as the reflection trigger subscribe. A broken handler is
logged and skipped, never propagated back into the relay.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

from praxis.utils import utcnow

logger = logging.getLogger(__name__)

BEHAVIOR_EXECUTED = "behavior_executed"
BEHAVIOR_FAILED = "behavior_failed"

EventHandler = Callable[["Event"], Awaitable[None]]


@dataclass
class Event:
    type: str
    agent_id: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)


class EventBus:
    """Queue-backed bus; a background task fans each event out to its handlers."""

    def __init__(self, max_queue: int = 1000):
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=max_queue)
        self._task: asyncio.Task | None = None
        self._running = False

    def on(self, event_type: str, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)
        logger.debug("Subscribed %s to '%s'", handler.__qualname__, event_type)

    async def emit(self, event: Event) -> None:
        """Queue an event without waiting for handlers. Drops it when the queue is full."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Event queue full, dropping %s for agent %s", event.type, event.agent_id)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._process_loop(), name="praxis-event-bus")
        logger.info("Event bus started")

    async def stop(self) -> None:
        """Cancel the loop, then dispatch whatever is still queued."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self.pending:
            logger.info("Draining %d queued events", self.pending)
        while self.pending:
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            await self._dispatch(event)
        logger.info("Event bus stopped")

    async def _process_loop(self) -> None:
        while self._running:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=1.0)
                await self._dispatch(event)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Unexpected error in event bus loop")

    async def _dispatch(self, event: Event) -> None:
        handlers = self._handlers.get(event.type, [])
        if handlers:
            await asyncio.gather(*(self._safe_handle(h, event) for h in handlers))

    async def _safe_handle(self, handler: EventHandler, event: Event) -> None:
        try:
            await handler(event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Handler %s failed for event %s", handler.__qualname__, event.type)

    @property
    def pending(self) -> int:
        return self._queue.qsize()
