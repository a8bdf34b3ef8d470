"""In-process SystemEvent bus.

Consent transitions, merges, chat posts and live connection changes are
published here; the audit logger is the subscriber that persists them.
Publishing only enqueues, so a request never waits on an audit write:

    from civicpulse.events import emit

    await emit(SystemEvent(event_type=EventType.CONSENT_GRANTED, issue_id=issue.id))

Subscribers are registered once during application startup.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from civicpulse.schemas.events import SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Awaitable[None]]


class EventBus:
    """Queue of SystemEvents drained by one background task."""

    def __init__(self) -> None:
        self.handlers: list[EventHandler] = []
        self._queue: asyncio.Queue[SystemEvent] | None = None
        self._worker: asyncio.Task[None] | None = None

    def subscribe(self, handler: EventHandler) -> None:
        if handler not in self.handlers:
            self.handlers.append(handler)
            logger.info("Event subscriber registered: %s", getattr(handler, "__name__", handler))

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self.handlers:
            self.handlers.remove(handler)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def publish(self, event: SystemEvent) -> None:
        if not self.running:
            await self.start()
        await self._queue.put(event)
        logger.debug("Event queued: %s (issue=%s)", event.event_type.value, event.issue_id)

    async def dispatch(self, event: SystemEvent) -> None:
        """Hand one event to every subscriber; a failing one is logged and skipped."""
        for handler in list(self.handlers):
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "Subscriber %s failed on %s",
                    getattr(handler, "__name__", handler),
                    event.event_type.value,
                )

    async def _drain(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.dispatch(event)
            finally:
                self._queue.task_done()

    async def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._drain())
        logger.info("Event bus started with %d subscribers", len(self.handlers))

    async def stop(self) -> None:
        """Deliver what is already queued, then stop the worker."""
        if not self.running:
            self._worker = None
            return
        await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        self._queue = None
        logger.info("Event bus stopped")


bus = EventBus()

emit = bus.publish
subscribe = bus.subscribe
unsubscribe = bus.unsubscribe
start_event_system = bus.start
stop_event_system = bus.stop
