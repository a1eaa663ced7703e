# LuaLink Agent - Event Broadcaster
"""
Fan-out of progress events to every attached observer.

All mutation happens on the event loop thread, so the subscriber set needs
no lock. Publishing never blocks and never fails because of one subscriber.
"""

import asyncio
import logging
from typing import Optional

from .events import ProgressEvent

logger = logging.getLogger("lualink.agent.broadcaster")


class Subscriber:
    """Handle returned by EventBroadcaster.subscribe()."""

    def __init__(self, name: str = ""):
        self.name = name
        self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()

    def deliver(self, event: ProgressEvent) -> None:
        self._queue.put_nowait(event)

    async def get(self, timeout: Optional[float] = None) -> ProgressEvent:
        """Wait for the next event. Raises asyncio.TimeoutError on timeout."""
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    def get_nowait(self) -> ProgressEvent:
        return self._queue.get_nowait()

    def pending(self) -> int:
        return self._queue.qsize()

    def __repr__(self) -> str:
        return f"Subscriber({self.name!r}, pending={self.pending()})"


class EventBroadcaster:
    """Process-wide progress channel. No history, no backpressure."""

    def __init__(self):
        self._subscribers: list[Subscriber] = []

    def subscribe(self, name: str = "") -> Subscriber:
        subscriber = Subscriber(name)
        self._subscribers.append(subscriber)
        logger.info(f"Observer attached. Total: {len(self._subscribers)}")
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)
        logger.info(f"Observer detached. Total: {len(self._subscribers)}")

    def publish(self, event: ProgressEvent) -> None:
        """Deliver event to all current subscribers, best effort."""
        for subscriber in list(self._subscribers):
            try:
                subscriber.deliver(event)
            except Exception as e:
                logger.warning(f"Dropping event for {subscriber!r}: {e}")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
