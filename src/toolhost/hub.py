"""Broadcast hub: best-effort fan-out of named events to passive subscribers.

Each subscriber owns a bounded :class:`asyncio.Queue`.  Publishing never
waits: when a subscriber's queue is full the event is dropped for that
subscriber only.  Subscribers see events published after they attach, in
publish order, possibly with gaps.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 256


@dataclass(frozen=True)
class HubEvent:
    """A message published to the hub."""

    name: str
    payload: dict[str, Any] = field(default_factory=lambda: dict[str, Any]())
    sequence: int = 0
    timestamp: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.name,
            "sequence": self.sequence,
            "timestamp": self.timestamp,
            "payload": self.payload,
        }


def _glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Convert a dotted glob pattern to a compiled regex.

    Supports ``*`` (single segment) and ``**`` (any number of segments).
    """
    escaped = re.escape(pattern)
    escaped = escaped.replace(r"\*\*", ".*")
    escaped = escaped.replace(r"\*", r"[^.]*")
    return re.compile(f"^{escaped}$")


def format_sse(event: HubEvent) -> str:
    """Render an event as one Server-Sent Events frame."""
    data = json.dumps(event.to_dict(), default=str, separators=(",", ":"))
    return f"event: {event.name}\nid: {event.sequence}\ndata: {data}\n\n"


class Subscription:
    """A live, non-restartable stream of hub events.

    Iterate with ``async for``; iteration ends when the subscription or the
    hub is closed.
    """

    def __init__(self, hub: BroadcastHub, pattern: str, buffer_size: int) -> None:
        self._hub = hub
        self.pattern = pattern
        self._matcher = _glob_to_regex(pattern)
        self._queue: asyncio.Queue[HubEvent] = asyncio.Queue(maxsize=buffer_size)
        self._closed = asyncio.Event()
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def matches(self, name: str) -> bool:
        return self._matcher.match(name) is not None

    def offer(self, event: HubEvent) -> bool:
        """Enqueue without waiting; return ``False`` when the event was dropped."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    def close(self) -> None:
        """Detach from the hub and wake a pending reader."""
        if self.closed:
            return
        self._closed.set()
        self._hub._detach(self)

    def get_nowait(self) -> HubEvent | None:
        """Return the next queued event, or ``None`` when nothing is pending."""
        if self._queue.empty():
            return None
        return self._queue.get_nowait()

    async def get(self) -> HubEvent | None:
        """Wait for the next event, or ``None`` once closed and drained."""
        if not self._queue.empty():
            return self._queue.get_nowait()
        if self.closed:
            return None
        getter = asyncio.ensure_future(self._queue.get())
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            done, _ = await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closer.cancel()
            if not getter.done():
                getter.cancel()
        if getter in done:
            return getter.result()
        return None

    def _drop_pending(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> HubEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *_: object) -> None:
        self.close()


class BroadcastHub:
    """Fan-out channel keyed by event name.

    Usage::

        hub = BroadcastHub()
        async with hub.subscribe("rpc.*") as events:
            async for event in events:
                print(event.name, event.payload)

        hub.publish("rpc.completed", {"method": "tools/call"})   # never blocks
    """

    def __init__(self, buffer_size: int = DEFAULT_BUFFER_SIZE) -> None:
        if buffer_size < 1:
            msg = "buffer_size must be at least 1"
            raise ValueError(msg)
        self._buffer_size = buffer_size
        self._subscribers: list[Subscription] = []
        self._sequence = 0
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, pattern: str = "**", *, buffer_size: int | None = None) -> Subscription:
        """Attach a new subscriber that only sees events published from now on."""
        subscription = Subscription(self, pattern, buffer_size or self._buffer_size)
        if self._closed:
            subscription.close()
            return subscription
        self._subscribers.append(subscription)
        return subscription

    def publish(self, name: str, payload: dict[str, Any] | None = None) -> HubEvent | None:
        """Deliver an event to every matching subscriber without waiting.

        Returns the published event, or ``None`` when the hub is closed.
        """
        if self._closed:
            return None
        self._sequence += 1
        event = HubEvent(
            name=name,
            payload=payload or {},
            sequence=self._sequence,
            timestamp=time.time(),
        )
        for subscription in list(self._subscribers):
            if subscription.matches(name) and not subscription.offer(event):
                self.dropped += 1
        return event

    def close(self) -> None:
        """Drop pending events and end every subscription.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        for subscription in list(self._subscribers):
            subscription._drop_pending()
            subscription.close()
        if self.dropped:
            logger.info("Broadcast hub closed; %d event(s) were dropped", self.dropped)

    def _detach(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
