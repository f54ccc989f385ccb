# src/daily_todo/tasks/change_feed.py

from __future__ import annotations

"""
In-process change feed.

The store publishes one ChangeEvent per committed row change; every live
subscription for (user_id, topic) gets its own bounded queue.

- delivery is hopped onto the subscriber's event loop (call_soon_threadsafe),
  so publishing is safe from any thread
- a subscriber that falls behind (queue full) is dropped: its iterator raises
  SubscriptionLost and the consumer is expected to re-subscribe and resync
"""

import asyncio
import logging
import threading
from collections.abc import AsyncIterator

from ..core.errors import SubscriptionLost
from .task_models import ChangeEvent, Topic

logger = logging.getLogger(__name__)


class FeedSubscription:
    def __init__(
        self,
        feed: ChangeFeed,
        *,
        user_id: str,
        topic: Topic,
        loop: asyncio.AbstractEventLoop,
        max_queue: int,
    ) -> None:
        self.user_id = user_id
        self.topic = topic
        self._feed = feed
        self._loop = loop
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue(maxsize=max(1, int(max_queue)))
        self._closed = False
        self._lost_reason: str | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ChangeEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                if self._lost_reason is not None:
                    raise SubscriptionLost(self._lost_reason)
                return
            yield event

    def close(self) -> None:
        """Stop delivery and end iteration. Safe to call more than once."""
        self._feed._discard(self)
        self._schedule_finish(None)

    def drop(self, reason: str) -> None:
        """Feed-side disconnect: iteration raises SubscriptionLost."""
        self._feed._discard(self)
        self._schedule_finish(reason)

    def _schedule_finish(self, reason: str | None) -> None:
        if self._closed or self._loop.is_closed():
            self._closed = True
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._finish(reason)
        else:
            self._loop.call_soon_threadsafe(self._finish, reason)

    def post(self, event: ChangeEvent) -> None:
        if self._closed or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._deliver, event)

    # ---- loop-side helpers ----

    def _deliver(self, event: ChangeEvent) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "Subscriber queue overflow user=%s topic=%s; dropping subscription",
                self.user_id,
                self.topic.value,
            )
            self._feed._discard(self)
            self._finish("subscriber queue overflow")

    def _finish(self, reason: str | None) -> None:
        if self._closed:
            return
        self._closed = True
        self._lost_reason = reason
        # Anything still queued is stale once the subscriber is gone.
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)


class ChangeFeed:
    def __init__(self, *, max_queue: int = 256) -> None:
        self._max_queue = max(1, int(max_queue))
        self._subs: dict[tuple[str, Topic], list[FeedSubscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, user_id: str, topic: Topic = Topic.TODOS) -> FeedSubscription:
        """Must be called from the event loop that will consume the subscription."""
        loop = asyncio.get_running_loop()
        sub = FeedSubscription(self, user_id=user_id, topic=topic, loop=loop, max_queue=self._max_queue)
        with self._lock:
            self._subs.setdefault((user_id, topic), []).append(sub)
        logger.debug("Subscribed user=%s topic=%s", user_id, topic.value)
        return sub

    def publish(self, user_id: str, topic: Topic, event: ChangeEvent) -> None:
        with self._lock:
            subs = list(self._subs.get((user_id, topic), ()))
        for sub in subs:
            sub.post(event)

    def subscriber_count(self, user_id: str, topic: Topic = Topic.TODOS) -> int:
        with self._lock:
            return len(self._subs.get((user_id, topic), ()))

    def disconnect_all(self, reason: str = "feed disconnected") -> None:
        """Drop every subscriber (connection loss)."""
        with self._lock:
            subs = [s for group in self._subs.values() for s in group]
        for sub in subs:
            sub.drop(reason)

    def _discard(self, sub: FeedSubscription) -> None:
        with self._lock:
            group = self._subs.get((sub.user_id, sub.topic))
            if group and sub in group:
                group.remove(sub)
                if not group:
                    del self._subs[(sub.user_id, sub.topic)]
