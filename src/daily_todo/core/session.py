# src/daily_todo/core/session.py

"""
One user's session.

Everything that touches the in-memory state runs as a "reaction" on a single
bounded asyncio.Queue, drained by one worker task:
- local mutations (add / toggle / delete), awaited by the caller
- remote change events forwarded by the subscription pumps
- periodic rollover checks

Reactions never interleave, so the collection needs no locks. Rendering may read
session.tasks at any time.

Teardown (close) closes the subscriptions, cancels the rollover timer, the pumps
and the worker. It is idempotent. A store call that is already running is never
interrupted (reactions are synchronous); callers still waiting in the queue get
SessionClosed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from functools import partial
from typing import Any, TypeVar

from ..stats.aggregator import CompletionAggregator, DailyCompletionStat, live_stat
from ..tasks.reconciler import ChangeReconciler
from ..tasks.rollover import Clock, RolloverScheduler, local_today, run_rollover_timer
from ..tasks.task_models import ChangeEvent, MutationIntent, Task, Topic
from .errors import SessionClosed, StoreError, SubscriptionLost
from .ports import MarkerRepo, Subscription, TaskRepo

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class _Reaction:
    fn: Callable[[], Any]
    label: str
    future: asyncio.Future[Any] | None = field(default=None)


class TodoSession:
    def __init__(
        self,
        store: TaskRepo,
        markers: MarkerRepo,
        user_id: str,
        *,
        today: Clock | None = None,
        rollover_interval_seconds: float = 60.0,
        event_queue_size: int = 256,
        resubscribe_delay_seconds: float = 2.0,
    ) -> None:
        if not user_id:
            raise ValueError("user_id is required")
        self.user_id = user_id
        self._store = store
        self._today: Clock = today or local_today

        self.reconciler = ChangeReconciler(store, user_id)
        self.rollover = RolloverScheduler(store, markers, user_id, today=self._today)
        self.aggregator: CompletionAggregator | None = None

        self._rollover_interval = float(rollover_interval_seconds)
        self._queue_size = max(1, int(event_queue_size))
        self._resubscribe_delay = max(0.0, float(resubscribe_delay_seconds))

        self._queue: asyncio.Queue[_Reaction] | None = None
        self._subs: dict[Topic, Subscription] = {}
        self._worker: asyncio.Task[None] | None = None
        self._pumps: list[asyncio.Task[None]] = []
        self._timer: asyncio.Task[None] | None = None
        self._started = False
        self._closed = False

    @classmethod
    def from_settings(cls, store: TaskRepo, markers: MarkerRepo, settings, *, user_id: str | None = None) -> TodoSession:
        tz = settings.tz
        return cls(
            store,
            markers,
            user_id or settings.user_id,
            today=lambda: local_today(tz),
            rollover_interval_seconds=settings.rollover_interval_seconds,
            event_queue_size=settings.event_queue_size,
            resubscribe_delay_seconds=settings.resubscribe_delay_seconds,
        )

    # ---- lifecycle ----

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Subscribe, load the initial snapshot, run the first rollover check, start the timer."""
        if self._closed:
            raise SessionClosed("session already closed")
        if self._started:
            return
        self._started = True
        try:
            await self._open()
        except BaseException:
            logger.warning("Session start failed user=%s; tearing down", self.user_id)
            await self.close()
            raise
        logger.info("Session started user=%s todos=%d", self.user_id, len(self.reconciler))

    async def _open(self) -> None:
        self._queue = asyncio.Queue(maxsize=self._queue_size)
        self._worker = asyncio.create_task(self._drain(), name=f"todo-session-{self.user_id}")

        # Subscribe before the snapshot so no change can fall into the gap.
        for topic in (Topic.TODOS, Topic.COMPLETIONS):
            sub = self._store.subscribe(self.user_id, topic)
            self._subs[topic] = sub
            self._pumps.append(asyncio.create_task(self._pump(topic, sub), name=f"todo-pump-{topic.value}"))

        await self._submit(self._initial_sync, "initial sync")

        self._timer = asyncio.create_task(
            run_rollover_timer(
                partial(self._submit, self.rollover.check, "rollover check"),
                interval_seconds=self._rollover_interval,
            ),
            name="todo-rollover-timer",
        )

    def _initial_sync(self) -> None:
        self.reconciler.reload()
        self.rollover.start()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        for sub in list(self._subs.values()):
            sub.close()
        self._subs.clear()

        tasks = [t for t in (self._timer, *self._pumps, self._worker) if t is not None]
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timer = None
        self._pumps = []
        self._worker = None

        if self._queue is not None:
            while not self._queue.empty():
                self._fail(self._queue.get_nowait())
        logger.info("Session closed user=%s", self.user_id)

    async def __aenter__(self) -> TodoSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ---- reaction queue ----

    async def _submit(self, fn: Callable[[], T], label: str) -> T:
        if self._closed or self._queue is None:
            raise SessionClosed(f"cannot run {label}: session is not running")
        fut: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        await self._queue.put(_Reaction(fn=fn, label=label, future=fut))
        if self._closed and not fut.done():
            fut.set_exception(SessionClosed(f"session closed before {label}"))
        return await fut

    async def _post(self, fn: Callable[[], Any], label: str) -> None:
        """Enqueue a reaction nobody waits for (remote events, resyncs)."""
        if self._closed or self._queue is None:
            return
        await self._queue.put(_Reaction(fn=fn, label=label))

    async def _drain(self) -> None:
        assert self._queue is not None
        while True:
            reaction = await self._queue.get()
            fut = reaction.future
            try:
                result = reaction.fn()
            except Exception as exc:
                if fut is None:
                    logger.exception("Reaction failed: %s", reaction.label)
                elif not fut.done():
                    fut.set_exception(exc)
            else:
                if fut is not None and not fut.done():
                    fut.set_result(result)
            finally:
                self._queue.task_done()

    @staticmethod
    def _fail(reaction: _Reaction) -> None:
        if reaction.future is not None and not reaction.future.done():
            reaction.future.set_exception(SessionClosed(f"session closed before {reaction.label}"))

    async def flush(self) -> None:
        """Wait until every reaction queued so far has run."""
        await self._submit(lambda: None, "flush")

    # ---- change feed ----

    async def _pump(self, topic: Topic, sub: Subscription) -> None:
        while not self._closed:
            try:
                async for event in sub:
                    await self._post(partial(self._on_event, topic, event), f"{topic.value} {event.event_type.value}")
                return
            except SubscriptionLost as exc:
                logger.warning("Subscription lost user=%s topic=%s: %s", self.user_id, topic.value, exc)

            sub = await self._resubscribe(topic)
            # Changes made while disconnected were not delivered: take a fresh snapshot.
            await self._post(partial(self._resync_topic, topic), f"{topic.value} resync")

    async def _resubscribe(self, topic: Topic) -> Subscription:
        while True:
            await asyncio.sleep(self._resubscribe_delay)
            try:
                sub = self._store.subscribe(self.user_id, topic)
            except StoreError as exc:
                logger.warning("Re-subscribe failed user=%s topic=%s: %s", self.user_id, topic.value, exc)
                continue
            self._subs[topic] = sub
            logger.info("Re-subscribed user=%s topic=%s", self.user_id, topic.value)
            return sub

    def _on_event(self, topic: Topic, event: ChangeEvent) -> None:
        if topic == Topic.TODOS:
            self.reconciler.apply_remote(event)
        elif self.aggregator is not None:
            self.aggregator.apply_event(event)

    def _resync_topic(self, topic: Topic) -> None:
        if topic == Topic.TODOS:
            self.reconciler.reload()
        elif self.aggregator is not None:
            self._load_aggregator(self.aggregator.start, self.aggregator.end)

    # ---- user operations ----

    @property
    def tasks(self) -> list[Task]:
        return self.reconciler.tasks

    def today(self) -> date:
        return self._today()

    async def apply(self, intent: MutationIntent) -> Task:
        return await self._submit(partial(self.reconciler.apply_local, intent), intent.kind.value)

    async def add_task(self, title: str) -> Task:
        return await self.apply(MutationIntent.create(title))

    async def set_completed(self, task_id: int, completed: bool) -> Task:
        return await self.apply(MutationIntent.set_completed(task_id, completed))

    async def toggle_completed(self, task_id: int) -> Task:
        return await self._submit(partial(self.reconciler.toggle_completed, task_id), "toggle completed")

    async def toggle_recurring(self, task_id: int) -> Task:
        return await self._submit(partial(self.reconciler.toggle_recurring, task_id), "toggle recurring")

    async def delete_task(self, task_id: int) -> Task:
        return await self.apply(MutationIntent.delete(task_id))

    async def resync(self, snapshot: list[Task] | None = None) -> int:
        """Replace the collection with snapshot (or a fresh store query). Returns the todo count."""
        if snapshot is None:
            return await self._submit(self.reconciler.reload, "resync")

        def _apply() -> int:
            self.reconciler.resync(snapshot)
            return len(self.reconciler)

        return await self._submit(_apply, "resync")

    async def check_rollover(self) -> bool:
        return await self._submit(self.rollover.check, "rollover check")

    # ---- calendar ----

    async def show_month(self, year: int, month: int) -> CompletionAggregator:
        """Bulk-load the month; completion events then update it incrementally."""
        agg = CompletionAggregator.for_month(year, month)
        return await self._submit(partial(self._load_aggregator, agg.start, agg.end), "calendar load")

    def _load_aggregator(self, start: date, end: date) -> CompletionAggregator:
        agg = CompletionAggregator(start, end)
        agg.load(self._store.query_completions(self.user_id, start, end))
        self.aggregator = agg
        return agg

    def calendar_stats(self) -> list[DailyCompletionStat]:
        """
        Stats of the displayed month. Today has no stored record until the next
        rollover, so its bucket comes from the live collection.
        """
        if self.aggregator is None:
            return []
        today = self.today()
        stats = {s.day: s for s in self.aggregator.stats()}
        if self.aggregator.in_range(today) and today not in stats:
            stats[today] = live_stat(self.reconciler.tasks, today)
        return [stats[d] for d in sorted(stats)]
