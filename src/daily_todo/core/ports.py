# src/daily_todo/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The reconciler, rollover scheduler and session depend on Protocols instead of
concrete implementations. This keeps the backing store swappable and makes
testing easier (tests/fakes.py provides in-memory versions).
"""

from collections.abc import AsyncIterator
from datetime import date
from typing import Protocol

from ..tasks.task_models import ChangeEvent, CompletionRecord, Task, TaskFilter, Topic


class Subscription(Protocol):
    """
    A live change feed scoped to one user and one topic.

    Delivery is at-least-once and ordered as the store emitted the events.
    Iteration raises SubscriptionLost when the feed drops this subscriber;
    the caller re-subscribes and resyncs.
    """

    @property
    def closed(self) -> bool: ...

    def __aiter__(self) -> AsyncIterator[ChangeEvent]: ...

    def close(self) -> None: ...


class TaskRepo(Protocol):
    """
    Task store contract.

    Every call is scoped by an explicit owner id supplied by the caller;
    the store itself performs no authorization.
    Failures are raised as StoreError.
    """

    def create(
            self,
            user_id: str,
            *,
            title: str,
            completed: bool = False,
            recurring: bool = True,
    ) -> Task: ...

    def update(
            self,
            user_id: str,
            task_id: int,
            *,
            completed: bool | None = None,
            recurring: bool | None = None,
            title: str | None = None,
    ) -> None: ...

    def delete(self, user_id: str, task_id: int) -> None: ...

    def query(self, flt: TaskFilter) -> list[Task]: ...

    def bulk_reset_recurring(self, user_id: str) -> int: ...

    def subscribe(self, user_id: str, topic: Topic = Topic.TODOS) -> Subscription: ...

    # Calendar API
    def record_completion(
            self,
            user_id: str,
            day: date,
            *,
            completed_count: int,
            total_count: int,
    ) -> CompletionRecord | None: ...

    def query_completions(self, user_id: str, start: date, end: date) -> list[CompletionRecord]: ...


# Marker value for a present but unreadable entry: older than any real day, so the
# next check rolls over.
STALE_MARKER = date.min


class MarkerRepo(Protocol):
    """
    Durable per-user "last rollover date" storage (local to this client).

    read() returns None only when no marker was ever written, STALE_MARKER for a
    value it cannot parse, and raises StoreError when the storage itself is unreadable.
    """

    def read(self, user_id: str) -> date | None: ...

    def write(self, user_id: str, day: date) -> None: ...
