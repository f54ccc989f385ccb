# src/daily_todo/tasks/reconciler.py

from __future__ import annotations

"""
Change reconciler.

Owns the in-memory todo collection of one session and merges two inputs into it:
- local mutations (optimistic apply, then store write, rollback on failure)
- remote change events (server is authoritative, whole-record replacement)

Merge rules for remote events:
- INSERT: replace if the id is already present (e.g. our own echo), else append
- UPDATE: replace; an unknown id is inserted (self-healing after a missed INSERT)
- DELETE: remove; an unknown id is a no-op (duplicate delivery is harmless)

Whichever write for an id is applied last wins, regardless of the path it came from.
Collection order is creation order: inserts append, updates keep their slot.

Not thread-safe: callers serialize access (see core/session.py).
"""

import logging
import time
from collections.abc import Iterable
from dataclasses import replace
from typing import NoReturn

from ..core.errors import StoreError, TodoError, ValidationError
from ..core.ports import TaskRepo
from .task_models import ChangeEvent, EventType, MutationIntent, MutationKind, Task, TaskFilter

logger = logging.getLogger(__name__)


class ChangeReconciler:
    def __init__(self, store: TaskRepo, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id is required")
        self._store = store
        self._user_id = user_id
        self._items: dict[int, Task] = {}
        self._next_local_id = -1

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def tasks(self) -> list[Task]:
        """Current collection in creation order (a copy; safe to hand to rendering)."""
        return list(self._items.values())

    def get(self, task_id: int) -> Task | None:
        return self._items.get(int(task_id))

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._items

    # ---- local mutations ----

    def apply_local(self, intent: MutationIntent) -> Task:
        """
        Apply a user mutation optimistically and write it to the store.

        Returns the confirmed record (for DELETE: the record that was removed).
        Raises ValidationError before touching the store, or StoreError after
        rolling the collection back to its pre-mutation state.
        """
        if intent.kind == MutationKind.CREATE:
            return self._create(intent.title or "")

        if intent.task_id is None:
            raise ValidationError(f"{intent.kind.value} requires a task id")

        if intent.kind == MutationKind.SET_COMPLETED:
            return self._set_flag(intent.task_id, completed=bool(intent.value))
        if intent.kind == MutationKind.SET_RECURRING:
            return self._set_flag(intent.task_id, recurring=bool(intent.value))
        if intent.kind == MutationKind.DELETE:
            return self._delete(intent.task_id)

        raise ValidationError(f"Unsupported mutation: {intent.kind}")

    def toggle_completed(self, task_id: int) -> Task:
        current = self._require(task_id)
        return self.apply_local(MutationIntent.set_completed(current.id, not current.completed))

    def toggle_recurring(self, task_id: int) -> Task:
        current = self._require(task_id)
        return self.apply_local(MutationIntent.set_recurring(current.id, not current.recurring))

    def _require(self, task_id: int) -> Task:
        task = self._items.get(int(task_id))
        if task is None:
            raise ValidationError(f"Unknown todo id {task_id}")
        return task

    def _create(self, title: str) -> Task:
        clean = title.strip()
        if not clean:
            raise ValidationError("Todo title must not be empty")

        now = time.time()
        provisional = Task(
            id=self._next_local_id,
            user_id=self._user_id,
            title=clean,
            completed=False,
            recurring=True,
            created_at=now,
            updated_at=now,
        )
        self._next_local_id -= 1

        before = dict(self._items)
        self._items[provisional.id] = provisional
        try:
            confirmed = self._store.create(self._user_id, title=clean, completed=False, recurring=True)
        except Exception as exc:
            self._rollback(before, "create", exc)

        self._confirm_created(provisional.id, confirmed)
        logger.debug("Local create confirmed id=%s", confirmed.id)
        return confirmed

    def _confirm_created(self, provisional_id: int, confirmed: Task) -> None:
        if confirmed.id in self._items:
            # The echo got here first; the provisional slot is redundant.
            self._items.pop(provisional_id, None)
            self._items[confirmed.id] = confirmed
            return
        # Swap the key in place so the entry keeps its position.
        self._items = {
            (confirmed.id if k == provisional_id else k): (confirmed if k == provisional_id else v)
            for k, v in self._items.items()
        }

    def _set_flag(self, task_id: int, **fields: bool) -> Task:
        current = self._require(task_id)
        if current.provisional:
            raise ValidationError(f"Todo {task_id} is not saved yet")

        before = dict(self._items)
        optimistic = replace(current, updated_at=time.time(), **fields)
        self._items[current.id] = optimistic
        try:
            self._store.update(self._user_id, current.id, **fields)
        except Exception as exc:
            self._rollback(before, "update", exc)
        return self._items.get(current.id, optimistic)

    def _delete(self, task_id: int) -> Task:
        current = self._require(task_id)

        before = dict(self._items)
        del self._items[current.id]
        if current.provisional:
            return current
        try:
            self._store.delete(self._user_id, current.id)
        except Exception as exc:
            self._rollback(before, "delete", exc)
        return current

    def _rollback(self, before: dict[int, Task], op: str, exc: Exception) -> NoReturn:
        self._items = before
        logger.warning("Local %s failed for user=%s; rolled back: %s", op, self._user_id, exc)
        if isinstance(exc, TodoError):
            raise exc
        raise StoreError(f"{op} failed: {exc}") from exc

    # ---- remote events ----

    def apply_remote(self, event: ChangeEvent) -> Task | None:
        """
        Merge one change event. Returns the resulting record, or None when the
        event removed a record or was ignored.
        """
        owner = event.user_id
        if owner is not None and owner != self._user_id:
            logger.warning(
                "Ignoring %s for foreign user=%s (session user=%s)",
                event.event_type.value,
                owner,
                self._user_id,
            )
            return None

        if event.event_type == EventType.DELETE:
            removed = self._items.pop(event.record_id, None)
            if removed is None:
                logger.debug("DELETE for unknown id=%s ignored", event.record_id)
            return None

        record = event.new
        if not isinstance(record, Task):
            logger.warning("Ignoring %s without a todo post-image", event.event_type.value)
            return None

        if record.id not in self._items and event.event_type == EventType.UPDATE:
            logger.debug("UPDATE for unknown id=%s; inserting", record.id)

        # Existing keys keep their slot; new keys append.
        self._items[record.id] = record
        return record

    # ---- snapshots ----

    def resync(self, snapshot: Iterable[Task]) -> None:
        """Replace the whole collection with an authoritative snapshot."""
        fresh: dict[int, Task] = {}
        for task in snapshot:
            if task.user_id != self._user_id:
                continue
            fresh[task.id] = task
        self._items = fresh
        logger.debug("Resynced user=%s todos=%d", self._user_id, len(fresh))

    def reload(self) -> int:
        """Fetch a fresh snapshot from the store and resync. Returns the todo count."""
        self.resync(self._store.query(TaskFilter(user_id=self._user_id)))
        return len(self._items)
