# src/daily_todo/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import Any


class EventType(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class Topic(StrEnum):
    """Change feed topics (one per stored table)."""

    TODOS = "todos"
    COMPLETIONS = "todo_completions"


class MutationKind(StrEnum):
    CREATE = "create"
    SET_COMPLETED = "set_completed"
    SET_RECURRING = "set_recurring"
    DELETE = "delete"


def _ts(raw: Any) -> float:
    """Accept POSIX seconds or an ISO-8601 timestamp string."""
    if raw is None or raw == "":
        return 0.0
    if isinstance(raw, str):
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).timestamp()
    return float(raw)


def _day(raw: Any) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    # "2024-03-01" or "2024-03-01T00:00:00Z"
    return date.fromisoformat(str(raw).split("T", 1)[0])


@dataclass(slots=True)
class Task:
    id: int
    user_id: str
    title: str
    completed: bool = False
    recurring: bool = True
    created_at: float = 0.0
    updated_at: float = 0.0

    @property
    def provisional(self) -> bool:
        """True for a local optimistic entry the store has not assigned an id to yet."""
        return self.id < 0

    @classmethod
    def from_wire(cls, payload: dict[str, Any]) -> Task:
        return cls(
            id=int(payload["id"]),
            user_id=str(payload["user_id"]),
            title=str(payload.get("title") or ""),
            completed=bool(payload.get("completed", False)),
            recurring=bool(payload.get("recurring", True)),
            created_at=_ts(payload.get("created_at")),
            updated_at=_ts(payload.get("updated_at")),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "completed": self.completed,
            "recurring": self.recurring,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(slots=True, frozen=True)
class CompletionRecord:
    """One stored completion snapshot row. Several rows may describe the same day."""

    id: int
    user_id: str
    day: date
    completed_count: int
    total_count: int

    @classmethod
    def from_wire(cls, payload: dict[str, Any]) -> CompletionRecord:
        return cls(
            id=int(payload["id"]),
            user_id=str(payload["user_id"]),
            day=_day(payload.get("day") or payload["date"]),
            completed_count=int(payload.get("completed_count") or 0),
            total_count=int(payload.get("total_count") or 0),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "date": self.day.isoformat(),
            "completed_count": self.completed_count,
            "total_count": self.total_count,
        }


@dataclass(slots=True, frozen=True)
class RecordRef:
    """Identity-only pre-image carried by DELETE events."""

    id: int
    user_id: str | None = None


Record = Task | CompletionRecord

_RECORD_TYPES: dict[Topic, type[Task] | type[CompletionRecord]] = {
    Topic.TODOS: Task,
    Topic.COMPLETIONS: CompletionRecord,
}


@dataclass(slots=True, frozen=True)
class ChangeEvent:
    """
    One change notification.

    Wire shape: {"eventType": "INSERT"|"UPDATE"|"DELETE", "new": {...}|null, "old": {"id": ...}|null}
    - new is populated for INSERT/UPDATE
    - old (identity only) is populated for DELETE
    """

    event_type: EventType
    new: Record | None = None
    old: RecordRef | None = None

    def __post_init__(self) -> None:
        if self.event_type == EventType.DELETE:
            if self.old is None:
                raise ValueError("DELETE event requires old")
        elif self.new is None:
            raise ValueError(f"{self.event_type.value} event requires new")

    @property
    def record_id(self) -> int:
        if self.new is not None:
            return self.new.id
        assert self.old is not None
        return self.old.id

    @property
    def user_id(self) -> str | None:
        if self.new is not None:
            return self.new.user_id
        assert self.old is not None
        return self.old.user_id

    @classmethod
    def inserted(cls, record: Record) -> ChangeEvent:
        return cls(EventType.INSERT, new=record)

    @classmethod
    def updated(cls, record: Record) -> ChangeEvent:
        return cls(EventType.UPDATE, new=record)

    @classmethod
    def deleted(cls, record_id: int, user_id: str | None = None) -> ChangeEvent:
        return cls(EventType.DELETE, old=RecordRef(id=int(record_id), user_id=user_id))

    @classmethod
    def from_wire(cls, payload: dict[str, Any], topic: Topic = Topic.TODOS) -> ChangeEvent:
        event_type = EventType(str(payload["eventType"]).upper())
        record_type = _RECORD_TYPES[topic]
        raw_new = payload.get("new") or None
        raw_old = payload.get("old") or None

        new = record_type.from_wire(raw_new) if raw_new else None
        old = None
        if raw_old:
            user_id = raw_old.get("user_id")
            old = RecordRef(id=int(raw_old["id"]), user_id=str(user_id) if user_id else None)
        if event_type != EventType.DELETE:
            old = None
        else:
            new = None
        return cls(event_type, new=new, old=old)

    def to_wire(self) -> dict[str, Any]:
        old: dict[str, Any] | None = None
        if self.old is not None:
            old = {"id": self.old.id}
            if self.old.user_id is not None:
                old["user_id"] = self.old.user_id
        return {
            "eventType": self.event_type.value,
            "new": self.new.to_wire() if self.new is not None else None,
            "old": old,
        }


@dataclass(slots=True, frozen=True)
class MutationIntent:
    """A user-initiated change, before it has been sent to the store."""

    kind: MutationKind
    task_id: int | None = None
    title: str | None = None
    value: bool | None = None

    @classmethod
    def create(cls, title: str) -> MutationIntent:
        return cls(MutationKind.CREATE, title=title)

    @classmethod
    def set_completed(cls, task_id: int, completed: bool) -> MutationIntent:
        return cls(MutationKind.SET_COMPLETED, task_id=int(task_id), value=bool(completed))

    @classmethod
    def set_recurring(cls, task_id: int, recurring: bool) -> MutationIntent:
        return cls(MutationKind.SET_RECURRING, task_id=int(task_id), value=bool(recurring))

    @classmethod
    def delete(cls, task_id: int) -> MutationIntent:
        return cls(MutationKind.DELETE, task_id=int(task_id))


@dataclass(slots=True, frozen=True)
class TaskFilter:
    user_id: str
    completed: bool | None = None
    recurring: bool | None = None
    ids: tuple[int, ...] = field(default=())
