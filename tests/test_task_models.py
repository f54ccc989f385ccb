# tests/test_task_models.py

from __future__ import annotations

from datetime import date

import pytest

from daily_todo.tasks.task_models import (
    ChangeEvent,
    CompletionRecord,
    EventType,
    MutationIntent,
    MutationKind,
    RecordRef,
    Task,
    Topic,
)


def test_task_from_wire_accepts_iso_timestamps() -> None:
    task = Task.from_wire(
        {
            "id": "7",
            "user_id": "u1",
            "title": "Buy milk",
            "completed": 1,
            "recurring": False,
            "created_at": "2024-03-01T08:00:00Z",
            "updated_at": 1709280000.5,
        }
    )

    assert task.id == 7
    assert task.completed is True
    assert task.recurring is False
    assert task.created_at == 1709280000.0
    assert task.updated_at == 1709280000.5
    assert not task.provisional


def test_negative_id_is_provisional() -> None:
    assert Task(id=-1, user_id="u1", title="x").provisional


def test_completion_record_reads_date_or_day() -> None:
    a = CompletionRecord.from_wire({"id": 1, "user_id": "u1", "date": "2024-03-01T00:00:00Z", "completed_count": 2})
    b = CompletionRecord.from_wire({"id": 2, "user_id": "u1", "day": "2024-03-02", "total_count": 3})

    assert a.day == date(2024, 3, 1)
    assert (a.completed_count, a.total_count) == (2, 0)
    assert b.day == date(2024, 3, 2)
    assert b.to_wire()["date"] == "2024-03-02"


def test_delete_event_requires_old_and_others_require_new() -> None:
    with pytest.raises(ValueError):
        ChangeEvent(EventType.DELETE)
    with pytest.raises(ValueError):
        ChangeEvent(EventType.UPDATE, old=RecordRef(id=1))


def test_event_from_wire_todos_and_completions() -> None:
    upd = ChangeEvent.from_wire(
        {"eventType": "update", "new": {"id": 3, "user_id": "u1", "title": "t", "completed": True}, "old": {"id": 3}},
        Topic.TODOS,
    )
    assert upd.event_type == EventType.UPDATE
    assert isinstance(upd.new, Task)
    assert upd.old is None
    assert upd.record_id == 3
    assert upd.user_id == "u1"

    dele = ChangeEvent.from_wire({"eventType": "DELETE", "new": {}, "old": {"id": 9}}, Topic.TODOS)
    assert dele.new is None
    assert dele.record_id == 9
    assert dele.user_id is None

    ins = ChangeEvent.from_wire(
        {"eventType": "INSERT", "new": {"id": 1, "user_id": "u1", "date": "2024-03-01"}},
        Topic.COMPLETIONS,
    )
    assert isinstance(ins.new, CompletionRecord)


def test_event_to_wire_shape() -> None:
    ev = ChangeEvent.deleted(5, "u1")
    assert ev.to_wire() == {"eventType": "DELETE", "new": None, "old": {"id": 5, "user_id": "u1"}}

    task = Task(id=1, user_id="u1", title="a")
    assert ChangeEvent.inserted(task).to_wire()["new"]["title"] == "a"


def test_mutation_intent_constructors() -> None:
    assert MutationIntent.create("a").kind == MutationKind.CREATE
    intent = MutationIntent.set_completed("4", 1)  # type: ignore[arg-type]
    assert intent.task_id == 4
    assert intent.value is True
    assert MutationIntent.delete(2).task_id == 2
