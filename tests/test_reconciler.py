# tests/test_reconciler.py

from __future__ import annotations

from dataclasses import replace

import pytest

from daily_todo.core.errors import StoreError, ValidationError
from daily_todo.tasks.reconciler import ChangeReconciler
from daily_todo.tasks.task_models import ChangeEvent, MutationIntent, Task

from .fakes import USER, FakeTaskStore


def _task(task_id: int, title: str = "t", *, completed: bool = False, recurring: bool = True, user: str = USER) -> Task:
    return Task(id=task_id, user_id=user, title=title, completed=completed, recurring=recurring)


def test_create_confirms_provisional_entry(fake_store: FakeTaskStore) -> None:
    rec = ChangeReconciler(fake_store, USER)

    task = rec.apply_local(MutationIntent.create("  Buy milk "))

    assert task.id > 0
    assert task.title == "Buy milk"
    assert [t.id for t in rec.tasks] == [task.id]
    assert not any(t.provisional for t in rec.tasks)
    assert fake_store.calls == ["create"]


def test_empty_title_is_rejected_without_store_call(fake_store: FakeTaskStore) -> None:
    rec = ChangeReconciler(fake_store, USER)

    with pytest.raises(ValidationError):
        rec.apply_local(MutationIntent.create("   "))

    assert fake_store.calls == []
    assert rec.tasks == []


def test_create_failure_rolls_back(fake_store: FakeTaskStore) -> None:
    rec = ChangeReconciler(fake_store, USER)
    rec.resync([_task(1, "a")])
    fake_store.failures["create"] = RuntimeError("network down")

    with pytest.raises(StoreError):
        rec.apply_local(MutationIntent.create("b"))

    assert [t.id for t in rec.tasks] == [1]


def test_update_failure_restores_previous_values(fake_store: FakeTaskStore) -> None:
    seeded = fake_store.seed(USER, "a")
    rec = ChangeReconciler(fake_store, USER)
    rec.reload()
    fake_store.failures["update"] = StoreError("write rejected")

    with pytest.raises(StoreError, match="write rejected"):
        rec.apply_local(MutationIntent.set_completed(seeded.id, True))

    assert rec.get(seeded.id) == seeded


def test_delete_failure_restores_entry_at_its_position(fake_store: FakeTaskStore) -> None:
    a = fake_store.seed(USER, "a")
    b = fake_store.seed(USER, "b")
    c = fake_store.seed(USER, "c")
    rec = ChangeReconciler(fake_store, USER)
    rec.reload()
    fake_store.failures["delete"] = StoreError("offline")

    with pytest.raises(StoreError):
        rec.apply_local(MutationIntent.delete(b.id))

    assert [t.id for t in rec.tasks] == [a.id, b.id, c.id]


def test_mutating_unknown_id_is_a_validation_error(fake_store: FakeTaskStore) -> None:
    rec = ChangeReconciler(fake_store, USER)

    with pytest.raises(ValidationError):
        rec.apply_local(MutationIntent.set_completed(42, True))
    with pytest.raises(ValidationError):
        rec.toggle_recurring(42)
    assert fake_store.calls == []


def test_toggles_flip_flags(fake_store: FakeTaskStore) -> None:
    seeded = fake_store.seed(USER, "a")
    rec = ChangeReconciler(fake_store, USER)
    rec.reload()

    assert rec.toggle_completed(seeded.id).completed is True
    assert rec.toggle_recurring(seeded.id).recurring is False
    assert fake_store.rows[seeded.id].completed is True
    assert fake_store.rows[seeded.id].recurring is False


def test_remote_insert_replaces_existing_id() -> None:
    rec = ChangeReconciler(FakeTaskStore(), USER)
    rec.resync([_task(1, "old")])

    rec.apply_remote(ChangeEvent.inserted(_task(1, "new")))

    assert len(rec) == 1
    assert rec.get(1).title == "new"


def test_remote_delete_of_unknown_id_is_noop() -> None:
    rec = ChangeReconciler(FakeTaskStore(), USER)
    rec.resync([_task(1)])

    assert rec.apply_remote(ChangeEvent.deleted(99, USER)) is None
    rec.apply_remote(ChangeEvent.deleted(1, USER))
    rec.apply_remote(ChangeEvent.deleted(1, USER))

    assert rec.tasks == []


def test_remote_update_of_unknown_id_inserts() -> None:
    rec = ChangeReconciler(FakeTaskStore(), USER)

    rec.apply_remote(ChangeEvent.updated(_task(5, "late", completed=True)))

    assert 5 in rec
    assert rec.get(5).completed is True


def test_remote_update_keeps_creation_order() -> None:
    rec = ChangeReconciler(FakeTaskStore(), USER)
    rec.resync([_task(1, "a"), _task(2, "b"), _task(3, "c")])

    rec.apply_remote(ChangeEvent.updated(_task(1, "a", completed=True)))
    rec.apply_remote(ChangeEvent.inserted(_task(4, "d")))

    assert [t.id for t in rec.tasks] == [1, 2, 3, 4]


def test_foreign_user_events_are_ignored() -> None:
    rec = ChangeReconciler(FakeTaskStore(), USER)

    assert rec.apply_remote(ChangeEvent.inserted(_task(1, user="someone-else"))) is None
    rec.apply_remote(ChangeEvent.deleted(1, "someone-else"))

    assert len(rec) == 0


def test_buy_milk_echoes_converge(fake_store: FakeTaskStore) -> None:
    rec = ChangeReconciler(fake_store, USER)

    created = rec.apply_local(MutationIntent.create("Buy milk"))
    rec.apply_local(MutationIntent.set_completed(created.id, True))
    assert rec.get(created.id).completed is True

    # Echo of the INSERT arrives late: last applied wins, briefly.
    rec.apply_remote(ChangeEvent.inserted(replace(created)))
    assert rec.get(created.id).completed is False

    # Then the UPDATE echo restores the confirmed state.
    rec.apply_remote(ChangeEvent.updated(replace(fake_store.rows[created.id])))
    assert rec.get(created.id).completed is True
    assert len(rec) == 1


def test_echo_before_confirmation_does_not_duplicate(fake_store: FakeTaskStore) -> None:
    rec = ChangeReconciler(fake_store, USER)
    created = rec.apply_local(MutationIntent.create("a"))

    rec.apply_remote(ChangeEvent.inserted(replace(created)))

    assert [t.id for t in rec.tasks] == [created.id]


def test_resync_replaces_collection_and_drops_foreign_rows() -> None:
    rec = ChangeReconciler(FakeTaskStore(), USER)
    rec.resync([_task(1), _task(2)])

    rec.resync([_task(3), _task(4, user="other")])

    assert [t.id for t in rec.tasks] == [3]


def test_reload_queries_owner_rows_only(fake_store: FakeTaskStore) -> None:
    fake_store.seed(USER, "mine")
    fake_store.seed("other", "theirs")
    rec = ChangeReconciler(fake_store, USER)

    assert rec.reload() == 1
    assert rec.tasks[0].title == "mine"
