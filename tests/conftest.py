# tests/conftest.py

from __future__ import annotations

from datetime import date
from pathlib import Path
from types import SimpleNamespace

import pytest

from daily_todo.tasks.marker_store import MarkerStore
from daily_todo.tasks.task_store import TaskStore

from .fakes import USER, FakeClock, FakeMarkerStore, FakeTaskStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and TodoSession.from_settings.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="daily-todo-test",
        log_level="DEBUG",
        user_id=USER,
        timezone="local",
        tz=None,
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "todos.sqlite3",
        markers_path=tmp_path / "rollover_markers.json",
        rollover_interval_seconds=0.02,
        event_queue_size=64,
        resubscribe_delay_seconds=0.01,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> TaskStore:
    """Real SQLite store: its correctness is part of what we test."""
    return TaskStore(settings.tasks_db_path)


@pytest.fixture()
def markers(settings: SimpleNamespace) -> MarkerStore:
    return MarkerStore(settings.markers_path)


@pytest.fixture()
def fake_store() -> FakeTaskStore:
    return FakeTaskStore()


@pytest.fixture()
def fake_markers() -> FakeMarkerStore:
    return FakeMarkerStore()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(date(2024, 3, 1))

