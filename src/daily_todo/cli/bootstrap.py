# src/daily_todo/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the concrete SQLite store and marker file into a TodoSession.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.session import TodoSession
from ..tasks.marker_store import MarkerStore
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.markers_path.parent.mkdir(parents=True, exist_ok=True)


def create_stores(*, settings=None) -> tuple[TaskStore, MarkerStore]:
    """
    Build the task store and marker store from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)
    return TaskStore(settings.tasks_db_path), MarkerStore(settings.markers_path)


def create_session(
    *,
    settings=None,
    store: TaskStore | None = None,
    markers: MarkerStore | None = None,
    user_id: str | None = None,
) -> TodoSession:
    if settings is None:
        settings = get_settings()
    if store is None or markers is None:
        default_store, default_markers = create_stores(settings=settings)
        store = store or default_store
        markers = markers or default_markers

    session = TodoSession.from_settings(store, markers, settings, user_id=user_id)
    logger.debug("Session wired user=%s db=%s", session.user_id, settings.tasks_db_path)
    return session
