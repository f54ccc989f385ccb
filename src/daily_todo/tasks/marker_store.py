# src/daily_todo/tasks/marker_store.py

from __future__ import annotations

import contextlib
import json
import logging
import os
import threading
from datetime import date, datetime
from pathlib import Path

from ..core.errors import StoreError
from ..core.ports import STALE_MARKER

logger = logging.getLogger(__name__)

MARKER_KEY_PREFIX = "lastReset_"

# Written by older browser clients (Date.toDateString()).
_LEGACY_FORMAT = "%a %b %d %Y"


def marker_key(user_id: str) -> str:
    return f"{MARKER_KEY_PREFIX}{user_id}"


def parse_marker(raw: str | None) -> date | None:
    """
    Parse a stored marker value; ISO calendar dates are canonical.

    A value that is present but unreadable becomes STALE_MARKER, so the day is reset
    rather than silently treated as a first run.
    """
    if raw is None:
        return None
    s = str(raw).strip()
    try:
        return date.fromisoformat(s)
    except ValueError:
        pass
    try:
        return datetime.strptime(s, _LEGACY_FORMAT).date()
    except ValueError:
        logger.warning("Unreadable rollover marker %r; treating as stale", s)
        return STALE_MARKER


class MarkerStore:
    """
    Rollover markers persisted as a small JSON object on local disk:

        {"lastReset_<user_id>": "2024-03-01", ...}

    Writes go to a temp file and are moved into place with os.replace, so a crash
    never leaves a half-written file. The file is per client, not shared with the
    task store.
    """

    def __init__(self, path: str | Path = "markers.json") -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        """Current markers; {} only when the file does not exist yet."""
        try:
            text = self._path.read_text("utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StoreError(f"cannot read rollover markers {self._path}: {exc}") from exc
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise StoreError(f"corrupt rollover markers {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError(f"corrupt rollover markers {self._path}: expected a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def read(self, user_id: str) -> date | None:
        with self._lock:
            return parse_marker(self._load().get(marker_key(user_id)))

    def write(self, user_id: str, day: date) -> None:
        with self._lock:
            data = self._load()
            data[marker_key(user_id)] = day.isoformat()

            tmp = self._path.with_suffix(".tmp")
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True), "utf-8")
                os.replace(tmp, self._path)
            except OSError as exc:
                raise StoreError(f"cannot write rollover markers {self._path}: {exc}") from exc
            with contextlib.suppress(OSError):
                os.chmod(self._path, 0o600)
        logger.debug("Rollover marker user=%s -> %s", user_id, day.isoformat())
