# src/daily_todo/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Local state (SQLite db, rollover markers, logs) lives under a gitignored data dir.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

ENV_PREFIX = "DAILY_TODO"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def resolve_timezone(name: str | None) -> tzinfo | None:
    """
    "local" / "" -> None (the machine's local zone), "UTC" or an IANA name -> tzinfo.

    Raises ValueError for unknown zone names.
    """
    s = (name or "").strip()
    if not s or s.lower() in {"local", "system"}:
        return None
    try:
        return ZoneInfo("UTC" if s.lower() in {"utc", "z", "gmt"} else s)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {s!r}") from exc


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Session ----
    user_id: str
    timezone: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path
    markers_path: Path

    # ---- Reconciliation / rollover tuning ----
    rollover_interval_seconds: float
    event_queue_size: int
    resubscribe_delay_seconds: float

    @property
    def tz(self) -> tzinfo | None:
        return resolve_timezone(self.timezone)

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "daily-todo") or "daily-todo"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        # Authentication is external; the console front-end runs as one local user.
        user_id = (_env(_k("USER_ID"), "") or os.getenv("USER") or "local").strip()
        timezone = _env(_k("TIMEZONE"), "local")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/daily_todo"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "todos.sqlite3")
        markers_path = _env_path(_k("MARKERS_PATH"), data_dir / "rollover_markers.json")

        rollover_interval_seconds = _env_float(_k("ROLLOVER_INTERVAL_SECONDS"), 60.0)
        event_queue_size = _env_int(_k("EVENT_QUEUE_SIZE"), 256)
        resubscribe_delay_seconds = _env_float(_k("RESUBSCRIBE_DELAY_SECONDS"), 2.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            user_id=user_id,
            timezone=timezone,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            markers_path=markers_path,
            rollover_interval_seconds=rollover_interval_seconds,
            event_queue_size=event_queue_size,
            resubscribe_delay_seconds=resubscribe_delay_seconds,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
