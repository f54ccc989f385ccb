# src/daily_todo/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Modules that log once per row change or feed delivery.
PER_EVENT_LOGGERS = (
    "daily_todo.tasks.change_feed",
    "daily_todo.tasks.task_store",
    "daily_todo.tasks.reconciler",
)

_FILE_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
_CONSOLE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class _ConsoleFilter(logging.Filter):
    """
    Keep the REPL readable while todos sync in the background:
    - per-event loggers only at WARNING+
    - other daily_todo loggers pass through
    - everything else (asyncio, py.warnings, ...) only at ERROR+
    """

    def __init__(self, quiet: tuple[str, ...] = PER_EVENT_LOGGERS) -> None:
        super().__init__()
        self._quiet = quiet

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if not name.startswith("daily_todo."):
            return record.levelno >= logging.ERROR
        if name.startswith(self._quiet):
            return record.levelno >= logging.WARNING
        return True


def setup_logging(
    *,
    log_dir: str | Path = ".local/daily_todo",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Console handler (filtered, stderr) plus a full file log under log_dir.

    Call once at startup. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "daily_todo.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    ch.addFilter(_ConsoleFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(fh)

    logging.captureWarnings(True)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    return log_file
