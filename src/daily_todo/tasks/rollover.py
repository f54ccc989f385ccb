# src/daily_todo/tasks/rollover.py

from __future__ import annotations

"""
Daily rollover.

Once per calendar day per user, clear the completion flag on every recurring
todo. There is no server-side cron: any active session that notices the date
has changed performs the reset.

- the last rollover date is kept in a durable local marker (MarkerRepo)
- a missing marker means "first run": today is recorded, nothing is reset
- the marker only advances after the reset succeeded, so a failed reset is
  retried on the next check (at-least-once per missed day)
- several sessions may reset the same day concurrently; the bulk reset is
  idempotent, so the duplicate is harmless

Before the reset, the closing day's completion numbers are stored as a
completion record for the calendar view. A failed snapshot is logged and the reset
still runs; a marker that cannot be parsed gets the reset but no snapshot.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import date, datetime, tzinfo
from enum import StrEnum

from ..core.ports import STALE_MARKER, MarkerRepo, TaskRepo
from .task_models import TaskFilter

logger = logging.getLogger(__name__)

Clock = Callable[[], date]


class RolloverState(StrEnum):
    UNINITIALIZED = "uninitialized"
    IDLE = "idle"
    ROLLING_OVER = "rolling_over"


def local_today(tz: tzinfo | None = None) -> date:
    """Today's calendar date in tz (None: the machine's local zone)."""
    if tz is None:
        return date.today()
    return datetime.now(tz).date()


class RolloverScheduler:
    def __init__(
        self,
        store: TaskRepo,
        markers: MarkerRepo,
        user_id: str,
        *,
        today: Clock | None = None,
    ) -> None:
        if not user_id:
            raise ValueError("user_id is required")
        self._store = store
        self._markers = markers
        self._user_id = user_id
        self._today: Clock = today or local_today
        self.state = RolloverState.UNINITIALIZED
        self.last_reset_count: int | None = None

    @property
    def user_id(self) -> str:
        return self._user_id

    def start(self) -> bool:
        """The user became known: go IDLE and check the boundary right away."""
        if self.state == RolloverState.UNINITIALIZED:
            self.state = RolloverState.IDLE
        return self.check()

    def check(self) -> bool:
        """
        Compare the stored marker with today's date and roll over if needed.

        Returns True if a reset ran (and the marker advanced) during this call.
        Never raises for store/marker failures: they are logged and retried later.
        """
        if self.state == RolloverState.UNINITIALIZED:
            raise RuntimeError("RolloverScheduler.check() before start()")

        today = self._today()
        try:
            marker = self._markers.read(self._user_id)
        except Exception:
            logger.exception("Reading rollover marker failed user=%s", self._user_id)
            return False

        if marker is None:
            # First run for this user on this client: treat today as already rolled over.
            try:
                self._markers.write(self._user_id, today)
            except Exception:
                logger.exception("Writing initial rollover marker failed user=%s", self._user_id)
            return False

        if today == marker:
            return False

        if today < marker:
            # Clock moved backwards; the marker never decreases.
            logger.warning(
                "Rollover marker %s is ahead of today %s for user=%s; skipping",
                marker,
                today,
                self._user_id,
            )
            return False

        return self._roll_over(closing_day=marker, today=today)

    def _roll_over(self, *, closing_day: date, today: date) -> bool:
        self.state = RolloverState.ROLLING_OVER
        logger.info("Day boundary %s -> %s for user=%s; resetting recurring todos", closing_day, today, self._user_id)

        if closing_day != STALE_MARKER:
            self._record_closing_day(closing_day)

        try:
            count = self._store.bulk_reset_recurring(self._user_id)
            self._markers.write(self._user_id, today)
        except Exception:
            # Stay in ROLLING_OVER; the marker was not advanced so the next check retries.
            logger.exception("Rollover failed for user=%s; will retry", self._user_id)
            return False

        self.last_reset_count = count
        self.state = RolloverState.IDLE
        logger.info("Rollover done user=%s reset=%d", self._user_id, count)
        return True

    def _record_closing_day(self, day: date) -> None:
        """Calendar snapshot of the closing day. Best effort: never blocks the reset."""
        try:
            todos = self._store.query(TaskFilter(user_id=self._user_id))
            self._store.record_completion(
                self._user_id,
                day,
                completed_count=sum(1 for t in todos if t.completed),
                total_count=len(todos),
            )
        except Exception:
            logger.exception("Completion snapshot for %s failed user=%s; resetting anyway", day, self._user_id)


async def run_rollover_timer(
        tick: Callable[[], Awaitable[object]],
        *,
        interval_seconds: float = 60.0,
) -> None:
    """
    Periodic boundary check.

    Polling, not an exact midnight trigger: correctness only needs the date change
    to be noticed eventually. The first tick happens after one interval (the
    session already checks on start).

    To stop the timer, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))

    while True:
        await asyncio.sleep(sleep_s)
        try:
            await tick()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("rollover tick failed")
