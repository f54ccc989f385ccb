# src/daily_todo/stats/aggregator.py

from __future__ import annotations

import calendar
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from enum import StrEnum

from ..tasks.task_models import ChangeEvent, CompletionRecord, EventType, Task

logger = logging.getLogger(__name__)


class DensityLevel(StrEnum):
    """Calendar legend buckets."""

    NONE = "none"
    LOW = "low"  # below 50%
    PARTIAL = "partial"  # below 100%
    FULL = "full"


@dataclass(slots=True)
class DailyCompletionStat:
    day: date
    completed_count: int = 0
    total_count: int = 0

    @property
    def rate(self) -> float:
        """Completed share in [0, 1]; 0 for a day without todos."""
        if self.total_count <= 0:
            return 0.0
        return self.completed_count / self.total_count


def month_range(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of the month."""
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def density_level(rate: float) -> DensityLevel:
    if rate <= 0:
        return DensityLevel.NONE
    if rate < 0.5:
        return DensityLevel.LOW
    if rate < 1.0:
        return DensityLevel.PARTIAL
    return DensityLevel.FULL


def fold_by_date(records: Iterable[CompletionRecord]) -> dict[date, DailyCompletionStat]:
    """Group records by day, summing the counts of rows that share a date."""
    out: dict[date, DailyCompletionStat] = {}
    for rec in records:
        stat = out.setdefault(rec.day, DailyCompletionStat(day=rec.day))
        stat.completed_count += rec.completed_count
        stat.total_count += rec.total_count
    return out


def live_stat(tasks: Iterable[Task], day: date) -> DailyCompletionStat:
    """Today's bucket, derived from the live todo collection."""
    items = list(tasks)
    return DailyCompletionStat(
        day=day,
        completed_count=sum(1 for t in items if t.completed),
        total_count=len(items),
    )


class CompletionAggregator:
    """
    Per-day completion stats for one displayed date range (usually a month).

    load() folds a bulk fetch; apply_event() then keeps the buckets current from
    completion-record change events without re-fetching. Each record's
    contribution is remembered by id, so:
    - a re-delivered INSERT does not count twice
    - UPDATE swaps the old contribution for the new one (even across days)
    - DELETE (identity only) subtracts what that id contributed
    """

    def __init__(self, start: date, end: date) -> None:
        if end < start:
            raise ValueError("end must not be before start")
        self.start = start
        self.end = end
        self._buckets: dict[date, DailyCompletionStat] = {}
        self._contrib: dict[int, CompletionRecord] = {}

    @classmethod
    def for_month(cls, year: int, month: int) -> CompletionAggregator:
        start, end = month_range(year, month)
        return cls(start, end)

    def in_range(self, day: date) -> bool:
        return self.start <= day <= self.end

    def load(self, records: Iterable[CompletionRecord]) -> None:
        in_range = [r for r in records if self.in_range(r.day)]
        self._contrib = {r.id: r for r in in_range}
        self._buckets = fold_by_date(self._contrib.values())

    def apply_event(self, event: ChangeEvent) -> DailyCompletionStat | None:
        """Fold one completion-record event. Returns the touched in-range bucket, if any."""
        if event.event_type == EventType.DELETE:
            old = self._contrib.pop(event.record_id, None)
            if old is None:
                return None
            return self._add(old, -1)

        record = event.new
        if not isinstance(record, CompletionRecord):
            logger.warning("Ignoring %s without a completion post-image", event.event_type.value)
            return None

        touched: DailyCompletionStat | None = None
        old = self._contrib.pop(record.id, None)
        if old is not None:
            touched = self._add(old, -1)
        if self.in_range(record.day):
            self._contrib[record.id] = record
            touched = self._add(record, +1)
        return touched

    def _add(self, rec: CompletionRecord, sign: int) -> DailyCompletionStat:
        stat = self._buckets.setdefault(rec.day, DailyCompletionStat(day=rec.day))
        stat.completed_count = max(0, stat.completed_count + sign * rec.completed_count)
        stat.total_count = max(0, stat.total_count + sign * rec.total_count)
        if stat.completed_count == 0 and stat.total_count == 0:
            del self._buckets[rec.day]
        return stat

    def stat(self, day: date) -> DailyCompletionStat:
        found = self._buckets.get(day)
        if found is None:
            return DailyCompletionStat(day=day)
        return DailyCompletionStat(day=day, completed_count=found.completed_count, total_count=found.total_count)

    def rate(self, day: date) -> float:
        return self.stat(day).rate

    def stats(self) -> list[DailyCompletionStat]:
        """Non-empty buckets, oldest day first."""
        return [self.stat(d) for d in sorted(self._buckets)]
