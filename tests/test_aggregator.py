# tests/test_aggregator.py

from __future__ import annotations

from datetime import date

import pytest

from daily_todo.stats.aggregator import (
    CompletionAggregator,
    DailyCompletionStat,
    DensityLevel,
    density_level,
    fold_by_date,
    live_stat,
    month_range,
)
from daily_todo.tasks.task_models import ChangeEvent, CompletionRecord, Task


def _rec(rec_id: int, day: date, done: int, total: int) -> CompletionRecord:
    return CompletionRecord(id=rec_id, user_id="u1", day=day, completed_count=done, total_count=total)


def test_rate_is_zero_without_todos() -> None:
    assert DailyCompletionStat(day=date(2024, 3, 1)).rate == 0.0
    assert DailyCompletionStat(day=date(2024, 3, 1), completed_count=1, total_count=4).rate == 0.25


def test_month_range_handles_leap_february() -> None:
    assert month_range(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert month_range(2023, 12) == (date(2023, 12, 1), date(2023, 12, 31))


@pytest.mark.parametrize(
    ("rate", "level"),
    [
        (0.0, DensityLevel.NONE),
        (0.2, DensityLevel.LOW),
        (0.5, DensityLevel.PARTIAL),
        (0.99, DensityLevel.PARTIAL),
        (1.0, DensityLevel.FULL),
    ],
)
def test_density_levels(rate: float, level: DensityLevel) -> None:
    assert density_level(rate) == level


def test_fold_sums_rows_sharing_a_day() -> None:
    folded = fold_by_date(
        [
            _rec(1, date(2024, 3, 1), 2, 3),
            _rec(2, date(2024, 3, 1), 1, 1),
            _rec(3, date(2024, 3, 2), 0, 2),
        ]
    )

    assert (folded[date(2024, 3, 1)].completed_count, folded[date(2024, 3, 1)].total_count) == (3, 4)
    assert folded[date(2024, 3, 2)].rate == 0.0


def test_load_ignores_out_of_range_records() -> None:
    agg = CompletionAggregator.for_month(2024, 3)
    agg.load([_rec(1, date(2024, 2, 29), 1, 1), _rec(2, date(2024, 3, 1), 2, 3)])

    assert [s.day for s in agg.stats()] == [date(2024, 3, 1)]
    assert agg.rate(date(2024, 3, 1)) == pytest.approx(2 / 3)
    assert agg.stat(date(2024, 3, 9)).total_count == 0


def test_insert_event_updates_bucket_once() -> None:
    agg = CompletionAggregator.for_month(2024, 3)
    agg.load([])
    ev = ChangeEvent.inserted(_rec(1, date(2024, 3, 1), 2, 3))

    agg.apply_event(ev)
    agg.apply_event(ev)

    assert agg.stat(date(2024, 3, 1)).total_count == 3


def test_update_event_swaps_contribution_across_days() -> None:
    agg = CompletionAggregator.for_month(2024, 3)
    agg.load([_rec(1, date(2024, 3, 1), 2, 3)])

    agg.apply_event(ChangeEvent.updated(_rec(1, date(2024, 3, 2), 1, 1)))

    assert agg.stat(date(2024, 3, 1)).total_count == 0
    assert agg.rate(date(2024, 3, 2)) == 1.0


def test_update_moving_out_of_range_removes_contribution() -> None:
    agg = CompletionAggregator.for_month(2024, 3)
    agg.load([_rec(1, date(2024, 3, 1), 2, 3)])

    agg.apply_event(ChangeEvent.updated(_rec(1, date(2024, 4, 1), 2, 3)))

    assert agg.stats() == []


def test_delete_event_subtracts_known_record_only() -> None:
    agg = CompletionAggregator.for_month(2024, 3)
    agg.load([_rec(1, date(2024, 3, 1), 2, 3), _rec(2, date(2024, 3, 1), 1, 1)])

    assert agg.apply_event(ChangeEvent.deleted(99)) is None
    agg.apply_event(ChangeEvent.deleted(1))
    agg.apply_event(ChangeEvent.deleted(1))

    stat = agg.stat(date(2024, 3, 1))
    assert (stat.completed_count, stat.total_count) == (1, 1)


def test_todo_events_are_ignored() -> None:
    agg = CompletionAggregator.for_month(2024, 3)

    assert agg.apply_event(ChangeEvent.inserted(Task(id=1, user_id="u1", title="x"))) is None
    assert agg.stats() == []


def test_live_stat_counts_collection() -> None:
    tasks = [
        Task(id=1, user_id="u1", title="a", completed=True),
        Task(id=2, user_id="u1", title="b"),
    ]

    stat = live_stat(tasks, date(2024, 3, 2))

    assert (stat.completed_count, stat.total_count) == (1, 2)


def test_reversed_range_is_rejected() -> None:
    with pytest.raises(ValueError):
        CompletionAggregator(date(2024, 3, 2), date(2024, 3, 1))
