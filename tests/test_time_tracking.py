# tests/test_time_tracking.py

from __future__ import annotations

import pytest

from taskhub.errors import NotFound, ValidationFailed
from taskhub.tasks.store import TaskStore
from taskhub.tasks.timetracking import TimeTracker, compute_duration

from .fakes import FakeClock, ts

T0 = ts(2024, 4, 2, 9, 0)


def test_stop_records_whole_second_duration(store: TaskStore) -> None:
    clock = FakeClock(T0)
    tracker = TimeTracker(store, clock=clock)

    entry = tracker.start("task-1", "alice")
    assert entry.running
    assert entry.duration is None
    assert tracker.get(entry.id).duration is None

    clock.advance(125.7)
    stopped = tracker.stop(entry.id)

    assert stopped.duration == 125
    assert stopped.stopped_at == T0 + 125.7
    assert tracker.get(entry.id).duration == 125


def test_clock_skew_never_yields_negative_duration(store: TaskStore) -> None:
    tracker = TimeTracker(store)
    entry = tracker.start("task-1", "alice", now_ts=T0)
    assert tracker.stop(entry.id, now_ts=T0 - 30).duration == 0
    assert compute_duration(T0, T0 - 0.5) == 0


def test_duration_is_immutable_once_stopped(store: TaskStore) -> None:
    tracker = TimeTracker(store)
    entry = tracker.start("task-1", "alice", now_ts=T0)
    tracker.stop(entry.id, now_ts=T0 + 10)

    again = tracker.stop(entry.id, now_ts=T0 + 999)

    assert again.duration == 10
    assert tracker.get(entry.id).stopped_at == T0 + 10


def test_unknown_entry_and_missing_ids(store: TaskStore) -> None:
    tracker = TimeTracker(store)
    with pytest.raises(NotFound):
        tracker.stop("missing")
    with pytest.raises(ValidationFailed):
        tracker.start("", "alice")


def test_productivity_report_sums_finished_entries(store: TaskStore) -> None:
    tracker = TimeTracker(store)
    for user, seconds in (("alice", 60), ("alice", 40), ("bob", 30)):
        entry = tracker.start("task-1", user, now_ts=T0)
        tracker.stop(entry.id, now_ts=T0 + seconds)
    tracker.start("task-1", "carol", now_ts=T0)  # still running

    assert tracker.productivity_report() == [("alice", 100), ("bob", 30)]
