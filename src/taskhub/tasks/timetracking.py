# src/taskhub/tasks/timetracking.py

from __future__ import annotations

import logging
import math
import time
import uuid
from collections.abc import Callable

from ..core.locks import KeyedLocks
from ..errors import NotFound, ValidationFailed
from .models import TimeEntry
from .store import TaskStore

logger = logging.getLogger(__name__)


def compute_duration(started_at: float, stopped_at: float) -> int:
    """Whole seconds between start and stop, never negative (clock skew)."""
    return max(0, math.floor(stopped_at - started_at))


class TimeTracker:
    """Start/stop time entries. Duration is written once, at stop time."""

    def __init__(
        self,
        store: TaskStore,
        *,
        locks: KeyedLocks | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._locks = locks or KeyedLocks()
        self._clock = clock

    def start(self, task_id: str, user_id: str, *, now_ts: float | None = None) -> TimeEntry:
        if not task_id or not user_id:
            raise ValidationFailed({"task_id": "task_id and user_id are required"})
        entry = TimeEntry(
            id=str(uuid.uuid4()),
            task_id=task_id,
            user_id=user_id,
            started_at=self._clock() if now_ts is None else float(now_ts),
        )
        self._store.insert_time_entry(entry)
        logger.info("Time entry %s started task=%s user=%s", entry.id, task_id, user_id)
        return entry

    def stop(self, entry_id: str, *, now_ts: float | None = None) -> TimeEntry:
        """
        Stop a running entry and persist its duration.

        Stopping an entry that is already stopped returns it unchanged.
        """
        with self._locks.hold(entry_id):
            entry = self._store.get_time_entry(entry_id)
            if entry is None:
                raise NotFound("time entry", entry_id)
            if not entry.running:
                return entry

            stopped_at = self._clock() if now_ts is None else float(now_ts)
            duration = compute_duration(entry.started_at, stopped_at)
            if not self._store.finish_time_entry(entry_id, stopped_at=stopped_at, duration=duration):
                raise NotFound("time entry", entry_id)

            logger.info("Time entry %s stopped duration=%ss", entry_id, duration)
            entry.stopped_at = stopped_at
            entry.duration = duration
            return entry

    def get(self, entry_id: str) -> TimeEntry:
        entry = self._store.get_time_entry(entry_id)
        if entry is None:
            raise NotFound("time entry", entry_id)
        return entry

    def productivity_report(self) -> list[tuple[str, int]]:
        """Total tracked seconds per user, finished entries only."""
        return self._store.productivity_report()
