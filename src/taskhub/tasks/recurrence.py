# src/taskhub/tasks/recurrence.py

"""
Recurring task successors.

When a task with a recurrence rule is completed, the next instance is due one
period after the completed task's due time (or after "now" if it had none):

- daily   -> +1 day
- weekly  -> +7 days
- monthly -> +1 calendar month, day clamped to the target month's last day
             (Jan 31 -> Feb 29 in leap years, Feb 28 otherwise)

Calendar arithmetic is done in UTC; the time of day is preserved.
"""

from __future__ import annotations

import calendar
import uuid
from dataclasses import replace
from datetime import UTC, datetime, timedelta

from .models import RecurrenceRule, Task


def add_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return dt.replace(year=year, month=month, day=min(dt.day, last_day))


def next_due(rule: RecurrenceRule, due_at: float | None, *, now_ts: float) -> float:
    base = datetime.fromtimestamp(due_at if due_at is not None else now_ts, tz=UTC)

    if rule == RecurrenceRule.DAILY:
        nxt = base + timedelta(days=1)
    elif rule == RecurrenceRule.WEEKLY:
        nxt = base + timedelta(days=7)
    elif rule == RecurrenceRule.MONTHLY:
        nxt = add_months(base, 1)
    else:
        raise ValueError(f"unknown recurrence rule: {rule!r}")

    return nxt.timestamp()


def next_instance(task: Task, *, now_ts: float) -> Task:
    """
    Build the successor of a just-completed recurring task.

    The successor keeps title, description, priority, assignee, recurrence and
    creator; it starts incomplete with a fresh id and creation time.
    """
    if task.recurrence is None:
        raise ValueError(f"task {task.id} has no recurrence rule")

    return replace(
        task,
        id=str(uuid.uuid4()),
        completed=False,
        due_at=next_due(task.recurrence, task.due_at, now_ts=now_ts),
        created_at=now_ts,
    )
