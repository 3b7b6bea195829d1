# src/taskhub/tasks/models.py

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from ..errors import ValidationFailed


class Priority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def from_db(cls, raw: str | None) -> Priority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except ValueError:
            return cls.MEDIUM


class RecurrenceRule(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def from_db(cls, raw: str | None) -> RecurrenceRule | None:
        if not raw:
            return None
        try:
            return cls(raw)
        except ValueError:
            return None


@dataclass(slots=True)
class Task:
    id: str
    title: str
    description: str
    priority: Priority
    completed: bool
    due_at: float | None
    created_by: str | None
    assignee: str | None
    recurrence: RecurrenceRule | None
    created_at: float

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["priority"] = self.priority.value
        data["recurrence"] = self.recurrence.value if self.recurrence else None
        return data


@dataclass(slots=True)
class Reminder:
    id: str
    task_id: str
    user_id: str
    remind_at: float | None
    snoozed_until: float | None = None
    sent: bool = False

    def is_snoozed(self, now_ts: float) -> bool:
        return self.snoozed_until is not None and self.snoozed_until > now_ts

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class TimeEntry:
    id: str
    task_id: str
    user_id: str
    started_at: float
    stopped_at: float | None = None
    duration: int | None = None

    @property
    def running(self) -> bool:
        return self.stopped_at is None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Comment:
    id: str
    task_id: str
    user_id: str
    content: str
    created_at: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# Timestamps outside this window cannot be turned back into dates (or moved a
# month forward) on every platform.
MIN_TIMESTAMP = datetime(1900, 1, 1, tzinfo=UTC).timestamp()
MAX_TIMESTAMP = datetime(9999, 1, 1, tzinfo=UTC).timestamp()


def coerce_timestamp(value: Any, *, field_name: str) -> float | None:
    """
    Accept epoch seconds or an ISO-8601 string and return epoch seconds (UTC).

    Naive ISO strings are read as UTC. None and "" mean "no timestamp".
    NaN, infinities and values outside [MIN_TIMESTAMP, MAX_TIMESTAMP] are rejected.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationFailed({field_name: "expected a timestamp"})
    if isinstance(value, int | float):
        try:
            ts = float(value)
        except OverflowError:
            raise ValidationFailed({field_name: f"timestamp out of range: {value!r}"}) from None
    else:
        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, str):
            try:
                dt = datetime.fromisoformat(value.strip())
            except ValueError:
                raise ValidationFailed({field_name: f"not an ISO-8601 timestamp: {value!r}"}) from None
        else:
            raise ValidationFailed({field_name: "expected a timestamp"})

        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=UTC)
        try:
            ts = dt.timestamp()
        except (OverflowError, OSError, ValueError):
            raise ValidationFailed({field_name: f"timestamp out of range: {value!r}"}) from None

    if not math.isfinite(ts) or not MIN_TIMESTAMP <= ts <= MAX_TIMESTAMP:
        raise ValidationFailed({field_name: f"timestamp out of range: {value!r}"})
    return ts


# Payload keys accepted for tasks. "recurring_rule" is the legacy client name.
_TASK_KEYS = ("title", "description", "priority", "completed", "due_at", "assignee", "recurrence")


@dataclass(frozen=True, slots=True)
class TaskInput:
    """
    Validated, immutable task request.

    Only fields listed in `provided` are written on update; the rest keep
    their stored values.
    """

    title: str | None = None
    description: str | None = None
    priority: Priority | None = None
    completed: bool | None = None
    due_at: float | None = None
    assignee: str | None = None
    recurrence: RecurrenceRule | None = None
    provided: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, require_title: bool = False) -> TaskInput:
        if not isinstance(payload, Mapping):
            raise ValidationFailed({"payload": "expected an object"})

        data = dict(payload)
        if "recurrence" not in data and "recurring_rule" in data:
            data["recurrence"] = data["recurring_rule"]

        errors: dict[str, str] = {}
        values: dict[str, Any] = {}

        if "title" in data:
            title = data["title"]
            if not isinstance(title, str) or not title.strip():
                errors["title"] = "must be a non-empty string"
            else:
                values["title"] = title.strip()
        elif require_title:
            errors["title"] = "is required"

        if "description" in data:
            desc = data["description"]
            if desc is not None and not isinstance(desc, str):
                errors["description"] = "must be a string"
            else:
                values["description"] = desc or ""

        if "priority" in data:
            raw = data["priority"]
            if raw is None or raw == "":
                values["priority"] = Priority.MEDIUM
            else:
                try:
                    values["priority"] = Priority(str(raw).lower())
                except ValueError:
                    errors["priority"] = f"must be one of {', '.join(p.value for p in Priority)}"

        if "completed" in data:
            raw = data["completed"]
            if isinstance(raw, bool):
                values["completed"] = raw
            elif raw in (0, 1):
                values["completed"] = bool(raw)
            else:
                errors["completed"] = "must be a boolean"

        if "due_at" in data:
            try:
                values["due_at"] = coerce_timestamp(data["due_at"], field_name="due_at")
            except ValidationFailed as e:
                errors.update(e.errors)

        if "assignee" in data:
            raw = data["assignee"]
            if raw is not None and not isinstance(raw, str):
                errors["assignee"] = "must be a string"
            else:
                values["assignee"] = raw or None

        if "recurrence" in data:
            raw = data["recurrence"]
            if raw is None or raw == "":
                values["recurrence"] = None
            else:
                try:
                    values["recurrence"] = RecurrenceRule(str(raw).lower())
                except ValueError:
                    errors["recurrence"] = f"must be one of {', '.join(r.value for r in RecurrenceRule)}"

        if errors:
            raise ValidationFailed(errors)

        return cls(**values, provided=frozenset(values))

    def with_defaults(self) -> TaskInput:
        """Every field provided; missing ones take their creation defaults (full overwrite)."""
        return TaskInput(
            title=self.title,
            description=self.description if "description" in self.provided else "",
            priority=self.priority if "priority" in self.provided else Priority.MEDIUM,
            completed=self.completed if "completed" in self.provided else False,
            due_at=self.due_at,
            assignee=self.assignee,
            recurrence=self.recurrence,
            provided=frozenset(_TASK_KEYS),
        )

    def changes(self) -> dict[str, Any]:
        """Provided fields only, keyed by task attribute name."""
        return {k: getattr(self, k) for k in _TASK_KEYS if k in self.provided}
