# src/taskhub/reminders/service.py

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from typing import Any

from ..core.locks import KeyedLocks
from ..errors import NotFound, ValidationFailed
from ..tasks.models import Reminder, coerce_timestamp
from ..tasks.store import TaskStore

logger = logging.getLogger(__name__)


class ReminderService:
    """
    Create / snooze / inspect reminders.

    Shares its KeyedLocks with the ReminderScheduler so that a snooze never
    interleaves with the scheduler's re-check-then-mark-sent of the same reminder.
    """

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

    @property
    def locks(self) -> KeyedLocks:
        return self._locks

    def create(self, task_id: str, user_id: str, remind_at: Any) -> Reminder:
        errors: dict[str, str] = {}
        if not task_id:
            errors["task_id"] = "is required"
        if not user_id:
            errors["user_id"] = "is required"
        if errors:
            raise ValidationFailed(errors)

        reminder = Reminder(
            id=str(uuid.uuid4()),
            task_id=task_id,
            user_id=user_id,
            remind_at=coerce_timestamp(remind_at, field_name="remind_at"),
        )
        self._store.insert_reminder(reminder)
        logger.info(
            "Reminder %s created task=%s user=%s remind_at=%s",
            reminder.id,
            task_id,
            user_id,
            reminder.remind_at,
        )
        return reminder

    def snooze(self, reminder_id: str, snoozed_until: Any) -> Reminder:
        """Suppress delivery until `snoozed_until`. The sent flag is left as is."""
        until = coerce_timestamp(snoozed_until, field_name="snoozed_until")
        with self._locks.hold(reminder_id):
            if not self._store.set_snooze(reminder_id, until):
                raise NotFound("reminder", reminder_id)
            reminder = self.get(reminder_id)
        logger.info("Reminder %s snoozed until %s", reminder_id, until)
        return reminder

    def get(self, reminder_id: str) -> Reminder:
        reminder = self._store.get_reminder(reminder_id)
        if reminder is None:
            raise NotFound("reminder", reminder_id)
        return reminder

    def list_reminders(self, *, user_id: str | None = None) -> list[Reminder]:
        return self._store.list_reminders(user_id=user_id)
