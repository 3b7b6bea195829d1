# src/taskhub/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..core.events import EventNotifier
from ..core.ports import ReminderSender
from ..reminders.scheduler import ReminderScheduler
from ..reminders.service import ReminderService
from ..sync.reconciler import SyncReconciler
from ..tasks.service import TaskService
from ..tasks.store import TaskStore
from ..tasks.timetracking import TimeTracker


@dataclass
class AppState:
    """Everything a connector (console, tests) needs, wired once in cli/bootstrap.py."""

    settings: Any

    store: TaskStore
    notifier: EventNotifier
    tasks: TaskService
    reminders: ReminderService
    time: TimeTracker
    sync: SyncReconciler

    sender: ReminderSender
    scheduler: ReminderScheduler
