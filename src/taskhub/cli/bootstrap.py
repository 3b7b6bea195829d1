# src/taskhub/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires store, services, sender and scheduler into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.events import EventNotifier
from ..core.locks import KeyedLocks
from ..core.ports import ReminderSender
from ..core.state import AppState
from ..reminders.delivery import ContactBook, build_sender
from ..reminders.scheduler import ReminderScheduler
from ..reminders.service import ReminderService
from ..sync.reconciler import SyncReconciler
from ..tasks.service import TaskService
from ..tasks.store import TaskStore
from ..tasks.timetracking import TimeTracker

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, sender: ReminderSender | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the sender) injectable makes the app easier to test
    and avoids hidden global config reads. If settings is None, falls back to
    get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = TaskStore(settings.db_path)
    notifier = EventNotifier()
    reminder_locks = KeyedLocks()

    if sender is None:
        sender = build_sender(settings)

    reminders = ReminderService(store, locks=reminder_locks)
    scheduler = ReminderScheduler(
        store,
        sender,
        ContactBook(getattr(settings, "user_contacts", None)),
        notifier,
        locks=reminder_locks,
        interval_seconds=getattr(settings, "reminder_interval_seconds", 60.0),
        max_concurrent=getattr(settings, "reminder_max_concurrent", 8),
    )
    tasks = TaskService(store, notifier)

    logger.info("State ready db=%s delivery=%s", settings.db_path, type(sender).__name__)

    return AppState(
        settings=settings,
        store=store,
        notifier=notifier,
        tasks=tasks,
        reminders=reminders,
        time=TimeTracker(store),
        sync=SyncReconciler(tasks),
        sender=sender,
        scheduler=scheduler,
    )
