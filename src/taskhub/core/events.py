# src/taskhub/core/events.py

"""
In-process event notifier.

Publishes task/comment/reminder lifecycle events to whoever listens at publish
time (live UI refresh, presence layer). Fire-and-forget: no queue, no replay;
a failing subscriber is logged and skipped.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = "global"

TASK_CREATED = "task:created"
TASK_UPDATED = "task:updated"
TASK_DELETED = "task:deleted"
COMMENT_CREATED = "comment:created"
REMINDER_SENT = "reminder:sent"

EventCallback = Callable[[str, str, dict[str, Any]], None]
# callback(scope, event_name, payload)


def task_scope(task_id: str) -> str:
    return f"task:{task_id}"


def user_scope(user_id: str) -> str:
    return f"user:{user_id}"


class EventNotifier:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[EventCallback]] = {}

    def subscribe(self, scope: str, callback: EventCallback) -> Callable[[], None]:
        """Register a callback for one scope. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers.setdefault(scope, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                subs = self._subscribers.get(scope, [])
                if callback in subs:
                    subs.remove(callback)
                if not subs:
                    self._subscribers.pop(scope, None)

        return unsubscribe

    def publish(self, scope: str, event: str, payload: dict[str, Any]) -> None:
        with self._lock:
            subs = list(self._subscribers.get(scope, ()))

        logger.debug("event %s scope=%s subscribers=%d", event, scope, len(subs))
        for cb in subs:
            try:
                cb(scope, event, payload)
            except Exception:
                logger.exception("Event subscriber failed event=%s scope=%s", event, scope)
