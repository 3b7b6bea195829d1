# src/taskhub/tasks/service.py

"""
Task lifecycle service: the single write path for tasks.

Every mutation of a task id runs inside that id's critical section:

  read current -> dependency check (on completion) -> write (+ successor) -> publish

so a completion, its recurring successor and the resulting events form one
logical step that never interleaves with another write to the same task.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import replace
from typing import Any

from ..core.events import (
    COMMENT_CREATED,
    GLOBAL_SCOPE,
    TASK_CREATED,
    TASK_DELETED,
    TASK_UPDATED,
    task_scope,
)
from ..core.locks import KeyedLocks
from ..core.ports import EventSink
from ..errors import DependencyBlocked, NotFound, ValidationFailed
from .dependencies import CompletionCheck, DependencyValidator
from .models import Comment, Priority, Task, TaskInput
from .recurrence import next_instance
from .store import TaskStore

logger = logging.getLogger(__name__)

TaskFields = Mapping[str, Any] | TaskInput


def _as_input(fields: TaskFields, *, require_title: bool = False) -> TaskInput:
    if isinstance(fields, TaskInput):
        if require_title and "title" not in fields.provided:
            raise ValidationFailed({"title": "is required"})
        return fields
    return TaskInput.from_payload(fields, require_title=require_title)


class TaskService:
    def __init__(
        self,
        store: TaskStore,
        notifier: EventSink,
        *,
        locks: KeyedLocks | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._locks = locks or KeyedLocks()
        self._clock = clock
        self._validator = DependencyValidator(store)

    @property
    def validator(self) -> DependencyValidator:
        return self._validator

    # ---- events ----

    def _publish_task(self, event: str, payload: dict[str, Any], task_id: str) -> None:
        self._notifier.publish(GLOBAL_SCOPE, event, payload)
        self._notifier.publish(task_scope(task_id), event, payload)

    # ---- reads ----

    def get(self, task_id: str) -> Task:
        task = self._store.get_task(task_id)
        if task is None:
            raise NotFound("task", task_id)
        return task

    def list_all(self) -> list[Task]:
        return self._store.list_tasks()

    def can_complete(self, task_id: str) -> CompletionCheck:
        return self._validator.can_complete(task_id)

    # ---- writes ----

    def create(
        self,
        fields: TaskFields,
        *,
        created_by: str | None = None,
        task_id: str | None = None,
    ) -> Task:
        """
        Create a task. Dependency state is not checked here; a new task may
        already point at prerequisites that do not exist yet.
        """
        inp = _as_input(fields, require_title=True)
        task_id = task_id or str(uuid.uuid4())
        with self._locks.hold(task_id):
            return self._insert(task_id, inp, created_by=created_by)

    def update(self, task_id: str, fields: TaskFields) -> Task:
        inp = _as_input(fields)
        with self._locks.hold(task_id):
            current = self.get(task_id)
            return self._apply(current, inp)

    def put(self, task_id: str, fields: TaskFields, *, created_by: str | None = None) -> tuple[Task, bool]:
        """
        Create-or-overwrite under a caller-chosen id (idempotent replay).

        An existing record gets every field overwritten (last write wins) and
        keeps its id, creator and creation time. A stored completion flag is
        kept unless the payload sets `completed`, so replaying a create never
        reopens a task a later operation completed. Returns (task, created).
        """
        given = _as_input(fields, require_title=True)
        inp = given.with_defaults()
        with self._locks.hold(task_id):
            current = self._store.get_task(task_id)
            if current is None:
                return self._insert(task_id, inp, created_by=created_by), True
            if "completed" not in given.provided:
                inp = replace(inp, completed=current.completed)
            return self._apply(current, inp), False

    def delete(self, task_id: str) -> None:
        with self._locks.hold(task_id):
            if not self._store.delete_task(task_id):
                raise NotFound("task", task_id)
            logger.info("Task %s deleted", task_id)
            self._publish_task(TASK_DELETED, {"id": task_id}, task_id)

    def _insert(self, task_id: str, inp: TaskInput, *, created_by: str | None) -> Task:
        task = Task(
            id=task_id,
            title=inp.title or "",
            description=inp.description or "",
            priority=inp.priority or Priority.MEDIUM,
            completed=bool(inp.completed),
            due_at=inp.due_at,
            created_by=created_by,
            assignee=inp.assignee,
            recurrence=inp.recurrence,
            created_at=self._clock(),
        )
        self._store.insert_task(task)
        logger.info("Task %s created title=%r", task.id, task.title)
        self._publish_task(TASK_CREATED, task.to_dict(), task.id)
        return task

    def _apply(self, current: Task, inp: TaskInput) -> Task:
        """Caller holds the task's lock."""
        changes = inp.changes()
        updated = replace(current, **changes)
        successor: Task | None = None

        if updated.completed and not current.completed:
            check = self._validator.can_complete(current.id)
            if not check.allowed:
                logger.info("Completion of task %s blocked by %s", current.id, check.blocking)
                raise DependencyBlocked(current.id, check.blocking)
            if updated.recurrence is not None:
                successor = next_instance(updated, now_ts=self._clock())

        if not self._store.update_task(current.id, changes, successor=successor):
            # Deleted between our read and the write.
            raise NotFound("task", current.id)

        logger.info("Task %s updated fields=%s", current.id, sorted(changes))
        self._publish_task(TASK_UPDATED, updated.to_dict(), updated.id)

        if successor is not None:
            logger.info(
                "Recurring task %s completed; successor %s due_at=%s",
                current.id,
                successor.id,
                successor.due_at,
            )
            self._publish_task(TASK_CREATED, successor.to_dict(), successor.id)

        return updated

    # ---- dependency edges ----

    def add_dependency(self, task_id: str, depends_on_id: str) -> bool:
        if not task_id or not depends_on_id:
            raise ValidationFailed({"depends_on_id": "task ids are required"})
        if task_id == depends_on_id:
            raise ValidationFailed({"depends_on_id": "a task cannot depend on itself"})
        with self._locks.hold(task_id):
            added = self._store.add_dependency(task_id, depends_on_id)
        logger.debug("Dependency %s -> %s added=%s", task_id, depends_on_id, added)
        return added

    def remove_dependency(self, task_id: str, depends_on_id: str) -> None:
        with self._locks.hold(task_id):
            if not self._store.remove_dependency(task_id, depends_on_id):
                raise NotFound("dependency", f"{task_id}->{depends_on_id}")

    def dependencies(self, task_id: str) -> list[str]:
        return self._store.list_dependencies(task_id)

    # ---- comments ----

    def add_comment(self, task_id: str, user_id: str, content: str) -> Comment:
        if not isinstance(content, str) or not content.strip():
            raise ValidationFailed({"content": "must be a non-empty string"})
        comment = Comment(
            id=str(uuid.uuid4()),
            task_id=task_id,
            user_id=user_id,
            content=content.strip(),
            created_at=self._clock(),
        )
        self._store.insert_comment(comment)
        self._notifier.publish(task_scope(task_id), COMMENT_CREATED, comment.to_dict())
        return comment

    def comments(self, task_id: str) -> list[Comment]:
        return self._store.list_comments(task_id)
