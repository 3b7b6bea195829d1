# src/taskhub/tasks/dependencies.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)


class PrerequisiteSource(Protocol):
    def prerequisite_states(self, task_id: str) -> list[tuple[str, bool | None]]: ...


@dataclass(slots=True, frozen=True)
class CompletionCheck:
    allowed: bool
    blocking: list[str] = field(default_factory=list)


class DependencyValidator:
    """
    Decides whether a task may move to completed.

    The check reads edge and prerequisite state from the store on every call;
    prerequisites can change between two completion attempts.

    A prerequisite id without a task record counts as incomplete. There is no
    cycle detection: every member of a cycle stays blocked.
    """

    def __init__(self, source: PrerequisiteSource) -> None:
        self._source = source

    def can_complete(self, task_id: str) -> CompletionCheck:
        blocking = [dep_id for dep_id, done in self._source.prerequisite_states(task_id) if not done]
        if blocking:
            logger.debug("Task %s blocked by %s", task_id, blocking)
            return CompletionCheck(allowed=False, blocking=blocking)
        return CompletionCheck(allowed=True)
