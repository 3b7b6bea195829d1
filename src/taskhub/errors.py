# src/taskhub/errors.py

"""
Error taxonomy shared by the store, the lifecycle service and the sync reconciler.

Callers (console commands, sync results) render these via `str(exc)`;
`DependencyBlocked.blocking` and `ValidationFailed.errors` carry the details
needed to fix the request.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping


class TaskhubError(Exception):
    """Base class for all domain errors."""


class NotFound(TaskhubError):
    def __init__(self, kind: str, record_id: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")


class ValidationFailed(TaskhubError):
    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors = dict(errors)
        detail = "; ".join(f"{k}: {v}" for k, v in self.errors.items())
        super().__init__(f"invalid input ({detail})" if detail else "invalid input")


class DependencyBlocked(TaskhubError):
    def __init__(self, task_id: str, blocking: Iterable[str]) -> None:
        self.task_id = task_id
        self.blocking = list(blocking)
        super().__init__(
            f"cannot complete task {task_id} while dependencies are incomplete: "
            + ", ".join(self.blocking)
        )


class DeliveryFailed(TaskhubError):
    """A reminder send did not succeed; the scheduler retries on its next scan."""


class StoreUnavailable(TaskhubError):
    """The underlying persistence call failed. Never means "record does not exist"."""


def describe_error(exc: BaseException) -> str:
    """Short `Name: message` form used in per-operation results."""
    return f"{type(exc).__name__}: {exc}"
