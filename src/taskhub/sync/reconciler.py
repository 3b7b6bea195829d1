# src/taskhub/sync/reconciler.py

"""
Offline sync: replay a client's queued task operations against the store.

Operations run one at a time, in order, through the same TaskService calls
used by single-item requests, so operation N sees the effects of 1..N-1.
A failed operation is reported in its own result slot and the batch goes on.

Wire shape of one operation (as queued by the client):

    {"type": "task", "action": "create" | "update", "id"?: str, "payload": {...}}

The client id may also travel as payload["id"].
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..errors import TaskhubError, ValidationFailed, describe_error
from ..tasks.service import TaskService

logger = logging.getLogger(__name__)


class SyncAction(StrEnum):
    CREATE = "create"
    UPDATE = "update"


@dataclass(slots=True, frozen=True)
class SyncOperation:
    action: SyncAction
    payload: dict[str, Any] = field(default_factory=dict)
    client_id: str | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> SyncOperation:
        if isinstance(raw, SyncOperation):
            return raw
        if not isinstance(raw, Mapping):
            raise ValidationFailed({"op": "expected an object"})

        kind = raw.get("type", "task")
        if kind != "task":
            raise ValidationFailed({"type": f"unsupported operation type: {kind!r}"})

        try:
            action = SyncAction(str(raw.get("action", "")).lower())
        except ValueError:
            raise ValidationFailed({"action": f"unsupported action: {raw.get('action')!r}"}) from None

        payload = raw.get("payload") or {}
        if not isinstance(payload, Mapping):
            raise ValidationFailed({"payload": "expected an object"})
        payload = {k: v for k, v in payload.items() if k != "id"}

        client_id = raw.get("id") or (raw.get("payload") or {}).get("id")
        if client_id is not None and (not isinstance(client_id, str) or not client_id.strip()):
            raise ValidationFailed({"id": "must be a non-empty string"})

        if action == SyncAction.UPDATE and not client_id:
            raise ValidationFailed({"id": "update requires a task id"})

        return cls(action=action, payload=payload, client_id=client_id.strip() if client_id else None)


@dataclass(slots=True, frozen=True)
class SyncResult:
    ok: bool
    id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, "id": self.id}
        return {"ok": False, "error": self.error}


class SyncReconciler:
    def __init__(self, tasks: TaskService) -> None:
        self._tasks = tasks

    def apply(self, ops: Iterable[Any], *, user_id: str | None = None) -> list[SyncResult]:
        """One result per input operation, in input order."""
        results: list[SyncResult] = []
        for index, raw in enumerate(ops):
            try:
                op = SyncOperation.from_dict(raw)
                results.append(SyncResult(ok=True, id=self._apply_one(op, user_id=user_id)))
            except TaskhubError as e:
                logger.info("Sync op #%d failed: %s", index, e)
                results.append(SyncResult(ok=False, error=describe_error(e)))
            except Exception as e:
                # Unexpected failures are also confined to their own slot.
                logger.exception("Sync op #%d crashed", index)
                results.append(SyncResult(ok=False, error=describe_error(e)))

        failed = sum(1 for r in results if not r.ok)
        logger.info("Sync batch applied user=%s ops=%d failed=%d", user_id, len(results), failed)
        return results

    def _apply_one(self, op: SyncOperation, *, user_id: str | None) -> str:
        if op.action == SyncAction.CREATE:
            if op.client_id:
                task, _ = self._tasks.put(op.client_id, op.payload, created_by=user_id)
            else:
                task = self._tasks.create(op.payload, created_by=user_id)
            return task.id

        if not op.client_id:
            raise ValidationFailed({"id": "update requires a task id"})
        # Unknown ids surface as NotFound, the same as a single-item update.
        return self._tasks.update(op.client_id, op.payload).id
