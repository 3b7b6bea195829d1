# tests/test_task_service.py

from __future__ import annotations

import sqlite3

import pytest

from taskhub.core.events import task_scope
from taskhub.errors import NotFound, StoreUnavailable, ValidationFailed
from taskhub.tasks.models import Priority, RecurrenceRule
from taskhub.tasks.service import TaskService
from taskhub.tasks.store import TaskStore

from .fakes import EventRecorder, FakeClock


def test_create_get_list_update_delete(tasks: TaskService, clock: FakeClock, recorder: EventRecorder) -> None:
    task = tasks.create(
        {"title": "  Write report ", "priority": "high", "due_at": "2024-02-01T12:00:00Z"},
        created_by="alice",
    )
    assert task.title == "Write report"
    assert task.priority == Priority.HIGH
    assert task.completed is False
    assert task.created_by == "alice"
    assert task.created_at == clock.now

    assert tasks.get(task.id) == task
    assert [t.id for t in tasks.list_all()] == [task.id]

    updated = tasks.update(task.id, {"description": "quarterly", "assignee": "bob"})
    assert updated.description == "quarterly"
    assert updated.assignee == "bob"
    # untouched fields survive a partial update
    assert updated.priority == Priority.HIGH
    assert tasks.get(task.id).due_at == task.due_at

    tasks.delete(task.id)
    with pytest.raises(NotFound):
        tasks.get(task.id)

    assert recorder.names() == ["task:created", "task:updated", "task:deleted"]
    assert recorder.events[1][2]["assignee"] == "bob"
    assert recorder.events[2][2] == {"id": task.id}


def test_task_events_also_go_to_task_scope(tasks: TaskService, notifier) -> None:
    task = tasks.create({"title": "watched"})
    rec = EventRecorder()
    notifier.subscribe(task_scope(task.id), rec)

    tasks.update(task.id, {"title": "renamed"})

    assert rec.names() == ["task:updated"]
    assert rec.events[0][2]["title"] == "renamed"


def test_create_requires_title_and_valid_enums(tasks: TaskService) -> None:
    with pytest.raises(ValidationFailed) as exc:
        tasks.create({"description": "no title"})
    assert "title" in exc.value.errors

    with pytest.raises(ValidationFailed) as exc:
        tasks.create({"title": "x", "priority": "urgent", "recurrence": "hourly"})
    assert set(exc.value.errors) == {"priority", "recurrence"}


def test_legacy_recurring_rule_key_is_accepted(tasks: TaskService) -> None:
    task = tasks.create({"title": "standup", "recurring_rule": "daily"})
    assert task.recurrence == RecurrenceRule.DAILY


def test_update_and_delete_unknown_task_raise_not_found(tasks: TaskService) -> None:
    with pytest.raises(NotFound):
        tasks.update("missing", {"title": "x"})
    with pytest.raises(NotFound):
        tasks.delete("missing")


def test_put_overwrites_existing_record(tasks: TaskService, clock: FakeClock) -> None:
    first, created = tasks.put("client-1", {"title": "draft", "priority": "low", "assignee": "bob"})
    assert created is True
    created_at = first.created_at

    clock.advance(60)
    second, created = tasks.put("client-1", {"title": "final"})
    assert created is False
    assert second.title == "final"
    # full overwrite: omitted fields fall back to creation defaults
    assert second.priority == Priority.MEDIUM
    assert second.assignee is None
    assert tasks.get("client-1").created_at == created_at
    assert len(tasks.list_all()) == 1


def test_comments_publish_on_task_scope(tasks: TaskService, notifier) -> None:
    task = tasks.create({"title": "discuss"})
    rec = EventRecorder()
    notifier.subscribe(task_scope(task.id), rec)

    comment = tasks.add_comment(task.id, "alice", "looks good")

    assert rec.names() == ["comment:created"]
    assert rec.events[0][2]["content"] == "looks good"
    assert [c.id for c in tasks.comments(task.id)] == [comment.id]

    with pytest.raises(ValidationFailed):
        tasks.add_comment(task.id, "alice", "   ")


def test_store_failure_is_not_reported_as_missing(store: TaskStore, tasks: TaskService, monkeypatch) -> None:
    task = tasks.create({"title": "x"})

    def broken_conn():
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(store, "_get_conn", broken_conn)

    with pytest.raises(StoreUnavailable):
        tasks.get(task.id)
    with pytest.raises(StoreUnavailable):
        tasks.update(task.id, {"title": "y"})


def test_store_reopens_existing_database(tmp_path) -> None:
    db = tmp_path / "reopen.sqlite3"
    TaskStore(db)
    store = TaskStore(db)
    assert store.count_tasks() == 0


@pytest.mark.parametrize("due_at", [1e20, float("inf"), float("nan"), 10**400, "10000-01-01T00:00:00"])
def test_unrepresentable_due_times_are_rejected(tasks: TaskService, due_at) -> None:
    with pytest.raises(ValidationFailed) as exc:
        tasks.create({"title": "x", "due_at": due_at})
    assert "due_at" in exc.value.errors

    task = tasks.create({"title": "y", "recurrence": "daily"})
    with pytest.raises(ValidationFailed):
        tasks.update(task.id, {"completed": True, "due_at": due_at})
    assert tasks.get(task.id).completed is False


def test_put_keeps_completion_unless_payload_sets_it(tasks: TaskService) -> None:
    tasks.put("client-2", {"title": "draft"})
    tasks.update("client-2", {"completed": True})

    again, _ = tasks.put("client-2", {"title": "draft"})
    assert again.completed is True

    reopened, _ = tasks.put("client-2", {"title": "draft", "completed": False})
    assert reopened.completed is False
