# tests/test_dependencies.py

from __future__ import annotations

import pytest

from taskhub.errors import DependencyBlocked, ValidationFailed
from taskhub.tasks.service import TaskService

from .fakes import EventRecorder


def test_can_complete_reports_exactly_the_incomplete_prerequisites(tasks: TaskService) -> None:
    target = tasks.create({"title": "ship"})
    a = tasks.create({"title": "build"})
    b = tasks.create({"title": "test"})
    c = tasks.create({"title": "docs", "completed": True})
    for dep in (a, b, c):
        tasks.add_dependency(target.id, dep.id)

    check = tasks.can_complete(target.id)
    assert check.allowed is False
    assert sorted(check.blocking) == sorted([a.id, b.id])

    tasks.update(a.id, {"completed": True})
    tasks.update(b.id, {"completed": True})

    check = tasks.can_complete(target.id)
    assert check.allowed is True
    assert check.blocking == []


def test_no_edges_means_allowed(tasks: TaskService) -> None:
    task = tasks.create({"title": "free"})
    assert tasks.can_complete(task.id).allowed is True


def test_blocked_completion_writes_nothing(tasks: TaskService, recorder: EventRecorder) -> None:
    target = tasks.create({"title": "ship"})
    prereq = tasks.create({"title": "build"})
    tasks.add_dependency(target.id, prereq.id)

    with pytest.raises(DependencyBlocked) as exc:
        tasks.update(target.id, {"completed": True, "title": "ship it"})

    assert exc.value.blocking == [prereq.id]
    assert prereq.id in str(exc.value)
    stored = tasks.get(target.id)
    assert stored.completed is False
    assert stored.title == "ship"
    assert "task:updated" not in recorder.names()


def test_check_is_reevaluated_on_every_attempt(tasks: TaskService) -> None:
    target = tasks.create({"title": "ship"})
    prereq = tasks.create({"title": "build"})
    tasks.add_dependency(target.id, prereq.id)

    with pytest.raises(DependencyBlocked):
        tasks.update(target.id, {"completed": True})

    tasks.update(prereq.id, {"completed": True})
    assert tasks.update(target.id, {"completed": True}).completed is True

    # Reopening the prerequisite does not touch an already completed task.
    tasks.update(prereq.id, {"completed": False})
    assert tasks.get(target.id).completed is True


def test_edges_may_reference_tasks_that_do_not_exist_yet(tasks: TaskService) -> None:
    target = tasks.create({"title": "ship"})
    assert tasks.add_dependency(target.id, "future-task") is True

    # An unresolvable prerequisite blocks completion.
    with pytest.raises(DependencyBlocked) as exc:
        tasks.update(target.id, {"completed": True})
    assert exc.value.blocking == ["future-task"]

    tasks.put("future-task", {"title": "arrives later", "completed": True})
    assert tasks.update(target.id, {"completed": True}).completed is True


def test_edges_have_set_semantics(tasks: TaskService) -> None:
    target = tasks.create({"title": "ship"})
    prereq = tasks.create({"title": "build"})
    assert tasks.add_dependency(target.id, prereq.id) is True
    assert tasks.add_dependency(target.id, prereq.id) is False
    assert tasks.dependencies(target.id) == [prereq.id]

    tasks.remove_dependency(target.id, prereq.id)
    assert tasks.dependencies(target.id) == []


def test_self_dependency_is_rejected(tasks: TaskService) -> None:
    task = tasks.create({"title": "loop"})
    with pytest.raises(ValidationFailed):
        tasks.add_dependency(task.id, task.id)


def test_dependency_cycle_blocks_every_member_forever(tasks: TaskService) -> None:
    # No cycle detection: members of a cycle can never be completed.
    a = tasks.create({"title": "a"})
    b = tasks.create({"title": "b"})
    tasks.add_dependency(a.id, b.id)
    tasks.add_dependency(b.id, a.id)

    with pytest.raises(DependencyBlocked) as exc_a:
        tasks.update(a.id, {"completed": True})
    with pytest.raises(DependencyBlocked) as exc_b:
        tasks.update(b.id, {"completed": True})

    assert exc_a.value.blocking == [b.id]
    assert exc_b.value.blocking == [a.id]


def test_deleting_a_prerequisite_unblocks_its_dependents(tasks: TaskService) -> None:
    target = tasks.create({"title": "ship"})
    prereq = tasks.create({"title": "legacy check"})
    other = tasks.create({"title": "build"})
    tasks.add_dependency(target.id, prereq.id)
    tasks.add_dependency(target.id, other.id)

    tasks.delete(prereq.id)

    assert tasks.dependencies(target.id) == [other.id]
    assert tasks.can_complete(target.id).blocking == [other.id]
