# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskhub.cli.bootstrap import create_initial_state
from taskhub.core.events import GLOBAL_SCOPE, EventNotifier
from taskhub.core.state import AppState
from taskhub.tasks.service import TaskService
from taskhub.tasks.store import TaskStore

from .fakes import EventRecorder, FakeClock, FakeSender, ts


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with create_initial_state().

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskhub-test",
        data_dir=tmp_path,
        db_path=tmp_path / "taskhub.sqlite3",
        reminder_interval_seconds=0.01,
        reminder_max_concurrent=4,
        delivery_backend="log",
        user_contacts={"alice": "alice@example.com", "bob": "!bobroom:example.org"},
        console_user_id="alice",
    )


@pytest.fixture()
def sender() -> FakeSender:
    return FakeSender()


@pytest.fixture()
def state(settings: SimpleNamespace, sender: FakeSender) -> AppState:
    """
    AppState wired with a fake sender.

    NOTE: We keep the real SQLite store here because its correctness
    is part of what we want to test.
    """
    return create_initial_state(settings=settings, sender=sender)


@pytest.fixture()
def store(tmp_path: Path) -> TaskStore:
    return TaskStore(tmp_path / "store.sqlite3")


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(ts(2024, 1, 15, 9, 0))


@pytest.fixture()
def notifier() -> EventNotifier:
    return EventNotifier()


@pytest.fixture()
def recorder(notifier: EventNotifier) -> EventRecorder:
    rec = EventRecorder()
    notifier.subscribe(GLOBAL_SCOPE, rec)
    return rec


@pytest.fixture()
def tasks(store: TaskStore, notifier: EventNotifier, clock: FakeClock) -> TaskService:
    return TaskService(store, notifier, clock=clock)
