# tests/test_reminder_scheduler.py

from __future__ import annotations

import asyncio

import pytest

from taskhub.core.events import EventNotifier, user_scope
from taskhub.core.locks import KeyedLocks
from taskhub.errors import NotFound
from taskhub.reminders.delivery import ContactBook
from taskhub.reminders.scheduler import ReminderScheduler
from taskhub.reminders.service import ReminderService
from taskhub.tasks.store import TaskStore

from .fakes import EventRecorder, FakeSender, failing_sender, ts

NOW = ts(2024, 3, 1, 12, 0)


def make_scheduler(store: TaskStore, sender: FakeSender, notifier: EventNotifier, locks: KeyedLocks):
    return ReminderScheduler(
        store,
        sender,
        ContactBook({"alice": "alice@example.com"}),
        notifier,
        locks=locks,
        interval_seconds=0.01,
    )


@pytest.fixture()
def locks() -> KeyedLocks:
    return KeyedLocks()


@pytest.fixture()
def reminders(store: TaskStore, locks: KeyedLocks) -> ReminderService:
    return ReminderService(store, locks=locks)


@pytest.mark.asyncio
async def test_due_reminder_is_delivered_once_and_marked_sent(store, notifier, locks, reminders, tasks) -> None:
    task = tasks.create({"title": "Pay invoice"})
    rem = reminders.create(task.id, "alice", NOW - 60)
    sender = FakeSender()
    events = EventRecorder()
    notifier.subscribe(user_scope("alice"), events)
    scheduler = make_scheduler(store, sender, notifier, locks)

    assert await scheduler.run_once(NOW) == [rem.id]
    assert reminders.get(rem.id).sent is True
    assert len(sender.sent) == 1
    assert sender.sent[0].contact == "alice@example.com"
    assert sender.sent[0].subject == "Reminder: Pay invoice"
    assert "Pay invoice" in sender.sent[0].body

    assert events.names() == ["reminder:sent"]
    assert events.events[0][2]["id"] == rem.id
    assert events.events[0][2]["sent"] is True

    # later scans never re-deliver
    assert await scheduler.run_once(NOW + 60) == []
    assert await scheduler.run_once(NOW + 3600) == []
    assert sender.attempts == 1


@pytest.mark.asyncio
async def test_future_and_unscheduled_reminders_are_not_due(store, notifier, locks, reminders) -> None:
    reminders.create("t1", "alice", NOW + 1)
    reminders.create("t1", "alice", None)
    sender = FakeSender()
    scheduler = make_scheduler(store, sender, notifier, locks)

    assert scheduler.due_reminders(NOW) == []
    assert await scheduler.run_once(NOW) == []
    assert sender.attempts == 0


@pytest.mark.asyncio
async def test_snoozed_reminder_waits_until_snooze_ends(store, notifier, locks, reminders) -> None:
    rem = reminders.create("t1", "alice", NOW - 600)
    reminders.snooze(rem.id, NOW + 300)
    sender = FakeSender()
    scheduler = make_scheduler(store, sender, notifier, locks)

    # due regardless of snooze, but skipped while the snooze is active
    assert [r.id for r in scheduler.due_reminders(NOW)] == [rem.id]
    assert await scheduler.run_once(NOW) == []
    assert await scheduler.run_once(NOW + 299) == []
    assert sender.attempts == 0
    assert reminders.get(rem.id).sent is False

    # eligible the instant now >= snoozed_until
    assert await scheduler.run_once(NOW + 300) == [rem.id]
    assert reminders.get(rem.id).sent is True


@pytest.mark.asyncio
async def test_snooze_after_scan_query_prevents_delivery(store, notifier, locks, reminders, monkeypatch) -> None:
    rem = reminders.create("t1", "alice", NOW - 60)
    sender = FakeSender()
    scheduler = make_scheduler(store, sender, notifier, locks)

    # the scan query ran before the snooze landed
    stale = scheduler.due_reminders(NOW)
    assert [r.id for r in stale] == [rem.id]
    reminders.snooze(rem.id, NOW + 600)
    monkeypatch.setattr(scheduler, "due_reminders", lambda now_ts: stale)

    assert await scheduler.run_once(NOW) == []
    assert sender.attempts == 0
    assert reminders.get(rem.id).sent is False

    monkeypatch.undo()
    assert await scheduler.run_once(NOW + 600) == [rem.id]
    assert sender.attempts == 1


@pytest.mark.asyncio
async def test_snooze_does_not_reset_sent(store, notifier, locks, reminders) -> None:
    rem = reminders.create("t1", "alice", NOW - 1)
    sender = FakeSender()
    scheduler = make_scheduler(store, sender, notifier, locks)
    await scheduler.run_once(NOW)

    snoozed = reminders.snooze(rem.id, NOW - 100)
    assert snoozed.sent is True
    assert await scheduler.run_once(NOW + 10) == []
    assert sender.attempts == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", ["raises", "returns_false"])
async def test_failed_delivery_is_retried_on_next_scan(store, notifier, locks, reminders, failure) -> None:
    rem = reminders.create("t1", "alice", NOW - 1)
    sender = failing_sender() if failure == "raises" else FakeSender(fail_with=False)
    events = EventRecorder()
    notifier.subscribe(user_scope("alice"), events)
    scheduler = make_scheduler(store, sender, notifier, locks)

    assert await scheduler.run_once(NOW) == []
    assert reminders.get(rem.id).sent is False
    assert events.events == []

    sender.fail_with = None
    assert await scheduler.run_once(NOW + 60) == [rem.id]
    assert reminders.get(rem.id).sent is True
    assert sender.attempts == 2


@pytest.mark.asyncio
async def test_unexpected_sender_error_leaves_reminder_unsent(store, notifier, locks, reminders) -> None:
    rem = reminders.create("t1", "alice", NOW - 1)
    sender = FakeSender(fail_with=RuntimeError("boom"))
    scheduler = make_scheduler(store, sender, notifier, locks)

    assert await scheduler.run_once(NOW) == []
    assert reminders.get(rem.id).sent is False


@pytest.mark.asyncio
async def test_reminder_without_contact_stays_unsent(store, notifier, locks, reminders) -> None:
    rem = reminders.create("t1", "nobody", NOW - 1)
    sender = FakeSender()
    scheduler = make_scheduler(store, sender, notifier, locks)

    assert await scheduler.run_once(NOW) == []
    assert sender.attempts == 0
    assert reminders.get(rem.id).sent is False


@pytest.mark.asyncio
async def test_one_failure_does_not_block_other_reminders(store, notifier, locks, reminders) -> None:
    ok_1 = reminders.create("t1", "alice", NOW - 30)
    orphan = reminders.create("t2", "nobody", NOW - 20)
    ok_2 = reminders.create("t3", "alice", NOW - 10)
    sender = FakeSender()
    scheduler = make_scheduler(store, sender, notifier, locks)

    sent = await scheduler.run_once(NOW)

    assert sorted(sent) == sorted([ok_1.id, ok_2.id])
    assert reminders.get(orphan.id).sent is False


@pytest.mark.asyncio
async def test_start_stop_lifecycle_runs_periodic_scans(store, notifier, locks, reminders) -> None:
    rem = reminders.create("t1", "alice", 0.0)
    sender = FakeSender()
    scheduler = make_scheduler(store, sender, notifier, locks)

    scheduler.start()
    assert scheduler.running
    with pytest.raises(RuntimeError):
        scheduler.start()

    await asyncio.sleep(0.05)
    await scheduler.stop()

    assert not scheduler.running
    assert reminders.get(rem.id).sent is True
    assert len(sender.sent) == 1


def test_snooze_unknown_reminder_raises_not_found(reminders) -> None:
    with pytest.raises(NotFound):
        reminders.snooze("missing", NOW)


def test_contact_book_lookup() -> None:
    book = ContactBook({"alice": "alice@example.com"})
    assert book.contact_for("alice") == "alice@example.com"
    assert book.contact_for("carol@example.com") == "carol@example.com"
    assert book.contact_for("!room:example.org") == "!room:example.org"
    assert book.contact_for("dave") is None
