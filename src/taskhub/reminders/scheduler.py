# src/taskhub/reminders/scheduler.py

from __future__ import annotations

"""
Reminder scheduler.

A small polling loop that, every interval:
- fetches due reminders (unsent, remind_at <= now),
- skips reminders whose snooze is still active,
- delivers each remaining reminder once through an injected sender,
- marks it sent only after a confirmed delivery.

A failed delivery leaves the reminder unsent, so the next scan retries it
(at-least-once). Transport details (SMTP, Matrix, ...) belong to the sender.
"""

import asyncio
import contextlib
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from ..core.events import REMINDER_SENT, user_scope
from ..core.locks import KeyedLocks
from ..core.ports import ContactResolver, EventSink, ReminderSender
from ..errors import DeliveryFailed
from ..tasks.models import Reminder, Task
from ..tasks.store import TaskStore

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ReminderMessage:
    """What the scheduler wants delivered; the sender decides how."""

    reminder: Reminder
    contact: str
    subject: str
    body: str


def build_message(reminder: Reminder, task: Task | None, contact: str) -> ReminderMessage:
    title = (task.title if task else "").strip()
    when = ""
    if reminder.remind_at is not None:
        when = datetime.fromtimestamp(reminder.remind_at, tz=UTC).strftime("%Y-%m-%d %H:%M UTC")
    return ReminderMessage(
        reminder=reminder,
        contact=contact,
        subject=f"Reminder: {title or 'Task'}",
        body=f"Reminder for task: {title} - scheduled at {when}",
    )


def is_eligible(reminder: Reminder, now_ts: float) -> bool:
    return (
        not reminder.sent
        and reminder.remind_at is not None
        and reminder.remind_at <= now_ts
        and not reminder.is_snoozed(now_ts)
    )


class ReminderScheduler:
    """
    Owns one periodic asyncio task; start() and stop() bracket its lifetime.

    Deliveries for distinct reminders run concurrently (bounded by
    max_concurrent); a reminder's own re-check and sent-flag write happen
    under its keyed lock, shared with ReminderService.snooze().
    """

    def __init__(
        self,
        store: TaskStore,
        sender: ReminderSender,
        contacts: ContactResolver,
        notifier: EventSink,
        *,
        locks: KeyedLocks | None = None,
        interval_seconds: float = 60.0,
        max_concurrent: int = 8,
        batch_limit: int = 256,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._sender = sender
        self._contacts = contacts
        self._notifier = notifier
        self._locks = locks or KeyedLocks()
        self._interval = max(0.01, float(interval_seconds))
        self._max_concurrent = max(1, int(max_concurrent))
        self._batch_limit = max(1, int(batch_limit))
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ---- one scan ----

    def due_reminders(self, now_ts: float) -> list[Reminder]:
        """Unsent reminders with remind_at <= now, regardless of snooze."""
        return self._store.list_due_reminders(now_ts=now_ts, limit=self._batch_limit)

    async def run_once(self, now_ts: float | None = None) -> list[str]:
        """Scan once. Returns the ids of reminders delivered and marked sent."""
        if now_ts is None:
            now_ts = self._clock()

        candidates = [r for r in self.due_reminders(now_ts) if not r.is_snoozed(now_ts)]
        if not candidates:
            return []

        sem = asyncio.Semaphore(self._max_concurrent)
        results = await asyncio.gather(
            *(self._deliver(r.id, now_ts, sem) for r in candidates),
            return_exceptions=True,
        )

        sent: list[str] = []
        for reminder, res in zip(candidates, results):
            if isinstance(res, BaseException):
                logger.error("Reminder %s processing failed: %r", reminder.id, res)
            elif res:
                sent.append(reminder.id)

        logger.info("Reminder scan: due=%d sent=%d", len(candidates), len(sent))
        return sent

    async def _deliver(self, reminder_id: str, now_ts: float, sem: asyncio.Semaphore) -> bool:
        async with sem:
            # Re-check under the lock: a snooze may have landed since the scan query.
            with self._locks.hold(reminder_id):
                reminder = self._store.get_reminder(reminder_id)
                if reminder is None or not is_eligible(reminder, now_ts):
                    return False

            contact = self._contacts.contact_for(reminder.user_id)
            if not contact:
                logger.warning("No contact for user %s; reminder %s left unsent", reminder.user_id, reminder.id)
                return False

            msg = build_message(reminder, self._store.get_task(reminder.task_id), contact)

            try:
                ok = await self._sender.send(msg.contact, msg.subject, msg.body)
            except DeliveryFailed as e:
                logger.warning("Reminder %s delivery failed: %s", reminder.id, e)
                return False
            except Exception:
                logger.exception("Reminder %s delivery crashed", reminder.id)
                return False

            if not ok:
                logger.warning("Reminder %s delivery reported failure", reminder.id)
                return False

            with self._locks.hold(reminder_id):
                if not self._store.mark_reminder_sent(reminder_id):
                    logger.warning("Reminder %s was already marked sent", reminder_id)
                    return False
                reminder.sent = True

            logger.info("Reminder %s sent to user %s", reminder.id, reminder.user_id)
            self._notifier.publish(user_scope(reminder.user_id), REMINDER_SENT, reminder.to_dict())
            return True

    # ---- lifecycle ----

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Reminder scan failed")
            await asyncio.sleep(self._interval)

    def start(self) -> asyncio.Task[None]:
        """Start the periodic scan on the running event loop."""
        if self.running:
            raise RuntimeError("ReminderScheduler is already running")
        self._task = asyncio.get_running_loop().create_task(self._loop(), name="reminder-scheduler")
        logger.info("Reminder scheduler started interval=%ss", self._interval)
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Reminder scheduler stopped.")


@dataclass
class SchedulerBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal scheduler stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_scheduler_in_background(
    scheduler: ReminderScheduler,
    *,
    on_shutdown: Callable[[], object] | None = None,
) -> SchedulerBackgroundRunner | None:
    """
    Run the scheduler on its own event loop in a daemon thread,
    so the blocking console REPL and the periodic scan never wait on each other.

    on_shutdown may return an awaitable (e.g. a sender's close()); it runs on
    the scheduler loop after the scheduler stops.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    async def _main(stop_event: asyncio.Event) -> None:
        scheduler.start()
        try:
            await stop_event.wait()
        finally:
            await scheduler.stop()
            if on_shutdown is not None:
                res = on_shutdown()
                if asyncio.iscoroutine(res):
                    with contextlib.suppress(Exception):
                        await res

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_main(stop_event))
        finally:
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="reminder-scheduler", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Scheduler thread did not initialize properly.")
        return None

    logger.info("Reminder scheduler background thread started.")
    return SchedulerBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
