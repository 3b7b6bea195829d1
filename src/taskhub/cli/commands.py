# src/taskhub/cli/commands.py

from __future__ import annotations

import inspect
import json
import logging
import re
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, cast

from ..core.state import AppState
from ..errors import TaskhubError
from ..tasks.models import Task, coerce_timestamp

CommandEmitter = Callable[[str], None]
CommandHandler3 = Callable[[AppState, list[str], str | None], str]
CommandHandler4 = Callable[[AppState, list[str], str | None, CommandEmitter | None], str]
CommandHandler = CommandHandler3 | CommandHandler4

logger = logging.getLogger(__name__)

_RELATIVE_RE = re.compile(r"^\+(\d+)([mhd]?)$")
_UNIT_SECONDS = {"": 60, "m": 60, "h": 3600, "d": 86400}


class CommandRegistry:
    """Slash-command registry used by the console connector (/help, /task, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        user_id: str | None = None,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Domain errors become "Error: ..." replies; anything else propagates.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 4

        try:
            if nparams >= 4:
                return cast(CommandHandler4, handler)(state, args, user_id, emit)
            return cast(CommandHandler3, handler)(state, args, user_id)
        except TaskhubError as e:
            logger.info("/%s failed: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M")


def parse_when(raw: str, *, now_ts: float | None = None) -> float | None:
    """"+30" / "+30m" / "+2h" / "+1d" relative to now, otherwise an ISO-8601 timestamp."""
    m = _RELATIVE_RE.match(raw.strip())
    if m:
        base = time.time() if now_ts is None else now_ts
        return base + int(m.group(1)) * _UNIT_SECONDS[m.group(2)]
    return coerce_timestamp(raw, field_name="when")


def _split_options(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """Split "--key value" pairs from positional words."""
    words: list[str] = []
    opts: dict[str, str] = {}
    i = 0
    while i < len(args):
        tok = args[i]
        if tok.startswith("--") and i + 1 < len(args):
            opts[tok[2:].lower()] = args[i + 1]
            i += 2
            continue
        words.append(tok)
        i += 1
    return words, opts


def _task_line(t: Task) -> str:
    mark = "x" if t.completed else " "
    extra = []
    if t.due_at is not None:
        extra.append(f"due {_fmt_ts(t.due_at)}")
    if t.recurrence:
        extra.append(f"every {t.recurrence.value}")
    if t.assignee:
        extra.append(f"@{t.assignee}")
    suffix = f" ({', '.join(extra)})" if extra else ""
    return f"[{mark}] {t.id}  {t.title} [{t.priority.value}]{suffix}"


def _task_payload(opts: dict[str, str], *, now_ts: float | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if "due" in opts:
        payload["due_at"] = parse_when(opts["due"], now_ts=now_ts)
    if "priority" in opts:
        payload["priority"] = opts["priority"]
    if "every" in opts:
        payload["recurrence"] = None if opts["every"] in ("none", "-") else opts["every"]
    if "assignee" in opts:
        payload["assignee"] = opts["assignee"]
    if "desc" in opts:
        payload["description"] = opts["desc"]
    if "title" in opts:
        payload["title"] = opts["title"]
    return payload


# ---- handlers ----


def cmd_help(state: AppState, args: list[str], user_id: str | None) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], user_id: str | None) -> str:
    tasks = state.tasks.list_all()
    open_count = sum(1 for t in tasks if not t.completed)
    pending = sum(1 for r in state.reminders.list_reminders() if not r.sent)
    return (
        "Status:\n"
        f"  Database: {state.store.db_path}\n"
        f"  Tasks: {len(tasks)} ({open_count} open)\n"
        f"  Pending reminders: {pending}\n"
        f"  Delivery: {type(state.sender).__name__}\n"
        f"  Scheduler: {'running' if state.scheduler.running else 'stopped'}"
    )


def cmd_task(state: AppState, args: list[str], user_id: str | None) -> str:
    """
    /task add <title> [--due +1d|ISO] [--priority high|medium|low] [--every daily|weekly|monthly]
              [--assignee u] [--desc text]
    /task list
    /task show <id>
    /task done <id> | /task undo <id>
    /task set <id> [--title t] [--due ...] [--priority ...] [--every ...] [--assignee ...]
    /task rm <id>
    """
    usage = "Usage: /task add|list|show|done|undo|set|rm ..."
    if not args:
        return usage

    sub, rest = args[0].lower(), args[1:]
    words, opts = _split_options(rest)

    if sub == "add":
        if not words:
            return "Usage: /task add <title> [--due ...] [--priority ...] [--every ...]"
        payload = _task_payload(opts)
        payload["title"] = " ".join(words)
        task = state.tasks.create(payload, created_by=user_id)
        return f"Created {_task_line(task)}"

    if sub in ("list", "ls"):
        tasks = state.tasks.list_all()
        if not tasks:
            return "No tasks."
        return "\n".join(_task_line(t) for t in tasks)

    if not words:
        return usage
    task_id = words[0]

    if sub == "show":
        task = state.tasks.get(task_id)
        lines = [_task_line(task)]
        if task.description:
            lines.append(f"  {task.description}")
        deps = state.tasks.dependencies(task_id)
        if deps:
            lines.append(f"  depends on: {', '.join(deps)}")
        for c in state.tasks.comments(task_id):
            lines.append(f"  [{_fmt_ts(c.created_at)}] {c.user_id}: {c.content}")
        return "\n".join(lines)

    if sub == "done":
        before = {t.id for t in state.tasks.list_all()}
        task = state.tasks.update(task_id, {"completed": True})
        spawned = [t for t in state.tasks.list_all() if t.id not in before]
        reply = f"Completed {_task_line(task)}"
        for nxt in spawned:
            reply += f"\nNext occurrence: {_task_line(nxt)}"
        return reply

    if sub == "undo":
        task = state.tasks.update(task_id, {"completed": False})
        return f"Reopened {_task_line(task)}"

    if sub == "set":
        payload = _task_payload(opts)
        if not payload:
            return "Nothing to change. Use --title/--due/--priority/--every/--assignee/--desc."
        task = state.tasks.update(task_id, payload)
        return f"Updated {_task_line(task)}"

    if sub in ("rm", "delete"):
        state.tasks.delete(task_id)
        return f"Deleted task {task_id}."

    return usage


def cmd_dep(state: AppState, args: list[str], user_id: str | None) -> str:
    """
    /dep add <task> <prerequisite>
    /dep rm <task> <prerequisite>
    /dep ls <task>
    """
    if len(args) >= 3 and args[0].lower() == "add":
        added = state.tasks.add_dependency(args[1], args[2])
        return f"{args[1]} now depends on {args[2]}." if added else "Dependency already exists."
    if len(args) >= 3 and args[0].lower() == "rm":
        state.tasks.remove_dependency(args[1], args[2])
        return f"Removed dependency {args[1]} -> {args[2]}."
    if len(args) >= 2 and args[0].lower() == "ls":
        check = state.tasks.can_complete(args[1])
        deps = state.tasks.dependencies(args[1])
        if not deps:
            return f"{args[1]} has no dependencies."
        status = "ready" if check.allowed else f"blocked by {', '.join(check.blocking)}"
        return f"{args[1]} depends on {', '.join(deps)} ({status})."
    return "Usage: /dep add|rm <task> <prerequisite> | /dep ls <task>"


def cmd_remind(state: AppState, args: list[str], user_id: str | None) -> str:
    """/remind <task_id> <+30m|+2h|ISO> [user]"""
    if len(args) < 2:
        return "Usage: /remind <task_id> <+30m|+2h|+1d|ISO> [user]"
    target_user = args[2] if len(args) > 2 else (user_id or "")
    reminder = state.reminders.create(args[0], target_user, parse_when(args[1]))
    return f"Reminder {reminder.id} set for {_fmt_ts(reminder.remind_at)} ({target_user})."


def cmd_snooze(state: AppState, args: list[str], user_id: str | None) -> str:
    """/snooze <reminder_id> <+10m|ISO>"""
    if len(args) < 2:
        return "Usage: /snooze <reminder_id> <+10m|+1h|ISO>"
    reminder = state.reminders.snooze(args[0], parse_when(args[1]))
    return f"Reminder {reminder.id} snoozed until {_fmt_ts(reminder.snoozed_until)}."


def cmd_reminders(state: AppState, args: list[str], user_id: str | None) -> str:
    who = args[0] if args else None
    items = state.reminders.list_reminders(user_id=who)
    if not items:
        return "No reminders."
    lines = []
    for r in items:
        flag = "sent" if r.sent else ("snoozed" if r.is_snoozed(time.time()) else "pending")
        lines.append(f"{r.id}  task={r.task_id} user={r.user_id} at {_fmt_ts(r.remind_at)} [{flag}]")
    return "\n".join(lines)


def cmd_time(state: AppState, args: list[str], user_id: str | None) -> str:
    """
    /time start <task_id>
    /time stop <entry_id>
    /time report
    """
    sub = args[0].lower() if args else ""
    if sub == "start" and len(args) >= 2:
        entry = state.time.start(args[1], user_id or "")
        return f"Timer {entry.id} started on task {entry.task_id}."
    if sub == "stop" and len(args) >= 2:
        entry = state.time.stop(args[1])
        return f"Timer {entry.id} stopped: {entry.duration}s."
    if sub == "report":
        rows = state.time.productivity_report()
        if not rows:
            return "No finished time entries."
        return "\n".join(f"{uid}: {secs}s" for uid, secs in rows)
    return "Usage: /time start <task_id> | /time stop <entry_id> | /time report"


def cmd_comment(state: AppState, args: list[str], user_id: str | None) -> str:
    if len(args) < 2:
        return "Usage: /comment <task_id> <text>"
    state.tasks.get(args[0])
    comment = state.tasks.add_comment(args[0], user_id or "", " ".join(args[1:]))
    return f"Comment {comment.id} added."


def cmd_sync(
    state: AppState,
    args: list[str],
    user_id: str | None,
    emit: CommandEmitter | None = None,
) -> str:
    """/sync <file.json>: replay a queued batch ({"ops": [...]} or a bare list)."""
    if not args:
        return "Usage: /sync <file.json>"
    path = Path(args[0]).expanduser()
    if emit:
        emit(f"[SYNC] Replaying {path}...")
    try:
        data = json.loads(path.read_text("utf-8"))
    except (OSError, ValueError) as e:
        return f"Cannot read {path}: {e}"

    ops = data.get("ops", []) if isinstance(data, dict) else data
    if not isinstance(ops, list):
        return "Sync file must contain a list of operations."

    results = state.sync.apply(ops, user_id=user_id)
    lines = [f"Applied {len(results)} operation(s):"]
    for i, r in enumerate(results, start=1):
        lines.append(f"  {i}. ok {r.id}" if r.ok else f"  {i}. FAILED {r.error}")
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show database, counts and delivery backend.")
registry.register("task", cmd_task, help_text="Tasks: /task add|list|show|done|undo|set|rm.", aliases=["t"])
registry.register("dep", cmd_dep, help_text="Dependencies: /dep add|rm <task> <prereq> | /dep ls <task>.")
registry.register("remind", cmd_remind, help_text="Set a reminder: /remind <task_id> <+30m|ISO> [user].")
registry.register("snooze", cmd_snooze, help_text="Snooze a reminder: /snooze <reminder_id> <+10m|ISO>.")
registry.register("reminders", cmd_reminders, help_text="List reminders: /reminders [user].")
registry.register("time", cmd_time, help_text="Time tracking: /time start|stop|report.")
registry.register("comment", cmd_comment, help_text="Comment on a task: /comment <task_id> <text>.")
registry.register("sync", cmd_sync, help_text="Replay an offline batch: /sync <file.json>.")
