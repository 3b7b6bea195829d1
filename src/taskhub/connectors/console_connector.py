# src/taskhub/connectors/console_connector.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from ..cli.commands import registry as command_registry
from ..core.events import REMINDER_SENT, user_scope
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def run_console_loop(state: AppState) -> None:
    """
    Blocking REPL: every line is a slash command executed as the console user.

    Reminders fired for the console user are echoed as they arrive.
    """
    user_id = str(getattr(state.settings, "console_user_id", "console"))
    logger.info("Console connector started (user=%s).", user_id)
    _print_ts("[CONSOLE] Type /help for commands. Use /exit to quit.\n")

    def on_reminder(scope: str, event: str, payload: dict[str, Any]) -> None:
        if event != REMINDER_SENT:
            return
        _print_ts(f"[REMINDER] task {payload.get('task_id')} (reminder {payload.get('id')})")

    unsubscribe = state.notifier.subscribe(user_scope(user_id), on_reminder)

    try:
        while True:
            try:
                line = input(">>> ").strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not line:
                continue

            if line.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            try:
                reply = command_registry.handle(state, line, user_id=user_id, emit=_print_ts)
            except Exception:
                logger.exception("Command handler crashed.")
                reply = "Internal error while handling a command."

            if reply is None:
                reply = "Commands start with '/'. Use /help to list them."
            _print_ts(reply)
    finally:
        unsubscribe()

    logger.info("Console connector finished.")
