# src/taskhub/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Loggers that would flood the REPL at INFO: the reminder scan runs every
# interval and the Matrix sender logs each sync round-trip.
_BACKGROUND_LOGGERS = ("taskhub.reminders.scheduler", "taskhub.connectors.matrix_client")

_CONSOLE_FORMAT = "%(asctime)s %(levelname).1s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console-only filter.

    Background loggers and third-party libraries only reach the console at
    WARNING+ and ERROR+ respectively; everything else from taskhub passes.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith(_BACKGROUND_LOGGERS):
            return record.levelno >= logging.WARNING
        if name == "taskhub" or name.startswith("taskhub."):
            return True
        return record.levelno >= logging.ERROR


def parse_level(name: str | int | None, default: int = logging.INFO) -> int:
    """"debug" / "INFO" / 20 -> logging level; unknown names fall back to `default`."""
    if isinstance(name, int):
        return name
    level = logging.getLevelName(str(name or "").strip().upper())
    return level if isinstance(level, int) else default


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskhub",
    console_level: str | int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = 5_000_000,
    backup_count: int = 3,
) -> Path:
    """
    Configure root logging once, before the first log call:
    - stderr: short lines, filtered so the REPL stays readable;
    - <log_dir>/taskhub.log: everything, with thread names (the scheduler
      runs on its own thread), rotated by size.

    Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "taskhub.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(parse_level(console_level))
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    for noisy in ("nio", "aiohttp", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return log_file
