# src/taskhub/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Local, safe overrides through an optional config_local.py.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKHUB"

logger = logging.getLogger(__name__)

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_mapping(name: str) -> dict[str, str]:
    """Parse "user=contact, user2=contact2" pairs."""
    raw = os.getenv(name) or ""
    out: dict[str, str] = {}
    for part in raw.replace(";", ",").split(","):
        key, sep, value = part.partition("=")
        if sep and key.strip() and value.strip():
            out[key.strip()] = value.strip()
    return out


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    # ---- Reminder scheduler ----
    reminder_interval_seconds: float
    reminder_max_concurrent: int
    delivery_backend: str  # log | smtp | matrix
    user_contacts: dict[str, str]

    # ---- SMTP ----
    smtp_host: str
    smtp_port: int
    smtp_use_tls: bool
    smtp_user: str | None
    smtp_password: str | None
    from_email: str

    # ---- Matrix ----
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_store_path: Path

    # ---- Console ----
    console_enabled: bool
    console_user_id: str

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskhub")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskhub"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "taskhub.sqlite3")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            db_path=db_path,
            reminder_interval_seconds=_env_float(_k("REMINDER_INTERVAL_SECONDS"), 60.0),
            reminder_max_concurrent=_env_int(_k("REMINDER_MAX_CONCURRENT"), 8),
            delivery_backend=_env(_k("DELIVERY_BACKEND"), "log").strip().lower(),
            user_contacts=_env_mapping(_k("USER_CONTACTS")),
            smtp_host=_env(_k("SMTP_HOST"), "smtp.example.com"),
            smtp_port=_env_int(_k("SMTP_PORT"), 587),
            smtp_use_tls=_env_bool(_k("SMTP_TLS"), True),
            smtp_user=_env(_k("SMTP_USER")) or None,
            smtp_password=_env(_k("SMTP_PASSWORD")) or None,
            from_email=_env(_k("FROM_EMAIL"), "no-reply@example.com"),
            matrix_homeserver=_env(_k("MATRIX_HOMESERVER")).strip(),
            matrix_user_id=_env(_k("MATRIX_USER_ID")).strip(),
            matrix_password=_env(_k("MATRIX_PASSWORD")).strip(),
            matrix_store_path=_env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store"),
            console_enabled=_env_bool(_k("CONSOLE_ENABLED"), True),
            console_user_id=_env(_k("CONSOLE_USER_ID"), "console"),
        )


SETTINGS = Settings.from_env()

# ---- Optional local overrides (never committed) ----
# Prefer .env for secrets; use config_local.py only for safe overrides.
try:
    import config_local as _config_local  # type: ignore
except ImportError:
    _config_local = None

if _config_local is not None:
    for _name in ("CONSOLE_ENABLED", "DELIVERY_BACKEND", "REMINDER_INTERVAL_SECONDS"):
        if hasattr(_config_local, _name):
            object.__setattr__(SETTINGS, _name.lower(), getattr(_config_local, _name))  # type: ignore[misc]
            logger.debug("config_local override: %s", _name)


def get_settings() -> Settings:
    return SETTINGS
