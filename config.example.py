# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Use:
- .env (local, gitignored)
- config_local.py (local safe overrides, gitignored)
"""

ENV_VARS = {
    # App / logging
    "TASKHUB_APP_NAME": "App display name (default: taskhub).",
    "TASKHUB_LOG_LEVEL": "Console logging level (default: INFO).",
    # Paths (gitignored)
    "TASKHUB_DATA_DIR": "Local data directory (default: .local/taskhub).",
    "TASKHUB_DB_PATH": "SQLite database path (default: <data_dir>/taskhub.sqlite3).",
    # Reminder scheduler
    "TASKHUB_REMINDER_INTERVAL_SECONDS": "Seconds between due-reminder scans (default: 60).",
    "TASKHUB_REMINDER_MAX_CONCURRENT": "Max deliveries in flight per scan (default: 8).",
    "TASKHUB_DELIVERY_BACKEND": "log | smtp | matrix (default: log).",
    "TASKHUB_USER_CONTACTS": "user=contact pairs, comma separated (e.g. alice=alice@example.com).",
    # SMTP
    "TASKHUB_SMTP_HOST": "SMTP relay host.",
    "TASKHUB_SMTP_PORT": "SMTP relay port (default: 587).",
    "TASKHUB_SMTP_TLS": "Use STARTTLS (true/false, default: true).",
    "TASKHUB_SMTP_USER": "SMTP login (optional).",
    "TASKHUB_SMTP_PASSWORD": "SMTP password (optional).",
    "TASKHUB_FROM_EMAIL": "Sender address for reminder mail.",
    # Matrix
    "TASKHUB_MATRIX_HOMESERVER": "Matrix homeserver URL.",
    "TASKHUB_MATRIX_USER_ID": "Matrix user ID (bot).",
    "TASKHUB_MATRIX_PASSWORD": "Password for first login (session stored locally).",
    "TASKHUB_MATRIX_STORE_PATH": "Matrix session store path (default: <data_dir>/matrix_store).",
    # Console
    "TASKHUB_CONSOLE_ENABLED": "Enable the interactive console (true/false).",
    "TASKHUB_CONSOLE_USER_ID": "User id the console acts as (default: console).",
}
