# config_local.example.py

"""
Example local overrides.

Usage:
  1) Copy this file to `config_local.py`
  2) Adjust values for your machine
  3) Never commit `config_local.py` (it is gitignored)

Prefer `.env` for secrets. This file should contain only safe overrides.
"""

# Example: run headless (scheduler only)
# CONSOLE_ENABLED = False

# Example: deliver reminders by mail
# DELIVERY_BACKEND = "smtp"

# Example: scan for due reminders more often while testing
# REMINDER_INTERVAL_SECONDS = 5.0
