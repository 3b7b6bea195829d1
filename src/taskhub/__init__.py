"""taskhub: task lifecycle engine (dependencies, recurrence, reminders, offline sync)."""

__version__ = "0.1.0"
