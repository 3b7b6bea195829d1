# src/taskhub/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The lifecycle code depends on Protocols instead of concrete implementations,
so delivery transports and contact lookup stay swappable and tests can use fakes.
"""

from typing import Any, Awaitable, Protocol


class ReminderSender(Protocol):
    """
    Delivery collaborator for reminders.

    Returns True on confirmed delivery. False or an exception means the
    reminder stays unsent and is retried on the next scan.
    """

    def send(self, contact: str, subject: str, body: str) -> Awaitable[bool]: ...


class ContactResolver(Protocol):
    """Maps a user id to a transport address (email, Matrix room id, ...)."""

    def contact_for(self, user_id: str) -> str | None: ...


class EventSink(Protocol):
    def publish(self, scope: str, event: str, payload: dict[str, Any]) -> None: ...
