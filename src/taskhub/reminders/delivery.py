# src/taskhub/reminders/delivery.py

"""
Reminder delivery collaborators.

Each sender implements `async send(contact, subject, body) -> bool` and raises
DeliveryFailed (or returns False) when the message did not go out.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from collections.abc import Mapping
from email.message import EmailMessage

from nio import RoomSendResponse

from ..core.ports import ReminderSender
from ..errors import DeliveryFailed

logger = logging.getLogger(__name__)


class LogReminderSender:
    """
    Offline sender used when no transport is configured.

    Writes the reminder to the log and reports success.
    """

    async def send(self, contact: str, subject: str, body: str) -> bool:
        logger.info("REMINDER to=%s subject=%r body=%r", contact, subject, body)
        return True

    async def close(self) -> None:
        return


class SmtpReminderSender:
    """Email delivery through an SMTP relay (blocking smtplib call run in a worker thread)."""

    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        use_tls: bool = True,
        username: str | None = None,
        password: str | None = None,
        from_email: str = "no-reply@example.com",
        timeout: float = 30.0,
    ) -> None:
        self._host = host
        self._port = int(port)
        self._use_tls = use_tls
        self._username = username
        self._password = password
        self._from_email = from_email
        self._timeout = timeout

    def _send_sync(self, contact: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self._from_email
        msg["To"] = contact
        msg["Subject"] = subject
        msg.set_content(body)

        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
            if self._use_tls:
                smtp.starttls()
            if self._username:
                smtp.login(self._username, self._password or "")
            smtp.send_message(msg)

    async def send(self, contact: str, subject: str, body: str) -> bool:
        if "@" not in contact:
            raise DeliveryFailed(f"not an email address: {contact!r}")
        try:
            await asyncio.to_thread(self._send_sync, contact, subject, body)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryFailed(f"SMTP send to {contact} failed: {e}") from e
        logger.debug("Reminder email sent to %s", contact)
        return True

    async def close(self) -> None:
        return


class MatrixReminderSender:
    """
    Matrix delivery: the contact is a room id (e.g. a DM room with the user).

    The nio client is created lazily on the scheduler's event loop and reused.
    """

    def __init__(self, settings) -> None:
        self._settings = settings
        self._client = None
        self._lock = asyncio.Lock()

    async def _get_client(self):
        async with self._lock:
            if self._client is None:
                from ..connectors.matrix_client import create_matrix_client

                self._client = await create_matrix_client(self._settings)
            return self._client

    async def send(self, contact: str, subject: str, body: str) -> bool:
        client = await self._get_client()
        if client is None:
            raise DeliveryFailed("Matrix client is not available")

        resp = await client.room_send(
            room_id=contact,
            message_type="m.room.message",
            content={"msgtype": "m.text", "body": f"{subject}\n{body}"},
            ignore_unverified_devices=True,
        )
        if not isinstance(resp, RoomSendResponse):
            raise DeliveryFailed(f"Matrix send to {contact} failed: {resp!r}")
        return True

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.close()


class ContactBook:
    """
    User id -> contact address.

    Explicit entries win; otherwise a user id that already looks like an
    address (email or Matrix room id) is used as is.
    """

    def __init__(self, contacts: Mapping[str, str] | None = None) -> None:
        self._contacts = dict(contacts or {})

    def contact_for(self, user_id: str) -> str | None:
        contact = self._contacts.get(user_id)
        if contact:
            return contact
        if "@" in user_id or user_id.startswith("!"):
            return user_id
        return None


def build_sender(settings) -> ReminderSender:
    backend = (getattr(settings, "delivery_backend", "log") or "log").strip().lower()

    if backend == "smtp":
        return SmtpReminderSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            use_tls=settings.smtp_use_tls,
            username=settings.smtp_user,
            password=settings.smtp_password,
            from_email=settings.from_email,
        )

    if backend == "matrix":
        return MatrixReminderSender(settings)

    if backend != "log":
        logger.warning("Unknown delivery backend %r; falling back to log delivery", backend)
    return LogReminderSender()
