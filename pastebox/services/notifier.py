"""Outbound email delivery.

``SMTPNotifier`` talks to the relay configured by the EMAIL_* settings.
``ConsoleNotifier`` logs messages instead and is used when no relay host is
configured, so links can still be picked up from the server log in
development.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Protocol

from pastebox.config import get_settings
from pastebox.exceptions import MailDispatchFailure

logger = logging.getLogger("pastebox")


class Notifier(Protocol):
    def send(self, recipient: str, subject: str, body: str) -> None: ...


class SMTPNotifier:
    """Sends plain-text email through an SMTP relay. Raises MailDispatchFailure on any error."""

    def __init__(
        self,
        host: str,
        port: int,
        secure: bool,
        username: str,
        password: str,
        sender: str,
        timeout: float,
    ) -> None:
        self.host = host
        self.port = port
        self.secure = secure
        self.username = username
        self.password = password
        self.sender = sender
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.secure:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context)
        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        server.ehlo()
        if server.has_extn("starttls"):
            server.starttls(context=context)
            server.ehlo()
        return server

    def send(self, recipient: str, subject: str, body: str) -> None:
        try:
            msg = EmailMessage()
            msg["Subject"] = subject
            msg["From"] = self.sender
            msg["To"] = recipient
            msg.set_content(body)
            with self._connect() as server:
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError, ValueError) as e:
            raise MailDispatchFailure(f"Error sending email to {recipient}: {e}") from e


class ConsoleNotifier:
    """Writes messages to the log instead of sending them."""

    def send(self, recipient: str, subject: str, body: str) -> None:
        logger.info("MAIL to=%s subject=%r: %s", recipient, subject, body)


_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    """Get singleton notifier for the configured relay."""
    global _notifier
    if _notifier is None:
        settings = get_settings()
        if settings.EMAIL_HOST:
            _notifier = SMTPNotifier(
                host=settings.EMAIL_HOST,
                port=settings.EMAIL_PORT,
                secure=settings.EMAIL_SECURE,
                username=settings.EMAIL_USER,
                password=settings.EMAIL_PASS,
                sender=settings.EMAIL_FROM,
                timeout=settings.EMAIL_TIMEOUT_SECONDS,
            )
        else:
            _notifier = ConsoleNotifier()
    return _notifier
