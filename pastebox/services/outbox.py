"""Mail outbox: durable queue of outgoing email plus the worker that drains it.

Requests only record the intent to send (``enqueue``) inside their own
transaction. The worker thread delivers pending messages through the
notifier, retrying failures with exponential backoff up to a fixed number of
attempts.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.orm import Session, sessionmaker

from pastebox.config import get_settings
from pastebox.database import SessionLocal, session_scope
from pastebox.exceptions import MailDispatchFailure
from pastebox.models.outbox import OutboxMessage
from pastebox.services.notifier import Notifier, get_notifier

logger = logging.getLogger("pastebox")


def enqueue(db: Session, recipient: str, subject: str, body: str) -> OutboxMessage:
    """Add a pending message to the caller's transaction. The caller commits."""
    message = OutboxMessage(
        recipient=recipient,
        subject=subject,
        body=body,
        status="pending",
        attempts=0,
        next_attempt_at=datetime.utcnow(),
    )
    db.add(message)
    return message


class OutboxWorker:
    """Delivers queued mail in a background thread."""

    def __init__(
        self,
        notifier: Notifier,
        session_factory: sessionmaker = SessionLocal,
        max_attempts: int = 5,
        backoff_seconds: float = 30,
        poll_seconds: float = 5,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.notifier = notifier
        self.session_factory = session_factory
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.poll_seconds = poll_seconds
        self.clock = clock
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: threading.Thread | None = None

    def backoff_for(self, attempts: int) -> timedelta:
        """Delay before the next try after ``attempts`` failed deliveries."""
        return timedelta(seconds=self.backoff_seconds * 2 ** (attempts - 1))

    def process_due(self, db: Session) -> int:
        """Try every due pending message once. Returns the number delivered."""
        now = self.clock()
        due = (
            db.query(OutboxMessage)
            .filter(OutboxMessage.status == "pending", OutboxMessage.next_attempt_at <= now)
            .order_by(OutboxMessage.id)
            .all()
        )
        delivered = 0
        for message in due:
            message.attempts += 1
            try:
                self.notifier.send(message.recipient, message.subject, message.body)
            except Exception as e:
                # Any failure counts as an attempt
                error = e.message if isinstance(e, MailDispatchFailure) else f"{type(e).__name__}: {e}"
                message.last_error = error
                if message.attempts >= self.max_attempts:
                    message.status = "failed"
                    logger.error(
                        "Outbox message %s to %s failed permanently after %d attempts: %s",
                        message.id,
                        message.recipient,
                        message.attempts,
                        error,
                    )
                else:
                    message.next_attempt_at = now + self.backoff_for(message.attempts)
                    logger.warning(
                        "Outbox message %s to %s failed (attempt %d/%d), retrying at %s: %s",
                        message.id,
                        message.recipient,
                        message.attempts,
                        self.max_attempts,
                        message.next_attempt_at.isoformat(),
                        error,
                    )
            else:
                message.status = "sent"
                message.sent_at = now
                message.last_error = None
                delivered += 1
                logger.info("Outbox message %s sent to %s", message.id, message.recipient)
            db.commit()
        return delivered

    def wake(self) -> None:
        """Ask the worker to check for due messages now instead of at the next poll."""
        self._wake.set()

    def _loop(self) -> None:
        while not self._stop.is_set():
            self._wake.clear()
            try:
                with session_scope(self.session_factory) as db:
                    self.process_due(db)
            except Exception:
                logger.exception("Outbox worker cycle error")
            self._wake.wait(self.poll_seconds)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="mail-outbox")
        self._thread.start()
        logger.info("Mail outbox worker started (poll every %ss)", self.poll_seconds)

    def stop(self) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout=self.poll_seconds + 1)
            if self._thread.is_alive():
                logger.warning("Mail outbox worker still running after stop timeout")
            self._thread = None
        logger.info("Mail outbox worker stopped")


_outbox_worker: OutboxWorker | None = None


def get_outbox_worker() -> OutboxWorker:
    """Get singleton outbox worker instance."""
    global _outbox_worker
    if _outbox_worker is None:
        settings = get_settings()
        _outbox_worker = OutboxWorker(
            notifier=get_notifier(),
            max_attempts=settings.OUTBOX_MAX_ATTEMPTS,
            backoff_seconds=settings.OUTBOX_BACKOFF_SECONDS,
            poll_seconds=settings.OUTBOX_POLL_SECONDS,
        )
    return _outbox_worker
