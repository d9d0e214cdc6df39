"""Mail outbox model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text

from pastebox.database import Base


class OutboxMessage(Base):
    """Email queued for delivery by the outbox worker."""

    __tablename__ = "mail_outbox"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient = Column(String(256), nullable=False)
    subject = Column(String(256), nullable=False)
    body = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="pending", index=True)  # pending, sent, failed
    attempts = Column(Integer, nullable=False, default=0)
    next_attempt_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    sent_at = Column(DateTime, nullable=True)
