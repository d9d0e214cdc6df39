"""User model."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String

from pastebox.database import Base


class User(Base):
    """Registered account. Never deleted."""

    __tablename__ = "user"

    id = Column(String(32), primary_key=True)
    email = Column(String(256), unique=True, nullable=False, index=True)
    password_hash = Column(String(256), nullable=False)
    verified = Column(Boolean, nullable=False, default=False)
    # Kept after use so repeated verification succeeds
    verification_token = Column(String(64), nullable=True, index=True)
    # Cleared once consumed
    reset_token = Column(String(64), nullable=True, index=True)
    joined = Column(DateTime, nullable=False, default=datetime.utcnow)
    profile_picture = Column(String(512), nullable=True)

    @property
    def pastes(self) -> list[str]:
        """Paste ids owned by this user. Paste creation is anonymous, so always empty."""
        return []
