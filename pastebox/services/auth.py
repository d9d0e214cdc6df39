"""Authentication service: registration, verification, login, profile and password reset."""

import base64
import hashlib
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import bcrypt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pastebox.config import get_settings
from pastebox.exceptions import (
    DuplicateEmail,
    EmailNotFound,
    EmailNotVerified,
    InvalidCredentials,
    InvalidToken,
    PersistenceFailure,
    TokenNotFound,
    Unauthorized,
    UserNotFound,
)
from pastebox.models.user import User
from pastebox.services.jwt import JWTService, get_jwt_service
from pastebox.services.outbox import enqueue, get_outbox_worker
from pastebox.services.tokens import MAX_ID_ATTEMPTS, new_opaque_token, new_record_id

logger = logging.getLogger("pastebox")


@dataclass
class LoginResult:
    """Session issued by a successful login."""

    token: str
    profile_picture: str | None


class KeyedLock:
    """One lock per key, dropped again once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key, (threading.Lock(), 0))
            self._locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._locks[key]
                if users == 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _bcrypt_input(password: str) -> bytes:
    # bcrypt takes at most 72 bytes; the encoded digest is always 44
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_bcrypt_input(password), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(_bcrypt_input(password), password_hash.encode("utf-8"))


class AuthService:
    """Owns user records and the credential lifecycle."""

    def __init__(self, jwt_service: JWTService | None = None) -> None:
        self.jwt_service = jwt_service or get_jwt_service()
        self.base_url = get_settings().PUBLIC_BASE_URL
        self._registration_locks = KeyedLock()

    def _new_user_id(self, db: Session) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            user_id = new_record_id()
            if db.get(User, user_id) is None:
                return user_id
        raise PersistenceFailure("Could not allocate a unique user id")

    def register(self, db: Session, email: str, password: str) -> User:
        """Create an unverified user and queue the verification email.

        Registration for one email is serialized by a per-email lock; the
        unique index on ``user.email`` catches writers outside this process.
        """
        email = normalize_email(email)
        with self._registration_locks.hold(email):
            if db.query(User).filter(User.email == email).first():
                raise DuplicateEmail()

            token = new_opaque_token()
            user = User(
                id=self._new_user_id(db),
                email=email,
                password_hash=hash_password(password),
                verified=False,
                verification_token=token,
            )
            db.add(user)
            verification_url = f"{self.base_url}/verify-email?token={token}"
            enqueue(
                db,
                email,
                "Email Verification",
                f"Please verify your email by clicking the following link: {verification_url}",
            )
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise DuplicateEmail() from None
            db.refresh(user)

        get_outbox_worker().wake()
        logger.info("Registered user %s", user.id)
        return user

    def verify_email(self, db: Session, token: str) -> User:
        """Mark the token's owner verified. Repeating with the same token succeeds again."""
        if not token:
            raise TokenNotFound()
        user = db.query(User).filter(User.verification_token == token).first()
        if not user:
            raise TokenNotFound()
        if not user.verified:
            user.verified = True
            db.commit()
            logger.info("Verified email for user %s", user.id)
        return user

    def login(self, db: Session, email: str, password: str) -> LoginResult:
        """Check credentials, then verification status, then issue a session."""
        user = db.query(User).filter(User.email == normalize_email(email)).first()
        if not user or not check_password(password, user.password_hash):
            raise InvalidCredentials()
        if not user.verified:
            raise EmailNotVerified()
        token = self.jwt_service.issue_session(user.email, user.id)
        return LoginResult(token=token, profile_picture=user.profile_picture)

    def get_profile(self, db: Session, session_token: str) -> User:
        claims = self.jwt_service.validate_session(session_token)
        if not claims:
            raise Unauthorized()
        user = db.query(User).filter(User.email == claims.email).first()
        if not user:
            raise UserNotFound()
        return user

    def set_profile_picture(self, db: Session, session_token: str, blob_ref: str) -> User:
        user = self.get_profile(db, session_token)
        user.profile_picture = blob_ref
        db.commit()
        return user

    def request_password_reset(self, db: Session, email: str) -> None:
        """Issue a fresh reset token, replacing any pending one, and queue the reset email."""
        email = normalize_email(email)
        user = db.query(User).filter(User.email == email).first()
        if not user:
            raise EmailNotFound()

        token = new_opaque_token()
        user.reset_token = token
        reset_url = f"{self.base_url}/reset-password?token={token}"
        enqueue(
            db,
            email,
            "Password Reset",
            f"Please reset your password by clicking the following link: {reset_url}",
        )
        db.commit()
        get_outbox_worker().wake()

    def reset_password(self, db: Session, token: str, new_password: str) -> User:
        """Overwrite the password of the token's owner. The token is consumed."""
        if not token:
            raise InvalidToken()
        user = db.query(User).filter(User.reset_token == token).first()
        if not user:
            raise InvalidToken()

        # Conditional on the token so concurrent resets consume it only once
        consumed = (
            db.query(User)
            .filter(User.id == user.id, User.reset_token == token)
            .update(
                {User.password_hash: hash_password(new_password), User.reset_token: None},
                synchronize_session=False,
            )
        )
        if not consumed:
            db.rollback()
            raise InvalidToken()
        db.commit()
        db.refresh(user)
        logger.info("Password reset for user %s", user.id)
        return user


_auth_service: AuthService | None = None


def get_auth_service() -> AuthService:
    """Get singleton auth service instance."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service
