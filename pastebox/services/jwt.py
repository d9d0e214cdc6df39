"""JWT session token service."""

import time
from collections.abc import Callable
from dataclasses import dataclass

from jose import JWTError, jwt

from pastebox.config import get_settings


@dataclass(frozen=True)
class SessionClaims:
    """Identity asserted by a valid session token."""

    email: str
    user_id: str
    issued_at: int
    expires_at: int


class JWTService:
    """Issues and validates signed, time-bounded session tokens.

    Tokens are stateless: validity depends only on the signature and the
    ``exp`` claim, so an issued token cannot be revoked before it expires.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        settings = get_settings()
        self.secret_key = settings.JWT_SECRET_KEY
        self.algorithm = settings.JWT_ALGORITHM
        self.expire_seconds = settings.JWT_EXPIRE_MINUTES * 60
        self.clock = clock

    def issue_session(self, email: str, user_id: str) -> str:
        """Create a session token for the given user."""
        issued_at = int(self.clock())
        payload = {
            "sub": user_id,
            "email": email,
            "iat": issued_at,
            "exp": issued_at + self.expire_seconds,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def validate_session(self, token: str) -> SessionClaims | None:
        """Return the token's claims, or None if it is invalid or expired.

        Expiry is checked here against ``clock`` rather than by jose so that a
        token is rejected at, not after, its ``exp`` second.
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            return None

        try:
            claims = SessionClaims(
                email=str(payload["email"]),
                user_id=str(payload["sub"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError):
            return None

        if self.clock() >= claims.expires_at:
            return None
        return claims


_jwt_service: JWTService | None = None


def get_jwt_service() -> JWTService:
    """Get singleton JWT service instance."""
    global _jwt_service
    if _jwt_service is None:
        _jwt_service = JWTService()
    return _jwt_service
