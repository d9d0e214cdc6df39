"""Request dependencies for FastAPI routes."""

from fastapi import Request

from pastebox.exceptions import Unauthorized


def get_bearer_token(request: Request) -> str:
    """Extract the session token from ``Authorization: Bearer <token>``. Raises Unauthorized if absent."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized()
    return token.strip()
