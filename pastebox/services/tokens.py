"""Opaque token and record id generation.

Both come from ``secrets.token_hex``. Verification and reset tokens carry
160 random bits; record ids carry 64. Uniqueness is not guaranteed by
generation alone, so stores check for an existing id and retry
(see ``MAX_ID_ATTEMPTS``).
"""

import secrets

OPAQUE_TOKEN_BYTES = 20
RECORD_ID_BYTES = 8
MAX_ID_ATTEMPTS = 5


def new_opaque_token() -> str:
    """Random single-purpose credential, 40 lowercase hex characters."""
    return secrets.token_hex(OPAQUE_TOKEN_BYTES)


def new_record_id() -> str:
    """Random identifier for users and pastes, 16 lowercase hex characters."""
    return secrets.token_hex(RECORD_ID_BYTES)
