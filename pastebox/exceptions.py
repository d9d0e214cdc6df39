"""
Error taxonomy for Pastebox.

Services raise these; the exception handler in main.py renders each one as
its status code and short message.
"""


class PasteboxError(Exception):
    """Base exception for all user-facing Pastebox errors."""

    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class DuplicateEmail(PasteboxError):
    status_code = 400
    default_message = "Email is already registered."


class InvalidCredentials(PasteboxError):
    status_code = 401
    default_message = "Invalid credentials."


class EmailNotVerified(PasteboxError):
    status_code = 403
    default_message = "Email not verified."


class Unauthorized(PasteboxError):
    """Missing, malformed, badly signed or expired session token."""

    status_code = 401
    default_message = "Unauthorized"


class UserNotFound(PasteboxError):
    status_code = 404
    default_message = "User not found."


class TokenNotFound(PasteboxError):
    """No user holds the given email verification token."""

    status_code = 404
    default_message = "User not found."


class InvalidToken(PasteboxError):
    """No user holds the given password reset token."""

    status_code = 404
    default_message = "Invalid token."


class EmailNotFound(PasteboxError):
    status_code = 404
    default_message = "Email not found."


class PasteNotFound(PasteboxError):
    status_code = 404
    default_message = "Paste not found."


class InvalidUpload(PasteboxError):
    status_code = 400
    default_message = "Invalid upload."


class MailDispatchFailure(PasteboxError):
    status_code = 500
    default_message = "Error sending email."


class PersistenceFailure(PasteboxError):
    """Durable paste storage could not be read or written."""

    status_code = 500
    default_message = "Error saving paste."
