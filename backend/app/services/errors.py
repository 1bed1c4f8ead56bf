"""
Exceptions shared by the send pipeline.

Request-level errors (validation, attachment reading, opening the transport)
propagate to the router. Per-recipient TransportErrors are caught by the
bulk sender and recorded as failed outcomes.
"""

from typing import Optional


class SendValidationError(Exception):
    """A form submission was rejected before any connection was opened."""

    def __init__(self, message: str, error_code: str = "invalid_request"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class AttachmentReadError(Exception):
    """An uploaded file part could not be read; the whole request fails."""

    def __init__(self, filename: str, cause: Exception):
        self.filename = filename
        self.message = f"Failed to read attachment '{filename}': {cause}"
        super().__init__(self.message)


class TransportError(Exception):
    """The mail server refused a connection, a login, or a single message."""

    def __init__(self, message: str, smtp_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.smtp_code = smtp_code


class TransportTimeout(TransportError):
    """The mail server stopped answering while a message was being submitted."""
