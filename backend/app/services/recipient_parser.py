"""
Recipient parser.

Turns the free-form ``recipients`` form field into an ordered list of
distinct addresses. Tokens are separated by commas, semicolons or newlines;
whitespace around each token is trimmed and empty tokens are dropped.

Deduplication is exact (case-sensitive): "Alice@x.com" and "alice@x.com"
are kept as two recipients. Callers wanting case-insensitive identity should
normalize before submitting.
"""

import re

from app.services.errors import SendValidationError

_SEPARATORS = re.compile(r"[\n,;]")

# Same shape check the form's tag input applies client-side
_ADDRESS_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class EmptyRecipients(SendValidationError):
    """Raised when the recipients field yields no addresses."""

    def __init__(self, message: str = "At least one recipient is required"):
        super().__init__(message, "no_recipients")


def split_recipients(raw: str) -> list[str]:
    """Split, trim and deduplicate (order-preserving). No shape checks."""
    seen: set[str] = set()
    recipients: list[str] = []
    for token in _SEPARATORS.split(raw or ""):
        address = token.strip()
        if address and address not in seen:
            seen.add(address)
            recipients.append(address)
    return recipients


def is_valid_address(address: str) -> bool:
    return bool(_ADDRESS_RE.match(address))


def parse_recipients(raw: str) -> list[str]:
    """
    Parse the recipients field into a validated RecipientList.

    Raises:
        EmptyRecipients: nothing but separators/whitespace was supplied.
        SendValidationError: one or more tokens are not email addresses.
    """
    recipients = split_recipients(raw)
    if not recipients:
        raise EmptyRecipients()

    invalid = [r for r in recipients if not is_valid_address(r)]
    if invalid:
        raise SendValidationError(
            f"Invalid recipient address(es): {', '.join(invalid)}",
            "invalid_recipients",
        )
    return recipients
