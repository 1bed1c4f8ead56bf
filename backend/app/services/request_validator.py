"""
Request validator for the send endpoint.

Checks run in a fixed order and the first failure wins:

  1. email, app_password, recipients, subject and body are all non-blank
  2. the declared sizes of all file parts fit within the attachment ceiling
  3. there is a resume or at least one non-empty extra attachment
  4. the recipients field parses to one or more valid addresses

Nothing here touches the network or reads file contents; sizes come from the
multipart parser. Parts whose size is unknown count as 0 here and are
re-checked by the attachment assembler once their bytes are read.
"""

import logging
from typing import Optional, Sequence

from fastapi import UploadFile

from app.models.send_email import SendRequest
from app.services.errors import SendValidationError
from app.services.recipient_parser import parse_recipients

logger = logging.getLogger(__name__)

MISSING_FIELDS = "Missing required fields"
ATTACHMENT_TOO_LARGE = "Total attachment size exceeds limit"
RESUME_MISSING = "Resume file is missing"


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def declared_size(part: Optional[UploadFile]) -> int:
    """Size reported by the multipart parser, or 0 when unknown."""
    if part is None:
        return 0
    size = getattr(part, "size", None)
    return size if isinstance(size, int) else 0


def has_content(part: Optional[UploadFile]) -> bool:
    """
    True unless the part is absent or is an empty form field.

    Browsers submit an empty file input as a part with no filename and
    zero bytes; that is treated the same as no part at all. A part whose
    size is unknown is assumed to have content.
    """
    if part is None:
        return False
    size = getattr(part, "size", None)
    if size is None:
        return True
    return size > 0


def validate_send_request(
    *,
    email: Optional[str],
    app_password: Optional[str],
    recipients: Optional[str],
    subject: Optional[str],
    body: Optional[str],
    resume: Optional[UploadFile],
    attachments: Sequence[UploadFile] = (),
    max_attachment_bytes: int,
) -> SendRequest:
    """
    Validate raw form fields and return a normalized SendRequest.

    Raises:
        SendValidationError: with the user-facing message for the first
            failed check.
    """
    if any(_blank(v) for v in (email, app_password, recipients, subject, body)):
        raise SendValidationError(MISSING_FIELDS, "missing_fields")

    total_size = declared_size(resume) + sum(declared_size(a) for a in attachments)
    if total_size > max_attachment_bytes:
        logger.info(
            f"Rejected send request: attachments total {total_size} bytes "
            f"(limit {max_attachment_bytes})"
        )
        raise SendValidationError(ATTACHMENT_TOO_LARGE, "attachment_too_large")

    if not has_content(resume) and not any(has_content(a) for a in attachments):
        raise SendValidationError(RESUME_MISSING, "resume_missing")

    parsed = parse_recipients(recipients)

    return SendRequest(
        sender_address=email.strip(),
        sender_secret=app_password,
        recipients=parsed,
        subject=subject,
        body=body,
    )
