"""
Attachment assembler.

Reads the uploaded resume and any extra file parts into memory and returns
transport-ready Attachment objects, resume first, extras in submission order.
"""

import logging
from typing import Optional, Sequence

from fastapi import UploadFile

from app.models.send_email import Attachment
from app.services.errors import AttachmentReadError, SendValidationError
from app.services.request_validator import ATTACHMENT_TOO_LARGE

logger = logging.getLogger(__name__)

DEFAULT_RESUME_FILENAME = "resume.pdf"
DEFAULT_ATTACHMENT_FILENAME = "attachment"


async def _read_part(part: UploadFile, filename: str) -> bytes:
    try:
        return await part.read()
    except Exception as e:
        raise AttachmentReadError(filename, e) from e


def _content_type(part: UploadFile) -> Optional[str]:
    content_type = getattr(part, "content_type", None)
    return content_type if isinstance(content_type, str) and content_type else None


async def assemble_attachments(
    resume: Optional[UploadFile],
    extras: Sequence[UploadFile],
    max_total_bytes: Optional[int] = None,
) -> list[Attachment]:
    """
    Read every file part fully and build the attachment list.

    - The resume keeps its filename, or becomes ``resume.pdf`` when unnamed.
      A resume part that reads back empty is treated as absent.
    - Extras keep their original filenames; zero-byte extras are dropped.
    - When ``max_total_bytes`` is given, the ceiling is checked again against
      the bytes actually read, since the multipart parser doesn't always
      report sizes up front.

    Raises:
        AttachmentReadError: any part failed to read. No partial list is
            returned.
        SendValidationError: the bytes read exceed ``max_total_bytes``.
    """
    attachments: list[Attachment] = []

    if resume is not None:
        filename = resume.filename or DEFAULT_RESUME_FILENAME
        content = await _read_part(resume, filename)
        if content:
            attachments.append(
                Attachment(filename=filename, content=content, content_type=_content_type(resume))
            )

    for part in extras:
        size = getattr(part, "size", None)
        if isinstance(size, int) and size <= 0:
            continue
        filename = part.filename or DEFAULT_ATTACHMENT_FILENAME
        content = await _read_part(part, filename)
        if not content:
            # size was unknown up front and the part turned out empty
            continue
        attachments.append(
            Attachment(filename=filename, content=content, content_type=_content_type(part))
        )

    total = sum(a.size for a in attachments)
    if max_total_bytes is not None and total > max_total_bytes:
        raise SendValidationError(ATTACHMENT_TOO_LARGE, "attachment_too_large")

    logger.info(f"Assembled {len(attachments)} attachment(s), {total} bytes total")
    return attachments
