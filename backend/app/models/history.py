"""
Pydantic models for caller-side state: send history and form drafts.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class SendRecord(BaseModel):
    """Last time ``account`` successfully mailed ``recipient``."""

    account: str
    recipient: str
    last_sent: datetime


class DraftAttachment(BaseModel):
    name: str
    data: str  # base64-encoded file content


class Draft(BaseModel):
    """An unsent form, saved so it survives a reload."""

    recipients: list[str] = []
    subject: str = ""
    body: str = ""
    resume_name: Optional[str] = None
    resume_data: Optional[str] = None  # base64-encoded
    attachments: list[DraftAttachment] = []
