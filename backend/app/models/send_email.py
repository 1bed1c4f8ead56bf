"""
Pydantic models for the bulk send feature.

Models:
  SendRequest         — normalized, validated form submission
  Attachment          — transport-ready file (raw bytes)
  MessageTemplate     — the part of an outbound message shared by all recipients
  OutboundMessage     — one message addressed to a single recipient
  SendOutcome         — per-recipient result
  BatchResult         — aggregated outcomes for one invocation
  SendEmailResponse   — HTTP 200 body
  SendErrorResponse   — HTTP 500 body
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request side
# ---------------------------------------------------------------------------

class SendRequest(BaseModel):
    """
    A form submission that passed validation.

    sender_secret is only ever forwarded to the transport session; it is
    excluded from repr so it never lands in a log line by accident.
    """

    sender_address: str
    sender_secret: str = Field(repr=False)
    recipients: list[str]
    subject: str
    body: str


class Attachment(BaseModel):
    """A single file attachment, already read into memory."""

    filename: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)


class MessageTemplate(BaseModel):
    """Everything about the outbound message except the recipient."""

    sender: str
    subject: str
    body: str
    attachments: list[Attachment] = []

    def for_recipient(self, recipient: str) -> "OutboundMessage":
        return OutboundMessage(
            sender=self.sender,
            to=recipient,
            subject=self.subject,
            body=self.body,
            attachments=self.attachments,
        )


class OutboundMessage(BaseModel):
    """One message, addressed to exactly one recipient."""

    sender: str
    to: str
    subject: str
    body: str
    attachments: list[Attachment] = []


# ---------------------------------------------------------------------------
# Result side
# ---------------------------------------------------------------------------

class SendStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failed"


class SendOutcome(BaseModel):
    recipient: str
    status: SendStatus
    detail: str

    @property
    def succeeded(self) -> bool:
        return self.status == SendStatus.SUCCESS


class BatchResult(BaseModel):
    """Derived summary of one batch; never stored."""

    outcomes: list[SendOutcome]
    total_count: int
    success_count: int
    failure_count: int
    elapsed_ms: int = 0


# ---------------------------------------------------------------------------
# Response bodies
# ---------------------------------------------------------------------------

class RecipientResult(BaseModel):
    recipient: str
    status: SendStatus
    message: str


class SendSummary(BaseModel):
    total: int
    successful: int
    failed: int


class SendEmailResponse(BaseModel):
    """
    Body returned once the batch has run, even when some (or all)
    recipients failed. duration is formatted as e.g. "1234ms".
    """

    status: str = "completed"
    message: str
    results: list[RecipientResult]
    summary: SendSummary
    duration: str


class SendErrorResponse(BaseModel):
    """Body returned when the request failed outside the per-recipient loop."""

    status: str = "error"
    message: str
    duration: str
