"""
SMTP transport session.

One authenticated aiosmtplib connection per batch: opened once with the
sender's own credentials, reused for every recipient, closed once at the
end. Submissions on a session are strictly serial; the session is never
shared between requests.

Host selection
--------------
SMTP_HOST / SMTP_PORT / SMTP_USE_TLS (see app.config) override everything.
Without SMTP_HOST the host is inferred from the sender's domain, e.g.
``someone@gmail.com`` -> ``smtp.gmail.com``. Port 465 uses implicit TLS;
any other port upgrades with STARTTLS.
"""

import asyncio
import logging
import mimetypes
import re
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Optional

import aiosmtplib

from app.config import SmtpSettings, smtp_settings as default_smtp_settings
from app.models.send_email import Attachment, OutboundMessage
from app.services.errors import TransportError, TransportTimeout

logger = logging.getLogger(__name__)

_TRANSPORT_EXCEPTIONS = (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError)
_TIMEOUT_EXCEPTIONS = (aiosmtplib.SMTPTimeoutError, asyncio.TimeoutError)

_LINE_BREAKS = re.compile(r"[\r\n]+")


def _describe(exc: Exception) -> tuple[str, Optional[int]]:
    """Readable message and SMTP reply code (if any) for a transport exception."""
    code = getattr(exc, "code", None)
    if not isinstance(code, int):
        code = None
    text = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
    if code is not None and not str(text).startswith(str(code)):
        text = f"{code} {text}"
    return str(text), code


def _split_mime_type(attachment: Attachment) -> tuple[str, str]:
    mime_type = attachment.content_type
    if not mime_type or "/" not in mime_type:
        mime_type, _ = mimetypes.guess_type(attachment.filename)
    if not mime_type:
        mime_type = "application/octet-stream"
    maintype, subtype = mime_type.split("/", 1)
    return maintype, subtype


def _single_line(value: str) -> str:
    """Header values may not contain line breaks; fold them to a space."""
    return _LINE_BREAKS.sub(" ", value).strip()


def build_email_message(message: OutboundMessage) -> EmailMessage:
    """Render an OutboundMessage as a plain-text RFC 5322 message with attachments."""
    msg = EmailMessage()
    msg["From"] = message.sender
    msg["To"] = message.to
    msg["Subject"] = _single_line(message.subject)
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid()
    msg.set_content(message.body)

    for attachment in message.attachments:
        maintype, subtype = _split_mime_type(attachment)
        msg.add_attachment(
            attachment.content,
            maintype=maintype,
            subtype=subtype,
            filename=attachment.filename,
        )
    return msg


class TransportSession:
    """
    An open, logged-in SMTP connection.

    Use ``open_session`` to create one. ``close`` is safe to call more than
    once; only the first call touches the connection.
    """

    def __init__(self, client: aiosmtplib.SMTP, sender_address: str, host: str, port: int):
        self._client = client
        self.sender_address = sender_address
        self.host = host
        self.port = port
        self.sent_count = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def submit(self, message: OutboundMessage) -> str:
        """
        Submit one message. Returns the server's reply text.

        Raises:
            TransportError: the server rejected the message or the
                connection failed mid-send.
            TransportTimeout: the server stopped answering mid-send.
        """
        if self._closed:
            raise TransportError("Transport session is closed")

        email_message = build_email_message(message)
        try:
            _, response = await self._client.send_message(email_message)
        except _TIMEOUT_EXCEPTIONS as e:
            text, code = _describe(e)
            raise TransportTimeout(text, smtp_code=code) from e
        except _TRANSPORT_EXCEPTIONS as e:
            text, code = _describe(e)
            raise TransportError(text, smtp_code=code) from e

        self.sent_count += 1
        return response

    async def close(self) -> None:
        """Send QUIT; drop the socket if the server doesn't answer cleanly."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._client.quit()
        except _TRANSPORT_EXCEPTIONS as e:
            logger.warning(f"SMTP QUIT to {self.host}:{self.port} failed, closing socket: {e}")
            self._client.close()
        logger.info(f"Closed SMTP session to {self.host}:{self.port} after {self.sent_count} message(s)")

    async def __aenter__(self) -> "TransportSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


async def open_session(
    sender_address: str,
    sender_secret: str,
    settings: Optional[SmtpSettings] = None,
) -> TransportSession:
    """
    Connect and authenticate with the caller's credentials.

    The credentials are passed straight through to the server; nothing is
    stored.

    Raises:
        TransportError: connection, TLS negotiation or login failed.
    """
    settings = settings or default_smtp_settings
    host = settings.resolve_host(sender_address)

    client = aiosmtplib.SMTP(
        hostname=host,
        port=settings.port,
        use_tls=settings.use_tls,
        start_tls=not settings.use_tls,
        timeout=settings.connect_timeout_seconds,
    )

    try:
        await client.connect()
    except _TRANSPORT_EXCEPTIONS as e:
        text, code = _describe(e)
        raise TransportError(f"Could not connect to {host}:{settings.port}: {text}", smtp_code=code) from e

    try:
        await client.login(sender_address, sender_secret)
    except _TRANSPORT_EXCEPTIONS as e:
        client.close()
        text, code = _describe(e)
        raise TransportError(f"SMTP authentication failed for {sender_address}: {text}", smtp_code=code) from e

    logger.info(f"Opened SMTP session to {host}:{settings.port} for {sender_address}")
    return TransportSession(client, sender_address, host, settings.port)
