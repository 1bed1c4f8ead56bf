"""
Runtime configuration.
Reads SMTP and batch-sending settings from the environment (optionally a .env file).
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 465

# Sender domain -> submission host, for senders that don't set SMTP_HOST
PROVIDER_HOSTS = {
    "gmail.com": "smtp.gmail.com",
    "googlemail.com": "smtp.gmail.com",
    "outlook.com": "smtp-mail.outlook.com",
    "hotmail.com": "smtp-mail.outlook.com",
    "live.com": "smtp-mail.outlook.com",
    "yahoo.com": "smtp.mail.yahoo.com",
    "icloud.com": "smtp.mail.me.com",
    "me.com": "smtp.mail.me.com",
}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class SmtpSettings:
    """Where and how to reach the mail-submission server."""

    host: Optional[str] = None  # None -> inferred from the sender's domain
    port: int = DEFAULT_SMTP_PORT
    use_tls: bool = True  # implicit TLS; False means STARTTLS on a plain port
    connect_timeout_seconds: float = 30.0

    def resolve_host(self, sender_address: str) -> str:
        """
        Return the submission host for a sender.

        An explicit SMTP_HOST always wins. Otherwise the sender's domain is
        looked up in PROVIDER_HOSTS, falling back to ``smtp.<domain>``.
        Addresses without a domain use the Gmail default.
        """
        if self.host:
            return self.host
        if "@" not in sender_address:
            return DEFAULT_SMTP_HOST
        domain = sender_address.rsplit("@", 1)[1].strip().lower()
        if not domain:
            return DEFAULT_SMTP_HOST
        return PROVIDER_HOSTS.get(domain, f"smtp.{domain}")


@dataclass(frozen=True)
class SendSettings:
    """Per-batch pacing, timeout and size limits."""

    send_timeout_ms: int = 8000
    pacing_ms: int = 1000
    max_attachment_bytes: int = 10 * 1024 * 1024  # 10 MiB aggregate

    @property
    def send_timeout_seconds(self) -> float:
        return self.send_timeout_ms / 1000

    @property
    def pacing_seconds(self) -> float:
        return self.pacing_ms / 1000


def load_smtp_settings() -> SmtpSettings:
    port = _env_int("SMTP_PORT", DEFAULT_SMTP_PORT)
    return SmtpSettings(
        host=os.getenv("SMTP_HOST", "").strip() or None,
        port=port,
        use_tls=_env_bool("SMTP_USE_TLS", port == 465),
        connect_timeout_seconds=float(_env_int("SMTP_CONNECT_TIMEOUT_SECONDS", 30)),
    )


def load_send_settings() -> SendSettings:
    return SendSettings(
        send_timeout_ms=_env_int("SEND_TIMEOUT_MS", 8000),
        pacing_ms=_env_int("SEND_PACING_MS", 1000),
        max_attachment_bytes=_env_int("MAX_ATTACHMENT_BYTES", 10 * 1024 * 1024),
    )


smtp_settings: SmtpSettings = load_smtp_settings()
send_settings: SendSettings = load_send_settings()
