"""
Resume Mailer Backend API
FastAPI application that sends a resume to a list of recipients through the
sender's own mail account.
"""

import logging
import os
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import smtp_settings
from app.routers import send_email

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Resume Mailer API",
    description="Send a templated email with an attached resume to many recipients",
    version="0.1.0",
)


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    Always includes the local frontend dev servers:
    - http://localhost:3000
    - http://127.0.0.1:3000

    Additional origins are read from the CORS_ORIGINS environment variable
    as a comma-separated list, e.g.:
        CORS_ORIGINS=https://mailer.example.com,https://preview.example.com

    Duplicates are removed while preserving order.
    """
    always_included = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    extra_origins: List[str] = []
    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    if cors_env:
        extra_origins = [o.strip() for o in cors_env.split(",") if o.strip()]

    seen: set = set()
    origins: List[str] = []
    for origin in always_included + extra_origins:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)

    return origins


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(send_email.router, prefix="/api/send-email", tags=["send-email"])


@app.on_event("startup")
async def log_startup_config() -> None:
    """Log the SMTP defaults so misconfigured hosts are obvious at boot."""
    host = smtp_settings.host or "(inferred from sender domain)"
    mode = "implicit TLS" if smtp_settings.use_tls else "STARTTLS"
    logger.info(
        "Resume Mailer API ready. SMTP host: %s, port: %s (%s)",
        host,
        smtp_settings.port,
        mode,
    )


@app.get("/")
async def root():
    return {"message": "Resume Mailer API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/smtp")
async def health_smtp():
    """
    Report the configured SMTP defaults.

    No connection is opened: credentials are only ever supplied per request,
    so there is nothing to log in with here.
    """
    return {
        "status": "ok",
        "host": smtp_settings.host,
        "host_inferred": smtp_settings.host is None,
        "port": smtp_settings.port,
        "use_tls": smtp_settings.use_tls,
    }
