"""
Send-email router.

Endpoints:
  POST /   — validate the form, send one message per recipient, report results
  *    /   — any other method returns 405

Request flow
------------
validate fields -> read attachments -> open SMTP session (once)
  -> bulk send (serial, paced, per-message timeout) -> close session -> report

Only failures outside the per-recipient loop turn into an error response:
  400 {"error": ...}                                  validation failures
  500 {"status": "error", "message", "duration"}      unreadable attachment,
                                                      SMTP connect/login,
                                                      anything unexpected
Per-recipient failures are reported inside the 200 body.
"""

import logging
import time
from typing import Optional

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import JSONResponse

from app.config import send_settings, smtp_settings
from app.models.send_email import MessageTemplate, SendErrorResponse, SendEmailResponse
from app.services.attachment_assembler import assemble_attachments
from app.services.bulk_sender import run_batch
from app.services.errors import SendValidationError
from app.services.request_validator import validate_send_request
from app.services.result_reporter import build_response, format_duration
from app.services.smtp_transport import TransportSession, open_session

logger = logging.getLogger(__name__)

router = APIRouter()


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _validation_error(error: SendValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": error.message})


def _server_error(message: str, started: float) -> JSONResponse:
    body = SendErrorResponse(message=message, duration=format_duration(_elapsed_ms(started)))
    return JSONResponse(status_code=500, content=body.model_dump())


@router.post(
    "",
    response_model=SendEmailResponse,
    responses={400: {"description": "Validation failed"}, 500: {"model": SendErrorResponse}},
)
async def send_email(
    email: Optional[str] = Form(None),
    app_password: Optional[str] = Form(None),
    recipients: Optional[str] = Form(None),
    subject: Optional[str] = Form(None),
    body: Optional[str] = Form(None),
    resume: Optional[UploadFile] = File(None),
    attachments: Optional[list[UploadFile]] = File(None),
):
    """
    Send the same message and attachments to every recipient, one by one.

    Always answers with a structured body describing which recipients
    succeeded and which failed.
    """
    started = time.monotonic()
    extra_parts = attachments or []

    try:
        request = validate_send_request(
            email=email,
            app_password=app_password,
            recipients=recipients,
            subject=subject,
            body=body,
            resume=resume,
            attachments=extra_parts,
            max_attachment_bytes=send_settings.max_attachment_bytes,
        )
    except SendValidationError as e:
        return _validation_error(e)

    session: Optional[TransportSession] = None
    try:
        files = await assemble_attachments(
            resume,
            extra_parts,
            max_total_bytes=send_settings.max_attachment_bytes,
        )
        template = MessageTemplate(
            sender=request.sender_address,
            subject=request.subject,
            body=request.body,
            attachments=files,
        )

        session = await open_session(request.sender_address, request.sender_secret, smtp_settings)
        result = await run_batch(
            session,
            template,
            request.recipients,
            timeout_seconds=send_settings.send_timeout_seconds,
            pacing_seconds=send_settings.pacing_seconds,
        )
    except SendValidationError as e:
        return _validation_error(e)
    except Exception as e:
        logger.error(f"Send request from {email} failed after {_elapsed_ms(started)}ms: {e}")
        return _server_error(str(e) or "Unknown error occurred", started)
    finally:
        if session is not None:
            await session.close()

    return build_response(result, _elapsed_ms(started))


@router.api_route("", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def method_not_allowed() -> JSONResponse:
    return JSONResponse(
        status_code=405,
        content={"error": "Method not allowed"},
        headers={"Allow": "POST"},
    )
