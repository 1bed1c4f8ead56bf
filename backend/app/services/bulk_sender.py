"""
Bulk send orchestrator.

Sends one individually-addressed message per recipient over a single
transport session, strictly one at a time:

    for each recipient, in list order:
        submit, racing an 8 s timer       -> success / failure / timeout
        record the outcome                 (failures never stop the loop)
        wait the pacing delay              (skipped after the last recipient)

Sends are deliberately serial. The session holds one connection and the
pacing delay exists to keep provider-side throttling at bay, so recipients
must not be fanned out concurrently.

Timeouts abandon the *wait*, not the submission: SMTP has no way to cancel a
message mid-DATA, so a timed-out submit keeps running in the background and
its eventual result is only logged. The connection may therefore still be
busy when the next recipient is submitted.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from app.models.send_email import (
    BatchResult,
    MessageTemplate,
    OutboundMessage,
    SendOutcome,
    SendStatus,
)
from app.services.errors import TransportError, TransportTimeout
from app.services.result_reporter import summarize

logger = logging.getLogger(__name__)

SUCCESS_DETAIL = "Email sent successfully"
DEFAULT_SEND_TIMEOUT_SECONDS = 8.0
DEFAULT_PACING_SECONDS = 1.0

Sleep = Callable[[float], Awaitable[None]]


class Session(Protocol):
    async def submit(self, message: OutboundMessage) -> str: ...


def timeout_detail(recipient: str) -> str:
    return f"Email sending timeout for {recipient}"


def _log_late_result(recipient: str) -> Callable[[asyncio.Task], None]:
    def _callback(task: asyncio.Task) -> None:
        if task.cancelled():
            logger.info(f"Abandoned send to {recipient} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Abandoned send to {recipient} failed late: {exc}")
        else:
            logger.info(f"Abandoned send to {recipient} completed after the timeout")
    return _callback


async def send_one(
    session: Session,
    message: OutboundMessage,
    timeout_seconds: float,
) -> SendOutcome:
    """
    Submit a single message and turn whatever happens into a SendOutcome.

    Only TransportError and the timeout are treated as per-recipient
    failures; anything else propagates and aborts the batch.
    """
    task = asyncio.ensure_future(session.submit(message))
    done, _ = await asyncio.wait({task}, timeout=timeout_seconds)

    if task not in done:
        task.add_done_callback(_log_late_result(message.to))
        logger.warning(f"Send to {message.to} timed out after {timeout_seconds:g}s")
        return SendOutcome(
            recipient=message.to,
            status=SendStatus.FAILURE,
            detail=timeout_detail(message.to),
        )

    try:
        task.result()
    except TransportTimeout:
        logger.warning(f"Send to {message.to} timed out inside the transport")
        return SendOutcome(
            recipient=message.to,
            status=SendStatus.FAILURE,
            detail=timeout_detail(message.to),
        )
    except TransportError as e:
        logger.warning(f"Send to {message.to} failed: {e}")
        return SendOutcome(
            recipient=message.to,
            status=SendStatus.FAILURE,
            detail=str(e) or f"Email sending failed for {message.to}",
        )

    return SendOutcome(recipient=message.to, status=SendStatus.SUCCESS, detail=SUCCESS_DETAIL)


async def run_batch(
    session: Session,
    template: MessageTemplate,
    recipients: Sequence[str],
    *,
    timeout_seconds: float = DEFAULT_SEND_TIMEOUT_SECONDS,
    pacing_seconds: float = DEFAULT_PACING_SECONDS,
    sleep: Optional[Sleep] = None,
) -> BatchResult:
    """
    Send ``template`` to every recipient and return the aggregated result.

    Args:
        session: an open transport session; the caller owns closing it.
        template: sender, subject, body and attachments shared by all messages.
        recipients: parsed RecipientList; outcomes come back in this order.
        timeout_seconds: per-message race timeout.
        pacing_seconds: delay between consecutive submissions.
        sleep: pacing coroutine, ``asyncio.sleep`` unless overridden.
    """
    sleep = sleep or asyncio.sleep
    started = time.monotonic()
    outcomes: list[SendOutcome] = []

    logger.info(
        f"Starting batch from {template.sender}: {len(recipients)} recipient(s), "
        f"{len(template.attachments)} attachment(s)"
    )

    for index, recipient in enumerate(recipients):
        outcome = await send_one(session, template.for_recipient(recipient), timeout_seconds)
        outcomes.append(outcome)

        if index < len(recipients) - 1:
            await sleep(pacing_seconds)

    elapsed_ms = int((time.monotonic() - started) * 1000)
    result = summarize(outcomes, elapsed_ms=elapsed_ms)
    logger.info(
        f"Batch from {template.sender} finished in {elapsed_ms}ms: "
        f"{result.success_count} sent, {result.failure_count} failed"
    )
    return result
