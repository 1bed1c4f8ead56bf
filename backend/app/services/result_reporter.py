"""
Result reporter: aggregates per-recipient outcomes and shapes the HTTP body.
"""

from typing import Sequence

from app.models.send_email import (
    BatchResult,
    RecipientResult,
    SendEmailResponse,
    SendOutcome,
    SendStatus,
    SendSummary,
)


def summarize(outcomes: Sequence[SendOutcome], elapsed_ms: int = 0) -> BatchResult:
    """Count outcomes. failure_count is always total - successes."""
    total = len(outcomes)
    successes = sum(1 for o in outcomes if o.status == SendStatus.SUCCESS)
    return BatchResult(
        outcomes=list(outcomes),
        total_count=total,
        success_count=successes,
        failure_count=total - successes,
        elapsed_ms=elapsed_ms,
    )


def format_duration(elapsed_ms: int) -> str:
    return f"{elapsed_ms}ms"


def completion_message(result: BatchResult) -> str:
    if result.failure_count == 0:
        noun = "recipient" if result.total_count == 1 else "recipients"
        return f"Emails sent successfully to {result.total_count} {noun}"
    if result.success_count == 0:
        return f"All {result.total_count} emails failed to send"
    return (
        f"Sent {result.success_count} of {result.total_count} emails; "
        f"{result.failure_count} failed"
    )


def build_response(result: BatchResult, elapsed_ms: int) -> SendEmailResponse:
    """
    Build the 200 body. ``elapsed_ms`` is the whole request's duration,
    which includes validation and connecting on top of the batch itself.
    """
    return SendEmailResponse(
        message=completion_message(result),
        results=[
            RecipientResult(recipient=o.recipient, status=o.status, message=o.detail)
            for o in result.outcomes
        ],
        summary=SendSummary(
            total=result.total_count,
            successful=result.success_count,
            failed=result.failure_count,
        ),
        duration=format_duration(elapsed_ms),
    )
