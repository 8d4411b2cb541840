"""Deadline and capacity based closing of published forms.

``should_close`` is a pure function of the form and the current time.
``sync_publication_state`` applies its verdict to the stored form and must
run before ``is_published`` is exposed to anyone: public reads, status
checks, submissions and admin reads. It only ever closes a form; reopening
is an explicit admin action.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from app.models.form import FormRecord
from app.schemas.form import Form
from app.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CLOSED_MESSAGE = "This form is no longer accepting responses."


class CloseReason(str, Enum):
    """Why a form is not accepting responses."""
    DEADLINE = "deadline"
    MAX_RESPONSES = "max_responses"
    UNPUBLISHED = "unpublished"


@dataclass(frozen=True)
class CloseDecision:
    """Verdict of the auto-close evaluator.

    Attributes:
        close: Whether the form must be closed
        reason: First applicable reason (deadline wins over max_responses)
    """
    close: bool
    reason: Optional[CloseReason] = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def should_close(form: Form, now: Optional[datetime] = None) -> CloseDecision:
    """Decide whether a form's closing conditions have been reached.

    Args:
        form: Form to evaluate
        now: Current time (defaults to the wall clock, UTC)

    Returns:
        CloseDecision with the first applicable reason

    Example:
        >>> should_close(form, now=deadline + timedelta(seconds=1))
        CloseDecision(close=True, reason=<CloseReason.DEADLINE: 'deadline'>)
    """
    now = now or utcnow()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    settings = form.settings
    deadline = settings.response_deadline_at
    if deadline is not None and now >= deadline:
        return CloseDecision(close=True, reason=CloseReason.DEADLINE)

    if settings.max_responses is not None and form.response_count >= settings.max_responses:
        return CloseDecision(close=True, reason=CloseReason.MAX_RESPONSES)

    return CloseDecision(close=False)


def closed_reason(form: Form, now: Optional[datetime] = None) -> CloseReason:
    """Reason to report for a form that is not published."""
    return should_close(form, now).reason or CloseReason.UNPUBLISHED


def closed_message(form: Form, reason: CloseReason) -> str:
    """User-facing message for a closed form, specific to the reason."""
    if reason == CloseReason.DEADLINE:
        deadline = form.settings.response_deadline_at
        return (
            "The response deadline for this form has passed "
            f"({deadline.astimezone(timezone.utc):%Y-%m-%d %H:%M} UTC)."
            if deadline is not None
            else "The response deadline for this form has passed."
        )
    if reason == CloseReason.MAX_RESPONSES:
        return "This form has reached its maximum number of responses."
    return form.settings.closed_message or DEFAULT_CLOSED_MESSAGE


def sync_publication_state(
    db: Session,
    record: FormRecord,
    now: Optional[datetime] = None,
) -> Form:
    """Close a published form whose deadline or capacity has been reached.

    Args:
        db: Database session
        record: Stored form (refreshed in place when closed)
        now: Current time (defaults to the wall clock, UTC)

    Returns:
        Form: The validated form reflecting the persisted state
    """
    form = record.to_schema()
    if not form.is_published:
        return form

    decision = should_close(form, now)
    if not decision.close:
        return form

    FormRecord.set_publication(db, record.id, False)
    db.commit()
    db.refresh(record)

    logger.info(
        f"Auto-closed form {record.id}: {decision.reason.value}",
        extra={"form_id": record.id}
    )
    return record.to_schema()
