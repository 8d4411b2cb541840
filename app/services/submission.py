"""Server-authoritative submission gate.

Every submission attempt is decided here, in a fixed order:

1. Malformed form id -> ``InvalidFormIdError``
2. Unknown form -> ``FormNotFoundError``
3. Auto-close evaluation, then a closed form -> rejection ``closed``
4. Missing or unverifiable identity token -> rejection ``unverified``
5. An earlier response by the same normalized email -> rejection ``duplicate``
6. Answers that do not fit the form -> rejection ``invalid``
7. Otherwise the response is stored and the form re-evaluated for closing

Rejections are returned as values so callers can tell "already responded"
from "form closed" from "please fix these fields". Only faults such as an
unreachable identity provider or a database error propagate as exceptions.

Receipts are not sent by ``submit``; callers hand the accepted outcome to
``send_receipt`` once the respondent has been answered.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.form import FormRecord, is_valid_form_id
from app.models.response import FormResponse
from app.schemas.form import Answer, Form, PublicFormRead
from app.services.auto_close import (
    CloseReason,
    closed_message,
    closed_reason,
    sync_publication_state,
    utcnow,
)
from app.services.identity import IdentityVerificationError, IdentityVerifier
from app.services.notifications import ReceiptMailer
from app.services.pager import build_pages
from app.services.respondent_key import RespondentKey
from app.services.validation import AnswerValidator, ValidationIssue
from app.logging_config import get_logger

logger = get_logger(__name__)

IDENTITY_REQUIRED_DETAIL = "Identity verification is required to submit this form."
IDENTITY_INVALID_DETAIL = "Your identity could not be verified. Please sign in again."
DUPLICATE_DETAIL = "You have already submitted this form."


class SubmissionError(Exception):
    """Base class for errors raised while loading a form."""
    pass


class InvalidFormIdError(SubmissionError):
    """Raised when a form id is malformed."""
    pass


class FormNotFoundError(SubmissionError):
    """Raised when no form exists for an id."""
    pass


class FormClosedError(SubmissionError):
    """Raised when a public read targets a form that is not published.

    Attributes:
        reason: Why the form is closed
        message: Reason-specific message for the respondent
    """

    def __init__(self, reason: CloseReason, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message


class MissingEmailError(SubmissionError):
    """Raised when a status check carries no email address."""
    pass


class RejectionReason(str, Enum):
    """Terminal reasons for refusing a submission attempt."""
    UNVERIFIED = "unverified"
    DUPLICATE = "duplicate"
    CLOSED = "closed"
    INVALID = "invalid"


@dataclass
class SubmissionRejection:
    """A refused submission attempt.

    Attributes:
        reason: Rejection kind
        detail: Message for the respondent
        close_reason: Why the form is closed (closed rejections only)
        issues: Field issues (invalid rejections only)
    """
    reason: RejectionReason
    detail: str
    close_reason: Optional[CloseReason] = None
    issues: list[ValidationIssue] = field(default_factory=list)


@dataclass
class SubmissionOutcome:
    """Result of a submission attempt: a stored response or a rejection."""
    response: Optional[FormResponse] = None
    rejection: Optional[SubmissionRejection] = None
    form: Optional[Form] = None

    @property
    def accepted(self) -> bool:
        return self.response is not None

    @classmethod
    def accept(cls, response: FormResponse, form: Form) -> "SubmissionOutcome":
        return cls(response=response, form=form)

    @classmethod
    def reject(cls, rejection: SubmissionRejection) -> "SubmissionOutcome":
        return cls(rejection=rejection)


def load_form(db: Session, form_id: str) -> FormRecord:
    """Load a stored form by id.

    Raises:
        InvalidFormIdError: If the id is malformed
        FormNotFoundError: If no such form exists
    """
    if not is_valid_form_id(form_id):
        raise InvalidFormIdError(f"Invalid form id: {form_id!r}")
    record = FormRecord.get(db, form_id)
    if record is None:
        raise FormNotFoundError(f"Form not found: {form_id}")
    return record


class SubmissionService:
    """Public form access and the submission state machine.

    Args:
        db: Database session for this request
        verifier: Identity token verifier
        mailer: Receipt mailer (receipts are skipped when None)
        clock: Source of the current time, UTC
        strict_response_limit: Enforce max_responses exactly (defaults to settings)
    """

    def __init__(
        self,
        db: Session,
        verifier: IdentityVerifier,
        mailer: Optional[ReceiptMailer] = None,
        clock: Callable[[], datetime] = utcnow,
        strict_response_limit: Optional[bool] = None,
    ):
        self.db = db
        self.verifier = verifier
        self.mailer = mailer
        self.clock = clock
        if strict_response_limit is None:
            strict_response_limit = get_settings().strict_response_limit
        self.strict_response_limit = strict_response_limit

    def fetch_public_form(self, form_id: str) -> PublicFormRead:
        """Return an open form and its pages.

        Raises:
            InvalidFormIdError, FormNotFoundError: See ``load_form``
            FormClosedError: If the form is not published after auto-close
        """
        now = self.clock()
        record = load_form(self.db, form_id)
        form = sync_publication_state(self.db, record, now)
        if not form.is_published:
            reason = closed_reason(form, now)
            raise FormClosedError(reason, closed_message(form, reason))
        return PublicFormRead(form=form, pages=build_pages(form.questions))

    def check_status(self, form_id: str, email: Optional[str]) -> bool:
        """Whether a respondent has already submitted a form.

        Missing and closed forms report False.

        Raises:
            InvalidFormIdError: If the id is malformed
            MissingEmailError: If the email is empty
        """
        if not is_valid_form_id(form_id):
            raise InvalidFormIdError(f"Invalid form id: {form_id!r}")

        record = FormRecord.get(self.db, form_id)
        if record is None:
            return False
        form = sync_publication_state(self.db, record, self.clock())
        if not form.is_published:
            return False

        normalized = RespondentKey.normalize_email(email or "")
        if not normalized:
            raise MissingEmailError("Email is required")

        return FormResponse.find_for_respondent(self.db, form_id, normalized) is not None

    async def submit(
        self,
        form_id: str,
        answers: Sequence[Answer],
        identity_token: Optional[str],
    ) -> SubmissionOutcome:
        """Decide a submission attempt.

        Args:
            form_id: Target form
            answers: Submitted answers
            identity_token: Identity assertion carried with this attempt

        Returns:
            SubmissionOutcome with the stored response or a rejection

        Raises:
            InvalidFormIdError, FormNotFoundError: See ``load_form``
            IdentityProviderUnavailableError: Identity provider unreachable
        """
        now = self.clock()
        record = load_form(self.db, form_id)
        form = sync_publication_state(self.db, record, now)

        if not form.is_published:
            return self._closed(form, closed_reason(form, now))

        if not identity_token:
            return SubmissionOutcome.reject(SubmissionRejection(
                reason=RejectionReason.UNVERIFIED,
                detail=IDENTITY_REQUIRED_DETAIL,
            ))

        try:
            identity = await self.verifier.verify(identity_token)
        except IdentityVerificationError as e:
            logger.info(f"Identity rejected for form {form_id}: {e}", extra={"form_id": form_id})
            return SubmissionOutcome.reject(SubmissionRejection(
                reason=RejectionReason.UNVERIFIED,
                detail=IDENTITY_INVALID_DETAIL,
            ))

        email = RespondentKey.normalize_email(identity.email)
        masked = RespondentKey.mask_for_logging(email)

        if not form.settings.allow_multiple_responses:
            if FormResponse.find_for_respondent(self.db, form.id, email) is not None:
                logger.info(
                    f"Duplicate submission for form {form.id} from {masked}",
                    extra={"form_id": form.id, "respondent": masked}
                )
                return SubmissionOutcome.reject(SubmissionRejection(
                    reason=RejectionReason.DUPLICATE,
                    detail=DUPLICATE_DETAIL,
                ))

        answers = list(answers or [])
        issues = AnswerValidator.validate_values(form, answers).issues
        answer_map = {answer.question_id: answer.value for answer in answers}
        issues += AnswerValidator.validate_submission(form, answer_map, identity_token).issues
        if issues:
            return SubmissionOutcome.reject(SubmissionRejection(
                reason=RejectionReason.INVALID,
                detail=issues[0].message,
                issues=issues,
            ))

        limit = form.settings.max_responses if self.strict_response_limit else None
        try:
            if not FormRecord.increment_response_count(self.db, form.id, limit):
                self.db.rollback()
                self.db.refresh(record)
                form = sync_publication_state(self.db, record, now)
                logger.info(
                    f"Form {form.id} reached max responses before accepting {masked}",
                    extra={"form_id": form.id, "respondent": masked}
                )
                return self._closed(form, CloseReason.MAX_RESPONSES)

            response = FormResponse.create(
                self.db,
                form_id=form.id,
                answers=[answer.model_dump() for answer in answers],
                respondent_email=email,
                respondent_name=identity.name or None,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(record)
        self.db.refresh(response)
        form = sync_publication_state(self.db, record, self.clock())

        logger.info(
            f"Accepted response {response.id} for form {form.id} from {masked}",
            extra={"form_id": form.id, "response_id": response.id, "respondent": masked}
        )

        return SubmissionOutcome.accept(response, form)

    def _closed(self, form: Form, reason: CloseReason) -> SubmissionOutcome:
        return SubmissionOutcome.reject(SubmissionRejection(
            reason=RejectionReason.CLOSED,
            detail=closed_message(form, reason),
            close_reason=reason,
        ))

    def send_receipt(self, form: Form, response: FormResponse) -> None:
        """Send the receipt for an accepted response if enabled.

        Runs as a background task after the respondent has been answered.
        Failures are logged and swallowed.
        """
        notification = form.settings.email_notification
        if self.mailer is None or not notification.enabled:
            return

        extra = {"form_id": form.id, "response_id": response.id}
        try:
            result = self.mailer.send_receipt(
                response.respondent_email,
                response.respondent_name or "",
                form.title,
                response.submitted_at,
                notification,
            )
        except Exception as e:
            logger.error(f"Failed to send submission receipt: {e}", exc_info=True, extra=extra)
            return

        if not result.sent:
            logger.warning(f"Submission receipt not sent: {result.reason}", extra=extra)
