"""Public respondent endpoints: form fetch, submission and status check.

Rejections are returned with a status code per reason so clients can tell
"already responded" (409) from "form closed" (403) from "please fix these
fields" (422) and "please sign in again" (401).
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.models.database import get_db
from app.schemas.form import (
    PublicFormRead,
    RejectionRead,
    ResponseRead,
    SubmissionAcceptedRead,
    SubmissionRequest,
    SubmissionStatusRead,
)
from app.services.identity import (
    IdentityProviderUnavailableError,
    IdentityVerifier,
    get_identity_verifier,
)
from app.services.notifications import ReceiptMailer, get_receipt_mailer
from app.services.submission import (
    FormClosedError,
    FormNotFoundError,
    InvalidFormIdError,
    MissingEmailError,
    RejectionReason,
    SubmissionRejection,
    SubmissionService,
)
from app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/forms")

REJECTION_STATUS = {
    RejectionReason.UNVERIFIED: 401,
    RejectionReason.CLOSED: 403,
    RejectionReason.DUPLICATE: 409,
    RejectionReason.INVALID: 422,
}


def get_submission_service(
    db: Session = Depends(get_db),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
    mailer: ReceiptMailer = Depends(get_receipt_mailer),
) -> SubmissionService:
    """Build the submission service for one request."""
    return SubmissionService(db, verifier, mailer)


def rejection_response(rejection: SubmissionRejection) -> JSONResponse:
    """Render a rejection with its status code."""
    body = RejectionRead(
        reason=rejection.reason.value,
        detail=rejection.detail,
        close_reason=rejection.close_reason.value if rejection.close_reason else None,
        issues=[
            {
                "question_id": issue.question_id,
                "question_title": issue.question_title,
                "message": issue.message,
                "code": issue.code,
            }
            for issue in rejection.issues
        ],
    )
    return JSONResponse(
        status_code=REJECTION_STATUS[rejection.reason],
        content=body.model_dump(),
    )


@router.get("/public/{form_id}", response_model=PublicFormRead)
async def get_public_form(
    form_id: str,
    service: SubmissionService = Depends(get_submission_service),
):
    """Fetch an open form together with its pages.

    Returns 400 for a malformed id, 404 for an unknown form and 403 with a
    reason-specific message when the form is closed.
    """
    try:
        return service.fetch_public_form(form_id)
    except InvalidFormIdError:
        raise HTTPException(status_code=400, detail="Invalid form id")
    except FormNotFoundError:
        raise HTTPException(status_code=404, detail="Form not found")
    except FormClosedError as e:
        return JSONResponse(
            status_code=403,
            content=RejectionRead(
                reason=RejectionReason.CLOSED.value,
                detail=e.message,
                close_reason=e.reason.value,
            ).model_dump(),
        )


@router.post(
    "/{form_id}/responses",
    status_code=201,
    response_model=SubmissionAcceptedRead,
    responses={
        401: {"model": RejectionRead},
        403: {"model": RejectionRead},
        409: {"model": RejectionRead},
        422: {"model": RejectionRead},
    },
)
async def submit_response(
    form_id: str,
    submission: SubmissionRequest,
    background_tasks: BackgroundTasks,
    service: SubmissionService = Depends(get_submission_service),
):
    """Submit answers to a form.

    The receipt email, when enabled, is sent after the response is returned.

    Example request:
        POST /api/forms/event-signup/responses
        {"answers": [{"question_id": "q1", "value": "Ada"}],
         "identity_token": "<google id token>"}
    """
    try:
        outcome = await service.submit(
            form_id,
            submission.answers,
            submission.identity_token,
        )
    except InvalidFormIdError:
        raise HTTPException(status_code=400, detail="Invalid form id")
    except FormNotFoundError:
        raise HTTPException(status_code=404, detail="Form not found")
    except IdentityProviderUnavailableError as e:
        logger.error(f"Identity provider unavailable for form {form_id}: {e}")
        raise HTTPException(
            status_code=503,
            detail="Identity verification is temporarily unavailable. Please try again."
        )

    if not outcome.accepted:
        return rejection_response(outcome.rejection)

    background_tasks.add_task(service.send_receipt, outcome.form, outcome.response)

    return SubmissionAcceptedRead(
        response=ResponseRead.model_validate(outcome.response),
        confirmation_message=outcome.form.settings.confirmation_message,
        redirect_url=outcome.form.settings.redirect_url,
    )


@router.get("/{form_id}/check-status", response_model=SubmissionStatusRead)
async def check_submission_status(
    form_id: str,
    email: Optional[str] = Query(None),
    service: SubmissionService = Depends(get_submission_service),
):
    """Report whether an email address has already submitted a form."""
    try:
        submitted = service.check_status(form_id, email)
    except InvalidFormIdError:
        raise HTTPException(status_code=400, detail="Invalid form id")
    except MissingEmailError:
        raise HTTPException(status_code=400, detail="Email is required")
    return SubmissionStatusRead(submitted=submitted)
