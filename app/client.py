"""Respondent-side client for the public forms API.

``RespondentSession`` walks a respondent through a form page by page using
the same pager and validator as the server, so the feedback it gives before
a round-trip cannot drift from what the server enforces. A local pass never
replaces the server call: ``submit`` always posts to the server once the
local checks pass, and the server's verdict is final.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from app.schemas.form import Form, FormPage, PublicFormRead
from app.services.pager import build_pages
from app.services.validation import AnswerValidator, ValidationIssue, ValidationResult
from app.logging_config import get_logger

logger = get_logger(__name__)

# Statuses for which the server returns a typed rejection body
REJECTION_STATUSES = {401, 403, 409, 422}


class FormsApiError(Exception):
    """Raised when the server fails in a way that is not a typed rejection."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FormUnavailableError(FormsApiError):
    """Raised when a form cannot be opened (closed, missing or bad id)."""

    def __init__(self, message: str, status_code: int, close_reason: Optional[str] = None):
        super().__init__(message, status_code)
        self.close_reason = close_reason


@dataclass
class SubmissionResult:
    """Verdict on a submission attempt as seen by the respondent.

    Attributes:
        accepted: Whether the server stored the response
        reason: Rejection reason (unverified, duplicate, closed, invalid)
        detail: Message to show the respondent
        close_reason: Why the form is closed, for closed rejections
        issues: Field issues, for invalid rejections
        response: Stored response body when accepted
        from_server: False when the attempt was stopped by local checks
    """
    accepted: bool
    reason: Optional[str] = None
    detail: Optional[str] = None
    close_reason: Optional[str] = None
    issues: list[dict] = field(default_factory=list)
    response: Optional[dict] = None
    from_server: bool = True


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("message") or body)
    return str(body)


class FormsApiClient:
    """Thin async client for the public endpoints.

    Args:
        base_url: Service root, e.g. "https://forms.example.com"
        http_client: Optional preconfigured httpx.AsyncClient
        timeout: Request timeout in seconds when no client is given
    """

    def __init__(
        self,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = http_client
        self.timeout = timeout

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                return await self._client.request(method, url, **kwargs)
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(method, url, **kwargs)
        except httpx.RequestError as exc:
            logger.error(f"Forms API request failed: {exc}")
            raise FormsApiError(f"Forms API request failed: {exc}") from exc

    async def get_public_form(self, form_id: str) -> PublicFormRead:
        """Fetch an open form and its pages.

        Raises:
            FormUnavailableError: Form closed (403), missing (404) or id invalid (400)
            FormsApiError: Any other failure
        """
        response = await self._request("GET", f"/api/forms/public/{form_id}")
        if response.status_code in (400, 403, 404):
            body = response.json() if response.content else {}
            raise FormUnavailableError(
                _error_detail(response),
                response.status_code,
                close_reason=body.get("close_reason") if isinstance(body, dict) else None,
            )
        if response.status_code != 200:
            raise FormsApiError(_error_detail(response), response.status_code)
        return PublicFormRead.model_validate(response.json())

    async def submit(
        self,
        form_id: str,
        answers: dict[str, Any],
        identity_token: Optional[str],
    ) -> SubmissionResult:
        """Post a submission and translate the server's verdict.

        Raises:
            FormsApiError: For statuses other than 201 and typed rejections
        """
        payload = {
            "answers": [
                {"question_id": question_id, "value": value}
                for question_id, value in answers.items()
            ],
            "identity_token": identity_token,
        }
        response = await self._request("POST", f"/api/forms/{form_id}/responses", json=payload)

        if response.status_code == 201:
            body = response.json()
            return SubmissionResult(
                accepted=True,
                detail=body.get("confirmation_message"),
                response=body.get("response"),
            )

        if response.status_code in REJECTION_STATUSES:
            body = response.json()
            if isinstance(body, dict) and "reason" in body:
                return SubmissionResult(
                    accepted=False,
                    reason=body["reason"],
                    detail=body.get("detail"),
                    close_reason=body.get("close_reason"),
                    issues=body.get("issues") or [],
                )

        raise FormsApiError(_error_detail(response), response.status_code)

    async def check_status(self, form_id: str, email: str) -> bool:
        """Whether ``email`` has already submitted ``form_id``."""
        response = await self._request(
            "GET", f"/api/forms/{form_id}/check-status", params={"email": email}
        )
        if response.status_code != 200:
            raise FormsApiError(_error_detail(response), response.status_code)
        return bool(response.json().get("submitted"))


def _issue_dict(issue: ValidationIssue) -> dict:
    return {
        "question_id": issue.question_id,
        "question_title": issue.question_title,
        "message": issue.message,
        "code": issue.code,
    }


class RespondentSession:
    """One respondent's pass through a form.

    Holds the answers, the current page and the identity token. The form is
    passed in explicitly; pages are derived from it once.

    Example:
        public = await api.get_public_form("event-signup")
        session = RespondentSession(public.form, api)
        session.set_answer("name", "Ada")
        if session.next_page().is_valid:
            ...
        result = await session.submit()
    """

    def __init__(self, form: Form, api: FormsApiClient):
        self.form = form
        self.api = api
        self.pages: list[FormPage] = build_pages(form.questions)
        self.page_index = 0
        self.answers: dict[str, Any] = {}
        self.identity_token: Optional[str] = None

    @property
    def current_page(self) -> FormPage:
        return self.pages[self.page_index]

    @property
    def is_last_page(self) -> bool:
        return self.page_index == len(self.pages) - 1

    @property
    def progress(self) -> Optional[float]:
        """Completion percentage, or None when the form hides progress."""
        if not self.form.settings.show_progress_bar:
            return None
        return AnswerValidator.completion_progress(self.form, self.answers)

    def set_answer(self, question_id: str, value: Any) -> None:
        self.answers[question_id] = value

    def set_identity_token(self, token: Optional[str]) -> None:
        self.identity_token = token

    def validate_current_page(self) -> ValidationResult:
        return AnswerValidator.validate_page(
            self.form,
            self.answers,
            [question.id for question in self.current_page.questions],
        )

    def next_page(self) -> ValidationResult:
        """Advance if the current page is complete.

        Returns:
            The current page's validation result; the page index only
            changes when it is valid and this is not the last page
        """
        result = self.validate_current_page()
        if result.is_valid and not self.is_last_page:
            self.page_index += 1
        return result

    def previous_page(self) -> None:
        if self.page_index > 0:
            self.page_index -= 1

    async def submit(self) -> SubmissionResult:
        """Submit the answers.

        Local checks stop obviously incomplete attempts without a request.
        When they pass, the server is always asked and its verdict returned.
        """
        local = AnswerValidator.validate_submission(self.form, self.answers, self.identity_token)
        if not local.is_valid:
            reason = "unverified" if local.requires_identity and len(local.issues) == 1 else "invalid"
            return SubmissionResult(
                accepted=False,
                reason=reason,
                detail=local.first_issue.message,
                issues=[_issue_dict(issue) for issue in local.issues],
                from_server=False,
            )

        result = await self.api.submit(self.form.id, self.answers, self.identity_token)
        if not result.accepted:
            logger.info(f"Server rejected submission for form {self.form.id}: {result.reason}")
        return result
