"""Unit tests for the respondent-side client."""

import json

import httpx
import pytest

from app.client import (
    FormsApiClient,
    FormsApiError,
    FormUnavailableError,
    RespondentSession,
)
from app.schemas.form import Form

BASE_URL = "https://forms.example.com"


def make_form(**settings) -> Form:
    return Form(
        id="signup",
        title="Signup",
        is_published=True,
        questions=[
            {"id": "name", "type": "short_text", "title": "Name", "required": True},
            {"id": "s1", "type": "section_break", "title": "Contact"},
            {"id": "email", "type": "email", "title": "Email", "required": True},
        ],
        settings=settings,
    )


class RecordingTransport:
    """Mock transport returning a canned response and recording requests."""

    def __init__(self, status_code=201, body=None):
        self.status_code = status_code
        self.body = body if body is not None else {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)


def make_api(transport: RecordingTransport) -> FormsApiClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
    return FormsApiClient(BASE_URL, http_client=http_client)


ACCEPTED_BODY = {
    "response": {
        "id": "r1",
        "form_id": "signup",
        "submitted_at": "2026-03-04T12:00:00Z",
        "answers": [],
        "respondent_email": "ada@example.com",
    },
    "confirmation_message": "Thank you for your response!",
    "redirect_url": None,
}


class TestRespondentSession:
    """Test suite for page navigation and submission."""

    def test_pages_derived_from_form(self):
        session = RespondentSession(make_form(), make_api(RecordingTransport()))

        assert [p.id for p in session.pages] == ["page-1", "page-2"]
        assert session.current_page.id == "page-1"

    def test_next_page_blocked_by_missing_required(self):
        session = RespondentSession(make_form(), make_api(RecordingTransport()))

        result = session.next_page()

        assert result.is_valid is False
        assert result.first_issue.question_title == "Name"
        assert session.page_index == 0

    def test_next_page_advances_when_valid(self):
        session = RespondentSession(make_form(), make_api(RecordingTransport()))
        session.set_answer("name", "Ada")

        assert session.next_page().is_valid is True
        assert session.page_index == 1
        assert session.is_last_page is True

        # Stays on the last page
        session.set_answer("email", "ada@example.com")
        session.next_page()
        assert session.page_index == 1

        session.previous_page()
        assert session.page_index == 0

    def test_progress_respects_setting(self):
        api = make_api(RecordingTransport())
        session = RespondentSession(make_form(), api)
        session.set_answer("name", "Ada")
        assert session.progress == pytest.approx(50.0)

        hidden = RespondentSession(make_form(show_progress_bar=False), api)
        assert hidden.progress is None

    @pytest.mark.asyncio
    async def test_local_failure_skips_server(self):
        transport = RecordingTransport()
        session = RespondentSession(make_form(), make_api(transport))
        session.set_answer("name", "Ada")

        result = await session.submit()

        assert result.accepted is False
        assert result.reason == "invalid"
        assert result.from_server is False
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_missing_identity_prompts_verification(self):
        transport = RecordingTransport()
        session = RespondentSession(make_form(), make_api(transport))
        session.set_answer("name", "Ada")
        session.set_answer("email", "ada@example.com")

        result = await session.submit()

        assert result.reason == "unverified"
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_local_pass_always_calls_server(self):
        transport = RecordingTransport(201, ACCEPTED_BODY)
        session = RespondentSession(make_form(), make_api(transport))
        session.set_answer("name", "Ada")
        session.set_answer("email", "ada@example.com")
        session.set_identity_token("id-token")

        result = await session.submit()

        assert result.accepted is True
        assert result.detail == "Thank you for your response!"
        assert len(transport.requests) == 1
        request = transport.requests[0]
        assert request.url.path == "/api/forms/signup/responses"
        payload = json.loads(request.content)
        assert payload["identity_token"] == "id-token"
        assert {"question_id": "name", "value": "Ada"} in payload["answers"]

    @pytest.mark.asyncio
    async def test_server_rejection_is_authoritative(self):
        """A server rejection wins even though local checks passed."""
        transport = RecordingTransport(409, {
            "reason": "duplicate",
            "detail": "You have already submitted this form.",
            "close_reason": None,
            "issues": [],
        })
        session = RespondentSession(make_form(), make_api(transport))
        session.set_answer("name", "Ada")
        session.set_answer("email", "ada@example.com")
        session.set_identity_token("id-token")

        result = await session.submit()

        assert result.accepted is False
        assert result.reason == "duplicate"
        assert result.from_server is True


class TestFormsApiClient:
    """Test suite for FormsApiClient."""

    @pytest.mark.asyncio
    async def test_closed_form_raises_unavailable(self):
        api = make_api(RecordingTransport(403, {
            "reason": "closed",
            "detail": "The response deadline for this form has passed.",
            "close_reason": "deadline",
            "issues": [],
        }))

        with pytest.raises(FormUnavailableError) as exc_info:
            await api.get_public_form("signup")

        assert exc_info.value.status_code == 403
        assert exc_info.value.close_reason == "deadline"

    @pytest.mark.asyncio
    async def test_public_form_parsed(self):
        form = make_form()
        body = {
            "form": form.model_dump(mode="json"),
            "pages": [{"id": "page-1", "questions": []}],
        }
        api = make_api(RecordingTransport(200, body))

        public = await api.get_public_form("signup")

        assert public.form.id == "signup"
        assert public.pages[0].id == "page-1"

    @pytest.mark.asyncio
    async def test_unexpected_status_raises(self):
        api = make_api(RecordingTransport(503, {"detail": "Identity verification is temporarily unavailable."}))

        with pytest.raises(FormsApiError) as exc_info:
            await api.submit("signup", {}, "tok")

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_check_status(self):
        transport = RecordingTransport(200, {"submitted": True})
        api = make_api(transport)

        assert await api.check_status("signup", "ada@example.com") is True
        assert transport.requests[0].url.params["email"] == "ada@example.com"
