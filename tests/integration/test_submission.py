"""Integration tests for the submission gate.

These tests run SubmissionService against an in-memory database with a fake
identity verifier, covering the ordering of rejections, duplicate detection
on normalized emails, capacity and deadline closing, and best-effort
receipts.
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from app.models.form import FormRecord
from app.models.response import FormResponse
from app.schemas.form import Answer
from app.services.auto_close import CloseReason
from app.services.identity import IdentityProviderUnavailableError
from app.services.notifications import ReceiptMailer, ReceiptResult
from app.services.submission import (
    FormClosedError,
    FormNotFoundError,
    InvalidFormIdError,
    MissingEmailError,
    RejectionReason,
    SubmissionService,
)


def to_answers(raw):
    return [Answer(**item) for item in raw]


@pytest.fixture
def answers(valid_answers):
    return to_answers(valid_answers)


@pytest.fixture
def make_service(db_session, fake_verifier, fixed_now):
    """Build a SubmissionService with a controllable clock."""

    def _make(now=None, mailer=None, strict=True, verifier=None):
        current = now or fixed_now
        return SubmissionService(
            db_session,
            verifier or fake_verifier,
            mailer=mailer,
            clock=lambda: current,
            strict_response_limit=strict,
        )

    return _make


class TestSubmitOrdering:
    """Rejections are decided in a fixed order."""

    @pytest.mark.asyncio
    async def test_malformed_id(self, make_service, answers):
        with pytest.raises(InvalidFormIdError):
            await make_service().submit("not a valid id!", answers, "token:a@x.com")

    @pytest.mark.asyncio
    async def test_unknown_form(self, make_service, answers):
        with pytest.raises(FormNotFoundError):
            await make_service().submit("missing", answers, "token:a@x.com")

    @pytest.mark.asyncio
    async def test_unpublished_form_is_closed_before_identity(
        self, make_service, form_factory, answers, fake_verifier
    ):
        form_factory(is_published=False, settings={"closed_message": "Come back next year."})

        outcome = await make_service().submit("event-signup", answers, None)

        assert outcome.accepted is False
        assert outcome.rejection.reason == RejectionReason.CLOSED
        assert outcome.rejection.close_reason == CloseReason.UNPUBLISHED
        assert outcome.rejection.detail == "Come back next year."
        assert fake_verifier.calls == []

    @pytest.mark.asyncio
    async def test_missing_token_is_unverified(self, make_service, sample_form, answers):
        outcome = await make_service().submit(sample_form.id, answers, None)

        assert outcome.rejection.reason == RejectionReason.UNVERIFIED

    @pytest.mark.asyncio
    async def test_bad_token_is_unverified(self, make_service, sample_form, answers):
        outcome = await make_service().submit(sample_form.id, answers, "forged")

        assert outcome.rejection.reason == RejectionReason.UNVERIFIED
        assert FormResponse.list_for_form(make_service().db, sample_form.id) == []

    @pytest.mark.asyncio
    async def test_provider_outage_fails_closed(self, make_service, sample_form, answers, db_session):
        verifier = MagicMock()
        verifier.verify.side_effect = IdentityProviderUnavailableError("down")

        with pytest.raises(IdentityProviderUnavailableError):
            await make_service(verifier=verifier).submit(sample_form.id, answers, "token:a@x.com")

        assert FormResponse.list_for_form(db_session, sample_form.id) == []

    @pytest.mark.asyncio
    async def test_missing_required_is_invalid(self, make_service, sample_form):
        outcome = await make_service().submit(
            sample_form.id,
            to_answers([{"question_id": "name", "value": "Ada"}]),
            "token:a@x.com",
        )

        assert outcome.rejection.reason == RejectionReason.INVALID
        assert [i.question_title for i in outcome.rejection.issues] == ["Email"]
        assert outcome.rejection.detail == "This field is required."

    @pytest.mark.asyncio
    async def test_malformed_value_is_invalid(self, make_service, sample_form, valid_answers):
        valid_answers[3]["value"] = "expert"

        outcome = await make_service().submit(
            sample_form.id, to_answers(valid_answers), "token:a@x.com"
        )

        assert outcome.rejection.reason == RejectionReason.INVALID
        assert outcome.rejection.issues[0].code == "invalid_value"

    @pytest.mark.asyncio
    async def test_answer_to_section_break_is_invalid(self, make_service, sample_form, valid_answers):
        valid_answers.append({"question_id": "details", "value": "x"})

        outcome = await make_service().submit(
            sample_form.id, to_answers(valid_answers), "token:a@x.com"
        )

        assert outcome.rejection.reason == RejectionReason.INVALID


class TestAcceptAndDuplicate:
    """Accepted submissions and duplicate detection."""

    @pytest.mark.asyncio
    async def test_accepted_submission_is_stored(self, make_service, sample_form, answers, db_session):
        outcome = await make_service().submit(sample_form.id, answers, "token:Ada@Example.com")

        assert outcome.accepted is True
        response = outcome.response
        assert response.respondent_email == "ada@example.com"
        assert response.respondent_name == "Test Respondent"
        assert response.answers[0] == {"question_id": "name", "value": "Ada Lovelace"}
        assert outcome.form.response_count == 1

        db_session.refresh(sample_form)
        assert sample_form.response_count == 1

    @pytest.mark.asyncio
    async def test_second_attempt_same_email_is_duplicate(self, make_service, sample_form, answers):
        service = make_service()

        first = await service.submit(sample_form.id, answers, "token:a@x.com")
        second = await service.submit(sample_form.id, answers, "token:a@x.com")

        assert first.accepted is True
        assert second.rejection.reason == RejectionReason.DUPLICATE

    @pytest.mark.asyncio
    async def test_duplicate_keyed_on_normalized_email(self, make_service, sample_form, answers, db_session):
        service = make_service()

        await service.submit(sample_form.id, answers, "token:a@x.com")
        outcome = await service.submit(sample_form.id, answers, "token:  A@X.COM ")

        assert outcome.rejection.reason == RejectionReason.DUPLICATE
        db_session.refresh(sample_form)
        assert sample_form.response_count == 1

    @pytest.mark.asyncio
    async def test_duplicate_wins_over_invalid_answers(self, make_service, sample_form, answers):
        """A repeat respondent hears "already responded", not "fix these fields"."""
        service = make_service()
        await service.submit(sample_form.id, answers, "token:a@x.com")

        empty = await service.submit(sample_form.id, [], "token:a@x.com")
        malformed = await service.submit(
            sample_form.id,
            to_answers([{"question_id": "rating", "value": "lots"}]),
            "token:a@x.com",
        )

        assert empty.rejection.reason == RejectionReason.DUPLICATE
        assert malformed.rejection.reason == RejectionReason.DUPLICATE
        assert malformed.rejection.issues == []

    @pytest.mark.asyncio
    async def test_multiple_responses_allowed(self, make_service, form_factory, answers):
        form = form_factory(settings={"allow_multiple_responses": True})
        service = make_service()

        await service.submit(form.id, answers, "token:a@x.com")
        outcome = await service.submit(form.id, answers, "token:a@x.com")

        assert outcome.accepted is True
        assert outcome.form.response_count == 2


class TestClosing:
    """Capacity and deadline closing."""

    @pytest.mark.asyncio
    async def test_max_responses_one(self, make_service, form_factory, answers, db_session):
        """The submission reaching capacity is accepted; the next is closed."""
        form = form_factory(settings={"max_responses": 1})
        service = make_service()

        first = await service.submit(form.id, answers, "token:a@x.com")

        assert first.accepted is True
        assert first.form.response_count == 1
        assert first.form.is_published is False

        db_session.refresh(form)
        assert form.is_published is False

        second = await service.submit(form.id, answers, "token:b@x.com")
        assert second.rejection.reason == RejectionReason.CLOSED
        assert second.rejection.close_reason == CloseReason.MAX_RESPONSES

        with pytest.raises(FormClosedError) as exc_info:
            service.fetch_public_form(form.id)
        assert exc_info.value.reason == CloseReason.MAX_RESPONSES

    @pytest.mark.asyncio
    async def test_concurrent_writer_cannot_exceed_capacity(
        self, make_service, form_factory, answers, db_session, fake_verifier
    ):
        """A response accepted elsewhere mid-attempt fills the last slot."""
        form = form_factory(settings={"max_responses": 1})

        class RacingVerifier:
            async def verify(self, token):
                # Another request takes the last slot while we verify
                FormRecord.increment_response_count(db_session, form.id)
                db_session.commit()
                return await fake_verifier.verify(token)

        outcome = await make_service(verifier=RacingVerifier()).submit(
            form.id, answers, "token:a@x.com"
        )

        assert outcome.rejection.reason == RejectionReason.CLOSED
        assert outcome.rejection.close_reason == CloseReason.MAX_RESPONSES
        assert FormResponse.list_for_form(db_session, form.id) == []
        db_session.refresh(form)
        assert form.response_count == 1
        assert form.is_published is False

    @pytest.mark.asyncio
    async def test_soft_limit_mode_still_closes_after(self, make_service, form_factory, answers):
        form = form_factory(settings={"max_responses": 1})

        outcome = await make_service(strict=False).submit(form.id, answers, "token:a@x.com")

        assert outcome.accepted is True
        assert outcome.form.is_published is False

    @pytest.mark.asyncio
    async def test_deadline_with_simulated_clock(self, make_service, form_factory, answers, fixed_now):
        form = form_factory(settings={"response_deadline_at": fixed_now + timedelta(hours=1)})

        assert make_service(now=fixed_now).fetch_public_form(form.id).form.is_published is True

        outcome = await make_service(now=fixed_now + timedelta(hours=2)).submit(
            form.id, answers, "token:a@x.com"
        )

        assert outcome.rejection.reason == RejectionReason.CLOSED
        assert outcome.rejection.close_reason == CloseReason.DEADLINE
        assert "deadline" in outcome.rejection.detail

    @pytest.mark.asyncio
    async def test_auto_close_never_reopens(self, make_service, form_factory, fixed_now):
        form = form_factory(
            is_published=False,
            settings={"response_deadline_at": fixed_now + timedelta(days=30)},
        )

        with pytest.raises(FormClosedError) as exc_info:
            make_service().fetch_public_form(form.id)

        assert exc_info.value.reason == CloseReason.UNPUBLISHED


class TestReceipts:
    """Receipts are best effort and sent after the outcome is decided."""

    @pytest.mark.asyncio
    async def test_submit_does_not_wait_for_mail(self, make_service, form_factory, answers):
        form = form_factory(settings={"email_notification": {"enabled": True}})
        mailer = MagicMock(spec=ReceiptMailer)

        outcome = await make_service(mailer=mailer).submit(form.id, answers, "token:a@x.com")

        assert outcome.accepted is True
        mailer.send_receipt.assert_not_called()

    @pytest.mark.asyncio
    async def test_receipt_sent_when_enabled(self, make_service, form_factory, answers):
        form = form_factory(settings={"email_notification": {"enabled": True}})
        mailer = MagicMock(spec=ReceiptMailer)
        mailer.send_receipt.return_value = ReceiptResult(sent=True, provider="smtp")
        service = make_service(mailer=mailer)

        outcome = await service.submit(form.id, answers, "token:a@x.com")
        service.send_receipt(outcome.form, outcome.response)

        args = mailer.send_receipt.call_args[0]
        assert args[0] == "a@x.com"
        assert args[2] == "Event Signup"

    @pytest.mark.asyncio
    async def test_receipt_not_sent_when_disabled(self, make_service, sample_form, answers):
        mailer = MagicMock(spec=ReceiptMailer)
        service = make_service(mailer=mailer)

        outcome = await service.submit(sample_form.id, answers, "token:a@x.com")
        service.send_receipt(outcome.form, outcome.response)

        mailer.send_receipt.assert_not_called()

    @pytest.mark.asyncio
    async def test_receipt_failure_is_swallowed(self, make_service, form_factory, answers, db_session):
        form = form_factory(settings={"email_notification": {"enabled": True}})
        mailer = MagicMock(spec=ReceiptMailer)
        mailer.send_receipt.side_effect = OSError("SMTP down")
        service = make_service(mailer=mailer)

        outcome = await service.submit(form.id, answers, "token:a@x.com")
        service.send_receipt(outcome.form, outcome.response)

        assert outcome.accepted is True
        assert len(FormResponse.list_for_form(db_session, form.id)) == 1

    @pytest.mark.asyncio
    async def test_receipt_not_configured_is_logged(self, make_service, form_factory, answers):
        form = form_factory(settings={"email_notification": {"enabled": True}})
        mailer = MagicMock(spec=ReceiptMailer)
        mailer.send_receipt.return_value = ReceiptResult(sent=False, reason="missing_mailer_config")
        service = make_service(mailer=mailer)

        outcome = await service.submit(form.id, answers, "token:a@x.com")
        with patch("app.services.submission.logger") as mock_logger:
            service.send_receipt(outcome.form, outcome.response)

        assert "missing_mailer_config" in str(mock_logger.warning.call_args)


class TestReadEntryPoints:
    """Public fetch and status check."""

    def test_fetch_public_form_returns_pages(self, make_service, sample_form):
        public = make_service().fetch_public_form(sample_form.id)

        assert [len(p.questions) for p in public.pages] == [2, 2]
        assert public.pages[1].title == "Details"

    @pytest.mark.asyncio
    async def test_check_status_uses_normalized_email(self, make_service, sample_form, answers):
        service = make_service()
        await service.submit(sample_form.id, answers, "token:a@x.com")

        assert service.check_status(sample_form.id, " A@X.com ") is True
        assert service.check_status(sample_form.id, "b@x.com") is False

    def test_check_status_missing_form_is_false(self, make_service):
        assert make_service().check_status("missing", "a@x.com") is False

    def test_check_status_closed_form_is_false(self, make_service, form_factory):
        form = form_factory(is_published=False)

        assert make_service().check_status(form.id, "") is False

    def test_check_status_requires_email(self, make_service, sample_form):
        with pytest.raises(MissingEmailError):
            make_service().check_status(sample_form.id, "  ")

    def test_check_status_invalid_id(self, make_service):
        with pytest.raises(InvalidFormIdError):
            make_service().check_status("bad id", "a@x.com")
