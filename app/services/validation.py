"""Answer validation for form pages and whole submissions.

Page validation and submission validation share one emptiness predicate and
differ only in scope: a page checks the questions shown on it, a submission
checks every answerable question and additionally requires an identity
token when the form limits respondents to one response. Neither raises;
both return a ``ValidationResult`` listing every issue in question order.

``AnswerValidator.validate_values`` is the server-side shape check of the
submitted answer list against each question's type.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, time
from typing import Any, Iterable, Mapping, Optional, Sequence

from app.schemas.form import Answer, Form, Question, QuestionType
from app.logging_config import get_logger

logger = get_logger(__name__)

REQUIRED_MESSAGE = "This field is required."
IDENTITY_MESSAGE = "Please verify your identity before submitting."

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
URL_PATTERN = re.compile(r"^https?://\S+$", re.IGNORECASE)

TEXT_TYPES = {QuestionType.SHORT_TEXT, QuestionType.LONG_TEXT}


@dataclass(frozen=True)
class ValidationIssue:
    """A single problem found while validating answers.

    Attributes:
        question_id: Question the issue refers to ("" for form-level issues)
        question_title: Title shown to the respondent
        message: Human-readable description
        code: Machine-readable kind (required, identity_required, ...)
    """
    question_id: str
    question_title: str
    message: str
    code: str = "required"


@dataclass
class ValidationResult:
    """Result of validating a set of answers.

    Attributes:
        is_valid: Whether no issues were found
        issues: Ordered list of issues (empty when valid)
    """
    is_valid: bool
    issues: list[ValidationIssue] = field(default_factory=list)

    @classmethod
    def from_issues(cls, issues: list[ValidationIssue]) -> "ValidationResult":
        return cls(is_valid=not issues, issues=issues)

    @property
    def first_issue(self) -> Optional[ValidationIssue]:
        return self.issues[0] if self.issues else None

    @property
    def requires_identity(self) -> bool:
        return any(issue.code == "identity_required" for issue in self.issues)


def is_answer_empty(value: Any) -> bool:
    """Check whether an answer value counts as missing.

    ``None``, the raw empty string and an empty list are empty. Whitespace
    is not trimmed, and numbers (including 0) are never empty.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def _required_issues(
    questions: Iterable[Question],
    answers: Mapping[str, Any],
) -> list[ValidationIssue]:
    issues = []
    for question in questions:
        if not question.is_answerable or not question.required:
            continue
        if is_answer_empty(answers.get(question.id)):
            issues.append(ValidationIssue(
                question_id=question.id,
                question_title=question.title,
                message=REQUIRED_MESSAGE,
            ))
    return issues


class AnswerValidator:
    """Service for validating answers against a form's questions."""

    @staticmethod
    def validate_page(
        form: Form,
        answers: Optional[Mapping[str, Any]],
        question_ids: Iterable[str],
    ) -> ValidationResult:
        """Validate required questions within one page.

        Args:
            form: Form being answered
            answers: Mapping of question id to answer value
            question_ids: Ids of the questions in scope (usually one page)

        Returns:
            ValidationResult with one issue per empty required question

        Example:
            >>> page = build_pages(form.questions)[0]
            >>> result = AnswerValidator.validate_page(
            ...     form, answers, [q.id for q in page.questions]
            ... )
        """
        scope = set(question_ids or ())
        in_scope = [q for q in form.questions if q.id in scope]
        return ValidationResult.from_issues(_required_issues(in_scope, answers or {}))

    @staticmethod
    def validate_submission(
        form: Form,
        answers: Optional[Mapping[str, Any]],
        identity_token: Optional[str],
    ) -> ValidationResult:
        """Validate a whole submission before it is sent or stored.

        Checks every answerable required question, and reports a separate
        ``identity_required`` issue when the form limits respondents to one
        response and no identity token is present.

        Args:
            form: Form being submitted
            answers: Mapping of question id to answer value
            identity_token: Identity assertion accompanying the submission

        Returns:
            ValidationResult listing field issues, then the identity issue
        """
        issues = _required_issues(form.questions, answers or {})

        if form.settings.limit_one_response and not identity_token:
            issues.append(ValidationIssue(
                question_id="",
                question_title="Identity verification",
                message=IDENTITY_MESSAGE,
                code="identity_required",
            ))

        return ValidationResult.from_issues(issues)

    @staticmethod
    def validate_values(form: Form, answers: Sequence[Answer]) -> ValidationResult:
        """Check submitted answers against the question each one targets.

        Rejects answers to unknown questions or section breaks, repeated
        answers to one question, and non-empty values whose shape does not
        fit the question type. Empty values are left to the required check.

        Args:
            form: Form being submitted
            answers: Submitted answers in payload order

        Returns:
            ValidationResult
        """
        issues: list[ValidationIssue] = []
        seen: set[str] = set()

        for answer in answers:
            question = form.get_question(answer.question_id)
            if question is None:
                issues.append(ValidationIssue(
                    question_id=answer.question_id,
                    question_title="",
                    message="Answer refers to an unknown question.",
                    code="unknown_question",
                ))
                continue
            if not question.is_answerable:
                issues.append(ValidationIssue(
                    question_id=question.id,
                    question_title=question.title,
                    message="Section breaks cannot be answered.",
                    code="not_answerable",
                ))
                continue
            if question.id in seen:
                issues.append(ValidationIssue(
                    question_id=question.id,
                    question_title=question.title,
                    message="Question was answered more than once.",
                    code="duplicate_answer",
                ))
                continue
            seen.add(question.id)

            if is_answer_empty(answer.value):
                continue

            message = AnswerValidator._check_value(question, answer.value)
            if message:
                issues.append(ValidationIssue(
                    question_id=question.id,
                    question_title=question.title,
                    message=message,
                    code="invalid_value",
                ))

        return ValidationResult.from_issues(issues)

    @staticmethod
    def completion_progress(form: Form, answers: Optional[Mapping[str, Any]]) -> float:
        """Percentage of answerable questions that have a non-empty answer."""
        answerable = form.answerable_questions()
        if not answerable:
            return 0.0
        answers = answers or {}
        answered = sum(1 for q in answerable if not is_answer_empty(answers.get(q.id)))
        return answered / len(answerable) * 100

    @staticmethod
    def _check_value(question: Question, value: Any) -> Optional[str]:
        """Return an error message if ``value`` does not fit ``question``."""
        qtype = question.type

        if qtype in TEXT_TYPES:
            if not isinstance(value, str):
                return "Please enter text."
            if question.max_length is not None and len(value) > question.max_length:
                return f"Please enter no more than {question.max_length} characters."
            return None

        if qtype == QuestionType.EMAIL:
            if not isinstance(value, str) or not EMAIL_PATTERN.match(value.strip()):
                return "Please enter a valid email address."
            return None

        if qtype == QuestionType.URL:
            if not isinstance(value, str) or not URL_PATTERN.match(value.strip()):
                return "Please enter a valid URL."
            return None

        if qtype == QuestionType.FILE_UPLOAD:
            if not isinstance(value, str):
                return "Please upload a file."
            return None

        if qtype == QuestionType.NUMBER:
            if _as_number(value) is None:
                return "Please enter a number."
            return None

        if qtype == QuestionType.RATING:
            rating = _as_number(value)
            low, high = question.rating_bounds()
            if rating is None or rating != int(rating) or not low <= rating <= high:
                return f"Please choose a rating between {low} and {high}."
            return None

        if qtype == QuestionType.DATE:
            if not isinstance(value, str) or not _parses(date.fromisoformat, value):
                return "Please enter a valid date."
            return None

        if qtype == QuestionType.TIME:
            if not isinstance(value, str) or not _parses(time.fromisoformat, value):
                return "Please enter a valid time."
            return None

        if qtype in (QuestionType.MULTIPLE_CHOICE, QuestionType.DROPDOWN):
            if not isinstance(value, str) or value not in question.option_values():
                return "Please choose one of the available options."
            return None

        if qtype == QuestionType.CHECKBOX:
            allowed = question.option_values()
            if not isinstance(value, list) or any(v not in allowed for v in value):
                return "Please choose from the available options."
            return None

        # Should never happen due to the closed QuestionType enum
        logger.error(f"Unknown question type: {qtype}")
        return "Unsupported question type."


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _parses(parser, value: str) -> bool:
    try:
        parser(value)
    except ValueError:
        return False
    return True
