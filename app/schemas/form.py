"""Pydantic schemas for form definitions, answers and responses.

These models are the in-memory representation of a form that the pager,
validator, auto-close evaluator and submission gate operate on. The
persistence layer stores questions and settings as JSON and rebuilds these
models on every read.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


class QuestionType(str, Enum):
    """Question types a form can contain."""
    SHORT_TEXT = "short_text"
    LONG_TEXT = "long_text"
    MULTIPLE_CHOICE = "multiple_choice"
    CHECKBOX = "checkbox"
    DROPDOWN = "dropdown"
    RATING = "rating"
    DATE = "date"
    TIME = "time"
    EMAIL = "email"
    NUMBER = "number"
    URL = "url"
    FILE_UPLOAD = "file_upload"
    SECTION_BREAK = "section_break"


CHOICE_TYPES = frozenset({
    QuestionType.MULTIPLE_CHOICE,
    QuestionType.CHECKBOX,
    QuestionType.DROPDOWN,
})

DEFAULT_MAX_RATING = 5

# Closed union of answer values; file uploads arrive as their stored URL
AnswerValue = Union[str, int, float, list[str], None]


class QuestionOption(BaseModel):
    """A selectable option of a choice question.

    Attributes:
        id: Option identifier (stable across label edits)
        label: Text shown to the respondent
        value: Value recorded in the answer
    """
    id: str = Field(..., min_length=1, description="Option identifier")
    label: str = Field(..., min_length=1, description="Display label")
    value: str = Field(..., min_length=1, description="Stored value")


class Question(BaseModel):
    """A single question, or a section break separating pages.

    Attributes:
        id: Identifier, unique within the form
        type: Question type
        title: Question text (or section title for section breaks)
        description: Optional helper text
        required: Whether an answer must be supplied
        options: Choices for multiple_choice/checkbox/dropdown questions
        placeholder: Input placeholder text
        max_length: Maximum characters for text answers
        min_rating: Lowest selectable rating (defaults to 1)
        max_rating: Highest selectable rating (defaults to 5)
        allow_multiple: Whether a file question accepts several files
        accept_file_types: Accept string for file inputs
        max_file_size: Maximum upload size in bytes
    """
    id: str = Field(..., min_length=1, description="Question identifier")
    type: QuestionType = Field(..., description="Question type")
    title: str = Field(default="", description="Question or section title")
    description: Optional[str] = Field(None, description="Helper text")
    required: bool = Field(default=False, description="Answer required")
    options: Optional[list[QuestionOption]] = Field(None, description="Choice options")
    placeholder: Optional[str] = Field(None, description="Input placeholder")
    max_length: Optional[int] = Field(None, ge=1, description="Maximum text length")
    min_rating: Optional[int] = Field(None, ge=0, description="Lowest rating")
    max_rating: Optional[int] = Field(None, ge=1, description="Highest rating")
    allow_multiple: Optional[bool] = Field(None, description="Multiple files allowed")
    accept_file_types: Optional[str] = Field(None, description="Accepted file types")
    max_file_size: Optional[int] = Field(None, ge=1, description="Maximum file size")

    @model_validator(mode='after')
    def validate_question_requirements(self):
        """Validate type-specific invariants."""
        if self.type == QuestionType.SECTION_BREAK and self.required:
            raise ValueError(f"Section break '{self.id}' cannot be required")

        if self.options:
            values = [option.value for option in self.options]
            if len(values) != len(set(values)):
                duplicates = sorted({v for v in values if values.count(v) > 1})
                raise ValueError(
                    f"Question '{self.id}' has duplicate option values: {duplicates}"
                )

        low, high = self.rating_bounds()
        if low > high:
            raise ValueError(f"Question '{self.id}' has min_rating greater than max_rating")

        return self

    @property
    def is_answerable(self) -> bool:
        """Section breaks carry no answer; every other type does."""
        return self.type != QuestionType.SECTION_BREAK

    @property
    def is_choice(self) -> bool:
        return self.type in CHOICE_TYPES

    def option_values(self) -> list[str]:
        return [option.value for option in self.options or []]

    def rating_bounds(self) -> tuple[int, int]:
        low = self.min_rating if self.min_rating is not None else 1
        high = self.max_rating if self.max_rating is not None else DEFAULT_MAX_RATING
        return low, high


class EmailNotificationSettings(BaseModel):
    """Submission receipt configuration.

    Subject and message are Jinja2 templates rendered with ``name``,
    ``email``, ``formTitle`` and ``submittedAt``.
    """
    enabled: bool = False
    subject: str = "Your response to {{ formTitle }} was received"
    message: str = (
        "Hi {{ name }},\n\n"
        'Thank you for completing "{{ formTitle }}". '
        "We have recorded your submission on {{ submittedAt }}."
    )


class FormSettings(BaseModel):
    """Respondent-facing behaviour of a form.

    Attributes:
        allow_multiple_responses: Whether one respondent may submit repeatedly
        limit_one_response: Require identity verification before answering
        show_progress_bar: Show completion progress to respondents
        confirmation_message: Message shown after an accepted submission
        closed_message: Fallback message shown once the form is closed
        response_deadline_at: Instant after which the form closes
        max_responses: Response count at which the form closes
        email_notification: Submission receipt settings
        redirect_url: Optional URL respondents are sent to after submitting
    """
    allow_multiple_responses: bool = False
    limit_one_response: bool = True
    show_progress_bar: bool = True
    confirmation_message: str = "Thank you for your response!"
    closed_message: Optional[str] = "This form is no longer accepting responses."
    response_deadline_at: Optional[datetime] = None
    max_responses: Optional[int] = Field(None, ge=1, description="Capacity limit")
    email_notification: EmailNotificationSettings = Field(
        default_factory=EmailNotificationSettings
    )
    redirect_url: Optional[str] = None

    @field_validator('response_deadline_at')
    @classmethod
    def deadline_is_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Interpret naive deadlines as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


def _ensure_unique_question_ids(questions: Optional[list[Question]]) -> None:
    if not questions:
        return
    ids = [question.id for question in questions]
    if len(ids) != len(set(ids)):
        duplicates = sorted({qid for qid in ids if ids.count(qid) > 1})
        raise ValueError(f"Duplicate question IDs found: {duplicates}")


class FormDefinition(BaseModel):
    """Authoring payload for creating a form (API body or YAML file).

    Attributes:
        id: Optional explicit identifier (generated when omitted)
        title: Form title
        description: Markdown description, rendered by the client
        questions: Ordered questions and section breaks
        settings: Form settings
        is_published: Whether the form accepts responses
    """
    id: Optional[str] = Field(None, min_length=1, max_length=36)
    title: str = Field(default="Untitled Form", min_length=1)
    description: str = ""
    questions: list[Question] = Field(default_factory=list)
    settings: FormSettings = Field(default_factory=FormSettings)
    is_published: bool = False

    @model_validator(mode='after')
    def validate_form_structure(self):
        _ensure_unique_question_ids(self.questions)
        return self


class FormUpdate(BaseModel):
    """Partial update of a form; omitted fields are left untouched."""
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    questions: Optional[list[Question]] = None
    settings: Optional[FormSettings] = None
    is_published: Optional[bool] = None

    @model_validator(mode='after')
    def validate_form_structure(self):
        _ensure_unique_question_ids(self.questions)
        return self


class Form(FormDefinition):
    """A stored form together with its counters and timestamps."""
    id: str
    response_count: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def answerable_questions(self) -> list[Question]:
        return [q for q in self.questions if q.is_answerable]

    def get_question(self, question_id: str) -> Optional[Question]:
        """Get question by ID.

        Args:
            question_id: Question identifier

        Returns:
            Question if found, None otherwise
        """
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


class FormPage(BaseModel):
    """A derived page of consecutive answerable questions (never stored)."""
    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    questions: list[Question] = Field(default_factory=list)


class PublicFormRead(BaseModel):
    """Public view of an open form together with its pages."""
    form: Form
    pages: list[FormPage]


class Answer(BaseModel):
    """One answer within a submission."""
    question_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("question_id", "questionId"),
    )
    value: AnswerValue = None


class SubmissionRequest(BaseModel):
    """Body of a public submission.

    The identity token is single-use and must accompany every attempt.
    """
    answers: list[Answer] = Field(default_factory=list)
    identity_token: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("identity_token", "googleToken"),
    )


class ResponseRead(BaseModel):
    """A stored response as returned by the API."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    form_id: str
    submitted_at: datetime
    answers: list[Answer]
    respondent_email: str
    respondent_name: Optional[str] = None


class SubmissionStatusRead(BaseModel):
    """Whether a respondent has already submitted a form."""
    submitted: bool


class SubmissionAcceptedRead(BaseModel):
    """Body returned for an accepted submission."""
    response: ResponseRead
    confirmation_message: str
    redirect_url: Optional[str] = None


class RejectionIssueRead(BaseModel):
    """A field issue attached to an ``invalid`` rejection."""
    question_id: str
    question_title: str
    message: str
    code: str


class RejectionRead(BaseModel):
    """Body returned for a refused submission or a closed form."""
    reason: str
    detail: str
    close_reason: Optional[str] = None
    issues: list[RejectionIssueRead] = Field(default_factory=list)
