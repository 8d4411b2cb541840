"""Pydantic schemas for data validation.

This package contains all Pydantic models for form definitions, answers
and stored responses.
"""

from app.schemas.form import (
    QuestionType,
    CHOICE_TYPES,
    AnswerValue,
    QuestionOption,
    Question,
    EmailNotificationSettings,
    FormSettings,
    FormDefinition,
    FormUpdate,
    Form,
    FormPage,
    PublicFormRead,
    Answer,
    SubmissionRequest,
    ResponseRead,
    SubmissionStatusRead,
    SubmissionAcceptedRead,
    RejectionIssueRead,
    RejectionRead,
)

__all__ = [
    "QuestionType",
    "CHOICE_TYPES",
    "AnswerValue",
    "QuestionOption",
    "Question",
    "EmailNotificationSettings",
    "FormSettings",
    "FormDefinition",
    "FormUpdate",
    "Form",
    "FormPage",
    "PublicFormRead",
    "Answer",
    "SubmissionRequest",
    "ResponseRead",
    "SubmissionStatusRead",
    "SubmissionAcceptedRead",
    "RejectionIssueRead",
    "RejectionRead",
]
