"""FormResponse model for storing accepted submissions.

A response is written exactly once per accepted submission and never
modified afterwards. Responses are keyed to their respondent by normalized
email address, which is what duplicate detection looks up.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Index,
    String,
    DateTime,
    ForeignKey,
    JSON,
    func,
    select,
    text,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from app.models.database import Base


class FormResponse(Base):
    """Model for a submitted response.

    Attributes:
        id: Primary key (UUID string)
        form_id: Foreign key to forms table
        submitted_at: When the submission was accepted
        answers: JSON list of {question_id, value} documents
        respondent_email: Verified, normalized respondent email
        respondent_name: Display name from the identity provider
        form: Relationship to parent FormRecord
    """

    __tablename__ = "form_responses"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    form_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("forms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Foreign key to forms table"
    )

    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
        comment="When the submission was accepted"
    )
    answers: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Submitted answers"
    )

    # Respondent identity (normalized email is the deduplication key)
    respondent_email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        comment="Verified respondent email, trimmed and lower-cased"
    )
    respondent_name: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        comment="Respondent display name"
    )

    form: Mapped["FormRecord"] = relationship(
        "FormRecord",
        back_populates="responses",
    )

    __table_args__ = (
        # Index for duplicate detection and status checks
        Index("idx_form_respondent", "form_id", "respondent_email"),
    )

    @classmethod
    def find_for_respondent(
        cls,
        db: Session,
        form_id: str,
        email: str,
    ) -> Optional["FormResponse"]:
        """Find an existing response by a respondent.

        Args:
            db: Database session
            form_id: Form identifier
            email: Normalized respondent email

        Returns:
            The earliest matching response, or None
        """
        return db.execute(
            select(cls)
            .where(cls.form_id == form_id, cls.respondent_email == email)
            .order_by(cls.submitted_at.asc())
            .limit(1)
        ).scalar_one_or_none()

    @classmethod
    def create(
        cls,
        db: Session,
        form_id: str,
        answers: list[dict],
        respondent_email: str,
        respondent_name: Optional[str] = None,
    ) -> "FormResponse":
        """Add a new response (caller commits).

        Example:
            response = FormResponse.create(db, form.id, answers, "a@x.com")
            db.commit()
        """
        response = cls(
            form_id=form_id,
            answers=answers,
            respondent_email=respondent_email,
            respondent_name=respondent_name,
            submitted_at=datetime.now(timezone.utc),
        )
        db.add(response)
        return response

    @classmethod
    def list_for_form(cls, db: Session, form_id: str) -> list["FormResponse"]:
        """Return a form's responses, newest first."""
        return list(db.execute(
            select(cls)
            .where(cls.form_id == form_id)
            .order_by(cls.submitted_at.desc())
        ).scalars())

    @classmethod
    def count_by_form(cls, db: Session, form_ids: list[str]) -> dict[str, int]:
        """Count stored responses per form."""
        if not form_ids:
            return {}
        rows = db.execute(
            select(cls.form_id, func.count(cls.id))
            .where(cls.form_id.in_(form_ids))
            .group_by(cls.form_id)
        ).all()
        return {form_id: count for form_id, count in rows}

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<FormResponse(id={self.id}, "
            f"form_id={self.form_id}, "
            f"submitted_at={self.submitted_at})>"
        )
