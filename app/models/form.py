"""FormRecord model for storing form definitions and publication state.

Questions and settings are stored as JSON documents and rebuilt into the
pydantic ``Form`` schema on every read, so the runtime always works on a
validated value rather than on the ORM row.
"""

import re
import uuid
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import (
    Boolean,
    DateTime,
    Integer,
    JSON,
    String,
    Text,
    select,
    text,
    update,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from app.models.database import Base
from app.schemas.form import Form, FormDefinition, FormUpdate

# Generated ids are UUIDs; imported forms may use short slugs
FORM_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,36}$")


def is_valid_form_id(form_id: str) -> bool:
    """Check that a form id is well formed before touching the database."""
    return bool(form_id) and FORM_ID_PATTERN.match(form_id) is not None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FormRecord(Base):
    """Model for a stored form.

    Attributes:
        id: Primary key (UUID string or imported slug)
        title: Form title
        description: Markdown description
        questions: JSON list of question documents
        settings: JSON settings document
        is_published: Whether the form currently accepts responses
        response_count: Number of accepted responses
        created_at: Creation timestamp
        updated_at: Last update timestamp
        responses: Responses owned by this form
    """

    __tablename__ = "forms"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    title: Mapped[str] = mapped_column(
        String(300),
        nullable=False,
        default="Untitled Form",
        comment="Form title"
    )
    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        comment="Markdown description"
    )
    questions: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Ordered question documents"
    )
    settings: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Form settings document"
    )

    # Publication State
    is_published: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Whether the form accepts responses"
    )
    response_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of accepted responses"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_utcnow,
    )

    responses: Mapped[list["FormResponse"]] = relationship(
        "FormResponse",
        back_populates="form",
        cascade="all, delete-orphan",
    )

    def to_schema(self) -> Form:
        """Rebuild the validated pydantic form from this row."""
        return Form.model_validate({
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "questions": self.questions or [],
            "settings": self.settings or {},
            "is_published": self.is_published,
            "response_count": self.response_count,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        })

    def apply(self, changes: Union[FormDefinition, FormUpdate]) -> None:
        """Copy authoring fields onto this row.

        For a ``FormUpdate`` only the fields that were sent are applied.
        JSON columns are reassigned rather than mutated so SQLAlchemy's
        change tracking notices them.
        """
        data = changes.model_dump(mode="json", exclude_unset=isinstance(changes, FormUpdate))
        data.pop("id", None)
        for field, value in data.items():
            if value is None and isinstance(changes, FormUpdate):
                continue
            setattr(self, field, value)

    @classmethod
    def get(cls, db: Session, form_id: str) -> Optional["FormRecord"]:
        return db.get(cls, form_id)

    @classmethod
    def list_all(cls, db: Session) -> list["FormRecord"]:
        """Return all forms, newest first."""
        return list(db.execute(
            select(cls).order_by(cls.created_at.desc())
        ).scalars())

    @classmethod
    def create(cls, db: Session, definition: FormDefinition) -> "FormRecord":
        """Add a new form built from an authoring payload.

        Args:
            db: Database session
            definition: Validated form definition

        Returns:
            FormRecord: The pending record (caller commits)
        """
        record = cls(id=definition.id or str(uuid.uuid4()), response_count=0)
        record.apply(definition)
        db.add(record)
        return record

    @classmethod
    def increment_response_count(
        cls,
        db: Session,
        form_id: str,
        limit: Optional[int] = None,
    ) -> bool:
        """Atomically add one to the response counter.

        When ``limit`` is given the update only applies while the counter is
        below it, so concurrent writers cannot push the count past the limit.

        Args:
            db: Database session
            form_id: Form to update
            limit: Optional exclusive upper bound for the current count

        Returns:
            bool: True if the counter was incremented
        """
        stmt = update(cls).where(cls.id == form_id)
        if limit is not None:
            stmt = stmt.where(cls.response_count < limit)
        stmt = stmt.values(response_count=cls.response_count + 1)
        result = db.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount == 1

    @classmethod
    def set_publication(cls, db: Session, form_id: str, published: bool) -> None:
        db.execute(
            update(cls)
            .where(cls.id == form_id)
            .values(is_published=published, updated_at=_utcnow())
            .execution_options(synchronize_session=False)
        )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<FormRecord(id={self.id}, "
            f"title={self.title!r}, "
            f"is_published={self.is_published}, "
            f"response_count={self.response_count})>"
        )
