"""Database models and session management.

This package contains all SQLAlchemy ORM models and database utilities.
"""

from app.models.database import Base, engine, SessionLocal, get_db, init_db
from app.models.form import FormRecord, is_valid_form_id
from app.models.response import FormResponse

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "init_db",
    "FormRecord",
    "is_valid_form_id",
    "FormResponse",
]
