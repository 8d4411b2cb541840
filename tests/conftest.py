"""Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests.
"""

import os
from datetime import datetime, timezone
from typing import Generator

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set required environment variables for tests BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ADMIN_API_TOKEN", "test_admin_token_for_testing_only")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
os.environ.setdefault("FORMS_DIR", "./tests/does-not-exist")
os.environ.setdefault("ENVIRONMENT", "development")

from app.models.database import Base, get_db
from app.models.form import FormRecord
from app.schemas.form import FormDefinition
from app.services.identity import (
    IdentityVerificationError,
    VerifiedIdentity,
    get_identity_verifier,
)

ADMIN_TOKEN = os.environ["ADMIN_API_TOKEN"]


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine with SQLite in-memory database.

    Yields:
        Engine: SQLAlchemy engine for testing

    Note:
        Uses a single shared connection (StaticPool) so the same in-memory
        database is visible from the TestClient's worker thread.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,  # Set to True for SQL debugging
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    Base.metadata.create_all(engine)

    yield engine

    # Drop all tables after test
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session.

    Args:
        db_engine: Test database engine fixture

    Yields:
        Session: SQLAlchemy session for testing
    """
    TestSessionLocal = sessionmaker(
        bind=db_engine,
        autocommit=False,
        autoflush=False,
    )

    session = TestSessionLocal()

    yield session

    # Rollback any uncommitted changes
    session.rollback()
    session.close()


class FakeIdentityVerifier:
    """Identity verifier stand-in keyed by token.

    Tokens of the form ``token:<email>`` verify as that email; anything
    else is rejected.
    """

    def __init__(self):
        self.calls = []

    async def verify(self, token: str) -> VerifiedIdentity:
        self.calls.append(token)
        if not token or not token.startswith("token:"):
            raise IdentityVerificationError("Identity token is invalid or expired")
        email = token.split(":", 1)[1]
        return VerifiedIdentity(
            email=email.strip().lower(),
            name="Test Respondent",
            subject=f"sub-{email.strip().lower()}",
        )


@pytest.fixture
def fake_verifier() -> FakeIdentityVerifier:
    """Provide an identity verifier that needs no network."""
    return FakeIdentityVerifier()


def build_definition(**overrides) -> FormDefinition:
    """Build a published two-page form definition.

    Page 1 asks for a name and an email; a section break titled "Details"
    starts page 2 with a rating and a dropdown.
    """
    data = {
        "id": "event-signup",
        "title": "Event Signup",
        "description": "Sign up for the **spring** event.",
        "is_published": True,
        "questions": [
            {"id": "name", "type": "short_text", "title": "Name", "required": True},
            {"id": "email", "type": "email", "title": "Email", "required": True},
            {
                "id": "details",
                "type": "section_break",
                "title": "Details",
                "description": "A little more about you",
            },
            {"id": "rating", "type": "rating", "title": "Excitement", "max_rating": 5},
            {
                "id": "track",
                "type": "dropdown",
                "title": "Track",
                "options": [
                    {"id": "o1", "label": "Beginner", "value": "beginner"},
                    {"id": "o2", "label": "Advanced", "value": "advanced"},
                ],
            },
        ],
        "settings": {},
    }
    settings = overrides.pop("settings", None)
    data.update(overrides)
    if settings is not None:
        data["settings"] = settings
    return FormDefinition(**data)


@pytest.fixture
def form_factory(db_session):
    """Create and commit forms built from ``build_definition``."""

    def _create(**overrides) -> FormRecord:
        record = FormRecord.create(db_session, build_definition(**overrides))
        db_session.commit()
        db_session.refresh(record)
        return record

    return _create


@pytest.fixture
def sample_form(form_factory) -> FormRecord:
    """Provide a published form with default settings."""
    return form_factory()


@pytest.fixture
def valid_answers() -> list[dict]:
    """Answers that satisfy every required question of the sample form."""
    return [
        {"question_id": "name", "value": "Ada Lovelace"},
        {"question_id": "email", "value": "ada@example.com"},
        {"question_id": "rating", "value": 5},
        {"question_id": "track", "value": "advanced"},
    ]


@pytest.fixture
def fixed_now() -> datetime:
    """A fixed point in time for clock-dependent tests."""
    return datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def client(db_session, fake_verifier):
    """TestClient with overridden database and identity dependencies."""
    from fastapi.testclient import TestClient
    from app.main import app

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_identity_verifier] = lambda: fake_verifier

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    """Authorization header for the admin API."""
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
