"""
Shared test fixtures.

Provides: in-memory SQLite session, FastAPI TestClient bound to it,
helpers for seeding emails and tokens.
"""

import os

# Configure before any heimdr import creates the engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OPENAI_API_KEY"] = "sk-test"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["RESEND_API_KEY"] = "re_test"

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from heimdr.database import Base, get_db
from heimdr.models import Email, GmailToken, OutlookToken

USER_ID = "user-1"


@pytest.fixture
def db_session():
    """
    In-memory SQLite database session.

    Yields:
        Session: Fresh schema per test
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    session = TestingSession()
    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def client(db_session):
    from main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"X-User-Id": USER_ID}


@pytest.fixture
def make_email(db_session):
    """Factory that stores an email row."""
    def _make(
        email_id,
        user_id=USER_ID,
        source="gmail",
        risk_level=None,
        reason=None,
        date=None,
        from_address="sender@example.com",
        subject="Hello",
        body="Body text"
    ):
        email = Email(
            id=email_id,
            user_id=user_id,
            from_address=from_address,
            subject=subject,
            date=date or datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc),
            body=body,
            source=source,
            message_id=email_id,
            ai_risk_level=risk_level,
            ai_reason=reason,
            analyzed_at=datetime.now(timezone.utc) if risk_level else None,
        )
        db_session.add(email)
        db_session.commit()
        return email

    return _make


@pytest.fixture
def gmail_token(db_session):
    token = GmailToken(
        user_id=USER_ID,
        access_token="gmail-access-token",
        refresh_token="gmail-refresh-token",
        email="me@gmail.com",
    )
    db_session.add(token)
    db_session.commit()
    return token


@pytest.fixture
def outlook_token(db_session):
    token = OutlookToken(
        user_id=USER_ID,
        access_token="outlook-access-token",
        refresh_token="outlook-refresh-token",
        email="me@outlook.com",
    )
    db_session.add(token)
    db_session.commit()
    return token
