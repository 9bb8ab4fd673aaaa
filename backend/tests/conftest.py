"""
Test configuration and fixtures.
Importing deadline_alerts.main is deferred to the client fixture so tests that
only need db_session do not build the FastAPI app.
"""
from datetime import date

import pytest
import resend
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from deadline_alerts.config import settings
from deadline_alerts.db import Base, get_db
from deadline_alerts.models import (
    AlertType,
    Client,
    ClientAlert,
    ClientTask,
    NotificationPreference,
    ReminderSchedule,
)

# Test database URL (in-memory SQLite)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

# Create test engine
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

CRON_SECRET = "test-cron-secret"


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Configured email transport and scheduler secret, no retry waits."""
    monkeypatch.setattr(settings, "CRON_SECRET_KEY", CRON_SECRET)
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test_key")
    monkeypatch.setattr(settings, "EMAIL_FROM", "alerts@practice.test")
    monkeypatch.setattr(settings, "EMAIL_MAX_ATTEMPTS", 1)
    monkeypatch.setattr(settings, "EMAIL_RETRY_MIN_WAIT", 0)
    monkeypatch.setattr(settings, "EMAIL_RETRY_MAX_WAIT", 0)
    monkeypatch.setattr(settings, "FIRM_NAME", "Ledger & Co")
    monkeypatch.setattr(settings, "FIRM_CONTACT_EMAIL", "hello@practice.test")
    monkeypatch.setattr(settings, "NOTIFICATIONS_ADMIN_EMAIL", "admin@practice.test")
    monkeypatch.setattr(settings, "CLIENT_PORTAL_BASE_URL", "https://portal.practice.test/")
    monkeypatch.setattr(settings, "REMINDER_TIMEZONE", "UTC")
    return settings


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Capture every Resend send instead of calling the API."""
    sent = []

    def fake_send(params, *args, **kwargs):
        sent.append(params)
        return {"id": f"email_{len(sent)}"}

    monkeypatch.setattr(resend.Emails, "send", fake_send)
    return sent


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with database session override."""
    from fastapi.testclient import TestClient
    from deadline_alerts.main import app
    from deadline_alerts.rate_limit import limiter

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    limiter.reset()
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture
def make_client(db_session):
    """Create a practice client row."""
    def _make(**overrides):
        values = {
            "client_name": "Jane Smith",
            "client_email": "jane@acme.test",
            "company_name": "Acme Ltd",
            "automated_emails": True,
            "next_accounts_due": date(2024, 12, 31),
        }
        values.update(overrides)
        record = Client(**values)
        db_session.add(record)
        db_session.commit()
        db_session.refresh(record)
        return record
    return _make


@pytest.fixture
def make_alert(db_session):
    """Create an alert (and optional follow-up offsets) for a client."""
    def _make(practice_client, follow_ups=(), **overrides):
        values = {
            "client_id": practice_client.id,
            "alert_type": AlertType.NEXT_ACCOUNTS_DUE,
            "days_before_due": 30,
            "notification_preference": NotificationPreference.SEND_DIRECT_TO_CLIENT,
            "is_active": True,
        }
        values.update(overrides)
        alert = ClientAlert(**values)
        alert.schedules = [ReminderSchedule(days_before_due=offset) for offset in follow_ups]
        db_session.add(alert)
        db_session.commit()
        db_session.refresh(alert)
        return alert
    return _make


@pytest.fixture
def make_task(db_session):
    def _make(practice_client, **overrides):
        values = {
            "client_id": practice_client.id,
            "task_title": "Send year-end bank statements",
            "task_description": "Upload all statements for the year ended 31 March.",
            "due_date": date(2024, 12, 20),
        }
        values.update(overrides)
        task = ClientTask(**values)
        db_session.add(task)
        db_session.commit()
        db_session.refresh(task)
        return task
    return _make
