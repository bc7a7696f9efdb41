import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("TIMEZONE", "Asia/Taipei")
os.environ.setdefault("ENABLE_NOTIFICATION_RETRY", "False")

from datetime import datetime

import pytest
import pytz
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models import Organization, User
from app.models.user import default_notification_settings
from app.services.mail_transport import MailTransport
from app.services.notification_dispatcher import DispatcherConfig, NotificationDispatcher
from app.services.template_service import seed_default_templates

TAIPEI = pytz.timezone("Asia/Taipei")


def taipei(year, month, day, hour, minute=0, second=0):
    """Asia/Taipei wall-clock time as an aware datetime."""
    return TAIPEI.localize(datetime(year, month, day, hour, minute, second))


class RecordingTransport(MailTransport):
    name = "recording"

    def __init__(self):
        self.sent = []

    async def send(self, to, subject, body):
        self.sent.append({"to": to, "subject": subject, "body": body})
        return {"message_id": f"<{len(self.sent)}@test>"}


class FailingTransport(MailTransport):
    name = "failing"

    def __init__(self):
        self.calls = 0

    async def send(self, to, subject, body):
        self.calls += 1
        raise ConnectionError("SMTP server unavailable")


class RecordingNotifier:
    def __init__(self):
        self.jobs = []

    def submit(self, job):
        self.jobs.append(job)
        return None


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def organization(db):
    org = Organization(name="Acme")
    db.add(org)
    db.commit()
    db.refresh(org)
    return org


@pytest.fixture
def make_user(db, organization):
    counter = {"n": 0}

    def _make_user(role="employee", full_name=None, is_active=True, notification_settings=None, organization_id=None):
        counter["n"] += 1
        user = User(
            organization_id=organization_id or organization.id,
            email=f"user{counter['n']}@acme.test",
            full_name=full_name or f"User {counter['n']}",
            role=role,
            is_active=is_active,
            notification_settings=notification_settings or default_notification_settings(),
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def employee(make_user):
    return make_user(full_name="Ann Employee")


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", full_name="Bob Admin")


@pytest.fixture
def templates(db):
    seed_default_templates(db)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def dispatcher(session_factory, transport):
    return NotificationDispatcher(session_factory, transport, DispatcherConfig())
