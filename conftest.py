# Корень репозитория в sys.path для импорта 'auth', 'tools', 'server'
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = os.path.abspath(os.path.dirname(__file__))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from db import db  # noqa: E402
from auth.revocation import InMemoryRevocationRegistry  # noqa: E402
from auth.services.auth_service import AuthService  # noqa: E402
from auth.services.verification_service import VerificationCodeEngine  # noqa: E402
from tools.tokens import TokenCodec  # noqa: E402

SECRET = "test_secret"


class Clock:
    """Управляемые часы: now() для БД (naive UTC), time() для JWT."""
    def __init__(self, start: datetime):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def time(self) -> float:
        return self.current.replace(tzinfo=timezone.utc).timestamp()

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class OutboxMailer:
    def __init__(self):
        self.sent = []

    def send(self, to_email, subject, body_html, body_text):
        self.sent.append({"to": to_email, "subject": subject, "html": body_html, "text": body_text})


@pytest.fixture
def clock():
    return Clock(datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0))


@pytest.fixture
def db_session():
    engine = create_engine("sqlite:///:memory:")
    db.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    s = SessionLocal()
    yield s
    s.close()
    engine.dispose()


@pytest.fixture
def mailer():
    return OutboxMailer()


@pytest.fixture
def codec(clock):
    return TokenCodec(SECRET, access_ttl_seconds=900, refresh_ttl_days=7, now_provider=clock.time)


@pytest.fixture
def registry():
    return InMemoryRevocationRegistry()


@pytest.fixture
def verification(db_session, mailer, clock):
    return VerificationCodeEngine(db_session, mailer, ttl_minutes=15, now_provider=clock.now)


@pytest.fixture
def auth_service(db_session, codec, registry, verification, clock):
    return AuthService(db_session, codec, registry, verification, now_provider=clock.now)
