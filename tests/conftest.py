"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database with a savepoint per test (rollback after each test)
- User factories and session-cookie minting
- HTTPX AsyncClients (anonymous, admin, agent, buyer)
- Recording email/SMS transports in place of SMTP and MSG91
"""
import itertools
import os
from dataclasses import dataclass, field
from typing import AsyncGenerator, Generator

# Settings are read at import time
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["SMTP_HOST"] = ""
os.environ["MSG91_AUTH_KEY"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from app.core.deps import COOKIE_NAME, CSRF_HEADER, CSRF_HEADER_VALUE, get_db
from app.core.errors import ExternalServiceError
from app.core.rate_limit import limiter
from app.core.security import create_session_token, hash_password
from app.db.base import Base
from app.db.enums import UserRole, UserStatus
from app.db.models import Property, User
from app.db.session import SessionLocal
from app.db.types import utcnow
from app.main import app
from app.services.notification_dispatcher import NotificationDispatcher, get_dispatcher


# =============================================================================
# Database (one in-memory SQLite connection shared by every session)
# =============================================================================

test_engine = create_engine(
    "sqlite://",
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)


@event.listens_for(test_engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    # Let SQLAlchemy own BEGIN so SAVEPOINTs work with pysqlite
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@event.listens_for(test_engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


Base.metadata.create_all(test_engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Session joined to an outer transaction that is rolled back after the test.

    Service code may commit and roll back freely: each commit releases a
    savepoint, never the outer transaction.
    """
    connection = test_engine.connect()
    transaction = connection.begin()
    session = SessionLocal(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()


# =============================================================================
# Factories
# =============================================================================

_phone_numbers = itertools.count(9000000001)
_emails = itertools.count(1)


@pytest.fixture
def make_user(db: Session):
    """Create and commit a user. Committed so service rollbacks keep it."""

    def _make(
        role: UserRole = UserRole.USER,
        *,
        name: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        password: str = "password123",
        status: UserStatus = UserStatus.ACTIVE,
        email_verified: bool = True,
        phone_verified: bool = True,
        specialization: str | None = None,
        rating: float | None = None,
        agency_name: str | None = None,
    ) -> User:
        n = next(_emails)
        now = utcnow()
        user = User(
            name=name or f"{role.value.title()} {n}",
            email=email or f"{role.value}{n}@example.com",
            phone=phone or str(next(_phone_numbers)),
            password_hash=hash_password(password),
            user_type=role.value,
            status=status.value,
            email_verified_at=now if email_verified else None,
            phone_verified_at=now if phone_verified else None,
            specialization=specialization,
            agent_rating=rating,
            agency_name=agency_name,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_property(db: Session):
    def _make(title: str = "3BHK Villa in Whitefield", property_type: str | None = "villa") -> Property:
        prop = Property(title=title, property_type=property_type)
        db.add(prop)
        db.commit()
        return prop

    return _make


@pytest.fixture
def admin_user(make_user) -> User:
    return make_user(UserRole.ADMIN, name="Admin User")


@pytest.fixture
def agent_user(make_user) -> User:
    return make_user(UserRole.AGENT, name="Priya Agent", agency_name="Skyline Realty", rating=4.5)


@pytest.fixture
def buyer_user(make_user) -> User:
    return make_user(UserRole.USER, name="Ravi Buyer")


def session_cookie(user: User) -> dict[str, str]:
    token = create_session_token(user.id, user.user_type, user.token_version)
    return {COOKIE_NAME: token}


# =============================================================================
# Notification transports
# =============================================================================

@dataclass
class RecordingEmailTransport:
    configured: bool = True
    fail_with: str | None = None
    sent: list[dict] = field(default_factory=list)

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> str:
        if self.fail_with:
            raise ExternalServiceError(self.fail_with, service="email")
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return f"<msg-{len(self.sent)}@test>"


@dataclass
class RecordingSmsTransport:
    configured: bool = True
    fail_with: str | None = None
    sent: list[dict] = field(default_factory=list)

    async def send(self, phone: str, body: str, *, template=None, variables=None) -> str:
        if self.fail_with:
            raise ExternalServiceError(self.fail_with, service="sms")
        self.sent.append({"phone": phone, "body": body, "template": template, "variables": variables})
        return f"sms-{len(self.sent)}"


@dataclass
class Transports:
    email: RecordingEmailTransport
    sms: RecordingSmsTransport
    dispatcher: NotificationDispatcher


@pytest.fixture
def transports() -> Generator[Transports, None, None]:
    email = RecordingEmailTransport()
    sms = RecordingSmsTransport()
    dispatcher = NotificationDispatcher(email, sms)
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield Transports(email=email, sms=sms, dispatcher=dispatcher)
    app.dependency_overrides.pop(get_dispatcher, None)


# =============================================================================
# Client Fixtures
# =============================================================================

def _client(cookies: dict[str, str] | None = None) -> AsyncClient:
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies=cookies,
        headers={CSRF_HEADER: CSRF_HEADER_VALUE},
    )


@pytest.fixture
def override_db(db: Session, transports: Transports):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
async def client(override_db) -> AsyncGenerator[AsyncClient, None]:
    """Anonymous client (public endpoints)."""
    async with _client() as c:
        yield c


@pytest.fixture
async def admin_client(override_db, admin_user: User) -> AsyncGenerator[AsyncClient, None]:
    async with _client(session_cookie(admin_user)) as c:
        yield c


@pytest.fixture
async def agent_client(override_db, agent_user: User) -> AsyncGenerator[AsyncClient, None]:
    async with _client(session_cookie(agent_user)) as c:
        yield c


@pytest.fixture
async def buyer_client(override_db, buyer_user: User) -> AsyncGenerator[AsyncClient, None]:
    async with _client(session_cookie(buyer_user)) as c:
        yield c
