"""Tests for login, session cookie and contact verification."""

import pytest
from httpx import AsyncClient

from app.core.deps import COOKIE_NAME
from app.core.security import create_session_token
from app.db.enums import UserStatus
from app.db.models import AuditLog, User
from app.routers.auth import RESEND_MESSAGE


def _token(user: User) -> str:
    return create_session_token(user.id, user.user_type, user.token_version)


@pytest.mark.asyncio
async def test_login_sets_session_cookie(client: AsyncClient, buyer_user, db):
    response = await client.post(
        "/auth/login", json={"email": buyer_user.email, "password": "password123"}
    )

    assert response.status_code == 200
    assert response.json()["user_id"] == buyer_user.id
    assert response.json()["email_verified"] is True
    assert COOKIE_NAME in response.cookies
    assert "httponly" in response.headers["set-cookie"].lower()
    db.refresh(buyer_user)
    assert buyer_user.last_login_at is not None


@pytest.mark.asyncio
async def test_login_failure_is_audited(client: AsyncClient, buyer_user, db):
    response = await client.post(
        "/auth/login", json={"email": buyer_user.email, "password": "wrong-password"}
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"
    event = db.query(AuditLog).filter(AuditLog.action == "login_failure").one()
    assert event.table_name == "security_events"
    assert event.user_id == buyer_user.id
    assert event.severity == "medium"


@pytest.mark.asyncio
async def test_unknown_email_gets_same_answer(client: AsyncClient):
    response = await client.post(
        "/auth/login", json={"email": "nobody@example.com", "password": "whatever"}
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


@pytest.mark.asyncio
async def test_suspended_account_cannot_login(client: AsyncClient, make_user):
    user = make_user(status=UserStatus.SUSPENDED)

    response = await client.post("/auth/login", json={"email": user.email, "password": "password123"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Account disabled"


@pytest.mark.asyncio
async def test_login_is_rate_limited(client: AsyncClient, buyer_user):
    for _ in range(5):
        await client.post("/auth/login", json={"email": buyer_user.email, "password": "nope"})

    response = await client.post("/auth/login", json={"email": buyer_user.email, "password": "password123"})

    assert response.status_code == 429


@pytest.mark.asyncio
async def test_me_and_logout(buyer_client: AsyncClient, buyer_user):
    me = await buyer_client.get("/auth/me")
    assert me.status_code == 200
    assert me.json()["name"] == "Ravi Buyer"

    response = await buyer_client.post("/auth/logout")
    assert response.status_code == 200
    assert response.json() == {"status": "logged_out"}


@pytest.mark.asyncio
async def test_revoked_session_is_rejected(client: AsyncClient, buyer_user, db):
    client.cookies.set(COOKIE_NAME, _token(buyer_user))
    buyer_user.token_version += 1
    db.commit()

    response = await client.get("/auth/me")

    assert response.status_code == 401
    assert response.json()["detail"] == "Session revoked"


# =============================================================================
# Verification
# =============================================================================

@pytest.fixture
def pending_user(make_user, db) -> User:
    user = make_user(
        status=UserStatus.PENDING_VERIFICATION,
        email_verified=False,
        phone_verified=False,
    )
    user.email_verification_token = "e" * 43
    user.phone_verification_code = "123456"
    db.commit()
    return user


@pytest.mark.asyncio
async def test_verify_email_then_phone_activates(client: AsyncClient, pending_user, db):
    response = await client.post("/auth/verify-email", json={"token": "e" * 43})
    assert response.status_code == 200
    assert response.json()["email_verified"] is True
    assert response.json()["status"] == "pending_verification"

    client.cookies.set(COOKIE_NAME, _token(pending_user))
    response = await client.post("/auth/verify-phone", json={"code": "123456"})
    assert response.status_code == 200
    assert response.json()["phone_verified"] is True
    assert response.json()["status"] == "active"

    db.refresh(pending_user)
    assert pending_user.email_verification_token is None
    assert pending_user.phone_verification_code is None


@pytest.mark.asyncio
async def test_verify_email_token_is_single_use(client: AsyncClient, pending_user):
    first = await client.post("/auth/verify-email", json={"token": "e" * 43})
    second = await client.post("/auth/verify-email", json={"token": "e" * 43})

    assert first.status_code == 200
    assert second.status_code == 400


@pytest.mark.asyncio
async def test_wrong_phone_code_rejected(client: AsyncClient, pending_user):
    client.cookies.set(COOKIE_NAME, _token(pending_user))
    response = await client.post("/auth/verify-phone", json={"code": "654321"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid verification code"


@pytest.mark.asyncio
async def test_resend_regenerates_and_sends(client: AsyncClient, pending_user, db, transports):
    response = await client.post("/auth/resend-verification", json={"email": pending_user.email})

    assert response.status_code == 202
    assert response.json() == {"message": RESEND_MESSAGE}
    db.refresh(pending_user)
    assert pending_user.phone_verification_code != "123456"
    assert transports.email.sent[0]["to"] == pending_user.email
    assert transports.sms.sent[0]["variables"]["otp"] == pending_user.phone_verification_code


@pytest.mark.asyncio
async def test_resend_skips_verified_channel(client: AsyncClient, pending_user, db, transports):
    await client.post("/auth/verify-email", json={"token": "e" * 43})

    response = await client.post("/auth/resend-verification", json={"email": pending_user.email})

    assert response.status_code == 202
    assert transports.email.sent == []
    assert len(transports.sms.sent) == 1


@pytest.mark.asyncio
async def test_resend_unknown_email_is_indistinguishable(client: AsyncClient, transports):
    response = await client.post("/auth/resend-verification", json={"email": "ghost@example.com"})

    assert response.status_code == 202
    assert response.json() == {"message": RESEND_MESSAGE}
    assert transports.email.sent == []
    assert transports.sms.sent == []
