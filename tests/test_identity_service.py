"""Tests for submitter identity resolution."""

import pytest

from app.core.errors import DuplicateError
from app.db.enums import UserRole, UserStatus
from app.db.models import User
from app.services import identity_service


def test_existing_email_match_is_returned(db, buyer_user):
    result = identity_service.resolve(
        db,
        name="Someone Else",
        email=buyer_user.email.upper(),
        phone="9811111111",
        create_account=True,
        password_hash="hash",
    )

    assert result.user_id == buyer_user.id
    assert result.created is False
    assert result.email_verification_token is None


def test_existing_phone_match_is_returned(db, buyer_user):
    result = identity_service.resolve(
        db, name="Ravi", email="new-address@example.com", phone=buyer_user.phone
    )

    assert result.user_id == buyer_user.id
    assert result.created is False


def test_no_match_without_account_request_is_anonymous(db):
    result = identity_service.resolve(
        db, name="Asha", email="asha@example.com", phone="9876543210"
    )

    assert result.user_id is None
    assert result.created is False
    assert db.query(User).count() == 0


def test_account_request_without_password_stays_anonymous(db):
    result = identity_service.resolve(
        db, name="Asha", email="asha@example.com", phone="9876543210", create_account=True
    )

    assert result.user_id is None
    assert result.created is False


def test_creates_pending_account_with_secrets(db):
    result = identity_service.resolve(
        db,
        name="  Asha   Rao ",
        email="Asha@Example.com",
        phone="9876543210",
        create_account=True,
        password_hash="bcrypt-hash",
    )

    assert result.created is True
    user = db.query(User).filter(User.id == result.user_id).one()
    assert user.name == "Asha Rao"
    assert user.email == "asha@example.com"
    assert user.user_type == UserRole.USER.value
    assert user.status == UserStatus.PENDING_VERIFICATION.value
    assert user.password_hash == "bcrypt-hash"
    assert user.email_verification_token == result.email_verification_token
    assert user.phone_verification_code == result.phone_verification_code
    assert len(result.phone_verification_code) == 6
    assert result.phone_verification_code.isdigit()
    assert user.email_verified_at is None
    assert user.phone_verified_at is None


def test_contact_collision_raises_duplicate(db, buyer_user, monkeypatch):
    # Simulate a concurrent creator that won the race after our lookup
    monkeypatch.setattr(identity_service, "find_by_contact", lambda *args, **kwargs: None)

    with pytest.raises(DuplicateError):
        identity_service.resolve(
            db,
            name="Racer",
            email=buyer_user.email,
            phone="9822222222",
            create_account=True,
            password_hash="hash",
        )


def test_resolve_with_retry_finds_race_winner(db, buyer_user, monkeypatch):
    real_find = identity_service.find_by_contact
    calls = {"n": 0}

    def find_after_first_call(*args, **kwargs):
        calls["n"] += 1
        return None if calls["n"] == 1 else real_find(*args, **kwargs)

    monkeypatch.setattr(identity_service, "find_by_contact", find_after_first_call)

    result = identity_service.resolve_with_retry(
        db,
        name="Racer",
        email=buyer_user.email,
        phone="9833333333",
        create_account=True,
        password_hash="hash",
    )

    assert result.user_id == buyer_user.id
    assert result.created is False
