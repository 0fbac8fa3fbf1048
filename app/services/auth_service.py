"""Authentication service - password login, contact verification, session creation."""

import logging

from fastapi import Request
from sqlalchemy.orm import Session

from app.core.errors import AuthenticationError, ValidationError
from app.core.security import (
    create_session_token,
    generate_verification_code,
    generate_verification_token,
    verify_password,
)
from app.db.enums import BLOCKED_STATUSES, AuditAction, Channel, Severity, UserStatus
from app.db.models import User
from app.db.types import utcnow
from app.services import audit_service
from app.services.enquiry_service import account_verification_job
from app.services.notification_dispatcher import NotificationJob
from app.utils.normalization import normalize_email

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def authenticate(db: Session, email: str, password: str, request: Request | None = None) -> User:
    """
    Verify credentials and stamp ``last_login_at``.

    Failed attempts are written as ``login_failure`` security events.

    Raises:
        AuthenticationError: unknown email, wrong password or blocked account
    """
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        audit_service.log_security_event(
            db,
            AuditAction.LOGIN_FAILURE.value,
            user_id=user.id if user else None,
            target_email=email,
            severity=Severity.MEDIUM,
            details={"reason": "invalid_credentials"},
            request=request,
        )
        db.commit()
        logger.info("Login failed user_id=%s", user.id if user else None)
        raise AuthenticationError(INVALID_CREDENTIALS)

    if UserStatus(user.status) in BLOCKED_STATUSES:
        audit_service.log_security_event(
            db,
            AuditAction.LOGIN_FAILURE.value,
            user_id=user.id,
            target_email=email,
            severity=Severity.MEDIUM,
            details={"reason": f"account_{user.status}"},
            request=request,
        )
        db.commit()
        raise AuthenticationError("Account disabled")

    user.last_login_at = utcnow()
    db.commit()
    db.refresh(user)
    logger.info("Login succeeded user_id=%s", user.id)
    return user


def issue_session_token(user: User) -> str:
    return create_session_token(user.id, user.user_type, user.token_version)


def _activate_if_verified(user: User) -> None:
    if user.is_fully_verified and user.status == UserStatus.PENDING_VERIFICATION.value:
        user.status = UserStatus.ACTIVE.value


def verify_email(db: Session, token: str, request: Request | None = None) -> User:
    """
    Consume an email verification token.

    Raises:
        ValidationError: unknown or already-used token
    """
    user = db.query(User).filter(User.email_verification_token == token).first()
    if user is None:
        raise ValidationError("Invalid or expired verification token")

    user.email_verified_at = utcnow()
    user.email_verification_token = None
    _activate_if_verified(user)
    audit_service.log_user_action(
        db,
        user.id,
        AuditAction.EMAIL_VERIFICATION_COMPLETED.value,
        record_id=user.id,
        changes={"email_verified": True, "status": user.status},
        request=request,
    )
    db.commit()
    db.refresh(user)
    logger.info("Email verified user_id=%s", user.id)
    return user


def verify_phone(db: Session, user_id: int, code: str, request: Request | None = None) -> User:
    """
    Check the phone OTP for the signed-in user.

    Raises:
        ValidationError: no pending code or mismatch
    """
    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.phone_verification_code or user.phone_verification_code != code:
        raise ValidationError("Invalid verification code")

    user.phone_verified_at = utcnow()
    user.phone_verification_code = None
    _activate_if_verified(user)
    audit_service.log_user_action(
        db,
        user.id,
        AuditAction.PHONE_VERIFICATION_COMPLETED.value,
        record_id=user.id,
        changes={"phone_verified": True, "status": user.status},
        request=request,
    )
    db.commit()
    db.refresh(user)
    logger.info("Phone verified user_id=%s", user.id)
    return user


def resend_verification(db: Session, email: str, request: Request | None = None) -> NotificationJob | None:
    """
    Regenerate verification secrets for a pending account.

    Returns the notification to dispatch, or None when there is nothing
    to resend. Callers respond identically either way.
    """
    user = get_user_by_email(db, email)
    if user is None or user.status != UserStatus.PENDING_VERIFICATION.value or user.is_fully_verified:
        return None

    token = generate_verification_token()
    code = generate_verification_code(6)
    user.email_verification_token = None if user.email_verified_at else token
    user.phone_verification_code = None if user.phone_verified_at else code
    audit_service.log_user_action(
        db,
        user.id,
        AuditAction.VERIFICATION_RESENT.value,
        record_id=user.id,
        changes={"email_pending": user.email_verified_at is None, "phone_pending": user.phone_verified_at is None},
        request=request,
    )
    job = account_verification_job(user, token=token, code=code)
    if user.email_verified_at:
        job.channels = job.channels - {Channel.EMAIL}
    if user.phone_verified_at:
        job.channels = job.channels - {Channel.SMS}
    db.commit()
    logger.info("Verification secrets regenerated user_id=%s", user.id)
    return job
