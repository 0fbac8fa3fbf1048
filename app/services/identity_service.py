"""Identity resolution for enquiry submitters.

Finds the account behind an (email, phone) pair or, when the submitter
asked for one, creates a pending-verification account. Never sends
messages itself: verification secrets are handed back to the caller.
"""

import logging
import uuid as uuid_lib
from dataclasses import dataclass

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import DuplicateError
from app.core.security import generate_verification_code, generate_verification_token
from app.db.enums import UserRole, UserStatus
from app.db.models import User
from app.utils.normalization import normalize_email, normalize_name

logger = logging.getLogger(__name__)


@dataclass
class IdentityResolution:
    """Result of ``resolve``. Secrets are set only when an account was created."""

    user_id: int | None
    created: bool
    user: User | None = None
    email_verification_token: str | None = None
    phone_verification_code: str | None = None


def find_by_contact(db: Session, email: str | None, phone: str | None) -> User | None:
    """First user matching the email OR the phone."""
    clauses = []
    if email:
        clauses.append(User.email == normalize_email(email))
    if phone:
        clauses.append(User.phone == phone)
    if not clauses:
        return None
    return db.query(User).filter(or_(*clauses)).order_by(User.id).first()


def _is_contact_conflict(error: IntegrityError) -> bool:
    message = str(getattr(error, "orig", error)).lower()
    return "email" in message or "phone" in message


def resolve(
    db: Session,
    *,
    name: str,
    email: str,
    phone: str,
    create_account: bool = False,
    password_hash: str | None = None,
) -> IdentityResolution:
    """
    Resolve a submitter to a user id.

    - Existing email or phone match: returned unchanged.
    - No match, ``create_account`` and a password hash: new user with
      role=user, status=pending_verification and fresh verification secrets.
    - Otherwise: anonymous (user_id None).

    Runs in the caller's transaction; the insert is flushed inside a
    savepoint so a unique-index race surfaces as DuplicateError without
    poisoning the outer transaction.
    """
    existing = find_by_contact(db, email, phone)
    if existing:
        return IdentityResolution(user_id=existing.id, created=False, user=existing)

    if not (create_account and password_hash):
        return IdentityResolution(user_id=None, created=False)

    token = generate_verification_token()
    code = generate_verification_code(6)
    user = User(
        uuid=str(uuid_lib.uuid4()),
        name=normalize_name(name) or name,
        email=normalize_email(email),
        phone=phone,
        password_hash=password_hash,
        user_type=UserRole.USER.value,
        status=UserStatus.PENDING_VERIFICATION.value,
        email_verification_token=token,
        phone_verification_code=code,
        is_buyer=True,
        is_seller=False,
    )
    try:
        with db.begin_nested():
            db.add(user)
            db.flush()
    except IntegrityError as exc:
        if _is_contact_conflict(exc):
            raise DuplicateError("An account with this email or phone already exists") from exc
        raise

    logger.info("Created pending-verification account user_id=%s during enquiry", user.id)
    return IdentityResolution(
        user_id=user.id,
        created=True,
        user=user,
        email_verification_token=token,
        phone_verification_code=code,
    )


def resolve_with_retry(db: Session, **kwargs) -> IdentityResolution:
    """``resolve``, retried once after a creation race so the winner is found."""
    try:
        return resolve(db, **kwargs)
    except DuplicateError:
        logger.info("Account creation race during enquiry; re-resolving")
        return resolve(db, **{**kwargs, "create_account": False})
