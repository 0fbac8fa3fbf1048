"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.security import decode_session_token
from app.db.enums import BLOCKED_STATUSES, UserRole, UserStatus
from app.db.session import SessionLocal


# Cookie and header names
COOKIE_NAME = "listing_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _load_user_from_cookie(request: Request, db: Session):
    from app.db.models import User

    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = decode_session_token(token)
        user_id = int(payload["sub"])
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid session")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if UserStatus(user.status) in BLOCKED_STATUSES:
        raise HTTPException(status_code=401, detail="Account disabled")

    # Token version check (revocation support)
    if user.token_version != payload.get("token_version"):
        raise HTTPException(status_code=401, detail="Session revoked")

    return user


def get_current_user(request: Request, db: Session = Depends(get_db)):
    """
    Get authenticated user from session cookie.

    Validates:
    - Session cookie exists
    - JWT is valid and not expired
    - User exists and is not suspended/inactive
    - Token version matches (for revocation support)

    Raises:
        HTTPException 401: Authentication failed
    """
    return _load_user_from_cookie(request, db)


def get_current_session(request: Request, db: Session = Depends(get_db)):
    """
    Get session context: user_id, role, email, name.

    This is the PRIMARY auth dependency for most endpoints.

    Raises:
        HTTPException 401: Not authenticated
        HTTPException 403: Unknown role
    """
    from app.schemas.auth import UserSession

    user = _load_user_from_cookie(request, db)

    # Validate role is a known enum value - return 403 not 500
    if not UserRole.has_value(user.user_type):
        raise HTTPException(
            status_code=403,
            detail=f"Unknown role '{user.user_type}'. Contact administrator.",
        )

    return UserSession(
        user_id=user.id,
        role=UserRole(user.user_type),
        email=user.email,
        name=user.name,
    )


def get_optional_session(request: Request, db: Session = Depends(get_db)):
    """Session for public endpoints: None when no valid cookie is present."""
    if not request.cookies.get(COOKIE_NAME):
        return None
    try:
        return get_current_session(request, db)
    except HTTPException:
        return None


def require_roles(allowed_roles: list):
    """
    Dependency factory for role-based authorization.

    Usage:
        @router.post("/admin", dependencies=[Depends(require_roles([UserRole.ADMIN]))])
    """
    def dependency(request: Request, db: Session = Depends(get_db)):
        session = get_current_session(request, db)
        if session.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{session.role.value}' not authorized for this action",
            )
        return session
    return dependency


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on authenticated mutations.

    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )
