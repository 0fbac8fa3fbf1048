"""Authentication router - password login, session cookie and contact verification."""

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import (
    COOKIE_NAME,
    get_current_session,
    get_current_user,
    get_db,
    require_csrf_header,
)
from app.core.rate_limit import AUTH_LIMIT, limiter
from app.schemas.auth import (
    LoginRequest,
    MeResponse,
    MessageResponse,
    ResendVerificationRequest,
    UserSession,
    VerifyEmailRequest,
    VerifyPhoneRequest,
)
from app.services import auth_service
from app.services.notification_dispatcher import NotificationDispatcher, get_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

RESEND_MESSAGE = "If a pending account exists for this email, new verification messages have been sent."


def _me(user) -> MeResponse:
    return MeResponse(
        user_id=user.id,
        uuid=user.uuid,
        name=user.name,
        email=user.email,
        phone=user.phone,
        role=user.user_type,
        status=user.status,
        email_verified=user.email_verified_at is not None,
        phone_verified=user.phone_verified_at is not None,
        last_login_at=user.last_login_at,
    )


@router.post("/login", response_model=MeResponse)
@limiter.limit(AUTH_LIMIT)
def login(
    request: Request,
    response: Response,
    data: LoginRequest,
    db: Session = Depends(get_db),
):
    """Password login. Sets the HTTP-only session cookie."""
    user = auth_service.authenticate(db, str(data.email), data.password, request=request)
    response.set_cookie(
        key=COOKIE_NAME,
        value=auth_service.issue_session_token(user),
        max_age=settings.JWT_EXPIRES_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
        path="/",
    )
    return _me(user)


@router.post("/logout", dependencies=[Depends(require_csrf_header)])
def logout(response: Response):
    """
    Clear session cookie.

    Requires X-Requested-With header for CSRF protection.
    """
    response.delete_cookie(COOKIE_NAME, path="/")
    return {"status": "logged_out"}


@router.get("/me", response_model=MeResponse)
def get_me(user=Depends(get_current_user)):
    return _me(user)


@router.post("/verify-email", response_model=MeResponse)
def verify_email(
    data: VerifyEmailRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Consume the emailed verification token. Public: the token is the credential."""
    return _me(auth_service.verify_email(db, data.token, request=request))


@router.post(
    "/verify-phone",
    response_model=MeResponse,
    dependencies=[Depends(require_csrf_header)],
)
def verify_phone(
    data: VerifyPhoneRequest,
    request: Request,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return _me(auth_service.verify_phone(db, session.user_id, data.code, request=request))


@router.post("/resend-verification", response_model=MessageResponse, status_code=202)
@limiter.limit(AUTH_LIMIT)
async def resend_verification(
    request: Request,
    data: ResendVerificationRequest,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Regenerate and resend verification secrets. Same answer whether or not the account exists."""
    job = auth_service.resend_verification(db, str(data.email), request=request)
    if job is not None:
        await dispatcher.deliver(db, [job])
    return MessageResponse(message=RESEND_MESSAGE)
