"""Authentication-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from app.db.enums import UserRole, UserStatus


class UserSession(BaseModel):
    """
    Session context for authenticated requests.

    This is returned by get_current_session dependency
    and contains all information needed for authorization.
    """
    user_id: int
    role: UserRole  # Validated enum
    email: str | None
    name: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_agent(self) -> bool:
        return self.role == UserRole.AGENT


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=16, max_length=255)


class VerifyPhoneRequest(BaseModel):
    code: str = Field(..., pattern=r"^\d{6}$")


class ResendVerificationRequest(BaseModel):
    email: EmailStr


class MeResponse(BaseModel):
    """Response schema for GET /auth/me endpoint."""
    user_id: int
    uuid: str
    name: str
    email: str | None
    phone: str | None
    role: UserRole
    status: UserStatus
    email_verified: bool
    phone_verified: bool
    last_login_at: datetime | None = None


class MessageResponse(BaseModel):
    message: str
