"""Account models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Integer, Numeric, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.enums import UserRole, UserStatus
from app.db.types import utcnow


class User(Base):
    """
    Platform account: buyer/seller, agent or admin.

    Email and phone are each globally unique when present. Agents carry
    the professional fields used for enquiry routing (specialization,
    rating). Accounts are soft-deleted through ``status``; rows are only
    hard-deleted under a DPDPA erasure request.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(
        String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)

    user_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserRole.USER.value
    )
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=UserStatus.PENDING_VERIFICATION.value
    )

    # Verification
    email_verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    phone_verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    email_verification_token: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True
    )
    phone_verification_code: Mapped[str | None] = mapped_column(String(10), nullable=True)

    is_buyer: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=text("true"), nullable=False
    )
    is_seller: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )

    # Agent profile
    license_number: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    agency_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    commission_rate: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    experience_years: Mapped[int | None] = mapped_column(Integer, nullable=True)
    specialization: Mapped[str | None] = mapped_column(String(255), nullable=True)
    agent_bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    agent_rating: Mapped[float | None] = mapped_column(
        Numeric(3, 2, asdecimal=False), nullable=True
    )

    token_version: Mapped[int] = mapped_column(
        Integer, default=1, server_default=text("1"), nullable=False
    )
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    @property
    def is_fully_verified(self) -> bool:
        return self.email_verified_at is not None and self.phone_verified_at is not None

    @property
    def is_agent(self) -> bool:
        return self.user_type == UserRole.AGENT.value
