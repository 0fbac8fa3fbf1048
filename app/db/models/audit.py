"""DPDPA audit log model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.enums import Severity
from app.db.types import utcnow


class AuditLog(Base):
    """
    Security and DPDPA compliance audit record.

    Every row carries a lawful purpose and a retention expiry. Rows are
    append-only; the retention sweep is the only writer that deletes,
    and it never touches legal_obligation records.

    Security:
    - previous/new values are sanitized (PII fields hashed) JSON text
    - records reference their subject by (table_name, record_id) only
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_table_record", "table_name", "record_id"),
        Index("idx_audit_user_created", "user_id", "created_at"),
        Index("idx_audit_retention", "retention_expires_at"),
        Index("idx_audit_action", "action"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,  # System events have no actor
    )
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    table_name: Mapped[str] = mapped_column(String(100), nullable=False)
    record_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    previous_values: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_values: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Request metadata
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)  # IPv6 max length
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    severity: Mapped[str] = mapped_column(
        String(20), default=Severity.LOW.value, nullable=False
    )

    # DPDPA compliance
    lawful_purpose: Mapped[str] = mapped_column(String(40), nullable=False)
    data_subject_notified: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    retention_expires_at: Mapped[datetime] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
