"""Enquiry and enquiry note models."""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.db.enums import DEFAULT_ENQUIRY_SOURCE, EnquiryPriority, EnquiryStatus, NoteType
from app.db.types import utcnow

if TYPE_CHECKING:
    from app.db.models.users import User


class Enquiry(Base):
    """
    Lead captured from a property page or the general contact form.

    Invariants kept by enquiry_service:
    - assigned_to set => status != new
    - resolved_at set => status in (resolved, closed) and first_response_at set
    - first_response_at is written once, on the first move out of `new`
    """

    __tablename__ = "enquiries"
    __table_args__ = (
        Index("idx_enquiries_assignee_status", "assigned_to", "status"),
        Index("idx_enquiries_user_created", "user_id", "created_at"),
        Index("idx_enquiries_property", "property_id"),
        Index("idx_enquiries_created", "created_at"),
        CheckConstraint(
            "customer_satisfaction_rating IS NULL "
            "OR customer_satisfaction_rating BETWEEN 1 AND 5",
            name="ck_enquiries_csat_range",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True
    )
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Submitter
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    requirements: Mapped[str] = mapped_column(Text, nullable=False)

    account_creation_offered: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    account_created_during_enquiry: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )

    # Property context
    property_id: Mapped[int | None] = mapped_column(
        ForeignKey("properties.id", ondelete="SET NULL"), nullable=True
    )
    property_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    property_price: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Source tracking
    source: Mapped[str] = mapped_column(
        String(100), default=DEFAULT_ENQUIRY_SOURCE, nullable=False
    )
    page_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Workflow
    status: Mapped[str] = mapped_column(
        String(20), default=EnquiryStatus.NEW.value, nullable=False
    )
    priority: Mapped[str] = mapped_column(
        String(20), default=EnquiryPriority.MEDIUM.value, nullable=False
    )
    assigned_to: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # SLA
    first_response_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_satisfaction_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    # Relationships
    assignee: Mapped["User | None"] = relationship(foreign_keys=[assigned_to])
    submitter: Mapped["User | None"] = relationship(foreign_keys=[user_id])
    notes: Mapped[list["EnquiryNote"]] = relationship(
        back_populates="enquiry",
        cascade="all, delete-orphan",
        order_by="EnquiryNote.id",
    )

    @property
    def assigned_agent_name(self) -> str | None:
        return self.assignee.name if self.assignee else None

    @property
    def assigned_agent_phone(self) -> str | None:
        return self.assignee.phone if self.assignee else None


class EnquiryNote(Base):
    """
    Append-only annotation on an enquiry.

    user_id is NULL for notes written by the system itself.
    """

    __tablename__ = "enquiry_notes"
    __table_args__ = (
        Index("idx_enquiry_notes_enquiry_created", "enquiry_id", "created_at"),
        Index("idx_enquiry_notes_type", "note_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    enquiry_id: Mapped[int] = mapped_column(
        ForeignKey("enquiries.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    note: Mapped[str] = mapped_column(Text, nullable=False)
    note_type: Mapped[str] = mapped_column(
        String(30), default=NoteType.INTERNAL.value, nullable=False
    )
    communication_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    next_follow_up_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    enquiry: Mapped["Enquiry"] = relationship(back_populates="notes")
    author: Mapped["User | None"] = relationship()

    @property
    def author_name(self) -> str:
        return self.author.name if self.author else "System"
