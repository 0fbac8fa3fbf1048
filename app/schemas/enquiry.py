"""Pydantic schemas for enquiries."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from app.db.enums import (
    DEFAULT_ENQUIRY_SOURCE,
    CommunicationMethod,
    EnquiryPriority,
    EnquiryStatus,
    NoteType,
)
from app.utils.normalization import normalize_name, normalize_phone

MAX_BULK_IDS = 50


class EnquiryCreate(BaseModel):
    """Public enquiry submission."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    phone: str = Field(..., max_length=20)
    requirements: str = Field(..., min_length=10, max_length=2000)

    # Property context
    property_id: int | None = Field(None, gt=0)
    property_title: str | None = Field(None, max_length=255)
    property_price: str | None = Field(None, max_length=100)

    source: str = Field(DEFAULT_ENQUIRY_SOURCE, min_length=1, max_length=100)
    page_url: str | None = Field(None, max_length=2000)

    # Optional account creation
    create_account: bool = False
    password: str | None = Field(None, min_length=8, max_length=128)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return normalize_name(v) or v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        """Normalize; 10-digit numbers must be Indian mobiles."""
        normalized = normalize_phone(v)  # Raises ValueError on invalid
        if not normalized:
            raise ValueError("Phone is required")
        return normalized

    @model_validator(mode="after")
    def password_required_for_account(self) -> "EnquiryCreate":
        if self.create_account and not self.password:
            raise ValueError("password is required when create_account is true")
        return self


class EnquiryUpdate(BaseModel):
    """Partial update. Only these fields are mutable; anything else is rejected."""

    model_config = ConfigDict(extra="forbid")

    status: EnquiryStatus | None = None
    priority: EnquiryPriority | None = None
    assigned_to: int | None = Field(None, gt=0)
    resolution_notes: str | None = Field(None, max_length=2000)
    customer_satisfaction_rating: int | None = Field(None, ge=1, le=5)


class EnquiryAssign(BaseModel):
    agent_id: int = Field(..., gt=0)
    reason: str | None = Field(None, max_length=500)


class EnquiryNoteCreate(BaseModel):
    note: str = Field(..., min_length=1, max_length=2000)
    note_type: NoteType = NoteType.INTERNAL
    communication_method: CommunicationMethod | None = None
    next_follow_up_date: date | None = None

    @field_validator("note_type")
    @classmethod
    def reject_system_type(cls, v: NoteType) -> NoteType:
        if v == NoteType.SYSTEM:
            raise ValueError("system notes are written by the service only")
        return v


class EnquiryBulkUpdate(BaseModel):
    enquiry_ids: list[int] = Field(..., min_length=1, max_length=MAX_BULK_IDS)
    updates: EnquiryUpdate

    @field_validator("enquiry_ids")
    @classmethod
    def positive_ids(cls, v: list[int]) -> list[int]:
        if any(i <= 0 for i in v):
            raise ValueError("enquiry ids must be positive integers")
        # De-duplicate, keep order
        return list(dict.fromkeys(v))


# =============================================================================
# Responses
# =============================================================================

class AssignedAgentSummary(BaseModel):
    id: int
    name: str
    agency_name: str | None = None


class ChannelStatus(BaseModel):
    sent: bool
    error: str | None = None


class NotificationSummary(BaseModel):
    email: ChannelStatus
    sms: ChannelStatus


class EnquiryCreateResponse(BaseModel):
    success: bool = True
    enquiry_id: int
    ticket_number: str
    status: EnquiryStatus
    account_created: bool
    user_id: int | None = None
    assigned_agent: AssignedAgentSummary | None = None
    notifications: NotificationSummary | None = None


class EnquiryNoteRead(BaseModel):
    id: int
    enquiry_id: int
    user_id: int | None
    author_name: str | None = None
    note: str
    note_type: NoteType
    communication_method: CommunicationMethod | None
    next_follow_up_date: date | None
    created_at: datetime

    model_config = {"from_attributes": True}


class EnquiryRead(BaseModel):
    """Full enquiry for staff and the submitter."""

    id: int
    ticket_number: str
    user_id: int | None

    name: str
    email: str
    phone: str
    requirements: str

    property_id: int | None
    property_title: str | None
    property_price: str | None

    source: str
    page_url: str | None
    status: EnquiryStatus
    priority: EnquiryPriority
    assigned_to: int | None
    assigned_agent_name: str | None = None
    assigned_agent_phone: str | None = None

    account_creation_offered: bool
    account_created_during_enquiry: bool

    first_response_at: datetime | None
    resolved_at: datetime | None
    resolution_notes: str | None
    customer_satisfaction_rating: int | None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class EnquiryDetail(EnquiryRead):
    """Enquiry with its note stream (oldest first)."""

    notes: list[EnquiryNoteRead] | None = None


class EnquiryTrack(BaseModel):
    """Public tracking projection. Never carries submitter contact details."""

    ticket_number: str
    status: EnquiryStatus
    priority: EnquiryPriority
    first_response_at: datetime | None
    resolved_at: datetime | None
    agent_name: str | None = None
    agent_phone: str | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int
    hasNext: bool
    hasPrev: bool


class EnquiryListResponse(BaseModel):
    items: list[EnquiryRead]
    pagination: Pagination


class BulkFailure(BaseModel):
    id: int
    error: str


class BulkSummary(BaseModel):
    total: int
    successful: int
    failed: int


class EnquiryBulkUpdateResponse(BaseModel):
    successful: list[int]
    failed: list[BulkFailure]
    summary: BulkSummary


class NoteListResponse(BaseModel):
    items: list[EnquiryNoteRead]
    total: int


class EnquiryAnalytics(BaseModel):
    summary: dict[str, Any]
    sources: list[dict[str, Any]]
    priorities: list[dict[str, Any]]
    trends: list[dict[str, Any]]
    filters: dict[str, Any]
