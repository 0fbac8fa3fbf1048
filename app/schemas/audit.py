"""Pydantic schemas for the audit trail and DPDPA reports."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from app.db.enums import LawfulPurpose, Severity
from app.schemas.enquiry import Pagination
from app.services.audit_service import MAX_RETENTION_EXTENSION_DAYS, parse_values


class AuditRecordRead(BaseModel):
    """Audit record with JSON values decoded."""
    id: int
    user_id: int | None
    action: str
    table_name: str
    record_id: int | None
    previous_values: dict[str, Any] | None
    new_values: dict[str, Any] | None
    ip_address: str | None
    user_agent: str | None
    description: str | None
    severity: Severity
    lawful_purpose: LawfulPurpose
    data_subject_notified: bool
    retention_expires_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("previous_values", "new_values", mode="before")
    @classmethod
    def decode_json(cls, v: Any) -> Any:
        if isinstance(v, str) or v is None:
            return parse_values(v)
        return v


class AuditTrailResponse(BaseModel):
    items: list[AuditRecordRead]
    pagination: Pagination


class RetentionExtensionRequest(BaseModel):
    days: int = Field(..., ge=1, le=MAX_RETENTION_EXTENSION_DAYS)
    reason: str = Field(..., min_length=1, max_length=500)


class SweepResponse(BaseModel):
    success: bool = True
    deleted_count: int
    swept_at: datetime


class ComplianceReport(BaseModel):
    compliant: bool
    total_records: int
    missing_legal_basis: int
    missing_retention: int
    active_records: int
    expired_records: int
    eligible_for_deletion: int
    lawful_purpose_percentages: dict[str, float]
    generated_at: datetime


class SubjectReport(BaseModel):
    user_id: int
    total_records: int
    records: list[AuditRecordRead]
    lawful_basis_provided: bool
    retention_periods_set: bool
    generated_at: datetime


class AuditHealth(BaseModel):
    status: str
    last_activity: datetime | None
    total_records: int
    unique_users: int
    security_records: int
    compliance_records: int
    expired_records: int
    checked_at: datetime
