"""Audit router - audit trail and DPDPA compliance endpoints (admin only)."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.deps import get_db, require_csrf_header, require_roles
from app.db.enums import LawfulPurpose, Severity, UserRole
from app.schemas.audit import (
    AuditHealth,
    AuditRecordRead,
    AuditTrailResponse,
    ComplianceReport,
    RetentionExtensionRequest,
    SubjectReport,
    SweepResponse,
)
from app.schemas.auth import UserSession
from app.services import audit_service
from app.utils.pagination import PaginationParams, get_pagination, page_meta

router = APIRouter(prefix="/audit", tags=["Audit"])

require_admin = require_roles([UserRole.ADMIN])


@router.get("/trail", response_model=AuditTrailResponse)
def list_audit_trail(
    table_name: str | None = Query(None, max_length=100),
    record_id: int | None = Query(None, ge=1),
    user_id: int | None = Query(None, ge=1, description="Filter by actor"),
    action: str | None = Query(None, max_length=100, description="Exact action label"),
    severity: Severity | None = Query(None),
    lawful_purpose: LawfulPurpose | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
) -> AuditTrailResponse:
    """List audit records, newest first."""
    items, total = audit_service.list_audit_trail(
        db,
        table_name=table_name,
        record_id=record_id,
        user_id=user_id,
        action=action,
        severity=severity.value if severity else None,
        lawful_purpose=lawful_purpose.value if lawful_purpose else None,
        date_from=date_from,
        date_to=date_to,
        pagination=pagination,
    )
    return AuditTrailResponse(
        items=[AuditRecordRead.model_validate(item) for item in items],
        pagination=page_meta(total, pagination),
    )


@router.get("/dpdpa-report", response_model=ComplianceReport)
def dpdpa_report(
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    return audit_service.compliance_report(db)


@router.post(
    "/dpdpa-cleanup",
    response_model=SweepResponse,
    dependencies=[Depends(require_csrf_header)],
)
def dpdpa_cleanup(
    request: Request,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    """Run the retention sweep now."""
    result = audit_service.sweep_expired(db, request=request)
    return SweepResponse(deleted_count=result["deleted_count"], swept_at=result["swept_at"])


@router.get("/expired", response_model=list[AuditRecordRead])
def list_expired(
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    """Preview of what the next sweep would delete."""
    return [AuditRecordRead.model_validate(e) for e in audit_service.expired_records(db, limit=limit)]


@router.get("/records/{audit_id}", response_model=AuditRecordRead)
def get_audit_record(
    audit_id: int,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    return AuditRecordRead.model_validate(audit_service.get_record(db, audit_id))


@router.post(
    "/records/{audit_id}/extend-retention",
    response_model=AuditRecordRead,
    dependencies=[Depends(require_csrf_header)],
)
def extend_retention(
    audit_id: int,
    data: RetentionExtensionRequest,
    request: Request,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    """Legal hold on one record."""
    entry = audit_service.extend_retention(
        db,
        audit_id,
        data.days,
        data.reason,
        actor_id=session.user_id,
        request=request,
    )
    return AuditRecordRead.model_validate(entry)


@router.get("/subjects/{user_id}/report", response_model=SubjectReport)
def data_subject_report(
    user_id: int,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    report = audit_service.subject_report(db, user_id)
    report["records"] = [AuditRecordRead.model_validate(e) for e in report["records"]]
    return report


@router.get("/health", response_model=AuditHealth)
def audit_health(
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    return audit_service.health_status(db)
