"""Audit logging service - DPDPA 2023 compliant security and compliance trail.

Every write goes through ``record``, which consults ``app.core.audit_policies``
to decide whether the action is worth keeping, which lawful purpose applies and
when the record may be deleted.

Security guidelines:
- NEVER log secrets (API keys, tokens, passwords)
- previous/new values are sanitized: PII-looking fields are hashed
- IP: Trust X-Forwarded-For only in production behind LB
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Request
from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import audit_policies
from app.core.config import settings
from app.core.errors import NotFoundError, ValidationError, field_error
from app.db.enums import (
    ALERT_SEVERITIES,
    SECURITY_EVENTS_TABLE,
    SWEEPABLE_SEVERITIES,
    AuditAction,
    AuditKind,
    LawfulPurpose,
    Severity,
)
from app.db.models import AuditLog
from app.utils.pagination import PaginationParams, paginate_query

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger("app.audit.fallback")

MAX_RETENTION_EXTENSION_DAYS = 3650


@dataclass
class AuditResult:
    """Outcome of one ``record`` call."""

    id: int | None
    skipped: bool
    reason: str | None = None


def get_client_ip(request: Request | None) -> str | None:
    """
    Extract client IP from request.

    Only trusts X-Forwarded-For when TRUST_PROXY_HEADERS=True (behind reverse proxy).
    In development/direct connections, uses request.client.host.
    """
    if not request:
        return None

    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # X-Forwarded-For: client, proxy1, proxy2 - take first
            return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return None


def get_user_agent(request: Request | None) -> str | None:
    """Extract user agent from request."""
    if not request:
        return None
    ua = request.headers.get("user-agent", "")
    # Truncate to 500 chars (DB limit)
    return ua[:500] if ua else None


def canonical_json(obj: dict | None) -> str:
    """Serialize values with sorted keys, compact separators, and str() for non-JSON types."""
    return json.dumps(obj or {}, sort_keys=True, separators=(",", ":"), default=str)


def parse_values(raw: str | None) -> dict | None:
    """Inverse of canonical_json for API responses. Corrupt text comes back as None."""
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _alert_security_team(entry: AuditLog) -> None:
    logger.warning(
        "Security alert: action=%s severity=%s user_id=%s ip=%s audit_id=%s",
        entry.action,
        entry.severity,
        entry.user_id,
        entry.ip_address,
        entry.id,
    )
    if settings.SENTRY_DSN:
        import sentry_sdk

        sentry_sdk.capture_message(
            f"Security alert: {entry.action} ({entry.severity})",
            level="warning",
        )


def record(
    db: Session,
    kind: AuditKind,
    *,
    action: str,
    user_id: int | None = None,
    table_name: str = "users",
    record_id: int | None = None,
    previous_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    description: str | None = None,
    severity: Severity = Severity.LOW,
    request: Request | None = None,
    lawful_purpose: LawfulPurpose | None = None,
) -> AuditResult:
    """
    Write one classified audit record in the caller's transaction.

    The write happens inside a savepoint: a failure is logged to the
    ``app.audit.fallback`` stream and reported as skipped, leaving the
    caller's transaction usable. The caller owns the commit.
    """
    if not audit_policies.sensitivity_of(kind, action):
        return AuditResult(id=None, skipped=True, reason=f"Not security relevant: {kind.value}")

    severity = Severity(severity)
    if lawful_purpose is None:
        lawful_purpose = audit_policies.lawful_purpose_of(action, severity)
    now = datetime.now(timezone.utc)

    entry = AuditLog(
        user_id=user_id,
        action=action,
        table_name=table_name,
        record_id=record_id,
        previous_values=canonical_json(audit_policies.sanitize(previous_values)),
        new_values=canonical_json(audit_policies.sanitize(new_values)),
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        description=description,
        severity=severity.value,
        lawful_purpose=lawful_purpose.value,
        data_subject_notified=audit_policies.should_notify_data_subject(action, kind),
        retention_expires_at=audit_policies.retention_expiry(lawful_purpose, severity, now=now),
        created_at=now,
    )
    try:
        with db.begin_nested():
            db.add(entry)
            db.flush()
    except SQLAlchemyError as exc:
        fallback_logger.error(
            "Audit write failed: kind=%s action=%s table=%s record_id=%s user_id=%s values=%s error=%s",
            kind.value,
            action,
            table_name,
            record_id,
            user_id,
            canonical_json(audit_policies.sanitize(new_values)),
            exc,
        )
        return AuditResult(id=None, skipped=True, reason="Audit write failed")

    if severity in ALERT_SEVERITIES:
        _alert_security_team(entry)

    return AuditResult(id=entry.id, skipped=False)


# =============================================================================
# Typed entry points
# =============================================================================

def log_admin_action(
    db: Session,
    admin_id: int | None,
    action: str,
    *,
    table_name: str = "users",
    record_id: int | None = None,
    changes: dict[str, Any] | None = None,
    previous_data: dict[str, Any] | None = None,
    reason: str | None = None,
    severity: Severity = Severity.MEDIUM,
    request: Request | None = None,
) -> AuditResult:
    """Admin action; written only when it affects a data subject's standing."""
    return record(
        db,
        AuditKind.ADMIN_ACTION,
        action=action,
        user_id=admin_id,
        table_name=table_name,
        record_id=record_id,
        previous_values=previous_data,
        new_values=changes,
        description=reason or f"Admin {action} on {table_name}",
        severity=severity,
        request=request,
    )


def log_security_event(
    db: Session,
    event_type: str,
    *,
    user_id: int | None = None,
    target_email: str | None = None,
    severity: Severity = Severity.MEDIUM,
    details: dict[str, Any] | None = None,
    request: Request | None = None,
) -> AuditResult:
    """Genuine security threat. Always legitimate interest; the subject is never notified."""
    ua = get_user_agent(request)
    security_data = {
        "event_type": event_type,
        "ip_address": get_client_ip(request),
        "user_agent": ua[:100] if ua else None,
        "email_hash": audit_policies.hash_sensitive(target_email) if target_email else None,
        "threat_level": Severity(severity).value,
        **(details or {}),
    }
    return record(
        db,
        AuditKind.SECURITY_EVENT,
        action=event_type,
        user_id=user_id,
        table_name=SECURITY_EVENTS_TABLE,
        new_values=security_data,
        description=f"Security: {event_type}",
        severity=severity,
        request=request,
        lawful_purpose=LawfulPurpose.LEGITIMATE_INTEREST,
    )


def log_user_action(
    db: Session,
    user_id: int | None,
    action: str,
    *,
    table_name: str = "users",
    record_id: int | None = None,
    changes: dict[str, Any] | None = None,
    request: Request | None = None,
) -> AuditResult:
    """Self-service action; written only when security-relevant."""
    return record(
        db,
        AuditKind.USER_ACTION,
        action=action,
        user_id=user_id,
        table_name=table_name,
        record_id=record_id,
        previous_values={},
        new_values=changes,
        description=f"User: {action}",
        severity=Severity.LOW,
        request=request,
    )


def log_compliance_event(
    db: Session,
    action: str,
    *,
    user_id: int | None = None,
    table_name: str = "audit_logs",
    record_id: int | None = None,
    changes: dict[str, Any] | None = None,
    description: str | None = None,
    severity: Severity = Severity.MEDIUM,
    request: Request | None = None,
) -> AuditResult:
    """Retention housekeeping. Always written, always under legal obligation."""
    return record(
        db,
        AuditKind.COMPLIANCE,
        action=action,
        user_id=user_id,
        table_name=table_name,
        record_id=record_id,
        new_values=changes,
        description=description,
        severity=severity,
        request=request,
        lawful_purpose=LawfulPurpose.LEGAL_OBLIGATION,
    )


# =============================================================================
# Queries
# =============================================================================

def list_audit_trail(
    db: Session,
    *,
    table_name: str | None = None,
    record_id: int | None = None,
    user_id: int | None = None,
    action: str | None = None,
    severity: str | None = None,
    lawful_purpose: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    pagination: PaginationParams | None = None,
) -> tuple[list[AuditLog], int]:
    """
    List audit records with filters. Newest first.

    Returns (items, total_count).
    """
    query = db.query(AuditLog)

    if table_name:
        query = query.filter(AuditLog.table_name == table_name)
    if record_id is not None:
        query = query.filter(AuditLog.record_id == record_id)
    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)
    if action:
        query = query.filter(AuditLog.action == action)
    if severity:
        query = query.filter(AuditLog.severity == severity)
    if lawful_purpose:
        query = query.filter(AuditLog.lawful_purpose == lawful_purpose)
    if date_from:
        query = query.filter(AuditLog.created_at >= date_from)
    if date_to:
        query = query.filter(AuditLog.created_at <= date_to)

    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    return paginate_query(query, pagination or PaginationParams())


def get_record(db: Session, audit_id: int) -> AuditLog:
    entry = db.query(AuditLog).filter(AuditLog.id == audit_id).first()
    if not entry:
        raise NotFoundError("Audit record not found")
    return entry


def _sweepable(now: datetime):
    # A record whose retention ends at the sweep instant is already expired
    return and_(
        AuditLog.retention_expires_at <= now,
        AuditLog.lawful_purpose != LawfulPurpose.LEGAL_OBLIGATION.value,
        AuditLog.severity.in_([s.value for s in SWEEPABLE_SEVERITIES]),
    )


def expired_records(db: Session, limit: int = 500, now: datetime | None = None) -> list[AuditLog]:
    """Records the next sweep would delete, oldest expiry first."""
    now = now or datetime.now(timezone.utc)
    return (
        db.query(AuditLog)
        .filter(_sweepable(now))
        .order_by(AuditLog.retention_expires_at.asc(), AuditLog.id.asc())
        .limit(limit)
        .all()
    )


# =============================================================================
# Retention
# =============================================================================

def sweep_expired(
    db: Session,
    request: Request | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Delete expired low/medium records that are not under legal obligation.

    Records one compliance entry describing the sweep and commits.
    """
    now = now or datetime.now(timezone.utc)
    deleted = (
        db.query(AuditLog)
        .filter(_sweepable(now))
        .delete(synchronize_session=False)
    )
    log_compliance_event(
        db,
        AuditAction.DPDPA_AUTOMATED_CLEANUP.value,
        changes={"deleted_records": deleted, "cleanup_date": now.isoformat()},
        description="DPDPA 2023 automated data retention compliance",
        request=request,
    )
    db.commit()
    logger.info("Audit retention sweep deleted %s records", deleted)
    return {"deleted_count": deleted, "swept_at": now}


def extend_retention(
    db: Session,
    audit_id: int,
    days: int,
    reason: str,
    *,
    actor_id: int | None = None,
    request: Request | None = None,
) -> AuditLog:
    """Legal hold: push a record's retention deadline out by ``days``."""
    if not 1 <= days <= MAX_RETENTION_EXTENSION_DAYS:
        raise ValidationError(
            "Invalid retention extension",
            [field_error("days", f"Must be between 1 and {MAX_RETENTION_EXTENSION_DAYS}")],
        )
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Invalid retention extension", [field_error("reason", "Reason is required")])

    entry = get_record(db, audit_id)
    previous_expiry = entry.retention_expires_at
    entry.retention_expires_at = audit_policies.extended_expiry(previous_expiry, days)
    entry.description = f"{entry.description or ''} [RETENTION EXTENDED: {days} days - {reason}]".lstrip()

    log_compliance_event(
        db,
        AuditAction.DPDPA_RETENTION_EXTENDED.value,
        user_id=actor_id,
        record_id=entry.id,
        changes={
            "previous_expiry": previous_expiry.isoformat(),
            "new_expiry": entry.retention_expires_at.isoformat(),
            "additional_days": days,
        },
        description=f"Legal hold on audit record {entry.id}: {reason}",
        request=request,
    )
    db.commit()
    db.refresh(entry)
    return entry


# =============================================================================
# Reports
# =============================================================================

def _percentage(part: int, total: int) -> float:
    return round(part * 100.0 / total, 2) if total else 0.0


def compliance_report(db: Session) -> dict[str, Any]:
    """DPDPA compliance summary over the whole audit table."""
    now = datetime.now(timezone.utc)

    total = db.query(func.count(AuditLog.id)).scalar() or 0
    missing_legal_basis = (
        db.query(func.count(AuditLog.id)).filter(AuditLog.lawful_purpose.is_(None)).scalar() or 0
    )
    missing_retention = (
        db.query(func.count(AuditLog.id)).filter(AuditLog.retention_expires_at.is_(None)).scalar() or 0
    )
    expired = (
        db.query(func.count(AuditLog.id)).filter(AuditLog.retention_expires_at <= now).scalar() or 0
    )
    eligible = db.query(func.count(AuditLog.id)).filter(_sweepable(now)).scalar() or 0

    purpose_counts = dict(
        db.query(AuditLog.lawful_purpose, func.count(AuditLog.id))
        .group_by(AuditLog.lawful_purpose)
        .all()
    )
    by_lawful_purpose = {
        purpose.value: _percentage(purpose_counts.get(purpose.value, 0), total)
        for purpose in LawfulPurpose
    }

    return {
        "compliant": missing_legal_basis == 0 and missing_retention == 0,
        "total_records": total,
        "missing_legal_basis": missing_legal_basis,
        "missing_retention": missing_retention,
        "active_records": total - expired,
        "expired_records": expired,
        "eligible_for_deletion": eligible,
        "lawful_purpose_percentages": by_lawful_purpose,
        "generated_at": now,
    }


def subject_report(db: Session, user_id: int) -> dict[str, Any]:
    """Data-subject report: records where the user acted or was the target."""
    entries = (
        db.query(AuditLog)
        .filter(
            or_(
                AuditLog.user_id == user_id,
                and_(AuditLog.table_name == "users", AuditLog.record_id == user_id),
            )
        )
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .all()
    )
    return {
        "user_id": user_id,
        "total_records": len(entries),
        "records": entries,
        "lawful_basis_provided": all(e.lawful_purpose for e in entries),
        "retention_periods_set": all(e.retention_expires_at for e in entries),
        "generated_at": datetime.now(timezone.utc),
    }


def health_status(db: Session) -> dict[str, Any]:
    """Activity over the last 24 hours."""
    now = datetime.now(timezone.utc)
    since = now - timedelta(hours=24)
    recent = db.query(AuditLog).filter(AuditLog.created_at >= since)

    total = recent.count()
    unique_users = (
        db.query(func.count(func.distinct(AuditLog.user_id)))
        .filter(AuditLog.created_at >= since)
        .scalar()
        or 0
    )
    last_activity = db.query(func.max(AuditLog.created_at)).scalar()
    security = recent.filter(AuditLog.table_name == SECURITY_EVENTS_TABLE).count()
    compliance = recent.filter(
        AuditLog.lawful_purpose == LawfulPurpose.LEGAL_OBLIGATION.value
    ).count()
    expired = recent.filter(AuditLog.retention_expires_at <= now).count()

    return {
        "status": "healthy",
        "last_activity": last_activity,
        "total_records": total,
        "unique_users": unique_users,
        "security_records": security,
        "compliance_records": compliance,
        "expired_records": expired,
        "checked_at": now,
    }
