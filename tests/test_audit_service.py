"""Tests for the audit sink: classified writes, retention sweep and reports."""

import logging
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import NotFoundError, ValidationError
from app.db.enums import AuditAction, AuditKind, LawfulPurpose, Severity
from app.db.models import AuditLog
from app.services import audit_service
from app.utils.pagination import PaginationParams


def _expired_entry(purpose: LawfulPurpose, severity: Severity = Severity.LOW, *, days_ago: int = 1) -> AuditLog:
    now = datetime.now(timezone.utc)
    return AuditLog(
        action="login_failure",
        table_name="security_events",
        severity=severity.value,
        lawful_purpose=purpose.value,
        retention_expires_at=now - timedelta(days=days_ago),
        created_at=now - timedelta(days=60),
    )


# =============================================================================
# record / typed entry points
# =============================================================================

def test_irrelevant_user_action_is_skipped(db):
    result = audit_service.log_user_action(db, None, AuditAction.ENQUIRY_CREATED.value)

    assert result.skipped is True
    assert result.id is None
    assert db.query(AuditLog).count() == 0


def test_security_event_is_written_with_hashed_email(db, buyer_user):
    result = audit_service.log_security_event(
        db,
        "login_failure",
        user_id=buyer_user.id,
        target_email="ravi@example.com",
        details={"reason": "invalid_credentials"},
    )
    db.commit()

    assert result.skipped is False
    entry = db.query(AuditLog).filter(AuditLog.id == result.id).one()
    assert entry.table_name == "security_events"
    assert entry.lawful_purpose == LawfulPurpose.LEGITIMATE_INTEREST.value
    assert entry.severity == Severity.MEDIUM.value
    assert entry.data_subject_notified is False
    assert "ravi@example.com" not in entry.new_values
    values = audit_service.parse_values(entry.new_values)
    assert values["email_hash"].startswith("HASH_")
    assert values["reason"] == "invalid_credentials"


def test_retention_is_derived_from_purpose_and_severity(db):
    result = audit_service.log_security_event(db, "data_breach", severity=Severity.CRITICAL)
    entry = db.query(AuditLog).filter(AuditLog.id == result.id).one()

    delta = entry.retention_expires_at - entry.created_at
    assert timedelta(days=180) <= delta <= timedelta(days=185)


def test_admin_action_notifies_subject_when_flagged(db, admin_user, buyer_user):
    result = audit_service.log_admin_action(
        db,
        admin_user.id,
        "user_suspended",
        record_id=buyer_user.id,
        changes={"status": "suspended", "email": buyer_user.email},
        previous_data={"status": "active"},
        reason="Spam reports",
    )
    entry = db.query(AuditLog).filter(AuditLog.id == result.id).one()

    assert entry.data_subject_notified is True
    assert entry.description == "Spam reports"
    assert audit_service.parse_values(entry.new_values)["email"].startswith("HASH_")
    assert audit_service.parse_values(entry.previous_values) == {"status": "active"}


def test_compliance_event_is_always_legal_obligation(db):
    result = audit_service.log_compliance_event(db, "routine_housekeeping")
    entry = db.query(AuditLog).filter(AuditLog.id == result.id).one()

    assert entry.lawful_purpose == LawfulPurpose.LEGAL_OBLIGATION.value
    assert entry.retention_expires_at.year >= entry.created_at.year + 6


def test_high_severity_write_raises_alert(db, caplog):
    with caplog.at_level(logging.WARNING, logger="app.services.audit_service"):
        audit_service.log_security_event(db, "unauthorized_access", severity=Severity.HIGH)

    assert any("Security alert" in r.getMessage() for r in caplog.records)


def test_failed_write_goes_to_fallback_log(db, monkeypatch, caplog):
    def broken_flush(*args, **kwargs):
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(db, "flush", broken_flush)
    with caplog.at_level(logging.ERROR, logger="app.audit.fallback"):
        result = audit_service.log_security_event(db, "login_failure")

    assert result.skipped is True
    assert result.reason == "Audit write failed"
    assert any(r.name == "app.audit.fallback" for r in caplog.records)


# =============================================================================
# Retention sweep
# =============================================================================

def test_sweep_deletes_expired_but_keeps_legal_obligation(db):
    db.add_all([_expired_entry(LawfulPurpose.LEGITIMATE_INTEREST) for _ in range(100)])
    db.add_all([_expired_entry(LawfulPurpose.LEGAL_OBLIGATION) for _ in range(10)])
    db.commit()

    result = audit_service.sweep_expired(db)

    assert result["deleted_count"] == 100
    legal = db.query(AuditLog).filter(
        AuditLog.lawful_purpose == LawfulPurpose.LEGAL_OBLIGATION.value
    )
    sweep_entries = legal.filter(AuditLog.action == AuditAction.DPDPA_AUTOMATED_CLEANUP.value).all()
    assert legal.count() == 11
    assert len(sweep_entries) == 1
    assert audit_service.parse_values(sweep_entries[0].new_values)["deleted_records"] == 100


def test_sweep_keeps_high_severity_and_unexpired_records(db):
    now = datetime.now(timezone.utc)
    high = _expired_entry(LawfulPurpose.LEGITIMATE_INTEREST, Severity.HIGH)
    medium = _expired_entry(LawfulPurpose.LEGITIMATE_INTEREST, Severity.MEDIUM)
    fresh = _expired_entry(LawfulPurpose.LEGITIMATE_INTEREST)
    fresh.retention_expires_at = now + timedelta(days=5)
    db.add_all([high, medium, fresh])
    db.commit()
    high_id, medium_id, fresh_id = high.id, medium.id, fresh.id

    assert [e.id for e in audit_service.expired_records(db)] == [medium_id]

    result = audit_service.sweep_expired(db)

    assert result["deleted_count"] == 1
    remaining = {e.id for e in db.query(AuditLog).all()}
    assert high_id in remaining
    assert fresh_id in remaining
    assert medium_id not in remaining


def test_sweep_boundary_is_inclusive(db):
    sweep_at = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    on_boundary = _expired_entry(LawfulPurpose.LEGITIMATE_INTEREST)
    on_boundary.retention_expires_at = sweep_at
    after = _expired_entry(LawfulPurpose.LEGITIMATE_INTEREST)
    after.retention_expires_at = sweep_at + timedelta(seconds=1)
    db.add_all([on_boundary, after])
    db.commit()
    on_boundary_id, after_id = on_boundary.id, after.id

    assert [e.id for e in audit_service.expired_records(db, now=sweep_at)] == [on_boundary_id]

    result = audit_service.sweep_expired(db, now=sweep_at)

    assert result["deleted_count"] == 1
    remaining = {e.id for e in db.query(AuditLog).all()}
    assert after_id in remaining
    assert on_boundary_id not in remaining


def test_sweep_with_nothing_expired_still_records_compliance_entry(db):
    result = audit_service.sweep_expired(db)

    assert result["deleted_count"] == 0
    assert db.query(AuditLog).filter(
        AuditLog.action == AuditAction.DPDPA_AUTOMATED_CLEANUP.value
    ).count() == 1


# =============================================================================
# Legal hold
# =============================================================================

def test_extend_retention_pushes_deadline(db, admin_user):
    entry = _expired_entry(LawfulPurpose.LEGITIMATE_INTEREST)
    db.add(entry)
    db.commit()
    before = entry.retention_expires_at

    updated = audit_service.extend_retention(
        db, entry.id, 30, "Police request 42", actor_id=admin_user.id
    )

    assert updated.retention_expires_at == before + timedelta(days=30)
    assert "RETENTION EXTENDED: 30 days - Police request 42" in updated.description
    hold = db.query(AuditLog).filter(
        AuditLog.action == AuditAction.DPDPA_RETENTION_EXTENDED.value
    ).one()
    assert hold.record_id == entry.id
    assert hold.user_id == admin_user.id


@pytest.mark.parametrize("days,reason", [(0, "x"), (3651, "x"), (10, "   ")])
def test_extend_retention_rejects_bad_input(db, days, reason):
    entry = _expired_entry(LawfulPurpose.LEGITIMATE_INTEREST)
    db.add(entry)
    db.commit()

    with pytest.raises(ValidationError):
        audit_service.extend_retention(db, entry.id, days, reason)


def test_extend_retention_unknown_record(db):
    with pytest.raises(NotFoundError):
        audit_service.extend_retention(db, 999999, 10, "hold")


# =============================================================================
# Reports
# =============================================================================

def test_compliance_report_counts(db):
    db.add_all([_expired_entry(LawfulPurpose.LEGITIMATE_INTEREST) for _ in range(3)])
    db.add(_expired_entry(LawfulPurpose.LEGAL_OBLIGATION))
    db.commit()

    report = audit_service.compliance_report(db)

    assert report["compliant"] is True
    assert report["total_records"] == 4
    assert report["expired_records"] == 4
    assert report["eligible_for_deletion"] == 3
    assert report["lawful_purpose_percentages"]["legitimate_interest"] == 75.0
    assert report["lawful_purpose_percentages"]["legal_obligation"] == 25.0
    assert report["lawful_purpose_percentages"]["contract_performance"] == 0.0


def test_subject_report_includes_actor_and_target_records(db, admin_user, buyer_user):
    audit_service.log_security_event(db, "login_failure", user_id=buyer_user.id)
    audit_service.log_admin_action(db, admin_user.id, "user_suspended", record_id=buyer_user.id)
    audit_service.log_security_event(db, "login_failure", user_id=admin_user.id)
    db.commit()

    report = audit_service.subject_report(db, buyer_user.id)

    assert report["total_records"] == 2
    assert report["lawful_basis_provided"] is True
    assert report["retention_periods_set"] is True


def test_list_audit_trail_filters_and_paginates(db, buyer_user):
    for _ in range(3):
        audit_service.log_security_event(db, "login_failure", user_id=buyer_user.id)
    audit_service.log_security_event(db, "bot_detected", severity=Severity.HIGH)
    db.commit()

    items, total = audit_service.list_audit_trail(
        db, action="login_failure", pagination=PaginationParams(page=1, limit=2)
    )
    assert total == 3
    assert len(items) == 2

    items, total = audit_service.list_audit_trail(db, severity=Severity.HIGH.value)
    assert total == 1
    assert items[0].action == "bot_detected"


def test_health_status_counts_last_day(db):
    audit_service.log_security_event(db, "login_failure")
    audit_service.log_compliance_event(db, "dpdpa_manual_review")
    db.commit()

    health = audit_service.health_status(db)

    assert health["status"] == "healthy"
    assert health["total_records"] == 2
    assert health["security_records"] == 1
    assert health["compliance_records"] == 1
    assert health["last_activity"] is not None
