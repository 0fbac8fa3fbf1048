"""Tests for the admin audit and DPDPA endpoints."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from app.db.enums import AuditAction, LawfulPurpose, Severity
from app.db.models import AuditLog
from app.services import audit_service


def _expired(db, purpose: LawfulPurpose = LawfulPurpose.LEGITIMATE_INTEREST) -> AuditLog:
    now = datetime.now(timezone.utc)
    entry = AuditLog(
        action="login_failure",
        table_name="security_events",
        severity=Severity.LOW.value,
        lawful_purpose=purpose.value,
        retention_expires_at=now - timedelta(days=1),
        created_at=now - timedelta(days=400),
    )
    db.add(entry)
    db.commit()
    return entry


@pytest.mark.asyncio
async def test_audit_endpoints_are_admin_only(agent_client: AsyncClient):
    for path in ("/audit/trail", "/audit/dpdpa-report", "/audit/expired", "/audit/health"):
        response = await agent_client.get(path)
        assert response.status_code == 403, path


@pytest.mark.asyncio
async def test_trail_decodes_values_and_filters(admin_client: AsyncClient, buyer_user, db):
    audit_service.log_security_event(
        db, "login_failure", user_id=buyer_user.id, details={"reason": "invalid_credentials"}
    )
    audit_service.log_security_event(db, "bot_detected", severity=Severity.HIGH)
    db.commit()

    response = await admin_client.get("/audit/trail", params={"action": "login_failure"})

    assert response.status_code == 200
    data = response.json()
    assert data["pagination"] == {
        "page": 1,
        "limit": 20,
        "total": 1,
        "pages": 1,
        "hasNext": False,
        "hasPrev": False,
    }
    [item] = data["items"]
    assert item["new_values"] == {"reason": "invalid_credentials"}
    assert item["lawful_purpose"] == "legitimate_interest"

    response = await admin_client.get("/audit/trail", params={"severity": "high"})
    assert [i["action"] for i in response.json()["items"]] == ["bot_detected"]


@pytest.mark.asyncio
async def test_trail_pagination_metadata(admin_client: AsyncClient, db):
    for _ in range(3):
        audit_service.log_security_event(db, "login_failure")
    db.commit()

    response = await admin_client.get("/audit/trail", params={"page": 2, "limit": 2})

    assert response.status_code == 200
    data = response.json()
    assert len(data["items"]) == 1
    assert data["pagination"] == {
        "page": 2,
        "limit": 2,
        "total": 3,
        "pages": 2,
        "hasNext": False,
        "hasPrev": True,
    }


@pytest.mark.asyncio
async def test_cleanup_sweeps_and_records_itself(admin_client: AsyncClient, db):
    for _ in range(3):
        _expired(db)
    legal = _expired(db, LawfulPurpose.LEGAL_OBLIGATION)

    preview = await admin_client.get("/audit/expired")
    assert len(preview.json()) == 3

    response = await admin_client.post("/audit/dpdpa-cleanup")

    assert response.status_code == 200
    assert response.json()["deleted_count"] == 3
    assert db.query(AuditLog).filter(AuditLog.id == legal.id).count() == 1
    assert db.query(AuditLog).filter(
        AuditLog.action == AuditAction.DPDPA_AUTOMATED_CLEANUP.value
    ).count() == 1


@pytest.mark.asyncio
async def test_cleanup_requires_csrf_header(admin_client: AsyncClient):
    response = await admin_client.post("/audit/dpdpa-cleanup", headers={"X-Requested-With": ""})

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_extend_retention_via_api(admin_client: AsyncClient, admin_user, db):
    entry = _expired(db)
    before = entry.retention_expires_at

    response = await admin_client.post(
        f"/audit/records/{entry.id}/extend-retention",
        json={"days": 90, "reason": "Court order 7/2026"},
    )

    assert response.status_code == 200
    db.refresh(entry)
    assert entry.retention_expires_at == before + timedelta(days=90)
    assert "Court order 7/2026" in response.json()["description"]


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"days": 0, "reason": "x"}, {"days": 3651, "reason": "x"}, {"days": 5}])
async def test_extend_retention_validates_input(admin_client: AsyncClient, db, payload):
    entry = _expired(db)

    response = await admin_client.post(f"/audit/records/{entry.id}/extend-retention", json=payload)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_record_is_404(admin_client: AsyncClient):
    response = await admin_client.get("/audit/records/999999")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_reports(admin_client: AsyncClient, buyer_user, db):
    audit_service.log_security_event(db, "login_failure", user_id=buyer_user.id)
    db.commit()

    report = await admin_client.get("/audit/dpdpa-report")
    assert report.status_code == 200
    assert report.json()["compliant"] is True

    subject = await admin_client.get(f"/audit/subjects/{buyer_user.id}/report")
    assert subject.status_code == 200
    assert subject.json()["total_records"] == 1
    assert subject.json()["records"][0]["user_id"] == buyer_user.id

    health = await admin_client.get("/audit/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"
    assert health.json()["security_records"] == 1
