"""Tests for the enquiries HTTP surface."""

import re

import pytest
from httpx import AsyncClient

from app.core.deps import CSRF_HEADER
from app.db.enums import EnquiryStatus, UserRole
from app.db.models import Enquiry, NotificationLedger, User
from app.schemas.auth import UserSession
from app.schemas.enquiry import EnquiryCreate, EnquiryNoteCreate
from app.services import enquiry_service, system_setting_service

TICKET_RE = re.compile(r"^TKT-\d{8}-\d{4}$")

SUBMISSION = {
    "name": "Asha Rao",
    "email": "asha@example.com",
    "phone": "9876543210",
    "requirements": "Looking for a 2BHK flat in Kochi",
}


def _seed(db, **overrides) -> Enquiry:
    data = {**SUBMISSION, **overrides}
    return enquiry_service.create_enquiry(db, EnquiryCreate(**data)).enquiry


# =============================================================================
# Public submission
# =============================================================================

@pytest.mark.asyncio
async def test_submit_enquiry_returns_ticket(client: AsyncClient, db, transports):
    response = await client.post("/enquiries", json=SUBMISSION)

    assert response.status_code == 201
    data = response.json()
    assert data["success"] is True
    assert TICKET_RE.match(data["ticket_number"])
    assert data["status"] == "new"
    assert data["account_created"] is False
    assert data["assigned_agent"] is None
    assert data["notifications"] is None
    assert transports.email.sent == []
    assert db.query(Enquiry).filter(Enquiry.id == data["enquiry_id"]).one().source == "website"


@pytest.mark.asyncio
async def test_short_requirements_rejected(client: AsyncClient, db):
    response = await client.post("/enquiries", json={**SUBMISSION, "requirements": "Too short"})

    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "Validation failed"
    assert any(e["field"] == "requirements" for e in body["errors"])
    assert db.query(Enquiry).count() == 0


@pytest.mark.asyncio
async def test_invalid_mobile_rejected(client: AsyncClient, db):
    response = await client.post("/enquiries", json={**SUBMISSION, "phone": "5123456789"})

    assert response.status_code == 400
    assert any(e["field"] == "phone" for e in response.json()["errors"])
    assert db.query(Enquiry).count() == 0


@pytest.mark.asyncio
async def test_submission_rate_limited_per_ip(client: AsyncClient):
    for i in range(5):
        response = await client.post("/enquiries", json={**SUBMISSION, "email": f"asha{i}@example.com"})
        assert response.status_code == 201

    response = await client.post("/enquiries", json=SUBMISSION)
    assert response.status_code == 429


@pytest.mark.asyncio
async def test_account_creation_sends_verification(client: AsyncClient, db, transports):
    response = await client.post(
        "/enquiries", json={**SUBMISSION, "create_account": True, "password": "secret-pass-1"}
    )

    assert response.status_code == 201
    data = response.json()
    assert data["account_created"] is True
    user = db.query(User).filter(User.id == data["user_id"]).one()
    assert user.status == "pending_verification"
    assert user.password_hash.startswith("$2")

    [email] = transports.email.sent
    assert email["to"] == "asha@example.com"
    assert user.email_verification_token in email["html"]
    [sms] = transports.sms.sent
    assert sms["variables"]["otp"] == user.phone_verification_code
    assert data["notifications"] == {
        "email": {"sent": True, "error": None},
        "sms": {"sent": True, "error": None},
    }


@pytest.mark.asyncio
async def test_account_requested_without_password_rejected(client: AsyncClient):
    response = await client.post("/enquiries", json={**SUBMISSION, "create_account": True})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_auto_assignment_survives_sms_failure(client: AsyncClient, db, transports, agent_user):
    system_setting_service.set_value(db, "auto_assign_agents", "true", setting_type="boolean")
    transports.sms.fail_with = "MSG91 send error: route blocked"

    response = await client.post("/enquiries", json=SUBMISSION)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "assigned"
    assert data["assigned_agent"] == {
        "id": agent_user.id,
        "name": "Priya Agent",
        "agency_name": "Skyline Realty",
    }
    assert data["notifications"]["email"] == {"sent": True, "error": None}
    assert data["notifications"]["sms"]["sent"] is False
    assert "route blocked" in data["notifications"]["sms"]["error"]
    assert transports.email.sent[0]["to"] == agent_user.email

    ledger = db.query(NotificationLedger).one()
    assert ledger.enquiry_id == data["enquiry_id"]
    assert ledger.user_id == agent_user.id
    assert ledger.sms_sent is False


@pytest.mark.asyncio
async def test_signed_in_submission_links_user(buyer_client: AsyncClient, buyer_user, db):
    response = await buyer_client.post("/enquiries", json=SUBMISSION)

    assert response.status_code == 201
    assert response.json()["user_id"] == buyer_user.id

    mine = await buyer_client.get("/enquiries/my")
    assert mine.status_code == 200
    assert [e["id"] for e in mine.json()["items"]] == [response.json()["enquiry_id"]]


# =============================================================================
# Tracking
# =============================================================================

@pytest.mark.asyncio
async def test_track_hides_contact_details(client: AsyncClient, db):
    enquiry = _seed(db)

    response = await client.get(f"/enquiries/track/{enquiry.ticket_number}")

    assert response.status_code == 200
    data = response.json()
    assert data["ticket_number"] == enquiry.ticket_number
    assert data["status"] == "new"
    assert "email" not in data
    assert "phone" not in data
    assert "property_title" not in data
    assert "created_at" not in data
    assert data["agent_name"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("ticket", ["TKT-20200101-0001", "12345"])
async def test_track_unknown_ticket(client: AsyncClient, ticket):
    response = await client.get(f"/enquiries/track/{ticket}")

    assert response.status_code == 404
    assert response.json()["detail"] == "Enquiry not found"


# =============================================================================
# Listing and reads
# =============================================================================

@pytest.mark.asyncio
async def test_list_requires_session(client: AsyncClient):
    response = await client.get("/enquiries")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_admin_list_paginates(admin_client: AsyncClient, db):
    for i in range(3):
        _seed(db, email=f"p{i}@example.com")

    response = await admin_client.get("/enquiries", params={"page": 1, "limit": 2})

    assert response.status_code == 200
    data = response.json()
    assert len(data["items"]) == 2
    assert data["pagination"] == {
        "page": 1,
        "limit": 2,
        "total": 3,
        "pages": 2,
        "hasNext": True,
        "hasPrev": False,
    }


@pytest.mark.asyncio
async def test_agent_only_sees_assignments(agent_client: AsyncClient, agent_user, db):
    mine = _seed(db)
    _seed(db, email="other@example.com")
    mine.assigned_to = agent_user.id
    mine.status = EnquiryStatus.ASSIGNED.value
    db.commit()

    response = await agent_client.get("/enquiries")

    assert [e["id"] for e in response.json()["items"]] == [mine.id]


@pytest.mark.asyncio
async def test_agent_cannot_view_unassigned(agent_client: AsyncClient, db):
    enquiry = _seed(db)

    response = await agent_client.get(f"/enquiries/{enquiry.id}")

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_detail_includes_notes(admin_client: AsyncClient, db):
    enquiry = _seed(db)

    response = await admin_client.get(f"/enquiries/{enquiry.id}")
    assert response.status_code == 200
    assert response.json()["notes"] == []

    response = await admin_client.get(f"/enquiries/{enquiry.id}", params={"include_notes": False})
    assert response.json()["notes"] is None


@pytest.mark.asyncio
async def test_unknown_enquiry_is_404(admin_client: AsyncClient):
    response = await admin_client.get("/enquiries/999999")

    assert response.status_code == 404


# =============================================================================
# Workflow
# =============================================================================

@pytest.mark.asyncio
async def test_admin_moves_enquiry_to_in_progress(admin_client: AsyncClient, db):
    enquiry = _seed(db)

    response = await admin_client.put(f"/enquiries/{enquiry.id}", json={"status": "in_progress"})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "in_progress"
    assert data["first_response_at"] is not None

    notes = await admin_client.get(f"/enquiries/{enquiry.id}/notes")
    assert notes.json()["items"][0]["note"] == "Enquiry updated: Status changed to in_progress."
    assert notes.json()["items"][0]["note_type"] == "system"


@pytest.mark.asyncio
async def test_illegal_transition_is_400(admin_client: AsyncClient, db):
    enquiry = _seed(db)

    response = await admin_client.put(f"/enquiries/{enquiry.id}", json={"status": "resolved"})

    assert response.status_code == 400
    assert "Illegal status transition" in response.json()["detail"]


@pytest.mark.asyncio
async def test_update_requires_csrf_header(admin_client: AsyncClient, db):
    enquiry = _seed(db)

    response = await admin_client.put(
        f"/enquiries/{enquiry.id}", json={"priority": "high"}, headers={CSRF_HEADER: ""}
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_update_rejects_unknown_fields(admin_client: AsyncClient, db):
    enquiry = _seed(db)

    response = await admin_client.put(f"/enquiries/{enquiry.id}", json={"email": "x@example.com"})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_buyer_cannot_update(buyer_client: AsyncClient, db):
    enquiry = _seed(db)

    response = await buyer_client.put(f"/enquiries/{enquiry.id}", json={"priority": "high"})

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_agent_cannot_update_unassigned(agent_client: AsyncClient, db):
    enquiry = _seed(db)

    response = await agent_client.put(f"/enquiries/{enquiry.id}", json={"priority": "high"})

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_assigns_and_agent_is_notified(admin_client: AsyncClient, agent_user, db, transports):
    enquiry = _seed(db)

    response = await admin_client.post(
        f"/enquiries/{enquiry.id}/assign", json={"agent_id": agent_user.id, "reason": "Kochi specialist"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "assigned"
    assert data["assigned_to"] == agent_user.id
    assert data["assigned_agent_name"] == "Priya Agent"
    [email] = transports.email.sent
    assert email["to"] == agent_user.email
    assert enquiry.ticket_number in email["subject"]
    ledger = db.query(NotificationLedger).one()
    assert ledger.created_by_admin_id is not None


@pytest.mark.asyncio
async def test_assign_to_non_agent_rejected(admin_client: AsyncClient, make_user, db, transports):
    enquiry = _seed(db)
    buyer = make_user(UserRole.USER)

    response = await admin_client.post(f"/enquiries/{enquiry.id}/assign", json={"agent_id": buyer.id})

    assert response.status_code == 400
    assert transports.email.sent == []


@pytest.mark.asyncio
async def test_agent_cannot_assign(agent_client: AsyncClient, agent_user, db):
    enquiry = _seed(db)

    response = await agent_client.post(f"/enquiries/{enquiry.id}/assign", json={"agent_id": agent_user.id})

    assert response.status_code == 403


# =============================================================================
# Notes
# =============================================================================

@pytest.mark.asyncio
async def test_add_note_strips_markup(admin_client: AsyncClient, admin_user, db):
    enquiry = _seed(db)

    response = await admin_client.post(
        f"/enquiries/{enquiry.id}/notes",
        json={"note": "<b>Called</b> the client", "note_type": "client_communication", "communication_method": "phone"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["note"] == "Called the client"
    assert data["user_id"] == admin_user.id
    assert data["author_name"] == "Admin User"

    detail = await admin_client.get(f"/enquiries/{enquiry.id}")
    assert detail.json()["first_response_at"] is not None


@pytest.mark.asyncio
async def test_system_notes_cannot_be_posted(admin_client: AsyncClient, db):
    enquiry = _seed(db)

    response = await admin_client.post(
        f"/enquiries/{enquiry.id}/notes", json={"note": "Fake system entry", "note_type": "system"}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_submitter_sees_enquiry_without_staff_notes(buyer_client: AsyncClient, buyer_user, admin_user, db):
    enquiry = _seed(db, email=buyer_user.email)
    admin = UserSession(user_id=admin_user.id, role=UserRole.ADMIN, email=admin_user.email, name=admin_user.name)
    enquiry_service.add_enquiry_note(db, enquiry.id, EnquiryNoteCreate(note="Staff only: low budget"), admin)

    detail = await buyer_client.get(f"/enquiries/{enquiry.id}")
    assert detail.status_code == 200
    assert detail.json()["notes"] is None

    listing = await buyer_client.get(f"/enquiries/{enquiry.id}/notes")
    assert listing.status_code == 403

    response = await buyer_client.post(
        f"/enquiries/{enquiry.id}/notes",
        json={"note": "hello?", "note_type": "client_communication"},
    )
    assert response.status_code == 403
    db.refresh(enquiry)
    assert enquiry.first_response_at is None


@pytest.mark.asyncio
async def test_notes_filter_by_type(admin_client: AsyncClient, agent_user, db):
    enquiry = _seed(db)
    await admin_client.post(f"/enquiries/{enquiry.id}/assign", json={"agent_id": agent_user.id})
    await admin_client.post(f"/enquiries/{enquiry.id}/notes", json={"note": "Prefers evening calls"})

    everything = await admin_client.get(f"/enquiries/{enquiry.id}/notes")
    internal = await admin_client.get(f"/enquiries/{enquiry.id}/notes", params={"note_type": "internal"})

    assert everything.json()["total"] == 2
    assert [n["note_type"] for n in everything.json()["items"]] == ["system", "internal"]
    assert internal.json()["total"] == 1
    assert internal.json()["items"][0]["note"] == "Prefers evening calls"


# =============================================================================
# Bulk update and analytics
# =============================================================================

@pytest.mark.asyncio
async def test_bulk_update_reports_partial_success(admin_client: AsyncClient, db):
    first = _seed(db)
    second = _seed(db, email="second@example.com")

    response = await admin_client.post(
        "/enquiries/bulk-update",
        json={"enquiry_ids": [first.id, 999999, second.id], "updates": {"priority": "urgent"}},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["successful"] == [first.id, second.id]
    assert data["failed"] == [{"id": 999999, "error": "Enquiry not found"}]
    assert data["summary"] == {"total": 3, "successful": 2, "failed": 1}


@pytest.mark.asyncio
async def test_bulk_update_limit(admin_client: AsyncClient):
    response = await admin_client.post(
        "/enquiries/bulk-update",
        json={"enquiry_ids": list(range(1, 52)), "updates": {"priority": "low"}},
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_analytics_summary(admin_client: AsyncClient, db):
    _seed(db)
    _seed(db, email="second@example.com", source="whatsapp")

    response = await admin_client.get("/enquiries/analytics")

    assert response.status_code == 200
    data = response.json()
    assert data["summary"]["total_enquiries"] == 2
    assert data["summary"]["new_enquiries"] == 2
    assert data["summary"]["assignment_rate"] == 0.0
    assert {s["source"] for s in data["sources"]} == {"website", "whatsapp"}
    assert data["priorities"] == [{"priority": "medium", "count": 2, "resolved_count": 0}]
    assert sum(t["enquiries_count"] for t in data["trends"]) == 2


@pytest.mark.asyncio
async def test_analytics_rejects_inverted_range(admin_client: AsyncClient):
    response = await admin_client.get(
        "/enquiries/analytics", params={"date_from": "2026-05-02", "date_to": "2026-05-01"}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_analytics_is_admin_only(agent_client: AsyncClient):
    response = await agent_client.get("/enquiries/analytics")

    assert response.status_code == 403
