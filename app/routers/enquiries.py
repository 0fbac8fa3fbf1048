"""Enquiries router - public submission, tracking and the staff workflow."""

import logging
from datetime import date

import anyio
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.deps import (
    get_current_session,
    get_db,
    get_optional_session,
    require_csrf_header,
    require_roles,
)
from app.core.errors import ValidationError
from app.core.rate_limit import ENQUIRY_LIMIT, limiter
from app.core.security import hash_password
from app.core.structured_logging import build_log_context
from app.db.enums import EnquiryPriority, EnquiryStatus, NoteType, UserRole
from app.schemas.auth import UserSession
from app.schemas.enquiry import (
    AssignedAgentSummary,
    EnquiryAnalytics,
    EnquiryAssign,
    EnquiryBulkUpdate,
    EnquiryBulkUpdateResponse,
    EnquiryCreate,
    EnquiryCreateResponse,
    EnquiryDetail,
    EnquiryListResponse,
    EnquiryNoteCreate,
    EnquiryNoteRead,
    EnquiryRead,
    EnquiryTrack,
    EnquiryUpdate,
    NoteListResponse,
    NotificationSummary,
)
from app.services import enquiry_analytics_service, enquiry_service
from app.services.audit_service import get_user_agent
from app.services.notification_dispatcher import (
    NotificationDispatcher,
    get_dispatcher,
    summarize,
)
from app.utils.pagination import PaginationParams, get_pagination, page_meta

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/enquiries", tags=["Enquiries"])

require_admin = require_roles([UserRole.ADMIN])
require_staff = require_roles([UserRole.ADMIN, UserRole.AGENT])


def _list_response(items, total: int, pagination: PaginationParams) -> EnquiryListResponse:
    return EnquiryListResponse(
        items=[EnquiryRead.model_validate(e) for e in items],
        pagination=page_meta(total, pagination),
    )


# =============================================================================
# Public
# =============================================================================

@router.post("", response_model=EnquiryCreateResponse, status_code=201)
@limiter.limit(ENQUIRY_LIMIT)
async def create_enquiry(
    request: Request,
    data: EnquiryCreate,
    db: Session = Depends(get_db),
    session: UserSession | None = Depends(get_optional_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Public enquiry submission.

    The ticket is returned whatever happens to the notifications; their
    per-channel outcome is reported under ``notifications``.
    """
    password_hash = None
    if session is None and data.create_account and data.password:
        password_hash = await anyio.to_thread.run_sync(hash_password, data.password)

    result = enquiry_service.create_enquiry(
        db,
        data,
        password_hash=password_hash,
        session_user_id=session.user_id if session else None,
        user_agent=get_user_agent(request),
        request=request,
    )
    enquiry = result.enquiry
    logger.info(
        "Enquiry submitted",
        extra=build_log_context(
            user_id=result.user_id,
            enquiry_id=enquiry.id,
            ticket_number=enquiry.ticket_number,
            route=request.url.path,
            method=request.method,
        ),
    )

    response = EnquiryCreateResponse(
        enquiry_id=enquiry.id,
        ticket_number=enquiry.ticket_number,
        status=EnquiryStatus(enquiry.status),
        account_created=result.account_created,
        user_id=result.user_id,
        assigned_agent=(
            AssignedAgentSummary(
                id=result.assigned_agent.id,
                name=result.assigned_agent.name,
                agency_name=result.assigned_agent.agency_name,
            )
            if result.assigned_agent
            else None
        ),
    )

    # Post-commit: a rolled-back enquiry never produces a message
    results = await dispatcher.deliver(db, result.notifications)
    summary = summarize(results)
    if summary is not None:
        response.notifications = NotificationSummary.model_validate(summary)
    return response


@router.get("/track/{ticket_number}", response_model=EnquiryTrack)
def track_enquiry(ticket_number: str, db: Session = Depends(get_db)):
    """Public status lookup by ticket number. Carries no submitter details."""
    return enquiry_service.track_enquiry(db, ticket_number)


# =============================================================================
# Authenticated
# =============================================================================

@router.get("/my", response_model=EnquiryListResponse)
def list_my_enquiries(
    status: EnquiryStatus | None = Query(None),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Enquiries the caller submitted."""
    items, total = enquiry_service.list_enquiries(
        db, session, pagination, status=status, own_submissions=True
    )
    return _list_response(items, total, pagination)


@router.get("/analytics", response_model=EnquiryAnalytics)
def enquiry_analytics(
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    agent_id: int | None = Query(None, ge=1),
    status: EnquiryStatus | None = Query(None),
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    if date_from and date_to and date_from > date_to:
        raise ValidationError("date_from must be on or before date_to")
    return enquiry_analytics_service.get_enquiry_analytics(
        db, date_from=date_from, date_to=date_to, agent_id=agent_id, status=status
    )


@router.post(
    "/bulk-update",
    response_model=EnquiryBulkUpdateResponse,
    dependencies=[Depends(require_csrf_header)],
)
def bulk_update_enquiries(
    data: EnquiryBulkUpdate,
    request: Request,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    """Apply one patch to up to 50 enquiries. Partial success is a 200."""
    return enquiry_service.bulk_update(db, data.enquiry_ids, data.updates, session, request)


@router.get("", response_model=EnquiryListResponse)
def list_enquiries(
    status: EnquiryStatus | None = Query(None),
    priority: EnquiryPriority | None = Query(None),
    assigned_to: int | None = Query(None, ge=1),
    user_id: int | None = Query(None, ge=1),
    property_id: int | None = Query(None, ge=1),
    source: str | None = Query(None, max_length=100),
    search: str | None = Query(None, max_length=200),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """
    List enquiries visible to the caller.

    Admins see all, agents their assignments, users their own submissions.
    """
    items, total = enquiry_service.list_enquiries(
        db,
        session,
        pagination,
        status=status,
        priority=priority,
        assigned_to=assigned_to,
        user_id=user_id,
        property_id=property_id,
        source=source,
        search=search,
        date_from=date_from,
        date_to=date_to,
    )
    return _list_response(items, total, pagination)


@router.get("/{enquiry_id}", response_model=EnquiryDetail)
def get_enquiry(
    enquiry_id: int,
    include_notes: bool = Query(True),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    enquiry = enquiry_service.get_enquiry(db, enquiry_id, include_notes=include_notes)
    enquiry_service.ensure_can_view(session, enquiry)
    # Submitters get the enquiry without the staff note stream
    if include_notes and enquiry_service.can_modify(session, enquiry):
        return EnquiryDetail.model_validate(enquiry)
    return EnquiryDetail(**EnquiryRead.model_validate(enquiry).model_dump())


@router.put(
    "/{enquiry_id}",
    response_model=EnquiryRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_enquiry(
    enquiry_id: int,
    data: EnquiryUpdate,
    request: Request,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    """Patch workflow fields. Agents may only touch enquiries assigned to them."""
    enquiry = enquiry_service.update_enquiry(db, enquiry_id, data, session, request)
    return EnquiryRead.model_validate(enquiry)


@router.post(
    "/{enquiry_id}/assign",
    response_model=EnquiryRead,
    dependencies=[Depends(require_csrf_header)],
)
async def assign_enquiry(
    enquiry_id: int,
    data: EnquiryAssign,
    request: Request,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    enquiry, job = enquiry_service.assign_enquiry(
        db, enquiry_id, data.agent_id, session, reason=data.reason, request=request
    )
    response = EnquiryRead.model_validate(enquiry)
    await dispatcher.deliver(db, [job])
    return response


@router.get("/{enquiry_id}/notes", response_model=NoteListResponse)
def list_enquiry_notes(
    enquiry_id: int,
    note_type: NoteType | None = Query(None),
    user_id: int | None = Query(None, ge=1),
    limit: int = Query(enquiry_service.DEFAULT_NOTE_LIMIT, ge=1, le=200),
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    items, total = enquiry_service.list_notes(
        db, enquiry_id, session, note_type=note_type, user_id=user_id, limit=limit
    )
    return NoteListResponse(items=[EnquiryNoteRead.model_validate(n) for n in items], total=total)


@router.post(
    "/{enquiry_id}/notes",
    response_model=EnquiryNoteRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def add_enquiry_note(
    enquiry_id: int,
    data: EnquiryNoteCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    note = enquiry_service.add_enquiry_note(db, enquiry_id, data, session)
    return EnquiryNoteRead.model_validate(note)
