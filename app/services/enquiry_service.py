"""Enquiry service - lead capture, routing and case state.

Every public operation runs in one transaction and commits once.
Notifications are never sent from here: operations that need them
return ``NotificationJob``s that the router hands to the dispatcher
after the commit.
"""

import html
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, TypeVar

import nh3
from fastapi import Request
from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from app.core.errors import (
    AppError,
    AuthorizationError,
    DuplicateError,
    NotFoundError,
    StorageError,
    ValidationError,
    field_error,
)
from app.db.enums import (
    ALLOWED_TRANSITIONS,
    AuditAction,
    AuditKind,
    CommunicationMethod,
    EnquiryPriority,
    EnquiryStatus,
    NoteType,
    NotificationTemplate,
    UserRole,
    UserStatus,
)
from app.db.models import Enquiry, EnquiryNote, Property, User
from app.db.types import utcnow
from app.schemas.auth import UserSession
from app.schemas.enquiry import EnquiryCreate, EnquiryNoteCreate, EnquiryUpdate
from app.services import agent_assignment_service, audit_service, identity_service
from app.services.identity_service import IdentityResolution
from app.services.notification_dispatcher import NotificationJob, Recipient
from app.utils.pagination import PaginationParams, paginate_query

logger = logging.getLogger(__name__)

T = TypeVar("T")

TICKET_PREFIX = "TKT"
TICKET_PATTERN = re.compile(r"^TKT-")
MAX_TICKET_ATTEMPTS = 3
AUTO_ASSIGN_REASON = "Automatic assignment"
DEFAULT_NOTE_LIMIT = 50


@dataclass
class EnquiryCreation:
    """Outcome of ``create_enquiry``."""

    enquiry: Enquiry
    user_id: int | None
    account_created: bool
    assigned_agent: User | None = None
    notifications: list[NotificationJob] = field(default_factory=list)


# =============================================================================
# Storage boundary
# =============================================================================

def _run_in_transaction(db: Session, operation: Callable[[], T]) -> T:
    """
    Run one unit of work. Rolls back on any failure.

    Infrastructure faults are retried once and then raised as
    StorageError; unique violations surface as DuplicateError.
    """
    for attempt in range(2):
        try:
            return operation()
        except AppError:
            db.rollback()
            raise
        except IntegrityError as exc:
            db.rollback()
            logger.warning("Integrity error in enquiry operation: %s", exc.__class__.__name__)
            raise DuplicateError("Conflicting record already exists") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            if attempt == 0:
                logger.warning("Storage fault in enquiry operation; retrying once")
                continue
            error = StorageError()
            logger.error("Storage fault in enquiry operation error_id=%s", error.error_id)
            raise error from exc
    raise StorageError()  # pragma: no cover


# =============================================================================
# Tickets
# =============================================================================

def ticket_prefix(moment: datetime | None = None) -> str:
    moment = moment or utcnow()
    return f"{TICKET_PREFIX}-{moment:%Y%m%d}-"


def generate_ticket_number(db: Session, moment: datetime | None = None) -> str:
    """
    Next ticket for the day: TKT-YYYYMMDD-0001, -0002, ...

    Concurrent creators may compute the same value; the unique index
    decides and the loser retries.
    """
    prefix = ticket_prefix(moment)
    last = (
        db.query(Enquiry.ticket_number)
        .filter(Enquiry.ticket_number.like(f"{prefix}%"))
        .order_by(func.length(Enquiry.ticket_number).desc(), Enquiry.ticket_number.desc())
        .limit(1)
        .scalar()
    )
    seq = 1
    if last:
        try:
            seq = int(last[len(prefix):]) + 1
        except ValueError:
            seq = 1
    return f"{prefix}{seq:04d}"


def _is_ticket_conflict(error: IntegrityError) -> bool:
    message = str(error.orig) if error.orig else str(error)
    return "ticket_number" in message


def is_ticket_number(identifier: Any) -> bool:
    return isinstance(identifier, str) and bool(TICKET_PATTERN.match(identifier))


# =============================================================================
# Helpers
# =============================================================================

def _assignment_note_text(agent: User, reason: str | None = None) -> str:
    text = f"Enquiry assigned to {agent.name} ({agent.agency_name or 'Independent'})"
    if reason:
        text += f". Reason: {reason}"
    return text


def _append_note(
    db: Session,
    enquiry: Enquiry,
    text: str,
    *,
    author_id: int | None,
    note_type: NoteType = NoteType.SYSTEM,
    communication_method: CommunicationMethod | None = None,
    next_follow_up_date: date | None = None,
) -> EnquiryNote:
    note = EnquiryNote(
        enquiry_id=enquiry.id,
        user_id=author_id,
        note=text,
        note_type=note_type.value,
        communication_method=communication_method.value if communication_method else None,
        next_follow_up_date=next_follow_up_date,
        created_at=utcnow(),
    )
    db.add(note)
    db.flush()
    return note


def _mark_first_response(enquiry: Enquiry, now: datetime) -> None:
    if enquiry.first_response_at is None:
        enquiry.first_response_at = now


def _move_to_assigned(enquiry: Enquiry, agent_id: int, now: datetime) -> None:
    enquiry.assigned_to = agent_id
    if enquiry.status == EnquiryStatus.NEW.value:
        enquiry.status = EnquiryStatus.ASSIGNED.value
        _mark_first_response(enquiry, now)


def _load_active_agent(db: Session, agent_id: int) -> User:
    agent = db.query(User).filter(User.id == agent_id).first()
    if (
        agent is None
        or agent.user_type != UserRole.AGENT.value
        or agent.status != UserStatus.ACTIVE.value
        or agent.email_verified_at is None
    ):
        raise ValidationError(
            "Invalid or inactive agent",
            details=[field_error("agent_id", "Agent must be an active, verified agent")],
        )
    return agent


def agent_assignment_job(enquiry: Enquiry, agent: User, *, admin_id: int | None = None) -> NotificationJob:
    return NotificationJob(
        template=NotificationTemplate.AGENT_ENQUIRY_ASSIGNMENT,
        recipient=Recipient(email=agent.email, phone=agent.phone, user_id=agent.id),
        context={
            "agent_name": agent.name,
            "ticket_number": enquiry.ticket_number,
            "enquiry_id": enquiry.id,
            "requirements": enquiry.requirements,
            "client_name": enquiry.name,
            "client_phone": enquiry.phone,
            "property_title": enquiry.property_title,
        },
        enquiry_id=enquiry.id,
        created_by_admin_id=admin_id,
    )


def account_verification_job(
    user: User,
    *,
    token: str,
    code: str,
    ticket_number: str | None = None,
    enquiry_id: int | None = None,
    admin_id: int | None = None,
) -> NotificationJob:
    return NotificationJob(
        template=NotificationTemplate.ACCOUNT_VERIFICATION,
        recipient=Recipient(email=user.email, phone=user.phone, user_id=user.id),
        context={
            "name": user.name,
            "token": token,
            "code": code,
            "ticket_number": ticket_number,
        },
        enquiry_id=enquiry_id,
        created_by_admin_id=admin_id,
    )


# =============================================================================
# Creation
# =============================================================================

def _insert_with_ticket(db: Session, enquiry: Enquiry) -> Enquiry:
    for attempt in range(MAX_TICKET_ATTEMPTS):
        enquiry.ticket_number = generate_ticket_number(db)
        try:
            with db.begin_nested():
                db.add(enquiry)
                db.flush()
            return enquiry
        except IntegrityError as exc:
            if _is_ticket_conflict(exc) and attempt < MAX_TICKET_ATTEMPTS - 1:
                logger.info("Ticket %s taken; retrying", enquiry.ticket_number)
                continue
            if _is_ticket_conflict(exc):
                raise DuplicateError("Could not allocate a ticket number, please retry") from exc
            raise
    raise DuplicateError("Could not allocate a ticket number, please retry")


def create_enquiry(
    db: Session,
    data: EnquiryCreate,
    *,
    password_hash: str | None = None,
    session_user_id: int | None = None,
    user_agent: str | None = None,
    request: Request | None = None,
) -> EnquiryCreation:
    """
    Capture an enquiry, optionally spawning an account, and route it.

    One transaction: identity, enquiry row, property counter, assignment
    and its system note commit together or not at all.
    """

    def _create() -> EnquiryCreation:
        now = utcnow()

        if session_user_id is not None:
            identity = IdentityResolution(user_id=session_user_id, created=False)
        else:
            identity = identity_service.resolve_with_retry(
                db,
                name=data.name,
                email=str(data.email),
                phone=data.phone,
                create_account=data.create_account,
                password_hash=password_hash,
            )

        property_title = data.property_title
        if data.property_id is not None:
            prop = db.query(Property).filter(Property.id == data.property_id).first()
            if prop is None:
                raise ValidationError(
                    "Property not found",
                    details=[field_error("property_id", "Unknown property")],
                )
            property_title = property_title or prop.title

        enquiry = Enquiry(
            user_id=identity.user_id,
            name=data.name,
            email=str(data.email).lower(),
            phone=data.phone,
            requirements=data.requirements,
            property_id=data.property_id,
            property_title=property_title,
            property_price=data.property_price,
            source=data.source,
            page_url=data.page_url,
            user_agent=user_agent,
            status=EnquiryStatus.NEW.value,
            priority=EnquiryPriority.MEDIUM.value,
            account_creation_offered=data.create_account,
            account_created_during_enquiry=identity.created,
            created_at=now,
            updated_at=now,
        )
        _insert_with_ticket(db, enquiry)

        if data.property_id is not None:
            db.execute(
                update(Property)
                .where(Property.id == data.property_id)
                .values(inquiries_count=Property.inquiries_count + 1)
            )

        agent = agent_assignment_service.select_agent(db, enquiry)
        if agent is not None:
            _move_to_assigned(enquiry, agent.id, now)
            _append_note(
                db,
                enquiry,
                _assignment_note_text(agent, AUTO_ASSIGN_REASON),
                author_id=None,
                communication_method=CommunicationMethod.SYSTEM,
            )

        audit_service.record(
            db,
            AuditKind.USER_ACTION,
            action=AuditAction.ENQUIRY_CREATED.value,
            user_id=identity.user_id,
            table_name="enquiries",
            record_id=enquiry.id,
            new_values={"ticket_number": enquiry.ticket_number, "source": enquiry.source},
            request=request,
        )

        # Stage notifications before commit expires the instances
        jobs: list[NotificationJob] = []
        if identity.created and identity.user is not None:
            jobs.append(
                account_verification_job(
                    identity.user,
                    token=identity.email_verification_token,
                    code=identity.phone_verification_code,
                    ticket_number=enquiry.ticket_number,
                    enquiry_id=enquiry.id,
                )
            )
        if agent is not None:
            jobs.append(agent_assignment_job(enquiry, agent))

        db.commit()
        db.refresh(enquiry)

        logger.info(
            "Enquiry created ticket=%s enquiry_id=%s user_id=%s assigned_to=%s",
            enquiry.ticket_number,
            enquiry.id,
            identity.user_id,
            enquiry.assigned_to,
        )
        return EnquiryCreation(
            enquiry=enquiry,
            user_id=identity.user_id,
            account_created=identity.created,
            assigned_agent=agent,
            notifications=jobs,
        )

    return _run_in_transaction(db, _create)


# =============================================================================
# Reads
# =============================================================================

def get_enquiry(db: Session, identifier: int | str, include_notes: bool = False) -> Enquiry:
    """
    Fetch by numeric id or ticket number (anything starting ``TKT-``).

    Raises:
        NotFoundError: unknown identifier
    """
    query = db.query(Enquiry).options(joinedload(Enquiry.assignee))
    if include_notes:
        query = query.options(selectinload(Enquiry.notes).joinedload(EnquiryNote.author))

    if is_ticket_number(identifier):
        enquiry = query.filter(Enquiry.ticket_number == identifier).first()
    else:
        try:
            enquiry_id = int(identifier)
        except (TypeError, ValueError):
            enquiry_id = None
        enquiry = query.filter(Enquiry.id == enquiry_id).first() if enquiry_id else None

    if enquiry is None:
        raise NotFoundError("Enquiry not found")
    return enquiry


def get_by_ticket(db: Session, ticket_number: str) -> Enquiry:
    if not is_ticket_number(ticket_number):
        raise NotFoundError("Enquiry not found")
    return get_enquiry(db, ticket_number)


def track_enquiry(db: Session, ticket_number: str) -> dict[str, Any]:
    """Public tracking view: workflow state and the agent's professional contact only."""
    enquiry = get_by_ticket(db, ticket_number)
    agent = enquiry.assignee
    return {
        "ticket_number": enquiry.ticket_number,
        "status": enquiry.status,
        "priority": enquiry.priority,
        "first_response_at": enquiry.first_response_at,
        "resolved_at": enquiry.resolved_at,
        "agent_name": agent.name if agent else None,
        "agent_phone": agent.phone if agent else None,
    }


def can_view(session: UserSession, enquiry: Enquiry) -> bool:
    if session.role == UserRole.ADMIN:
        return True
    if session.role == UserRole.AGENT:
        return enquiry.assigned_to == session.user_id
    return enquiry.user_id == session.user_id


def ensure_can_view(session: UserSession, enquiry: Enquiry) -> None:
    if not can_view(session, enquiry):
        raise AuthorizationError("You do not have access to this enquiry")


def can_modify(session: UserSession, enquiry: Enquiry) -> bool:
    """Admins, or the agent the enquiry is assigned to. Notes follow the same rule."""
    if session.role == UserRole.ADMIN:
        return True
    return session.role == UserRole.AGENT and enquiry.assigned_to == session.user_id


def ensure_can_modify(session: UserSession, enquiry: Enquiry) -> None:
    if not can_modify(session, enquiry):
        raise AuthorizationError("Only the assigned agent or an admin can modify this enquiry")


def _end_of_day(value: date) -> datetime:
    return datetime.combine(value + timedelta(days=1), time.min, tzinfo=timezone.utc)


def _start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def list_enquiries(
    db: Session,
    session: UserSession,
    pagination: PaginationParams,
    *,
    status: EnquiryStatus | None = None,
    priority: EnquiryPriority | None = None,
    assigned_to: int | None = None,
    user_id: int | None = None,
    property_id: int | None = None,
    source: str | None = None,
    search: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    own_submissions: bool = False,
) -> tuple[list[Enquiry], int]:
    """
    List enquiries visible to the caller, newest first.

    Scoping: admins see everything, agents their assignments, users
    their own submissions. ``own_submissions`` restricts any role to
    enquiries they submitted. ``date_to`` is inclusive.

    Returns:
        (enquiries, total_count)
    """
    query = db.query(Enquiry).options(joinedload(Enquiry.assignee))

    # Role-based visibility
    if own_submissions:
        query = query.filter(Enquiry.user_id == session.user_id)
    elif session.role == UserRole.AGENT:
        query = query.filter(Enquiry.assigned_to == session.user_id)
    elif session.role != UserRole.ADMIN:
        query = query.filter(Enquiry.user_id == session.user_id)

    if status:
        query = query.filter(Enquiry.status == EnquiryStatus(status).value)
    if priority:
        query = query.filter(Enquiry.priority == EnquiryPriority(priority).value)
    if assigned_to:
        query = query.filter(Enquiry.assigned_to == assigned_to)
    if user_id:
        query = query.filter(Enquiry.user_id == user_id)
    if property_id:
        query = query.filter(Enquiry.property_id == property_id)
    if source:
        query = query.filter(Enquiry.source == source)

    if date_from:
        query = query.filter(Enquiry.created_at >= _start_of_day(date_from))
    if date_to:
        query = query.filter(Enquiry.created_at < _end_of_day(date_to))

    # Search (name, email, phone, requirements, ticket)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Enquiry.name.ilike(term),
                Enquiry.email.ilike(term),
                Enquiry.phone.ilike(term),
                Enquiry.requirements.ilike(term),
                Enquiry.ticket_number.ilike(term),
            )
        )

    query = query.order_by(Enquiry.created_at.desc(), Enquiry.id.desc())
    return paginate_query(query, pagination)


# =============================================================================
# Mutations
# =============================================================================

def _validate_transition(current: EnquiryStatus, target: EnquiryStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise ValidationError(
            f"Illegal status transition from {current.value} to {target.value}",
            details=[field_error("status", f"Cannot move from {current.value} to {target.value}")],
        )


def _apply_status(enquiry: Enquiry, target: EnquiryStatus, now: datetime) -> None:
    current = EnquiryStatus(enquiry.status)
    _validate_transition(current, target)

    enquiry.status = target.value
    _mark_first_response(enquiry, now)

    if target == EnquiryStatus.RESOLVED:
        enquiry.resolved_at = now
    elif current == EnquiryStatus.RESOLVED and target == EnquiryStatus.IN_PROGRESS:
        # Reopen
        enquiry.resolved_at = None


def _update_note_text(changes: dict[str, Any]) -> str:
    text = "Enquiry updated:"
    if "status" in changes:
        text += f" Status changed to {changes['status']}."
    if "assigned_to" in changes:
        text += " Assigned to agent." if changes["assigned_to"] else " Agent unassigned."
    if "priority" in changes:
        text += f" Priority changed to {changes['priority']}."
    if "resolution_notes" in changes:
        text += " Resolution notes added." if changes["resolution_notes"] else " Resolution notes cleared."
    if "customer_satisfaction_rating" in changes:
        text += " Satisfaction rating recorded."
    return text


def _apply_update(
    db: Session,
    enquiry: Enquiry,
    patch: EnquiryUpdate,
    session: UserSession,
    request: Request | None,
) -> Enquiry:
    ensure_can_modify(session, enquiry)

    fields = patch.model_fields_set
    if not fields:
        raise ValidationError("No valid update fields provided")
    if "assigned_to" in fields and session.role != UserRole.ADMIN:
        raise AuthorizationError("Only admins can reassign enquiries")

    now = utcnow()
    previous: dict[str, Any] = {}
    changes: dict[str, Any] = {}

    def _track(name: str, value: Any) -> None:
        previous[name] = getattr(enquiry, name)
        changes[name] = value

    if "assigned_to" in fields and patch.assigned_to != enquiry.assigned_to:
        if patch.assigned_to is not None:
            _load_active_agent(db, patch.assigned_to)
        _track("assigned_to", patch.assigned_to)
        enquiry.assigned_to = patch.assigned_to

    if "status" in fields and patch.status is not None and patch.status.value != enquiry.status:
        _track("status", patch.status.value)
        _apply_status(enquiry, patch.status, now)

    # An assignee on a new enquiry moves it to assigned
    if enquiry.assigned_to is not None and enquiry.status == EnquiryStatus.NEW.value:
        _track("status", EnquiryStatus.ASSIGNED.value)
        _apply_status(enquiry, EnquiryStatus.ASSIGNED, now)

    if "priority" in fields and patch.priority is not None and patch.priority.value != enquiry.priority:
        _track("priority", patch.priority.value)
        enquiry.priority = patch.priority.value

    if "resolution_notes" in fields and patch.resolution_notes != enquiry.resolution_notes:
        _track("resolution_notes", patch.resolution_notes)
        enquiry.resolution_notes = patch.resolution_notes

    if (
        "customer_satisfaction_rating" in fields
        and patch.customer_satisfaction_rating != enquiry.customer_satisfaction_rating
    ):
        _track("customer_satisfaction_rating", patch.customer_satisfaction_rating)
        enquiry.customer_satisfaction_rating = patch.customer_satisfaction_rating

    if not changes:
        logger.info("No-op update on enquiry_id=%s skipped", enquiry.id)
        return enquiry

    enquiry.updated_at = now
    _append_note(
        db,
        enquiry,
        _update_note_text(changes),
        author_id=session.user_id,
        communication_method=CommunicationMethod.SYSTEM,
    )

    kind = AuditKind.ADMIN_ACTION if session.role == UserRole.ADMIN else AuditKind.USER_ACTION
    audit_service.record(
        db,
        kind,
        action=AuditAction.ENQUIRY_UPDATED.value,
        user_id=session.user_id,
        table_name="enquiries",
        record_id=enquiry.id,
        previous_values=previous,
        new_values=changes,
        request=request,
    )

    db.commit()
    db.refresh(enquiry)
    logger.info(
        "Enquiry updated ticket=%s enquiry_id=%s fields=%s",
        enquiry.ticket_number,
        enquiry.id,
        ",".join(sorted(changes)),
    )
    return enquiry


def update_enquiry(
    db: Session,
    enquiry_id: int,
    patch: EnquiryUpdate,
    session: UserSession,
    request: Request | None = None,
) -> Enquiry:
    """
    Patch workflow fields and append a system note describing the change.

    Unchanged values are ignored; a patch that changes nothing writes
    nothing.
    """

    def _update() -> Enquiry:
        enquiry = get_enquiry(db, enquiry_id)
        return _apply_update(db, enquiry, patch, session, request)

    return _run_in_transaction(db, _update)


def assign_enquiry(
    db: Session,
    enquiry_id: int,
    agent_id: int,
    session: UserSession,
    reason: str | None = None,
    request: Request | None = None,
) -> tuple[Enquiry, NotificationJob]:
    """
    Hand an enquiry to an agent.

    Returns the enquiry and the agent notification to dispatch after commit.
    """

    def _assign() -> tuple[Enquiry, NotificationJob]:
        enquiry = get_enquiry(db, enquiry_id)
        if enquiry.status == EnquiryStatus.CLOSED.value:
            raise ValidationError("Closed enquiries cannot be reassigned")
        agent = _load_active_agent(db, agent_id)

        now = utcnow()
        previous = {"assigned_to": enquiry.assigned_to, "status": enquiry.status}
        _move_to_assigned(enquiry, agent.id, now)
        enquiry.updated_at = now
        _append_note(
            db,
            enquiry,
            _assignment_note_text(agent, reason),
            author_id=session.user_id,
            communication_method=CommunicationMethod.SYSTEM,
        )
        audit_service.log_admin_action(
            db,
            session.user_id,
            AuditAction.ENQUIRY_ASSIGNED.value,
            table_name="enquiries",
            record_id=enquiry.id,
            previous_data=previous,
            changes={"assigned_to": agent.id, "status": enquiry.status},
            reason=reason,
            request=request,
        )
        job = agent_assignment_job(enquiry, agent, admin_id=session.user_id)

        db.commit()
        db.refresh(enquiry)
        logger.info(
            "Enquiry assigned ticket=%s enquiry_id=%s agent_id=%s by user_id=%s",
            enquiry.ticket_number,
            enquiry.id,
            agent.id,
            session.user_id,
        )
        return enquiry, job

    return _run_in_transaction(db, _assign)


def clean_note_text(text: str) -> str:
    """Notes are plain text: strip markup, keep the words."""
    return html.unescape(nh3.clean(text, tags=set())).strip()


def add_enquiry_note(
    db: Session,
    enquiry_id: int,
    data: EnquiryNoteCreate,
    session: UserSession,
) -> EnquiryNote:
    """
    Append a note. Never edits existing notes.

    A client communication on a ``new`` enquiry counts as the first response.
    """

    def _add() -> EnquiryNote:
        enquiry = get_enquiry(db, enquiry_id)
        ensure_can_modify(session, enquiry)

        text = clean_note_text(data.note)
        if not text:
            raise ValidationError(
                "Note cannot be empty",
                details=[field_error("note", "Note must contain text")],
            )
        if len(text) > 2000:
            raise ValidationError(
                "Note too long",
                details=[field_error("note", "Note must be at most 2000 characters")],
            )

        now = utcnow()
        if data.note_type == NoteType.CLIENT_COMMUNICATION and enquiry.status == EnquiryStatus.NEW.value:
            _mark_first_response(enquiry, now)

        note = _append_note(
            db,
            enquiry,
            text,
            author_id=session.user_id,
            note_type=data.note_type,
            communication_method=data.communication_method,
            next_follow_up_date=data.next_follow_up_date,
        )
        enquiry.updated_at = now
        db.commit()
        db.refresh(note)
        return note

    return _run_in_transaction(db, _add)


def list_notes(
    db: Session,
    enquiry_id: int,
    session: UserSession,
    *,
    note_type: NoteType | None = None,
    user_id: int | None = None,
    limit: int = DEFAULT_NOTE_LIMIT,
) -> tuple[list[EnquiryNote], int]:
    """
    Notes oldest first (id tiebreak).

    Internal notes are staff-only, so reading follows the modify rule:
    submitters see their enquiry but not its note stream.
    """
    ensure_can_modify(session, get_enquiry(db, enquiry_id))
    query = (
        db.query(EnquiryNote)
        .options(joinedload(EnquiryNote.author))
        .filter(EnquiryNote.enquiry_id == enquiry_id)
    )
    if note_type:
        query = query.filter(EnquiryNote.note_type == NoteType(note_type).value)
    if user_id:
        query = query.filter(EnquiryNote.user_id == user_id)

    total = query.order_by(None).count()
    items = query.order_by(EnquiryNote.created_at.asc(), EnquiryNote.id.asc()).limit(limit).all()
    return items, total


def bulk_update(
    db: Session,
    enquiry_ids: list[int],
    patch: EnquiryUpdate,
    session: UserSession,
    request: Request | None = None,
) -> dict[str, Any]:
    """Apply one patch to each id independently; failures never stop the rest."""
    successful: list[int] = []
    failed: list[dict[str, Any]] = []

    for enquiry_id in enquiry_ids:
        try:
            update_enquiry(db, enquiry_id, patch, session, request)
            successful.append(enquiry_id)
        except AppError as exc:
            failed.append({"id": enquiry_id, "error": exc.message})

    logger.info(
        "Bulk enquiry update by user_id=%s: %s ok, %s failed",
        session.user_id,
        len(successful),
        len(failed),
    )
    return {
        "successful": successful,
        "failed": failed,
        "summary": {
            "total": len(enquiry_ids),
            "successful": len(successful),
            "failed": len(failed),
        },
    }
