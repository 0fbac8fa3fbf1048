"""Agent auto-assignment for new enquiries.

One ranking rule, applied in SQL inside the caller's transaction:

1. higher agent_rating first (unrated agents last)
2. lower open-enquiry load first
3. lower agent id first
"""

import logging

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.db.enums import OPEN_STATUSES, UserRole, UserStatus
from app.db.models import Enquiry, Property, User
from app.services import system_setting_service

logger = logging.getLogger(__name__)


def open_load(db: Session, agent_id: int) -> int:
    """Count of enquiries assigned to the agent that are still open."""
    return (
        db.query(func.count(Enquiry.id))
        .filter(
            Enquiry.assigned_to == agent_id,
            Enquiry.status.in_([s.value for s in OPEN_STATUSES]),
        )
        .scalar()
        or 0
    )


def _property_type(db: Session, property_id: int | None) -> str | None:
    if not property_id:
        return None
    return db.query(Property.property_type).filter(Property.id == property_id).scalar()


def rank_candidates(db: Session, property_type: str | None = None) -> list[tuple[User, int]]:
    """
    Eligible agents in ranked order, paired with their open load.

    Eligible: role agent, status active, email verified. With a property
    type, agents whose specialization mentions it (case-insensitive) stay
    eligible alongside agents with no specialization at all.
    """
    load = (
        select(Enquiry.assigned_to.label("agent_id"), func.count(Enquiry.id).label("open_count"))
        .where(Enquiry.status.in_([s.value for s in OPEN_STATUSES]))
        .where(Enquiry.assigned_to.is_not(None))
        .group_by(Enquiry.assigned_to)
        .subquery()
    )
    open_count = func.coalesce(load.c.open_count, 0)

    query = (
        db.query(User, open_count.label("open_count"))
        .outerjoin(load, load.c.agent_id == User.id)
        .filter(
            User.user_type == UserRole.AGENT.value,
            User.status == UserStatus.ACTIVE.value,
            User.email_verified_at.is_not(None),
        )
    )
    if property_type:
        query = query.filter(
            or_(
                User.specialization.is_(None),
                User.specialization.icontains(property_type, autoescape=True),
            )
        )

    rows = query.order_by(
        User.agent_rating.is_(None),
        User.agent_rating.desc(),
        open_count.asc(),
        User.id.asc(),
    ).all()
    return [(agent, int(count)) for agent, count in rows]


def select_agent(db: Session, enquiry: Enquiry) -> User | None:
    """
    Pick the agent for a new enquiry, or None.

    Returns None immediately when the global auto-assign switch is off.
    """
    if not system_setting_service.auto_assign_enabled(db):
        logger.info("Auto-assignment disabled; enquiry_id=%s left unassigned", enquiry.id)
        return None

    candidates = rank_candidates(db, _property_type(db, enquiry.property_id))
    if not candidates:
        logger.info("Auto-assignment found no eligible agent for enquiry_id=%s", enquiry.id)
        return None

    agent, load = candidates[0]
    logger.info(
        "Auto-assignment picked agent_id=%s (open load %s) for enquiry_id=%s",
        agent.id,
        load,
        enquiry.id,
    )
    return agent


def assign(db: Session, enquiry: Enquiry) -> int | None:
    """Id of the selected agent, or None."""
    agent = select_agent(db, enquiry)
    return agent.id if agent else None
