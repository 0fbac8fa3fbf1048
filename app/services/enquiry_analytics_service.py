"""Enquiry analytics for the admin dashboard."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import case, func
from sqlalchemy.orm import Query, Session

from app.db.enums import EnquiryPriority, EnquiryStatus
from app.db.models import Enquiry
from app.db.types import utcnow

TREND_DAYS = 30

PRIORITY_ORDER = [
    EnquiryPriority.URGENT.value,
    EnquiryPriority.HIGH.value,
    EnquiryPriority.MEDIUM.value,
    EnquiryPriority.LOW.value,
]


def _rate(part: int, total: int) -> float:
    return round(part / total * 100, 1) if total else 0.0


def _avg_hours(pairs: list[tuple[datetime, datetime]]) -> float | None:
    if not pairs:
        return None
    seconds = sum((later - earlier).total_seconds() for earlier, later in pairs)
    return round(seconds / len(pairs) / 3600, 1)


def _filtered(
    query: Query,
    *,
    date_from: date | None,
    date_to: date | None,
    agent_id: int | None,
    status: EnquiryStatus | None,
) -> Query:
    if date_from:
        query = query.filter(
            Enquiry.created_at >= datetime.combine(date_from, time.min, tzinfo=timezone.utc)
        )
    if date_to:
        query = query.filter(
            Enquiry.created_at
            < datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=timezone.utc)
        )
    if agent_id:
        query = query.filter(Enquiry.assigned_to == agent_id)
    if status:
        query = query.filter(Enquiry.status == EnquiryStatus(status).value)
    return query


def _count_where(condition):
    return func.sum(case((condition, 1), else_=0))


def get_enquiry_analytics(
    db: Session,
    *,
    date_from: date | None = None,
    date_to: date | None = None,
    agent_id: int | None = None,
    status: EnquiryStatus | None = None,
) -> dict[str, Any]:
    """Summary counts, SLA averages, source/priority distributions and a 30-day trend."""
    filters = {
        "date_from": date_from,
        "date_to": date_to,
        "agent_id": agent_id,
        "status": status,
    }
    resolved = Enquiry.status == EnquiryStatus.RESOLVED.value

    # Basic counts
    status_counts = dict(
        _filtered(
            db.query(Enquiry.status, func.count(Enquiry.id)), **filters
        ).group_by(Enquiry.status).all()
    )
    row = _filtered(
        db.query(
            func.count(Enquiry.id),
            _count_where(Enquiry.assigned_to.is_not(None)),
            _count_where(Enquiry.account_created_during_enquiry.is_(True)),
            func.avg(Enquiry.customer_satisfaction_rating),
        ),
        **filters,
    ).one()
    total, assigned_count, accounts_created, avg_rating = row
    total = total or 0
    assigned_count = int(assigned_count or 0)

    summary: dict[str, Any] = {"total_enquiries": total}
    for s in EnquiryStatus:
        summary[f"{s.value}_enquiries"] = status_counts.get(s.value, 0)
    summary.update(
        {
            "assigned_count": assigned_count,
            "accounts_created": int(accounts_created or 0),
            "avg_rating": round(float(avg_rating), 2) if avg_rating is not None else None,
            "assignment_rate": _rate(assigned_count, total),
            "resolution_rate": _rate(status_counts.get(EnquiryStatus.RESOLVED.value, 0), total),
        }
    )

    # Response times (computed in Python; date arithmetic differs per backend)
    sla_rows = _filtered(
        db.query(Enquiry.created_at, Enquiry.first_response_at, Enquiry.resolved_at),
        **filters,
    ).all()
    responded = [(c, f) for c, f, _ in sla_rows if f is not None]
    resolved_pairs = [(c, r) for c, _, r in sla_rows if r is not None]
    performance = {
        "avg_first_response_hours": _avg_hours(responded),
        "avg_resolution_hours": _avg_hours(resolved_pairs),
        "responded_count": len(responded),
        "resolved_count": len(resolved_pairs),
    }

    # Source distribution
    sources = [
        {"source": source, "count": count, "resolved_count": int(resolved_count or 0)}
        for source, count, resolved_count in _filtered(
            db.query(Enquiry.source, func.count(Enquiry.id), _count_where(resolved)),
            **filters,
        )
        .group_by(Enquiry.source)
        .order_by(func.count(Enquiry.id).desc(), Enquiry.source)
        .all()
    ]

    # Priority distribution (urgent first)
    by_priority = {
        priority: (count, int(resolved_count or 0))
        for priority, count, resolved_count in _filtered(
            db.query(Enquiry.priority, func.count(Enquiry.id), _count_where(resolved)),
            **filters,
        )
        .group_by(Enquiry.priority)
        .all()
    }
    priorities = [
        {"priority": p, "count": by_priority[p][0], "resolved_count": by_priority[p][1]}
        for p in PRIORITY_ORDER
        if p in by_priority
    ]

    # Daily trend, last 30 days
    since = utcnow() - timedelta(days=TREND_DAYS)
    day = func.date(Enquiry.created_at)
    trend_rows = (
        _filtered(
            db.query(day.label("day"), func.count(Enquiry.id), _count_where(resolved)),
            **filters,
        )
        .filter(Enquiry.created_at >= since)
        .group_by(day)
        .order_by(day)
        .all()
    )
    trends = [
        {
            "date": d.isoformat() if hasattr(d, "isoformat") else str(d),
            "enquiries_count": count,
            "resolved_count": int(resolved_count or 0),
        }
        for d, count, resolved_count in trend_rows
    ]

    return {
        "summary": {**summary, **performance},
        "sources": sources,
        "priorities": priorities,
        "trends": trends,
        "filters": {
            "date_from": date_from.isoformat() if date_from else None,
            "date_to": date_to.isoformat() if date_to else None,
            "agent_id": agent_id,
            "status": EnquiryStatus(status).value if status else None,
        },
    }
