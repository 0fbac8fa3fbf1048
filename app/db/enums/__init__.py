"""Enum definitions for application constants."""

from app.db.enums.audit import (
    ALERT_SEVERITIES,
    SECURITY_EVENTS_TABLE,
    SWEEPABLE_SEVERITIES,
    AuditAction,
    AuditKind,
    LawfulPurpose,
    Severity,
)
from app.db.enums.auth import BLOCKED_STATUSES, UserRole, UserStatus
from app.db.enums.enquiries import (
    ALLOWED_TRANSITIONS,
    DEFAULT_ENQUIRY_SOURCE,
    OPEN_STATUSES,
    CommunicationMethod,
    EnquiryPriority,
    EnquiryStatus,
    NoteType,
)
from app.db.enums.notifications import Channel, NotificationTemplate

__all__ = [
    "ALERT_SEVERITIES",
    "ALLOWED_TRANSITIONS",
    "AuditAction",
    "AuditKind",
    "BLOCKED_STATUSES",
    "Channel",
    "CommunicationMethod",
    "DEFAULT_ENQUIRY_SOURCE",
    "EnquiryPriority",
    "EnquiryStatus",
    "LawfulPurpose",
    "NoteType",
    "NotificationTemplate",
    "OPEN_STATUSES",
    "SECURITY_EVENTS_TABLE",
    "SWEEPABLE_SEVERITIES",
    "Severity",
    "UserRole",
    "UserStatus",
]
