"""Enquiry lifecycle enums and transition rules."""

from enum import Enum


class EnquiryStatus(str, Enum):
    """Enquiry lifecycle state. CLOSED is terminal."""

    NEW = "new"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class EnquiryPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NoteType(str, Enum):
    """Kinds of enquiry notes."""

    INTERNAL = "internal"
    CLIENT_COMMUNICATION = "client_communication"
    SYSTEM = "system"
    FOLLOW_UP_REMINDER = "follow_up_reminder"


class CommunicationMethod(str, Enum):
    PHONE = "phone"
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    IN_PERSON = "in_person"
    SYSTEM = "system"


DEFAULT_ENQUIRY_SOURCE = "website"

# Statuses that count toward an agent's open load
OPEN_STATUSES = {EnquiryStatus.NEW, EnquiryStatus.ASSIGNED, EnquiryStatus.IN_PROGRESS}

# Legal status transitions (resolved -> in_progress is a reopen)
ALLOWED_TRANSITIONS: dict[EnquiryStatus, set[EnquiryStatus]] = {
    EnquiryStatus.NEW: {EnquiryStatus.ASSIGNED, EnquiryStatus.IN_PROGRESS, EnquiryStatus.CLOSED},
    EnquiryStatus.ASSIGNED: {EnquiryStatus.IN_PROGRESS, EnquiryStatus.RESOLVED, EnquiryStatus.CLOSED},
    EnquiryStatus.IN_PROGRESS: {EnquiryStatus.RESOLVED, EnquiryStatus.CLOSED},
    EnquiryStatus.RESOLVED: {EnquiryStatus.CLOSED, EnquiryStatus.IN_PROGRESS},
    EnquiryStatus.CLOSED: set(),
}
