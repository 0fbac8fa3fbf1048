"""Audit and DPDPA compliance enums."""

from enum import Enum


class AuditKind(str, Enum):
    """
    Entry points into the audit sink.

    - ADMIN_ACTION: admin changes that may affect a data subject
    - SECURITY_EVENT: genuine threats (failed logins, scraping, ...)
    - USER_ACTION: self-service account actions
    - COMPLIANCE: retention housekeeping, always written
    """

    ADMIN_ACTION = "admin_action"
    SECURITY_EVENT = "security_event"
    USER_ACTION = "user_action"
    COMPLIANCE = "compliance"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class LawfulPurpose(str, Enum):
    """DPDPA 2023 legal basis for retaining an audit record."""

    LEGITIMATE_INTEREST = "legitimate_interest"
    LEGAL_OBLIGATION = "legal_obligation"
    CONTRACT_PERFORMANCE = "contract_performance"


class AuditAction(str, Enum):
    """Action labels written by this service."""

    ENQUIRY_CREATED = "enquiry_created"
    ENQUIRY_UPDATED = "enquiry_updated"
    ENQUIRY_ASSIGNED = "enquiry_assigned"
    LOGIN_FAILURE = "login_failure"
    EMAIL_VERIFICATION_COMPLETED = "email_verification_completed"
    PHONE_VERIFICATION_COMPLETED = "phone_verification_completed"
    VERIFICATION_RESENT = "verification_resent"
    DPDPA_AUTOMATED_CLEANUP = "dpdpa_automated_cleanup"
    DPDPA_RETENTION_EXTENDED = "dpdpa_retention_extended"


# Severities the retention sweep may delete
SWEEPABLE_SEVERITIES = {Severity.LOW, Severity.MEDIUM}

# Severities that raise a security alert when written
ALERT_SEVERITIES = {Severity.HIGH, Severity.CRITICAL}

SECURITY_EVENTS_TABLE = "security_events"
