"""DPDPA audit policies: what gets written, under which legal basis, for how long.

Pure functions only. The audit service consults these before every write;
no other module decides whether an action is worth recording.
"""

import calendar
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Any

from app.core.config import settings
from app.db.enums import AuditKind, LawfulPurpose, Severity


# =============================================================================
# Action classification
# =============================================================================

# Admin actions that change what a data subject can do or see
ADMIN_ACTION_MARKERS = (
    "suspended",
    "banned",
    "deleted",
    "password_reset_forced",
    "locked",
    "rejected",
    "removed",
    "investigation",
    "breach",
    "spam",
    "moderation",
    "fraud",
    "violation",
)

# Genuine threats, matched by exact name
SECURITY_EVENTS = frozenset({
    "login_failure",
    "suspicious_login",
    "account_lockout",
    "password_reset_abuse",
    "multiple_failed_attempts",
    "suspicious_registration",
    "bot_detected",
    "scraping_detected",
    "rate_limit_exceeded",
    "injection_attempt",
    "unauthorized_access",
    "data_breach",
    "fake_listing_attempt",
    "spam_posting",
})

USER_ACTION_MARKERS = (
    "security",
    "password",
    "verification",
    "suspicious",
    "data_access",
    "spam",
    "abuse",
    "violation",
    "scraping",
    "bot",
)

LEGAL_OBLIGATION_MARKERS = (
    "legal",
    "compliance",
    "data_deletion",
    "audit_cleanup",
    "dpdpa",
    "gdpr",
)

CONTRACT_MARKERS = (
    "service_delivery",
    "contract",
    "agent_assignment",
    "commission",
)

# Admin actions the affected user should hear about
NOTIFY_SUBJECT_MARKERS = (
    "suspended",
    "banned",
    "deleted",
    "rejected",
    "locked",
    "forced",
)


def _contains_any(action: str, markers) -> bool:
    action = action.lower()
    return any(marker in action for marker in markers)


def is_security_relevant_admin_action(action: str) -> bool:
    return _contains_any(action, ADMIN_ACTION_MARKERS)


def is_genuine_security_event(event_type: str) -> bool:
    return event_type.lower() in SECURITY_EVENTS


def is_security_relevant_user_action(action: str) -> bool:
    return _contains_any(action, USER_ACTION_MARKERS)


def sensitivity_of(kind: AuditKind, action: str) -> bool:
    """
    Whether an action of the given kind must be written.

    Compliance housekeeping (sweeps, legal holds) is always written.
    """
    if kind == AuditKind.COMPLIANCE:
        return True
    if kind == AuditKind.ADMIN_ACTION:
        return is_security_relevant_admin_action(action)
    if kind == AuditKind.SECURITY_EVENT:
        return is_genuine_security_event(action)
    if kind == AuditKind.USER_ACTION:
        return is_security_relevant_user_action(action)
    return False


# =============================================================================
# DPDPA fields
# =============================================================================

def lawful_purpose_of(action: str, severity: Severity | str | None = None) -> LawfulPurpose:
    """Legal basis for keeping the record. Legitimate interest unless the action says otherwise."""
    if _contains_any(action, LEGAL_OBLIGATION_MARKERS):
        return LawfulPurpose.LEGAL_OBLIGATION
    if _contains_any(action, CONTRACT_MARKERS):
        return LawfulPurpose.CONTRACT_PERFORMANCE
    return LawfulPurpose.LEGITIMATE_INTEREST


def should_notify_data_subject(action: str, actor_kind: AuditKind) -> bool:
    if actor_kind != AuditKind.ADMIN_ACTION:
        return False
    return _contains_any(action, NOTIFY_SUBJECT_MARKERS)


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def retention_expiry(
    lawful_purpose: LawfulPurpose | str,
    severity: Severity | str,
    now: datetime | None = None,
) -> datetime:
    """
    Retention deadline for a new record.

    - legal_obligation: 7 years (IT Act 2000, DPDPA 2023)
    - contract_performance: 1 year
    - legitimate_interest: critical 6 months, high 3 months, otherwise 1 month
    """
    now = now or datetime.now(timezone.utc)
    purpose = LawfulPurpose(lawful_purpose)
    severity = Severity(severity)

    if purpose == LawfulPurpose.LEGAL_OBLIGATION:
        return add_months(now, 12 * 7)
    if purpose == LawfulPurpose.CONTRACT_PERFORMANCE:
        return add_months(now, 12)
    if severity == Severity.CRITICAL:
        return add_months(now, 6)
    if severity == Severity.HIGH:
        return add_months(now, 3)
    return add_months(now, 1)


def extended_expiry(current: datetime, days: int) -> datetime:
    """New deadline for a legal hold of ``days`` more days."""
    return current + timedelta(days=days)


# =============================================================================
# PII sanitization
# =============================================================================

SENSITIVE_FIELD_TOKENS = (
    "email",
    "phone",
    "address",
    "name",
    "aadhar",
    "pan",
    "password",
    "token",
    "secret",
    "apikey",
    "creditcard",
    "ssn",
    "bankaccount",
)


def hash_sensitive(value: Any) -> str:
    """Peppered SHA-256 fingerprint: ``HASH_`` + first 12 hex chars."""
    digest = hashlib.sha256(f"{value}{settings.SECURITY_SALT}".encode()).hexdigest()
    return f"HASH_{digest[:12]}"


def is_sensitive_field(field_name: str) -> bool:
    normalized = field_name.lower().replace("_", "").replace("-", "")
    return any(token in normalized for token in SENSITIVE_FIELD_TOKENS)


def sanitize(values: Any) -> Any:
    """Hash every value whose field name looks like PII. Nested maps and lists are walked."""
    if isinstance(values, dict):
        sanitized = {}
        for key, value in values.items():
            if isinstance(value, (dict, list)):
                sanitized[key] = sanitize(value)
            elif is_sensitive_field(str(key)) and value not in (None, ""):
                sanitized[key] = hash_sensitive(value)
            else:
                sanitized[key] = value
        return sanitized
    if isinstance(values, list):
        return [sanitize(item) for item in values]
    return values
