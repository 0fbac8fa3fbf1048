"""SQLAlchemy ORM models."""

from app.db.models.audit import AuditLog
from app.db.models.enquiries import Enquiry, EnquiryNote
from app.db.models.notifications import NotificationLedger
from app.db.models.properties import Property
from app.db.models.settings import SystemSetting
from app.db.models.users import User

__all__ = [
    "AuditLog",
    "Enquiry",
    "EnquiryNote",
    "NotificationLedger",
    "Property",
    "SystemSetting",
    "User",
]
