"""Auth-related enums."""

from enum import Enum


class UserRole(str, Enum):
    """
    Account types.

    - USER: Buyers and sellers browsing or listing property
    - AGENT: Licensed agents who receive routed enquiries
    - ADMIN: Platform administrators
    """

    USER = "user"
    AGENT = "agent"
    ADMIN = "admin"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


class UserStatus(str, Enum):
    """Account status. Soft deletion is a status change, not a row delete."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    PENDING_VERIFICATION = "pending_verification"


# Statuses that may not sign in
BLOCKED_STATUSES = {UserStatus.INACTIVE, UserStatus.SUSPENDED}
