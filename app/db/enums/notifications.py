"""Notification enums."""

from enum import Enum


class Channel(str, Enum):
    EMAIL = "email"
    SMS = "sms"


class NotificationTemplate(str, Enum):
    """
    Dispatchable notifications. Each renders an email and an SMS.

    - ACCOUNT_VERIFICATION: welcome + email link + phone OTP for a new account
    - AGENT_ENQUIRY_ASSIGNMENT: heads-up to the agent who now owns an enquiry
    """

    ACCOUNT_VERIFICATION = "account_verification"
    AGENT_ENQUIRY_ASSIGNMENT = "agent_enquiry_assignment"
