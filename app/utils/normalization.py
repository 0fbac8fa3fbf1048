"""Data normalization utilities for consistent data quality."""

import re
from typing import Optional


# E.164-shaped: optional +, no leading zero, at most 15 digits
PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")

# Indian mobile numbers: 10 digits starting 6-9
INDIAN_MOBILE_PATTERN = re.compile(r"^[6-9]\d{9}$")

INDIA_COUNTRY_CODE = "91"


def _strip_separators(phone: str) -> str:
    return re.sub(r"[\s\-().]", "", phone.strip())


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a contact phone.

    Accepts:
    - 10-digit Indian mobile: 9123456789 → 9123456789
    - With country code: +919123456789 / 919123456789 → 9123456789
    - Other international numbers in E.164 form: +14155550100 → +14155550100

    Args:
        phone: Raw phone input

    Returns:
        Normalized phone or None if empty

    Raises:
        ValueError: If the phone is malformed or an invalid Indian mobile
    """
    if not phone:
        return None

    cleaned = _strip_separators(phone)
    if not PHONE_PATTERN.match(cleaned):
        raise ValueError(f"Invalid phone number '{phone}'.")

    has_plus = cleaned.startswith("+")
    digits = cleaned.lstrip("+")

    if len(digits) == 12 and digits.startswith(INDIA_COUNTRY_CODE):
        digits = digits[len(INDIA_COUNTRY_CODE):]
    elif has_plus:
        return f"+{digits}"

    if len(digits) == 10:
        if not INDIAN_MOBILE_PATTERN.match(digits):
            raise ValueError(
                f"Invalid phone number '{phone}'. Indian mobiles are 10 digits starting with 6-9."
            )
        return digits

    return digits


def normalize_indian_mobile(phone: Optional[str]) -> str:
    """
    Reduce a phone to the 10-digit national form used by the SMS gateway.

    Raises:
        ValueError: If the result is not a valid Indian mobile
    """
    cleaned = re.sub(r"\s", "", phone or "")
    if cleaned.startswith("+91"):
        cleaned = cleaned[3:]
    if not INDIAN_MOBILE_PATTERN.match(cleaned):
        raise ValueError("Invalid Indian mobile number")
    return cleaned


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Normalize email to lowercase.

    Args:
        email: Raw email input

    Returns:
        Lowercased email or None if empty
    """
    if not email:
        return None
    return email.strip().lower()


def normalize_name(name: Optional[str]) -> Optional[str]:
    """
    Normalize name by stripping whitespace and collapsing multiple spaces.

    Args:
        name: Raw name input

    Returns:
        Cleaned name or None if empty
    """
    if not name:
        return None
    # Strip leading/trailing whitespace and collapse internal spaces
    return " ".join(name.split())


def extract_phone_last4(phone: Optional[str]) -> Optional[str]:
    """
    Extract last 4 digits from a normalized phone number (safe for logs).
    """
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    if not digits:
        return None
    return digits[-4:] if len(digits) >= 4 else digits
