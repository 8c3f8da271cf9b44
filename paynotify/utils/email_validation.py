"""
Email address normalization and strict format validation.
Applied at lead capture and again on every outbound notification recipient.
"""
import re
from typing import Optional

# RFC 5322 simplified - covers 99%+ of valid emails
EMAIL_REGEX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9]"
    r"(?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(?:\.[a-zA-Z0-9]"
    r"(?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*\.[a-zA-Z]{2,}$"
)

MAX_EMAIL_LENGTH = 254


def normalize_email(email: Optional[str]) -> str:
    """Trim and case-fold an email address for comparison and storage."""
    return (email or "").strip().lower()


def is_valid_email_format(email: Optional[str]) -> bool:
    """
    Check if email matches a valid format (RFC 5322 simplified).

    Args:
        email: Email address to validate

    Returns:
        True if format is valid
    """
    if not email or len(email) > MAX_EMAIL_LENGTH:
        return False
    return bool(EMAIL_REGEX.match(email.strip()))
