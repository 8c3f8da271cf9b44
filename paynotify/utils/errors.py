"""
Error taxonomy for notification delivery plus storage error helpers.

The delivery channel has no typed error contract, so classification is a
best-effort substring match over the error text. Swap classify_error for
provider-typed errors if SendGrid ever exposes them.
"""
import asyncio
from enum import Enum
from typing import Optional

UNIQUE_VIOLATION_SQLSTATE = "23505"


class EmailErrorKind(str, Enum):
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    TEMPLATE_ERROR = "TEMPLATE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    PROVIDER_ERROR = "PROVIDER_ERROR"


class WebhookVerificationError(Exception):
    """Raised when an inbound webhook fails signature verification."""


class MalformedWebhookError(Exception):
    """Raised when a verified webhook body is not a usable event."""


_CONFIGURATION_MARKERS = ("api key", "apikey", "unauthorized", "forbidden", "permission")
_NETWORK_MARKERS = ("network", "timeout", "timed out", "connection", "unreachable")
_TEMPLATE_MARKERS = ("template", "invalid email", "does not contain a valid address")


def classify_error(exc: Optional[BaseException]) -> EmailErrorKind:
    """Map a delivery exception onto the closed EmailErrorKind set."""
    if exc is None:
        return EmailErrorKind.PROVIDER_ERROR
    if isinstance(exc, asyncio.TimeoutError):
        return EmailErrorKind.NETWORK_ERROR

    message = str(exc).lower()
    if any(marker in message for marker in _CONFIGURATION_MARKERS):
        return EmailErrorKind.CONFIGURATION_ERROR
    if any(marker in message for marker in _NETWORK_MARKERS):
        return EmailErrorKind.NETWORK_ERROR
    if any(marker in message for marker in _TEMPLATE_MARKERS):
        return EmailErrorKind.TEMPLATE_ERROR
    return EmailErrorKind.PROVIDER_ERROR


def normalize_error(exc: BaseException) -> dict:
    """Normalize any exception to {"message", "code"} for structured logs."""
    code = (
        getattr(exc, "code", None)
        or getattr(exc, "status_code", None)
        or getattr(getattr(exc, "orig", None), "sqlstate", None)
        or getattr(getattr(exc, "orig", None), "pgcode", None)
    )
    message = str(exc) or exc.__class__.__name__
    if isinstance(exc, asyncio.TimeoutError) and not str(exc):
        message = "Email sending timeout"
    return {"message": message, "code": str(code) if code is not None else None}


def is_unique_violation(exc: BaseException) -> bool:
    """True when a storage error is a duplicate-key conflict."""
    orig = getattr(exc, "orig", None) or exc
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == UNIQUE_VIOLATION_SQLSTATE:
        return True
    text = str(orig).lower()
    return "unique constraint" in text or "duplicate key" in text
