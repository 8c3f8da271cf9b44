"""
Notification job builders - lead capture and payment notifications.

Plain-text only (transactional, no tracking). Every builder sanitizes its
input and returns None with a logged warning instead of raising when a
required field is missing or the recipient address is malformed.
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional

from paynotify.utils.email_validation import is_valid_email_format, normalize_email
from paynotify.utils.logging import mask_email

logger = logging.getLogger(__name__)

ADMIN_NOTIFICATION = "admin_notification"
USER_CONFIRMATION = "user_confirmation"
USER_WELCOME = "user_welcome"

MAX_FIELD_LENGTH = 500
MAX_NAME_LENGTH = 100
MAX_TIER_LENGTH = 50
DEFAULT_CURRENCY = "USD"
DEFAULT_BRAND = "Diaspora9ja"

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


@dataclass
class NotificationJob:
    kind: str
    recipient: str
    subject: str
    body: str
    source: str = "payment"  # lead | payment

    @property
    def email_type(self) -> str:
        return f"{self.source}_{self.kind}"


# ---------------------------------------------------------------------------
# Sanitization
# ---------------------------------------------------------------------------

def sanitize_string(value: Optional[str], max_length: int = MAX_FIELD_LENGTH) -> str:
    """Strip angle brackets, flatten line breaks and tabs, trim, cap length."""
    if not value:
        return ""
    cleaned = re.sub(r"[<>]", "", str(value))
    cleaned = re.sub(r"[\r\n\t]", " ", cleaned).strip()
    return cleaned[:max_length].strip()


def sanitize_name(value: Optional[str]) -> str:
    return sanitize_string(value, MAX_NAME_LENGTH)


def sanitize_tier(value: Optional[str]) -> str:
    return sanitize_string(value, MAX_TIER_LENGTH)


def normalize_currency(value: Optional[str]) -> str:
    """Three-letter upper-case ISO code; anything else falls back to USD."""
    code = sanitize_string(value, 10).upper()
    return code if _CURRENCY_RE.match(code) else DEFAULT_CURRENCY


def minor_to_major(amount_minor: Optional[int]) -> float:
    """Stripe amounts are in minor units (cents). Negative or junk becomes 0."""
    try:
        return max(0.0, round(int(amount_minor or 0) / 100, 2))
    except (TypeError, ValueError):
        return 0.0


def _recipient(value: Optional[str], job_label: str) -> Optional[str]:
    email = normalize_email(sanitize_string(value, 254))
    if not email:
        logger.warning("Skipping %s: recipient email missing", job_label)
        return None
    if not is_valid_email_format(email):
        logger.warning("Skipping %s: invalid recipient %s", job_label, mask_email(email))
        return None
    return email


# ---------------------------------------------------------------------------
# Lead capture
# ---------------------------------------------------------------------------

def build_lead_admin_notification(lead: dict, admin_email: str) -> Optional[NotificationJob]:
    recipient = _recipient(admin_email, "lead admin notification")
    name = sanitize_name(lead.get("name"))
    email = normalize_email(sanitize_string(lead.get("email"), 254))
    if not recipient:
        return None
    if not name or not email:
        logger.warning("Skipping lead admin notification: lead name or email missing")
        return None

    phone = sanitize_string(lead.get("phone")) or "Not provided"
    location = sanitize_string(lead.get("location")) or "Not provided"
    created = sanitize_string(lead.get("created_at"))
    lead_id = sanitize_string(lead.get("id"))

    body = (
        "A new lead has been created:\n\n"
        f"Name: {name}\n"
        f"Email: {email}\n"
        f"Phone: {phone}\n"
        f"Location: {location}\n"
        f"Created: {created}"
    )
    if lead_id:
        body += f"\nLead ID: {lead_id}"
    body += "\n\nPlease follow up with this lead as appropriate.\n\n---\nAdmin System"

    return NotificationJob(
        kind=ADMIN_NOTIFICATION,
        recipient=recipient,
        subject=f"New Lead: {name} - {email}",
        body=body,
        source="lead",
    )


def build_lead_user_welcome(lead: dict, brand: str = DEFAULT_BRAND) -> Optional[NotificationJob]:
    recipient = _recipient(lead.get("email"), "lead welcome")
    name = sanitize_name(lead.get("name"))
    if not recipient:
        return None
    if not name:
        logger.warning("Skipping lead welcome: name missing")
        return None

    body = (
        f"Hi {name},\n\n"
        f"Thank you for your interest in joining the {brand} community!\n\n"
        "We've received your information and you should receive a checkout link "
        "shortly to complete your membership.\n\n"
        "What happens next:\n"
        "1. Complete your payment through our secure checkout\n"
        "2. Get instant access to our community platform\n"
        "3. Connect with fellow members worldwide\n\n"
        "Welcome aboard!\n"
        f"The {brand} Team\n\n"
        "---\n"
        f"This email was sent because you expressed interest in joining {brand}."
    )
    return NotificationJob(
        kind=USER_WELCOME,
        recipient=recipient,
        subject=f"Welcome to {brand} - You're One Step Away!",
        body=body,
        source="lead",
    )


def build_lead_jobs(lead: dict, admin_email: str, brand: str = DEFAULT_BRAND) -> list[NotificationJob]:
    jobs = [
        build_lead_admin_notification(lead, admin_email),
        build_lead_user_welcome(lead, brand),
    ]
    return [job for job in jobs if job is not None]


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

def sanitize_payment(payment: dict) -> dict:
    """Clean a payment notification payload. Amount is already in major units."""
    try:
        amount = max(0.0, float(payment.get("amount") or 0))
    except (TypeError, ValueError):
        amount = 0.0
    return {
        "name": sanitize_name(payment.get("name")),
        "email": normalize_email(sanitize_string(payment.get("email"), 254)),
        "amount": amount,
        "currency": normalize_currency(payment.get("currency")),
        "tier_name": sanitize_tier(payment.get("tier_name")) or "Unknown",
        "payment_date": sanitize_string(payment.get("payment_date")),
        "is_subscription": bool(payment.get("is_subscription")),
    }


def build_payment_admin_notification(payment: dict, admin_email: str) -> Optional[NotificationJob]:
    recipient = _recipient(admin_email, "payment admin notification")
    if not recipient:
        return None
    data = sanitize_payment(payment)
    if not data["email"] and not data["name"]:
        logger.warning("Skipping payment admin notification: no customer name or email")
        return None

    payment_type = "Subscription Renewal" if data["is_subscription"] else "New Payment"
    customer = data["name"] or data["email"]
    amount = f"{data['amount']:.2f} {data['currency']}"
    footer = (
        "This is a subscription renewal. Customer access has been extended."
        if data["is_subscription"]
        else "This is a new payment. Customer has been added to the system and granted access."
    )
    body = (
        f"A {payment_type.lower()} has been completed:\n\n"
        f"Customer: {customer}\n"
        f"Email: {data['email'] or 'Not provided'}\n"
        f"Amount: {amount}\n"
        f"Tier: {data['tier_name']}\n"
        f"Payment Date: {data['payment_date']}\n"
        f"Type: {payment_type}\n\n"
        f"{footer}\n\n---\nAdmin System"
    )
    return NotificationJob(
        kind=ADMIN_NOTIFICATION,
        recipient=recipient,
        subject=f"{payment_type}: {customer} - {amount}",
        body=body,
    )


def build_payment_user_confirmation(payment: dict, brand: str = DEFAULT_BRAND) -> Optional[NotificationJob]:
    recipient = _recipient(payment.get("email"), "payment confirmation")
    if not recipient:
        return None
    data = sanitize_payment(payment)
    name = data["name"] or "there"
    renewal = data["is_subscription"]

    subject = (
        "Subscription Renewed - Thank You!"
        if renewal
        else f"Payment Confirmed - Welcome to {brand}!"
    )
    intro = (
        "Your subscription has been successfully renewed!"
        if renewal
        else f"Your payment has been successfully processed! Welcome to the {brand} community."
    )
    access = (
        "Your access has been extended and you can continue enjoying all premium features."
        if renewal
        else "You now have full access to our platform and all membership benefits."
    )
    closing = (
        "Thank you for your continued membership!"
        if renewal
        else "We're excited to have you as part of our community!"
    )
    body = (
        f"Hi {name},\n\n"
        f"{intro}\n\n"
        "Payment Details:\n"
        f"Amount: {data['amount']:.2f} {data['currency']}\n"
        f"Membership: {data['tier_name']}\n"
        f"Date: {data['payment_date']}\n"
        f"Type: {'Subscription Renewal' if renewal else 'New Membership'}\n\n"
        f"{access}\n\n"
        f"{closing}\n\n"
        "Best regards,\n"
        f"The {brand} Team\n\n"
        "---\n"
        f"This email confirms your {'subscription renewal' if renewal else 'payment'} "
        f"for {brand} membership."
    )
    return NotificationJob(
        kind=USER_CONFIRMATION,
        recipient=recipient,
        subject=subject,
        body=body,
    )


def build_payment_jobs(payment: dict, admin_email: str, brand: str = DEFAULT_BRAND) -> list[NotificationJob]:
    jobs = [
        build_payment_admin_notification(payment, admin_email),
        build_payment_user_confirmation(payment, brand),
    ]
    return [job for job in jobs if job is not None]
