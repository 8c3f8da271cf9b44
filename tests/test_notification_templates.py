"""
Tests for paynotify/services/notification_templates.py - sanitization and
the lead/payment notification builders.
"""
import pytest

from paynotify.services.notification_templates import (
    ADMIN_NOTIFICATION,
    USER_CONFIRMATION,
    USER_WELCOME,
    build_lead_jobs,
    build_payment_admin_notification,
    build_payment_jobs,
    build_payment_user_confirmation,
    minor_to_major,
    normalize_currency,
    sanitize_name,
    sanitize_string,
)

ADMIN = "admin@diaspora9ja.com"


def _payment(**overrides):
    payment = {
        "name": "Ada Obi",
        "email": "Ada@Example.com",
        "amount": 25.0,
        "currency": "usd",
        "tier_name": "Gold Membership",
        "payment_date": "March 10, 2026",
        "is_subscription": False,
    }
    payment.update(overrides)
    return payment


class TestSanitization:
    def test_strips_angle_brackets_and_line_breaks(self):
        assert sanitize_string("<b>Hi</b>\r\nthere\t!") == "bHi/b  there !"

    def test_caps_length(self):
        assert len(sanitize_string("x" * 600)) == 500
        assert len(sanitize_name("y" * 150)) == 100

    def test_empty_values(self):
        assert sanitize_string(None) == ""
        assert sanitize_string("") == ""

    @pytest.mark.parametrize("value,expected", [
        ("usd", "USD"),
        ("ngn", "NGN"),
        ("dollars", "USD"),
        (None, "USD"),
        ("12a", "USD"),
    ])
    def test_normalize_currency(self, value, expected):
        assert normalize_currency(value) == expected

    @pytest.mark.parametrize("value,expected", [
        (2500, 25.0),
        (199, 1.99),
        (0, 0.0),
        (None, 0.0),
        (-500, 0.0),
        ("junk", 0.0),
    ])
    def test_minor_to_major(self, value, expected):
        assert minor_to_major(value) == expected


class TestLeadJobs:
    def test_builds_admin_and_welcome(self):
        lead = {"id": "lead-1", "name": "Ada", "email": "ada@example.com", "created_at": "2026-03-10"}
        jobs = build_lead_jobs(lead, ADMIN, "Diaspora9ja")

        assert [j.kind for j in jobs] == [ADMIN_NOTIFICATION, USER_WELCOME]
        admin, welcome = jobs
        assert admin.recipient == ADMIN
        assert admin.subject == "New Lead: Ada - ada@example.com"
        assert "Phone: Not provided" in admin.body
        assert "Lead ID: lead-1" in admin.body
        assert welcome.recipient == "ada@example.com"
        assert welcome.email_type == "lead_user_welcome"

    def test_invalid_admin_email_skips_only_admin_job(self):
        lead = {"name": "Ada", "email": "ada@example.com"}
        jobs = build_lead_jobs(lead, "not-an-address")
        assert [j.kind for j in jobs] == [USER_WELCOME]

    def test_invalid_lead_email_skips_welcome(self):
        jobs = build_lead_jobs({"name": "Ada", "email": "bad@"}, ADMIN)
        assert [j.kind for j in jobs] == [ADMIN_NOTIFICATION]

    def test_missing_name_skips_both(self):
        assert build_lead_jobs({"name": "  ", "email": "ada@example.com"}, ADMIN) == []


class TestPaymentJobs:
    def test_invoice_example_amount_and_currency(self):
        jobs = build_payment_jobs(_payment(amount=minor_to_major(2500)), ADMIN)
        admin, confirmation = jobs

        assert "Amount: 25.00 USD" in admin.body
        assert admin.subject == "New Payment: Ada Obi - 25.00 USD"
        assert confirmation.recipient == "ada@example.com"
        assert confirmation.kind == USER_CONFIRMATION
        assert "Amount: 25.00 USD" in confirmation.body

    def test_subscription_uses_renewal_wording(self):
        confirmation = build_payment_user_confirmation(_payment(is_subscription=True))
        assert confirmation.subject == "Subscription Renewed - Thank You!"
        assert "Type: Subscription Renewal" in confirmation.body

        admin = build_payment_admin_notification(_payment(is_subscription=True), ADMIN)
        assert admin.subject.startswith("Subscription Renewal:")

    def test_missing_customer_email_keeps_admin_job(self):
        jobs = build_payment_jobs(_payment(email=None), ADMIN)
        assert [j.kind for j in jobs] == [ADMIN_NOTIFICATION]
        assert "Email: Not provided" in jobs[0].body

    def test_no_customer_identity_skips_admin_job(self):
        assert build_payment_admin_notification(_payment(email=None, name=None), ADMIN) is None

    def test_markup_in_tier_is_sanitized(self):
        confirmation = build_payment_user_confirmation(_payment(tier_name="<script>Gold</script>"))
        assert "<" not in confirmation.body
        assert "Membership: scriptGold/script" in confirmation.body

    def test_greets_generic_name_when_missing(self):
        confirmation = build_payment_user_confirmation(_payment(name=""))
        assert confirmation.body.startswith("Hi there,")
