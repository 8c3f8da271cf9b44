"""
Record reconciler - idempotent writes of lead and client records from
Stripe event data and lead capture.

Idempotency keys:
- Lead.email (capture upserts on it)
- Client.session_reference (checkout session id or invoice id)

Client inserts are attempted unconditionally; a unique-constraint conflict
means the event was already processed and counts as success. Webhook-side
methods never raise: failures are logged and reported in the outcome.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update

from paynotify.database import upsert_statement
from paynotify.models.client import Client
from paynotify.models.lead import Lead
from paynotify.services.notification_templates import minor_to_major
from paynotify.utils.email_validation import normalize_email
from paynotify.utils.errors import is_unique_violation, normalize_error

logger = logging.getLogger(__name__)

LEAD_ID_METADATA_KEYS = ("leadId", "lead_id")
USER_ID_METADATA_KEYS = ("userId", "user_id")
ADDRESS_FIELDS = ("line1", "line2", "city", "state", "postal_code", "country")

INSERTED = "inserted"
DUPLICATE = "duplicate"
FAILED = "failed"
SKIPPED = "skipped"


def flatten_address(address: Optional[dict]) -> Optional[str]:
    """Join the non-empty address components with ", "."""
    if not isinstance(address, dict):
        return None
    parts = [str(address.get(f)).strip() for f in ADDRESS_FIELDS if address.get(f)]
    parts = [p for p in parts if p]
    return ", ".join(parts) or None


def _metadata_value(metadata: Optional[dict], keys: tuple) -> Optional[str]:
    for key in keys:
        value = (metadata or {}).get(key)
        if value:
            return str(value)
    return None


def _payment_date() -> str:
    return datetime.now(timezone.utc).strftime("%B %d, %Y")


class RecordReconciler:
    def __init__(self, session_factory, gateway):
        self.session_factory = session_factory
        self.gateway = gateway

    # ------------------------------------------------------------------
    # Lead capture
    # ------------------------------------------------------------------

    async def upsert_lead(
        self,
        name: str,
        email: str,
        phone: Optional[str] = None,
        location: Optional[str] = None,
    ) -> dict:
        """
        Insert or update a lead keyed by normalized email.
        Storage errors propagate: the capture endpoint maps them to 500.
        Status is left untouched on resubmission so paid leads stay paid.
        """
        email = normalize_email(email)
        now = datetime.now(timezone.utc)

        async with self.session_factory() as db:
            stmt = upsert_statement(db, Lead).values(
                id=uuid.uuid4(),
                name=name.strip(),
                email=email,
                phone=phone or None,
                location=location or None,
                status="lead",
                created_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["email"],
                set_={
                    "name": stmt.excluded.name,
                    "phone": stmt.excluded.phone,
                    "location": stmt.excluded.location,
                },
            ).returning(Lead.id, Lead.created_at)
            row = (await db.execute(stmt)).one()
            await db.commit()

        logger.info("Lead saved", extra={"lead_id": str(row.id)})
        return {
            "id": str(row.id),
            "name": name.strip(),
            "email": email,
            "phone": phone or None,
            "location": location or None,
            "created_at": (row.created_at or now).isoformat(),
        }

    # ------------------------------------------------------------------
    # Payment intents -> leads
    # ------------------------------------------------------------------

    async def _update_lead(
        self, payment_intent: dict, values: dict, from_statuses: tuple, label: str,
    ) -> bool:
        """
        Move a lead forward from one of from_statuses. A lead already past
        them is left alone, so late or repeated deliveries never regress it.
        """
        lead_id = _metadata_value(payment_intent.get("metadata"), LEAD_ID_METADATA_KEYS)
        if not lead_id:
            logger.info("%s without leadId metadata; skipping lead update", label)
            return False
        try:
            lead_uuid = uuid.UUID(lead_id)
        except (ValueError, AttributeError):
            logger.warning("%s with invalid leadId %r; skipping", label, lead_id)
            return False

        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    update(Lead)
                    .where(Lead.id == lead_uuid, Lead.status.in_(from_statuses))
                    .values(**values)
                )
                await db.commit()
        except Exception as e:
            logger.error(
                "%s: lead update failed: %s", label, normalize_error(e)["message"],
                extra={"lead_id": lead_id, "error_code": normalize_error(e)["code"]},
            )
            return False

        if not result.rowcount:
            logger.info("%s for unknown or already advanced lead; no-op", label, extra={"lead_id": lead_id})
            return False
        logger.info("%s recorded", label, extra={"lead_id": lead_id})
        return True

    async def mark_lead_paid(self, payment_intent: dict) -> bool:
        return await self._update_lead(
            payment_intent,
            {
                "status": "paid",
                "payment_reference": payment_intent.get("id"),
                "amount_paid": minor_to_major(payment_intent.get("amount")),
                "paid_at": datetime.now(timezone.utc),
            },
            ("lead", "payment_failed"),
            "Payment succeeded",
        )

    async def mark_lead_payment_failed(self, payment_intent: dict) -> bool:
        return await self._update_lead(
            payment_intent,
            {
                "status": "payment_failed",
                "payment_reference": payment_intent.get("id"),
            },
            ("lead",),
            "Payment failed",
        )

    # ------------------------------------------------------------------
    # Checkout sessions / invoices -> clients
    # ------------------------------------------------------------------

    async def _tier_name(self, line_items: Optional[list], session_id: Optional[str] = None) -> str:
        try:
            if not line_items and session_id:
                line_items = await self.gateway.list_line_items(session_id)
            return await self.gateway.resolve_tier_name(line_items or [])
        except Exception as e:
            logger.warning("Tier resolution failed, using Unknown: %s", str(e))
            return "Unknown"

    async def build_checkout_client(self, session: dict) -> dict:
        details = session.get("customer_details") or {}
        embedded = (session.get("line_items") or {}).get("data")
        return {
            "session_reference": session.get("id"),
            "user_id": _metadata_value(session.get("metadata"), USER_ID_METADATA_KEYS)
            or session.get("client_reference_id"),
            "email": normalize_email(details.get("email") or session.get("customer_email")) or None,
            "name": details.get("name"),
            "phone": details.get("phone"),
            "location": flatten_address(details.get("address")),
            "tier_name": await self._tier_name(embedded, session.get("id")),
            "amount_total": int(session.get("amount_total") or 0),
            "currency": (session.get("currency") or "usd").lower(),
            "status": "completed",
            "raw_payload": session,
        }

    async def build_invoice_client(self, invoice: dict) -> dict:
        subscription_details = (
            invoice.get("subscription_details")
            or ((invoice.get("parent") or {}).get("subscription_details"))
            or {}
        )
        lines = (invoice.get("lines") or {}).get("data") or []
        return {
            "session_reference": invoice.get("id"),
            "user_id": _metadata_value(subscription_details.get("metadata"), USER_ID_METADATA_KEYS)
            or _metadata_value(invoice.get("metadata"), USER_ID_METADATA_KEYS),
            "email": normalize_email(invoice.get("customer_email")) or None,
            "name": invoice.get("customer_name"),
            "phone": invoice.get("customer_phone"),
            "location": flatten_address(invoice.get("customer_address")),
            "tier_name": await self._tier_name(lines),
            "amount_total": int(invoice.get("amount_paid") or 0),
            "currency": (invoice.get("currency") or "usd").lower(),
            "status": "completed",
            "raw_payload": invoice,
        }

    async def insert_client(self, record: dict) -> str:
        """Returns INSERTED, DUPLICATE, or FAILED. Never raises."""
        reference = record.get("session_reference")
        if not reference:
            logger.warning("Client record without session reference; skipping insert")
            return SKIPPED

        try:
            async with self.session_factory() as db:
                try:
                    db.add(Client(**record))
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise
        except Exception as e:
            if is_unique_violation(e):
                logger.info(
                    "Client already recorded (redelivery); treating as success",
                    extra={"session_reference": reference},
                )
                return DUPLICATE
            normalized = normalize_error(e)
            logger.error(
                "Client insert failed: %s", normalized["message"],
                extra={"session_reference": reference, "error_code": normalized["code"]},
            )
            return FAILED

        logger.info("Client recorded", extra={"session_reference": reference})
        return INSERTED

    async def convert_lead(self, email: Optional[str]) -> bool:
        """Best-effort: mark the lead with this email converted. Never raises."""
        email = normalize_email(email)
        if not email:
            return False
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    update(Lead)
                    .where(Lead.email == email, Lead.status != "converted")
                    .values(status="converted", converted_at=datetime.now(timezone.utc))
                )
                await db.commit()
        except Exception as e:
            logger.warning("Lead conversion update failed: %s", normalize_error(e)["message"])
            return False
        return bool(result.rowcount)

    async def latest_completed_client(
        self,
        session_reference: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[Client]:
        """Newest completed client row by session reference, else by email."""
        stmt = select(Client).where(Client.status == "completed")
        if session_reference:
            stmt = stmt.where(Client.session_reference == session_reference)
        elif email:
            stmt = stmt.where(Client.email == normalize_email(email))
        else:
            return None
        stmt = stmt.order_by(Client.created_at.desc()).limit(1)
        async with self.session_factory() as db:
            return (await db.execute(stmt)).scalar_one_or_none()

    async def record_purchase(self, record: dict, is_subscription: bool) -> dict:
        """
        Insert the client row, convert the matching lead, and describe the
        payment for notifications.

        Returns {"status": ..., "payment": {...}}.
        """
        status = await self.insert_client(record)
        if status == INSERTED and record.get("email"):
            await self.convert_lead(record["email"])

        payment = {
            "name": record.get("name"),
            "email": record.get("email"),
            "amount": minor_to_major(record.get("amount_total")),
            "currency": record.get("currency"),
            "tier_name": record.get("tier_name"),
            "payment_date": _payment_date(),
            "is_subscription": is_subscription,
        }
        return {"status": status, "payment": payment}
