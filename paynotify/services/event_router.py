"""
Stripe event router - dispatches a verified event to its reconciliation and
notification flow.

Stripe delivers at-least-once, so every handler is safe to run twice for the
same event. Notifications are only enqueued when this delivery actually
created the record; redeliveries reconcile to a no-op and stay silent.
Missing correlation data skips that step and never fails the request.
"""
import logging
from typing import Awaitable, Callable

from paynotify.services.notification_templates import build_payment_jobs
from paynotify.services.reconciler import INSERTED

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
CHECKOUT_COMPLETED = "checkout.session.completed"
INVOICE_PAID = "invoice.paid"

# Subscription's first invoice: the checkout flow already notified for it
INITIAL_INVOICE_REASON = "subscription_create"


class EventRouter:
    def __init__(self, reconciler, queue, admin_email: str, brand: str):
        self.reconciler = reconciler
        self.queue = queue
        self.admin_email = admin_email
        self.brand = brand
        self._handlers: dict[str, Callable[[dict], Awaitable[dict]]] = {
            PAYMENT_SUCCEEDED: self._on_payment_succeeded,
            PAYMENT_FAILED: self._on_payment_failed,
            CHECKOUT_COMPLETED: self._on_checkout_completed,
            INVOICE_PAID: self._on_invoice_paid,
        }

    @property
    def handled_types(self) -> tuple:
        return tuple(self._handlers)

    async def route(self, event: dict) -> dict:
        """
        Returns {"event_type", "handled", "notifications"}.
        Unknown event types are acknowledged as no-ops.
        """
        event_type = event.get("type")
        log_extra = {"event_id": event.get("id"), "event_type": event_type}
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled Stripe event type: %s", event_type, extra=log_extra)
            return {"event_type": event_type, "handled": False, "notifications": 0}

        logger.info("Stripe webhook received: %s", event_type, extra=log_extra)
        obj = event["data"]["object"]
        result = await handler(obj)
        return {"event_type": event_type, "handled": True, **result}

    def _notify(self, jobs: list) -> int:
        if not jobs:
            return 0
        return len(jobs) if self.queue.enqueue(jobs) else 0

    async def _on_payment_succeeded(self, payment_intent: dict) -> dict:
        await self.reconciler.mark_lead_paid(payment_intent)
        return {"notifications": 0}

    async def _on_payment_failed(self, payment_intent: dict) -> dict:
        await self.reconciler.mark_lead_payment_failed(payment_intent)
        return {"notifications": 0}

    async def _on_checkout_completed(self, session: dict) -> dict:
        record = await self.reconciler.build_checkout_client(session)
        outcome = await self.reconciler.record_purchase(record, is_subscription=False)
        if outcome["status"] != INSERTED:
            return {"notifications": 0}
        jobs = build_payment_jobs(outcome["payment"], self.admin_email, self.brand)
        return {"notifications": self._notify(jobs)}

    async def _on_invoice_paid(self, invoice: dict) -> dict:
        record = await self.reconciler.build_invoice_client(invoice)
        outcome = await self.reconciler.record_purchase(record, is_subscription=True)
        if outcome["status"] != INSERTED:
            return {"notifications": 0}
        if invoice.get("billing_reason") == INITIAL_INVOICE_REASON:
            logger.info(
                "Initial subscription invoice recorded; checkout flow owns its notifications",
                extra={"session_reference": invoice.get("id")},
            )
            return {"notifications": 0}
        jobs = build_payment_jobs(outcome["payment"], self.admin_email, self.brand)
        return {"notifications": self._notify(jobs)}
