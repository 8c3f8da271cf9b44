"""
Stripe gateway - webhook verification and the lookups reconciliation needs.

Verification runs on the exact raw request bytes before anything parses
them; re-serializing a body changes its bytes and breaks the signature.
All Stripe SDK network calls are synchronous and run via run_in_executor to
avoid blocking the asyncio event loop.
"""
import asyncio
import json
import logging
from typing import Any, Optional

from paynotify.utils.errors import MalformedWebhookError, WebhookVerificationError

logger = logging.getLogger(__name__)

UNKNOWN_TIER = "Unknown"


async def _run_sync(func, *args, **kwargs):
    """Run a synchronous Stripe SDK call in the default thread pool executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: func(*args, **kwargs))


def as_dict(obj: Any) -> Any:
    """Convert Stripe objects (and anything nested) to plain dicts/lists."""
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, dict):
        return {k: as_dict(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [as_dict(v) for v in obj]
    to_dict = getattr(obj, "to_dict", None) or getattr(obj, "to_dict_recursive", None)
    if callable(to_dict):
        return as_dict(to_dict())
    return obj


class StripeGateway:
    def __init__(self, secret_key: str, webhook_secret: str):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    def _stripe(self):
        import stripe
        if not self.secret_key:
            raise ValueError("Stripe secret key not configured")
        stripe.api_key = self.secret_key
        stripe.max_network_retries = 1
        return stripe

    def verify_event(self, payload: bytes, sig_header: str) -> dict:
        """
        Authenticate a raw webhook body and only then decode it.

        Raises WebhookVerificationError on a missing secret, missing header
        or signature mismatch; MalformedWebhookError when the verified body is
        not a JSON event object.
        """
        import stripe

        if not self.webhook_secret:
            raise WebhookVerificationError("Webhook secret not configured")
        if not sig_header:
            raise WebhookVerificationError("Missing stripe-signature header")

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"), sig_header, self.webhook_secret,
                stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError(str(e)) from e
        except UnicodeDecodeError as e:
            raise WebhookVerificationError("Payload is not valid UTF-8") from e

        try:
            event = json.loads(payload)
        except json.JSONDecodeError as e:
            raise MalformedWebhookError(f"Invalid JSON payload: {e}") from e

        if not isinstance(event, dict) or not event.get("type"):
            raise MalformedWebhookError("Event type missing")
        if not isinstance((event.get("data") or {}).get("object"), dict):
            raise MalformedWebhookError("Event data.object missing")
        return event

    async def list_line_items(self, session_id: str) -> list[dict]:
        stripe = self._stripe()
        result = await _run_sync(
            stripe.checkout.Session.list_line_items,
            session_id, limit=1, expand=["data.price.product"],
        )
        return as_dict(result).get("data") or []

    async def retrieve_product(self, product_id: str) -> dict:
        stripe = self._stripe()
        return as_dict(await _run_sync(stripe.Product.retrieve, product_id))

    async def resolve_tier_name(self, line_items: list[dict]) -> str:
        """
        Human-readable tier from the first line item's product.
        Deleted or unresolvable products give "Unknown".
        """
        if not line_items:
            return UNKNOWN_TIER
        product = line_item_product(line_items[0] or {})

        if isinstance(product, str):
            try:
                product = await self.retrieve_product(product)
            except Exception as e:
                logger.warning("Failed to retrieve Stripe product %s: %s", product, str(e))
                return UNKNOWN_TIER

        return product_tier_name(product)


def line_item_product(item: dict) -> Any:
    """Product id or expanded product of a checkout or invoice line item."""
    price = item.get("price")
    if isinstance(price, dict) and price.get("product"):
        return price["product"]
    # Invoice lines on newer API versions nest the product under pricing
    details = (item.get("pricing") or {}).get("price_details") or {}
    return details.get("product")


def product_tier_name(product: Optional[dict]) -> str:
    if not isinstance(product, dict) or product.get("deleted"):
        return UNKNOWN_TIER
    return product.get("name") or UNKNOWN_TIER
