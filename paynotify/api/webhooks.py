"""
Stripe webhook endpoint.

No auth beyond the Stripe signature. The raw body is verified before it is
parsed; any failure there is a 400 and nothing downstream runs. Once
verified, the event is acknowledged with 200 even when a downstream step
failed: reconciliation and notification errors are logged and absorbed, and
notifications go out after the response through the dispatch queue.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from paynotify.services.container import Services, get_services
from paynotify.utils.errors import MalformedWebhookError, WebhookVerificationError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(request: Request, services: Services = Depends(get_services)):
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    try:
        event = services.gateway.verify_event(payload, sig_header)
    except WebhookVerificationError as e:
        logger.warning("Stripe webhook signature verification failed: %s", str(e))
        raise HTTPException(status_code=400, detail="Invalid webhook signature")
    except MalformedWebhookError as e:
        logger.warning("Stripe webhook body rejected: %s", str(e))
        raise HTTPException(status_code=400, detail="Malformed webhook payload")

    try:
        result = await services.router.route(event)
    except Exception as e:
        logger.error(
            "Stripe webhook processing failed: %s", str(e),
            exc_info=True,
            extra={"event_id": event.get("id"), "event_type": event.get("type")},
        )
        raise HTTPException(status_code=500, detail="Webhook handler failed")

    return {"received": True, "event_type": result["event_type"], "handled": result["handled"]}
