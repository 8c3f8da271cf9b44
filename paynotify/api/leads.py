"""
Lead capture and payment verification endpoints (public, called by the site).

- POST /api/v1/leads            - upsert a lead by email, notify admin + lead
- GET  /api/v1/payments/verify  - newest completed purchase for a session or email
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import ValidationError

from paynotify.schemas.leads import (
    LeadCaptureRequest,
    LeadCaptureResponse,
    PaymentVerificationResponse,
    VerifiedPayment,
)
from paynotify.services.container import Services, get_services
from paynotify.services.notification_templates import build_lead_jobs
from paynotify.utils.email_validation import is_valid_email_format, normalize_email
from paynotify.utils.errors import normalize_error

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["leads"])


@router.post("/leads", response_model=LeadCaptureResponse)
async def capture_lead(request: Request, services: Services = Depends(get_services)):
    try:
        body = await request.json()
        payload = LeadCaptureRequest.model_validate(body)
    except (ValueError, ValidationError):
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    name = (payload.name or "").strip()
    email = normalize_email(payload.email)
    if not name or not email:
        raise HTTPException(status_code=400, detail="Name and email are required")
    if not is_valid_email_format(email):
        raise HTTPException(status_code=400, detail="Invalid email address")

    try:
        lead = await services.reconciler.upsert_lead(
            name, email, phone=payload.phone, location=payload.location,
        )
    except Exception as e:
        normalized = normalize_error(e)
        logger.error(
            "Failed to save lead: %s", normalized["message"],
            extra={"error_code": normalized["code"]},
        )
        raise HTTPException(status_code=500, detail="Failed to save lead information")

    jobs = build_lead_jobs(lead, services.settings.admin_email, services.settings.from_name)
    services.queue.enqueue(jobs)

    return {"success": True, "lead_id": lead["id"]}


@router.get("/payments/verify", response_model=PaymentVerificationResponse)
async def verify_payment(
    session_id: str = Query(None),
    email: str = Query(None),
    services: Services = Depends(get_services),
):
    if not session_id and not email:
        raise HTTPException(status_code=400, detail="Missing session_id or email parameter")

    try:
        client = await services.reconciler.latest_completed_client(
            session_reference=session_id, email=email,
        )
    except Exception as e:
        logger.error("Error verifying payment: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to verify payment")

    if client is None:
        return {"verified": False, "message": "No completed payment found"}

    return {
        "verified": True,
        "payment": VerifiedPayment(
            id=str(client.id),
            email=client.email,
            name=client.name,
            tier_name=client.tier_name,
            amount_total=client.amount_total,
            currency=client.currency,
            created_at=client.created_at.isoformat() if client.created_at else None,
        ),
    }
