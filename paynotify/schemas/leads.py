"""
Lead capture and payment verification schemas.
"""
from typing import Optional
from pydantic import BaseModel


class LeadCaptureRequest(BaseModel):
    """Join form submission. Required fields are checked by the endpoint so a
    missing name or email is a 400, not a 422."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None


class LeadCaptureResponse(BaseModel):
    success: bool
    lead_id: str


class VerifiedPayment(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    tier_name: str
    amount_total: int
    currency: str
    created_at: Optional[str] = None


class PaymentVerificationResponse(BaseModel):
    verified: bool
    payment: Optional[VerifiedPayment] = None
    message: Optional[str] = None
