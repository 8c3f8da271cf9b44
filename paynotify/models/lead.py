"""
Lead model - every membership interest captured from the join form.
Lifecycle: lead -> paid | payment_failed -> converted. Rows are never hard-deleted.
Email is the idempotency key: captures upsert on it.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Float, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from paynotify.database import Base


class Lead(Base):
    __tablename__ = "leads"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    # Contact info
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    location: Mapped[Optional[str]] = mapped_column(String(255))

    status: Mapped[str] = mapped_column(String(30), default="lead", nullable=False)

    # Payment tracking (payment intent id)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(255))
    amount_paid: Mapped[Optional[float]] = mapped_column(Float)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    converted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_leads_status", "status"),
        Index("ix_leads_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        masked = self.email[:3] + "***" if self.email else "unknown"
        return f"<Lead {masked} status={self.status}>"
