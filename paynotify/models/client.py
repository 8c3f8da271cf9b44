"""
Client model - one row per completed purchase (checkout session or paid invoice).
session_reference is the idempotency key: provider redeliveries hit the unique
constraint and are treated as already processed.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Integer, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from paynotify.database import Base


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    session_reference: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True
    )  # cs_... or in_...
    user_id: Mapped[Optional[str]] = mapped_column(String(255))

    email: Mapped[Optional[str]] = mapped_column(String(255))
    name: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    location: Mapped[Optional[str]] = mapped_column(String(500))

    tier_name: Mapped[str] = mapped_column(String(255), default="Unknown", nullable=False)
    amount_total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # minor units
    currency: Mapped[str] = mapped_column(String(3), default="usd", nullable=False)
    status: Mapped[str] = mapped_column(String(30), default="completed", nullable=False)

    # Audit copy of the Stripe object the row was built from
    raw_payload: Mapped[Optional[dict]] = mapped_column(JSONB)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_clients_email", "email"),
        Index("ix_clients_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Client {self.session_reference} tier={self.tier_name}>"
