"""SQLAlchemy model for sales leads."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from nexaconnect_billing.common.models import Base, TimestampMixin, generate_uuid

LEAD_NEW = "new"
LEAD_PENDING = "pending"
LEAD_UNLOCKED = "unlocked"


class LeadModel(Base, TimestampMixin):
    __tablename__ = "leads"
    __table_args__ = (
        Index("ix_leads_provider_status", "provider_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    provider_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("providers.id"), nullable=False, index=True
    )
    category: Mapped[str | None] = mapped_column(String(255), nullable=True)
    unlock_price: Mapped[int | None] = mapped_column(Integer, nullable=True)  # cents
    status: Mapped[str] = mapped_column(String(20), default=LEAD_NEW, nullable=False)
    reservation_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    reserved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Open Stripe checkout holding the reservation.
    checkout_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    unlocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
