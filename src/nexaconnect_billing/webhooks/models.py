"""SQLAlchemy model for received Stripe events."""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from nexaconnect_billing.common.models import Base, TimestampMixin


class BillingEventModel(Base, TimestampMixin):
    """One row per Stripe event id; redeliveries bump ``deliveries``."""

    __tablename__ = "billing_events"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    provider_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    deliveries: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
