"""SQLAlchemy models for providers and their billing rows."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from nexaconnect_billing.billing.tiers import Tier
from nexaconnect_billing.common.models import Base, TimestampMixin, generate_uuid


class ProviderModel(Base, TimestampMixin):
    __tablename__ = "providers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tier: Mapped[str] = mapped_column(String(20), default=Tier.STARTER.value, nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def apply_tier(self, tier: Tier) -> None:
        """Set tier and the verification flag that goes with it."""
        self.tier = tier.value
        self.verified = tier is Tier.PREMIUM


class ProviderBillingModel(Base, TimestampMixin):
    __tablename__ = "provider_billing"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    provider_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("providers.id"), unique=True, nullable=False
    )
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Claim held by the request currently creating the Stripe customer.
    customer_claim_token: Mapped[str | None] = mapped_column(String(36), nullable=True)
    customer_claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
