"""Applies verified Stripe events to providers, billing rows and leads.

Every write is an absolute assignment derived from the event itself, so a
redelivered or reordered event converges to the same state. Provider and
lead ids from metadata are untrusted and are looked up before any write.
"""

import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from nexaconnect_billing.billing.customers import ensure_billing_row
from nexaconnect_billing.billing.models import ProviderBillingModel, ProviderModel
from nexaconnect_billing.billing.tiers import Tier, tier_from_plan_label
from nexaconnect_billing.common.config import BillingSettings
from nexaconnect_billing.common.database import insert_for
from nexaconnect_billing.common.models import utcnow
from nexaconnect_billing.leads.models import LEAD_NEW, LEAD_PENDING, LEAD_UNLOCKED, LeadModel
from nexaconnect_billing.leads.service import LEAD_UNLOCK_TYPE, get_lead, release_reservation
from nexaconnect_billing.webhooks.events import (
    CheckoutSessionCompleted,
    CheckoutSessionExpired,
    InvoicePaymentFailed,
    StripeEvent,
    SubscriptionDeleted,
    SubscriptionUpdated,
)
from nexaconnect_billing.webhooks.models import BillingEventModel

logger = logging.getLogger(__name__)

APPLIED = "applied"
SKIPPED = "skipped"
IGNORED = "ignored"
# Acknowledged and logged without changing any state.
RECORDED = "recorded"


class WebhookEventProcessor:
    """Dispatches typed events to state transitions."""

    def __init__(self, settings: BillingSettings):
        self.settings = settings
        self._handlers = {
            CheckoutSessionCompleted: self._checkout_completed,
            CheckoutSessionExpired: self._checkout_expired,
            SubscriptionUpdated: self._subscription_updated,
            SubscriptionDeleted: self._subscription_deleted,
            InvoicePaymentFailed: self._payment_failed,
        }

    async def process(self, session: AsyncSession, event: StripeEvent) -> str:
        """Apply one event and return its outcome (applied/recorded/skipped/ignored)."""
        log_extra = {"event_id": event.id, "event_type": event.type}
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.debug("Ignoring Stripe event type: %s", event.type, extra=log_extra)
            outcome = IGNORED
        else:
            outcome = await handler(session, event)
            logger.info("Stripe event %s %s", event.type, outcome, extra={
                **log_extra, "provider_id": event.provider_id,
            })

        if event.id:
            await self._record(session, event, outcome)
        return outcome

    # ── Subscriptions ──

    async def _checkout_completed(self, session: AsyncSession, event: CheckoutSessionCompleted) -> str:
        obj = event.object
        if obj.meta("type") == LEAD_UNLOCK_TYPE:
            return await self._lead_payment_completed(session, event)

        provider_id = obj.meta("providerId")
        subscription_id = obj.subscription_id
        if not provider_id or not subscription_id:
            return SKIPPED

        provider = await self._get_provider(session, provider_id)
        if provider is None:
            return SKIPPED

        tier = tier_from_plan_label(obj.meta("planName"))
        provider.apply_tier(tier)
        await self._upsert_subscription(session, provider, subscription_id)
        await session.flush()
        logger.info(
            "Provider %s upgraded to %s", provider_id, tier.value,
            extra={"provider_id": provider_id},
        )
        return APPLIED

    async def _subscription_updated(self, session: AsyncSession, event: SubscriptionUpdated) -> str:
        obj = event.object
        provider_id = obj.meta("providerId")
        if not provider_id or obj.status != "active":
            return SKIPPED

        provider = await self._get_provider(session, provider_id)
        if provider is None:
            return SKIPPED

        provider.apply_tier(tier_from_plan_label(obj.meta("planName")))
        await session.flush()
        return APPLIED

    async def _subscription_deleted(self, session: AsyncSession, event: SubscriptionDeleted) -> str:
        provider_id = event.object.meta("providerId")
        if not provider_id:
            return SKIPPED

        provider = await self._get_provider(session, provider_id)
        if provider is None:
            return SKIPPED

        provider.apply_tier(Tier.STARTER)
        await session.execute(
            update(ProviderBillingModel)
            .where(ProviderBillingModel.provider_id == provider_id)
            .values(stripe_subscription_id=None)
            .execution_options(synchronize_session="fetch")
        )
        await session.flush()
        logger.info(
            "Provider %s downgraded to starter (subscription cancelled)", provider_id,
            extra={"provider_id": provider_id},
        )
        return APPLIED

    async def _payment_failed(self, session: AsyncSession, event: InvoicePaymentFailed) -> str:
        """Log the failed payment. Stripe keeps the subscription active while it
        retries, so the tier is left alone; provider notification would hook in here.
        """
        obj = event.object
        logger.warning(
            "Payment failed for invoice %s (subscription %s, attempt %s)",
            obj.id, obj.subscription_id, obj.attempt_count,
            extra={"provider_id": event.provider_id},
        )
        return RECORDED

    # ── Lead unlocks ──

    async def _lead_payment_completed(self, session: AsyncSession, event: CheckoutSessionCompleted) -> str:
        obj = event.object
        lead_id = obj.meta("leadId")
        provider_id = obj.meta("providerId")
        if not lead_id or not provider_id or obj.payment_status != "paid":
            return SKIPPED

        result = await session.execute(
            update(LeadModel)
            .where(
                LeadModel.id == lead_id,
                LeadModel.provider_id == provider_id,
                LeadModel.status.in_((LEAD_NEW, LEAD_PENDING)),
            )
            .values(
                status=LEAD_UNLOCKED,
                unlocked_at=utcnow(),
                payment_reference=obj.id,
                reservation_id=None,
                reserved_at=None,
                checkout_session_id=None,
            )
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 1:
            logger.info("Lead %s unlocked", lead_id, extra={
                "provider_id": provider_id, "lead_id": lead_id,
            })
            return APPLIED

        lead = await get_lead(session, lead_id, provider_id)
        if lead is None:
            logger.warning("Paid unlock for unknown lead %s", lead_id, extra={
                "provider_id": provider_id, "lead_id": lead_id,
            })
        elif lead.payment_reference != obj.id:
            logger.warning(
                "Lead %s paid again by session %s while %s; needs refund review",
                lead_id, obj.id, lead.status,
                extra={"provider_id": provider_id, "lead_id": lead_id},
            )
        return SKIPPED

    async def _checkout_expired(self, session: AsyncSession, event: CheckoutSessionExpired) -> str:
        obj = event.object
        if obj.meta("type") != LEAD_UNLOCK_TYPE:
            return SKIPPED
        lead_id = obj.meta("leadId")
        provider_id = obj.meta("providerId")
        reservation_id = obj.meta("reservationId")
        if not lead_id or not provider_id or not reservation_id:
            return SKIPPED

        released = await release_reservation(session, lead_id, provider_id, reservation_id)
        return APPLIED if released else SKIPPED

    # ── Helpers ──

    async def _get_provider(self, session: AsyncSession, provider_id: str) -> ProviderModel | None:
        provider = await session.get(ProviderModel, provider_id)
        if provider is None:
            logger.warning(
                "Stripe event references unknown provider %s", provider_id,
                extra={"provider_id": provider_id},
            )
        return provider

    async def _upsert_subscription(
        self, session: AsyncSession, provider: ProviderModel, subscription_id: str
    ) -> None:
        await ensure_billing_row(session, provider.id, provider.user_id)
        await session.execute(
            update(ProviderBillingModel)
            .where(ProviderBillingModel.provider_id == provider.id)
            .values(stripe_subscription_id=subscription_id)
            .execution_options(synchronize_session="fetch")
        )

    async def _record(self, session: AsyncSession, event: StripeEvent, outcome: str) -> None:
        now = utcnow()
        stmt = insert_for(session, BillingEventModel.__table__, {
            "id": event.id,
            "type": event.type,
            "provider_id": event.provider_id,
            "outcome": outcome,
            "deliveries": 1,
            "created_at": now,
            "updated_at": now,
        })
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "outcome": outcome,
                "deliveries": BillingEventModel.__table__.c.deliveries + 1,
                "updated_at": now,
            },
        )
        await session.execute(stmt)
