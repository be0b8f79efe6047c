"""Subscription checkout and billing-portal session creation.

Nothing here changes a provider's tier. Tier changes are applied only when
Stripe reports them through the webhook.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

from sqlalchemy.ext.asyncio import AsyncSession

from nexaconnect_billing.billing.customers import CustomerBinder, get_billing
from nexaconnect_billing.billing.models import ProviderModel
from nexaconnect_billing.billing.processor import PaymentProcessor
from nexaconnect_billing.billing.tiers import resolve_price_id
from nexaconnect_billing.common.config import BillingSettings
from nexaconnect_billing.common.database import DatabaseManager
from nexaconnect_billing.common.exceptions import (
    NoCustomerError,
    ProviderAccessError,
    ProviderNotFoundError,
    UnknownPriceError,
)
from nexaconnect_billing.common.security import UserContext

logger = logging.getLogger(__name__)


def append_query(url: str, **params: str) -> str:
    """Append query markers to a return URL."""
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


async def load_owned_provider(
    session: AsyncSession, provider_id: str, user: UserContext
) -> ProviderModel:
    """Load a provider and check the user may manage it."""
    provider = await session.get(ProviderModel, provider_id)
    if provider is None:
        raise ProviderNotFoundError()
    if provider.user_id is None or provider.user_id != user.id:
        raise ProviderAccessError()
    return provider


class BillingService:
    """Creates Stripe-hosted checkout and portal sessions for providers."""

    def __init__(
        self,
        settings: BillingSettings,
        db: DatabaseManager,
        processor: PaymentProcessor,
        customer_binder: CustomerBinder,
    ):
        self.settings = settings
        self._db = db
        self._processor = processor
        self._binder = customer_binder

    async def create_checkout(
        self,
        user: UserContext,
        provider_id: str,
        plan_name: str,
        return_url: str,
        price_id: Optional[str] = None,
        billing_cycle: Optional[str] = None,
    ) -> str:
        """Start a subscription checkout and return its redirect URL."""
        async with self._db.get_session() as session:
            await load_owned_provider(session, provider_id, user)

        if not price_id:
            price_id = resolve_price_id(plan_name, billing_cycle, self.settings.price_map)
            if not price_id:
                raise UnknownPriceError(
                    f"No Stripe price configured for plan '{plan_name}' ({billing_cycle or 'monthly'})"
                )

        customer_id = await self._binder.bind_customer(provider_id, user)
        metadata = {"providerId": provider_id, "planName": plan_name}
        session = await self._processor.create_subscription_checkout(
            customer_id=customer_id,
            price_id=price_id,
            success_url=append_query(return_url, checkout="success", plan=plan_name),
            cancel_url=append_query(return_url, checkout="cancelled"),
            metadata=metadata,
        )
        logger.info(
            "Checkout session %s created for provider %s (%s)",
            session.id, provider_id, plan_name,
            extra={"provider_id": provider_id},
        )
        return session.url

    async def create_portal(self, user: UserContext, provider_id: str, return_url: str) -> str:
        """Start a billing-portal session for an existing Stripe customer."""
        async with self._db.get_session() as session:
            await load_owned_provider(session, provider_id, user)
            billing = await get_billing(session, provider_id)

        if billing is None or not billing.stripe_customer_id:
            raise NoCustomerError()

        portal = await self._processor.create_portal_session(
            customer_id=billing.stripe_customer_id,
            return_url=return_url,
        )
        return portal.url

    async def billing_status(self, user: UserContext, provider_id: str) -> dict:
        """Current tier and billing linkage for a provider."""
        async with self._db.get_session() as session:
            provider = await load_owned_provider(session, provider_id, user)
            billing = await get_billing(session, provider_id)
        return {
            "provider_id": provider.id,
            "tier": provider.tier,
            "verified": provider.verified,
            "has_customer": bool(billing and billing.stripe_customer_id),
            "has_subscription": bool(billing and billing.stripe_subscription_id),
        }
