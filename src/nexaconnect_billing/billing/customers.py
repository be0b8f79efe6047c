"""Provider ↔ Stripe customer binding.

The first checkout for a provider creates its Stripe customer. Concurrent
first calls race on that, so the ``provider_billing`` row is claimed with a
compare-and-swap update before the customer is created: the single winner
calls Stripe, everyone else waits for the id to appear.

Each step runs in its own short transaction so the claim is visible to
other requests as soon as it is taken.
"""

import asyncio
import logging
from datetime import timedelta

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nexaconnect_billing.billing.models import ProviderBillingModel, ProviderModel
from nexaconnect_billing.billing.processor import PaymentProcessor
from nexaconnect_billing.common.config import BillingSettings
from nexaconnect_billing.common.database import DatabaseManager, insert_for
from nexaconnect_billing.common.exceptions import (
    CustomerBindingInProgressError,
    ProviderNotFoundError,
)
from nexaconnect_billing.common.models import generate_uuid, utcnow
from nexaconnect_billing.common.security import UserContext

logger = logging.getLogger(__name__)


async def get_billing(session: AsyncSession, provider_id: str) -> ProviderBillingModel | None:
    result = await session.execute(
        select(ProviderBillingModel).where(ProviderBillingModel.provider_id == provider_id)
    )
    return result.scalar_one_or_none()


async def ensure_billing_row(
    session: AsyncSession, provider_id: str, user_id: str | None
) -> None:
    """Insert an empty billing row for the provider unless one exists."""
    now = utcnow()
    stmt = insert_for(session, ProviderBillingModel.__table__, {
        "id": generate_uuid(),
        "provider_id": provider_id,
        "user_id": user_id,
        "created_at": now,
        "updated_at": now,
    }).on_conflict_do_nothing(index_elements=["provider_id"])
    await session.execute(stmt)


class CustomerBinder:
    """Resolves (and lazily creates) the Stripe customer for a provider."""

    def __init__(
        self,
        settings: BillingSettings,
        db: DatabaseManager,
        processor: PaymentProcessor,
    ):
        self.settings = settings
        self._db = db
        self._processor = processor

    async def bind_customer(self, provider_id: str, user: UserContext) -> str:
        """Return the provider's Stripe customer id, creating it on first use."""
        async with self._db.get_session() as session:
            billing = await get_billing(session, provider_id)
            if billing is not None and billing.stripe_customer_id:
                return billing.stripe_customer_id

            provider = await session.get(ProviderModel, provider_id)
            if provider is None:
                raise ProviderNotFoundError()
            email = provider.email or user.email
            name = provider.name
            if billing is None:
                await ensure_billing_row(session, provider_id, user.id)

        token = generate_uuid()
        if await self._claim(provider_id, token):
            return await self._create_customer(provider_id, token, user, email, name)
        return await self._wait_for_customer(provider_id)

    async def _claim(self, provider_id: str, token: str) -> bool:
        now = utcnow()
        stale_before = now - timedelta(seconds=self.settings.customer_claim_ttl)
        async with self._db.get_session() as session:
            result = await session.execute(
                update(ProviderBillingModel)
                .where(
                    ProviderBillingModel.provider_id == provider_id,
                    ProviderBillingModel.stripe_customer_id.is_(None),
                    or_(
                        ProviderBillingModel.customer_claim_token.is_(None),
                        ProviderBillingModel.customer_claimed_at < stale_before,
                    ),
                )
                .values(customer_claim_token=token, customer_claimed_at=now)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def _release(self, provider_id: str, token: str) -> None:
        async with self._db.get_session() as session:
            await session.execute(
                update(ProviderBillingModel)
                .where(
                    ProviderBillingModel.provider_id == provider_id,
                    ProviderBillingModel.customer_claim_token == token,
                )
                .values(customer_claim_token=None, customer_claimed_at=None)
                .execution_options(synchronize_session=False)
            )

    async def _create_customer(
        self,
        provider_id: str,
        token: str,
        user: UserContext,
        email: str | None,
        name: str | None,
    ) -> str:
        try:
            customer_id = await self._processor.create_customer(
                email=email,
                name=name,
                metadata={"providerId": provider_id, "userId": user.id},
            )
        except Exception:
            await self._release(provider_id, token)
            raise

        async with self._db.get_session() as session:
            result = await session.execute(
                update(ProviderBillingModel)
                .where(
                    ProviderBillingModel.provider_id == provider_id,
                    ProviderBillingModel.stripe_customer_id.is_(None),
                )
                .values(
                    stripe_customer_id=customer_id,
                    user_id=user.id,
                    customer_claim_token=None,
                    customer_claimed_at=None,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                logger.info(
                    "Created Stripe customer %s for provider %s",
                    customer_id, provider_id,
                    extra={"provider_id": provider_id},
                )
                return customer_id

            billing = await get_billing(session, provider_id)

        # Our claim went stale and another request stored its customer first.
        logger.warning(
            "Stripe customer %s for provider %s is orphaned; kept %s",
            customer_id, provider_id, billing.stripe_customer_id,
            extra={"provider_id": provider_id},
        )
        return billing.stripe_customer_id

    async def _wait_for_customer(self, provider_id: str) -> str:
        for _ in range(self.settings.customer_bind_attempts):
            async with self._db.get_session() as session:
                billing = await get_billing(session, provider_id)
            if billing is not None and billing.stripe_customer_id:
                return billing.stripe_customer_id
            await asyncio.sleep(self.settings.customer_bind_poll_interval)
        raise CustomerBindingInProgressError()
