"""One-time lead unlock checkout.

Before a checkout is created the lead is reserved with a compare-and-swap
``new -> pending`` update, so two concurrent requests cannot both start a
paid flow for it. The reservation expires with the Stripe session
(``lead_reservation_ttl``) and is released straight away when session
creation fails. When the same provider asks again while its earlier
checkout is still open (typically after cancelling on the Stripe page), that
session is expired and the reservation handed to the new request. Only the
webhook flips a lead to ``unlocked``.
"""

import logging
import time
from datetime import timedelta

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nexaconnect_billing.billing.customers import CustomerBinder
from nexaconnect_billing.billing.processor import PaymentProcessor
from nexaconnect_billing.billing.service import append_query, load_owned_provider
from nexaconnect_billing.common.config import BillingSettings
from nexaconnect_billing.common.database import DatabaseManager
from nexaconnect_billing.common.exceptions import (
    CheckoutInProgressError,
    LeadAlreadyProcessedError,
    LeadNotFoundError,
    PaymentProcessorError,
)
from nexaconnect_billing.common.models import generate_uuid, utcnow
from nexaconnect_billing.common.security import UserContext
from nexaconnect_billing.leads.models import LEAD_NEW, LEAD_PENDING, LEAD_UNLOCKED, LeadModel

logger = logging.getLogger(__name__)

LEAD_UNLOCK_TYPE = "lead_unlock"
PRODUCT_NAME = "Lead Connection Fee"


async def get_lead(session: AsyncSession, lead_id: str, provider_id: str) -> LeadModel | None:
    result = await session.execute(
        select(LeadModel).where(
            LeadModel.id == lead_id,
            LeadModel.provider_id == provider_id,
        )
    )
    return result.scalar_one_or_none()


async def release_reservation(
    session: AsyncSession, lead_id: str, provider_id: str, reservation_id: str
) -> bool:
    """Return a reserved lead to ``new`` if the reservation is still ours."""
    result = await session.execute(
        update(LeadModel)
        .where(
            LeadModel.id == lead_id,
            LeadModel.provider_id == provider_id,
            LeadModel.status == LEAD_PENDING,
            LeadModel.reservation_id == reservation_id,
        )
        .values(status=LEAD_NEW, reservation_id=None, reserved_at=None, checkout_session_id=None)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


class LeadUnlockService:
    """Creates one-time payment checkouts that unlock a single lead."""

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

    async def create_unlock_session(
        self,
        user: UserContext,
        provider_id: str,
        lead_id: str,
        return_url: str,
    ) -> str:
        """Reserve the lead and return a checkout URL for its unlock fee."""
        reservation_id = generate_uuid()
        async with self._db.get_session() as session:
            await load_owned_provider(session, provider_id, user)
            lead = await get_lead(session, lead_id, provider_id)
            if lead is None:
                raise LeadNotFoundError()
            reserved = await self._reserve(session, lead_id, provider_id, reservation_id)
            if not reserved:
                if lead.status == LEAD_UNLOCKED:
                    raise LeadAlreadyProcessedError()
                if lead.status != LEAD_PENDING or not lead.checkout_session_id:
                    raise CheckoutInProgressError()
                previous_reservation = lead.reservation_id
                previous_session = lead.checkout_session_id
            amount = lead.unlock_price or self.settings.lead_unlock_default_price
            category = lead.category or "General"

        if not reserved:
            await self._take_over(
                lead_id, provider_id, reservation_id, previous_reservation, previous_session,
            )

        try:
            customer_id = await self._binder.bind_customer(provider_id, user)
            checkout = await self._processor.create_payment_checkout(
                customer_id=customer_id,
                amount=amount,
                currency=self.settings.lead_unlock_currency,
                product_name=PRODUCT_NAME,
                description=f"Unlock contact details for support request in {category}",
                success_url=append_query(return_url, lead_checkout="success", lead_id=lead_id),
                cancel_url=append_query(return_url, lead_checkout="cancelled"),
                metadata={
                    "leadId": lead_id,
                    "providerId": provider_id,
                    "type": LEAD_UNLOCK_TYPE,
                    "reservationId": reservation_id,
                },
                expires_at=int(time.time()) + self.settings.lead_reservation_ttl,
            )
        except Exception:
            async with self._db.get_session() as session:
                await release_reservation(session, lead_id, provider_id, reservation_id)
            raise

        async with self._db.get_session() as session:
            await session.execute(
                update(LeadModel)
                .where(
                    LeadModel.id == lead_id,
                    LeadModel.status == LEAD_PENDING,
                    LeadModel.reservation_id == reservation_id,
                )
                .values(checkout_session_id=checkout.id)
                .execution_options(synchronize_session=False)
            )

        logger.info(
            "Lead unlock checkout %s created for lead %s",
            checkout.id, lead_id,
            extra={"provider_id": provider_id, "lead_id": lead_id},
        )
        return checkout.url

    async def _reserve(
        self, session: AsyncSession, lead_id: str, provider_id: str, reservation_id: str
    ) -> bool:
        now = utcnow()
        expired_before = now - timedelta(seconds=self.settings.lead_reservation_ttl)
        result = await session.execute(
            update(LeadModel)
            .where(
                LeadModel.id == lead_id,
                LeadModel.provider_id == provider_id,
                or_(
                    LeadModel.status == LEAD_NEW,
                    and_(
                        LeadModel.status == LEAD_PENDING,
                        LeadModel.reserved_at < expired_before,
                    ),
                ),
            )
            .values(
                status=LEAD_PENDING,
                reservation_id=reservation_id,
                reserved_at=now,
                checkout_session_id=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _take_over(
        self,
        lead_id: str,
        provider_id: str,
        reservation_id: str,
        previous_reservation: str,
        previous_session: str,
    ) -> None:
        """Expire the provider's earlier open checkout and move the reservation to us.

        Stripe refuses to expire a session that is already complete or
        expired; the lead then stays with that session and the caller gets a
        409 until its webhook lands.
        """
        try:
            await self._processor.expire_session(previous_session)
        except PaymentProcessorError as e:
            logger.warning(
                "Could not expire checkout %s for lead %s: %s",
                previous_session, lead_id, e.message,
                extra={"provider_id": provider_id, "lead_id": lead_id},
            )
            raise CheckoutInProgressError() from e

        async with self._db.get_session() as session:
            result = await session.execute(
                update(LeadModel)
                .where(
                    LeadModel.id == lead_id,
                    LeadModel.provider_id == provider_id,
                    LeadModel.status == LEAD_PENDING,
                    LeadModel.reservation_id == previous_reservation,
                )
                .values(reservation_id=reservation_id, reserved_at=utcnow(), checkout_session_id=None)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount != 1:
            raise CheckoutInProgressError()

        logger.info(
            "Expired abandoned checkout %s for lead %s",
            previous_session, lead_id,
            extra={"provider_id": provider_id, "lead_id": lead_id},
        )
