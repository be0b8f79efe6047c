"""Stripe gateway used by the session creators.

The Stripe SDK is blocking, so every call runs in a worker thread. Errors
from the SDK are re-raised as :class:`PaymentProcessorError` with the
original message kept for operators.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import stripe

from nexaconnect_billing.common.config import BillingSettings
from nexaconnect_billing.common.exceptions import PaymentProcessorError

logger = logging.getLogger(__name__)


@dataclass
class HostedSession:
    """A processor-hosted page the browser is redirected to."""

    id: str
    url: str


class PaymentProcessor(Protocol):
    async def create_customer(
        self, *, email: Optional[str], name: Optional[str], metadata: dict[str, str]
    ) -> str: ...

    async def create_subscription_checkout(
        self,
        *,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> HostedSession: ...

    async def create_payment_checkout(
        self,
        *,
        customer_id: str,
        amount: int,
        currency: str,
        product_name: str,
        description: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
        expires_at: Optional[int] = None,
    ) -> HostedSession: ...

    async def create_portal_session(self, *, customer_id: str, return_url: str) -> HostedSession: ...

    async def expire_session(self, session_id: str) -> None: ...


class StripeProcessor:
    """PaymentProcessor backed by the Stripe API."""

    def __init__(self, settings: BillingSettings):
        self._api_key = settings.stripe_secret_key
        self._api_version = settings.stripe_api_version

    def _options(self) -> dict[str, Any]:
        if not self._api_key:
            raise PaymentProcessorError("Stripe not configured")
        return {"api_key": self._api_key, "stripe_version": self._api_version}

    async def _call(self, fn, **params):
        options = self._options()
        try:
            return await asyncio.to_thread(fn, **options, **params)
        except stripe.StripeError as e:
            logger.error("Stripe request failed: %s", e)
            raise PaymentProcessorError(str(e.user_message or e)) from e

    async def create_customer(
        self, *, email: Optional[str], name: Optional[str], metadata: dict[str, str]
    ) -> str:
        params: dict[str, Any] = {"metadata": metadata}
        if email:
            params["email"] = email
        if name:
            params["name"] = name
        customer = await self._call(stripe.Customer.create, **params)
        return customer.id

    async def create_subscription_checkout(
        self,
        *,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> HostedSession:
        session = await self._call(
            stripe.checkout.Session.create,
            customer=customer_id,
            mode="subscription",
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=success_url,
            cancel_url=cancel_url,
            subscription_data={"metadata": metadata},
            metadata=metadata,
        )
        return HostedSession(id=session.id, url=session.url)

    async def create_payment_checkout(
        self,
        *,
        customer_id: str,
        amount: int,
        currency: str,
        product_name: str,
        description: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
        expires_at: Optional[int] = None,
    ) -> HostedSession:
        params: dict[str, Any] = {}
        if expires_at is not None:
            params["expires_at"] = expires_at
        session = await self._call(
            stripe.checkout.Session.create,
            customer=customer_id,
            mode="payment",
            line_items=[{
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": product_name, "description": description},
                    "unit_amount": amount,
                },
                "quantity": 1,
            }],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            **params,
        )
        return HostedSession(id=session.id, url=session.url)

    async def create_portal_session(self, *, customer_id: str, return_url: str) -> HostedSession:
        session = await self._call(
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        return HostedSession(id=session.id, url=session.url)

    async def expire_session(self, session_id: str) -> None:
        """Expire an open checkout so it can no longer be paid."""
        await self._call(stripe.checkout.Session.expire, session=session_id)
