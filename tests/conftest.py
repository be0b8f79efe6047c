"""Shared test fixtures for NexaConnect billing."""

import json
from typing import Any, Callable, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from nexaconnect_billing.billing.processor import HostedSession
from nexaconnect_billing.common.exceptions import PaymentProcessorError
from nexaconnect_billing.webhooks.signature import signature_header


WEBHOOK_SECRET = "whsec_test_secret"
USER_ID = "user-1"
USER_EMAIL = "owner@example.com"
USER_TOKEN = "token-user-1"
OTHER_USER_TOKEN = "token-user-2"


class FakeProcessor:
    """In-memory stand-in for StripeProcessor that records every call."""

    def __init__(self):
        self.customers: list[dict[str, Any]] = []
        self.checkouts: list[dict[str, Any]] = []
        self.portals: list[dict[str, Any]] = []
        self.expired: list[str] = []
        self.fail_with: Optional[str] = None
        self.on_create_customer: Optional[Callable] = None
        # Message for a rejected expire call (e.g. the session was already paid).
        self.expire_error: Optional[str] = None

    def _check(self):
        if self.fail_with:
            raise PaymentProcessorError(self.fail_with)

    async def create_customer(self, *, email, name, metadata) -> str:
        self._check()
        customer_id = f"cus_test_{len(self.customers) + 1}"
        self.customers.append({"id": customer_id, "email": email, "name": name, "metadata": metadata})
        if self.on_create_customer is not None:
            await self.on_create_customer(customer_id)
        return customer_id

    async def create_subscription_checkout(
        self, *, customer_id, price_id, success_url, cancel_url, metadata,
    ) -> HostedSession:
        self._check()
        session_id = f"cs_test_{len(self.checkouts) + 1}"
        self.checkouts.append({
            "id": session_id,
            "mode": "subscription",
            "customer": customer_id,
            "price": price_id,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        })
        return HostedSession(id=session_id, url=f"https://checkout.stripe.test/{session_id}")

    async def create_payment_checkout(
        self, *, customer_id, amount, currency, product_name, description,
        success_url, cancel_url, metadata, expires_at=None,
    ) -> HostedSession:
        self._check()
        session_id = f"cs_test_{len(self.checkouts) + 1}"
        self.checkouts.append({
            "id": session_id,
            "mode": "payment",
            "customer": customer_id,
            "amount": amount,
            "currency": currency,
            "product_name": product_name,
            "description": description,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "expires_at": expires_at,
        })
        return HostedSession(id=session_id, url=f"https://checkout.stripe.test/{session_id}")

    async def create_portal_session(self, *, customer_id, return_url) -> HostedSession:
        self._check()
        session_id = f"bps_test_{len(self.portals) + 1}"
        self.portals.append({"id": session_id, "customer": customer_id, "return_url": return_url})
        return HostedSession(id=session_id, url=f"https://billing.stripe.test/{session_id}")

    async def expire_session(self, session_id: str) -> None:
        self._check()
        if self.expire_error:
            raise PaymentProcessorError(self.expire_error)
        self.expired.append(session_id)


class FakeIdentityClient:
    """Resolves a fixed set of bearer tokens."""

    def __init__(self, users: dict[str, dict]):
        self.users = users

    async def get_user(self, token: str):
        return self.users.get(token)


def make_event(event_type: str, obj: dict, event_id: str = "evt_test_1") -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


def signed(event: dict, secret: str = WEBHOOK_SECRET) -> tuple[bytes, dict]:
    """Serialize an event and build its Stripe-Signature header."""
    body = json.dumps(event).encode()
    return body, {"Stripe-Signature": signature_header(body, secret), "Content-Type": "application/json"}


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


@pytest.fixture
def processor():
    return FakeProcessor()


@pytest.fixture
def app(processor, monkeypatch):
    """Create a test app with in-memory DB and fake Stripe/identity."""
    monkeypatch.setenv("NEXA_DB_URL", "sqlite+aiosqlite://")
    monkeypatch.setenv("NEXA_STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("NEXA_STRIPE_PRICE_MAP", json.dumps({
        "professional_monthly": "price_pro_monthly",
        "professional_annual": "price_pro_annual",
        "premium_monthly": "price_premium_monthly",
        "premium_annual": "price_premium_annual",
    }))
    monkeypatch.setenv("NEXA_CUSTOMER_BIND_POLL_INTERVAL", "0")

    # Clear caches and singletons so new env vars take effect
    from nexaconnect_billing.common.config import get_settings
    get_settings.cache_clear()

    from nexaconnect_billing import deps
    deps.reset_singletons()
    deps.set_payment_processor(processor)
    deps.set_identity_client(FakeIdentityClient({
        USER_TOKEN: {"id": USER_ID, "email": USER_EMAIL},
        OTHER_USER_TOKEN: {"id": "user-2", "email": "other@example.com"},
    }))

    from nexaconnect_billing.app import create_app
    return create_app()


@pytest.fixture
async def db(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from nexaconnect_billing.deps import get_db
    manager = get_db()
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
async def client(app, db):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def provider(db):
    from nexaconnect_billing.billing.models import ProviderModel

    async with db.get_session() as session:
        session.add(ProviderModel(
            id="p42", user_id=USER_ID, name="Sunrise Support", email="hello@sunrise.example",
        ))
    return "p42"


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {USER_TOKEN}"}


@pytest.fixture
def other_auth_headers():
    return {"Authorization": f"Bearer {OTHER_USER_TOKEN}"}
