"""Tests for LeadUnlockService — reservation and checkout creation."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from nexaconnect_billing.billing.customers import CustomerBinder
from nexaconnect_billing.billing.models import ProviderModel
from nexaconnect_billing.common.config import BillingSettings
from nexaconnect_billing.common.database import DatabaseManager
from nexaconnect_billing.common.exceptions import (
    CheckoutInProgressError,
    LeadAlreadyProcessedError,
    LeadNotFoundError,
    PaymentProcessorError,
    ProviderAccessError,
)
from nexaconnect_billing.common.models import utcnow
from nexaconnect_billing.common.security import UserContext
from nexaconnect_billing.leads.models import LeadModel
from nexaconnect_billing.leads.service import PRODUCT_NAME, LeadUnlockService, release_reservation
from tests.conftest import FakeProcessor

USER = UserContext(id="user-1", email="owner@example.com")
RETURN_URL = "https://app.example/leads"


def make_settings(**overrides) -> BillingSettings:
    defaults = {"db_url": "sqlite+aiosqlite://", "customer_bind_poll_interval": 0}
    defaults.update(overrides)
    return BillingSettings(**defaults)


@pytest.fixture
async def db():
    manager = DatabaseManager(make_settings())
    await manager.init()
    await manager.create_all()
    async with manager.get_session() as session:
        session.add(ProviderModel(id="p42", user_id="user-1", name="Sunrise Support", email="hello@sunrise.example"))
        session.add(ProviderModel(id="p99", user_id="user-2", name="Someone Else"))
        session.add(LeadModel(id="lead-1", provider_id="p42", category="Daily Living", unlock_price=3500))
        session.add(LeadModel(id="lead-2", provider_id="p42"))
        session.add(LeadModel(id="lead-3", provider_id="p42", status="unlocked"))
    yield manager
    await manager.close()


@pytest.fixture
def processor():
    return FakeProcessor()


@pytest.fixture
def service(db, processor):
    settings = make_settings()
    return LeadUnlockService(settings, db, processor, CustomerBinder(settings, db, processor))


async def _lead(db, lead_id):
    async with db.get_session() as session:
        return await session.get(LeadModel, lead_id)


class TestCreateUnlockSession:
    async def test_returns_checkout_url(self, db, service, processor):
        url = await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)
        assert url == "https://checkout.stripe.test/cs_test_1"

        checkout = processor.checkouts[0]
        assert checkout["mode"] == "payment"
        assert checkout["customer"] == "cus_test_1"
        assert checkout["amount"] == 3500
        assert checkout["currency"] == "aud"
        assert checkout["product_name"] == PRODUCT_NAME
        assert checkout["description"] == "Unlock contact details for support request in Daily Living"
        assert checkout["success_url"] == f"{RETURN_URL}?lead_checkout=success&lead_id=lead-1"
        assert checkout["cancel_url"] == f"{RETURN_URL}?lead_checkout=cancelled"
        assert checkout["expires_at"] is not None

    async def test_reserves_lead(self, db, service, processor):
        await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)
        lead = await _lead(db, "lead-1")
        metadata = processor.checkouts[0]["metadata"]

        assert lead.status == "pending"
        assert lead.reserved_at is not None
        assert metadata == {
            "leadId": "lead-1",
            "providerId": "p42",
            "type": "lead_unlock",
            "reservationId": lead.reservation_id,
        }

    async def test_default_price_and_category(self, service, processor):
        await service.create_unlock_session(USER, "p42", "lead-2", RETURN_URL)
        checkout = processor.checkouts[0]
        assert checkout["amount"] == 2500
        assert checkout["description"].endswith("in General")

    async def test_return_url_with_query(self, service, processor):
        await service.create_unlock_session(USER, "p42", "lead-1", "https://app.example/leads?tab=new")
        assert processor.checkouts[0]["cancel_url"] == "https://app.example/leads?tab=new&lead_checkout=cancelled"

    async def test_unknown_lead(self, service, processor):
        with pytest.raises(LeadNotFoundError):
            await service.create_unlock_session(USER, "p42", "missing", RETURN_URL)
        assert processor.checkouts == []

    async def test_lead_of_other_provider(self, db, service):
        async with db.get_session() as session:
            session.add(LeadModel(id="lead-9", provider_id="p99"))
        with pytest.raises(LeadNotFoundError):
            await service.create_unlock_session(USER, "p42", "lead-9", RETURN_URL)

    async def test_provider_owned_by_other_user(self, service):
        with pytest.raises(ProviderAccessError):
            await service.create_unlock_session(USER, "p99", "lead-1", RETURN_URL)

    async def test_unlocked_lead_rejected(self, service, processor):
        with pytest.raises(LeadAlreadyProcessedError):
            await service.create_unlock_session(USER, "p42", "lead-3", RETURN_URL)
        assert processor.checkouts == []
        assert processor.customers == []

    async def test_records_checkout_session(self, db, service):
        await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)
        assert (await _lead(db, "lead-1")).checkout_session_id == "cs_test_1"

    async def test_unowned_provider_refused(self, db, service, processor):
        async with db.get_session() as session:
            session.add(ProviderModel(id="p-orphan", user_id=None, name="Unclaimed Listing"))
            session.add(LeadModel(id="lead-o", provider_id="p-orphan"))
        with pytest.raises(ProviderAccessError):
            await service.create_unlock_session(USER, "p-orphan", "lead-o", RETURN_URL)
        assert (await _lead(db, "lead-o")).status == "new"
        assert processor.customers == []


class TestRetryAfterCancel:
    async def test_retry_replaces_open_checkout(self, db, service, processor):
        await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)
        first = await _lead(db, "lead-1")

        url = await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)
        assert url == "https://checkout.stripe.test/cs_test_2"
        assert processor.expired == ["cs_test_1"]

        lead = await _lead(db, "lead-1")
        assert lead.status == "pending"
        assert lead.reservation_id != first.reservation_id
        assert lead.checkout_session_id == "cs_test_2"
        assert processor.checkouts[1]["metadata"]["reservationId"] == lead.reservation_id
        assert len(processor.customers) == 1

    async def test_old_session_expiry_keeps_new_reservation(self, db, service):
        await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)
        old_reservation = (await _lead(db, "lead-1")).reservation_id
        await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)

        async with db.get_session() as session:
            assert not await release_reservation(session, "lead-1", "p42", old_reservation)
        assert (await _lead(db, "lead-1")).checkout_session_id == "cs_test_2"

    async def test_session_that_cannot_be_expired(self, db, service, processor):
        await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)
        reservation_id = (await _lead(db, "lead-1")).reservation_id
        processor.expire_error = "This Checkout Session is already complete."

        with pytest.raises(CheckoutInProgressError):
            await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)

        lead = await _lead(db, "lead-1")
        assert lead.reservation_id == reservation_id
        assert lead.checkout_session_id == "cs_test_1"
        assert len(processor.checkouts) == 1

    async def test_pending_without_session_is_in_progress(self, db, service, processor):
        async with db.get_session() as session:
            lead = await session.get(LeadModel, "lead-2")
            lead.status, lead.reservation_id, lead.reserved_at = "pending", "res-other", utcnow()

        with pytest.raises(CheckoutInProgressError):
            await service.create_unlock_session(USER, "p42", "lead-2", RETURN_URL)
        assert processor.expired == []
        assert processor.checkouts == []

    async def test_failed_replacement_releases_lead(self, db, service, processor):
        await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)
        processor.create_payment_checkout = AsyncMock(side_effect=PaymentProcessorError("Stripe is down"))
        with pytest.raises(PaymentProcessorError):
            await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)

        lead = await _lead(db, "lead-1")
        assert processor.expired == ["cs_test_1"]
        assert (lead.status, lead.reservation_id, lead.checkout_session_id) == ("new", None, None)

    async def test_expired_reservation_can_be_reclaimed(self, db, service, processor):
        await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)
        first = (await _lead(db, "lead-1")).reservation_id
        async with db.get_session() as session:
            lead = await session.get(LeadModel, "lead-1")
            lead.reserved_at = utcnow() - timedelta(hours=2)

        await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)
        second = (await _lead(db, "lead-1")).reservation_id
        assert second != first
        assert len(processor.checkouts) == 2

    async def test_failure_releases_reservation(self, db, service, processor):
        processor.fail_with = "Your card was declined."
        with pytest.raises(PaymentProcessorError):
            await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)

        lead = await _lead(db, "lead-1")
        assert lead.status == "new"
        assert lead.reservation_id is None

        processor.fail_with = None
        assert await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)

    async def test_reuses_subscription_customer(self, db, service, processor):
        binder = CustomerBinder(make_settings(), db, processor)
        customer_id = await binder.bind_customer("p42", USER)
        await service.create_unlock_session(USER, "p42", "lead-1", RETURN_URL)
        assert processor.checkouts[0]["customer"] == customer_id
        assert len(processor.customers) == 1
