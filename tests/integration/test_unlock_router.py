"""Integration tests for the lead unlock endpoint."""

import pytest

from nexaconnect_billing.leads.models import LeadModel

RETURN_URL = "https://app.nexaconnect.example/provider/leads"


@pytest.fixture
async def leads(db, provider):
    async with db.get_session() as session:
        session.add(LeadModel(id="lead-1", provider_id="p42", category="Social Participation"))
        session.add(LeadModel(id="lead-2", provider_id="p42", status="unlocked", payment_reference="cs_old"))
    return ["lead-1", "lead-2"]


def _body(lead_id="lead-1", provider_id="p42"):
    return {"providerId": provider_id, "leadId": lead_id, "returnUrl": RETURN_URL}


class TestUnlockLead:
    async def test_returns_checkout_url(self, client, leads, auth_headers, processor):
        resp = await client.post("/unlock-lead", json=_body(), headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() == {"url": "https://checkout.stripe.test/cs_test_1"}

        checkout = processor.checkouts[0]
        assert checkout["amount"] == 2500
        assert checkout["metadata"]["type"] == "lead_unlock"
        assert checkout["success_url"] == f"{RETURN_URL}?lead_checkout=success&lead_id=lead-1"

    async def test_requires_auth(self, client, leads):
        resp = await client.post("/unlock-lead", json=_body())
        assert resp.status_code == 401

    async def test_unknown_lead(self, client, leads, auth_headers, processor):
        resp = await client.post("/unlock-lead", json=_body("missing"), headers=auth_headers)
        assert resp.status_code == 404
        assert resp.json() == {"error": "Lead not found", "code": "LEAD_NOT_FOUND"}
        assert processor.checkouts == []

    async def test_already_unlocked(self, client, leads, auth_headers, processor):
        resp = await client.post("/unlock-lead", json=_body("lead-2"), headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Lead already processed"
        assert processor.checkouts == []

    async def test_retry_after_cancel(self, client, db, leads, auth_headers, processor):
        first = await client.post("/unlock-lead", json=_body(), headers=auth_headers)
        second = await client.post("/unlock-lead", json=_body(), headers=auth_headers)
        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json() == {"url": "https://checkout.stripe.test/cs_test_2"}
        assert len(processor.checkouts) == 2
        assert processor.expired == ["cs_test_1"]

        async with db.get_session() as session:
            lead = await session.get(LeadModel, "lead-1")
        assert lead.status == "pending"
        assert lead.checkout_session_id == "cs_test_2"

    async def test_retry_while_session_cannot_expire(self, client, leads, auth_headers, processor):
        await client.post("/unlock-lead", json=_body(), headers=auth_headers)
        processor.expire_error = "This Checkout Session is already complete."
        resp = await client.post("/unlock-lead", json=_body(), headers=auth_headers)
        assert resp.status_code == 409
        assert resp.json()["code"] == "CHECKOUT_IN_PROGRESS"
        assert len(processor.checkouts) == 1

    async def test_other_users_provider(self, client, leads, other_auth_headers, processor):
        resp = await client.post("/unlock-lead", json=_body(), headers=other_auth_headers)
        assert resp.status_code == 403
        assert processor.checkouts == []

    async def test_processor_failure_allows_retry(self, client, leads, auth_headers, processor):
        processor.fail_with = "Stripe is down"
        resp = await client.post("/unlock-lead", json=_body(), headers=auth_headers)
        assert resp.status_code == 500

        processor.fail_with = None
        resp = await client.post("/unlock-lead", json=_body(), headers=auth_headers)
        assert resp.status_code == 200
