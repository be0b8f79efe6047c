"""Stripe webhook endpoint."""

import json
import logging

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from nexaconnect_billing.common.config import get_settings
from nexaconnect_billing.webhooks.events import parse_event
from nexaconnect_billing.webhooks.signature import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


def _get_processor():
    from nexaconnect_billing.deps import get_webhook_processor
    return get_webhook_processor()


def _get_db():
    from nexaconnect_billing.deps import get_db
    return get_db()


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header("", alias="Stripe-Signature"),
):
    """Verify and apply a Stripe event."""
    body = await request.body()
    settings = get_settings()

    if not verify_signature(
        body,
        stripe_signature,
        settings.stripe_webhook_secret,
        tolerance=settings.webhook_tolerance,
    ):
        logger.warning("Invalid Stripe webhook signature")
        return JSONResponse({"error": "Invalid signature"}, status_code=400)

    try:
        event = parse_event(json.loads(body))
    except (json.JSONDecodeError, UnicodeDecodeError, AttributeError, ValidationError) as e:
        logger.warning("Malformed Stripe event: %s", e)
        return JSONResponse({"error": "Malformed event"}, status_code=400)

    try:
        async with _get_db().get_session() as session:
            await _get_processor().process(session, event)
    except Exception as e:
        logger.exception("Webhook error", extra={"event_id": event.id, "event_type": event.type})
        return JSONResponse({"error": str(e)}, status_code=500)

    return {"received": True}
