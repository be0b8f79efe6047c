"""Pydantic schemas for checkout and portal endpoints."""

from typing import Optional

from pydantic import Field

from nexaconnect_billing.common.schemas import CamelModel


class CheckoutRequest(CamelModel):
    provider_id: str = Field(..., min_length=1)
    plan_name: str = Field(..., min_length=1)
    return_url: str = Field(..., min_length=1)
    price_id: Optional[str] = None
    billing_cycle: Optional[str] = "monthly"


class PortalRequest(CamelModel):
    provider_id: str = Field(..., min_length=1)
    return_url: str = Field(..., min_length=1)


class BillingStatusResponse(CamelModel):
    provider_id: str
    tier: str
    verified: bool
    has_customer: bool
    has_subscription: bool
