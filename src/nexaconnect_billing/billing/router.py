"""Checkout, portal and billing-status endpoints."""

from fastapi import APIRouter, Depends, Query

from nexaconnect_billing.billing.schemas import (
    BillingStatusResponse,
    CheckoutRequest,
    PortalRequest,
)
from nexaconnect_billing.common.schemas import RedirectResponse
from nexaconnect_billing.common.security import UserContext, require_user

router = APIRouter(tags=["billing"])


def _get_service():
    from nexaconnect_billing.deps import get_billing_service
    return get_billing_service()


@router.post("/create-checkout", response_model=RedirectResponse)
async def create_checkout(body: CheckoutRequest, user: UserContext = Depends(require_user)):
    url = await _get_service().create_checkout(
        user,
        provider_id=body.provider_id,
        plan_name=body.plan_name,
        return_url=body.return_url,
        price_id=body.price_id,
        billing_cycle=body.billing_cycle,
    )
    return RedirectResponse(url=url)


@router.post("/create-portal", response_model=RedirectResponse)
async def create_portal(body: PortalRequest, user: UserContext = Depends(require_user)):
    url = await _get_service().create_portal(
        user, provider_id=body.provider_id, return_url=body.return_url,
    )
    return RedirectResponse(url=url)


@router.get(
    "/billing-status",
    response_model=BillingStatusResponse,
    response_model_by_alias=True,
)
async def billing_status(
    provider_id: str = Query(..., alias="providerId"),
    user: UserContext = Depends(require_user),
):
    status = await _get_service().billing_status(user, provider_id)
    return BillingStatusResponse(**status)
