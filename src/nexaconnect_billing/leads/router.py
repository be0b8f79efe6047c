"""Lead unlock endpoint."""

from fastapi import APIRouter, Depends

from nexaconnect_billing.common.schemas import RedirectResponse
from nexaconnect_billing.common.security import UserContext, require_user
from nexaconnect_billing.leads.schemas import UnlockLeadRequest

router = APIRouter(tags=["leads"])


def _get_service():
    from nexaconnect_billing.deps import get_lead_unlock_service
    return get_lead_unlock_service()


@router.post("/unlock-lead", response_model=RedirectResponse)
async def unlock_lead(body: UnlockLeadRequest, user: UserContext = Depends(require_user)):
    url = await _get_service().create_unlock_session(
        user,
        provider_id=body.provider_id,
        lead_id=body.lead_id,
        return_url=body.return_url,
    )
    return RedirectResponse(url=url)
