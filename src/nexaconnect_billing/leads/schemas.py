"""Pydantic schemas for lead unlock endpoints."""

from pydantic import Field

from nexaconnect_billing.common.schemas import CamelModel


class UnlockLeadRequest(CamelModel):
    provider_id: str = Field(..., min_length=1)
    lead_id: str = Field(..., min_length=1)
    return_url: str = Field(..., min_length=1)
