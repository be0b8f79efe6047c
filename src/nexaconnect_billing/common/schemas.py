"""Shared Pydantic schemas for NexaConnect billing."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "nexaconnect-billing"


class ErrorResponse(BaseModel):
    error: str
    code: str = ""


class CamelModel(BaseModel):
    """Request/response model exchanged with the web app in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RedirectResponse(BaseModel):
    url: str
