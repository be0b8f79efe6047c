"""FastAPI application factory for NexaConnect billing."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from nexaconnect_billing.common.config import get_settings
from nexaconnect_billing.common.exceptions import NexaError
from nexaconnect_billing.common.logging import setup_logging
from nexaconnect_billing.common.schemas import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from nexaconnect_billing.deps import get_db
        db = get_db()
        await db.init()
        await db.create_all()
        yield
        # Shutdown
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    @app.exception_handler(NexaError)
    async def nexa_error_handler(request: Request, exc: NexaError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            ErrorResponse(error=exc.message, code=exc.code).model_dump(),
            status_code=exc.status_code,
        )

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error("%s %s store failure: %s", request.method, request.url.path, exc)
        return JSONResponse(
            ErrorResponse(error=str(exc), code="STORE_ERROR").model_dump(),
            status_code=500,
        )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from nexaconnect_billing.billing.router import router as billing_router
    from nexaconnect_billing.leads.router import router as leads_router
    from nexaconnect_billing.webhooks.router import router as webhook_router

    prefix = settings.api_prefix
    app.include_router(billing_router, prefix=prefix, tags=["billing"])
    app.include_router(leads_router, prefix=prefix, tags=["leads"])
    app.include_router(webhook_router, prefix=prefix, tags=["webhooks"])

    return app
