"""
FastAPI application entry point.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from salesfloor.calls.router import router as calls_router
from salesfloor.config import get_settings
from salesfloor.lead_lists.router import router as lead_lists_router
from salesfloor.messages.router import router as messages_router
from salesfloor.prospects.router import router as prospects_router
from salesfloor.shared.database import get_database_manager
from salesfloor.shared.exceptions import (
    AppError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    TransientStorageError,
    ValidationError,
)
from salesfloor.shared.logging import correlation_id_var, get_logger, setup_logging
from salesfloor.telephony.factory import close_telephony_provider
from salesfloor.telephony.interface import TelephonyProviderError
from salesfloor.telephony.webhooks.router import router as telephony_webhooks_router

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

ERROR_STATUS: dict[type[AppError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ValidationError: status.HTTP_400_BAD_REQUEST,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    ConflictError: status.HTTP_409_CONFLICT,
    InvalidStateError: status.HTTP_409_CONFLICT,
    TransientStorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: AppError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging()
    settings = get_settings()

    logger.info("Application starting", extra={"env": settings.app_env})

    yield

    logger.info("Shutting down application")
    await close_telephony_provider()
    await get_database_manager().close()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="SalesFloor API",
        description="Call-center backend: prospects, call lifecycle and lead lists",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Map domain exceptions to HTTP responses
    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError) -> JSONResponse:
        status_code = status_for(exc)
        logger.info(
            "Request failed with domain error",
            extra={
                "endpoint": request.url.path,
                "method": request.method,
                "error_code": exc.code,
                "status_code": status_code,
            },
        )
        return JSONResponse(status_code=status_code, content={"detail": exc.to_payload()})

    @app.exception_handler(TelephonyProviderError)
    async def _telephony_error(request: Request, exc: TelephonyProviderError) -> JSONResponse:
        detail: dict[str, object] = {"code": exc.code, "message": exc.message}
        if exc.error_code:
            detail["provider_error_code"] = exc.error_code
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": detail})

    # Request validation (FastAPI/Pydantic) -> consistent 422 payload
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append(
                {
                    "field": field,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "errors": errors,
                }
            },
        )

    @app.middleware("http")
    async def correlation_id_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        correlation_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = correlation_id_var.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = correlation_id
        return response

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(prospects_router)
    app.include_router(calls_router)
    app.include_router(lead_lists_router)
    app.include_router(messages_router)
    app.include_router(telephony_webhooks_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app


app = create_app()
