"""Storefront checkout API main application module.

This module initializes the FastAPI application and configures
core middleware, routers, exception handlers and startup/shutdown events.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from storefront.api.checkout import router as checkout_router
from storefront.api.health import router as health_router
from storefront.api.middleware import setup_middleware
from storefront.api.payments import router as payments_router
from storefront.domain.exceptions import (
    CheckoutValidationError,
    ConflictError,
    DomainError,
    NotFoundError,
)
from storefront.infrastructure.config import settings
from storefront.infrastructure.database import dispose_engine, init_models
from storefront.infrastructure.gateway_client import close_gateway_client
from storefront.infrastructure.logging_config import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown events.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup, cleanup happens after yield.
    """
    configure_logging()
    logger.info(
        "Starting storefront checkout API",
        version=settings.api_version,
        debug=settings.debug,
        persistence_backend=settings.persistence_backend,
        currency=settings.currency,
    )

    if settings.persistence_backend == "database":
        await init_models()
        logger.info("Database tables ready")

    yield

    logger.info("Shutting down storefront checkout API")
    await close_gateway_client()
    if settings.persistence_backend == "database":
        await dispose_engine()


app = FastAPI(
    title="Storefront Checkout API",
    description="Checkout sessions and payment gateway integration for the storefront",
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware (must be added before custom middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup custom middleware (request ID, error handling)
setup_middleware(app)

# Include routers
app.include_router(health_router, tags=["Health"])
app.include_router(payments_router)
app.include_router(checkout_router)


# ============================================================================
# Custom Exception Handlers
# ============================================================================


def _error_body(
    request: Request,
    error_code: str,
    message: str,
    details: dict | list | None = None,
) -> dict:
    return {
        "error_code": error_code,
        "message": message,
        "details": details if details is not None else {},
        "request_id": getattr(request.state, "request_id", None),
    }


def _status_for(exc: DomainError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, CheckoutValidationError):
        return 400
    return 422


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Translate domain errors into the standard error shape."""
    status_code = _status_for(exc)
    logger.info(
        "Domain error",
        path=request.url.path,
        error_code=exc.error_code,
        status_code=status_code,
    )
    return JSONResponse(
        status_code=status_code,
        content=_error_body(request, exc.error_code, exc.message, exc.details),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent format."""
    detail = exc.detail
    if isinstance(detail, dict):
        error_code = detail.get("error_code", "ERROR")
        message = detail.get("message", str(detail))
        details = detail.get("details", {})
    else:
        error_code = "ERROR"
        message = str(detail)
        details = {}

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, error_code, message, details),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report request validation failures in the standard error shape."""
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=_error_body(request, "VALIDATION_ERROR", "Request validation failed", errors),
    )


def run() -> None:
    """Run the API with uvicorn."""
    uvicorn.run(
        "storefront.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
