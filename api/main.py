"""
FastAPI API Service Entry Point
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from api.routes import approvals, bookings, stripe
from marketplace.errors import GatewayOrderFailedError, MarketplaceError
from shared.config import get_settings
from shared.logging_config import configure_logging
from shared.startup_validator import StartupValidationError, validate_startup_config

# Configure structured JSON logging on startup
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Mock Interview Marketplace API",
    version="1.0.0",
)

settings = get_settings()
origins = settings.CORS_ORIGINS.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Include webhook routers
app.include_router(stripe.router, prefix="/webhook", tags=["webhooks"])

app.include_router(bookings.router)
app.include_router(approvals.router)


# =========================================================================
# STARTUP VALIDATION
# =========================================================================
@app.on_event("startup")
async def startup_config_validation():
    """
    Validate critical configuration at startup.

    Raises:
        StartupValidationError: If critical configuration is invalid
    """
    logger.info("Running API startup configuration validation...")
    try:
        validate_startup_config()
        logger.info("API startup configuration validation passed")
    except StartupValidationError as e:
        logger.critical(f"API startup blocked due to configuration errors: {e}")
        raise  # FastAPI will fail to start


@app.exception_handler(MarketplaceError)
async def marketplace_exception_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    """Render typed errors as {error_code, error_message, details}."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        f"{request.method} {request.url.path} -> {exc.status_code} {exc.error_code}: {exc.message}",
        extra={"request_path": request.url.path},
    )
    if isinstance(exc, GatewayOrderFailedError):
        logger.warning(
            f"Booking {exc.booking_id} committed without payment order, client must retry",
            extra={"booking_id": str(exc.booking_id), "payment_id": str(exc.payment_id)},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Exception handler for validation errors
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Return 400 with validation error details."""
    return JSONResponse(
        status_code=400,
        content={
            "error_code": "VALIDATION_ERROR",
            "error_message": "Validation error",
            "details": {"errors": exc.errors(include_url=False)},
        },
    )


@app.get("/health")
async def health_check() -> JSONResponse:
    """
    Health check endpoint for Docker health checks and monitoring.

    Checks:
    - PostgreSQL connectivity (SELECT 1 query)
    - Circuit breaker states of external providers

    Returns:
        200 OK if all systems healthy
        503 Service Unavailable if degraded
    """
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    from database.connection import get_async_session
    from shared.circuit_breaker import get_breaker_status

    health_status = {
        "status": "healthy",
        "postgres": "unknown",
        "circuit_breakers": get_breaker_status(),
    }
    status_code = 200

    try:
        async with get_async_session() as session:
            await session.execute(text("SELECT 1"))
            health_status["postgres"] = "connected"
    except (SQLAlchemyError, OSError):
        health_status["postgres"] = "disconnected"
        health_status["status"] = "degraded"
        status_code = 503

    if any(b["state"] == "open" for b in health_status["circuit_breakers"].values()):
        health_status["status"] = "degraded"

    return JSONResponse(status_code=status_code, content=health_status)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint"""
    return {"message": "Mock Interview Marketplace API - Use /health for health checks"}
