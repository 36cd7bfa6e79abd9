"""
Music Community API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Database and Redis connections
- Roster client and receipt storage shared through app.state
- Background job scheduler
- CORS middleware and error envelopes
- API routing and health checks
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import api_router
from app.core.config import settings
from app.core.database import close_db, init_db
from app.core.redis import close_redis, init_redis, is_redis_available
from app.core.scheduler import start_scheduler, stop_scheduler
from app.core.storage import ReceiptStorage
from app.debug import debug_router
from app.modules.membership_applications import register_membership_jobs
from app.modules.roster.client import RosterClient
from app.modules.roster.service import RosterService

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Redis and the database are required in production; in other environments
    failures are logged and the API starts anyway.
    """
    logger.info(f"Starting {settings.app_name} in {settings.python_env} mode")

    roster_client = RosterClient.from_settings(settings)
    app.state.roster_service = RosterService(roster_client)
    app.state.receipt_storage = ReceiptStorage.from_settings(settings)

    if not roster_client.is_configured:
        logger.warning("Roster spreadsheet is not configured; eligibility checks will fail closed")

    try:
        await init_redis()
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        if settings.is_production:
            raise

    try:
        await init_db()
        logger.info("Database connected")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        if settings.is_production:
            raise

    try:
        register_membership_jobs(app.state.roster_service, app.state.receipt_storage)
        await start_scheduler()
    except Exception as e:
        logger.error(f"Background scheduler failed to start: {e}")
        if settings.is_production:
            raise

    yield

    logger.info(f"Shutting down {settings.app_name}")

    await stop_scheduler()
    await roster_client.aclose()
    await close_redis()
    await close_db()
    logger.info("Cleanup complete")


app = FastAPI(
    title="Music Community API",
    description="Membership applications, roster eligibility and member accounts",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

if settings.is_development:
    app.include_router(debug_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================
# Error envelopes
# ============================================
# Every error response has the shape {"success": false, "message", "error"}.


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        body = {
            "success": False,
            "message": exc.detail.get("message", ""),
            "error": exc.detail.get("error", "ERROR"),
        }
        if "retry_after_seconds" in exc.detail:
            body["retryAfterSeconds"] = exc.detail["retry_after_seconds"]
    else:
        body = {"success": False, "message": str(exc.detail), "error": "ERROR"}

    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request."
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": message, "error": "VALIDATION_ERROR"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "message": "An unexpected error occurred.",
            "error": "INTERNAL_ERROR",
        },
    )


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint - API welcome message."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    """Readiness check endpoint. Reports whether rate limits are shared through Redis."""
    return {
        "status": "ready",
        "rate_limit_backend": "redis" if is_redis_available() else "memory",
    }

