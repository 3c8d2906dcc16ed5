"""RoleGate: FastAPI application entry point."""

import signal
import uuid
from contextlib import asynccontextmanager

# configure_structlog MUST run before the other app imports
# (structlog caches the processor chain on first use).
from rolegate.core.logging import configure_structlog
from rolegate.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse

from rolegate.api.routes import api_router
from rolegate.bot.service import DiscordBotService
from rolegate.core.config import Settings, get_settings
from rolegate.db import close_db, get_session_factory, init_db
from rolegate.middleware.correlation import (
    setup_correlation_middleware,
    get_correlation_id,
)
from rolegate.services.directory import DiscordDirectory
from rolegate.services.entitlements import EntitlementMapper
from rolegate.services.event_claims import EventClaims
from rolegate.services.ledger import SubscriptionLedger
from rolegate.services.reconciliation import ReconciliationService

logger = structlog.get_logger(__name__)


def validate_settings(settings: Settings) -> None:
    """Fail fast if the reconciliation configuration is incomplete."""
    if settings.debug:
        return  # Skip in dev/test mode
    required = {
        "stripe_secret_key": settings.stripe_secret_key,
        "stripe_webhook_secret": settings.stripe_webhook_secret,
        "discord_token": settings.discord_token,
        "discord_guild_id": settings.discord_guild_id,
        "role_mapping": settings.role_mapping,
    }
    missing = [k for k, v in required.items() if not v]
    if missing:
        raise RuntimeError(f"Missing required settings at startup: {missing}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # SIGTERM flips this so the webhook answers 503 and Stripe redelivers later
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="stop_accepting_webhooks")

    signal.signal(signal.SIGTERM, handle_sigterm)

    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    validate_settings(settings)
    mapper = EntitlementMapper.from_settings(settings)
    app.state.mapper = mapper
    logger.info("entitlement_mapping_loaded", prices=len(mapper), plans=len(mapper.plans()))

    await init_db(settings.database_url)
    logger.info("db_initialized")
    app.state.claims = EventClaims(get_session_factory())

    bot_service = DiscordBotService(settings.discord_token, mapper, settings.discord_guild_id)
    app.state.bot_service = bot_service
    if settings.discord_token:
        await bot_service.start()
    else:
        logger.warning("discord_token_missing", action="bot_not_started")

    app.state.reconciler = ReconciliationService(
        directory=DiscordDirectory(bot_service.bot),
        ledger=SubscriptionLedger(get_session_factory()),
        mapper=mapper,
        guild_id=settings.discord_guild_id,
    )

    yield

    logger.info("shutdown_begin")
    await bot_service.stop()
    await close_db()
    logger.info("shutdown_complete")


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Global exception handler for HTTPException with debug_id tracking.

    Logs errors server-side with full context, returns sanitized response to client.
    """
    debug_id = str(uuid.uuid4())

    logger.error(
        "http_exception",
        status_code=exc.status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        detail=exc.detail,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "debug_id": debug_id},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors with debug_id tracking.

    Logs full exception with traceback, returns generic 500 to client.
    """
    debug_id = str(uuid.uuid4())

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "debug_id": debug_id},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Stripe subscriptions to Discord roles",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_correlation_middleware(app)

    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rolegate.main:app",
        host="0.0.0.0",
        port=8000,
    )
