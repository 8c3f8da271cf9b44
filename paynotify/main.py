"""
PayNotify - payment webhook ingestion and transactional notifications.
Main FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from paynotify.config import get_settings
from paynotify.api.router import api_router
from paynotify.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("paynotify")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


async def run_startup_validation(services) -> None:
    """Log configuration problems once at startup. Never aborts startup."""
    validator = services.validator
    if services.settings.config_probe_on_startup:
        result = await validator.validate()
    else:
        result = validator.validate_sync()
    validator.log_results(result)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("PayNotify starting up (env=%s)", settings.app_env)

    # Initialize Sentry if configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    # Tests install their own container before startup
    services = getattr(app.state, "services", None)
    if services is None:
        from paynotify.services.container import build_services
        services = build_services(settings)
        app.state.services = services

    await services.monitor.load()

    try:
        await run_startup_validation(services)
    except Exception as e:
        logger.error("Startup configuration validation crashed: %s", str(e))

    services.queue.start()
    logger.info("Notification queue started")

    yield

    logger.info("PayNotify shutting down - draining %d notification batch(es)", services.queue.pending())
    await services.queue.stop()
    await services.monitor.persist()

    from paynotify.database import dispose_engine
    await dispose_engine()
    logger.info("PayNotify shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="PayNotify",
        description="Payment webhook ingestion, reconciliation, and notifications",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS - allow the public site to call lead capture and verification
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            settings.app_base_url,
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Content-Type", "X-Correlation-ID",
            "Accept", "Origin", "X-Requested-With",
        ],
    )

    # Correlation ID middleware (must be added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    application.include_router(api_router)

    return application


app = create_app()
