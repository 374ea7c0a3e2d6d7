"""
Signal Relay server.

Receives Ghost and Stripe webhooks and relays them to the newsletter
system and to S3/SES fulfilment, plus the small form and checkout
endpoints the site calls.

This is the main entry point that assembles the modular components
from the app package.
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import Optional

import sentry_sdk
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

# Configure structured logging FIRST, before other imports that use logging
from src.utils.logging import setup_logging

logger = setup_logging(service_name="signal-relay")

from src.config import Settings, get_settings
from src.config_validator import startup_validation

from app.dependencies import RelayContainer, build_container
from app.error_handlers import register_exception_handlers
from app.middleware import RequestLoggingMiddleware
from app.routes import (
    checkout_router,
    ghost_webhook_router,
    health_router,
    intake_router,
    stripe_webhook_router,
    subscribe_router,
)

# =============================================================================
# Sentry Error Tracking Configuration
# =============================================================================

SENSITIVE_KEYS = [
    "password", "api_key", "apikey", "api-key", "secret", "token",
    "authorization", "signature", "credential", "private",
]


def filter_sensitive_breadcrumbs(crumb, hint):
    """
    Filter sensitive data from Sentry breadcrumbs.

    Removes or sanitizes breadcrumbs that may contain:
    - Basic auth headers for Listmonk and Mautic
    - Webhook signatures
    - Presigned S3 query strings
    """
    if crumb.get("category") == "http":
        if "data" in crumb and isinstance(crumb["data"], dict):
            data = crumb["data"]
            if "headers" in data and isinstance(data["headers"], dict):
                for key in list(data["headers"].keys()):
                    if any(s in key.lower() for s in SENSITIVE_KEYS):
                        data["headers"][key] = "[FILTERED]"
            if "url" in data:
                url = data["url"]
                for key in SENSITIVE_KEYS + ["x-amz-signature", "x-amz-credential"]:
                    if f"{key}=" in url.lower():
                        pattern = re.compile(f"({re.escape(key)}=)[^&]*", re.IGNORECASE)
                        url = pattern.sub(r"\1[FILTERED]", url)
                data["url"] = url

    if crumb.get("category") in ("console", "log"):
        if "message" in crumb:
            message = str(crumb["message"]).lower()
            for key in SENSITIVE_KEYS:
                if key in message:
                    crumb["message"] = "[FILTERED - may contain sensitive data]"
                    break

    return crumb


def init_sentry(settings: Settings) -> None:
    """Initialize Sentry when a DSN is configured."""
    if not settings.is_sentry_configured:
        logger.info("Sentry DSN not configured, error tracking disabled")
        return

    sentry_settings = settings.sentry
    sentry_sdk.init(
        dsn=sentry_settings.sentry_dsn,
        environment=sentry_settings.sentry_environment,
        sample_rate=1.0,
        traces_sample_rate=sentry_settings.sentry_traces_sample_rate,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        before_breadcrumb=filter_sensitive_breadcrumbs,
        # Customer emails pass through every relay
        send_default_pii=False,
        attach_stacktrace=True,
        server_name=sentry_settings.server_name,
        release=sentry_settings.sentry_release,
    )
    logger.info(f"Sentry initialized for environment: {sentry_settings.sentry_environment}")


# =============================================================================
# Application Factory
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the relay container on startup and close its clients on shutdown."""
    if app.state.container is None:
        settings = startup_validation(app.state.settings)
        app.state.container = build_container(settings)
        logger.info("Relay container ready")

    yield

    container: Optional[RelayContainer] = app.state.container
    if container is not None:
        try:
            await container.aclose()
        except Exception as e:
            logger.warning("Failed to close relay clients: %s", e)


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[RelayContainer] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Settings to run with (defaults to get_settings())
        container: Prebuilt relay container; when given, startup skips
            validation and wiring (used by tests)
    """
    if settings is None:
        settings = container.settings if container is not None else get_settings()

    app = FastAPI(
        title="Signal Relay",
        description="Relays Ghost publish events to the newsletter system and "
                    "fulfils Stripe purchases with S3 download links sent over SES.",
        version="1.0.0",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "health", "description": "Health checks and system status"},
            {"name": "webhooks", "description": "Ghost and Stripe webhook receivers"},
            {"name": "subscribe", "description": "Newsletter signup"},
            {"name": "intake", "description": "Project inquiry form"},
            {"name": "checkout", "description": "Stripe Checkout sessions"},
        ],
    )
    app.state.settings = settings
    app.state.container = container

    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "X-Request-ID",
            "Accept",
            "Origin",
        ],
        expose_headers=["X-Request-ID", "X-Response-Time"],
        max_age=600,
    )

    # Added last so it wraps every other middleware
    if settings.logging.request_logging_enabled:
        app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router)
    app.include_router(ghost_webhook_router)
    app.include_router(stripe_webhook_router)
    app.include_router(subscribe_router)
    app.include_router(intake_router)
    app.include_router(checkout_router)

    return app


init_sentry(get_settings())
app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
