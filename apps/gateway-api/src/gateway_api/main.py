"""
Gateway API Service

FastAPI app in front of the messaging gateway.

Responsibilities:
- Receive provider webhooks (always answer 200)
- Tenant management API (config, quota, sends, templates, triggers, chat, profile)
- Realtime WebSocket per tenant
- Map gateway errors to HTTP status codes
"""

import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from basecore.logging import setup_logging
from basecore.redis import get_async_redis_client
from basecore.settings import Settings, get_settings
from messaging_gateway.errors import (
    ConfigurationError,
    EncryptionError,
    EntitlementError,
    GatewayError,
    NotFoundError,
    QuotaError,
    ValidationError,
)
from messaging_gateway.providers import TokenCache, get_provider
from messaging_gateway.providers.base import MessagingProvider, ProviderError
from messaging_gateway.realtime.notifier import ConnectionRegistry, RedisRealtimeNotifier
from messaging_gateway.security.vault import CredentialVault

from gateway_api.routers import chat, config, messages, profile, quota, realtime, templates, triggers, webhook

setup_logging()
logger = logging.getLogger(__name__)

# First match wins, so subclasses must come before their bases
ERROR_STATUS = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (EntitlementError, 403),
    (QuotaError, 402),
    (ConfigurationError, 503),
    (ProviderError, 502),
    (EncryptionError, 500),
)


def status_for(error: GatewayError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 500


def _log_relay_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Realtime relay stopped: {error!r}", exc_info=error)


def create_app(settings: Settings | None = None, provider: MessagingProvider | None = None) -> FastAPI:
    """
    Build the API app.

    Args:
        settings: Settings to use (defaults to the environment)
        provider: Provider override (defaults to MESSAGING_PROVIDER)
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Messaging Gateway",
        description="Tenant messaging: sends, templates, triggers, conversations and provider webhooks",
        version="1.0.0",
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{type(exc).__name__}: {exc.message}", extra={"code": exc.code, "path": request.url.path})
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.on_event("startup")
    async def startup():
        """Build process-wide components. A missing master secret is fatal."""
        try:
            app.state.vault = CredentialVault.from_settings(settings)
        except GatewayError as e:
            logger.error(f"Failed to start gateway API: {e.message}")
            raise

        app.state.token_cache = TokenCache(settings.PARTNER_TOKEN_TTL_SECONDS)
        app.state.provider = provider or get_provider(settings, token_cache=app.state.token_cache)
        app.state.registry = ConnectionRegistry()
        app.state.relay_task = None

        if settings.REALTIME_BACKEND == "redis":
            notifier = RedisRealtimeNotifier(get_async_redis_client())
            app.state.notifier = notifier
            app.state.relay_task = asyncio.create_task(notifier.relay(app.state.registry))
            app.state.relay_task.add_done_callback(_log_relay_exit)
        else:
            app.state.notifier = app.state.registry

        logger.info(
            "Gateway API started",
            extra={"provider": settings.MESSAGING_PROVIDER, "realtime": settings.REALTIME_BACKEND},
        )

    @app.on_event("shutdown")
    async def shutdown():
        relay_task = getattr(app.state, "relay_task", None)
        if relay_task is not None:
            relay_task.cancel()
        await app.state.provider.close()

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "service": "gateway-api"}

    app.include_router(webhook.router)
    app.include_router(realtime.router)
    for module in (config, quota, messages, templates, triggers, chat, profile):
        app.include_router(module.router, prefix="/api/messaging")

    return app


app = create_app()
