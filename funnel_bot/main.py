import sys
import time
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from funnel_bot import __version__
from funnel_bot.config import Settings, load_settings
from funnel_bot.logging_config import get_logger, setup_logging
from funnel_bot.routers import broadcast, webhook
from funnel_bot.services.analytics_service import AnalyticsSink, FirestoreAnalyticsSink, NullAnalyticsSink
from funnel_bot.services.firebase_service import init_firebase
from funnel_bot.services.funnel_config import ConfigurationError, FirestoreConfigSource, FunnelConfigProvider
from funnel_bot.services.message_cache import MessageCache
from funnel_bot.services.message_processor import MessageProcessor
from funnel_bot.services.rate_limiter import RateLimiter, RequestRateLimiter
from funnel_bot.services.whatsapp_service import WhatsAppService

logger = get_logger("main")


def build_backends(settings: Settings) -> tuple[Optional[FirestoreConfigSource], AnalyticsSink]:
    """Remote config source and analytics sink; both degrade to local/no-op without Firebase."""
    firebase = init_firebase(settings)
    if firebase is None:
        return None, NullAnalyticsSink()
    try:
        return FirestoreConfigSource(firebase.firestore()), FirestoreAnalyticsSink(firebase.firestore_async())
    except Exception as e:
        logger.error(f"Firestore client unavailable, running without remote store: {e}")
        return None, NullAnalyticsSink()


def create_app(
    settings: Settings,
    *,
    config_provider: Optional[FunnelConfigProvider] = None,
    whatsapp: Optional[WhatsAppService] = None,
    analytics: Optional[AnalyticsSink] = None,
    processor: Optional[MessageProcessor] = None,
) -> FastAPI:
    app = FastAPI(
        title="Funnel Bot",
        description="WhatsApp Cloud API funnel chatbot",
        version=__version__,
    )

    if config_provider is None or analytics is None:
        remote_source, default_analytics = build_backends(settings)
        if config_provider is None:
            config_provider = FunnelConfigProvider(settings.messages_path, remote_source)
        if analytics is None:
            analytics = default_analytics

    whatsapp = whatsapp or WhatsAppService(settings.api_url, settings.wa_token)
    cache = MessageCache(settings.dedup_max_size, settings.dedup_cleanup_size)
    rate_limiter = RateLimiter(settings.rate_limit_window_ms)
    processor = processor or MessageProcessor(
        whatsapp=whatsapp,
        cache=cache,
        rate_limiter=rate_limiter,
        config_provider=config_provider,
        admin_number=settings.admin_number,
        analytics=analytics,
    )

    app.state.settings = settings
    app.state.config_provider = config_provider
    app.state.whatsapp = whatsapp
    app.state.analytics = analytics
    app.state.cache = processor.cache
    app.state.rate_limiter = processor.rate_limiter
    app.state.processor = processor
    app.state.broadcast_limiter = RequestRateLimiter(
        broadcast.BROADCAST_RATE_LIMIT, broadcast.BROADCAST_RATE_WINDOW_SECONDS
    )
    app.state.started_at = time.monotonic()

    app.include_router(webhook.router)
    app.include_router(broadcast.router)

    @app.on_event("startup")
    async def load_funnel_config() -> None:
        try:
            config_provider.load()
        except ConfigurationError as e:
            logger.critical(f"Funnel configuration unavailable from every source: {e}")
            sys.exit(1)
        config_provider.subscribe()
        logger.info(
            "Funnel bot ready",
            extra={
                "context": {
                    "phone_id": settings.phone_id,
                    "config_source": config_provider.source,
                    "analytics_enabled": analytics.enabled,
                }
            },
        )

    @app.on_event("shutdown")
    async def stop_config_watch() -> None:
        config_provider.unsubscribe()
        logger.info("Funnel bot stopped")

    @app.get("/")
    async def root():
        return {
            "message": f"Bot WhatsApp Cloud API - {webhook.BOT_NAME}",
            "status": "running",
            "version": __version__,
            "endpoints": {
                "webhook": "/webhook",
                "health": "/webhook/health",
                "stats": "/webhook/stats",
                "sendMessage": "/api/send-message",
            },
        }

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content={"error": "Not found", "message": "Requested endpoint was not found"},
            )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error(f"Unhandled error: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": "An unexpected error occurred"},
        )

    return app


def run() -> None:
    """Console entry point: ``funnel-bot``."""
    settings = load_settings()
    setup_logging(settings.log_level, mask_numbers=settings.log_mask_numbers)
    app = create_app(settings)
    logger.info(f"Starting funnel bot on port {settings.port}")
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
