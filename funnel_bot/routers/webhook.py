import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from funnel_bot import __version__
from funnel_bot.config import Settings
from funnel_bot.dependencies import get_processor, get_settings
from funnel_bot.logging_config import get_logger
from funnel_bot.schemas.webhook import ChangeValue, InboundMessage, WebhookAck, extract_message
from funnel_bot.services.message_processor import MessageProcessor

logger = get_logger("webhook")

router = APIRouter(prefix="/webhook")

BOT_NAME = "Jalan Pintas Juragan Photobox"


def format_uptime(seconds: float) -> str:
    seconds = int(seconds)
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m {seconds % 60}s"


def _uptime_seconds(request: Request) -> float:
    return time.monotonic() - request.app.state.started_at


async def process_delivery(processor: MessageProcessor, message: InboundMessage, contact_name: Optional[str]) -> None:
    """Background task body. Never lets an exception escape."""
    try:
        outcome = await processor.process(message, contact_name)
        logger.info(f"Message {message.id} processed: {outcome.value}")
    except Exception as e:
        logger.error(
            f"Critical error processing webhook message: {e}",
            extra={"context": {"message_id": message.id, "from": message.from_number}},
            exc_info=True,
        )


@router.get("")
async def verify_webhook(
    hub_mode: Optional[str] = Query(default=None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
    settings: Settings = Depends(get_settings),
):
    logger.info("Webhook verification attempt", extra={"context": {"mode": hub_mode}})
    if hub_mode == "subscribe" and hub_verify_token == settings.verify_token:
        logger.info("Webhook verified")
        return PlainTextResponse(hub_challenge or "", status_code=200)

    logger.warning("Webhook verification failed: token mismatch")
    return PlainTextResponse("Forbidden", status_code=403)


@router.post("", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    processor: MessageProcessor = Depends(get_processor),
):
    """Acknowledge immediately; the message is processed after the response is sent."""
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Webhook body is not valid JSON, ignored")
        return WebhookAck()

    raw_value, raw_message = extract_message(payload)
    if raw_message is None:
        logger.info("Event is not a message, skipped")
        return WebhookAck()

    try:
        message = InboundMessage.model_validate(raw_message)
    except ValidationError as e:
        logger.warning("Malformed message payload, ignored", extra={"context": {"error": str(e)}})
        return WebhookAck()

    contact_name = None
    try:
        contact_name = ChangeValue.model_validate({**raw_value, "messages": []}).contact_name
    except ValidationError:
        logger.warning("Malformed contacts block, sender name unavailable")

    background_tasks.add_task(process_delivery, processor, message, contact_name)
    return WebhookAck()


@router.get("/health")
async def health(request: Request, settings: Settings = Depends(get_settings)):
    state = request.app.state
    config_status = state.config_provider.status()
    return {
        "status": "healthy",
        "bot": BOT_NAME,
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": format_uptime(_uptime_seconds(request)),
        "cache": {"size": state.cache.size, "maxSize": state.cache.max_size},
        "config": {"loaded": config_status["loaded"], "source": config_status["source"]},
        "environment": {"phoneID": settings.phone_id, "apiVersion": settings.api_version},
    }


@router.get("/stats")
async def stats(request: Request):
    state = request.app.state
    return {
        "processedMessages": state.cache.size,
        "activeUsers": state.rate_limiter.active_users,
        "uptime": int(_uptime_seconds(request)),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
