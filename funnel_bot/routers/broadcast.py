"""Authenticated outbound broadcast endpoint."""

import asyncio
import re
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse

from funnel_bot.config import Settings
from funnel_bot.dependencies import get_settings, get_whatsapp
from funnel_bot.logging_config import get_logger
from funnel_bot.schemas.broadcast import MAX_MESSAGE_LENGTH, BroadcastRequest, BroadcastResponse
from funnel_bot.services.whatsapp_service import WhatsAppService

logger = get_logger("broadcast")

router = APIRouter(prefix="/api")

PHONE_PATTERN = re.compile(r"^\d{10,15}$")
BROADCAST_RATE_LIMIT = 10
BROADCAST_RATE_WINDOW_SECONDS = 60
SEND_PAUSE_SECONDS = 0.5


def is_valid_phone(number: str) -> bool:
    return bool(PHONE_PATTERN.match(number))


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/send-message", response_model=BroadcastResponse)
async def send_message(
    payload: BroadcastRequest,
    request: Request,
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
    whatsapp: WhatsAppService = Depends(get_whatsapp),
):
    if not settings.bot_api_secret:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "BOT_API_SECRET not configured")
    if authorization != f"Bearer {settings.bot_api_secret}":
        return _error(status.HTTP_401_UNAUTHORIZED, "Unauthorized")

    if request.app.state.broadcast_limiter.hit(_client_key(request)):
        logger.warning("Broadcast rate limit hit", extra={"context": {"client": _client_key(request)}})
        return _error(status.HTTP_429_TOO_MANY_REQUESTS, "Too many requests, try again later.")

    recipients = payload.recipients()
    if not recipients or not payload.message:
        return _error(status.HTTP_400_BAD_REQUEST, "Missing required fields: to, message")
    if len(payload.message) > MAX_MESSAGE_LENGTH:
        return _error(status.HTTP_400_BAD_REQUEST, f"Message exceeds {MAX_MESSAGE_LENGTH} characters")

    valid_recipients = [number for number in recipients if is_valid_phone(number)]
    if not valid_recipients:
        return _error(status.HTTP_400_BAD_REQUEST, "No valid phone numbers provided")

    logger.info(f"Broadcasting message to {len(valid_recipients)} recipient(s)")
    try:
        for number in valid_recipients:
            await whatsapp.send_message(number, payload.message)
            # number only, never the message body
            logger.info(f"Broadcast message sent to {number}")
            await asyncio.sleep(SEND_PAUSE_SECONDS)
    except Exception as e:
        logger.error(f"Failed to send broadcast: {e}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to send message", details=str(e))

    return JSONResponse(content=BroadcastResponse(success=True, sent_to=len(valid_recipients)).model_dump(by_alias=True))
