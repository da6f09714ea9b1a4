import asyncio
import random
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional

from funnel_bot.logging_config import get_logger, preview
from funnel_bot.schemas.funnel import FunnelConfig
from funnel_bot.schemas.webhook import InboundMessage
from funnel_bot.services.analytics_service import (
    AnalyticsSink,
    ButtonClick,
    ConsultationLog,
    MessageLog,
    NullAnalyticsSink,
)
from funnel_bot.services.funnel_config import FunnelConfigProvider
from funnel_bot.services.keyword_service import (
    FUNNEL_STAGES,
    HELP,
    KONSULTASI,
    UNKNOWN_NAME,
    WELCOME,
    KeywordMatch,
    build_consultation_notification,
    build_offline_message,
    format_timestamp,
    get_button_config,
    personalize_welcome,
    resolve_keyword,
)
from funnel_bot.services.message_cache import MessageCache
from funnel_bot.services.rate_limiter import RateLimiter
from funnel_bot.services.whatsapp_service import WhatsAppService
from funnel_bot.services.working_hours import is_within_working_hours, local_time_or_utc

logger = get_logger("message_processor")

CONSULTATION_PAUSE_SECONDS = 1.0
FOLLOW_UP_PAUSE_SECONDS = 2.0
MIN_REPLY_DELAY_SECONDS = 1.0
MAX_REPLY_DELAY_SECONDS = 3.0


class ProcessOutcome(str, Enum):
    OFFLINE = "offline"
    DUPLICATE = "duplicate"
    RATE_LIMITED = "rate_limited"
    UNSUPPORTED = "unsupported"
    REPLIED = "replied"
    CONSULTATION = "consultation"
    FAILED = "failed"


def random_reply_delay() -> float:
    """Human-like pause before a funnel reply."""
    return random.uniform(MIN_REPLY_DELAY_SECONDS, MAX_REPLY_DELAY_SECONDS)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MessageProcessor:
    """Runs one inbound message through the funnel.

    Order: name lookup, working-hours gate, dedup, rate limit, type check,
    keyword resolution, analytics, reply dispatch. Each gate can end processing.
    """

    def __init__(
        self,
        whatsapp: WhatsAppService,
        cache: MessageCache,
        rate_limiter: RateLimiter,
        config_provider: FunnelConfigProvider,
        admin_number: str,
        analytics: Optional[AnalyticsSink] = None,
        sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
        delay_func: Callable[[], float] = random_reply_delay,
        now_func: Callable[[], datetime] = _utc_now,
    ):
        self.whatsapp = whatsapp
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.config_provider = config_provider
        self.admin_number = admin_number
        self.analytics = analytics or NullAnalyticsSink()
        self._sleep = sleep_func
        self._delay = delay_func
        self._now = now_func

    async def resolve_user_name(self, sender: str, contact_name: Optional[str] = None) -> str:
        """Webhook profile name first, then the stored profile, else "Unknown"."""
        if contact_name:
            return contact_name
        try:
            result = await self.analytics.get_user_name(sender)
        except Exception as e:
            logger.warning(f"Failed to look up user name: {e}", extra={"context": {"from": sender}})
            return UNKNOWN_NAME
        if result.ok and result.value:
            return result.value
        return UNKNOWN_NAME

    async def process(self, message: InboundMessage, contact_name: Optional[str] = None) -> ProcessOutcome:
        sender = message.from_number
        config = await self.config_provider.wait_ready()
        user_name = await self.resolve_user_name(sender, contact_name)

        if not is_within_working_hours(config.working_hours, self._now()):
            await self.whatsapp.send_message(sender, build_offline_message(config, user_name))
            logger.info(f"Offline auto-reply sent to {sender}", extra={"context": {"name": user_name}})
            return ProcessOutcome.OFFLINE

        text_body = message.effective_text()
        if message.is_interactive:
            logger.info(f"Interactive reply selected: {text_body}")

        if self.cache.has(message.id):
            logger.warning(f"Duplicate message ignored: {message.id}")
            return ProcessOutcome.DUPLICATE
        self.cache.add(message.id)

        logger.info(
            "Message received",
            extra={
                "context": {
                    "from": sender,
                    "name": user_name,
                    "type": message.type,
                    "body": preview(text_body),
                    "id": message.id,
                }
            },
        )

        if self.rate_limiter.is_limited(sender):
            logger.warning(f"Rate limit hit for: {sender}")
            return ProcessOutcome.RATE_LIMITED

        if not message.is_supported:
            logger.warning(f"Unsupported message type: {message.type}")
            await self.whatsapp.send_message(sender, config.errors.unsupported_type)
            return ProcessOutcome.UNSUPPORTED

        match = resolve_keyword(text_body, config)
        logger.info(f"Keyword matched: {match.key}", extra={"context": {"from": sender}})

        await self._record_analytics(message, match, text_body, user_name)

        if match.key == KONSULTASI:
            await self._handle_consultation(config, message, match, text_body, user_name)
            return ProcessOutcome.CONSULTATION

        return await self._handle_regular(config, message, match, user_name)

    async def _safe(self, operation: str, call: Awaitable):
        try:
            result = await call
        except Exception as e:
            logger.warning(f"Analytics {operation} failed: {e}")
            return None
        if not result.ok:
            logger.warning(f"Analytics {operation} failed: {result.error}")
        return result

    async def _record_analytics(self, message: InboundMessage, match: KeywordMatch, text_body: str, user_name: str) -> None:
        sender = message.from_number
        tracked = await self._safe("track_user", self.analytics.track_user(sender, user_name, match.key))
        await self._safe(
            "log_message",
            self.analytics.log_message(
                MessageLog(
                    message_id=message.id,
                    sender=sender,
                    type=message.type,
                    text_body=text_body,
                    keyword=match.key,
                    name=user_name,
                )
            ),
        )
        await self._safe("track_keyword", self.analytics.track_keyword(match.key))

        if not message.is_interactive:
            return

        await self._safe(
            "track_button_click",
            self.analytics.track_button_click(
                ButtonClick(sender=sender, button_id=text_body, button_title=message.reply_title() or text_body)
            ),
        )
        previous_keyword = tracked.value if tracked is not None and tracked.ok else None
        if previous_keyword and previous_keyword != match.key:
            await self._safe("track_conversion", self.analytics.track_conversion(sender, previous_keyword, match.key))

    async def _report_failure(self, error_type: str, exc: Exception, sender: str) -> None:
        await self._safe(
            "log_error",
            self.analytics.log_error(error_type, str(exc), context={"from": sender, "error": type(exc).__name__}),
        )

    async def _send_general_error(self, config: FunnelConfig, sender: str) -> None:
        try:
            await self.whatsapp.send_message(sender, config.errors.general_error)
        except Exception as e:
            logger.error(f"Failed to send error message: {e}", extra={"context": {"from": sender}})

    async def _handle_consultation(
        self,
        config: FunnelConfig,
        message: InboundMessage,
        match: KeywordMatch,
        text_body: str,
        user_name: str,
    ) -> None:
        """Acknowledge the request and notify the admin. Failures are re-raised."""
        sender = message.from_number
        try:
            await self.whatsapp.send_typing_indicator(sender)
            await self._sleep(CONSULTATION_PAUSE_SECONDS)
            await self.whatsapp.send_message(sender, match.message)

            moment = local_time_or_utc(config.working_hours.timezone, self._now())
            notification = build_consultation_notification(
                config,
                user_name=user_name,
                phone=sender,
                message=text_body,
                timestamp=format_timestamp(moment),
            )
            await self.whatsapp.send_message(self.admin_number, notification)
            await self.whatsapp.send_reaction(sender, message.id, match.reaction)

            await self._safe(
                "log_consultation",
                self.analytics.log_consultation(
                    ConsultationLog(sender=sender, message=text_body, name=user_name, notified=True)
                ),
            )
            logger.info(f"Consultation processed for {sender}", extra={"context": {"name": user_name}})
        except Exception as e:
            logger.error(f"Error processing consultation: {e}", extra={"context": {"from": sender}})
            await self._report_failure("consultation_error", e, sender)
            await self._send_general_error(config, sender)
            raise

    async def _handle_regular(
        self,
        config: FunnelConfig,
        message: InboundMessage,
        match: KeywordMatch,
        user_name: str,
    ) -> ProcessOutcome:
        sender = message.from_number
        try:
            await self.whatsapp.send_reaction(sender, message.id, match.reaction)
            await self.whatsapp.send_typing_indicator(sender)
            await self._sleep(self._delay())

            logger.info(f"Sending reply for keyword: {match.key}", extra={"context": {"from": sender}})
            reply = match.message
            if match.key == WELCOME:
                reply = personalize_welcome(reply, user_name)

            await self._dispatch(config, sender, match.key, reply)
            await self.whatsapp.mark_as_read(message.id)
        except Exception as e:
            logger.error(f"Error in message flow: {e}", extra={"context": {"from": sender, "keyword": match.key}})
            await self._report_failure("message_flow_error", e, sender)
            await self._send_general_error(config, sender)
            return ProcessOutcome.FAILED

        logger.info(f"Message flow completed for {sender}", extra={"context": {"name": user_name}})
        return ProcessOutcome.REPLIED

    async def _dispatch(self, config: FunnelConfig, sender: str, key: str, reply: str) -> None:
        if key == WELCOME:
            buttons = get_button_config(WELCOME, config)
            if buttons:
                await self.whatsapp.send_interactive_buttons(sender, reply, buttons.buttons, buttons.footer)
                return
        elif key == HELP:
            menu = config.system_messages.list_menu
            if menu and menu.sections:
                await self.whatsapp.send_interactive_list(sender, reply, menu.button_text, menu.sections, menu.footer_text)
                return
        elif key in FUNNEL_STAGES:
            await self.whatsapp.send_message(sender, reply)
            buttons = get_button_config(key, config)
            if buttons and buttons.follow_up:
                await self._sleep(FOLLOW_UP_PAUSE_SECONDS)
                await self.whatsapp.send_interactive_buttons(sender, buttons.follow_up, buttons.buttons, buttons.footer)
            return

        await self.whatsapp.send_message(sender, reply)
