import json
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from funnel_bot.config import Settings
from funnel_bot.schemas.funnel import FunnelConfig
from funnel_bot.services.analytics_service import NullAnalyticsSink
from funnel_bot.services.funnel_config import FunnelConfigProvider
from funnel_bot.services.message_cache import MessageCache
from funnel_bot.services.message_processor import MessageProcessor
from funnel_bot.services.rate_limiter import RateLimiter
from funnel_bot.services.result import Result
from funnel_bot.services.whatsapp_service import WhatsAppSendError

MESSAGES_PATH = Path(__file__).resolve().parent.parent / "messages.json"

# Monday 10:00 and 20:00 in Asia/Jakarta (UTC+7)
OPEN_TIME = datetime(2026, 10, 19, 3, 0, tzinfo=timezone.utc)
CLOSED_TIME = datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc)

ADMIN_NUMBER = "6280000000000"


class FakeWhatsApp:
    """Records every outbound call instead of hitting the Cloud API."""

    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    def _record(self, method, *args):
        self.calls.append((method, *args))
        if method in self.fail_on:
            raise WhatsAppSendError(f"{method} failed", 500)

    def methods(self):
        return [call[0] for call in self.calls]

    def sent_to(self, number):
        return [call for call in self.calls if call[0] == "send_message" and call[1] == number]

    async def send_message(self, to, body):
        self._record("send_message", to, body)
        return {"messages": [{"id": "wamid.out"}]}

    async def send_interactive_buttons(self, to, body_text, buttons, footer_text=None):
        self._record("send_interactive_buttons", to, body_text, buttons, footer_text)
        return {}

    async def send_interactive_list(self, to, body_text, button_text, sections, footer_text=None):
        self._record("send_interactive_list", to, body_text, button_text, sections, footer_text)
        return {}

    async def send_reaction(self, to, message_id, emoji):
        self._record("send_reaction", to, message_id, emoji)
        return True

    async def mark_as_read(self, message_id):
        self._record("mark_as_read", message_id)
        return True

    async def send_typing_indicator(self, to):
        self._record("send_typing_indicator", to)
        return True


class RecordingAnalytics(NullAnalyticsSink):
    """Analytics double that keeps every event it receives."""

    enabled = True

    def __init__(self, previous_keyword=None, stored_name=None):
        self.events = []
        self.previous_keyword = previous_keyword
        self.stored_name = stored_name

    def names(self):
        return [event[0] for event in self.events]

    async def log_message(self, entry):
        self.events.append(("log_message", entry))
        return Result.success("msg-1")

    async def log_consultation(self, entry):
        self.events.append(("log_consultation", entry))
        return Result.success("consult-1")

    async def track_user(self, user_id, name=None, keyword=None):
        self.events.append(("track_user", user_id, name, keyword))
        return Result.success(self.previous_keyword)

    async def track_keyword(self, keyword):
        self.events.append(("track_keyword", keyword))
        return Result.success(keyword)

    async def track_button_click(self, click):
        self.events.append(("track_button_click", click))
        return Result.success(True)

    async def track_conversion(self, user_id, from_keyword, to_keyword):
        self.events.append(("track_conversion", user_id, from_keyword, to_keyword))
        return Result.success(True)

    async def log_error(self, error_type, message, stack=None, context=None):
        self.events.append(("log_error", error_type, message))
        return Result.success(True)

    async def get_user_name(self, user_id):
        return Result.success(self.stored_name)


@pytest.fixture
def messages_path():
    return MESSAGES_PATH


@pytest.fixture
def funnel_data():
    return json.loads(MESSAGES_PATH.read_text(encoding="utf-8"))


@pytest.fixture
def funnel_config(funnel_data):
    return FunnelConfig.model_validate(funnel_data)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        wa_token="test-token",
        phone_id="123456789",
        verify_token="verify-me",
        admin_number=ADMIN_NUMBER,
        messages_path=str(MESSAGES_PATH),
        bot_api_secret="broadcast-secret",
    )


@pytest.fixture
def config_provider():
    provider = FunnelConfigProvider(MESSAGES_PATH)
    provider.load()
    return provider


@pytest.fixture
def whatsapp():
    return FakeWhatsApp()


@pytest.fixture
def analytics():
    return RecordingAnalytics()


@pytest.fixture
def make_processor(config_provider, whatsapp, analytics):
    """Factory for processors with no real waiting and a fixed clock."""

    def _make(now=OPEN_TIME, **overrides):
        options = {
            "whatsapp": whatsapp,
            "cache": MessageCache(),
            "rate_limiter": RateLimiter(5000),
            "config_provider": config_provider,
            "admin_number": ADMIN_NUMBER,
            "analytics": analytics,
            "sleep_func": AsyncMock(),
            "delay_func": lambda: 1.5,
            "now_func": lambda: now,
        }
        options.update(overrides)
        return MessageProcessor(**options)

    return _make


def text_message(body, message_id="wamid.1", sender="6281111111111"):
    return {"id": message_id, "from": sender, "type": "text", "timestamp": "1760000000", "text": {"body": body}}


def button_reply(reply_id, title=None, message_id="wamid.btn", sender="6281111111111"):
    return {
        "id": message_id,
        "from": sender,
        "type": "interactive",
        "interactive": {"type": "button_reply", "button_reply": {"id": reply_id, "title": title or reply_id}},
    }


def list_reply(reply_id, title=None, message_id="wamid.list", sender="6281111111111"):
    return {
        "id": message_id,
        "from": sender,
        "type": "interactive",
        "interactive": {"type": "list_reply", "list_reply": {"id": reply_id, "title": title or reply_id}},
    }
