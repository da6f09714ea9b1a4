from funnel_bot.schemas.broadcast import BroadcastRequest, BroadcastResponse
from funnel_bot.schemas.funnel import ButtonConfig, ButtonSpec, FunnelConfig, FunnelStage
from funnel_bot.schemas.webhook import ChangeValue, InboundMessage, WebhookAck

__all__ = [
    "BroadcastRequest",
    "BroadcastResponse",
    "ButtonConfig",
    "ButtonSpec",
    "ChangeValue",
    "FunnelConfig",
    "FunnelStage",
    "InboundMessage",
    "WebhookAck",
]
