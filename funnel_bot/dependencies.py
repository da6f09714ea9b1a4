"""FastAPI dependencies that hand out the services built in ``create_app``."""

from fastapi import Request

from funnel_bot.config import Settings
from funnel_bot.services.message_processor import MessageProcessor
from funnel_bot.services.whatsapp_service import WhatsAppService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_processor(request: Request) -> MessageProcessor:
    return request.app.state.processor


def get_whatsapp(request: Request) -> WhatsAppService:
    return request.app.state.whatsapp
