from typing import Optional, Sequence

import httpx

from funnel_bot.logging_config import get_logger
from funnel_bot.schemas.funnel import ButtonSpec, ListSection
from funnel_bot.services.result import Result

logger = get_logger("whatsapp_service")

SEND_TIMEOUT_SECONDS = 10.0
SIGNAL_TIMEOUT_SECONDS = 5.0
BUTTON_TITLE_MAX = 20


class WhatsAppSendError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        return data["error"].get("message") or str(data["error"])
    return str(data)[:200]


class WhatsAppService:
    """Service for sending messages through the WhatsApp Cloud API."""

    def __init__(self, api_url: str, token: str):
        self.api_url = api_url
        self.token = token

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

    async def _post(self, payload: dict, timeout: float) -> Result[dict]:
        """POST one payload to the messages endpoint."""
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(self.api_url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            return Result.failure(str(e) or type(e).__name__, "network_error")

        if response.status_code >= 400:
            result = Result.failure(_error_message(response), "api_error")
            result.value = {"status_code": response.status_code}
            return result

        try:
            return Result.success(response.json())
        except ValueError:
            return Result.success({})

    async def _send(self, to: str, payload: dict, kind: str) -> dict:
        result = await self._post(payload, SEND_TIMEOUT_SECONDS)
        if not result.ok:
            status_code = (result.value or {}).get("status_code")
            logger.error(
                f"Failed to send {kind} to {to}: {result.error}",
                extra={"context": {"to": to, "kind": kind, "status_code": status_code}},
            )
            raise WhatsAppSendError(result.error or "send failed", status_code)
        logger.info(f"Sent {kind} to {to}")
        return result.value or {}

    @staticmethod
    def _base_payload(to: str, message_type: str) -> dict:
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": message_type,
        }

    async def send_message(self, to: str, body: str) -> dict:
        """Send plain text. Raises WhatsAppSendError."""
        payload = self._base_payload(to, "text")
        payload["text"] = {"body": body}
        return await self._send(to, payload, "text")

    async def send_interactive_buttons(
        self,
        to: str,
        body_text: str,
        buttons: Sequence[ButtonSpec | dict],
        footer_text: Optional[str] = None,
    ) -> dict:
        """Send reply buttons. Titles are cut to the provider's 20-char limit."""
        reply_buttons = []
        for index, button in enumerate(buttons):
            data = button.model_dump() if isinstance(button, ButtonSpec) else dict(button)
            reply_buttons.append(
                {
                    "type": "reply",
                    "reply": {
                        "id": data.get("id") or f"btn_{index}",
                        "title": data["title"][:BUTTON_TITLE_MAX],
                    },
                }
            )

        payload = self._base_payload(to, "interactive")
        payload["interactive"] = {
            "type": "button",
            "body": {"text": body_text},
            "action": {"buttons": reply_buttons},
        }
        if footer_text:
            payload["interactive"]["footer"] = {"text": footer_text}
        return await self._send(to, payload, "interactive buttons")

    async def send_interactive_list(
        self,
        to: str,
        body_text: str,
        button_text: str,
        sections: Sequence[ListSection | dict],
        footer_text: Optional[str] = None,
    ) -> dict:
        """Send a list menu."""
        section_data = [
            section.model_dump(exclude_none=True) if isinstance(section, ListSection) else section
            for section in sections
        ]
        payload = self._base_payload(to, "interactive")
        payload["interactive"] = {
            "type": "list",
            "body": {"text": body_text},
            "action": {"button": button_text, "sections": section_data},
        }
        if footer_text:
            payload["interactive"]["footer"] = {"text": footer_text}
        return await self._send(to, payload, "interactive list")

    async def send_reaction(self, to: str, message_id: str, emoji: str) -> bool:
        payload = self._base_payload(to, "reaction")
        payload["reaction"] = {"message_id": message_id, "emoji": emoji}
        result = await self._post(payload, SIGNAL_TIMEOUT_SECONDS)
        if not result.ok:
            logger.warning(f"Failed to send reaction: {result.error}", extra={"context": {"to": to}})
            return False
        logger.info(f"Reaction {emoji} sent to {to}")
        return True

    async def mark_as_read(self, message_id: str) -> bool:
        payload = {
            "messaging_product": "whatsapp",
            "status": "read",
            "message_id": message_id,
        }
        result = await self._post(payload, SIGNAL_TIMEOUT_SECONDS)
        if not result.ok:
            logger.warning(f"Failed to mark message as read: {result.error}", extra={"context": {"message_id": message_id}})
            return False
        logger.info(f"Message {message_id} marked as read")
        return True

    async def send_typing_indicator(self, to: str) -> bool:
        result = await self._post(self._base_payload(to, "typing"), SIGNAL_TIMEOUT_SECONDS)
        if not result.ok:
            logger.warning(f"Failed to send typing indicator: {result.error}", extra={"context": {"to": to}})
            return False
        return True
