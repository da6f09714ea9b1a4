from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class TextContent(BaseModel):
    body: str = ""


class ReplyContent(BaseModel):
    id: str
    title: Optional[str] = None
    description: Optional[str] = None


class InteractiveContent(BaseModel):
    type: str  # button_reply, list_reply
    button_reply: Optional[ReplyContent] = None
    list_reply: Optional[ReplyContent] = None

    @property
    def reply(self) -> Optional[ReplyContent]:
        if self.type == "button_reply":
            return self.button_reply
        if self.type == "list_reply":
            return self.list_reply
        return None


class InboundMessage(BaseModel):
    """Single entry of ``value.messages`` in a Cloud API delivery."""

    id: str
    from_number: str = Field(alias="from")  # "from" is reserved in Python
    type: str
    timestamp: Optional[str] = None
    text: Optional[TextContent] = None
    interactive: Optional[InteractiveContent] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def is_interactive(self) -> bool:
        return self.type == "interactive"

    @property
    def is_supported(self) -> bool:
        return self.type in ("text", "interactive")

    def effective_text(self) -> str:
        """Free text for text messages, the selected reply id for interactive ones."""
        if self.type == "text":
            return self.text.body if self.text else ""
        if self.type == "interactive" and self.interactive:
            reply = self.interactive.reply
            return reply.id if reply else ""
        return ""

    def reply_title(self) -> Optional[str]:
        if self.interactive and self.interactive.reply:
            return self.interactive.reply.title
        return None


class ContactProfile(BaseModel):
    name: Optional[str] = None


class Contact(BaseModel):
    wa_id: Optional[str] = None
    profile: Optional[ContactProfile] = None


class ChangeValue(BaseModel):
    messaging_product: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    contacts: list[Contact] = Field(default_factory=list)
    messages: list[InboundMessage] = Field(default_factory=list)
    statuses: Optional[list[Any]] = None

    @property
    def contact_name(self) -> Optional[str]:
        if self.contacts and self.contacts[0].profile:
            return self.contacts[0].profile.name or None
        return None


def extract_message(payload: Any) -> tuple[Optional[dict], Optional[dict]]:
    """Pull ``entry[0].changes[0].value`` and its first message out of a raw delivery."""
    if not isinstance(payload, dict):
        return None, None
    entries = payload.get("entry")
    if not isinstance(entries, list) or not entries or not isinstance(entries[0], dict):
        return None, None
    changes = entries[0].get("changes")
    if not isinstance(changes, list) or not changes or not isinstance(changes[0], dict):
        return None, None
    value = changes[0].get("value")
    if not isinstance(value, dict):
        return None, None
    messages = value.get("messages")
    if not isinstance(messages, list) or not messages or not isinstance(messages[0], dict):
        return value, None
    return value, messages[0]


class WebhookAck(BaseModel):
    status: str = "received"
