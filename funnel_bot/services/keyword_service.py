import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from funnel_bot.logging_config import get_logger
from funnel_bot.schemas.funnel import ButtonConfig, ButtonSpec, FunnelConfig

logger = get_logger("keyword_service")

WELCOME = "welcome"
HELP = "help"
KONSULTASI = "konsultasi"
FUNNEL_STAGES = ("mulai", "tips", "bonus", "autopilot")

UNKNOWN_NAME = "Unknown"
WELCOME_GREETING = "Halo Juragan!"

# Order matters: earlier groups shadow later ones.
KEYWORD_GROUPS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (KONSULTASI, ("konsultasi", "konsultan", "hubungi")),
    ("autopilot", ("autopilot", "franchise", "sistem")),
    ("bonus", ("bonus", "template", "download")),
    ("tips", ("tips", "strategi", "bep")),
    ("mulai", ("mulai", "start", "download ebook")),
    (HELP, ("help", "menu", "bantuan")),
)

# Stage -> (button id, button_text key suffix). Labels live in
# system_messages.button_text["<stage>_<suffix>"].
BUTTON_LAYOUT: dict[str, tuple[tuple[str, str], ...]] = {
    WELCOME: (("mulai", "download"), ("tips", "tips"), (KONSULTASI, "consultation")),
    "mulai": (("tips", "tips"), ("bonus", "bonus"), ("autopilot", "autopilot")),
    "tips": (("bonus", "bonus"), ("autopilot", "autopilot"), (KONSULTASI, "consultation")),
    "bonus": (("autopilot", "autopilot"), (KONSULTASI, "consultation")),
    "autopilot": ((KONSULTASI, "consultation"),),
}

GLOBAL_PLACEHOLDERS = ("ebook_link", "bonus_link", "konsultan_wa")
CONTEXT_PLACEHOLDERS = ("name", "phone", "message", "timestamp")
_UNRESOLVED_TOKEN = re.compile(r"\{\{?(\w+)\}\}?")


@dataclass(frozen=True)
class KeywordMatch:
    key: str
    message: str
    reaction: str


def normalize_text(text: Optional[str]) -> str:
    return (text or "").lower().strip()


def render_placeholders(template: str, config: FunnelConfig, context: Optional[dict] = None) -> str:
    """Replace ``{{link}}`` globals and ``{name}``-style context tokens.

    Tokens without data are left untouched and reported in a warning.
    """
    result = template
    for key in GLOBAL_PLACEHOLDERS:
        result = result.replace("{{" + key + "}}", getattr(config, key))

    for key, value in (context or {}).items():
        if key in CONTEXT_PLACEHOLDERS and value:
            result = result.replace("{" + key + "}", str(value))

    unresolved = sorted(
        {
            token
            for token in _UNRESOLVED_TOKEN.findall(result)
            if token in GLOBAL_PLACEHOLDERS or token in CONTEXT_PLACEHOLDERS
        }
    )
    if unresolved:
        logger.warning("Unresolved template placeholders", extra={"context": {"tokens": unresolved}})
    return result


def resolve_keyword(text: Optional[str], config: FunnelConfig) -> KeywordMatch:
    """Map free text or a reply id to a funnel stage; unmatched input falls back to welcome."""
    normalized = normalize_text(text)

    for key, keywords in KEYWORD_GROUPS:
        if not any(keyword in normalized for keyword in keywords):
            continue
        stage = config.funnel.get(key)
        if stage is None:
            # matched group with no configured stage: keep scanning
            continue
        return KeywordMatch(key=key, message=render_placeholders(stage.message, config), reaction=stage.reaction)

    welcome = config.funnel[WELCOME]
    return KeywordMatch(key=WELCOME, message=render_placeholders(welcome.message, config), reaction=welcome.reaction)


def get_button_config(stage: str, config: FunnelConfig) -> Optional[ButtonConfig]:
    """Buttons, footer and follow-up text for a stage, or None when it has no labelled buttons."""
    layout = BUTTON_LAYOUT.get(stage)
    if not layout:
        return None

    labels = config.system_messages.button_text
    buttons = []
    for button_id, suffix in layout:
        title = labels.get(f"{stage}_{suffix}")
        if title:
            buttons.append(ButtonSpec(id=button_id, title=title))
    if not buttons:
        return None

    follow_up = config.system_messages.follow_up_messages.get(f"after_{stage}")
    return ButtonConfig(
        buttons=buttons,
        footer=config.system_messages.button_footer.get(stage),
        follow_up=render_placeholders(follow_up, config) if follow_up else None,
    )


def personalize_welcome(message: str, user_name: str) -> str:
    if user_name and user_name != UNKNOWN_NAME:
        return message.replace(WELCOME_GREETING, f"Halo {user_name}!")
    return message


def build_offline_message(config: FunnelConfig, user_name: str) -> str:
    offline = config.system_messages.offline_hours
    message = offline.message
    if offline.greeting_with_name and user_name and user_name != UNKNOWN_NAME:
        return message.replace("{name}", user_name)
    return message.replace("{name}!", "!").replace("{name}", "").replace("Halo !", "Halo!")


def format_timestamp(moment: datetime) -> str:
    """Indonesian locale style, e.g. ``19/10/2026, 14.05.03``."""
    return moment.strftime("%d/%m/%Y, %H.%M.%S")


def build_consultation_notification(
    config: FunnelConfig,
    *,
    user_name: str,
    phone: str,
    message: str,
    timestamp: str,
) -> str:
    template = config.system_messages.consultation_notification.template
    return render_placeholders(
        template,
        config,
        {"name": user_name, "phone": phone, "message": message, "timestamp": timestamp},
    )
