import sys
from typing import Optional

from pydantic import ValidationError
from pydantic_settings import BaseSettings

from funnel_bot.logging_config import get_logger

logger = get_logger("config")

REQUIRED_ENV_VARS = ("WA_TOKEN", "PHONE_ID", "VERIFY_TOKEN", "ADMIN_NUMBER")


class Settings(BaseSettings):
    wa_token: str
    phone_id: str
    verify_token: str
    admin_number: str
    port: int = 3000

    wa_api_version: str = "v24.0"
    wa_graph_base_url: str = "https://graph.facebook.com"

    bot_api_secret: Optional[str] = None
    messages_path: str = "messages.json"

    firebase_project_id: Optional[str] = None
    firebase_service_account_path: Optional[str] = None
    firebase_client_email: Optional[str] = None
    firebase_private_key: Optional[str] = None

    log_level: str = "INFO"
    log_mask_numbers: bool = True
    dedup_max_size: int = 1000
    dedup_cleanup_size: int = 500
    rate_limit_window_ms: int = 5000

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def api_version(self) -> str:
        return self.wa_api_version

    @property
    def api_url(self) -> str:
        return f"{self.wa_graph_base_url.rstrip('/')}/{self.wa_api_version}/{self.phone_id}/messages"

    @property
    def firebase_enabled(self) -> bool:
        return bool(self.firebase_project_id)


def missing_env_vars(error: ValidationError) -> list[str]:
    """Map pydantic 'missing' errors back to environment variable names."""
    missing = []
    for item in error.errors():
        if item.get("type") != "missing":
            continue
        field = str(item["loc"][0]) if item.get("loc") else ""
        missing.append(field.upper())
    return missing


def load_settings(**overrides) -> Settings:
    """Build settings from the environment. Exits the process when required values are missing."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        missing = missing_env_vars(exc)
        if missing:
            logger.critical(
                f"Required environment variables missing: {', '.join(missing)}",
                extra={"context": {"missing": missing, "required": list(REQUIRED_ENV_VARS)}},
            )
        else:
            logger.critical(f"Invalid settings: {exc}")
        sys.exit(1)
