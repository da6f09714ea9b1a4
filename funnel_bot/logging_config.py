"""Structured logs for the funnel bot.

Each record is written to stdout as one JSON line. WhatsApp numbers found in
the ``context`` extra are masked down to their last digits unless masking is
switched off with ``LOG_MASK_NUMBERS=false``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

LOGGER_PREFIX = "funnel_bot"
SERVICE_NAME = "funnel-bot"
PHONE_CONTEXT_KEYS = frozenset({"from", "to", "admin"})
VISIBLE_PHONE_DIGITS = 4
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "google.auth", "urllib3")


def mask_phone(number: str) -> str:
    """``6281234567890`` -> ``*********7890``."""
    if len(number) <= VISIBLE_PHONE_DIGITS:
        return number
    return "*" * (len(number) - VISIBLE_PHONE_DIGITS) + number[-VISIBLE_PHONE_DIGITS:]


def _mask_context(context: dict) -> dict:
    masked = dict(context)
    for key in PHONE_CONTEXT_KEYS & masked.keys():
        if masked[key]:
            masked[key] = mask_phone(str(masked[key]))
    return masked


class FunnelLogFormatter(logging.Formatter):
    def __init__(self, service: str = SERVICE_NAME, mask_numbers: bool = True):
        super().__init__()
        self.service = service
        self.mask_numbers = mask_numbers

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "service": self.service,
            "level": record.levelname,
            "logger": record.name.removeprefix(f"{LOGGER_PREFIX}."),
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            entry["context"] = _mask_context(context) if self.mask_numbers else context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", mask_numbers: bool = True, stream: Optional[TextIO] = None) -> None:
    """Replace root handlers with a single JSON stream handler."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(FunnelLogFormatter(mask_numbers=mask_numbers))
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


def preview(text: str, limit: int = 50) -> str:
    """Shorten message bodies before they go into log context."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."
