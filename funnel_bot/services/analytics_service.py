"""Analytics sink: best-effort event recording for the funnel.

Every method returns a ``Result``; store outages are logged here and never
raised into the message pipeline.
"""

import functools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from firebase_admin import firestore

from funnel_bot.logging_config import get_logger
from funnel_bot.services.result import Result

logger = get_logger("analytics_service")

UNKNOWN_NAME = "Unknown"
CONSULTATION_KEYWORD = "konsultasi"

MESSAGES = "messages"
CONSULTATIONS = "consultations"
USERS = "users"
KEYWORD_STATS = "keyword_stats"
BUTTON_CLICKS = "button_clicks"
CONVERSIONS = "conversions"
ERRORS = "errors"
STATS = "stats"
GLOBAL_STATS_DOC = "global"

STAT_FIELDS = {
    "messages": "totalMessages",
    "users": "totalUsers",
    "consultations": "consultationRequests",
}


@dataclass
class MessageLog:
    message_id: str
    sender: str
    type: str
    text_body: str
    keyword: str
    name: str = UNKNOWN_NAME
    status: str = "success"


@dataclass
class ConsultationLog:
    sender: str
    message: str
    name: str = UNKNOWN_NAME
    status: str = "pending"
    notified: bool = False


@dataclass
class ButtonClick:
    sender: str
    button_id: str
    button_title: Optional[str] = None
    context: Optional[str] = None


class AnalyticsSink(ABC):
    """Interface the message processor records events through."""

    enabled: bool = True

    @abstractmethod
    async def log_message(self, entry: MessageLog) -> Result[str]:
        pass

    @abstractmethod
    async def log_consultation(self, entry: ConsultationLog) -> Result[str]:
        pass

    @abstractmethod
    async def track_user(self, user_id: str, name: Optional[str] = None, keyword: Optional[str] = None) -> Result[Optional[str]]:
        """Upsert the sender profile. The value is the keyword stored before this update."""
        pass

    @abstractmethod
    async def track_keyword(self, keyword: str) -> Result[str]:
        pass

    @abstractmethod
    async def track_button_click(self, click: ButtonClick) -> Result[bool]:
        pass

    @abstractmethod
    async def track_conversion(self, user_id: str, from_keyword: str, to_keyword: str) -> Result[bool]:
        pass

    @abstractmethod
    async def log_error(
        self,
        error_type: str,
        message: str,
        stack: Optional[str] = None,
        context: Optional[dict] = None,
    ) -> Result[bool]:
        pass

    @abstractmethod
    async def get_user_name(self, user_id: str) -> Result[Optional[str]]:
        pass

    async def get_user_journey(self, user_id: str, limit: int = 20) -> Result[List[dict]]:
        return Result.success([])

    def status(self) -> dict:
        return {"enabled": self.enabled, "timestamp": datetime.now(timezone.utc).isoformat()}


class NullAnalyticsSink(AnalyticsSink):
    """Sink used when no store is configured. Accepts everything, stores nothing."""

    enabled = False

    async def log_message(self, entry: MessageLog) -> Result[str]:
        return Result.success(None)

    async def log_consultation(self, entry: ConsultationLog) -> Result[str]:
        return Result.success(None)

    async def track_user(self, user_id: str, name: Optional[str] = None, keyword: Optional[str] = None) -> Result[Optional[str]]:
        return Result.success(None)

    async def track_keyword(self, keyword: str) -> Result[str]:
        return Result.success(keyword)

    async def track_button_click(self, click: ButtonClick) -> Result[bool]:
        return Result.success(True)

    async def track_conversion(self, user_id: str, from_keyword: str, to_keyword: str) -> Result[bool]:
        return Result.success(True)

    async def log_error(self, error_type, message, stack=None, context=None) -> Result[bool]:
        return Result.success(True)

    async def get_user_name(self, user_id: str) -> Result[Optional[str]]:
        return Result.success(None)


def best_effort(operation: str):
    """Turn store exceptions into a failed Result with a warning log."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            try:
                return await func(self, *args, **kwargs)
            except Exception as e:
                logger.warning(f"Failed to {operation}: {e}", extra={"context": {"operation": operation}})
                return Result.from_exception(e, "store_error")

        return wrapper

    return decorator


class FirestoreAnalyticsSink(AnalyticsSink):
    """Writes funnel analytics to Firestore through the firebase-admin async client."""

    def __init__(self, client, clock: Optional[Callable[[], datetime]] = None):
        self.client = client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _today(self) -> str:
        return self._clock().strftime("%Y-%m-%d")

    async def _bump_stat(self, metric: str) -> None:
        field = STAT_FIELDS[metric]
        ref = self.client.collection(STATS).document(GLOBAL_STATS_DOC)
        doc = await ref.get()
        if not doc.exists:
            initial = {name: 0 for name in STAT_FIELDS.values()}
            initial[field] = 1
            initial["lastUpdated"] = firestore.SERVER_TIMESTAMP
            await ref.set(initial)
            return
        await ref.update({field: firestore.Increment(1), "lastUpdated": firestore.SERVER_TIMESTAMP})

    @best_effort("log message")
    async def log_message(self, entry: MessageLog) -> Result[str]:
        now = self._clock()
        _, ref = await self.client.collection(MESSAGES).add(
            {
                "messageId": entry.message_id,
                "from": entry.sender,
                "name": entry.name or UNKNOWN_NAME,
                "type": entry.type,
                "textBody": entry.text_body,
                "keyword": entry.keyword,
                "timestamp": firestore.SERVER_TIMESTAMP,
                "date": now.strftime("%Y-%m-%d"),
                "hour": now.hour,
                "status": entry.status,
            }
        )
        await self._bump_stat("messages")
        logger.info(f"Message logged: {ref.id}")
        return Result.success(ref.id)

    @best_effort("log consultation")
    async def log_consultation(self, entry: ConsultationLog) -> Result[str]:
        _, ref = await self.client.collection(CONSULTATIONS).add(
            {
                "from": entry.sender,
                "name": entry.name or UNKNOWN_NAME,
                "message": entry.message,
                "timestamp": firestore.SERVER_TIMESTAMP,
                "date": self._today(),
                "status": entry.status,
                "notified": entry.notified,
            }
        )
        await self._bump_stat("consultations")
        logger.info(f"Consultation logged: {ref.id}")
        return Result.success(ref.id)

    @best_effort("track user")
    async def track_user(self, user_id: str, name: Optional[str] = None, keyword: Optional[str] = None) -> Result[Optional[str]]:
        ref = self.client.collection(USERS).document(user_id)
        doc = await ref.get()

        if not doc.exists:
            await ref.set(
                {
                    "userId": user_id,
                    "name": name or UNKNOWN_NAME,
                    "firstSeen": firestore.SERVER_TIMESTAMP,
                    "lastSeen": firestore.SERVER_TIMESTAMP,
                    "messageCount": 1,
                    "conversationCount": 1,
                    "lastKeyword": keyword,
                    "tags": [],
                    "status": "active",
                }
            )
            await self._bump_stat("users")
            logger.info(f"New user tracked: {user_id}", extra={"context": {"name": name}})
            return Result.success(None)

        data = doc.to_dict() or {}
        update = {"lastSeen": firestore.SERVER_TIMESTAMP, "messageCount": firestore.Increment(1)}
        # skip the write when the name is unchanged
        if name and data.get("name") != name:
            update["name"] = name
        if keyword:
            update["lastKeyword"] = keyword
        await ref.update(update)
        return Result.success(data.get("lastKeyword"))

    @best_effort("track keyword")
    async def track_keyword(self, keyword: str) -> Result[str]:
        today = self._today()
        ref = self.client.collection(KEYWORD_STATS).document(f"{keyword}_{today}")
        doc = await ref.get()
        if not doc.exists:
            await ref.set({"keyword": keyword, "date": today, "count": 1, "conversions": 0})
        else:
            await ref.update({"count": firestore.Increment(1)})
        return Result.success(keyword)

    @best_effort("track button click")
    async def track_button_click(self, click: ButtonClick) -> Result[bool]:
        await self.client.collection(BUTTON_CLICKS).add(
            {
                "from": click.sender,
                "buttonId": click.button_id,
                "buttonTitle": click.button_title or click.button_id,
                "context": click.context,
                "timestamp": firestore.SERVER_TIMESTAMP,
                "date": self._today(),
            }
        )
        logger.info(f"Button click tracked: {click.button_id}")
        return Result.success(True)

    @best_effort("track conversion")
    async def track_conversion(self, user_id: str, from_keyword: str, to_keyword: str) -> Result[bool]:
        today = self._today()
        await self.client.collection(CONVERSIONS).add(
            {
                "from": user_id,
                "fromKeyword": from_keyword,
                "toKeyword": to_keyword,
                "timestamp": firestore.SERVER_TIMESTAMP,
                "date": today,
            }
        )

        if to_keyword == CONSULTATION_KEYWORD:
            ref = self.client.collection(KEYWORD_STATS).document(f"{from_keyword}_{today}")
            doc = await ref.get()
            if doc.exists:
                await ref.update({"conversions": firestore.Increment(1)})
            else:
                await ref.set({"keyword": from_keyword, "date": today, "count": 0, "conversions": 1})
        return Result.success(True)

    @best_effort("log error")
    async def log_error(
        self,
        error_type: str,
        message: str,
        stack: Optional[str] = None,
        context: Optional[dict] = None,
    ) -> Result[bool]:
        await self.client.collection(ERRORS).add(
            {
                "type": error_type or "unknown",
                "message": message,
                "stack": stack,
                "context": context or {},
                "timestamp": firestore.SERVER_TIMESTAMP,
                "date": self._today(),
            }
        )
        return Result.success(True)

    @best_effort("read user name")
    async def get_user_name(self, user_id: str) -> Result[Optional[str]]:
        doc = await self.client.collection(USERS).document(user_id).get()
        if not doc.exists:
            return Result.success(None)
        name = (doc.to_dict() or {}).get("name")
        if not name or name == UNKNOWN_NAME:
            return Result.success(None)
        return Result.success(name)

    @best_effort("read user journey")
    async def get_user_journey(self, user_id: str, limit: int = 20) -> Result[List[dict]]:
        query = (
            self.client.collection(MESSAGES)
            .where(filter=firestore.FieldFilter("from", "==", user_id))
            .order_by("timestamp", direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        docs = await query.get()
        return Result.success([{"id": doc.id, **(doc.to_dict() or {})} for doc in docs])
