import time
from typing import Callable, Optional

DEFAULT_WINDOW_MS = 5000
DEFAULT_PURGE_THRESHOLD = 5000


def _now_ms() -> float:
    return time.time() * 1000


class RateLimiter:
    """One accepted message per sender per window.

    Rejected calls do not refresh the stored timestamp, so a burst inside the
    window never postpones recovery.
    """

    def __init__(
        self,
        window_ms: int = DEFAULT_WINDOW_MS,
        clock: Optional[Callable[[], float]] = None,
        purge_threshold: int = DEFAULT_PURGE_THRESHOLD,
    ):
        self.window_ms = window_ms
        self._clock = clock or _now_ms
        self._purge_threshold = purge_threshold
        self._last_message_ms: dict[str, float] = {}

    def _purge(self, now: float) -> None:
        if len(self._last_message_ms) < self._purge_threshold:
            return
        expired = [user_id for user_id, last in self._last_message_ms.items() if (now - last) >= self.window_ms]
        for user_id in expired:
            self._last_message_ms.pop(user_id, None)

    def is_limited(self, user_id: str) -> bool:
        now = self._clock()
        self._purge(now)
        last = self._last_message_ms.get(user_id)
        if last is not None and (now - last) < self.window_ms:
            return True

        self._last_message_ms[user_id] = now
        return False

    @property
    def active_users(self) -> int:
        return len(self._last_message_ms)


class RequestRateLimiter:
    """Fixed-window request counter keyed by caller (e.g. client IP)."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Optional[Callable[[], float]] = None,
        purge_threshold: int = 5000,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock or time.time
        self._purge_threshold = purge_threshold
        self._windows: dict[str, dict] = {}

    def _purge(self, now_ts: float) -> None:
        if len(self._windows) < self._purge_threshold:
            return
        expired = [key for key, item in self._windows.items() if item["expires_at"] <= now_ts]
        for key in expired:
            self._windows.pop(key, None)

    def hit(self, key: str) -> bool:
        """Count a request. Returns True when the caller is over the limit."""
        now_ts = self._clock()
        self._purge(now_ts)

        window = self._windows.get(key)
        if not window or window["expires_at"] <= now_ts:
            window = {"count": 0, "expires_at": now_ts + self.window_seconds}
        window["count"] += 1
        self._windows[key] = window
        return window["count"] > self.max_requests
