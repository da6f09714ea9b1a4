"""Funnel configuration provider: remote document first, local file as fallback."""

import asyncio
import json
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import ValidationError

from funnel_bot.logging_config import get_logger
from funnel_bot.schemas.funnel import FunnelConfig

logger = get_logger("funnel_config")

SOURCE_FIREBASE = "firebase"
SOURCE_LOCAL = "local"
CONFIG_COLLECTION = "bot_config"
CONFIG_DOCUMENT = "messages"


class ConfigurationError(Exception):
    """Funnel configuration could not be loaded from any source."""


class ConfigNotReadyError(ConfigurationError):
    """Configuration was requested before the first successful load."""


class FirestoreConfigSource:
    """Reads and watches ``bot_config/messages`` in Firestore."""

    def __init__(self, client, collection: str = CONFIG_COLLECTION, document: str = CONFIG_DOCUMENT):
        self._ref = client.collection(collection).document(document)

    def fetch(self) -> Optional[dict]:
        snapshot = self._ref.get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    def watch(self, on_data: Callable[[Optional[dict]], None]):
        def _on_snapshot(doc_snapshots, _changes, _read_time):
            for doc in doc_snapshots:
                on_data(doc.to_dict() if doc.exists else None)

        return self._ref.on_snapshot(_on_snapshot)


def load_local_config(path: str | Path) -> FunnelConfig:
    """Read and validate the local messages file. Raises ConfigurationError."""
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Failed to read {path}: {exc}") from exc
    try:
        return FunnelConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid funnel configuration in {path}: {exc}") from exc


class FunnelConfigProvider:
    def __init__(self, local_path: str | Path, remote_source: Any = None):
        self.local_path = Path(local_path)
        self.remote_source = remote_source
        self._config: Optional[FunnelConfig] = None
        self._source: Optional[str] = None
        self._loaded_at: Optional[datetime] = None
        self._ready = threading.Event()
        self._watch = None

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def source(self) -> Optional[str]:
        return self._source

    def snapshot(self) -> FunnelConfig:
        if self._config is None:
            raise ConfigNotReadyError("Funnel configuration not loaded yet")
        return self._config

    def load(self) -> FunnelConfig:
        """Load from the remote document when reachable, otherwise from the local file."""
        if self.remote_source is not None:
            try:
                raw = self.remote_source.fetch()
            except Exception as exc:
                logger.error(
                    "Remote config fetch failed, falling back to local file",
                    extra={"context": {"error": str(exc)}},
                )
                raw = None
            else:
                if raw is None:
                    logger.warning("Remote config document not found, falling back to local file")
            if raw is not None:
                try:
                    return self._apply(FunnelConfig.model_validate(raw), SOURCE_FIREBASE)
                except ValidationError as exc:
                    logger.error(
                        "Remote config document is invalid, falling back to local file",
                        extra={"context": {"error": str(exc)}},
                    )

        return self._apply(load_local_config(self.local_path), SOURCE_LOCAL)

    def reload(self) -> FunnelConfig:
        return self.load()

    def _apply(self, config: FunnelConfig, source: str) -> FunnelConfig:
        self._config = config
        self._source = source
        self._loaded_at = datetime.now(timezone.utc)
        self._ready.set()
        logger.info(f"Funnel configuration loaded from {source}")
        return config

    async def wait_ready(self, timeout: float = 10.0, interval: float = 0.1) -> FunnelConfig:
        deadline = time.monotonic() + timeout
        while not self.is_ready:
            if time.monotonic() >= deadline:
                raise ConfigNotReadyError("Timeout waiting for funnel configuration")
            await asyncio.sleep(interval)
        return self.snapshot()

    def subscribe(self) -> bool:
        """Start live updates from the remote document. Returns False when there is nothing to watch."""
        if self.remote_source is None or self._watch is not None:
            return False
        try:
            self._watch = self.remote_source.watch(self._on_remote_update)
        except Exception as exc:
            logger.error("Failed to start remote config watch", extra={"context": {"error": str(exc)}})
            return False
        logger.info("Remote config watch started")
        return True

    def unsubscribe(self) -> None:
        if self._watch is None:
            return
        try:
            self._watch.unsubscribe()
        finally:
            self._watch = None

    def _on_remote_update(self, raw: Optional[dict]) -> None:
        if raw is None:
            logger.warning("Remote config document removed, keeping current configuration")
            self._ensure_fallback()
            return
        try:
            config = FunnelConfig.model_validate(raw)
        except ValidationError as exc:
            logger.error(
                "Pushed config document is invalid, keeping current configuration",
                extra={"context": {"error": str(exc)}},
            )
            self._ensure_fallback()
            return

        self._apply(config, SOURCE_FIREBASE)
        updated_by = raw.get("updated_by")
        if updated_by:
            logger.info("Remote config updated", extra={"context": {"updated_by": updated_by}})

    def _ensure_fallback(self) -> None:
        if self._config is not None:
            return
        try:
            self._apply(load_local_config(self.local_path), SOURCE_LOCAL)
        except ConfigurationError as exc:
            logger.error(str(exc))

    def status(self) -> dict:
        return {
            "loaded": self.is_ready,
            "source": self._source,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
