import json
from pathlib import Path
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import credentials

from funnel_bot.config import Settings
from funnel_bot.logging_config import get_logger

logger = get_logger("firebase_service")


class FirebaseService:
    """
    Lightweight wrapper around firebase_admin that centralizes credential
    loading and hands out Firestore clients.

    Credentials, in order: service account file, inline client email +
    private key, Application Default Credentials.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.app = self._get_or_init_app()

    def _load_credentials(self) -> Optional[credentials.Base]:
        if self.settings.firebase_service_account_path:
            path = Path(self.settings.firebase_service_account_path)
            cred_json: Dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
            return credentials.Certificate(cred_json)

        if self.settings.firebase_private_key and self.settings.firebase_client_email:
            # Escaped newlines are common when the key comes from env vars
            private_key = self.settings.firebase_private_key.replace("\\n", "\n")
            return credentials.Certificate(
                {
                    "type": "service_account",
                    "project_id": self.settings.firebase_project_id,
                    "client_email": self.settings.firebase_client_email,
                    "private_key": private_key,
                    "token_uri": "https://oauth2.googleapis.com/token",
                }
            )

        logger.info("Using Application Default Credentials for Firebase")
        return None

    def _get_or_init_app(self) -> firebase_admin.App:
        try:
            return firebase_admin.get_app()
        except ValueError:
            cred = self._load_credentials()
            options = {"projectId": self.settings.firebase_project_id}
            app = firebase_admin.initialize_app(cred, options)
            logger.info(
                "Firebase Admin initialized",
                extra={"context": {"project_id": self.settings.firebase_project_id}},
            )
            return app

    def firestore(self):
        """Synchronous Firestore client (document reads and watches)."""
        from firebase_admin import firestore

        return firestore.client(app=self.app)

    def firestore_async(self):
        """Async Firestore client (analytics writes)."""
        from firebase_admin import firestore_async

        return firestore_async.client(app=self.app)


def init_firebase(settings: Settings) -> Optional[FirebaseService]:
    """Return a FirebaseService when a project is configured; None when disabled or broken."""
    if not settings.firebase_enabled:
        logger.info("Firebase not configured, using local messages file and no analytics")
        return None
    try:
        return FirebaseService(settings)
    except Exception as exc:
        logger.error(
            "Firebase Admin initialization failed, continuing without remote store",
            extra={"context": {"error": str(exc)}},
        )
        return None
