import json
from unittest.mock import Mock, patch

from funnel_bot.services.firebase_service import FirebaseService, init_firebase


def _settings(settings, **overrides):
    return settings.model_copy(update=overrides)


class TestInitFirebase:
    def test_disabled_without_project(self, settings):
        assert init_firebase(settings) is None

    @patch("funnel_bot.services.firebase_service.FirebaseService")
    def test_init_failure_returns_none(self, mock_service, settings, caplog):
        mock_service.side_effect = ValueError("bad key")

        assert init_firebase(_settings(settings, firebase_project_id="proj")) is None
        assert "initialization failed" in caplog.text


class TestFirebaseService:
    @patch("funnel_bot.services.firebase_service.firebase_admin")
    def test_reuses_existing_app(self, mock_admin, settings):
        existing = Mock()
        mock_admin.get_app.return_value = existing

        service = FirebaseService(_settings(settings, firebase_project_id="proj"))

        assert service.app is existing
        mock_admin.initialize_app.assert_not_called()

    @patch("funnel_bot.services.firebase_service.credentials.Certificate")
    @patch("funnel_bot.services.firebase_service.firebase_admin")
    def test_inline_key_newlines_restored(self, mock_admin, mock_certificate, settings):
        mock_admin.get_app.side_effect = ValueError("no app")

        FirebaseService(
            _settings(
                settings,
                firebase_project_id="proj",
                firebase_client_email="bot@proj.iam.gserviceaccount.com",
                firebase_private_key="-----BEGIN-----\\nabc\\n-----END-----",
            )
        )

        cert = mock_certificate.call_args[0][0]
        assert cert["private_key"] == "-----BEGIN-----\nabc\n-----END-----"
        assert cert["project_id"] == "proj"
        mock_admin.initialize_app.assert_called_once_with(mock_certificate.return_value, {"projectId": "proj"})

    @patch("funnel_bot.services.firebase_service.credentials.Certificate")
    @patch("funnel_bot.services.firebase_service.firebase_admin")
    def test_service_account_file(self, mock_admin, mock_certificate, settings, tmp_path):
        mock_admin.get_app.side_effect = ValueError("no app")
        path = tmp_path / "sa.json"
        path.write_text(json.dumps({"type": "service_account", "project_id": "proj"}), encoding="utf-8")

        FirebaseService(_settings(settings, firebase_project_id="proj", firebase_service_account_path=str(path)))

        assert mock_certificate.call_args[0][0]["project_id"] == "proj"

    @patch("funnel_bot.services.firebase_service.firebase_admin")
    def test_application_default_credentials(self, mock_admin, settings):
        mock_admin.get_app.side_effect = ValueError("no app")

        FirebaseService(_settings(settings, firebase_project_id="proj"))

        mock_admin.initialize_app.assert_called_once_with(None, {"projectId": "proj"})
