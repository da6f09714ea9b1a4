from datetime import datetime

import pytest

from funnel_bot.services.keyword_service import (
    KONSULTASI,
    WELCOME,
    build_consultation_notification,
    build_offline_message,
    format_timestamp,
    get_button_config,
    normalize_text,
    personalize_welcome,
    render_placeholders,
    resolve_keyword,
)


class TestResolveKeyword:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Saya mau konsultasi dong", "konsultasi"),
            ("hubungi admin", "konsultasi"),
            ("info FRANCHISE", "autopilot"),
            ("minta template", "bonus"),
            ("strategi bep", "tips"),
            ("START", "mulai"),
            ("menu", "help"),
            ("  Bantuan  ", "help"),
        ],
    )
    def test_keyword_groups(self, funnel_config, text, expected):
        assert resolve_keyword(text, funnel_config).key == expected

    def test_earlier_group_wins(self, funnel_config):
        assert resolve_keyword("konsultasi soal bonus", funnel_config).key == KONSULTASI

    def test_download_ebook_shadowed_by_bonus_group(self, funnel_config):
        # "download" belongs to the bonus group, which is checked before mulai
        assert resolve_keyword("download ebook", funnel_config).key == "bonus"

    def test_unmatched_falls_back_to_welcome(self, funnel_config):
        match = resolve_keyword("halo kak", funnel_config)
        assert match.key == WELCOME
        assert match.reaction == funnel_config.funnel[WELCOME].reaction

    def test_empty_text_is_welcome(self, funnel_config):
        assert resolve_keyword("", funnel_config).key == WELCOME
        assert resolve_keyword(None, funnel_config).key == WELCOME

    def test_interactive_reply_ids_resolve(self, funnel_config):
        for stage in ("mulai", "tips", "bonus", "autopilot", "konsultasi"):
            assert resolve_keyword(stage, funnel_config).key == stage

    def test_missing_stage_falls_through_to_next_group(self, funnel_data):
        from funnel_bot.schemas.funnel import FunnelConfig

        del funnel_data["funnel"]["konsultasi"]
        config = FunnelConfig.model_validate(funnel_data)

        assert resolve_keyword("konsultasi bonus", config).key == "bonus"
        assert resolve_keyword("konsultasi", config).key == WELCOME

    def test_message_has_links_rendered(self, funnel_config):
        match = resolve_keyword("bonus", funnel_config)
        assert funnel_config.bonus_link in match.message
        assert "{{bonus_link}}" not in match.message


class TestRenderPlaceholders:
    def test_replaces_globals_and_context(self, funnel_config):
        rendered = render_placeholders(
            "{{ebook_link}} {{konsultan_wa}} {name} {phone}",
            funnel_config,
            {"name": "Budi", "phone": "628123"},
        )
        assert rendered == f"{funnel_config.ebook_link} {funnel_config.konsultan_wa} Budi 628123"

    def test_replaces_every_occurrence(self, funnel_config):
        rendered = render_placeholders("{name} {name}", funnel_config, {"name": "Ani"})
        assert rendered == "Ani Ani"

    def test_unresolved_tokens_pass_through(self, funnel_config, caplog):
        rendered = render_placeholders("Halo {name}", funnel_config, {"name": ""})
        assert rendered == "Halo {name}"
        assert "Unresolved template placeholders" in caplog.text

    def test_unknown_tokens_are_left_alone(self, funnel_config):
        assert render_placeholders("{other}", funnel_config) == "{other}"


class TestButtonConfig:
    def test_welcome_buttons(self, funnel_config):
        config = get_button_config(WELCOME, funnel_config)
        assert [b.id for b in config.buttons] == ["mulai", "tips", "konsultasi"]
        assert config.footer == funnel_config.system_messages.button_footer["welcome"]
        assert config.follow_up is None

    def test_stage_follow_up(self, funnel_config):
        config = get_button_config("tips", funnel_config)
        assert [b.id for b in config.buttons] == ["bonus", "autopilot", "konsultasi"]
        assert config.follow_up == funnel_config.system_messages.follow_up_messages["after_tips"]

    def test_autopilot_has_single_button(self, funnel_config):
        config = get_button_config("autopilot", funnel_config)
        assert [b.id for b in config.buttons] == ["konsultasi"]

    def test_unknown_stage(self, funnel_config):
        assert get_button_config("konsultasi", funnel_config) is None
        assert get_button_config("help", funnel_config) is None

    def test_stage_without_labels(self, funnel_data):
        from funnel_bot.schemas.funnel import FunnelConfig

        funnel_data["system_messages"]["button_text"] = {}
        config = FunnelConfig.model_validate(funnel_data)

        assert get_button_config("mulai", config) is None


class TestPersonalization:
    def test_welcome_greeting_uses_name(self):
        assert personalize_welcome("Halo Juragan! Selamat datang", "Budi") == "Halo Budi! Selamat datang"

    def test_welcome_unknown_name_unchanged(self):
        assert personalize_welcome("Halo Juragan!", "Unknown") == "Halo Juragan!"

    def test_offline_message_with_name(self, funnel_config):
        message = build_offline_message(funnel_config, "Budi")
        assert message.startswith("Halo Budi!")

    def test_offline_message_unknown_name(self, funnel_config):
        message = build_offline_message(funnel_config, "Unknown")
        assert message.startswith("Halo!")
        assert "{name}" not in message

    def test_offline_message_greeting_disabled(self, funnel_data):
        from funnel_bot.schemas.funnel import FunnelConfig

        funnel_data["system_messages"]["offline_hours"]["greeting_with_name"] = False
        config = FunnelConfig.model_validate(funnel_data)

        assert build_offline_message(config, "Budi").startswith("Halo!")


class TestConsultationNotification:
    def test_contains_sender_text_and_timestamp(self, funnel_config):
        timestamp = format_timestamp(datetime(2026, 10, 19, 10, 5, 3))
        notification = build_consultation_notification(
            funnel_config,
            user_name="Budi",
            phone="6281111111111",
            message="Saya mau konsultasi dong",
            timestamp=timestamp,
        )

        assert "Budi" in notification
        assert "6281111111111" in notification
        assert "Saya mau konsultasi dong" in notification
        assert "19/10/2026, 10.05.03" in notification


def test_normalize_text():
    assert normalize_text("  MeNu ") == "menu"
    assert normalize_text(None) == ""
