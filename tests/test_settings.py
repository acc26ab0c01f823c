from __future__ import annotations

import settings
from core.models import DEFAULT_WELCOME_TEXT


def test_default_config_from_environment() -> None:
    config = settings.build_default_config(
        {
            "FORWARD_TARGET_ID": " @channel ",
            "ADMIN_IDS": "1, 2,bad, -3",
            "ATTACH_BUTTONS": "false",
            "ALLOWLIST_MODE": "1",
            "DEFAULT_THRESHOLD": "0.45",
            "STRICT_TEMPLATE": "yes",
        }
    )

    assert config.forward_target_id == "@channel"
    assert config.admin_ids == [1, 2, -3]
    assert config.attach_buttons is False
    assert config.allowlist_mode is True
    assert config.default_threshold == 0.45
    assert config.strict_template is True
    assert config.welcome_text == DEFAULT_WELCOME_TEXT


def test_default_config_with_empty_environment() -> None:
    config = settings.build_default_config({})

    assert config.forward_target_id == ""
    assert config.attach_buttons is True
    assert config.allowlist_mode is False
    assert config.default_threshold == 0.6
    assert config.strict_template is None
    assert settings.strict_default({}) is False


def test_junk_threshold_falls_back_to_default() -> None:
    assert settings.build_default_config({"DEFAULT_THRESHOLD": "high"}).default_threshold == 0.6


def test_config_json_sections_are_loaded() -> None:
    assert settings.ADMISSION.cooldown_ms > 0
    assert settings.MATCH_STRATEGY in ("ngram", "fields")
    assert settings.REVIEW.forward_attempts >= 1
