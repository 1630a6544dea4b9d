"""Tests for settings validation and loading."""

import pytest

from telemenu.config import Settings, load_config
from telemenu.exceptions import ConfigurationError


def make_settings(**kwargs):
    return Settings(_env_file=None, telegram_bot_token="123:abc", **kwargs)


def test_defaults():
    """Engine defaults match Telegram limits."""
    settings = make_settings()

    assert settings.callback_data_limit == 64
    assert settings.default_items_per_page == 10
    assert settings.default_columns == 1
    assert settings.strict_ids is False
    assert settings.session_storage_dir is None
    assert settings.telegram_token_str == "123:abc"
    assert settings.is_production


@pytest.mark.parametrize("raw", ["", "none", "0", "off", 0, None])
def test_callback_data_limit_can_be_disabled(raw):
    """Empty or zero-like values switch the byte check off."""
    assert make_settings(callback_data_limit=raw).callback_data_limit is None


def test_strict_ids_follow_debug_unless_set():
    """Duplicate ids raise in debug mode by default."""
    assert make_settings(debug=True).strict_ids is True
    assert make_settings(debug=True, strict_ids=False).strict_ids is False


def test_validators_reject_bad_values(tmp_path):
    """Bad log levels, storage paths and webhook paths fail validation."""
    not_a_dir = tmp_path / "file"
    not_a_dir.write_text("x")

    with pytest.raises(ValueError):
        make_settings(log_level="verbose")
    with pytest.raises(ValueError):
        make_settings(session_storage_dir=str(not_a_dir))
    with pytest.raises(ValueError):
        make_settings(webhook_url="https://example.com", webhook_path="hook")

    settings = make_settings(session_storage_dir=str(tmp_path / "sessions"))
    assert settings.session_storage_dir == (tmp_path / "sessions").resolve()


def test_load_config_reads_env_file(tmp_path, monkeypatch):
    """An explicit env file is used; invalid input is a ConfigurationError."""
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    env_file = tmp_path / "bot.env"
    env_file.write_text("TELEGRAM_BOT_TOKEN=42:xyz\nDEFAULT_COLUMNS=3\n")

    settings = load_config(config_file=env_file)
    assert settings.telegram_token_str == "42:xyz"
    assert settings.default_columns == 3

    with pytest.raises(ConfigurationError):
        load_config(config_file=tmp_path / "missing.env")
    with pytest.raises(ConfigurationError):
        load_config(config_file=env_file, default_columns=0)
