import logging

import pytest
from pydantic import ValidationError as PydanticValidationError

from relaykit.config import HISTORY_LIMIT, RelaySettings, get_settings
from relaykit.log import configure_logging

# --- Settings ---


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    settings = RelaySettings()
    assert settings.persistence_type == "json"
    assert settings.history_limit == HISTORY_LIMIT == 30_000
    assert settings.max_message_length == 10_000
    assert settings.max_chats_per_agent == 10
    assert settings.lock_timeout == 5.0
    assert settings.chat_ttl_hours == 24.0
    assert settings.enable_legacy_compatibility is True
    assert "relaykit-" in settings.storage_dir


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("RELAYKIT_PERSISTENCE_TYPE", "memory")
    monkeypatch.setenv("RELAYKIT_HISTORY_LIMIT", "500")
    monkeypatch.setenv("RELAYKIT_ENABLE_LEGACY_COMPATIBILITY", "false")
    settings = RelaySettings()
    assert settings.persistence_type == "memory"
    assert settings.history_limit == 500
    assert settings.enable_legacy_compatibility is False


def test_dotenv_file(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("RELAYKIT_MAX_CHATS_PER_AGENT=3\n", encoding="utf-8")
    assert RelaySettings().max_chats_per_agent == 3


def test_rejects_invalid_values(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(PydanticValidationError):
        RelaySettings(lock_timeout=0)


def test_get_settings_is_cached():
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()


# --- Logging ---


def test_configure_logging_sets_package_level():
    configure_logging("debug")
    assert logging.getLogger("relaykit").level == logging.DEBUG
    configure_logging(logging.WARNING)
    assert logging.getLogger("relaykit").level == logging.WARNING
