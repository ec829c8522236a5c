"""Tests for settings loading."""

import logging

import pytest

from chatrelay.config import RelaySettings, load_settings
from chatrelay.services.upload import DEFAULT_UPLOAD_URL


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Run from an empty directory with no CHATRELAY_ variables set."""
    import os

    for key in list(os.environ):
        if key.startswith("CHATRELAY_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


class TestRelaySettings:

    def test_defaults(self):
        settings = RelaySettings(_env_file=None)
        assert settings.nickname == "Charbot9000"
        assert settings.irc_port == 6697
        assert settings.irc_tls is True
        assert settings.channels == []
        assert settings.chat_model == "gpt-4o"
        assert settings.initial_temperature == 1.0
        assert settings.upload_url == DEFAULT_UPLOAD_URL
        assert settings.openai_api_key is None

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("CHATRELAY_NICKNAME", "Relay")
        monkeypatch.setenv("CHATRELAY_IRC_TLS", "false")
        monkeypatch.setenv("CHATRELAY_CHANNELS", '["#overviewer", "##em32"]')
        monkeypatch.setenv("CHATRELAY_OWNERS", '["achin"]')
        monkeypatch.setenv("CHATRELAY_INITIAL_TEMPERATURE", "0.2")

        settings = RelaySettings(_env_file=None)
        assert settings.nickname == "Relay"
        assert settings.irc_tls is False
        assert settings.channels == ["#overviewer", "##em32"]
        assert settings.owners == ["achin"]
        assert settings.initial_temperature == 0.2

    def test_env_file(self, tmp_path):
        (tmp_path / ".env").write_text("CHATRELAY_CHAT_MODEL=gpt-4o-mini\nUNRELATED=1\n")
        assert RelaySettings().chat_model == "gpt-4o-mini"


class TestLoadSettings:

    def test_warnings(self, caplog):
        with caplog.at_level(logging.WARNING, logger="chatrelay.config"):
            load_settings()
        text = caplog.text
        assert "No OpenAI API key" in text
        assert "No owners configured" in text

    def test_quiet_when_configured(self, monkeypatch, caplog):
        monkeypatch.setenv("CHATRELAY_OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("CHATRELAY_OWNERS", '["achin"]')
        with caplog.at_level(logging.WARNING, logger="chatrelay.config"):
            settings = load_settings()
        assert settings.openai_api_key == "sk-test"
        assert caplog.records == []
