"""
Tests for environment-driven settings.
"""

import logging

import pytest

from relay.agents.prompts import SYSTEM_PROMPT
from relay.config import Settings, get_settings
from relay.telegram_bot.logging_config import LOGGER_NAME, setup_logging


class TestSettings:
    """Tests for Settings helpers."""

    def test_defaults_follow_mistral_deployment(self):
        settings = Settings(_env_file=None)
        assert settings.completion_base_url == "https://api.mistral.ai/v1"
        assert settings.completion_model == "mistral-tiny"
        assert settings.completion_max_tokens == 500
        assert settings.max_message_length == 4096
        assert settings.system_prompt == SYSTEM_PROMPT

    def test_missing_credentials(self):
        settings = Settings(_env_file=None, telegram_bot_token="", mistral_api_key="")
        assert settings.missing_credentials() == ["TELEGRAM_BOT_TOKEN", "MISTRAL_API_KEY"]

        settings = Settings(_env_file=None, telegram_bot_token="t", mistral_api_key="k")
        assert settings.missing_credentials() == []

    def test_webhook_base_url_prefers_public_url(self):
        settings = Settings(_env_file=None, public_base_url="https://a.example/", project_domain="legacy")
        assert settings.webhook_base_url == "https://a.example"

    def test_webhook_base_url_from_project_domain(self):
        settings = Settings(_env_file=None, public_base_url="", project_domain="dr-ai")
        assert settings.webhook_base_url == "https://dr-ai.glitch.me"

    def test_transport_mode(self, monkeypatch):
        monkeypatch.setenv("TRANSPORT_MODE", "Polling")
        assert Settings(_env_file=None).is_polling is True

        monkeypatch.setenv("TRANSPORT_MODE", "webhook")
        assert Settings(_env_file=None).is_polling is False


class TestLogging:
    """Tests for the relay_bot logger setup."""

    @pytest.fixture(autouse=True)
    def restore_logger(self):
        yield
        setup_logging("INFO")

    def test_level_from_argument(self):
        logger = setup_logging("warning")

        assert logger.name == LOGGER_NAME
        assert [handler.level for handler in logger.handlers] == [logging.WARNING]
        assert logger.propagate is False

    def test_unknown_level_falls_back_to_info(self):
        logger = setup_logging("chatty")

        assert [handler.level for handler in logger.handlers] == [logging.INFO]

    def test_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        get_settings.cache_clear()
        try:
            logger = setup_logging()
        finally:
            get_settings.cache_clear()

        assert logger.handlers[0].level == logging.DEBUG
