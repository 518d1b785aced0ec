"""Tests for centralized logging configuration."""

import logging

import pytest
from pydantic import ValidationError

from logging_config import NOISY_LOGGERS, setup_logging


@pytest.fixture(autouse=True)
def restore_root_level():
    level = logging.getLogger().level
    yield
    logging.getLogger().setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_root_logger_level_from_settings(self, monkeypatch):
        """LOG_LEVEL setting should control root logger level."""
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        from config import Settings
        monkeypatch.setattr("logging_config.settings", Settings())

        setup_logging()

        assert logging.getLogger().level == logging.DEBUG

    def test_explicit_level_wins(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        from config import Settings
        monkeypatch.setattr("logging_config.settings", Settings())

        setup_logging("warning")

        assert logging.getLogger().level == logging.WARNING

    def test_noisy_loggers_suppressed(self):
        """HTTP client and SQLAlchemy loggers should be set to WARNING."""
        setup_logging("DEBUG")

        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING, (
                f"{name} logger not suppressed"
            )
        assert "httpx" in NOISY_LOGGERS


class TestSettingsValidation:
    def test_invalid_log_level_rejected(self, monkeypatch):
        """Invalid LOG_LEVEL values should raise a validation error."""
        monkeypatch.setenv("LOG_LEVEL", "VERBOS")
        from config import Settings
        with pytest.raises(ValidationError, match="LOG_LEVEL"):
            Settings()

    def test_log_level_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        from config import Settings
        assert Settings().LOG_LEVEL == "DEBUG"

    def test_base_currency_normalized(self, monkeypatch):
        monkeypatch.setenv("BASE_CURRENCY", "usd")
        from config import Settings
        assert Settings().BASE_CURRENCY == "USD"

    def test_unsupported_base_currency_rejected(self, monkeypatch):
        monkeypatch.setenv("BASE_CURRENCY", "EUR")
        from config import Settings
        with pytest.raises(ValidationError, match="BASE_CURRENCY"):
            Settings()
