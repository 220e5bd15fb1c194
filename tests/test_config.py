"""Tests for configuration management module."""

import logging
import os
from unittest.mock import patch

import pytest
from pydantic import SecretStr
from pydantic import ValidationError as PydanticValidationError

from spreadsheet_chat.config import (
    DEFAULT_EXPORT_URL_TEMPLATE,
    Settings,
    validate_settings_on_startup,
)


def _settings(**env: str) -> Settings:
    with patch.dict(os.environ, env, clear=True):
        return Settings(_env_file=None)


class TestSettings:
    """Tests for the Settings class."""

    def test_default_values(self) -> None:
        settings = _settings()

        assert settings.max_file_size_mb == 10
        assert settings.remote_export_url_template == DEFAULT_EXPORT_URL_TEMPLATE
        assert settings.remote_timeout_seconds == 30.0
        assert settings.get_openai_api_key() == ""
        assert settings.openai_model == "gpt-4o"
        assert settings.openai_temperature == 0.2
        assert settings.openai_max_tokens == 2048
        assert settings.session_ttl_minutes == 120
        assert settings.log_level == "INFO"
        assert settings.debug is False
        assert settings.cors_origins == "*"
        assert settings.server_port == 8000

    def test_environment_variable_prefix(self) -> None:
        settings = _settings(
            SC_MAX_FILE_SIZE_MB="25",
            SC_OPENAI_MODEL="gpt-4o-mini",
            SC_LOG_LEVEL="DEBUG",
        )

        assert settings.max_file_size_mb == 25
        assert settings.openai_model == "gpt-4o-mini"
        assert settings.log_level == "DEBUG"

    def test_secret_str_for_api_key(self) -> None:
        settings = _settings(SC_OPENAI_API_KEY="sk-test-secret-key")

        assert isinstance(settings.openai_api_key, SecretStr)
        assert settings.get_openai_api_key() == "sk-test-secret-key"
        assert "sk-test-secret-key" not in str(settings.openai_api_key)

    def test_computed_properties(self) -> None:
        settings = _settings(SC_MAX_FILE_SIZE_MB="5", SC_SESSION_TTL_MINUTES="30")

        assert settings.max_file_size_bytes == 5 * 1024 * 1024
        assert settings.session_ttl_seconds == 30 * 60

    @pytest.mark.parametrize(
        "origins,expected",
        [
            ("*", ["*"]),
            ("https://example.com", ["https://example.com"]),
            (
                "https://example.com, https://api.example.com",
                ["https://example.com", "https://api.example.com"],
            ),
        ],
    )
    def test_cors_origins_list(self, origins: str, expected: list[str]) -> None:
        assert _settings(SC_CORS_ORIGINS=origins).cors_origins_list == expected

    def test_log_level_normalized(self) -> None:
        settings = _settings(SC_LOG_LEVEL="warning")

        assert settings.log_level == "WARNING"
        assert settings.log_level_int == logging.WARNING

    def test_to_safe_dict_masks_api_key(self) -> None:
        safe_dict = _settings(SC_OPENAI_API_KEY="sk-actual-secret").to_safe_dict()

        assert safe_dict["openai_api_key"] == "***"
        assert "sk-actual-secret" not in str(safe_dict)
        assert _settings().to_safe_dict()["openai_api_key"] == "(not set)"


class TestSettingsValidation:
    """Tests for settings validation."""

    @pytest.mark.parametrize(
        "env",
        [
            {"SC_LOG_LEVEL": "VERBOSE"},
            {"SC_MAX_FILE_SIZE_MB": "0"},
            {"SC_MAX_FILE_SIZE_MB": "501"},
            {"SC_REMOTE_EXPORT_URL_TEMPLATE": "https://example.com/export.csv"},
            {"SC_REMOTE_TIMEOUT_SECONDS": "0"},
            {"SC_OPENAI_TEMPERATURE": "2.5"},
            {"SC_SESSION_TTL_MINUTES": "0"},
            {"SC_SERVER_PORT": "70000"},
        ],
    )
    def test_invalid_values_rejected(self, env: dict[str, str]) -> None:
        with pytest.raises(PydanticValidationError):
            _settings(**env)

    def test_custom_export_template(self) -> None:
        template = "https://sheets.internal/{id}.csv"

        assert _settings(SC_REMOTE_EXPORT_URL_TEMPLATE=template).remote_export_url_template == template


class TestValidateSettingsOnStartup:
    """Tests for the validate_settings_on_startup function."""

    def test_warns_when_api_key_not_set(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            validate_settings_on_startup(_settings())

        assert "OPENAI_API_KEY is not configured" in caplog.text

    def test_no_warning_when_api_key_set(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING):
            validate_settings_on_startup(_settings(SC_OPENAI_API_KEY="sk-test"))

        assert "OPENAI_API_KEY is not configured" not in caplog.text

    def test_warns_about_permissive_cors_in_production(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        settings = _settings(SC_CORS_ORIGINS="*", SC_OPENAI_API_KEY="sk-test")

        with caplog.at_level(logging.WARNING):
            validate_settings_on_startup(settings)

        assert "CORS is configured to allow all origins" in caplog.text

    def test_no_cors_warning_in_debug_mode(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        settings = _settings(SC_DEBUG="true", SC_OPENAI_API_KEY="sk-test")

        with caplog.at_level(logging.WARNING):
            validate_settings_on_startup(settings)

        assert "CORS is configured to allow all origins" not in caplog.text

    def test_logs_configuration_summary(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO):
            validate_settings_on_startup(_settings(SC_OPENAI_API_KEY="sk-test"))

        assert "Configuration loaded" in caplog.text
        assert "log_level=INFO" in caplog.text
