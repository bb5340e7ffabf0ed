"""Tests for environment-driven settings."""

import pytest

from wander_chat.config import DEFAULT_ALLOWED_ORIGINS, ConfigurationError, Settings


@pytest.fixture
def env(monkeypatch):
    for name in ("CHAT_MODEL", "WEATHER_API_KEY", "GOOGLE_API_KEY", "OPENAI_API_KEY", "MAX_CONVERSATIONS",
                 "CORS_ALLOWED_ORIGINS", "WEATHER_TIMEOUT_SECONDS", "PORT"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    def test_defaults(self, env):
        settings = Settings()

        assert settings.chat_model == "google_genai:gemini-3-flash-preview"
        assert settings.model_provider == "google_genai"
        assert settings.max_conversations is None
        assert settings.cors_allowed_origins == list(DEFAULT_ALLOWED_ORIGINS)
        assert settings.weather_timeout_seconds == 15.0
        assert settings.port == 8000

    def test_overrides_and_malformed_numbers(self, env):
        env.setenv("MAX_CONVERSATIONS", "500")
        env.setenv("CORS_ALLOWED_ORIGINS", "https://a.example, https://b.example,")
        env.setenv("WEATHER_TIMEOUT_SECONDS", "soon")
        env.setenv("PORT", "eighty")

        settings = Settings()

        assert settings.max_conversations == 500
        assert settings.cors_allowed_origins == ["https://a.example", "https://b.example"]
        assert settings.weather_timeout_seconds == 15.0
        assert settings.port == 8000


class TestValidate:
    def test_missing_weather_and_provider_keys(self, env):
        with pytest.raises(ConfigurationError) as exc_info:
            Settings().validate()

        assert "WEATHER_API_KEY" in str(exc_info.value)
        assert "GOOGLE_API_KEY" in str(exc_info.value)

    def test_provider_key_follows_model_prefix(self, env):
        env.setenv("CHAT_MODEL", "openai:gpt-4o-mini")
        env.setenv("WEATHER_API_KEY", "w")

        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            Settings().validate()

        env.setenv("OPENAI_API_KEY", "k")
        Settings().validate()

    def test_complete_configuration_passes(self, env):
        env.setenv("WEATHER_API_KEY", "w")
        env.setenv("GOOGLE_API_KEY", "g")

        Settings().validate()
