import logging
import os
from functools import lru_cache
from typing import List, Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CHAT_MODEL = "google_genai:gemini-3-flash-preview"
DEFAULT_WEATHER_BASE_URL = (
    "https://weather.visualcrossing.com/VisualCrossingWebServices/rest/services/timeline"
)
DEFAULT_ALLOWED_ORIGINS = (
    "https://localhost",
    "https://localhost:8100",
    "http://localhost:8100",
    "capacitor://localhost",
)

# Credential each LangChain provider prefix needs before the first model call.
PROVIDER_API_KEY_ENV = {
    "google_genai": "GOOGLE_API_KEY",
    "openai": "OPENAI_API_KEY",
    "azure_openai": "AZURE_OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "groq": "GROQ_API_KEY",
}


class ConfigurationError(RuntimeError):
    """Required provider credentials or settings are missing."""


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        logger.warning("Ignoring malformed %s, using %s", name, default)
        return default


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s, using %s", name, default)
        return default


def _env_list(name: str, default: Tuple[str, ...]) -> List[str]:
    raw = os.getenv(name)
    if raw is None:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings:
    def __init__(self) -> None:
        # Model
        self.chat_model: str = os.getenv("CHAT_MODEL", DEFAULT_CHAT_MODEL).strip()

        # Weather provider
        self.weather_api_key: Optional[str] = os.getenv("WEATHER_API_KEY") or None
        self.weather_base_url: str = os.getenv("WEATHER_BASE_URL", DEFAULT_WEATHER_BASE_URL).rstrip("/")
        self.weather_timeout_seconds: float = _env_float("WEATHER_TIMEOUT_SECONDS", 15.0)

        # Conversation store; unset means conversations live for the whole process
        self.max_conversations: Optional[int] = _env_int("MAX_CONVERSATIONS", None)

        # HTTP surface
        self.cors_allowed_origins: List[str] = _env_list("CORS_ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS)
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.host: str = os.getenv("HOST", "0.0.0.0")
        self.port: int = _env_int("PORT", 8000) or 8000

    @property
    def model_provider(self) -> str:
        provider, sep, _ = self.chat_model.partition(":")
        return provider if sep else ""

    def validate(self) -> None:
        """Raise ConfigurationError when the service cannot start."""
        missing = []
        if not self.chat_model:
            missing.append("CHAT_MODEL")
        if not self.weather_api_key:
            missing.append("WEATHER_API_KEY")
        key_env = PROVIDER_API_KEY_ENV.get(self.model_provider)
        if key_env and not os.getenv(key_env):
            missing.append(key_env)
        if missing:
            raise ConfigurationError(f"Required configuration is missing: {', '.join(missing)}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_dotenv()
    return Settings()
