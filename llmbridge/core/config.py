"""
Application configuration using pydantic-settings.

WHAT: Centralized config from environment variables plus a config capability
WHY: Providers read keys through an explicit object instead of global state
HOW: Pydantic BaseSettings reads from .env and environment; ConfigProvider
     adapters expose it (or any plain mapping) to provider constructors
"""

from pathlib import Path
from typing import Any, Literal, Mapping, Protocol

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigError(Exception):
    """Required configuration value is missing."""
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=str(Path.cwd() / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Provider Selection
    LLM_PROVIDER: Literal["anthropic", "groq", "ollama"] = "anthropic"
    LLM_MODEL: str | None = None  # None means the provider's default model
    LLM_MODE: Literal["auto", "chat"] = "auto"  # "chat" disables tool use

    # Anthropic Configuration
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_HOST: str = "https://api.anthropic.com"
    ANTHROPIC_TIMEOUT: int = 600  # seconds
    CLAUDE_THINKING_ENABLED: bool = False
    CLAUDE_THINKING_BUDGET: int = 16000

    # Groq Configuration
    GROQ_API_KEY: str = ""
    GROQ_HOST: str = "https://api.groq.com"
    GROQ_TIMEOUT: int = 600

    # Ollama Configuration
    OLLAMA_HOST: str = "localhost"
    OLLAMA_TIMEOUT: int = 600

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "./data/logs/llmbridge.log"

    @field_validator("LLM_MODEL", mode="before")
    @classmethod
    def empty_model_is_default(cls, v):
        """Treat LLM_MODEL="" as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ConfigProvider(Protocol):
    """Capability handed to providers for reading their configuration."""

    def get_param(self, key: str, default: Any = None) -> Any:
        """Return a non-secret parameter, or default when unset."""
        ...

    def get_secret(self, key: str) -> str:
        """Return a secret value; raise ConfigError when unset."""
        ...


class SettingsConfig:
    """ConfigProvider backed by a Settings instance."""

    def __init__(self, source: Settings | None = None):
        self.source = source if source is not None else settings

    def get_param(self, key: str, default: Any = None) -> Any:
        value = getattr(self.source, key, None)
        if value is None or value == "":
            return default
        return value

    def get_secret(self, key: str) -> str:
        value = getattr(self.source, key, None)
        if not value or not str(value).strip():
            raise ConfigError(f"{key} is not set or empty")
        return str(value)


class StaticConfig:
    """ConfigProvider backed by a plain mapping (tests, embedding)."""

    def __init__(self, values: Mapping[str, Any] | None = None):
        self.values = dict(values or {})

    def get_param(self, key: str, default: Any = None) -> Any:
        value = self.values.get(key)
        if value is None or value == "":
            return default
        return value

    def get_secret(self, key: str) -> str:
        value = self.values.get(key)
        if not value or not str(value).strip():
            raise ConfigError(f"{key} is not set or empty")
        return str(value)


def is_truthy(value: Any) -> bool:
    """Interpret a config flag that may arrive as bool or string."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


# Singleton instance
settings = Settings()
