"""
LLM provider factory with singleton pattern.

WHAT: Registry of providers plus a factory for the configured one
WHY: Centralize provider selection and avoid multiple instances
HOW: Map provider names to classes, read LLM_PROVIDER from config, cache singleton
"""

from typing import TYPE_CHECKING, Optional

import httpx

from .anthropic import AnthropicProvider
from .groq import GroqProvider
from .ollama import OllamaProvider
from .types import ModelConfig, ProviderMetadata
from ..core.config import ConfigProvider

if TYPE_CHECKING:
    from .provider import LLMProvider

PROVIDERS = {
    "anthropic": AnthropicProvider,
    "groq": GroqProvider,
    "ollama": OllamaProvider,
}

# Singleton instance
_provider_instance: "LLMProvider | None" = None


def providers() -> list[ProviderMetadata]:
    """Metadata for every registered provider."""
    return [cls.metadata() for cls in PROVIDERS.values()]


def create_provider(
    name: str,
    model: Optional[ModelConfig] = None,
    config: Optional[ConfigProvider] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> "LLMProvider":
    """
    Build a new provider instance.

    Args:
        name: Registered provider name
        model: Model to use (provider default when omitted)
        config: Configuration capability (process settings when omitted)
        client: Shared HTTP transport

    Raises:
        ValueError: If provider name is unknown
        ConfigError: If a required key is missing
    """
    try:
        provider_cls = PROVIDERS[name]
    except KeyError:
        raise ValueError(f"Unknown LLM provider: {name}") from None
    return provider_cls.from_config(model=model, config=config, client=client)


def get_provider() -> "LLMProvider":
    """
    Get the configured LLM provider singleton.

    Returns:
        Provider instance based on settings.LLM_PROVIDER and settings.LLM_MODEL

    Raises:
        ValueError: If provider name is unknown
    """
    global _provider_instance

    if _provider_instance is None:
        # Import here so tests can patch settings
        from ..core.config import settings
        from ..utils.logger import get_logger

        logger = get_logger(__name__)
        provider_name = settings.LLM_PROVIDER
        model = ModelConfig(settings.LLM_MODEL) if settings.LLM_MODEL else None

        _provider_instance = create_provider(provider_name, model=model)
        logger.info(f"LLM provider initialized: {provider_name}")

    return _provider_instance


def reset_provider() -> None:
    """Reset the provider singleton (useful for testing)."""
    global _provider_instance
    _provider_instance = None
