"""
LLM provider protocol definition.

WHAT: Abstract interface for LLM providers
WHY: Decouple calling code from specific provider implementations
HOW: Use Protocol to define async methods for complete, stream and model listing
"""

from typing import AsyncIterator, Optional, Protocol

from .types import Message, ModelConfig, ProviderMetadata, ProviderUsage, Tool

# Items are (fragment, usage); usage is set on the frames that report it
MessageStream = AsyncIterator[tuple[Message, Optional[ProviderUsage]]]


class LLMProvider(Protocol):
    """Protocol defining the interface all LLM providers must implement."""

    @classmethod
    def metadata(cls) -> ProviderMetadata:
        """Static provider description."""
        ...

    def get_model_config(self) -> ModelConfig:
        """Model this provider instance was built for."""
        ...

    async def complete(
        self,
        system: str,
        messages: list[Message],
        tools: list[Tool],
    ) -> tuple[Message, ProviderUsage]:
        """Generate a complete response (non-streaming)."""
        ...

    async def stream(
        self,
        system: str,
        messages: list[Message],
        tools: list[Tool],
    ) -> MessageStream:
        """
        Start a streaming response.

        HTTP errors are raised here; decode errors are raised while iterating.
        Closing the returned iterator releases the connection.
        """
        ...

    async def fetch_supported_models_async(self) -> Optional[list[str]]:
        """Sorted model ids from the backend, or None if it reports none."""
        ...

    def supports_streaming(self) -> bool:
        ...

    async def close(self) -> None:
        """Close the HTTP client."""
        ...
