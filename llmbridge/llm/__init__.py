"""LLM provider layer."""

from .types import (
    ConfigKey,
    ImageContent,
    ImageFormat,
    Message,
    ModelConfig,
    ModelInfo,
    ProviderMetadata,
    ProviderUsage,
    RedactedThinkingContent,
    TextContent,
    ThinkingContent,
    Tool,
    ToolCall,
    ToolCallError,
    ToolRequest,
    ToolResponse,
    Usage,
)
from .errors import (
    AuthenticationError,
    ContextLengthExceededError,
    ErrorKind,
    ProviderError,
    RateLimitExceededError,
    RequestFailedError,
    ServerError,
    UsageError,
)
from .token_tracker import (
    SharedTokenTracker,
    TokenTracker,
    WarningState,
    create_shared_tracker,
)
from .provider import LLMProvider, MessageStream
from .anthropic import AnthropicProvider
from .groq import GroqProvider
from .ollama import OllamaProvider
from .provider_factory import create_provider, get_provider, providers, reset_provider
from .streaming_handler import bounded_text, collect_stream, stream_text, track_stream

__all__ = [
    "ConfigKey",
    "ImageContent",
    "ImageFormat",
    "Message",
    "ModelConfig",
    "ModelInfo",
    "ProviderMetadata",
    "ProviderUsage",
    "RedactedThinkingContent",
    "TextContent",
    "ThinkingContent",
    "Tool",
    "ToolCall",
    "ToolCallError",
    "ToolRequest",
    "ToolResponse",
    "Usage",
    "AuthenticationError",
    "ContextLengthExceededError",
    "ErrorKind",
    "ProviderError",
    "RateLimitExceededError",
    "RequestFailedError",
    "ServerError",
    "UsageError",
    "SharedTokenTracker",
    "TokenTracker",
    "WarningState",
    "create_shared_tracker",
    "LLMProvider",
    "MessageStream",
    "AnthropicProvider",
    "GroqProvider",
    "OllamaProvider",
    "create_provider",
    "get_provider",
    "providers",
    "reset_provider",
    "bounded_text",
    "collect_stream",
    "stream_text",
    "track_stream",
]
