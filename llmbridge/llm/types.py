"""
LLM provider types and dataclasses.

WHAT: Canonical message, tool, usage and metadata definitions
WHY: Ensure consistent contracts across all providers
HOW: Dataclasses for content blocks, messages, usage and provider metadata
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Union


Role = Literal["user", "assistant"]

DEFAULT_CONTEXT_LIMIT = 128_000

# Longest matching prefix wins
MODEL_CONTEXT_LIMITS: dict[str, int] = {
    "claude": 200_000,
    "gpt-4o": 128_000,
    "gpt-4-turbo": 128_000,
    "llama3.2": 128_000,
    "llama-3.3": 128_000,
    "llama3.3": 128_000,
    "qwen2.5": 128_000,
    "gemma2": 8_192,
    "moonshotai/kimi-k2": 131_072,
}


@dataclass(frozen=True)
class ModelConfig:
    """Model selection plus optional request tuning."""
    model_name: str
    context_limit_hint: int | None = None
    temperature: float | None = None
    max_tokens: int | None = None

    def context_limit(self) -> int:
        """Context window to assume for this model."""
        if self.context_limit_hint is not None:
            return self.context_limit_hint
        matches = [p for p in MODEL_CONTEXT_LIMITS if self.model_name.startswith(p)]
        if matches:
            return MODEL_CONTEXT_LIMITS[max(matches, key=len)]
        return DEFAULT_CONTEXT_LIMIT


class ImageFormat(str, Enum):
    """How image blocks are encoded for OpenAI-style payloads."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass
class TextContent:
    text: str


@dataclass
class ImageContent:
    """Base64-encoded image."""
    data: str
    mime_type: str


@dataclass
class ToolCall:
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolCallError:
    """Tool call (or result) that could not be produced."""
    message: str


@dataclass
class ToolRequest:
    id: str
    tool_call: Union[ToolCall, ToolCallError]


@dataclass
class ToolResponse:
    id: str
    tool_result: Union[list[Union[TextContent, ImageContent]], ToolCallError]


@dataclass
class ThinkingContent:
    thinking: str
    signature: str = ""


@dataclass
class RedactedThinkingContent:
    data: str


MessageContent = Union[
    TextContent,
    ImageContent,
    ToolRequest,
    ToolResponse,
    ThinkingContent,
    RedactedThinkingContent,
]


@dataclass
class Message:
    """One model turn as ordered content blocks."""
    role: Role
    content: list[MessageContent] = field(default_factory=list)
    created: int = field(default_factory=lambda: int(time.time()))

    @classmethod
    def user(cls) -> "Message":
        return cls(role="user")

    @classmethod
    def assistant(cls) -> "Message":
        return cls(role="assistant")

    def with_content(self, block: MessageContent) -> "Message":
        self.content.append(block)
        return self

    def with_text(self, text: str) -> "Message":
        return self.with_content(TextContent(text=text))

    def with_image(self, data: str, mime_type: str) -> "Message":
        return self.with_content(ImageContent(data=data, mime_type=mime_type))

    def with_tool_request(self, id: str, tool_call: Union[ToolCall, ToolCallError]) -> "Message":
        return self.with_content(ToolRequest(id=id, tool_call=tool_call))

    def with_tool_response(self, id: str, tool_result) -> "Message":
        return self.with_content(ToolResponse(id=id, tool_result=tool_result))

    def with_thinking(self, thinking: str, signature: str = "") -> "Message":
        return self.with_content(ThinkingContent(thinking=thinking, signature=signature))

    def with_redacted_thinking(self, data: str) -> "Message":
        return self.with_content(RedactedThinkingContent(data=data))

    def as_concat_text(self) -> str:
        """Join all text blocks with newlines."""
        return "\n".join(c.text for c in self.content if isinstance(c, TextContent))

    def tool_requests(self) -> list[ToolRequest]:
        return [c for c in self.content if isinstance(c, ToolRequest)]


@dataclass(frozen=True)
class Tool:
    """Tool definition offered to the model."""
    name: str
    description: str
    input_schema: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})


def _add_optional(a: int | None, b: int | None) -> int | None:
    if a is None and b is None:
        return None
    return (a or 0) + (b or 0)


@dataclass(frozen=True)
class Usage:
    """Token counts; any field may be unknown."""
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None

    def __add__(self, other: "Usage") -> "Usage":
        if not isinstance(other, Usage):
            return NotImplemented
        return Usage(
            input_tokens=_add_optional(self.input_tokens, other.input_tokens),
            output_tokens=_add_optional(self.output_tokens, other.output_tokens),
            total_tokens=_add_optional(self.total_tokens, other.total_tokens),
        )


@dataclass(frozen=True)
class ProviderUsage:
    """Usage plus the concrete model that produced it."""
    model: str
    usage: Usage


@dataclass(frozen=True)
class ModelInfo:
    name: str
    context_limit: int


@dataclass(frozen=True)
class ConfigKey:
    """Configuration key a provider reads."""
    name: str
    required: bool
    secret: bool
    default: str | None = None


@dataclass(frozen=True)
class ProviderMetadata:
    """Static description of a provider."""
    name: str
    display_name: str
    description: str
    default_model: str
    known_models: list[ModelInfo]
    model_doc_link: str
    config_keys: list[ConfigKey]

    @classmethod
    def create(
        cls,
        name: str,
        display_name: str,
        description: str,
        default_model: str,
        model_names: list[str],
        model_doc_link: str,
        config_keys: list[ConfigKey],
    ) -> "ProviderMetadata":
        """Build metadata from bare model names using the default context limit."""
        return cls(
            name=name,
            display_name=display_name,
            description=description,
            default_model=default_model,
            known_models=[
                ModelInfo(m, ModelConfig(m).context_limit()) for m in model_names
            ],
            model_doc_link=model_doc_link,
            config_keys=config_keys,
        )
