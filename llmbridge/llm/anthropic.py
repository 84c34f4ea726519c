"""
Anthropic provider implementation.

WHAT: Claude models via the Anthropic Messages API
WHY: Vendor-hosted proprietary backend with its own schema and stream protocol
HOW: HTTPX client with x-api-key auth, prefix-gated beta headers, SSE event decoding
"""

from dataclasses import dataclass
from functools import partial
from typing import Optional

import httpx

from .errors import classify_anthropic_response
from .formats import anthropic as anthropic_format
from .provider import MessageStream
from .types import (
    ConfigKey,
    Message,
    ModelConfig,
    ModelInfo,
    ProviderMetadata,
    ProviderUsage,
    Tool,
)
from .utils import (
    decode_stream,
    emit_debug_trace,
    fetch_model_listing,
    get_model,
    join_url,
    open_stream,
    post_json,
)
from ..core.config import ConfigProvider, SettingsConfig, is_truthy
from ..utils.logger import get_logger

logger = get_logger(__name__)

ANTHROPIC_HOST = "https://api.anthropic.com"
ANTHROPIC_TIMEOUT = 600  # seconds
ANTHROPIC_DEFAULT_MODEL = "claude-3-5-sonnet-latest"
ANTHROPIC_DOC_URL = "https://docs.anthropic.com/en/docs/about-claude/models"
ANTHROPIC_API_VERSION = "2023-06-01"
ANTHROPIC_KNOWN_MODELS = [
    "claude-sonnet-4-latest",
    "claude-sonnet-4-20250514",
    "claude-opus-4-latest",
    "claude-opus-4-20250514",
    "claude-3-7-sonnet-latest",
    "claude-3-7-sonnet-20250219",
    "claude-3-5-sonnet-latest",
    "claude-3-5-sonnet-20241022",
    "claude-3-5-haiku-20241022",
    "claude-3-opus-20240229",
    "claude-3-sonnet-20240229",
    "claude-3-haiku-20240307",
]


@dataclass(frozen=True)
class BetaRule:
    """anthropic-beta flag sent for models whose name starts with prefix."""
    prefix: str
    beta: str
    requires_thinking: bool = False


BETA_RULES = (
    BetaRule("claude-3-7-sonnet-", "output-128k-2025-02-19", requires_thinking=True),
    BetaRule("claude-3-7-sonnet-", "token-efficient-tools-2025-02-19"),
)


def build_headers(model_name: str, api_key: str, thinking_enabled: bool = False) -> dict[str, str]:
    """Request headers for a model, with beta flags from BETA_RULES."""
    headers = {
        "x-api-key": api_key,
        "anthropic-version": ANTHROPIC_API_VERSION,
    }
    betas = [
        rule.beta
        for rule in BETA_RULES
        if model_name.startswith(rule.prefix) and (thinking_enabled or not rule.requires_thinking)
    ]
    if betas:
        headers["anthropic-beta"] = ",".join(betas)
    return headers


class AnthropicProvider:
    """Anthropic Messages API provider."""

    def __init__(
        self,
        model: ModelConfig,
        *,
        api_key: str,
        host: str = ANTHROPIC_HOST,
        timeout: float = ANTHROPIC_TIMEOUT,
        thinking_enabled: bool = False,
        thinking_budget: int = anthropic_format.DEFAULT_THINKING_BUDGET,
        chat_mode: bool = False,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Anthropic provider.

        Args:
            model: Model to use for every call
            api_key: Anthropic API key
            host: Base host; endpoints are joined under it
            timeout: Read timeout in seconds (ignored when client is given)
            thinking_enabled: Extended-thinking toggle for models that support it
            thinking_budget: Token budget for extended thinking
            chat_mode: Drop tools from every request
            client: Shared transport; created when omitted
        """
        self.model = model
        self.api_key = api_key
        self.host = host
        self.thinking_enabled = thinking_enabled
        self.thinking_budget = thinking_budget
        self.chat_mode = chat_mode
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, read=timeout),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        )
        logger.info(
            f"Anthropic provider initialized (model: {model.model_name}, "
            f"API key: {'*' * 10 + api_key[-4:] if len(api_key) > 4 else '***'})"
        )

    @classmethod
    def from_config(
        cls,
        model: Optional[ModelConfig] = None,
        config: Optional[ConfigProvider] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "AnthropicProvider":
        """
        Build from a configuration capability.

        Raises:
            ConfigError: ANTHROPIC_API_KEY is not set
        """
        config = config or SettingsConfig()
        return cls(
            model or ModelConfig(ANTHROPIC_DEFAULT_MODEL),
            api_key=config.get_secret("ANTHROPIC_API_KEY"),
            host=config.get_param("ANTHROPIC_HOST", ANTHROPIC_HOST),
            timeout=float(config.get_param("ANTHROPIC_TIMEOUT", ANTHROPIC_TIMEOUT)),
            thinking_enabled=is_truthy(config.get_param("CLAUDE_THINKING_ENABLED", False)),
            thinking_budget=int(
                config.get_param("CLAUDE_THINKING_BUDGET", anthropic_format.DEFAULT_THINKING_BUDGET)
            ),
            chat_mode=config.get_param("LLM_MODE", "auto") == "chat",
            client=client,
        )

    @classmethod
    def metadata(cls) -> ProviderMetadata:
        return ProviderMetadata(
            name="anthropic",
            display_name="Anthropic",
            description="Claude and other models from Anthropic",
            default_model=ANTHROPIC_DEFAULT_MODEL,
            known_models=[ModelInfo(name, 200_000) for name in ANTHROPIC_KNOWN_MODELS],
            model_doc_link=ANTHROPIC_DOC_URL,
            config_keys=[
                ConfigKey("ANTHROPIC_API_KEY", required=True, secret=True),
                ConfigKey("ANTHROPIC_HOST", required=True, secret=False, default=ANTHROPIC_HOST),
            ],
        )

    def get_model_config(self) -> ModelConfig:
        return self.model

    def supports_streaming(self) -> bool:
        return True

    def _headers(self) -> dict[str, str]:
        return build_headers(self.model.model_name, self.api_key, self.thinking_enabled)

    def _create_request(
        self, system: str, messages: list[Message], tools: list[Tool], stream: bool
    ) -> dict:
        return anthropic_format.create_request(
            self.model,
            system,
            messages,
            [] if self.chat_mode else tools,
            stream=stream,
            thinking_enabled=self.thinking_enabled,
            thinking_budget=self.thinking_budget,
        )

    async def complete(
        self,
        system: str,
        messages: list[Message],
        tools: list[Tool],
    ) -> tuple[Message, ProviderUsage]:
        """
        Generate complete response (non-streaming).

        Returns:
            Canonical message and usage attributed to the model that answered

        Raises:
            ProviderError: Classified HTTP failure, transport failure or bad body
        """
        payload = self._create_request(system, messages, tools, stream=False)
        response = await post_json(
            self.client,
            join_url(self.host, "v1/messages"),
            payload,
            self._headers(),
            classify_anthropic_response,
            "Anthropic",
        )

        message = anthropic_format.response_to_message(response)
        usage = anthropic_format.get_usage(response)
        model = get_model(response)
        emit_debug_trace(self.model, payload, response, usage)
        logger.info(f"Anthropic complete success (model: {model}, tokens: {usage.total_tokens})")
        return message, ProviderUsage(model=model, usage=usage)

    async def stream(
        self,
        system: str,
        messages: list[Message],
        tools: list[Tool],
    ) -> MessageStream:
        """
        Start a streaming response.

        Returns:
            Async iterator of (fragment, usage) items; close it to drop the connection

        Raises:
            ProviderError: Classified HTTP failure before the first item
        """
        payload = self._create_request(system, messages, tools, stream=True)
        response = await open_stream(
            self.client,
            join_url(self.host, "v1/messages"),
            payload,
            self._headers(),
            classify_anthropic_response,
            "Anthropic",
        )
        logger.debug(f"Anthropic stream opened (model: {self.model.model_name})")
        decoder = partial(
            anthropic_format.response_to_streaming_message, model_name=self.model.model_name
        )
        return decode_stream(response, decoder, "Anthropic")

    async def fetch_supported_models_async(self) -> Optional[list[str]]:
        """Fetch model ids from GET v1/models; None if the listing has no `data`."""
        return await fetch_model_listing(
            self.client,
            join_url(self.host, "v1/models"),
            {"x-api-key": self.api_key, "anthropic-version": ANTHROPIC_API_VERSION},
            "data",
            classify_anthropic_response,
            "Anthropic",
        )

    async def close(self):
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self.client.aclose()
