"""
Groq provider implementation.

WHAT: Hosted inference via Groq's OpenAI-compatible API
WHY: Fast cloud models behind a bearer-token chat completions endpoint
HOW: HTTPX client with Authorization header, OpenAI wire format, SSE streaming
"""

from functools import partial
from typing import Optional

import httpx

from .errors import classify_groq_response
from .formats import openai as openai_format
from .provider import MessageStream
from .types import (
    ConfigKey,
    ImageFormat,
    Message,
    ModelConfig,
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
from ..core.config import ConfigProvider, SettingsConfig
from ..utils.logger import get_logger

logger = get_logger(__name__)

GROQ_API_HOST = "https://api.groq.com"
GROQ_TIMEOUT = 600  # seconds
GROQ_DEFAULT_MODEL = "moonshotai/kimi-k2-instruct"
GROQ_KNOWN_MODELS = [
    "gemma2-9b-it",
    "llama-3.3-70b-versatile",
    "moonshotai/kimi-k2-instruct",
    "qwen/qwen3-32b",
]
GROQ_DOC_URL = "https://console.groq.com/docs/models"


class GroqProvider:
    """Groq LLM provider (OpenAI-compatible, hosted)."""

    def __init__(
        self,
        model: ModelConfig,
        *,
        api_key: str,
        host: str = GROQ_API_HOST,
        timeout: float = GROQ_TIMEOUT,
        chat_mode: bool = False,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Groq provider.

        Args:
            model: Model to use for every call
            api_key: Groq API key (sent as a bearer token)
            host: Base host; endpoints are joined under it
            timeout: Read timeout in seconds (ignored when client is given)
            chat_mode: Drop tools from every request
            client: Shared transport; created when omitted
        """
        self.model = model
        self.api_key = api_key
        self.host = host
        self.chat_mode = chat_mode
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, read=timeout),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        )
        logger.info(
            f"Groq provider initialized (model: {model.model_name}, "
            f"API key: {'*' * 10 + api_key[-4:] if len(api_key) > 4 else '***'})"
        )

    @classmethod
    def from_config(
        cls,
        model: Optional[ModelConfig] = None,
        config: Optional[ConfigProvider] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "GroqProvider":
        """
        Build from a configuration capability.

        Raises:
            ConfigError: GROQ_API_KEY is not set
        """
        config = config or SettingsConfig()
        return cls(
            model or ModelConfig(GROQ_DEFAULT_MODEL),
            api_key=config.get_secret("GROQ_API_KEY"),
            host=config.get_param("GROQ_HOST", GROQ_API_HOST),
            timeout=float(config.get_param("GROQ_TIMEOUT", GROQ_TIMEOUT)),
            chat_mode=config.get_param("LLM_MODE", "auto") == "chat",
            client=client,
        )

    @classmethod
    def metadata(cls) -> ProviderMetadata:
        return ProviderMetadata.create(
            "groq",
            "Groq",
            "Fast inference with Groq hardware",
            GROQ_DEFAULT_MODEL,
            GROQ_KNOWN_MODELS,
            GROQ_DOC_URL,
            [
                ConfigKey("GROQ_API_KEY", required=True, secret=True),
                ConfigKey("GROQ_HOST", required=False, secret=False, default=GROQ_API_HOST),
            ],
        )

    def get_model_config(self) -> ModelConfig:
        return self.model

    def supports_streaming(self) -> bool:
        return True

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _create_request(
        self, system: str, messages: list[Message], tools: list[Tool], stream: bool
    ) -> dict:
        return openai_format.create_request(
            self.model,
            system,
            messages,
            [] if self.chat_mode else tools,
            ImageFormat.OPENAI,
            stream=stream,
        )

    async def complete(
        self,
        system: str,
        messages: list[Message],
        tools: list[Tool],
    ) -> tuple[Message, ProviderUsage]:
        """
        Generate complete response (non-streaming).

        Raises:
            ProviderError: Classified HTTP failure, transport failure or bad body
        """
        payload = self._create_request(system, messages, tools, stream=False)
        response = await post_json(
            self.client,
            join_url(self.host, "openai/v1/chat/completions"),
            payload,
            self._headers(),
            classify_groq_response,
            "Groq",
        )

        message = openai_format.response_to_message(response)
        if "usage" not in response:
            logger.debug("Groq response has no usage data")
        usage = openai_format.get_usage(response.get("usage"))
        model = get_model(response)
        emit_debug_trace(self.model, payload, response, usage)
        logger.info(f"Groq complete success (model: {model}, tokens: {usage.total_tokens})")
        return message, ProviderUsage(model=model, usage=usage)

    async def stream(
        self,
        system: str,
        messages: list[Message],
        tools: list[Tool],
    ) -> MessageStream:
        """
        Start a streaming response.

        Raises:
            ProviderError: Classified HTTP failure before the first item
        """
        payload = self._create_request(system, messages, tools, stream=True)
        response = await open_stream(
            self.client,
            join_url(self.host, "openai/v1/chat/completions"),
            payload,
            self._headers(),
            classify_groq_response,
            "Groq",
        )
        decoder = partial(openai_format.response_to_streaming_message, model_name=self.model.model_name)
        return decode_stream(response, decoder, "Groq")

    async def fetch_supported_models_async(self) -> Optional[list[str]]:
        """Fetch model ids from GET openai/v1/models; None if the listing has no `data`."""
        return await fetch_model_listing(
            self.client,
            join_url(self.host, "openai/v1/models"),
            {**self._headers(), "Content-Type": "application/json"},
            "data",
            classify_groq_response,
            "Groq",
        )

    async def close(self):
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self.client.aclose()
