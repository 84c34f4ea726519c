"""
Ollama provider implementation.

WHAT: Local open-source models via Ollama's OpenAI-compatible endpoint
WHY: Local-first inference without external API keys
HOW: HTTPX client against a normalized host:port, OpenAI wire format, SSE streaming
"""

from functools import partial
from typing import Optional
from urllib.parse import urlsplit

import httpx

from .errors import classify_openai_compat_response
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

OLLAMA_HOST = "localhost"
OLLAMA_TIMEOUT = 600  # seconds
OLLAMA_DEFAULT_PORT = 11434
OLLAMA_DEFAULT_MODEL = "qwen2.5"
# Ollama can run many models, only the default is listed
OLLAMA_KNOWN_MODELS = [OLLAMA_DEFAULT_MODEL]
OLLAMA_DOC_URL = "https://ollama.com/library"


def get_base_url(host: str) -> str:
    """
    Normalize OLLAMA_HOST, which may be a bare host or host:port.

    Adds http:// when no scheme is given and the default port unless the URL
    is https or explicitly ends in :80 or :443.
    """
    base = host if host.startswith(("http://", "https://")) else f"http://{host}"
    parts = urlsplit(base)
    explicit_default_port = host.endswith((":80", ":443"))

    if parts.port is None and not explicit_default_port and parts.scheme != "https":
        netloc = f"{parts.netloc}:{OLLAMA_DEFAULT_PORT}"
        base = parts._replace(netloc=netloc).geturl()
    return base.rstrip("/")


class OllamaProvider:
    """Ollama LLM provider (OpenAI-compatible, local)."""

    def __init__(
        self,
        model: ModelConfig,
        *,
        host: str = OLLAMA_HOST,
        timeout: float = OLLAMA_TIMEOUT,
        chat_mode: bool = False,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Ollama provider.

        Args:
            model: Model to use for every call
            host: OLLAMA_HOST value (scheme and port optional)
            timeout: Read timeout in seconds (ignored when client is given)
            chat_mode: Drop tools from every request
            client: Shared transport; created when omitted
        """
        self.model = model
        self.host = host
        self.base_url = get_base_url(host)
        self.chat_mode = chat_mode
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(5.0, read=timeout),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        )
        logger.info(f"Ollama provider initialized (model: {model.model_name}, base_url: {self.base_url})")

    @classmethod
    def from_config(
        cls,
        model: Optional[ModelConfig] = None,
        config: Optional[ConfigProvider] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "OllamaProvider":
        """Build from a configuration capability; Ollama needs no secrets."""
        config = config or SettingsConfig()
        return cls(
            model or ModelConfig(OLLAMA_DEFAULT_MODEL),
            host=config.get_param("OLLAMA_HOST", OLLAMA_HOST),
            timeout=float(config.get_param("OLLAMA_TIMEOUT", OLLAMA_TIMEOUT)),
            chat_mode=config.get_param("LLM_MODE", "auto") == "chat",
            client=client,
        )

    @classmethod
    def metadata(cls) -> ProviderMetadata:
        return ProviderMetadata.create(
            "ollama",
            "Ollama",
            "Local open source models",
            OLLAMA_DEFAULT_MODEL,
            OLLAMA_KNOWN_MODELS,
            OLLAMA_DOC_URL,
            [
                ConfigKey("OLLAMA_HOST", required=True, secret=False, default=OLLAMA_HOST),
                ConfigKey("OLLAMA_TIMEOUT", required=False, secret=False, default=str(OLLAMA_TIMEOUT)),
            ],
        )

    def get_model_config(self) -> ModelConfig:
        return self.model

    def supports_streaming(self) -> bool:
        return True

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
            join_url(self.base_url, "v1/chat/completions"),
            payload,
            {},
            classify_openai_compat_response,
            "Ollama",
        )

        message = openai_format.response_to_message(response)
        if "usage" not in response:
            logger.debug("Ollama response has no usage data")
        usage = openai_format.get_usage(response.get("usage"))
        model = get_model(response)
        emit_debug_trace(self.model, payload, response, usage)
        logger.info(f"Ollama complete success (model: {model}, tokens: {usage.total_tokens})")
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
            join_url(self.base_url, "v1/chat/completions"),
            payload,
            {},
            classify_openai_compat_response,
            "Ollama",
        )
        decoder = partial(openai_format.response_to_streaming_message, model_name=self.model.model_name)
        return decode_stream(response, decoder, "Ollama")

    async def fetch_supported_models_async(self) -> Optional[list[str]]:
        """Fetch model ids from GET v1/models; None if the listing has no `data`."""
        return await fetch_model_listing(
            self.client,
            join_url(self.base_url, "v1/models"),
            {},
            "data",
            classify_openai_compat_response,
            "Ollama",
        )

    async def close(self):
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self.client.aclose()
