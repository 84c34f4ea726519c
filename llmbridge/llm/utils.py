"""
Shared helpers for provider implementations.

WHAT: HTTP call plumbing, body parsing, model attribution, model listings, tracing
WHY: Every backend needs the same tolerant handling around its own formats
HOW: Small async helpers parameterized by the backend's classifier and decoder
"""

import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterable, AsyncIterator, Callable, Optional

import httpx

from .errors import (
    AuthenticationError,
    ProviderError,
    RequestFailedError,
    extract_error_message,
)
from .sse import SSEEvent, iter_sse_events
from .types import Message, ModelConfig, ProviderUsage, Usage
from ..utils.logger import get_logger

logger = get_logger(__name__)

Classifier = Callable[[int, Any], Any]
StreamDecoder = Callable[[AsyncIterable[SSEEvent]], AsyncIterator[tuple[Message, Optional[ProviderUsage]]]]


def parse_json_body(response: httpx.Response) -> Optional[Any]:
    """Best-effort JSON decode; None when the body is not valid JSON."""
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def get_model(response: Any) -> str:
    """Concrete model identifier reported by the backend."""
    if isinstance(response, dict):
        model = response.get("model")
        if isinstance(model, str) and model:
            return model
    return "Unknown"


def _model_id(entry: Any) -> Optional[str]:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        for key in ("id", "name"):
            value = entry.get(key)
            if isinstance(value, str):
                return value
    return None


def parse_model_listing(payload: Any, key: str) -> Optional[list[str]]:
    """
    Extract model ids from a listing response.

    Accepts a list under ``key`` of strings or objects with an id, or an
    object under ``key`` that nests the list one level down.

    Args:
        payload: Parsed listing body
        key: Name of the list field for this backend

    Returns:
        Sorted, de-duplicated ids, or None when ``key`` is absent

    Raises:
        AuthenticationError: The body reports an API error
    """
    if isinstance(payload, dict) and payload.get("error"):
        raise AuthenticationError(extract_error_message(payload) or "unknown error", details=payload)

    if isinstance(payload, list):
        entries = payload
    elif isinstance(payload, dict) and key in payload:
        entries = payload[key]
        if isinstance(entries, dict):
            nested = [v for v in entries.values() if isinstance(v, list)]
            if not nested:
                return None
            entries = nested[0]
    else:
        return None

    if not isinstance(entries, list):
        return None

    ids = {model_id for model_id in (_model_id(e) for e in entries) if model_id}
    return sorted(ids)


def join_url(host: str, path: str) -> str:
    """Join a base host and a relative endpoint path."""
    return f"{host.rstrip('/')}/{path.lstrip('/')}"


def transport_error(exc: httpx.HTTPError, provider_name: str) -> RequestFailedError:
    """Map an httpx failure onto RequestFailed."""
    if isinstance(exc, httpx.TimeoutException):
        logger.error(f"{provider_name} request timed out")
        return RequestFailedError(f"{provider_name} request timed out: {exc}")
    if isinstance(exc, httpx.ConnectError):
        logger.error(f"{provider_name} connection refused")
        return RequestFailedError(f"{provider_name} is not reachable: {exc}")
    logger.error(f"{provider_name} transport error: {exc}")
    return RequestFailedError(f"{provider_name} transport error: {exc}")


def emit_debug_trace(model_config: ModelConfig, payload: Any, response: Any, usage: Usage) -> None:
    """Log request/response for one call at debug level."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    logger.debug(
        "model=%s input=%s output=%s input_tokens=%s output_tokens=%s total_tokens=%s",
        model_config.model_name,
        json.dumps(payload, default=str),
        json.dumps(response, default=str) if isinstance(response, (dict, list)) else repr(response),
        usage.input_tokens,
        usage.output_tokens,
        usage.total_tokens,
    )


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    payload: dict,
    headers: dict[str, str],
    classify: Classifier,
    provider_name: str,
) -> Any:
    """
    POST a payload and return the classified JSON body.

    Raises:
        ProviderError: Transport failure (RequestFailed) or classified HTTP error
    """
    try:
        response = await client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as e:
        raise transport_error(e, provider_name) from e

    try:
        return classify(response.status_code, parse_json_body(response))
    except ProviderError as e:
        logger.warning(f"{provider_name} request failed ({e.kind.value}): {e.message[:200]}")
        raise


async def open_stream(
    client: httpx.AsyncClient,
    url: str,
    payload: dict,
    headers: dict[str, str],
    classify: Classifier,
    provider_name: str,
) -> httpx.Response:
    """
    Send a streaming POST and return the open response once the status is known.

    Non-2xx responses are read, closed and classified here, before any frame
    is decoded.
    """
    request = client.build_request("POST", url, json=payload, headers=headers)
    try:
        response = await client.send(request, stream=True)
    except httpx.HTTPError as e:
        raise transport_error(e, provider_name) from e

    if response.is_success:
        return response

    try:
        await response.aread()
    except httpx.HTTPError as e:
        raise transport_error(e, provider_name) from e
    finally:
        await response.aclose()

    try:
        classify(response.status_code, parse_json_body(response))
    except ProviderError as e:
        logger.warning(f"{provider_name} streaming request failed ({e.kind.value}): {e.message[:200]}")
        raise
    raise RequestFailedError(
        f"Streaming request failed with status: {response.status_code}",
        status_code=response.status_code,
    )


async def decode_stream(
    response: httpx.Response,
    decoder: StreamDecoder,
    provider_name: str,
) -> AsyncIterator[tuple[Message, Optional[ProviderUsage]]]:
    """
    Yield decoded items from an open streaming response.

    The response is closed when the stream ends, fails, or the consumer
    closes this generator early.

    Raises:
        RequestFailedError: Malformed frame ("Stream decode error") or transport failure
        ProviderError: Error event reported inside the stream
    """
    count = 0
    try:
        async with aclosing(decoder(iter_sse_events(response.aiter_lines()))) as items:
            async for item in items:
                count += 1
                yield item
    except ProviderError:
        raise
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        logger.error(f"{provider_name} stream decode error after {count} items: {e}")
        raise RequestFailedError(f"Stream decode error: {e}") from e
    except httpx.HTTPError as e:
        raise transport_error(e, provider_name) from e
    finally:
        await response.aclose()
    logger.info(f"{provider_name} stream completed ({count} items)")


async def fetch_model_listing(
    client: httpx.AsyncClient,
    url: str,
    headers: dict[str, str],
    key: str,
    classify: Classifier,
    provider_name: str,
) -> Optional[list[str]]:
    """
    GET a model listing endpoint.

    Returns:
        Sorted, de-duplicated model ids, or None when the listing key is absent

    Raises:
        AuthenticationError: Body carries an error object
        ProviderError: Other non-2xx statuses, classified
        RequestFailedError: Transport failure or non-JSON body
    """
    try:
        response = await client.get(url, headers=headers)
    except httpx.HTTPError as e:
        raise transport_error(e, provider_name) from e

    payload = parse_json_body(response)
    if payload is None:
        raise RequestFailedError("Response body is not valid JSON", status_code=response.status_code)

    if not response.is_success and not (isinstance(payload, dict) and payload.get("error")):
        classify(response.status_code, payload)

    models = parse_model_listing(payload, key)
    if models is None:
        logger.info(f"{provider_name} model listing has no `{key}` field")
    else:
        logger.info(f"{provider_name} listed {len(models)} models")
    return models
