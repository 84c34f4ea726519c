"""
Provider error taxonomy and response classifiers.

WHAT: One closed set of error kinds plus per-backend status/body classifiers
WHY: Backends disagree on where errors live; callers only see ErrorKind
HOW: ProviderError subclasses keyed by ErrorKind; classify_* functions map
     (status code, parsed body) to either the payload or a raised error
"""

from enum import Enum
from typing import Any, Optional

from ..utils.logger import get_logger

logger = get_logger(__name__)


class ErrorKind(str, Enum):
    AUTHENTICATION = "authentication"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    CONTEXT_LENGTH_EXCEEDED = "context_length_exceeded"
    SERVER_ERROR = "server_error"
    REQUEST_FAILED = "request_failed"
    USAGE_ERROR = "usage_error"


RETRYABLE_KINDS = frozenset({ErrorKind.RATE_LIMIT_EXCEEDED, ErrorKind.SERVER_ERROR})


class ProviderError(Exception):
    """Base class for all provider failures."""

    kind: ErrorKind = ErrorKind.REQUEST_FAILED

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        details: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details

    @property
    def retryable(self) -> bool:
        """Whether the caller may retry the same request after backing off."""
        return self.kind in RETRYABLE_KINDS


class AuthenticationError(ProviderError):
    """API key missing, invalid, or lacking permissions."""
    kind = ErrorKind.AUTHENTICATION


class RateLimitExceededError(ProviderError):
    """Backend rejected the call for rate limiting."""
    kind = ErrorKind.RATE_LIMIT_EXCEEDED


class ContextLengthExceededError(ProviderError):
    """Input too large; shrink it, never retry as-is."""
    kind = ErrorKind.CONTEXT_LENGTH_EXCEEDED


class ServerError(ProviderError):
    """Backend-side failure (5xx, overloaded)."""
    kind = ErrorKind.SERVER_ERROR


class RequestFailedError(ProviderError):
    """Generic transport, parse or validation failure."""
    kind = ErrorKind.REQUEST_FAILED


class UsageError(ProviderError):
    """Response violated an expected invariant."""
    kind = ErrorKind.USAGE_ERROR


_ERRORS_BY_KIND = {
    cls.kind: cls
    for cls in (
        AuthenticationError,
        RateLimitExceededError,
        ContextLengthExceededError,
        ServerError,
        RequestFailedError,
        UsageError,
    )
}


def error_for_kind(kind: ErrorKind, message: str, **kwargs) -> ProviderError:
    """Build the ProviderError subclass for a kind."""
    return _ERRORS_BY_KIND[kind](message, **kwargs)


CONTEXT_LENGTH_MARKERS = ("too long", "too many")


def extract_error_message(payload: Any) -> Optional[str]:
    """Return payload["error"]["message"] when present."""
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str):
            return message
    elif isinstance(error, str):
        return error
    return None


def is_context_length_message(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in CONTEXT_LENGTH_MARKERS)


def _auth_error(status_code: int, payload: Any) -> AuthenticationError:
    return AuthenticationError(
        "Authentication failed. Please ensure your API keys are valid and have the "
        f"required permissions. Status: {status_code}. Response: {payload!r}",
        status_code=status_code,
        details=payload,
    )


def _bad_request_error(status_code: int, payload: Any) -> ProviderError:
    message = extract_error_message(payload)
    if message is not None:
        logger.debug(f"Bad request error: {payload!r}")
        if is_context_length_message(message):
            return ContextLengthExceededError(message, status_code=status_code, details=payload)
    logger.debug(f"Provider request failed with status: {status_code}. Payload: {payload!r}")
    return RequestFailedError(
        f"Request failed with status: {status_code}. Message: {message or 'Unknown error'}",
        status_code=status_code,
        details=payload,
    )


def _ok_payload(status_code: int, payload: Any) -> Any:
    if payload is None:
        raise RequestFailedError("Response body is not valid JSON", status_code=status_code)
    # Some hosts report key problems as an error object on a 2xx status
    if isinstance(payload, dict) and payload.get("error"):
        raise AuthenticationError(
            extract_error_message(payload) or "unknown error",
            status_code=status_code,
            details=payload,
        )
    return payload


def classify_anthropic_response(status_code: int, payload: Any) -> Any:
    """
    Classify an Anthropic Messages API response.

    Args:
        status_code: HTTP status
        payload: Parsed JSON body, or None if the body was not valid JSON

    Returns:
        The payload for 2xx responses

    Raises:
        AuthenticationError: 401/403, or a 2xx body carrying an ``error`` object
        ProviderError: The classified failure
    """
    if 200 <= status_code < 300:
        return _ok_payload(status_code, payload)
    if status_code in (401, 403):
        raise _auth_error(status_code, payload)
    if status_code == 400:
        raise _bad_request_error(status_code, payload)
    if status_code == 429:
        raise RateLimitExceededError(repr(payload), status_code=status_code, details=payload)
    if status_code in (500, 503):
        raise ServerError(repr(payload), status_code=status_code, details=payload)
    logger.debug(f"Provider request failed with status: {status_code}. Payload: {payload!r}")
    raise RequestFailedError(f"Request failed with status: {status_code}", status_code=status_code)


def classify_openai_compat_response(status_code: int, payload: Any) -> Any:
    """
    Classify a response from an OpenAI-compatible chat completions endpoint.

    Same rules as classify_anthropic_response, except that 404 is read like
    400 and carries the backend's "model not found" message.
    """
    if 200 <= status_code < 300:
        return _ok_payload(status_code, payload)
    if status_code in (401, 403):
        raise _auth_error(status_code, payload)
    if status_code in (400, 404):
        raise _bad_request_error(status_code, payload)
    if status_code == 429:
        raise RateLimitExceededError(repr(payload), status_code=status_code, details=payload)
    if status_code in (500, 503):
        raise ServerError(repr(payload), status_code=status_code, details=payload)
    logger.debug(f"Provider request failed with status: {status_code}. Payload: {payload!r}")
    raise RequestFailedError(f"Request failed with status: {status_code}", status_code=status_code)


def classify_groq_response(status_code: int, payload: Any) -> Any:
    """Groq signals oversized input with 413; everything else is OpenAI-compatible."""
    if status_code == 413:
        raise ContextLengthExceededError(repr(payload), status_code=status_code, details=payload)
    return classify_openai_compat_response(status_code, payload)


STREAM_ERROR_KINDS = {
    "overloaded_error": ErrorKind.SERVER_ERROR,
    "api_error": ErrorKind.SERVER_ERROR,
    "rate_limit_error": ErrorKind.RATE_LIMIT_EXCEEDED,
    "authentication_error": ErrorKind.AUTHENTICATION,
    "permission_error": ErrorKind.AUTHENTICATION,
}


def classify_stream_error_event(payload: Any) -> ProviderError:
    """Map an in-stream ``error`` event body to a ProviderError."""
    error = payload.get("error", {}) if isinstance(payload, dict) else {}
    error_type = error.get("type", "") if isinstance(error, dict) else ""
    message = extract_error_message(payload) or "Unknown stream error"
    kind = STREAM_ERROR_KINDS.get(error_type)
    if kind is None:
        kind = ErrorKind.CONTEXT_LENGTH_EXCEEDED if is_context_length_message(message) else ErrorKind.REQUEST_FAILED
    return error_for_kind(kind, message, details=payload)
