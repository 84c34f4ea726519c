"""
Unit tests for provider error classification.

WHAT: Test status/body mapping onto ErrorKind for every backend family
WHY: Callers branch on ErrorKind; a misclassification breaks retry logic
HOW: Feed (status, payload) pairs to the classifiers and inspect the raised error
"""

import pytest

from llmbridge.llm.errors import (
    AuthenticationError,
    ContextLengthExceededError,
    ErrorKind,
    RateLimitExceededError,
    RequestFailedError,
    ServerError,
    UsageError,
    classify_anthropic_response,
    classify_groq_response,
    classify_openai_compat_response,
    classify_stream_error_event,
    error_for_kind,
    extract_error_message,
)


def error_body(message: str, error_type: str = "invalid_request_error") -> dict:
    return {"type": "error", "error": {"type": error_type, "message": message}}


@pytest.mark.unit
class TestErrorTypes:
    """Test the error hierarchy itself."""

    def test_kind_per_subclass(self):
        assert AuthenticationError("x").kind == ErrorKind.AUTHENTICATION
        assert RateLimitExceededError("x").kind == ErrorKind.RATE_LIMIT_EXCEEDED
        assert ContextLengthExceededError("x").kind == ErrorKind.CONTEXT_LENGTH_EXCEEDED
        assert ServerError("x").kind == ErrorKind.SERVER_ERROR
        assert RequestFailedError("x").kind == ErrorKind.REQUEST_FAILED
        assert UsageError("x").kind == ErrorKind.USAGE_ERROR

    def test_retryable_kinds(self):
        assert RateLimitExceededError("x").retryable
        assert ServerError("x").retryable
        assert not ContextLengthExceededError("x").retryable
        assert not AuthenticationError("x").retryable

    def test_error_for_kind(self):
        error = error_for_kind(ErrorKind.SERVER_ERROR, "boom", status_code=503)
        assert isinstance(error, ServerError)
        assert error.status_code == 503
        assert str(error) == "boom"

    def test_extract_error_message(self):
        assert extract_error_message(error_body("bad")) == "bad"
        assert extract_error_message({"error": "plain"}) == "plain"
        assert extract_error_message({"detail": "x"}) is None
        assert extract_error_message(None) is None


@pytest.mark.unit
class TestAnthropicClassifier:
    """Test Anthropic status mapping."""

    def test_success_returns_payload(self):
        payload = {"content": []}
        assert classify_anthropic_response(200, payload) is payload

    def test_success_with_invalid_json(self):
        with pytest.raises(RequestFailedError, match="not valid JSON"):
            classify_anthropic_response(200, None)

    def test_error_object_on_200(self):
        with pytest.raises(AuthenticationError, match="invalid x-api-key") as exc_info:
            classify_anthropic_response(200, error_body("invalid x-api-key", "authentication_error"))
        assert exc_info.value.status_code == 200

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_statuses(self, status):
        with pytest.raises(AuthenticationError) as exc_info:
            classify_anthropic_response(status, error_body("invalid x-api-key", "authentication_error"))
        assert exc_info.value.status_code == status

    def test_prompt_too_long(self):
        with pytest.raises(ContextLengthExceededError) as exc_info:
            classify_anthropic_response(400, error_body("prompt is too long: 210000 tokens > 200000 maximum"))
        assert "prompt is too long" in exc_info.value.message

    def test_too_many_tokens(self):
        with pytest.raises(ContextLengthExceededError):
            classify_anthropic_response(400, error_body("Too many total text bytes"))

    def test_unrelated_bad_request(self):
        with pytest.raises(RequestFailedError) as exc_info:
            classify_anthropic_response(400, error_body("messages: field required"))
        assert exc_info.value.message == (
            "Request failed with status: 400. Message: messages: field required"
        )

    def test_bad_request_without_message(self):
        with pytest.raises(RequestFailedError, match="Unknown error"):
            classify_anthropic_response(400, None)

    def test_rate_limit(self):
        with pytest.raises(RateLimitExceededError):
            classify_anthropic_response(429, error_body("slow down", "rate_limit_error"))

    @pytest.mark.parametrize("status", [500, 503])
    def test_server_errors(self, status):
        with pytest.raises(ServerError):
            classify_anthropic_response(status, error_body("overloaded", "overloaded_error"))

    def test_other_status(self):
        with pytest.raises(RequestFailedError) as exc_info:
            classify_anthropic_response(418, {})
        assert exc_info.value.message == "Request failed with status: 418"

    def test_413_is_not_context_length_for_anthropic(self):
        with pytest.raises(RequestFailedError):
            classify_anthropic_response(413, {})


@pytest.mark.unit
class TestOpenAICompatClassifier:
    """Test OpenAI-compatible status mapping (Ollama and the Groq fallback)."""

    def test_success_returns_payload(self):
        payload = {"choices": []}
        assert classify_openai_compat_response(200, payload) is payload

    def test_error_object_on_200(self):
        with pytest.raises(AuthenticationError, match="Invalid API Key"):
            classify_openai_compat_response(200, {"error": {"message": "Invalid API Key"}})

    def test_not_found_reads_message(self):
        with pytest.raises(RequestFailedError, match="model 'llama9' not found"):
            classify_openai_compat_response(404, {"error": {"message": "model 'llama9' not found"}})

    def test_context_length_message(self):
        with pytest.raises(ContextLengthExceededError):
            classify_openai_compat_response(
                400, {"error": {"message": "Please reduce the length of the messages: too many tokens"}}
            )

    def test_rate_limit(self):
        with pytest.raises(RateLimitExceededError):
            classify_openai_compat_response(429, {"error": {"message": "rate limited"}})


@pytest.mark.unit
class TestGroqClassifier:
    """Test Groq-specific mapping."""

    def test_413_is_context_length(self):
        with pytest.raises(ContextLengthExceededError) as exc_info:
            classify_groq_response(413, {"error": {"message": "Request too large"}})
        assert exc_info.value.status_code == 413

    def test_falls_back_to_compat(self):
        with pytest.raises(AuthenticationError):
            classify_groq_response(401, {"error": {"message": "Invalid API Key"}})
        with pytest.raises(AuthenticationError):
            classify_groq_response(200, {"error": {"message": "Invalid API Key"}})


@pytest.mark.unit
class TestStreamErrorEvents:
    """Test in-stream error event mapping."""

    @pytest.mark.parametrize(
        "error_type, expected",
        [
            ("overloaded_error", ServerError),
            ("api_error", ServerError),
            ("rate_limit_error", RateLimitExceededError),
            ("authentication_error", AuthenticationError),
            ("permission_error", AuthenticationError),
            ("invalid_request_error", RequestFailedError),
        ],
    )
    def test_error_types(self, error_type, expected):
        error = classify_stream_error_event(error_body("something happened", error_type))
        assert isinstance(error, expected)
        assert error.message == "something happened"

    def test_context_message(self):
        error = classify_stream_error_event(error_body("prompt is too long"))
        assert isinstance(error, ContextLengthExceededError)

    def test_malformed_event(self):
        error = classify_stream_error_event("nonsense")
        assert isinstance(error, RequestFailedError)
        assert error.message == "Unknown stream error"
