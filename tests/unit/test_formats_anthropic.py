"""
Unit tests for the Anthropic Messages format.

WHAT: Test request building, response parsing and event-stream decoding
WHY: Anthropic uses typed blocks, prompt caching and a multi-event stream
HOW: Compare payloads structurally and decode canned SSE event sequences
"""

import json

import pytest

from llmbridge.llm.errors import RateLimitExceededError, ServerError, UsageError
from llmbridge.llm.formats import anthropic as anthropic_format
from llmbridge.llm.sse import SSEEvent
from llmbridge.llm.types import (
    Message,
    ModelConfig,
    ProviderUsage,
    RedactedThinkingContent,
    TextContent,
    ThinkingContent,
    Tool,
    ToolCall,
    ToolCallError,
    Usage,
)
from tests.fixtures.payloads import (
    ANTHROPIC_RESPONSE,
    ANTHROPIC_TOOL_RESPONSE,
    aiter_list,
    anthropic_text_events,
)


def events_for(events) -> list[SSEEvent]:
    return [SSEEvent(e.get("type"), json.dumps(e)) for e in events]


async def decode(events, model_name="claude-test"):
    return [
        item
        async for item in anthropic_format.response_to_streaming_message(aiter_list(events), model_name)
    ]


@pytest.mark.unit
class TestCreateRequest:
    """Test Messages API payload construction."""

    def test_basic_payload(self, model_config, conversation, weather_tool):
        payload = anthropic_format.create_request(model_config, "Be brief.", conversation, [weather_tool])

        assert payload["model"] == "test-model"
        assert payload["max_tokens"] == anthropic_format.DEFAULT_MAX_TOKENS
        assert payload["system"] == [
            {"type": "text", "text": "Be brief.", "cache_control": {"type": "ephemeral"}}
        ]
        assert payload["messages"] == [
            {"role": "user", "content": [{"type": "text", "text": "What is the weather in Paris?"}]}
        ]
        assert payload["tools"] == [
            {
                "name": "get_weather",
                "description": "Look up current weather",
                "input_schema": weather_tool.input_schema,
                "cache_control": {"type": "ephemeral"},
            }
        ]
        assert "stream" not in payload

    def test_only_last_tool_cached(self, model_config, conversation, weather_tool):
        other = Tool("get_time", "Current time")
        payload = anthropic_format.create_request(model_config, "sys", conversation, [other, weather_tool])
        assert "cache_control" not in payload["tools"][0]
        assert payload["tools"][1]["cache_control"] == {"type": "ephemeral"}

    def test_empty_tools_and_system_omitted(self, model_config, conversation):
        payload = anthropic_format.create_request(model_config, "", conversation, [])
        assert "tools" not in payload
        assert "system" not in payload

    def test_empty_conversation_gets_placeholder(self, model_config):
        payload = anthropic_format.create_request(model_config, "sys", [Message.user()], [])
        assert payload["messages"] == [{"role": "user", "content": [{"type": "text", "text": "Ignore"}]}]

    def test_temperature_and_max_tokens(self, conversation):
        config = ModelConfig("claude-3-5-haiku-20241022", temperature=0.5, max_tokens=1024)
        payload = anthropic_format.create_request(config, "sys", conversation, [])
        assert payload["temperature"] == 0.5
        assert payload["max_tokens"] == 1024

    def test_thinking_for_supported_model(self, conversation):
        config = ModelConfig("claude-3-7-sonnet-20250219", temperature=0.5)
        payload = anthropic_format.create_request(
            config, "sys", conversation, [], thinking_enabled=True, thinking_budget=4000
        )
        assert payload["thinking"] == {"type": "enabled", "budget_tokens": 4000}
        assert payload["max_tokens"] == anthropic_format.DEFAULT_MAX_TOKENS + 4000
        assert "temperature" not in payload

    def test_thinking_ignored_for_other_models(self, conversation):
        config = ModelConfig("claude-3-5-sonnet-20241022")
        payload = anthropic_format.create_request(config, "sys", conversation, [], thinking_enabled=True)
        assert "thinking" not in payload

    def test_stream_flag(self, model_config, conversation):
        payload = anthropic_format.create_request(model_config, "sys", conversation, [], stream=True)
        assert payload["stream"] is True

    def test_deterministic(self, model_config, conversation, weather_tool):
        first = anthropic_format.create_request(model_config, "sys", conversation, [weather_tool])
        second = anthropic_format.create_request(model_config, "sys", conversation, [weather_tool])
        assert json.dumps(first) == json.dumps(second)

    def test_cache_control_not_shared_between_payloads(self, model_config, conversation, weather_tool):
        first = anthropic_format.create_request(model_config, "sys", conversation, [weather_tool])
        first["system"][0]["cache_control"]["type"] = "persistent"
        first["tools"][-1]["cache_control"]["ttl"] = "1h"

        second = anthropic_format.create_request(model_config, "sys", conversation, [weather_tool])

        assert second["system"][0]["cache_control"] == {"type": "ephemeral"}
        assert second["tools"][-1]["cache_control"] == {"type": "ephemeral"}


@pytest.mark.unit
class TestFormatMessages:
    """Test content block conversion."""

    def test_tool_use_and_result(self):
        messages = [
            Message.assistant().with_tool_request("toolu_1", ToolCall("get_weather", {"city": "Paris"})),
            Message.user().with_tool_response("toolu_1", [TextContent("18C")]),
        ]

        spec = anthropic_format.format_messages(messages)

        assert spec[0]["content"] == [
            {"type": "tool_use", "id": "toolu_1", "name": "get_weather", "input": {"city": "Paris"}}
        ]
        assert spec[1]["content"] == [
            {"type": "tool_result", "tool_use_id": "toolu_1", "content": [{"type": "text", "text": "18C"}]}
        ]

    def test_tool_error_result(self):
        messages = [Message.user().with_tool_response("toolu_1", ToolCallError("boom"))]
        [block] = anthropic_format.format_messages(messages)[0]["content"]
        assert block == {"type": "tool_result", "tool_use_id": "toolu_1", "content": "boom", "is_error": True}

    def test_thinking_blocks_preserved(self):
        messages = [
            Message.assistant()
            .with_thinking("Let me think", "sig-1")
            .with_redacted_thinking("opaque")
            .with_text("Answer")
        ]
        content = anthropic_format.format_messages(messages)[0]["content"]
        assert content == [
            {"type": "thinking", "thinking": "Let me think", "signature": "sig-1"},
            {"type": "redacted_thinking", "data": "opaque"},
            {"type": "text", "text": "Answer"},
        ]

    def test_image_block(self):
        messages = [Message.user().with_image("aGVsbG8=", "image/jpeg")]
        [block] = anthropic_format.format_messages(messages)[0]["content"]
        assert block == {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/jpeg", "data": "aGVsbG8="},
        }


@pytest.mark.unit
class TestResponseToMessage:
    """Test non-streaming response parsing."""

    def test_text_response(self):
        message = anthropic_format.response_to_message(ANTHROPIC_RESPONSE)
        assert message.as_concat_text() == "It is sunny."

    def test_tool_use_response(self):
        message = anthropic_format.response_to_message(ANTHROPIC_TOOL_RESPONSE)
        assert isinstance(message.content[0], TextContent)
        [request] = message.tool_requests()
        assert request.id == "toolu_1"
        assert request.tool_call == ToolCall("get_weather", {"city": "Paris"})

    def test_thinking_response(self):
        response = {
            "content": [
                {"type": "thinking", "thinking": "Hmm", "signature": "sig"},
                {"type": "redacted_thinking", "data": "xyz"},
                {"type": "text", "text": "Done"},
            ]
        }
        message = anthropic_format.response_to_message(response)
        assert message.content == [
            ThinkingContent("Hmm", "sig"),
            RedactedThinkingContent("xyz"),
            TextContent("Done"),
        ]

    def test_tool_use_without_name(self):
        with pytest.raises(UsageError):
            anthropic_format.response_to_message({"content": [{"type": "tool_use", "id": "t", "input": {}}]})

    def test_missing_content(self):
        with pytest.raises(UsageError):
            anthropic_format.response_to_message({"id": "msg_1"})

    @pytest.mark.parametrize("block", ["oops", None, ["text"]])
    def test_non_object_block(self, block):
        with pytest.raises(UsageError):
            anthropic_format.response_to_message({"content": [block]})

    def test_usage(self):
        assert anthropic_format.get_usage(ANTHROPIC_RESPONSE) == Usage(20, 5, 25)

    def test_usage_includes_cache_tokens(self):
        assert anthropic_format.get_usage(ANTHROPIC_TOOL_RESPONSE) == Usage(100, 12, 112)

    def test_missing_usage(self):
        assert anthropic_format.get_usage({"content": []}) == Usage()


@pytest.mark.unit
@pytest.mark.streaming
class TestStreamingDecoder:
    """Test Anthropic event-stream decoding."""

    @pytest.mark.asyncio
    async def test_text_events_then_usage(self):
        items = await decode(events_for(anthropic_text_events(["Hel", "lo"])))

        assert [m.as_concat_text() for m, u in items if u is None] == ["Hel", "lo"]
        message, usage = items[-1]
        assert message.content == []
        assert usage == ProviderUsage("claude-3-5-sonnet-20241022", Usage(25, 15, 40))

    @pytest.mark.asyncio
    async def test_n_deltas_yield_n_items_plus_usage(self):
        items = await decode(events_for(anthropic_text_events(["a", "b", "c"])))
        assert len(items) == 4

    @pytest.mark.asyncio
    async def test_tool_use_accumulated(self):
        events = [
            {"type": "message_start", "message": {"model": "claude-3-5-sonnet-20241022", "usage": {"input_tokens": 5}}},
            {"type": "content_block_start", "index": 0,
             "content_block": {"type": "tool_use", "id": "toolu_1", "name": "get_weather", "input": {}}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "input_json_delta", "partial_json": '{"city"'}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "input_json_delta", "partial_json": ': "Paris"}'}},
            {"type": "content_block_stop", "index": 0},
            {"type": "message_stop"},
        ]

        items = await decode(events_for(events))

        assert len(items) == 1
        [request] = items[0][0].tool_requests()
        assert request.tool_call == ToolCall("get_weather", {"city": "Paris"})

    @pytest.mark.asyncio
    async def test_bad_tool_json_becomes_error(self):
        events = [
            {"type": "content_block_start", "index": 0,
             "content_block": {"type": "tool_use", "id": "toolu_1", "name": "get_weather"}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "input_json_delta", "partial_json": "{oops"}},
            {"type": "content_block_stop", "index": 0},
        ]
        [(message, _)] = await decode(events_for(events))
        assert isinstance(message.tool_requests()[0].tool_call, ToolCallError)

    @pytest.mark.asyncio
    async def test_thinking_and_signature(self):
        events = [
            {"type": "content_block_start", "index": 0, "content_block": {"type": "thinking", "thinking": ""}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "thinking_delta", "thinking": "Let me"}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "signature_delta", "signature": "sig"}},
            {"type": "content_block_stop", "index": 0},
            {"type": "content_block_start", "index": 1, "content_block": {"type": "redacted_thinking", "data": "opaque"}},
            {"type": "content_block_stop", "index": 1},
        ]

        items = await decode(events_for(events))

        assert [m.content for m, _ in items] == [
            [ThinkingContent("Let me", "")],
            [ThinkingContent("", "sig")],
            [RedactedThinkingContent("opaque")],
        ]

    @pytest.mark.asyncio
    async def test_model_falls_back_to_configured(self):
        events = [{"type": "message_delta", "delta": {}, "usage": {"output_tokens": 3}}]
        [(_, usage)] = await decode(events_for(events), model_name="claude-fallback")
        assert usage == ProviderUsage("claude-fallback", Usage(None, 3, 3))

    @pytest.mark.asyncio
    async def test_error_event_raises_classified_error(self):
        events = anthropic_text_events(["partial"])[:4] + [
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}
        ]
        received = []

        with pytest.raises(ServerError, match="Overloaded"):
            async for item in anthropic_format.response_to_streaming_message(aiter_list(events_for(events))):
                received.append(item)

        assert [m.as_concat_text() for m, _ in received] == ["partial"]

    @pytest.mark.asyncio
    async def test_rate_limit_error_event(self):
        events = [{"type": "error", "error": {"type": "rate_limit_error", "message": "slow"}}]
        with pytest.raises(RateLimitExceededError):
            await decode(events_for(events))

    @pytest.mark.asyncio
    async def test_malformed_frame_after_items(self):
        events = events_for(anthropic_text_events(["a", "b"])[:5]) + [SSEEvent("content_block_delta", "{nope")]
        received = []

        with pytest.raises(json.JSONDecodeError):
            async for item in anthropic_format.response_to_streaming_message(aiter_list(events)):
                received.append(item)

        assert len(received) == 2

    @pytest.mark.asyncio
    async def test_event_without_type(self):
        with pytest.raises(KeyError):
            await decode([SSEEvent(None, json.dumps({"index": 0}))])
