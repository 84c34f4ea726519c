"""
Anthropic Messages API wire format.

WHAT: Request builder, response parser and streaming decoder for Anthropic
WHY: Anthropic uses typed content blocks and a multi-event stream protocol
HOW: Pure functions over canonical types; the streaming decoder walks the
     message_start / content_block_* / message_delta event sequence
"""

import json
from typing import Any, AsyncIterable, AsyncIterator, Optional

from ..errors import UsageError, classify_stream_error_event
from ..sse import SSEEvent
from ..types import (
    ImageContent,
    Message,
    ModelConfig,
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

DEFAULT_MAX_TOKENS = 8192
DEFAULT_THINKING_BUDGET = 16000
THINKING_MODEL_PREFIXES = ("claude-3-7-sonnet-",)
CACHE_CONTROL_TYPE = "ephemeral"


def cache_control() -> dict:
    return {"type": CACHE_CONTROL_TYPE}


def supports_thinking(model_name: str) -> bool:
    return model_name.startswith(THINKING_MODEL_PREFIXES)


def _image_block(image: ImageContent) -> dict:
    return {
        "type": "image",
        "source": {"type": "base64", "media_type": image.mime_type, "data": image.data},
    }


def _content_block(block) -> Optional[dict]:
    if isinstance(block, TextContent):
        return {"type": "text", "text": block.text} if block.text else None
    if isinstance(block, ImageContent):
        return _image_block(block)
    if isinstance(block, ToolRequest):
        if isinstance(block.tool_call, ToolCall):
            return {
                "type": "tool_use",
                "id": block.id,
                "name": block.tool_call.name,
                "input": block.tool_call.arguments,
            }
        return {"type": "text", "text": f"Tool call failed: {block.tool_call.message}"}
    if isinstance(block, ToolResponse):
        if isinstance(block.tool_result, ToolCallError):
            return {
                "type": "tool_result",
                "tool_use_id": block.id,
                "content": block.tool_result.message,
                "is_error": True,
            }
        content = []
        for item in block.tool_result:
            if isinstance(item, TextContent):
                content.append({"type": "text", "text": item.text})
            elif isinstance(item, ImageContent):
                content.append(_image_block(item))
        return {"type": "tool_result", "tool_use_id": block.id, "content": content}
    if isinstance(block, ThinkingContent):
        return {"type": "thinking", "thinking": block.thinking, "signature": block.signature}
    if isinstance(block, RedactedThinkingContent):
        return {"type": "redacted_thinking", "data": block.data}
    return None


def format_messages(messages: list[Message]) -> list[dict]:
    """Convert canonical messages; messages with no usable blocks are dropped."""
    spec = []
    for message in messages:
        content = [b for b in (_content_block(c) for c in message.content) if b is not None]
        if content:
            spec.append({"role": message.role, "content": content})

    if not spec:
        spec.append({"role": "user", "content": [{"type": "text", "text": "Ignore"}]})
    return spec


def format_tools(tools: list[Tool]) -> list[dict]:
    spec = [
        {"name": t.name, "description": t.description, "input_schema": t.input_schema}
        for t in tools
    ]
    if spec:
        spec[-1]["cache_control"] = cache_control()
    return spec


def format_system(system: str) -> list[dict]:
    return [{"type": "text", "text": system, "cache_control": cache_control()}]


def create_request(
    model_config: ModelConfig,
    system: str,
    messages: list[Message],
    tools: list[Tool],
    *,
    stream: bool = False,
    thinking_enabled: bool = False,
    thinking_budget: int = DEFAULT_THINKING_BUDGET,
) -> dict:
    """
    Build a Messages API payload.

    Args:
        model_config: Model and sampling settings
        system: System prompt (omitted when empty)
        messages: Conversation history
        tools: Tools to offer (empty list omits the field)
        stream: Request an event stream
        thinking_enabled: Extended thinking toggle, applied to models that support it
        thinking_budget: Token budget for extended thinking

    Returns:
        JSON-serializable payload
    """
    max_tokens = model_config.max_tokens or DEFAULT_MAX_TOKENS
    payload: dict[str, Any] = {
        "model": model_config.model_name,
        "messages": format_messages(messages),
        "max_tokens": max_tokens,
    }
    if system:
        payload["system"] = format_system(system)
    if tools:
        payload["tools"] = format_tools(tools)

    if thinking_enabled and supports_thinking(model_config.model_name):
        payload["thinking"] = {"type": "enabled", "budget_tokens": thinking_budget}
        payload["max_tokens"] = max_tokens + thinking_budget
    elif model_config.temperature is not None:
        payload["temperature"] = model_config.temperature

    if stream:
        payload["stream"] = True
    return payload


def response_to_message(response: dict) -> Message:
    """Convert a Messages API response into a canonical message."""
    if not isinstance(response, dict):
        raise UsageError("Response is not a JSON object", details=response)
    blocks = response.get("content")
    if not isinstance(blocks, list):
        raise UsageError("Response is missing `content`", details=response)

    message = Message.assistant()
    for block in blocks:
        if not isinstance(block, dict):
            raise UsageError("Content block is not a JSON object", details=response)
        block_type = block.get("type")
        if block_type == "text":
            message.with_text(block.get("text", ""))
        elif block_type == "tool_use":
            name = block.get("name")
            if not name:
                raise UsageError("tool_use block is missing `name`", details=block)
            arguments = block.get("input") or {}
            message.with_tool_request(block.get("id", ""), ToolCall(name=name, arguments=arguments))
        elif block_type == "thinking":
            message.with_thinking(block.get("thinking", ""), block.get("signature", ""))
        elif block_type == "redacted_thinking":
            message.with_redacted_thinking(block.get("data", ""))
    return message


def _usage_from(usage: Any) -> Usage:
    if not isinstance(usage, dict):
        return Usage()

    input_parts = [
        usage.get(key)
        for key in ("input_tokens", "cache_creation_input_tokens", "cache_read_input_tokens")
        if isinstance(usage.get(key), int)
    ]
    input_tokens = sum(input_parts) if input_parts else None
    output_tokens = usage.get("output_tokens") if isinstance(usage.get("output_tokens"), int) else None

    if input_tokens is None and output_tokens is None:
        return Usage()
    total = (input_tokens or 0) + (output_tokens or 0)
    return Usage(input_tokens=input_tokens, output_tokens=output_tokens, total_tokens=total)


def get_usage(response: Any) -> Usage:
    """Usage of a complete response; missing section gives empty Usage."""
    if not isinstance(response, dict):
        return Usage()
    return _usage_from(response.get("usage"))


async def response_to_streaming_message(
    events: AsyncIterable[SSEEvent],
    model_name: str = "Unknown",
) -> AsyncIterator[tuple[Message, Optional[ProviderUsage]]]:
    """
    Decode an Anthropic event stream.

    Text and thinking deltas are yielded immediately. Tool input is buffered
    until its content_block_stop. message_delta yields an empty message with
    the cumulative usage for the call, attributed to the model named in
    message_start (``model_name`` when absent).

    Raises:
        ProviderError: The stream carried an ``error`` event
        json.JSONDecodeError, KeyError, TypeError, AttributeError: On a malformed frame
    """
    model = model_name
    input_usage: dict = {}
    blocks: dict[int, dict] = {}

    async for event in events:
        data = json.loads(event.data)
        if not isinstance(data, dict):
            raise TypeError(f"Expected a JSON object, got {type(data).__name__}")
        event_type = data["type"]

        if event_type == "message_start":
            input_usage = data["message"].get("usage") or {}
            model = data["message"].get("model") or model

        elif event_type == "content_block_start":
            block = data["content_block"]
            blocks[data["index"]] = {
                "type": block["type"],
                "id": block.get("id", ""),
                "name": block.get("name", ""),
                "json": "",
                "signature": "",
            }
            if block["type"] == "redacted_thinking":
                yield Message.assistant().with_redacted_thinking(block.get("data", "")), None

        elif event_type == "content_block_delta":
            delta = data["delta"]
            delta_type = delta["type"]
            state = blocks.get(data["index"])
            if delta_type == "text_delta":
                yield Message.assistant().with_text(delta["text"]), None
            elif delta_type == "thinking_delta":
                yield Message.assistant().with_thinking(delta["thinking"]), None
            elif delta_type == "input_json_delta" and state is not None:
                state["json"] += delta.get("partial_json", "")
            elif delta_type == "signature_delta" and state is not None:
                state["signature"] += delta.get("signature", "")

        elif event_type == "content_block_stop":
            state = blocks.pop(data["index"], None)
            if state is None:
                continue
            if state["type"] == "tool_use":
                try:
                    arguments = json.loads(state["json"]) if state["json"] else {}
                    tool_call = ToolCall(name=state["name"], arguments=arguments)
                except json.JSONDecodeError as e:
                    tool_call = ToolCallError(
                        f"Could not interpret tool use parameters for id {state['id']}: {e}"
                    )
                yield Message.assistant().with_tool_request(state["id"], tool_call), None
            elif state["type"] == "thinking" and state["signature"]:
                yield Message.assistant().with_thinking("", state["signature"]), None

        elif event_type == "message_delta":
            usage = _usage_from({**input_usage, **(data.get("usage") or {})})
            yield Message.assistant(), ProviderUsage(model=model, usage=usage)

        elif event_type == "message_stop":
            return

        elif event_type == "error":
            raise classify_stream_error_event(data)

        # ping and unknown event types carry nothing to yield
