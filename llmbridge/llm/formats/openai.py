"""
OpenAI chat-completions wire format.

WHAT: Request builder, response parser and streaming decoder for
      OpenAI-compatible backends (Groq, Ollama)
WHY: Keep payload shapes out of the provider classes
HOW: Pure functions over canonical types; the streaming decoder consumes SSE
     frames and yields (Message, ProviderUsage | None) as each frame completes
"""

import json
import re
from typing import Any, AsyncIterable, AsyncIterator, Optional

from ..errors import UsageError
from ..sse import SSEEvent
from ..types import (
    ImageContent,
    ImageFormat,
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

VALID_TOOL_NAME = re.compile(r"^[a-zA-Z0-9_-]+$")


def image_to_openai_spec(image: ImageContent, image_format: ImageFormat) -> dict:
    if image_format == ImageFormat.ANTHROPIC:
        return {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": image.mime_type,
                "data": image.data,
            },
        }
    return {
        "type": "image_url",
        "image_url": {"url": f"data:{image.mime_type};base64,{image.data}"},
    }


def _tool_result_text(result: list) -> str:
    return "\n".join(c.text for c in result if isinstance(c, TextContent))


def messages_to_openai_spec(messages: list[Message], image_format: ImageFormat) -> list[dict]:
    """Convert canonical messages to chat-completions messages."""
    spec: list[dict] = []

    for message in messages:
        converted: dict[str, Any] = {"role": message.role}
        text_parts: list[str] = []
        image_parts: list[dict] = []
        tool_calls: list[dict] = []
        trailing: list[dict] = []

        for block in message.content:
            if isinstance(block, TextContent):
                if block.text:
                    text_parts.append(block.text)
            elif isinstance(block, ImageContent):
                image_parts.append(image_to_openai_spec(block, image_format))
            elif isinstance(block, ToolRequest):
                if isinstance(block.tool_call, ToolCall):
                    tool_calls.append({
                        "id": block.id,
                        "type": "function",
                        "function": {
                            "name": block.tool_call.name,
                            "arguments": json.dumps(block.tool_call.arguments),
                        },
                    })
                else:
                    text_parts.append(f"Tool call failed: {block.tool_call.message}")
            elif isinstance(block, ToolResponse):
                if isinstance(block.tool_result, ToolCallError):
                    trailing.append({
                        "role": "tool",
                        "tool_call_id": block.id,
                        "content": f"The tool call returned the following error:\n{block.tool_result.message}",
                    })
                    continue
                trailing.append({
                    "role": "tool",
                    "tool_call_id": block.id,
                    "content": _tool_result_text(block.tool_result),
                })
                images = [
                    image_to_openai_spec(c, image_format)
                    for c in block.tool_result
                    if isinstance(c, ImageContent)
                ]
                # Tool messages cannot carry images; resend them as user content
                if images:
                    trailing.append({
                        "role": "user",
                        "content": [{"type": "text", "text": "This tool result included an image."}] + images,
                    })
            elif isinstance(block, (ThinkingContent, RedactedThinkingContent)):
                continue

        if image_parts:
            parts = [{"type": "text", "text": t} for t in text_parts]
            converted["content"] = parts + image_parts
        elif text_parts:
            converted["content"] = "\n".join(text_parts)

        if tool_calls:
            converted["tool_calls"] = tool_calls

        # Tool results must directly follow the assistant turn that requested them
        spec.extend(trailing)
        if "content" in converted or "tool_calls" in converted:
            spec.append(converted)

    return spec


def tools_to_openai_spec(tools: list[Tool]) -> list[dict]:
    seen: set[str] = set()
    spec = []
    for tool in tools:
        if tool.name in seen:
            raise UsageError(f"Duplicate tool name: {tool.name}")
        seen.add(tool.name)
        spec.append({
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.input_schema,
            },
        })
    return spec


def create_request(
    model_config: ModelConfig,
    system: str,
    messages: list[Message],
    tools: list[Tool],
    image_format: ImageFormat = ImageFormat.OPENAI,
    *,
    stream: bool = False,
) -> dict:
    """
    Build a chat-completions payload.

    Args:
        model_config: Model and sampling settings
        system: System prompt
        messages: Conversation history
        tools: Tools to offer (empty list omits the field)
        image_format: Encoding for image blocks
        stream: Request an SSE stream with a final usage chunk

    Returns:
        JSON-serializable payload
    """
    payload: dict[str, Any] = {
        "model": model_config.model_name,
        "messages": [{"role": "system", "content": system}]
        + messages_to_openai_spec(messages, image_format),
    }
    if tools:
        payload["tools"] = tools_to_openai_spec(tools)
    if model_config.temperature is not None:
        payload["temperature"] = model_config.temperature
    if model_config.max_tokens is not None:
        payload["max_tokens"] = model_config.max_tokens
    if stream:
        payload["stream"] = True
        payload["stream_options"] = {"include_usage": True}
    return payload


def _tool_request(call_id: str, name: str, raw_arguments: str) -> ToolRequest:
    if not isinstance(name, str) or not VALID_TOOL_NAME.match(name):
        return ToolRequest(
            id=call_id,
            tool_call=ToolCallError(
                f"The provided function name '{name}' had invalid characters, "
                "it must match this regex [a-zA-Z0-9_-]+"
            ),
        )
    try:
        arguments = json.loads(raw_arguments) if raw_arguments else {}
    except (json.JSONDecodeError, TypeError) as e:
        return ToolRequest(
            id=call_id,
            tool_call=ToolCallError(
                f"Could not interpret tool use parameters for id {call_id}: {e}"
            ),
        )
    if not isinstance(arguments, dict):
        arguments = {"value": arguments}
    return ToolRequest(id=call_id, tool_call=ToolCall(name=name, arguments=arguments))


def response_to_message(response: dict) -> Message:
    """Convert a chat-completions response into a canonical message."""
    if not isinstance(response, dict):
        raise UsageError("Response is not a JSON object", details=response)
    choices = response.get("choices")
    if not isinstance(choices, list) or not choices:
        raise UsageError("Response is missing `choices`", details=response)
    if not isinstance(choices[0], dict):
        raise UsageError("Response choice is not a JSON object", details=response)
    original = choices[0].get("message") or {}
    if not isinstance(original, dict):
        raise UsageError("Response `message` is not a JSON object", details=response)

    message = Message.assistant()
    text = original.get("content")
    if isinstance(text, str) and text:
        message.with_text(text)

    tool_calls = original.get("tool_calls") or []
    if not isinstance(tool_calls, list):
        raise UsageError("Response `tool_calls` is not a list", details=response)
    for call in tool_calls:
        if not isinstance(call, dict):
            raise UsageError("Tool call is not a JSON object", details=call)
        function = call.get("function") or {}
        if not isinstance(function, dict):
            raise UsageError("Tool call is not a JSON object", details=call)
        message.with_content(
            _tool_request(call.get("id", ""), function.get("name", ""), function.get("arguments", ""))
        )
    return message


def get_usage(usage: Any) -> Usage:
    """Read a chat-completions ``usage`` object; unknown shapes give empty Usage."""
    if not isinstance(usage, dict):
        return Usage()

    def _int(key: str) -> Optional[int]:
        value = usage.get(key)
        return value if isinstance(value, int) else None

    input_tokens = _int("prompt_tokens")
    output_tokens = _int("completion_tokens")
    total_tokens = _int("total_tokens")
    if total_tokens is None and input_tokens is not None and output_tokens is not None:
        total_tokens = input_tokens + output_tokens
    return Usage(input_tokens=input_tokens, output_tokens=output_tokens, total_tokens=total_tokens)


async def response_to_streaming_message(
    events: AsyncIterable[SSEEvent],
    model_name: str = "Unknown",
) -> AsyncIterator[tuple[Message, Optional[ProviderUsage]]]:
    """
    Decode chat-completion chunks.

    Text deltas are yielded immediately. Tool-call deltas are buffered by
    index until the choice reports a finish_reason, or until the stream ends
    ([DONE] or end of input) if it never does. A chunk carrying
    ``usage`` yields an empty message with that usage, attributed to the
    chunk's ``model`` (``model_name`` when absent).

    Raises:
        json.JSONDecodeError, KeyError, TypeError, AttributeError: On a malformed frame
    """
    pending_calls: dict[int, dict[str, str]] = {}

    def flush_calls() -> Message:
        message = Message.assistant()
        for index in sorted(pending_calls):
            call = pending_calls[index]
            message.with_content(_tool_request(call["id"], call["name"], call["arguments"]))
        pending_calls.clear()
        return message

    async for event in events:
        for data in event.data.split("\n"):
            data = data.strip()
            if not data:
                continue
            if data == "[DONE]":
                if pending_calls:
                    yield flush_calls(), None
                return

            chunk = json.loads(data)
            if not isinstance(chunk, dict):
                raise TypeError(f"Expected a JSON object, got {type(chunk).__name__}")

            choices = chunk.get("choices")
            if choices is None and "usage" not in chunk:
                raise KeyError("choices")

            for choice in choices or []:
                delta = choice["delta"] if "delta" in choice else {}

                for call in delta.get("tool_calls") or []:
                    slot = pending_calls.setdefault(call.get("index", 0), {"id": "", "name": "", "arguments": ""})
                    if call.get("id"):
                        slot["id"] = call["id"]
                    function = call.get("function") or {}
                    if function.get("name"):
                        slot["name"] = function["name"]
                    slot["arguments"] += function.get("arguments") or ""

                text = delta.get("content")
                if isinstance(text, str) and text:
                    yield Message.assistant().with_text(text), None

                if choice.get("finish_reason") and pending_calls:
                    yield flush_calls(), None

            if chunk.get("usage"):
                model = chunk.get("model") or model_name
                yield Message.assistant(), ProviderUsage(model=model, usage=get_usage(chunk["usage"]))

    if pending_calls:
        yield flush_calls(), None
