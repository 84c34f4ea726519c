"""
Server-sent events framing.

WHAT: Group decoded text lines into SSE frames
WHY: Anthropic sends multi-line "event:"/"data:" frames; OpenAI-compatible
     hosts send single "data:" lines. Both decode through one framer
HOW: Async generator that buffers fields until a blank line ends the frame
"""

from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, Optional


@dataclass
class SSEEvent:
    """One frame of an event stream."""
    event: Optional[str]
    data: str


async def iter_sse_events(lines: AsyncIterable[str]) -> AsyncIterator[SSEEvent]:
    """
    Yield SSE frames as soon as each one completes.

    Args:
        lines: Decoded lines without trailing newlines (httpx aiter_lines)

    Yields:
        SSEEvent per frame; frames with no data lines are skipped
    """
    event_name: Optional[str] = None
    data_lines: list[str] = []

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")

        if not line:
            if data_lines:
                yield SSEEvent(event=event_name, data="\n".join(data_lines))
            event_name = None
            data_lines = []
            continue

        # Comment / keep-alive
        if line.startswith(":"):
            continue

        field_name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field_name == "event":
            event_name = value
        elif field_name == "data":
            data_lines.append(value)
        # id / retry and unknown fields are not used by any backend

    if data_lines:
        yield SSEEvent(event=event_name, data="\n".join(data_lines))
