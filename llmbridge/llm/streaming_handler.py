"""
Streaming utilities for provider message streams.

WHAT: Helpers to consume (fragment, usage) streams
WHY: Callers want plain text, a final message, or usage tracking without
     re-implementing fragment merging
HOW: Async generators and collectors over MessageStream
"""

from contextlib import aclosing
from typing import AsyncIterator, Optional

from .provider import MessageStream
from .token_tracker import SharedTokenTracker
from .types import Message, ProviderUsage, TextContent, ThinkingContent, Usage
from ..utils.logger import get_logger

logger = get_logger(__name__)


async def stream_text(stream: MessageStream) -> AsyncIterator[str]:
    """
    Yield only the text of each fragment.

    Args:
        stream: Provider message stream

    Yields:
        Non-empty text fragments
    """
    async with aclosing(stream):
        async for message, _usage in stream:
            text = message.as_concat_text()
            if text:
                yield text


async def bounded_text(stream: MessageStream, max_chars: int) -> AsyncIterator[str]:
    """
    Limit streamed text to a maximum character count.

    WHAT: Guard against runaway generation
    WHY: Prevent excessive token usage and response times
    HOW: Track character count, stop and close the source when reached

    Args:
        stream: Provider message stream
        max_chars: Maximum characters to yield

    Yields:
        Text fragments up to max_chars total
    """
    total_chars = 0

    async with aclosing(stream_text(stream)) as texts:
        async for text in texts:
            remaining = max_chars - total_chars
            if remaining <= 0:
                break

            if len(text) > remaining:
                text = text[:remaining]
                logger.info(f"Truncated final fragment to fit {max_chars} limit")

            total_chars += len(text)
            yield text

            if total_chars >= max_chars:
                logger.warning(f"Stream bounded at {max_chars} characters")
                break


async def collect_stream(stream: MessageStream) -> tuple[Message, Optional[ProviderUsage]]:
    """
    Drain a stream into one message.

    Adjacent text fragments are merged, as are adjacent thinking fragments.
    Other blocks keep their order. Usage items are summed; the model comes
    from the last usage item.

    Returns:
        Final message and combined usage (None if the stream reported none)
    """
    message = Message.assistant()
    usage: Optional[Usage] = None
    model: Optional[str] = None

    async with aclosing(stream):
        async for fragment, fragment_usage in stream:
            for block in fragment.content:
                last = message.content[-1] if message.content else None
                if isinstance(block, TextContent) and isinstance(last, TextContent):
                    last.text += block.text
                elif isinstance(block, ThinkingContent) and isinstance(last, ThinkingContent):
                    last.thinking += block.thinking
                    last.signature += block.signature
                elif isinstance(block, TextContent):
                    message.with_text(block.text)
                elif isinstance(block, ThinkingContent):
                    message.with_thinking(block.thinking, block.signature)
                else:
                    message.with_content(block)

            if fragment_usage is not None:
                usage = fragment_usage.usage if usage is None else usage + fragment_usage.usage
                model = fragment_usage.model

    if usage is None:
        return message, None
    return message, ProviderUsage(model=model, usage=usage)


async def track_stream(stream: MessageStream, tracker: SharedTokenTracker) -> MessageStream:
    """
    Re-yield a stream, recording each usage item in a shared tracker.

    Each usage item is one record_turn() call, so the threshold check runs
    atomically with its update.
    """
    async with aclosing(stream):
        async for message, usage in stream:
            if usage is not None:
                await tracker.record_turn(usage)
            yield message, usage
