"""
Token usage tracking with context-limit warnings.

WHAT: Cumulative usage per session plus one-shot 80%/90% threshold warnings
WHY: Callers need to know when a conversation nears the model's context window
HOW: TokenTracker holds the counts and a WarningState machine;
     SharedTokenTracker serializes turns behind an asyncio.Lock
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import IntEnum
from typing import AsyncIterator, Optional, Union

from .types import ProviderUsage, Usage
from ..utils.logger import get_logger

logger = get_logger(__name__)


WARN_80_PERCENT = 80.0
WARN_90_PERCENT = 90.0


def _check_limit(limit: int) -> None:
    if limit <= 0:
        raise ValueError(f"Context limit must be positive, got {limit}")


class WarningState(IntEnum):
    """Ordered so that transitions only ever increase the value."""
    NO_WARNING = 0
    WARNED_80 = 1
    WARNED_90 = 2


@dataclass
class TrackerSnapshot:
    """Copy of tracker state for readers outside the lock."""
    usage: Usage
    context_limit: Optional[int]
    warning_state: WarningState


class TokenTracker:
    """Per-session token accounting. Not safe for concurrent use on its own."""

    def __init__(self, context_limit: Optional[int] = None):
        if context_limit is not None:
            _check_limit(context_limit)
        self.current_usage = Usage()
        self.context_limit = context_limit
        self.warning_state = WarningState.NO_WARNING

    @property
    def warning_80_shown(self) -> bool:
        return self.warning_state >= WarningState.WARNED_80

    @property
    def warning_90_shown(self) -> bool:
        return self.warning_state >= WarningState.WARNED_90

    def update_usage(self, usage: Union[Usage, ProviderUsage]) -> None:
        if isinstance(usage, ProviderUsage):
            usage = usage.usage
        self.current_usage = self.current_usage + usage

    def set_context_limit(self, limit: int) -> None:
        _check_limit(limit)
        self.context_limit = limit

    def token_counts(self) -> Optional[tuple[int, int]]:
        used = self.current_usage.total_tokens
        if used is None or self.context_limit is None:
            return None
        return used, self.context_limit

    def usage_percentage(self) -> Optional[float]:
        counts = self.token_counts()
        if counts is None:
            return None
        used, limit = counts
        return (used / limit) * 100.0

    def check_warning(self) -> Optional[str]:
        """
        Return a warning the first time usage crosses 90% or 80% of the limit.

        90% is checked first. Once a level has fired, it (and any lower level)
        stays silent until reset().
        """
        percentage = self.usage_percentage()
        if percentage is None:
            return None
        used, limit = self.token_counts()

        if percentage >= WARN_90_PERCENT and self.warning_state < WarningState.WARNED_90:
            self.warning_state = WarningState.WARNED_90
            return (
                f"WARNING: Approaching context limit! Used {used} of {limit} tokens "
                f"({int(percentage)}%)"
            )
        if percentage >= WARN_80_PERCENT and self.warning_state < WarningState.WARNED_80:
            self.warning_state = WarningState.WARNED_80
            return f"Context usage at {int(percentage)}% ({used} of {limit} tokens)"
        return None

    def status(self) -> str:
        counts = self.token_counts()
        if counts is not None:
            used, limit = counts
            return f"Token usage: {used} / {limit} ({int(self.usage_percentage())}%)"
        if self.current_usage.total_tokens is not None:
            return f"Token usage: {self.current_usage.total_tokens} tokens (no limit)"
        return "Token usage: unavailable"

    def reset(self) -> None:
        """Clear usage and warnings. The context limit is kept."""
        self.current_usage = Usage()
        self.warning_state = WarningState.NO_WARNING

    def snapshot(self) -> TrackerSnapshot:
        return TrackerSnapshot(
            usage=self.current_usage,
            context_limit=self.context_limit,
            warning_state=self.warning_state,
        )


class SharedTokenTracker:
    """
    TokenTracker shared between concurrent turns.

    Every operation takes the lock. record_turn() runs update-then-check as
    one critical section so concurrent turns cannot fire a warning twice or
    skip it.
    """

    def __init__(self, tracker: Optional[TokenTracker] = None):
        self._tracker = tracker if tracker is not None else TokenTracker()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def turn(self) -> AsyncIterator[TokenTracker]:
        """Hold the lock for a caller-defined sequence of tracker operations."""
        async with self._lock:
            yield self._tracker

    async def record_turn(self, usage: Union[Usage, ProviderUsage]) -> Optional[str]:
        async with self._lock:
            self._tracker.update_usage(usage)
            warning = self._tracker.check_warning()
        if warning:
            logger.warning(warning)
        return warning

    async def update_usage(self, usage: Union[Usage, ProviderUsage]) -> None:
        async with self._lock:
            self._tracker.update_usage(usage)

    async def set_context_limit(self, limit: int) -> None:
        async with self._lock:
            self._tracker.set_context_limit(limit)

    async def check_warning(self) -> Optional[str]:
        async with self._lock:
            return self._tracker.check_warning()

    async def usage_percentage(self) -> Optional[float]:
        async with self._lock:
            return self._tracker.usage_percentage()

    async def status(self) -> str:
        async with self._lock:
            return self._tracker.status()

    async def reset(self) -> None:
        async with self._lock:
            self._tracker.reset()

    async def snapshot(self) -> TrackerSnapshot:
        async with self._lock:
            return self._tracker.snapshot()


def create_shared_tracker(context_limit: Optional[int] = None) -> SharedTokenTracker:
    return SharedTokenTracker(TokenTracker(context_limit=context_limit))
