"""
Token budget tracking for one phase invocation.

The claude CLI reports usage on each ``assistant`` event as a per-message
increment, so input and output are summed across events. Cache reads are
kept for diagnostics only and never count toward the ceiling.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from milhouse.agents.signals import Signal, SignalKind

logger = logging.getLogger(__name__)

TOKEN_LIMIT_REASON = "token limit exceeded"


@dataclass
class TokenUsage:
    """Token counts; a single event's increment or a running total."""
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @classmethod
    def from_usage_block(cls, usage: dict) -> "TokenUsage":
        """Build from a stream-json ``usage`` object. Missing fields are zero."""
        def _int(key: str) -> int:
            value = usage.get(key) or 0
            return value if isinstance(value, int) and value > 0 else 0

        return cls(
            input_tokens=_int("input_tokens"),
            output_tokens=_int("output_tokens"),
            cache_read_tokens=_int("cache_read_input_tokens"),
        )


class TokenBudget:
    """Accumulates usage and fires a BAILOUT once the ceiling is reached."""

    def __init__(self, ceiling: int, on_exceeded: Optional[Callable[[], None]] = None):
        if ceiling <= 0:
            raise ValueError(f"Token ceiling must be positive, got {ceiling}")
        self.ceiling = ceiling
        self.on_exceeded = on_exceeded
        self.usage = TokenUsage()
        self.exceeded = False
        self.observed = False
        self.bailout: Optional[Signal] = None

    @property
    def total_tokens(self) -> int:
        return self.usage.total_tokens

    def add(self, increment: TokenUsage) -> Optional[Signal]:
        """Accumulate one usage increment.

        Returns the synthesized BAILOUT signal the first time the ceiling is
        met or exceeded, otherwise None. The callback fires at most once.
        """
        self.observed = True
        self.usage.input_tokens += increment.input_tokens
        self.usage.output_tokens += increment.output_tokens
        self.usage.cache_read_tokens += increment.cache_read_tokens

        if self.exceeded or self.total_tokens < self.ceiling:
            return None

        self.exceeded = True
        self.bailout = Signal(kind=SignalKind.BAILOUT, detail=TOKEN_LIMIT_REASON)
        logger.info(f"[TOKENS] {self.total_tokens} >= ceiling {self.ceiling}, forcing bailout")
        if self.on_exceeded:
            self.on_exceeded()
        return self.bailout

    def snapshot(self) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.usage.input_tokens,
            output_tokens=self.usage.output_tokens,
            cache_read_tokens=self.usage.cache_read_tokens,
        )
