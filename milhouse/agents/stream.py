"""
Stream driver for one phase invocation.

Reads the claude stream-json event stream in order, feeds every text
segment through the signal parser and every usage block through the token
budget, and stops as soon as a terminal signal or the budget says so.

Event shapes handled:
    {"type": "content_block_delta", "delta": {"type": "text_delta", "text": ...}}
    {"type": "assistant", "message": {"content": [...], "usage": {...}}}
    {"type": "result", "result": "...", "usage": {...}}
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from milhouse.agents.claude import ClaudeAgent, ExecuteOptions
from milhouse.agents.signals import Signal, find_working_on, is_terminal, parse_signals
from milhouse.agents.tokens import TokenBudget, TokenUsage
from milhouse.lib.display import Reporter

logger = logging.getLogger(__name__)


class CancelToken:
    """Per-invocation cancellation flag.

    Callbacks run once, on the first cancel(); later calls are no-ops.
    """

    def __init__(self):
        self.cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    def add_callback(self, callback: Callable[[], None]) -> None:
        if self.cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        for callback in self._callbacks:
            callback()


@dataclass
class InvocationResult:
    """Everything one phase invocation produced."""
    output: str = ""
    signals: list[Signal] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    ceiling: int = 0
    terminated: bool = False  # Stopped early on a terminal signal or the budget
    usage_observed: bool = False
    exit_code: Optional[int] = None
    elapsed_seconds: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.usage.total_tokens


class StreamHandler:
    """Collects output and signals for one invocation."""

    def __init__(self, budget: TokenBudget, reporter: Optional[Reporter] = None):
        self.budget = budget
        self.reporter = reporter or Reporter()
        self.signals: list[Signal] = []
        self._output: list[str] = []
        self.tool_count = 0
        self.should_stop = False
        self.assistant_usage_seen = False

    @property
    def output(self) -> str:
        return "".join(self._output)

    def on_tool_use(self, name: str) -> None:
        self.tool_count += 1
        logger.debug(f"[STREAM] tool_use: {name}")

    def on_text(self, text: str) -> None:
        if not text:
            return
        self._output.append(text)
        record_id = find_working_on(text)
        if record_id:
            self.reporter.working_on(record_id)
        else:
            self.reporter.agent_text(text, self.tool_count)
        self.tool_count = 0
        self.check_signals(text)

    def on_done(self, result: str) -> None:
        if not result:
            return
        self._output.append(result)
        self.check_signals(result)

    def check_signals(self, text: str) -> None:
        for signal in parse_signals(text):
            self.on_signal(signal)

    def on_signal(self, signal: Signal) -> None:
        self.signals.append(signal)
        logger.debug(f"[STREAM] signal {signal.kind.value} {signal.record_id or signal.detail}")
        if is_terminal(signal):
            self.should_stop = True

    def on_usage(self, usage: TokenUsage) -> None:
        bailout = self.budget.add(usage)
        if bailout is not None:
            self.signals.append(bailout)
            self.should_stop = True


def _handle_event(event: dict, handler: StreamHandler) -> None:
    event_type = event.get("type")

    if event_type == "content_block_delta":
        delta = event.get("delta") or {}
        if delta.get("type") == "text_delta":
            handler.on_text(delta.get("text", ""))

    elif event_type == "assistant":
        message = event.get("message") or {}
        usage = message.get("usage")
        if isinstance(usage, dict):
            handler.assistant_usage_seen = True
            handler.on_usage(TokenUsage.from_usage_block(usage))
        for block in message.get("content") or []:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "tool_use":
                handler.on_tool_use(block.get("name", ""))
            elif block.get("type") == "text":
                handler.on_text(block.get("text", ""))

    elif event_type == "result":
        result = event.get("result")
        handler.on_done(result if isinstance(result, str) else "")
        # The result event carries cumulative totals; only count them when no
        # per-message usage was reported, otherwise they would be added twice.
        usage = event.get("usage")
        if isinstance(usage, dict) and not handler.assistant_usage_seen:
            handler.on_usage(TokenUsage.from_usage_block(usage))


def parse_stream(lines: Iterable[str], handler: StreamHandler, cancel: CancelToken) -> bool:
    """Consume stream-json lines until EOF, a terminal signal, or cancellation.

    Malformed lines are skipped. Returns True if reading stopped early.
    """
    for line in lines:
        if cancel.cancelled:
            return True

        line = line.strip()
        if not line:
            continue

        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            logger.debug(f"[STREAM] Skipping malformed line: {line[:120]}")
            continue
        if not isinstance(event, dict):
            continue

        _handle_event(event, handler)

        if handler.should_stop or cancel.cancelled:
            cancel.cancel()
            return True

    return False


def run_invocation(
    agent: ClaudeAgent,
    options: ExecuteOptions,
    ceiling: int,
    reporter: Optional[Reporter] = None,
) -> InvocationResult:
    """Run one agent invocation to completion or early termination.

    The agent process is always killed and reaped before this returns.

    Raises:
        AgentLaunchError: If the agent could not be started
    """
    reporter = reporter or Reporter()
    cancel = CancelToken()
    budget = TokenBudget(ceiling, on_exceeded=cancel.cancel)
    handler = StreamHandler(budget, reporter)

    start = time.time()
    with agent.open_stream(options) as stream:
        cancel.add_callback(stream.kill)
        terminated = parse_stream(stream.lines, handler, cancel)
    elapsed = time.time() - start

    result = InvocationResult(
        output=handler.output,
        signals=list(handler.signals),
        usage=budget.snapshot(),
        ceiling=ceiling,
        terminated=terminated,
        usage_observed=budget.observed,
        exit_code=stream.returncode,
        elapsed_seconds=elapsed,
    )

    if not budget.observed:
        logger.warning("[STREAM] No token usage reported by the agent; usage is 0")
    if result.total_tokens > 0:
        reporter.token_usage(
            result.usage.input_tokens, result.usage.output_tokens, result.total_tokens, ceiling
        )

    return result
