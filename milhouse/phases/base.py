"""
Shared plumbing for the planner, builder and reviewer.

Each phase loads the store fresh, renders its prompt, runs one agent
invocation through the stream driver, reloads the store (the agent may have
edited prd.json itself) and then applies the signals it got back.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from milhouse.agents.claude import AgentLaunchError, ClaudeAgent, ExecuteOptions
from milhouse.agents.signals import Signal, SignalKind
from milhouse.agents.stream import InvocationResult, run_invocation
from milhouse.lib.config import Config
from milhouse.lib.constants import DEFAULT_ALLOWED_TOOLS, PRD_FILE, PROGRESS_FILE, PROMPT_FILE
from milhouse.lib.display import Reporter
from milhouse.lib.prompts import PromptError, render
from milhouse.lib.stats import PhaseStats, now_iso, record_phase_stats
from milhouse.prd.models import Requirement, Status
from milhouse.prd.paths import milhouse_path, store_path
from milhouse.prd.store import Store, load_store, save_store
from milhouse.workflow.state_machine import can_transition, transition

logger = logging.getLogger(__name__)


class PhaseError(Exception):
    """A phase invocation aborted before its signals could be applied."""

    def __init__(self, phase: str, message: str):
        self.phase = phase
        super().__init__(f"{phase}: {message}")


@dataclass
class PhaseContext:
    """Everything a phase needs from the outside world."""
    base_path: Path
    config: Config
    agent: ClaudeAgent
    reporter: Reporter = field(default_factory=Reporter)

    @property
    def store_file(self) -> Path:
        return store_path(self.base_path)

    def load_store(self) -> Store:
        return load_store(self.store_file)

    def save_store(self, store: Store) -> None:
        save_store(self.store_file, store)

    def context_files(self) -> list[Path]:
        files = [
            milhouse_path(self.base_path, PRD_FILE),
            milhouse_path(self.base_path, PROGRESS_FILE),
            milhouse_path(self.base_path, PROMPT_FILE),
        ]
        for extra in self.config.context_files:
            path = Path(extra)
            files.append(path if path.is_absolute() else self.base_path / path)
        return files


@dataclass
class PhaseResult:
    """Outcome of one phase turn."""
    phase: str
    skipped: bool = False
    skip_reason: str = ""
    signals: list[Signal] = field(default_factory=list)
    total_tokens: int = 0
    terminated: bool = False
    blocked_reason: str = ""

    @property
    def signal_kinds(self) -> set[SignalKind]:
        return {s.kind for s in self.signals}

    @property
    def blocked(self) -> bool:
        return bool(self.blocked_reason)


def render_prompt_for(phase: str, data: dict) -> str:
    try:
        return render(phase, data)
    except PromptError as e:
        raise PhaseError(phase, str(e)) from e


def invoke(ctx: PhaseContext, phase: str, prompt: str, record_id: Optional[str] = None) -> InvocationResult:
    """Run the agent for a phase with its configured model and ceiling.

    Raises:
        PhaseError: If the agent could not be started
    """
    phase_config = ctx.config.phase(phase)
    options = ExecuteOptions(
        prompt=prompt,
        model=phase_config.model,
        work_dir=ctx.base_path,
        allowed_tools=list(DEFAULT_ALLOWED_TOOLS),
        context_files=ctx.context_files(),
    )

    logger.info(f"[PHASE] {phase}: model={phase_config.model} ceiling={phase_config.max_tokens}")
    try:
        result = run_invocation(ctx.agent, options, phase_config.max_tokens, ctx.reporter)
    except AgentLaunchError as e:
        raise PhaseError(phase, str(e)) from e

    for signal in result.signals:
        ctx.reporter.signal(signal.kind.value, signal.record_id or signal.detail)

    record_phase_stats(ctx.base_path, PhaseStats(
        timestamp=now_iso(),
        phase=phase,
        model=phase_config.model,
        elapsed_seconds=round(result.elapsed_seconds, 2),
        input_tokens=result.usage.input_tokens,
        output_tokens=result.usage.output_tokens,
        cache_read_tokens=result.usage.cache_read_tokens,
        total_tokens=result.total_tokens,
        terminated=result.terminated,
        signals=[s.kind.value for s in result.signals],
        record_id=record_id,
    ))
    return result


def apply_transition(record: Requirement, to_status: Status, reason: str = "", **kwargs) -> bool:
    """Apply a transition requested by agent output.

    The agent can ask for anything, so a disallowed transition is logged
    and ignored rather than raised.
    """
    if not can_transition(record, to_status):
        logger.warning(
            f"[PHASE] Ignoring signal: {record.id} cannot move "
            f"{record.status.value} -> {to_status.value}"
        )
        return False
    return transition(record, to_status, reason=reason, **kwargs)
