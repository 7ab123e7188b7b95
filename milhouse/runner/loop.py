"""
Iteration loop controller.

One iteration is Planner -> Builder -> Reviewer, each gated by its own
predicate against a freshly loaded store. Errors inside a phase are
recorded and the loop moves on; an unreadable or unwritable store ends
the run.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from milhouse.agents.claude import AgentLaunchError
from milhouse.agents.signals import Signal
from milhouse.lib.constants import PHASE_BUILDER, PHASE_PLANNER, PHASE_REVIEWER, PHASES
from milhouse.lib.prompts import PromptError
from milhouse.phases import builder, planner, reviewer
from milhouse.phases.base import PhaseContext, PhaseError, PhaseResult
from milhouse.prd.store import StoreError
from milhouse.runner.iteration import IterationSnapshot

logger = logging.getLogger(__name__)

_PHASE_MODULES = {
    PHASE_PLANNER: planner,
    PHASE_BUILDER: builder,
    PHASE_REVIEWER: reviewer,
}

STOP_NO_WORK = "no open, active or pending records"
STOP_IDLE = "idle iteration limit reached"
STOP_COUNT = "iteration count reached"


@dataclass
class IterationResult:
    iteration: int
    results: list[PhaseResult] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)  # phase -> message
    snapshot: Optional[IterationSnapshot] = None

    @property
    def signals(self) -> list[Signal]:
        return [s for r in self.results for s in r.signals]

    @property
    def total_tokens(self) -> int:
        return sum(r.total_tokens for r in self.results)


@dataclass
class RunSummary:
    iterations: list[IterationResult] = field(default_factory=list)
    stop_reason: str = ""
    idle_streak: int = 0

    @property
    def completed(self) -> int:
        return len(self.iterations)

    @property
    def total_tokens(self) -> int:
        return sum(i.total_tokens for i in self.iterations)

    @property
    def error_count(self) -> int:
        return sum(len(i.errors) for i in self.iterations)


def run_iteration(ctx: PhaseContext, phase: str, iteration: int = 1) -> PhaseResult:
    """Run one phase against the current store.

    Raises:
        PhaseError: If the phase could not run its agent
        StoreError: If prd.json can't be read or written
    """
    if phase not in _PHASE_MODULES:
        raise ValueError(f"Unknown phase: {phase}. Must be one of {PHASES}")
    if phase == PHASE_REVIEWER:
        return reviewer.run(ctx, iteration=iteration)
    return _PHASE_MODULES[phase].run(ctx)


def _run_phase_isolated(ctx: PhaseContext, phase: str, iteration: int, outcome: IterationResult) -> None:
    try:
        result = run_iteration(ctx, phase, iteration)
    except StoreError:
        raise
    except (PhaseError, PromptError, AgentLaunchError) as e:
        logger.error(f"[LOOP] Iteration {iteration} {phase} failed: {e}")
        ctx.reporter.error(f"{phase} failed: {e}")
        outcome.errors[phase] = str(e)
        return
    except Exception as e:
        logger.exception(f"[LOOP] Iteration {iteration} {phase} crashed: {e}")
        ctx.reporter.error(f"{phase} crashed: {e}")
        outcome.errors[phase] = f"{type(e).__name__}: {e}"
        return

    outcome.results.append(result)
    if result.skipped:
        logger.info(f"[LOOP] {phase} skipped: {result.skip_reason}")
    if result.blocked:
        ctx.reporter.warning(f"{phase} blocked: {result.blocked_reason}")
    bailout = getattr(result, "bailout_reason", "")
    if bailout:
        ctx.reporter.warning(f"{phase} bailed out: {bailout}")


def run_cycle(ctx: PhaseContext, iteration: int) -> IterationResult:
    """Run Planner -> Builder -> Reviewer once, reloading the store between phases.

    Raises:
        StoreError: If prd.json can't be read or written
    """
    outcome = IterationResult(iteration=iteration)

    for phase in PHASES:
        store = ctx.load_store()
        module = _PHASE_MODULES[phase]
        if not module.should_run(store):
            logger.debug(f"[LOOP] Iteration {iteration}: {phase} not needed")
            continue
        _run_phase_isolated(ctx, phase, iteration, outcome)

    outcome.snapshot = IterationSnapshot.capture(ctx.load_store(), outcome.signals)
    return outcome


def run_iterations(ctx: PhaseContext, count: int, max_idle: Optional[int] = None) -> RunSummary:
    """Run up to `count` iterations.

    Stops early when no work is left or after `max_idle` consecutive idle
    iterations (defaults to the configured loop.maxIdleIterations).

    Raises:
        StoreError: If prd.json can't be read or written at any point
    """
    if count < 1:
        raise ValueError(f"Iteration count must be at least 1, got {count}")
    max_idle = max_idle or ctx.config.max_idle_iterations

    summary = RunSummary()
    previous: Optional[IterationSnapshot] = None

    for iteration in range(1, count + 1):
        store = ctx.load_store()
        if not store.has_work():
            summary.stop_reason = STOP_NO_WORK
            break

        ctx.reporter.iteration_header(iteration, count)
        outcome = run_cycle(ctx, iteration)
        summary.iterations.append(outcome)

        snapshot = outcome.snapshot
        ctx.reporter.summary(
            snapshot.open_count, snapshot.active_count, snapshot.pending_count, snapshot.complete_count
        )

        if snapshot.is_idle():
            summary.idle_streak += 1
            unchanged = " (state unchanged)" if snapshot.equals(previous) else ""
            logger.info(f"[LOOP] Iteration {iteration} idle{unchanged}, streak {summary.idle_streak}/{max_idle}")
            if summary.idle_streak >= max_idle:
                ctx.reporter.warning(f"Stopping: {summary.idle_streak} consecutive idle iterations")
                summary.stop_reason = STOP_IDLE
                break
        else:
            summary.idle_streak = 0
        previous = snapshot
    else:
        summary.stop_reason = STOP_COUNT

    logger.info(f"[LOOP] Finished after {summary.completed} iteration(s): {summary.stop_reason}")
    return summary
