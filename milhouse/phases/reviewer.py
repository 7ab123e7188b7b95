"""
Reviewer phase: verify or reject pending work and repair stalled plans.

All signals from one invocation are applied:

    VERIFIED:<id>           pending -> complete, plan cleared and deleted
    REJECTED:<id>:<reason>  pending -> open, reason appended to notes
    PLAN_UPDATED:<id>       recorded only (the agent rewrote the plan file)
    LOOP_RISK:<id>          recorded as a warning
    PROMPT_UPDATED:<phase>  recorded only
"""

import logging
from dataclasses import dataclass, field

from milhouse.agents.signals import SignalKind
from milhouse.lib.constants import PHASE_REVIEWER
from milhouse.lib.context import reviewer_context
from milhouse.phases.base import PhaseContext, PhaseResult, apply_transition, invoke, render_prompt_for
from milhouse.prd.models import Status
from milhouse.prd.paths import delete_plan
from milhouse.prd.store import Store

logger = logging.getLogger(__name__)


@dataclass
class ReviewerResult(PhaseResult):
    phase: str = PHASE_REVIEWER
    verified: list[str] = field(default_factory=list)
    rejected: list[tuple[str, str]] = field(default_factory=list)  # (record_id, reason)
    loop_risk: list[str] = field(default_factory=list)
    plan_updated: list[str] = field(default_factory=list)
    prompt_updated: list[str] = field(default_factory=list)


def should_run(store: Store) -> bool:
    # Open records alone are enough: the reviewer carries learnings forward
    return store.has_work()


def run(ctx: PhaseContext, iteration: int = 1) -> ReviewerResult:
    """Run one reviewer turn.

    Raises:
        PhaseError: If the prompt can't be rendered or the agent can't start
        StoreError: If prd.json can't be read or written
    """
    store = ctx.load_store()
    if not should_run(store):
        return ReviewerResult(skipped=True, skip_reason="nothing to review")

    phase_config = ctx.config.phase(PHASE_REVIEWER)
    prompt = render_prompt_for(
        PHASE_REVIEWER,
        reviewer_context(ctx.base_path, store, phase_config.progress_lines, iteration),
    )

    ctx.reporter.agent_header(
        PHASE_REVIEWER,
        f"reviewing ({len(store.pending())} pending, {len(store.active())} active)",
    )
    invocation = invoke(ctx, PHASE_REVIEWER, prompt)

    result = ReviewerResult(
        signals=invocation.signals,
        total_tokens=invocation.total_tokens,
        terminated=invocation.terminated,
    )

    store = ctx.load_store()
    changed = False
    for signal in invocation.signals:
        kind = signal.kind
        if kind is SignalKind.VERIFIED:
            changed |= _verify(ctx, store, signal.record_id, result)
        elif kind is SignalKind.REJECTED:
            changed |= _reject(ctx, store, signal.record_id, signal.detail, result)
        elif kind is SignalKind.LOOP_RISK:
            logger.warning(f"[REVIEWER] Loop risk flagged for {signal.record_id}")
            ctx.reporter.warning(f"Loop risk: {signal.record_id}")
            _note(result.loop_risk, signal.record_id)
        elif kind is SignalKind.PLAN_UPDATED:
            _note(result.plan_updated, signal.record_id)
        elif kind is SignalKind.PROMPT_UPDATED:
            _note(result.prompt_updated, signal.detail)
        elif kind is SignalKind.BLOCKED:
            result.blocked_reason = signal.detail

    if changed:
        ctx.save_store(store)
    return result


def _verify(ctx: PhaseContext, store: Store, record_id: str, result: ReviewerResult) -> bool:
    record = store.find_by_id(record_id)
    if record is None:
        logger.warning(f"[REVIEWER] VERIFIED for unknown record {record_id}, ignoring")
        return False

    changed = apply_transition(record, Status.COMPLETE, reason="reviewer signalled VERIFIED")
    if record.status is not Status.COMPLETE:
        return False
    if record.active_plan:
        record.active_plan = None
        changed = True
    delete_plan(ctx.base_path, record_id)
    _note(result.verified, record_id)
    return changed


def _reject(ctx: PhaseContext, store: Store, record_id: str, reason: str, result: ReviewerResult) -> bool:
    record = store.find_by_id(record_id)
    if record is None:
        logger.warning(f"[REVIEWER] REJECTED for unknown record {record_id}, ignoring")
        return False

    if not apply_transition(record, Status.OPEN, reason=reason):
        return False
    delete_plan(ctx.base_path, record_id)
    result.rejected.append((record_id, reason))
    return True


def _note(ids: list, value) -> None:
    # The closing result event repeats the last message, so markers can arrive twice
    if value not in ids:
        ids.append(value)
