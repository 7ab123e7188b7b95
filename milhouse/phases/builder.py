"""
Builder phase: implement the single Active requirement.

PRD_COMPLETE moves it Active -> Pending. BAILOUT leaves it Active with its
plan in place so the reviewer can rewrite the plan and the next turn can
resume.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from milhouse.agents.signals import SignalKind
from milhouse.lib.constants import PHASE_BUILDER
from milhouse.lib.context import builder_context
from milhouse.phases.base import PhaseContext, PhaseResult, apply_transition, invoke, render_prompt_for
from milhouse.prd.models import Status
from milhouse.prd.store import Store

logger = logging.getLogger(__name__)


@dataclass
class BuilderResult(PhaseResult):
    phase: str = PHASE_BUILDER
    record_id: Optional[str] = None
    completed: bool = False
    bailout_reason: str = ""

    @property
    def bailed_out(self) -> bool:
        return bool(self.bailout_reason)


def should_run(store: Store) -> bool:
    return len(store.active()) == 1


def skip_reason(store: Store) -> str:
    if not store.active():
        return "no active record"
    return f"{len(store.active())} active records, expected one"


def run(ctx: PhaseContext) -> BuilderResult:
    """Run one builder turn on the Active record.

    Raises:
        PhaseError: If the prompt can't be rendered or the agent can't start
        StoreError: If prd.json can't be read or written
    """
    store = ctx.load_store()
    if not should_run(store):
        if len(store.active()) > 1:
            logger.warning(f"[BUILDER] Skipping: {skip_reason(store)}")
        return BuilderResult(skipped=True, skip_reason=skip_reason(store))

    record = store.active()[0]
    phase_config = ctx.config.phase(PHASE_BUILDER)
    prompt = render_prompt_for(PHASE_BUILDER, builder_context(ctx.base_path, record, phase_config.progress_lines))

    ctx.reporter.agent_header(PHASE_BUILDER, f"implementing {record.id}")
    invocation = invoke(ctx, PHASE_BUILDER, prompt, record_id=record.id)

    result = BuilderResult(
        record_id=record.id,
        signals=invocation.signals,
        total_tokens=invocation.total_tokens,
        terminated=invocation.terminated,
    )

    store = ctx.load_store()
    record = store.find_by_id(result.record_id)
    if record is None:
        logger.warning(f"[BUILDER] {result.record_id} disappeared from prd.json during the turn")
        return result

    changed = False
    for signal in invocation.signals:
        if signal.kind is SignalKind.PRD_COMPLETE:
            changed |= apply_transition(record, Status.PENDING, reason="builder signalled PRD_COMPLETE")
            result.completed = record.status is Status.PENDING
        elif signal.kind is SignalKind.BAILOUT:
            result.bailout_reason = signal.detail
            apply_transition(record, Status.ACTIVE, reason=f"bailout: {signal.detail}")
        elif signal.kind is SignalKind.BLOCKED:
            result.blocked_reason = signal.detail

    if changed:
        ctx.save_store(store)
    return result
