"""
Planner phase: pick one open requirement and write its plan.

Runs only when nothing is Active and something is Open. On
PLAN_COMPLETE:<id> the named record moves Open -> Active with its plan
reference set.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from milhouse.agents.signals import SignalKind
from milhouse.lib.constants import PHASE_PLANNER
from milhouse.lib.context import planner_context
from milhouse.phases.base import PhaseContext, PhaseResult, apply_transition, invoke, render_prompt_for
from milhouse.prd.models import Status
from milhouse.prd.paths import ensure_plans_dir, plan_exists, plan_ref
from milhouse.prd.selector import select_next
from milhouse.prd.store import Store

logger = logging.getLogger(__name__)


@dataclass
class PlannerResult(PhaseResult):
    phase: str = PHASE_PLANNER
    record_id: Optional[str] = None  # Record that was planned
    plan_ref: Optional[str] = None


def should_run(store: Store) -> bool:
    return not store.active() and bool(store.open())


def skip_reason(store: Store) -> str:
    if store.active():
        return "active record exists"
    return "no open records"


def run(ctx: PhaseContext) -> PlannerResult:
    """Run one planner turn.

    Raises:
        PhaseError: If the prompt can't be rendered or the agent can't start
        StoreError: If prd.json can't be read or written
    """
    store = ctx.load_store()
    if not should_run(store):
        return PlannerResult(skipped=True, skip_reason=skip_reason(store))

    ensure_plans_dir(ctx.base_path)
    suggested = select_next(store)
    phase_config = ctx.config.phase(PHASE_PLANNER)
    prompt = render_prompt_for(PHASE_PLANNER, planner_context(ctx.base_path, store, phase_config.progress_lines))

    ctx.reporter.agent_header(PHASE_PLANNER, f"selecting and planning (next by priority: {suggested.id})")
    invocation = invoke(ctx, PHASE_PLANNER, prompt)

    result = PlannerResult(
        signals=invocation.signals,
        total_tokens=invocation.total_tokens,
        terminated=invocation.terminated,
    )

    store = ctx.load_store()
    changed = False
    for signal in invocation.signals:
        if signal.kind is SignalKind.PLAN_COMPLETE:
            changed |= _activate(ctx, store, signal.record_id, result)
        elif signal.kind is SignalKind.PLAN_SKIPPED:
            result.skipped = True
            result.skip_reason = signal.detail
        elif signal.kind is SignalKind.BLOCKED:
            result.blocked_reason = signal.detail

    if changed:
        ctx.save_store(store)
    return result


def _activate(ctx: PhaseContext, store: Store, record_id: str, result: PlannerResult) -> bool:
    """Move the planned record to Active. Returns True if the store changed."""
    record = store.find_by_id(record_id)
    if record is None:
        logger.warning(f"[PLANNER] PLAN_COMPLETE for unknown record {record_id}, ignoring")
        return False

    others = [r.id for r in store.active() if r.id != record_id]
    if others:
        logger.warning(
            f"[PLANNER] PLAN_COMPLETE for {record_id} while {', '.join(others)} is active, ignoring"
        )
        return False

    if not plan_exists(ctx.base_path, record_id):
        logger.warning(f"[PLANNER] No plan file written for {record_id}")

    ref = plan_ref(record_id)
    if record.status is Status.ACTIVE:
        # Agent already flipped the status itself; just make sure the plan is attached
        changed = record.active_plan != ref
        record.active_plan = ref
    else:
        changed = apply_transition(record, Status.ACTIVE, reason="planner signalled PLAN_COMPLETE", plan_ref=ref)
        if not changed:
            return False

    result.record_id = record_id
    result.plan_ref = ref
    return changed
