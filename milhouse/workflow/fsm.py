"""Requirement lifecycle state machine using the transitions library.

Each record is wrapped in a RequirementFSM whose triggers are the only
permitted ways to change its status:

    plan     open    -> active   (planner wrote a plan)
    submit   active  -> pending  (builder signalled PRD_COMPLETE)
    bailout  active  -> active   (builder stopped early; plan is kept)
    verify   pending -> complete (reviewer signalled VERIFIED)
    reject   pending -> open     (reviewer signalled REJECTED)

Complete is terminal. The FSM mutates the wrapped record in place; the
caller is responsible for saving the store afterwards.

Usage:
    from milhouse.workflow.fsm import RequirementFSM

    fsm = RequirementFSM(record)
    fsm.plan(plan_ref=".milhouse/plans/rec-1-plan.md")
    fsm.submit()
"""

import logging
from typing import Callable

from transitions import Machine

from milhouse.prd.models import Requirement, Status

logger = logging.getLogger(__name__)


STATES = [s.value for s in Status]

TRANSITIONS = [
    {"trigger": "plan", "source": "open", "dest": "active", "after": "_set_plan"},
    {"trigger": "submit", "source": "active", "dest": "pending"},
    {"trigger": "bailout", "source": "active", "dest": "active"},
    {"trigger": "verify", "source": "pending", "dest": "complete", "after": "_clear_plan"},
    {"trigger": "reject", "source": "pending", "dest": "open", "after": ["_clear_plan", "_note_reason"]},
]


def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name."""
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        key = (t["source"], t["dest"])
        if key not in lookup:
            lookup[key] = t["trigger"]
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


class RequirementFSM:
    """State machine for one requirement record.

    Keeps record.status in sync with the machine state and logs every
    transition.
    """

    def __init__(self, record: Requirement, on_transition: Callable[[str, str, str], None] | None = None):
        """Initialize FSM for a record.

        Args:
            record: The record to drive; mutated in place
            on_transition: Optional callback(from_state, to_state, trigger) called after transitions
        """
        self.record = record
        self.on_transition = on_transition

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=record.status.value,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def _set_plan(self, event) -> None:
        plan_ref = event.kwargs.get("plan_ref")
        if plan_ref:
            self.record.active_plan = plan_ref

    def _clear_plan(self, event) -> None:
        self.record.active_plan = None

    def _note_reason(self, event) -> None:
        reason = event.kwargs.get("reason", "")
        if reason:
            self.record.append_note(f"Rejected: {reason}")

    def on_state_change(self, event) -> None:
        """Callback after any transition: sync status and log."""
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        self.record.status = Status(to_state)
        logger.info(f"[FSM] {self.record.id}: {from_state} -> {to_state} ({trigger})")

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)
