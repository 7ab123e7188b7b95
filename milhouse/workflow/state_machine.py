"""Destination-based API over the requirement FSM.

Phase controllers know which status a signal should move a record to;
this module maps that to the FSM trigger and raises InvalidTransition for
anything the lifecycle does not allow.

Usage:
    from milhouse.workflow.state_machine import transition

    transition(record, Status.PENDING, reason="builder signalled PRD_COMPLETE")
"""

import logging

from transitions import MachineError

from milhouse.prd.models import Requirement, Status
from milhouse.workflow.fsm import RequirementFSM, TRIGGER_FOR

logger = logging.getLogger(__name__)


class InvalidTransition(Exception):
    """Raised when attempting a status change the lifecycle does not allow."""

    def __init__(self, from_status: Status, to_status: Status, record_id: str = ""):
        self.from_status = from_status
        self.to_status = to_status
        self.record_id = record_id
        super().__init__(
            f"Invalid transition: {from_status.value} -> {to_status.value}"
            + (f" (record: {record_id})" if record_id else "")
        )


def transition(record: Requirement, to_status: Status, reason: str = "", **kwargs) -> bool:
    """Move a record to a new status with validation.

    A transition to the status the record already holds is a no-op, except
    ACTIVE -> ACTIVE which is the builder bailout and is logged as such.

    Args:
        record: Record to transition (mutated in place)
        to_status: Target status
        reason: Reason for the transition; stored in notes on rejection
        **kwargs: Passed to FSM callbacks (e.g. plan_ref)

    Returns:
        True if the record's status or plan changed, False for a no-op

    Raises:
        InvalidTransition: If the transition is not allowed
    """
    current = record.status
    reason_str = f" ({reason})" if reason else ""

    if current is to_status and current is not Status.ACTIVE:
        logger.debug(f"[STATE] {record.id}: already {to_status.value}, no-op")
        return False

    trigger = TRIGGER_FOR.get((current.value, to_status.value))
    if trigger is None:
        raise InvalidTransition(current, to_status, record.id)

    fsm = RequirementFSM(record)
    try:
        logger.info(f"[STATE] {record.id}: {current.value} -> {to_status.value}{reason_str}")
        getattr(fsm, trigger)(reason=reason, **kwargs)
    except MachineError as e:
        raise InvalidTransition(current, to_status, record.id) from e

    return trigger != "bailout"


def can_transition(record: Requirement, to_status: Status) -> bool:
    """Check if a transition to the given status is allowed (self is always allowed)."""
    if record.status is to_status:
        return True
    return (record.status.value, to_status.value) in TRIGGER_FOR
