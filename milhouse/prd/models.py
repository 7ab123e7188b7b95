"""
Data models for the requirement record store.

A requirement record ("PRD") moves through four states. On disk the state
lives in the legacy ``passes`` field, which is a bool-or-string union:

    false      -> OPEN      not attempted, or sent back by the reviewer
    "active"   -> ACTIVE    planner selected it and wrote a plan
    "pending"  -> PENDING   builder claims it is done, awaiting review
    true       -> COMPLETE  reviewer verified it
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class InvalidStatus(ValueError):
    """Raised when a ``passes`` value is not one of the four wire values."""

    def __init__(self, value: Any, record_id: str = ""):
        self.value = value
        self.record_id = record_id
        super().__init__(
            f"Invalid status value {value!r}: must be false, true, 'active' or 'pending'"
            + (f" (record: {record_id})" if record_id else "")
        )


class Status(Enum):
    """Lifecycle state of a requirement record.

    Values are the FSM state names; ``to_wire``/``from_wire`` map to the
    ``passes`` representation.
    """

    OPEN = "open"
    ACTIVE = "active"
    PENDING = "pending"
    COMPLETE = "complete"

    def to_wire(self):
        if self is Status.OPEN:
            return False
        if self is Status.COMPLETE:
            return True
        return self.value

    @classmethod
    def from_wire(cls, value: Any, record_id: str = "") -> "Status":
        # bool must be checked by identity: 0/1 are not valid statuses
        if value is False:
            return cls.OPEN
        if value is True:
            return cls.COMPLETE
        if value == "active":
            return cls.ACTIVE
        if value == "pending":
            return cls.PENDING
        raise InvalidStatus(value, record_id)


# Keys owned by Requirement; everything else is carried through in `extra`
_KNOWN_KEYS = ("id", "description", "acceptanceCriteria", "priority", "passes", "notes", "activePlan")


@dataclass
class Requirement:
    """A single unit of work with acceptance criteria and a lifecycle status."""
    id: str
    description: str = ""
    acceptance_criteria: list[str] = field(default_factory=list)
    priority: int = 0
    status: Status = Status.OPEN
    notes: str = ""
    active_plan: Optional[str] = None  # Plan reference, set only while ACTIVE or PENDING
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "Requirement":
        record_id = data["id"]
        status = Status.from_wire(data.get("passes", False), record_id)
        return cls(
            id=record_id,
            description=data.get("description", ""),
            acceptance_criteria=list(data.get("acceptanceCriteria") or []),
            priority=data.get("priority", 0),
            status=status,
            notes=data.get("notes", ""),
            active_plan=data.get("activePlan") or None,
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "description": self.description,
            "acceptanceCriteria": list(self.acceptance_criteria),
            "priority": self.priority,
            "passes": self.status.to_wire(),
            "notes": self.notes,
        }
        if self.active_plan:
            data["activePlan"] = self.active_plan
        data.update(self.extra)
        return data

    def append_note(self, text: str) -> None:
        """Append a line to notes, keeping existing content."""
        text = text.strip()
        if not text:
            return
        self.notes = f"{self.notes.rstrip()}\n{text}" if self.notes.strip() else text
