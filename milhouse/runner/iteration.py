"""Per-iteration fingerprint used to detect a loop that has stopped making progress."""

from dataclasses import dataclass, field
from typing import Iterable

from milhouse.agents.signals import PRODUCTIVE_KINDS, Signal, SignalKind
from milhouse.prd.models import Status
from milhouse.prd.store import Store

# Signals that are expected from an iteration that changed nothing
NON_PRODUCTIVE_KINDS = frozenset({
    SignalKind.LOOP_RISK,
    SignalKind.ANALYSIS_COMPLETE,
    SignalKind.BLOCKED,
})


@dataclass
class IterationSnapshot:
    open_count: int = 0
    active_count: int = 0
    pending_count: int = 0
    complete_count: int = 0
    kinds: frozenset[SignalKind] = field(default_factory=frozenset)

    @classmethod
    def capture(cls, store: Store, signals: Iterable[Signal]) -> "IterationSnapshot":
        counts = store.counts()
        return cls(
            open_count=counts[Status.OPEN],
            active_count=counts[Status.ACTIVE],
            pending_count=counts[Status.PENDING],
            complete_count=counts[Status.COMPLETE],
            kinds=frozenset(s.kind for s in signals),
        )

    def equals(self, other: "IterationSnapshot | None") -> bool:
        """Same status counts and same set of signal kinds."""
        if other is None:
            return False
        return (
            self.open_count == other.open_count
            and self.active_count == other.active_count
            and self.pending_count == other.pending_count
            and self.complete_count == other.complete_count
            and self.kinds == other.kinds
        )

    def is_idle(self) -> bool:
        """True when no productive signal fired.

        An iteration with only LOOP_RISK / ANALYSIS_COMPLETE / BLOCKED (or no
        signals at all) is idle. Other non-productive kinds such as BAILOUT
        still count as activity.
        """
        if self.kinds & PRODUCTIVE_KINDS:
            return False
        return self.kinds <= NON_PRODUCTIVE_KINDS
