"""
Control signals embedded in agent output.

Agents end their work by writing markers such as ``###PRD_COMPLETE###`` or
``###REJECTED:prd-3:missing tests###`` anywhere in their prose. This module
is the only place that knows the marker syntax.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional


class SignalKind(Enum):
    PRD_COMPLETE = "PRD_COMPLETE"
    BAILOUT = "BAILOUT"
    BLOCKED = "BLOCKED"
    ANALYSIS_COMPLETE = "ANALYSIS_COMPLETE"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    LOOP_RISK = "LOOP_RISK"
    PLAN_COMPLETE = "PLAN_COMPLETE"
    PLAN_SKIPPED = "PLAN_SKIPPED"
    PLAN_UPDATED = "PLAN_UPDATED"
    PROMPT_UPDATED = "PROMPT_UPDATED"


@dataclass(frozen=True)
class Signal:
    kind: SignalKind
    detail: str = ""
    record_id: Optional[str] = None


# Signals after which reading more output is pointless
TERMINAL_KINDS = frozenset({
    SignalKind.PRD_COMPLETE,
    SignalKind.BAILOUT,
    SignalKind.BLOCKED,
    SignalKind.ANALYSIS_COMPLETE,
    SignalKind.PLAN_COMPLETE,
    SignalKind.PLAN_SKIPPED,
})

# Signals that mean an iteration moved something forward
PRODUCTIVE_KINDS = frozenset({
    SignalKind.VERIFIED,
    SignalKind.REJECTED,
    SignalKind.PLAN_COMPLETE,
    SignalKind.PLAN_UPDATED,
    SignalKind.PRD_COMPLETE,
})

# Free-text arguments run to the next "###" on the same line, so a reason may
# contain "#" (issue numbers, C#). Record ids and phase names cannot contain
# "#" or ":", which keeps arity strict.
_ARG = r'((?:(?!###)[^\n])+?)'
_ID = r'([^#:\n]+?)'

# kind -> (pattern, what group 1 / group 2 mean)
_PATTERNS: list[tuple[SignalKind, re.Pattern, tuple[str, ...]]] = [
    (SignalKind.PRD_COMPLETE, re.compile(r'###PRD_COMPLETE###'), ()),
    (SignalKind.BAILOUT, re.compile(rf'###BAILOUT:{_ARG}###'), ("detail",)),
    (SignalKind.BLOCKED, re.compile(rf'###BLOCKED:{_ARG}###'), ("detail",)),
    (SignalKind.ANALYSIS_COMPLETE, re.compile(r'###ANALYSIS_COMPLETE###'), ()),
    (SignalKind.VERIFIED, re.compile(rf'###VERIFIED:{_ID}###'), ("record_id",)),
    (SignalKind.REJECTED, re.compile(rf'###REJECTED:{_ID}:{_ARG}###'), ("record_id", "detail")),
    (SignalKind.LOOP_RISK, re.compile(rf'###LOOP_RISK:{_ID}###'), ("record_id",)),
    (SignalKind.PLAN_COMPLETE, re.compile(rf'###PLAN_COMPLETE:{_ID}###'), ("record_id",)),
    (SignalKind.PLAN_SKIPPED, re.compile(rf'###PLAN_SKIPPED:{_ARG}###'), ("detail",)),
    (SignalKind.PLAN_UPDATED, re.compile(rf'###PLAN_UPDATED:{_ID}###'), ("record_id",)),
    (SignalKind.PROMPT_UPDATED, re.compile(rf'###PROMPT_UPDATED:{_ID}###'), ("detail",)),
]

# Display-only marker, never a control signal
WORKING_ON_PATTERN = re.compile(r'(?:\*\*)?WORKING ON:\s*([A-Za-z0-9_.-]+)(?:\*\*)?')


def parse_signals(text: str) -> list[Signal]:
    """Extract every signal marker from a chunk of text.

    Markers are returned in the order they appear. Repeated markers
    (two VERIFIED, say) are all returned. Malformed markers are ignored.
    """
    if not text or "###" not in text:
        return []

    found: list[tuple[int, Signal]] = []
    for kind, pattern, fields in _PATTERNS:
        for match in pattern.finditer(text):
            values = {name: match.group(i + 1).strip() for i, name in enumerate(fields)}
            if any(not v for v in values.values()):
                continue
            found.append((match.start(), Signal(kind=kind, **values)))

    found.sort(key=lambda pair: pair[0])
    return [signal for _, signal in found]


def find_working_on(text: str) -> Optional[str]:
    """Return the record id from a ``WORKING ON: <id>`` marker, if any."""
    match = WORKING_ON_PATTERN.search(text or "")
    return match.group(1) if match else None


def is_terminal(signal: Signal) -> bool:
    return signal.kind in TERMINAL_KINDS


def has_signal(signals: Iterable[Signal], kind: SignalKind) -> bool:
    return any(s.kind is kind for s in signals)


def get_signal(signals: Iterable[Signal], kind: SignalKind) -> Optional[Signal]:
    """Return the first signal of the given kind, or None."""
    for s in signals:
        if s.kind is kind:
            return s
    return None
