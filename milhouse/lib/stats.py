"""
Stats tracking for phase time and token usage.

Records one line per agent invocation to .milhouse/stats.jsonl.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from milhouse.lib.constants import STATS_FILE
from milhouse.prd.paths import milhouse_path

logger = logging.getLogger(__name__)


@dataclass
class PhaseStats:
    """Stats for a single phase invocation."""
    timestamp: str
    phase: str
    model: str
    elapsed_seconds: float
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    total_tokens: int = 0
    terminated: bool = False
    signals: list[str] = field(default_factory=list)
    record_id: Optional[str] = None


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


def record_phase_stats(base_path: Path, stats: PhaseStats) -> None:
    """Append phase stats to stats.jsonl. Write failures are logged, not raised."""
    stats_file = milhouse_path(base_path, STATS_FILE)
    try:
        with open(stats_file, "a") as f:
            f.write(json.dumps(asdict(stats)) + "\n")
            f.flush()
    except OSError as e:
        logger.warning(f"Failed to record stats to {stats_file}: {e}")


def load_stats(base_path: Path) -> list[PhaseStats]:
    """Load all recorded stats. Skips corrupted lines."""
    stats_file = milhouse_path(base_path, STATS_FILE)
    if not stats_file.exists():
        return []

    stats = []
    for line_num, line in enumerate(stats_file.read_text().splitlines(), 1):
        if not line.strip():
            continue
        try:
            data = json.loads(line)
            stats.append(PhaseStats(**data))
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Skipping corrupted stats line {line_num} in {stats_file}: {e}")
    return stats


@dataclass
class PhaseSummary:
    """Aggregated stats for one phase."""
    calls: int = 0
    elapsed_seconds: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    terminated: int = 0


def summarize_stats(stats: list[PhaseStats]) -> dict[str, PhaseSummary]:
    """Aggregate stats per phase, in first-seen order."""
    summary: dict[str, PhaseSummary] = {}
    for s in stats:
        entry = summary.setdefault(s.phase, PhaseSummary())
        entry.calls += 1
        entry.elapsed_seconds += s.elapsed_seconds
        entry.input_tokens += s.input_tokens
        entry.output_tokens += s.output_tokens
        entry.total_tokens += s.total_tokens
        if s.terminated:
            entry.terminated += 1
    return summary
