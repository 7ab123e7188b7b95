"""
Prompt context for each phase.

Reads prompt.md, the tail of progress.md, plans and augmentation files and
returns the variables each phase template expects. Missing files are
normal (a fresh project has no progress yet) and read as empty text.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from milhouse.lib.constants import (
    PHASE_BUILDER,
    PHASE_CHAT,
    PHASE_PLANNER,
    PHASE_REVIEWER,
    PROGRESS_FILE,
    PROMPT_FILE,
)
from milhouse.lib.prompts import build_section
from milhouse.prd.models import Requirement
from milhouse.prd.paths import augmentation_path, milhouse_path, plan_path
from milhouse.prd.store import Store

logger = logging.getLogger(__name__)

__all__ = [
    "read_file_content",
    "read_last_lines",
    "load_augmentation",
    "planner_context",
    "builder_context",
    "reviewer_context",
    "chat_context",
]


def read_file_content(path: Path) -> str:
    """Return file text, or "" if it can't be read."""
    try:
        return Path(path).read_text()
    except OSError:
        return ""


def read_last_lines(path: Path, n: int) -> str:
    """Return the last n lines of a file, or "" if it can't be read."""
    content = read_file_content(path)
    if n <= 0 or not content:
        return ""
    lines = content.split("\n")
    if len(lines) <= n:
        return content
    return "\n".join(lines[-n:])


def load_augmentation(base_path: Path, phase: str) -> str:
    """Project-specific guidance for a phase. Whitespace-only files count as absent."""
    return read_file_content(augmentation_path(base_path, phase)).strip()


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M")


def _records_json(records: list[Requirement]) -> str:
    return json.dumps([r.to_dict() for r in records], indent=2)


def _common(base_path: Path, phase: str, progress_lines: int) -> dict:
    progress = read_last_lines(milhouse_path(base_path, PROGRESS_FILE), progress_lines)
    return {
        "prompt_md": build_section(
            read_file_content(milhouse_path(base_path, PROMPT_FILE)).strip(),
            "## Codebase Patterns",
            "(none recorded yet)",
        ),
        "progress": build_section(progress.strip(), "## Recent Progress", "(no progress yet)"),
        "augmentation": build_section(load_augmentation(base_path, phase), "## Project-Specific Guidance"),
        "timestamp": _timestamp(),
    }


def planner_context(base_path: Path, store: Store, progress_lines: int) -> dict:
    data = _common(base_path, PHASE_PLANNER, progress_lines)
    data["open_records_json"] = _records_json(store.open())
    return data


def builder_context(base_path: Path, record: Requirement, progress_lines: int) -> dict:
    data = _common(base_path, PHASE_BUILDER, progress_lines)
    plan_file = plan_path(base_path, record.id)
    data.update({
        "record_id": record.id,
        "record_json": json.dumps(record.to_dict(), indent=2),
        "plan_path": str(plan_file),
        "plan_content": build_section(
            read_file_content(plan_file).strip(),
            "## Plan",
            f"(plan file {plan_file} is missing; work from the acceptance criteria)",
        ),
    })
    return data


def _active_plans(base_path: Path, store: Store) -> str:
    sections = []
    for record in store.active() + store.pending():
        content = read_file_content(plan_path(base_path, record.id)).strip()
        if content:
            sections.append(f"### {record.id} ({record.status.value})\n\n{content}")
    return "\n\n".join(sections)


def reviewer_context(base_path: Path, store: Store, progress_lines: int, iteration: int) -> dict:
    data = _common(base_path, PHASE_REVIEWER, progress_lines)
    data.update({
        "all_records_json": _records_json(store.records),
        "iteration": iteration,
        "active_plans": build_section(_active_plans(base_path, store), "## Active Plans", "(no active plans)"),
    })
    for phase in (PHASE_PLANNER, PHASE_BUILDER, PHASE_REVIEWER):
        data[f"{phase}_augmentation"] = load_augmentation(base_path, phase) or "(empty)"
    return data


def chat_context(base_path: Path, store: Optional[Store]) -> dict:
    store = store or Store()
    progress = read_file_content(milhouse_path(base_path, PROGRESS_FILE))
    return {
        "total": len(store.records),
        "open": len(store.open()),
        "active": len(store.active()),
        "pending": len(store.pending()),
        "complete": len(store.complete()),
        "progress_lines": len(progress.splitlines()),
        "prompt_status": "present" if read_file_content(milhouse_path(base_path, PROMPT_FILE)).strip() else "empty",
        "augmentation": build_section(load_augmentation(base_path, PHASE_CHAT), "## Project-Specific Guidance"),
    }
