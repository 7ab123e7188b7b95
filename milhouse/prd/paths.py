"""Filesystem layout of a milhouse project (everything under .milhouse/)."""

import logging
from pathlib import Path

from milhouse.lib.constants import (
    MILHOUSE_DIR,
    PLANS_DIR,
    PRD_FILE,
    PROMPTS_DIR,
)

logger = logging.getLogger(__name__)


def milhouse_dir(base_path: Path) -> Path:
    return Path(base_path) / MILHOUSE_DIR


def milhouse_exists(base_path: Path) -> bool:
    """Check if the .milhouse directory exists."""
    return milhouse_dir(base_path).is_dir()


def milhouse_path(base_path: Path, filename: str) -> Path:
    """Return the full path to a file inside .milhouse/."""
    return milhouse_dir(base_path) / filename


def store_path(base_path: Path) -> Path:
    return milhouse_path(base_path, PRD_FILE)


def plan_ref(record_id: str) -> str:
    """Plan reference as stored in a record (relative to the project root)."""
    return f"{MILHOUSE_DIR}/{PLANS_DIR}/{record_id}-plan.md"


def plan_path(base_path: Path, record_id: str) -> Path:
    return milhouse_dir(base_path) / PLANS_DIR / f"{record_id}-plan.md"


def augmentation_path(base_path: Path, phase: str) -> Path:
    return milhouse_dir(base_path) / PROMPTS_DIR / f"{phase}.md"


def ensure_plans_dir(base_path: Path) -> Path:
    plans = milhouse_dir(base_path) / PLANS_DIR
    plans.mkdir(parents=True, exist_ok=True)
    return plans


def plan_exists(base_path: Path, record_id: str) -> bool:
    return plan_path(base_path, record_id).exists()


def delete_plan(base_path: Path, record_id: str) -> bool:
    """Remove a record's plan file. Returns True if a file was deleted.

    A missing plan is not an error.
    """
    path = plan_path(base_path, record_id)
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    logger.debug(f"[STORE] Deleted plan {path}")
    return True
