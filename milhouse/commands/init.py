"""
mil init - Scaffold .milhouse/ in the current project.
"""

import json
from pathlib import Path

from milhouse.lib.constants import (
    AUGMENTABLE_PHASES,
    EVIDENCE_DIR,
    PLANS_DIR,
    PRD_FILE,
    PROGRESS_FILE,
    PROMPT_FILE,
    PROMPTS_DIR,
)
from milhouse.prd.paths import milhouse_dir, milhouse_exists

PROGRESS_TEMPLATE = "# Progress Log\n\n"

PROMPT_TEMPLATE = """# Codebase Patterns

<!-- Agents record conventions they discover here: build commands, test
commands, layout, gotchas. Edit freely. -->
"""


def scaffold(base_path: Path) -> list[Path]:
    """Create the .milhouse/ layout. Existing files are left alone.

    Returns the paths that were created.
    """
    root = milhouse_dir(base_path)
    created: list[Path] = []

    for sub in (root, root / EVIDENCE_DIR, root / PLANS_DIR, root / PROMPTS_DIR):
        if not sub.exists():
            sub.mkdir(parents=True)
            created.append(sub)

    files = {
        root / PRD_FILE: json.dumps({"prds": []}, indent=2) + "\n",
        root / PROGRESS_FILE: PROGRESS_TEMPLATE,
        root / PROMPT_FILE: PROMPT_TEMPLATE,
    }
    for phase in AUGMENTABLE_PHASES:
        files[root / PROMPTS_DIR / f"{phase}.md"] = ""

    for path, content in files.items():
        if not path.exists():
            path.write_text(content)
            created.append(path)

    return created


def cmd_init(args, base_path: Path) -> int:
    """Initialize a milhouse project."""
    if milhouse_exists(base_path) and not args.force:
        print(f"ERROR: {milhouse_dir(base_path)} already exists (use --force to fill in missing files)")
        return 1

    try:
        created = scaffold(base_path)
    except OSError as e:
        print(f"ERROR: Failed to create {milhouse_dir(base_path)}: {e}")
        return 1

    print(f"Initialized milhouse in {milhouse_dir(base_path)}")
    for path in created:
        print(f"  created {path.relative_to(base_path)}")
    print()
    print("Next: add requirements to .milhouse/prd.json (or use 'mil chat'), then 'mil run 5'")
    return 0
