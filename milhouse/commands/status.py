"""
mil status - Show requirements grouped by status.
"""

from pathlib import Path

from milhouse.lib.constants import EXIT_CONFIG, EXIT_ERROR
from milhouse.lib.stats import load_stats, summarize_stats
from milhouse.prd.models import Status
from milhouse.prd.paths import milhouse_exists, store_path
from milhouse.prd.store import StoreError, load_store

_GROUPS = [
    (Status.ACTIVE, "Active"),
    (Status.PENDING, "Pending review"),
    (Status.OPEN, "Open"),
    (Status.COMPLETE, "Complete"),
]


def cmd_status(args, base_path: Path) -> int:
    if not milhouse_exists(base_path):
        print("ERROR: Not a milhouse project. Run 'mil init' first.")
        return EXIT_CONFIG

    try:
        store = load_store(store_path(base_path))
    except StoreError as e:
        print(f"ERROR: {e}")
        return EXIT_ERROR

    counts = store.counts()
    print(f"Requirements: {len(store.records)}")
    print("=" * 60)

    for status, label in _GROUPS:
        records = sorted(
            (r for r in store.records if r.status is status),
            key=lambda r: r.priority,
        )
        print()
        print(f"{label} ({counts[status]})")
        for record in records:
            plan = f"  [{record.active_plan}]" if record.active_plan else ""
            print(f"  {record.priority:>3}  {record.id}  {record.description}{plan}")
            if args.verbose:
                for criterion in record.acceptance_criteria:
                    print(f"         - {criterion}")
                if record.notes.strip():
                    for line in record.notes.strip().splitlines():
                        print(f"         > {line}")

    if args.verbose:
        summary = summarize_stats(load_stats(base_path))
        if summary:
            print()
            print("Token usage by phase")
            for phase, entry in summary.items():
                print(
                    f"  {phase:<9} {entry.calls:>3} runs  {entry.total_tokens:>9,} tokens  "
                    f"{entry.elapsed_seconds:>7.0f}s  {entry.terminated} stopped early"
                )

    return 0
