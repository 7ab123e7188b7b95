"""
mil run - Run the Planner -> Builder -> Reviewer loop.
"""

import logging
from pathlib import Path

from milhouse.agents.claude import ClaudeAgent
from milhouse.lib.config import ConfigError, apply_overrides, load_config
from milhouse.lib.constants import (
    EXIT_CONFIG,
    EXIT_ERROR,
    EXIT_OK,
    PHASE_BUILDER,
    PHASE_PLANNER,
    PHASE_REVIEWER,
)
from milhouse.lib.display import ConsoleReporter
from milhouse.phases.base import PhaseContext
from milhouse.prd.paths import milhouse_exists
from milhouse.prd.store import StoreError
from milhouse.workflow import engine

logger = logging.getLogger(__name__)


def build_context(args, base_path: Path) -> PhaseContext:
    """Load config, apply command-line overrides and wire up the agent.

    Raises:
        ConfigError: If config.yaml or an override is invalid
    """
    config = load_config(base_path)
    config = apply_overrides(
        config,
        models={
            PHASE_PLANNER: args.planner_model,
            PHASE_BUILDER: args.builder_model,
            PHASE_REVIEWER: args.reviewer_model,
        },
        max_tokens={
            PHASE_PLANNER: args.planner_max_tokens,
            PHASE_BUILDER: args.builder_max_tokens,
            PHASE_REVIEWER: args.reviewer_max_tokens,
        },
        max_idle_iterations=args.max_idle,
    )
    return PhaseContext(
        base_path=base_path,
        config=config,
        agent=ClaudeAgent(config.binary),
        reporter=ConsoleReporter(),
    )


def cmd_run(args, base_path: Path) -> int:
    if not milhouse_exists(base_path):
        print("ERROR: Not a milhouse project. Run 'mil init' first.")
        return EXIT_CONFIG
    if args.iterations < 1:
        print("ERROR: Iteration count must be at least 1")
        return EXIT_CONFIG

    try:
        ctx = build_context(args, base_path)
    except ConfigError as e:
        print(f"ERROR: {e}")
        return EXIT_CONFIG

    reporter = ctx.reporter
    reporter.header(f"milhouse run: up to {args.iterations} iteration(s)")

    try:
        summary = engine.run(ctx, args.iterations, use_flow=not args.no_flow)
    except StoreError as e:
        reporter.error(str(e))
        return EXIT_ERROR
    except KeyboardInterrupt:
        reporter.warning("Interrupted")
        return EXIT_ERROR

    reporter.header("Run complete")
    reporter.info(f"Iterations: {summary.completed}  ({summary.stop_reason})")
    reporter.info(f"Tokens used: {summary.total_tokens:,}")
    if summary.error_count:
        reporter.warning(f"{summary.error_count} phase error(s); see log output above")
        return EXIT_ERROR
    return EXIT_OK
