"""Workflow engine for milhouse runs.

The iteration loop lives in milhouse.runner.loop and is plain Python.
This module wraps it in a Prefect @flow for observability; `mil run
--no-flow` and the tests call the loop directly.
"""

import logging
from typing import Optional

from prefect import flow

from milhouse.phases.base import PhaseContext
from milhouse.runner.loop import RunSummary, run_iterations

logger = logging.getLogger(__name__)


@flow(name="milhouse_run", validate_parameters=False)
def milhouse_run(ctx: PhaseContext, count: int, max_idle: Optional[int] = None) -> RunSummary:
    """Run up to `count` Planner -> Builder -> Reviewer iterations as a Prefect flow."""
    logger.info(f"[FLOW] Starting milhouse_run in {ctx.base_path} ({count} iterations)")
    return run_iterations(ctx, count, max_idle)


def run(ctx: PhaseContext, count: int, max_idle: Optional[int] = None, use_flow: bool = True) -> RunSummary:
    """Run the loop, inside the Prefect flow unless use_flow is False."""
    if use_flow:
        return milhouse_run(ctx, count, max_idle)
    return run_iterations(ctx, count, max_idle)
