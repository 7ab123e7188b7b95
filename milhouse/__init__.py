"""Milhouse: autonomous planner/builder/reviewer loop driven by the Claude CLI."""

__version__ = "0.4.0"
