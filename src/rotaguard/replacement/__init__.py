"""Supervisor replacement planning."""

from rotaguard.replacement.planner import ReplacementConfig, ReplacementPlanner

__all__ = [
    "ReplacementConfig",
    "ReplacementPlanner",
]
