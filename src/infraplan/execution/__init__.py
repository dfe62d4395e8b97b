"""Execution planning: ordered, parallelizable batches of plan nodes."""

from .planner import ActionFor, EntityExpansion, ExecutionPlanner

__all__ = [
    "ActionFor",
    "EntityExpansion",
    "ExecutionPlanner",
]
