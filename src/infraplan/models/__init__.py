"""Data models for the infrastructure planner."""

from .entity import (
    Entity,
    EntityId,
    EntityKind,
    Interpolation,
    Lifecycle,
    Reference,
    coerce_attribute_value,
)
from .plan import Action, ExecutionBatch, ExecutionPlan, NodeAction, PlanNode

__all__ = [
    # Entities
    "Entity",
    "EntityId",
    "EntityKind",
    "Interpolation",
    "Lifecycle",
    "Reference",
    "coerce_attribute_value",
    # Plans
    "Action",
    "NodeAction",
    "PlanNode",
    "ExecutionBatch",
    "ExecutionPlan",
]
