"""Infraplan - dependency graph builder and lifecycle-aware execution planner."""

from .config import PlannerConfig, PlanningPolicy
from .core.catalog import Catalog
from .core.resolver import DependencyEdges, ReferenceResolver
from .dependency.graph import DependencyGraph
from .execution.planner import ExecutionPlanner
from .models.entity import Entity, EntityId, EntityKind, Interpolation, Lifecycle, Reference
from .models.plan import Action, ExecutionBatch, ExecutionPlan, NodeAction, PlanNode
from .pipeline import build_graph, plan_catalog

__version__ = "0.1.0"
__all__ = [
    "Action",
    "Catalog",
    "DependencyEdges",
    "DependencyGraph",
    "Entity",
    "EntityId",
    "EntityKind",
    "ExecutionBatch",
    "ExecutionPlan",
    "ExecutionPlanner",
    "Interpolation",
    "Lifecycle",
    "NodeAction",
    "PlanNode",
    "PlannerConfig",
    "PlanningPolicy",
    "Reference",
    "ReferenceResolver",
    "build_graph",
    "plan_catalog",
]
