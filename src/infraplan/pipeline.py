"""Planning pipeline - declarations in, execution plan out.

Runs the stages in order, each gating the next:

    Catalog.load -> ReferenceResolver.resolve -> DependencyGraph.build
        -> DependencyGraph.validate -> ExecutionPlanner.create_plan

The first failure ends the run; no partial plan is produced. A caller may
fix the declarations and run again from scratch.
"""

import uuid
from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from .config import PlannerConfig
from .core.catalog import Catalog
from .core.resolver import ReferenceResolver
from .dependency.graph import DependencyGraph
from .execution.planner import ActionFor, ExecutionPlanner
from .models.entity import Entity
from .models.plan import ExecutionPlan
from .observability.logger import LogContext, configure_from_config

logger = structlog.get_logger(__name__)

Declarations = Iterable[Entity | Mapping[str, Any]]


def build_graph(declarations: Declarations | Catalog) -> DependencyGraph:
    """
    Load declarations and build their validated dependency graph.

    Args:
        declarations: Entity declarations, or an already loaded Catalog

    Returns:
        Validated DependencyGraph

    Raises:
        PlannerError: Any catalog, reference, lifecycle or cycle error
    """
    catalog = declarations if isinstance(declarations, Catalog) else Catalog.load(declarations)
    edges = ReferenceResolver().resolve(catalog)
    graph = DependencyGraph.build(catalog, edges)
    graph.validate()
    return graph


def plan_catalog(
    declarations: Declarations | Catalog,
    action_for: ActionFor | None = None,
    config: PlannerConfig | None = None,
) -> ExecutionPlan:
    """
    Run a full planning pass.

    Args:
        declarations: Entity declarations, or an already loaded Catalog
        action_for: Action per entity (callable or mapping keyed by id/address);
            entities without one get the configured default action
        config: Planner configuration; when given, its logging section is
            applied with configure_from_config() before planning. When omitted,
            default policy applies and logging is left as the caller set it up

    Returns:
        Deterministic ExecutionPlan

    Raises:
        PlannerError: Any catalog, reference, lifecycle, cycle or action error
    """
    if config is None:
        config = PlannerConfig()
    else:
        configure_from_config(config.logging)

    with LogContext(planning_run=uuid.uuid4().hex[:8]):
        logger.info("Planning run started")

        graph = build_graph(declarations)
        plan = ExecutionPlanner(config.policy).create_plan(graph, action_for)

        logger.info(
            "Planning run complete",
            batches=len(plan.batches),
            total_operations=plan.total_operations,
        )

    return plan
