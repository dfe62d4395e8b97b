"""Execution Planner - turn a validated dependency graph into ordered batches.

Overview:
--------
The ExecutionPlanner takes a validated DependencyGraph plus an action per
entity (supplied by the state-diffing layer) and produces an ExecutionPlan:
an ordered list of batches of (entity id, action) nodes.

Key Concepts:
------------
- Node: one (entity, action) pair; a replaced entity expands into two nodes,
  ``create_new`` and ``destroy_old``
- Readying node: brings an entity to its target state
  (create, update, read, create_new)
- Releasing node: tears an instance down (destroy, destroy_old)
- Batch: nodes with no edges between them (can run in parallel)
- Plan: batches executed strictly in order

Ordering Rules (for every edge "A depends on B"):
------------------------------------------------
1. A's readying node runs after B's readying node.
2. A's releasing node runs before B's releasing node (dependents are torn
   down before what they depend on).
3. If B is destroyed, or replaced create-before-destroy, A's readying node
   runs before B's releasing node (A moves off the old B first).
4. Inside a replaced entity: create_new before destroy_old when
   create_before_destroy is set, destroy_old before create_new otherwise.

Entities whose action is ``noop`` produce no node. Ordering passes through
them: A depending on noop N depending on B is ordered as if A depended on B.

Example:
-------
  aws_ecs_cluster.main          (replace, create_before_destroy)
  aws_launch_configuration.ecs  (update, depends on cluster)

Resulting Plan:
  Batch 0: [aws_ecs_cluster.main (create_new)]
  Batch 1: [aws_launch_configuration.ecs (update)]
  Batch 2: [aws_ecs_cluster.main (destroy_old)]

Determinism:
-----------
Batches are Kahn levels; inside a batch nodes are sorted by entity total
order (kind, type, name) and then by action, so identical inputs always
produce identical plans.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Union

import structlog

from ..config import PlanningPolicy
from ..dependency.graph import DependencyGraph, find_cycle_paths, kahn_levels
from ..models.entity import Entity, EntityId
from ..models.plan import Action, ExecutionBatch, ExecutionPlan, NodeAction, PlanNode
from ..observability.logger import log_verbose
from ..utils.exceptions import CycleError, InvalidActionError

logger = structlog.get_logger(__name__)

ActionFor = Union[
    Callable[[Entity], Union[Action, str, None]],
    Mapping[Union[EntityId, str], Union[Action, str]],
]

# Node produced for each single-node action
_SINGLE_NODE = {
    Action.CREATE: NodeAction.CREATE,
    Action.UPDATE: NodeAction.UPDATE,
    Action.DESTROY: NodeAction.DESTROY,
    Action.READ: NodeAction.READ,
}


@dataclass
class EntityExpansion:
    """
    Plan nodes of one entity.

    Attributes:
        entity: The entity
        action: Resolved action
        ready: Node bringing the entity to its target state, if any
        release: Node tearing an instance down, if any
    """

    entity: Entity
    action: Action
    ready: PlanNode | None = None
    release: PlanNode | None = None

    @property
    def nodes(self) -> list[PlanNode]:
        return [node for node in (self.ready, self.release) if node is not None]

    @property
    def releases_before_dependents(self) -> bool:
        """True if dependents must be ready before this entity's release node."""
        return self.action == Action.DESTROY or (
            self.action == Action.REPLACE and self.entity.create_before_destroy
        )


class ExecutionPlanner:
    """
    Create deterministic execution plans from dependency graphs.

    Features:
    - Replacement expansion honoring create_before_destroy
    - Kahn level batching for parallel execution
    - Stable ordering within batches
    - Optional batch size limit
    """

    def __init__(self, policy: PlanningPolicy | None = None) -> None:
        """
        Initialize Execution Planner.

        Args:
            policy: Planning policy (defaults apply when omitted)
        """
        self.policy = policy or PlanningPolicy()

    def create_plan(
        self,
        dependency_graph: DependencyGraph,
        action_for: ActionFor | None = None,
    ) -> ExecutionPlan:
        """
        Create an execution plan from a dependency graph.

        Args:
            dependency_graph: Dependency graph (validated here if not already)
            action_for: Callable or mapping giving the action per entity;
                entities without one get the policy's default action

        Returns:
            ExecutionPlan with batches ready for execution

        Raises:
            LifecyclePolicyViolation: If lifecycle propagation is violated
            CycleError: If the graph, or the expanded plan, has a cycle
            InvalidActionError: If an action does not apply to an entity
        """
        logger.info("Creating execution plan", entities=len(dependency_graph.nodes))

        dependency_graph.validate()

        lookup = self._action_lookup(action_for)
        expansions = {
            node_id: self._expand(node.entity, lookup(node.entity))
            for node_id, node in sorted(dependency_graph.nodes.items())
        }

        node_dependencies = self._wire(dependency_graph, expansions)

        levels, leftover = kahn_levels(
            node_dependencies, node_dependencies, sort_key=lambda node: node.sort_key
        )
        if leftover:
            self._raise_cycle(node_dependencies)

        execution_batches: list[ExecutionBatch] = []
        for depth, level in enumerate(levels):
            for chunk in self._split_level(level):
                execution_batches.append(
                    ExecutionBatch(batch_id=len(execution_batches), nodes=chunk, depth=depth)
                )

        plan = self._build_plan(execution_batches, expansions)

        logger.info(
            "Execution plan created",
            total_operations=plan.total_operations,
            batches=len(plan.batches),
            max_parallelism=plan.max_parallelism,
        )

        return plan

    def _action_lookup(self, action_for: ActionFor | None) -> Callable[[Entity], Any]:
        if action_for is None:
            return lambda entity: None

        if isinstance(action_for, Mapping):
            actions = {
                key.address if isinstance(key, EntityId) else key: value
                for key, value in action_for.items()
            }
            return lambda entity: actions.get(entity.address)

        return action_for

    def resolve_action(self, entity: Entity, requested: Action | str | None) -> Action:
        """
        Resolve the requested action for an entity.

        Data sources always resolve to ``read`` (or ``noop``); they cannot be
        destroyed or replaced. Managed entities cannot be read.

        Args:
            entity: Entity the action is for
            requested: Action from the caller, None for the policy default

        Returns:
            The action to plan

        Raises:
            InvalidActionError: If the action is unknown or not applicable
        """
        if requested is None:
            action = self.policy.default_action
        else:
            try:
                action = Action(requested)
            except ValueError as e:
                raise InvalidActionError(
                    entity.address, str(requested), "unknown action"
                ) from e

        if entity.is_data:
            if action in (Action.DESTROY, Action.REPLACE):
                raise InvalidActionError(
                    entity.address, action.value, "data sources are read-only"
                )
            if action == Action.NOOP or not self.policy.include_reads:
                return Action.NOOP
            return Action.READ

        if action == Action.READ:
            raise InvalidActionError(
                entity.address, action.value, "only data sources can be read"
            )

        return action

    def _expand(self, entity: Entity, requested: Action | str | None) -> EntityExpansion:
        action = self.resolve_action(entity, requested)
        expansion = EntityExpansion(entity=entity, action=action)

        if action == Action.REPLACE:
            expansion.ready = PlanNode(entity.id, NodeAction.CREATE_NEW)
            expansion.release = PlanNode(entity.id, NodeAction.DESTROY_OLD)
        elif action == Action.DESTROY:
            expansion.release = PlanNode(entity.id, NodeAction.DESTROY)
        elif action in _SINGLE_NODE:
            expansion.ready = PlanNode(entity.id, _SINGLE_NODE[action])

        if action != Action.NOOP:
            log_verbose(logger, "Expanded entity", entity=entity.address, action=action.value)

        return expansion

    def _wire(
        self,
        graph: DependencyGraph,
        expansions: dict[EntityId, EntityExpansion],
    ) -> dict[PlanNode, set[PlanNode]]:
        """
        Build the node-level dependency map.

        Returns:
            node -> nodes that must complete before it
        """
        dependencies: dict[PlanNode, set[PlanNode]] = {}
        for expansion in expansions.values():
            for node in expansion.nodes:
                dependencies[node] = set()

        effective = self._effective_dependencies(graph, expansions)

        for entity_id, expansion in expansions.items():
            # Replacement ordering inside the entity
            if expansion.ready and expansion.release:
                if expansion.entity.create_before_destroy:
                    dependencies[expansion.release].add(expansion.ready)
                else:
                    dependencies[expansion.ready].add(expansion.release)

            for dependency_id in effective[entity_id]:
                dependency = expansions[dependency_id]

                if expansion.ready and dependency.ready:
                    dependencies[expansion.ready].add(dependency.ready)

                if dependency.release:
                    if expansion.release:
                        dependencies[dependency.release].add(expansion.release)
                    if expansion.ready and dependency.releases_before_dependents:
                        dependencies[dependency.release].add(expansion.ready)

        logger.debug(
            "Wired plan nodes",
            nodes=len(dependencies),
            edges=sum(len(deps) for deps in dependencies.values()),
        )

        return dependencies

    def _effective_dependencies(
        self,
        graph: DependencyGraph,
        expansions: dict[EntityId, EntityExpansion],
    ) -> dict[EntityId, set[EntityId]]:
        """
        Dependencies per entity, looking through entities that have no plan node.

        Entities are visited in topological order, so the targets of every
        dependency are known before its dependents need them.
        """
        effective: dict[EntityId, set[EntityId]] = {}

        for node in graph.topological_sort():
            targets: set[EntityId] = set()
            for dependency_id in node.dependencies:
                if expansions[dependency_id].nodes:
                    targets.add(dependency_id)
                else:
                    targets |= effective[dependency_id]
            effective[node.node_id] = targets

        return effective

    def _split_level(self, level: list[PlanNode]) -> list[list[PlanNode]]:
        max_size = self.policy.max_batch_size
        if not max_size or len(level) <= max_size:
            return [level]

        chunks = [level[i : i + max_size] for i in range(0, len(level), max_size)]

        logger.debug(
            "Split large batch",
            original_size=len(level),
            sub_batches=len(chunks),
            max_size=max_size,
        )

        return chunks

    def _build_plan(
        self,
        batches: list[ExecutionBatch],
        expansions: dict[EntityId, EntityExpansion],
    ) -> ExecutionPlan:
        total_ops = sum(len(batch) for batch in batches)
        counts = {action.value: 0 for action in NodeAction}
        for batch in batches:
            for node in batch.nodes:
                counts[node.action.value] += 1

        return ExecutionPlan(
            batches=batches,
            total_operations=total_ops,
            max_parallelism=max((len(batch) for batch in batches), default=0),
            metadata={
                "batch_count": len(batches),
                "entities": len(expansions),
                "replacements": sum(
                    1 for e in expansions.values() if e.action == Action.REPLACE
                ),
                "unchanged": sum(1 for e in expansions.values() if not e.nodes),
                "actions": counts,
            },
        )

    def _raise_cycle(self, node_dependencies: dict[PlanNode, set[PlanNode]]) -> None:
        cycles = find_cycle_paths(
            sorted(node_dependencies, key=lambda node: node.sort_key),
            lambda node: sorted(node_dependencies[node], key=lambda dep: dep.sort_key),
        )
        cycle = [str(node) for node in cycles[0]]
        chain = " -> ".join(cycle)

        logger.error("Plan ordering cycle detected", cycle=chain)

        raise CycleError(
            f"Plan ordering cycle detected: {chain}",
            cycle=cycle,
            cycles=[[str(node) for node in c] for c in cycles],
        )

    def get_plan_summary(self, plan: ExecutionPlan) -> dict[str, Any]:
        """
        Get a summary of the execution plan.

        Args:
            plan: Execution plan

        Returns:
            Dictionary with plan summary
        """
        return {
            "total_operations": plan.total_operations,
            "batch_count": len(plan.batches),
            "max_parallelism": plan.max_parallelism,
            "operation_breakdown": plan.metadata,
            "batches": [
                {
                    "batch_id": batch.batch_id,
                    "operation_count": len(batch.nodes),
                    "depth": batch.depth,
                    "nodes": [str(node) for node in batch.nodes],
                }
                for batch in plan.batches
            ],
        }
