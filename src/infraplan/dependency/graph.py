"""Dependency Graph - DAG with cycle detection for entity ordering.

Holds one node per catalog entity and one edge per resolved reference.
Edge direction follows "depends on": ``add_dependency(dependent, dependency)``
means the dependency must reach its target state before the dependent is
created or updated, and the dependent must be destroyed before the
dependency is destroyed.

Validation order:
1. Lifecycle propagation (LifecyclePolicyViolation) - checked first because
   a cycle caused by create_before_destroy ordering is better explained by
   the policy than by the cycle it produces.
2. Reference cycles (CycleError) with the full path, e.g.
   ``aws_security_group.a -> aws_security_group.b -> aws_security_group.a``.
"""

from collections import deque
from collections.abc import Callable, Hashable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import TypeVar

import structlog

from ..core.catalog import Catalog
from ..core.resolver import DependencyEdges
from ..models.entity import Entity, EntityId
from ..utils.exceptions import CycleError, SelfDependencyError
from .lifecycle import check_propagation

logger = structlog.get_logger(__name__)

K = TypeVar("K", bound=Hashable)


def find_cycle_paths(
    keys: Iterable[K],
    dependencies_of: Callable[[K], Iterable[K]],
) -> list[list[K]]:
    """
    Detect cycles using Depth-First Search with current-path tracking.

    Algorithm:
    - DFS follows dependencies from every unvisited key, in the given order
    - ``on_path`` maps keys on the current traversal path to their position
    - Reaching a key already on the path is a back edge: the cycle is the
      path slice from that key to the top, closed by the key itself

    Example:
        Path: A -> B -> C, and C depends on A
        1. DFS visits A (path: [A])
        2. DFS visits B (path: [A, B])
        3. DFS visits C (path: [A, B, C])
        4. C depends on A (on path!) -> cycle [A, B, C, A]

    Iterative, so deep chains do not hit the recursion limit.

    Args:
        keys: Keys to start from, in deterministic order
        dependencies_of: Returns the dependencies of a key in deterministic order

    Returns:
        One cycle per back edge, each with its first key repeated at the end
    """
    cycles: list[list[K]] = []
    done: set[K] = set()

    for start in keys:
        if start in done:
            continue

        path: list[K] = [start]
        on_path: dict[K, int] = {start: 0}
        stack = [iter(dependencies_of(start))]

        while stack:
            current = path[-1]
            try:
                dependency = next(stack[-1])
            except StopIteration:
                # Backtrack: all dependencies of current explored
                stack.pop()
                path.pop()
                del on_path[current]
                done.add(current)
                continue

            if dependency in on_path:
                cycles.append(path[on_path[dependency] :] + [dependency])
            elif dependency not in done:
                on_path[dependency] = len(path)
                path.append(dependency)
                stack.append(iter(dependencies_of(dependency)))

    return cycles


def kahn_levels(
    keys: Iterable[K],
    dependencies: Mapping[K, Iterable[K]],
    sort_key: Callable[[K], object],
) -> tuple[list[list[K]], set[K]]:
    """
    Group keys into dependency levels using Kahn's algorithm.

    ALGORITHM (Kahn, 1962), level by level:
    1. Calculate in-degree (number of dependencies) for each key
    2. The current level is every key with in-degree 0
    3. Removing a level decrements the in-degree of its dependents;
       keys reaching 0 form the next level
    4. Keys never reaching 0 sit on or behind a cycle

    Each level is sorted with ``sort_key``, so equal inputs always produce
    equal levels. No edge connects two keys of the same level.

    TIME COMPLEXITY: O(V log V + E)

    Args:
        keys: All keys
        dependencies: key -> keys it depends on (unknown keys are ignored)
        sort_key: Total order used inside a level

    Returns:
        (levels, leftover keys that could not be ordered)
    """
    key_set = set(keys)
    in_degree: dict[K, int] = {key: 0 for key in key_set}
    dependents: dict[K, list[K]] = {key: [] for key in key_set}

    for key in key_set:
        for dependency in set(dependencies.get(key, ())):
            if dependency in key_set:
                in_degree[key] += 1
                dependents[dependency].append(key)

    levels: list[list[K]] = []
    level = sorted((key for key, degree in in_degree.items() if degree == 0), key=sort_key)

    while level:
        levels.append(level)
        next_level: list[K] = []
        for key in level:
            for dependent in dependents[key]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    next_level.append(dependent)
        level = sorted(next_level, key=sort_key)

    ordered = {key for level in levels for key in level}
    return levels, key_set - ordered


@dataclass
class DependencyNode:
    """
    Node in the dependency graph representing an entity.

    Attributes:
        entity: The entity this node represents
        dependencies: Ids this node depends on (must be ready before this)
        dependents: Ids that depend on this node (must wait for this)
        depth: Depth in dependency tree (0 = no dependencies)
    """

    entity: Entity
    dependencies: set[EntityId] = field(default_factory=set)
    dependents: set[EntityId] = field(default_factory=set)
    depth: int = 0

    @property
    def node_id(self) -> EntityId:
        """Unique identifier for this node."""
        return self.entity.id

    @property
    def address(self) -> str:
        return self.entity.address

    def __hash__(self) -> int:
        """Hash based on node ID."""
        return hash(self.node_id)


class DependencyGraph:
    """
    Directed graph over catalog entities.

    Features:
    - Edges from resolved references, with the attributes that produced them
    - Lifecycle propagation check
    - Cycle detection with readable paths
    - Deterministic topological sorting and node depths
    - Graphviz export
    """

    def __init__(self) -> None:
        """Initialize empty dependency graph."""
        self.nodes: dict[EntityId, DependencyNode] = {}
        self.origins: dict[tuple[EntityId, EntityId], list[str]] = {}
        self._validated = False

    @classmethod
    def build(cls, catalog: Catalog, edges: DependencyEdges) -> "DependencyGraph":
        """
        Build a graph from a catalog and its resolved edges.

        Args:
            catalog: Catalog snapshot
            edges: Edges from the ReferenceResolver

        Returns:
            The built, not yet validated, graph
        """
        logger.info("Building dependency graph", entities=len(catalog))

        graph = cls()
        for entity in catalog:
            graph.add_entity(entity)

        for dependent, dependency in edges:
            origins = edges.origins_of(dependent, dependency)
            graph.add_dependency(dependent, dependency)
            graph.origins[(dependent, dependency)] = origins

        graph._calculate_depths()

        logger.info(
            "Dependency graph built",
            nodes=len(graph.nodes),
            edges=graph.edge_count,
        )

        return graph

    def add_entity(self, entity: Entity) -> DependencyNode:
        """
        Add an entity to the graph.

        Args:
            entity: Entity to add

        Returns:
            The created DependencyNode, or the existing one for a known id
        """
        node_id = entity.id

        if node_id in self.nodes:
            logger.warning("Entity already in graph", node_id=entity.address)
            return self.nodes[node_id]

        node = DependencyNode(entity=entity)
        self.nodes[node_id] = node
        self._validated = False

        logger.debug("Added entity to graph", node_id=entity.address)

        return node

    def add_dependency(
        self,
        dependent_id: EntityId,
        dependency_id: EntityId,
        origin: str | None = None,
    ) -> None:
        """
        Add a dependency edge between two nodes.

        Cycles are not rejected here; validate() reports them with full paths.

        Args:
            dependent_id: Node that depends on another (executes AFTER)
            dependency_id: Node that is depended upon (executes BEFORE)
            origin: Attribute path that produced the edge

        Raises:
            ValueError: If either node is not in the graph
            SelfDependencyError: If both ids are the same
        """
        if dependent_id not in self.nodes:
            raise ValueError(f"Dependent node not found: {dependent_id}")

        if dependency_id not in self.nodes:
            raise ValueError(f"Dependency node not found: {dependency_id}")

        if dependent_id == dependency_id:
            raise SelfDependencyError(
                dependent_id.address, dependency_id.address, origin or "<graph>"
            )

        self.nodes[dependent_id].dependencies.add(dependency_id)
        self.nodes[dependency_id].dependents.add(dependent_id)

        if origin:
            origins = self.origins.setdefault((dependent_id, dependency_id), [])
            if origin not in origins:
                origins.append(origin)

        logger.debug(
            "Added dependency edge",
            dependent=dependent_id.address,
            dependency=dependency_id.address,
        )

        self._validated = False

    @property
    def edge_count(self) -> int:
        return sum(len(node.dependencies) for node in self.nodes.values())

    @property
    def edges(self) -> DependencyEdges:
        """Current edges as a DependencyEdges set."""
        edges = DependencyEdges()
        for node_id in sorted(self.nodes):
            edges.dependencies.setdefault(node_id, set())
            for dependency_id in self.nodes[node_id].dependencies:
                edges.add(node_id, dependency_id)
                for origin in self.origins.get((node_id, dependency_id), []):
                    edges.add(node_id, dependency_id, origin)
        return edges

    def dependencies_of(self, node_id: EntityId) -> list[EntityId]:
        """Direct dependencies of a node, in total order."""
        return sorted(self.nodes[node_id].dependencies)

    def dependents_of(self, node_id: EntityId) -> list[EntityId]:
        """Direct dependents of a node, in total order."""
        return sorted(self.nodes[node_id].dependents)

    def transitive_dependencies(self, node_id: EntityId) -> set[EntityId]:
        """Every node reachable from ``node_id`` by following dependencies."""
        seen: set[EntityId] = set()
        queue = deque(self.nodes[node_id].dependencies)
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(self.nodes[current].dependencies - seen)
        return seen

    def find_cycles(self) -> list[list[EntityId]]:
        """
        Find cycles among reference edges.

        Returns:
            One cycle per back edge found by a DFS in total id order, each
            with its first id repeated at the end (A -> B -> A)
        """
        return find_cycle_paths(sorted(self.nodes), self.dependencies_of)

    def describe_cycle(self, cycle: list[EntityId]) -> str:
        """
        Render a cycle as a readable chain with the attributes causing it.

        Args:
            cycle: Cycle path, first id repeated at the end

        Returns:
            Multi-line description
        """
        lines = [" -> ".join(node_id.address for node_id in cycle)]
        for dependent, dependency in zip(cycle, cycle[1:]):
            origins = self.origins.get((dependent, dependency), [])
            via = f" via {', '.join(origins)}" if origins else ""
            lines.append(f"  {dependent.address} depends on {dependency.address}{via}")
        return "\n".join(lines)

    def _calculate_depths(self) -> None:
        """
        Calculate dependency depth for each node.

        Depth = maximum distance from a root node (node with no dependencies).
        Nodes on or behind a cycle keep depth 0.
        """
        for node in self.nodes.values():
            node.depth = 0

        levels, _ = self._levels()
        for depth, level in enumerate(levels):
            for node_id in level:
                self.nodes[node_id].depth = depth

        logger.debug(
            "Calculated node depths",
            max_depth=max(node.depth for node in self.nodes.values()) if self.nodes else 0,
        )

    def _levels(self) -> tuple[list[list[EntityId]], set[EntityId]]:
        return kahn_levels(
            self.nodes,
            {node_id: node.dependencies for node_id, node in self.nodes.items()},
            sort_key=lambda node_id: node_id,
        )

    def topological_sort(self) -> list[DependencyNode]:
        """
        Order nodes so every dependency precedes its dependents.

        Returns:
            List of nodes in execution order (ties broken by total id order)

        Raises:
            CycleError: If a cycle is detected
        """
        levels, leftover = self._levels()
        if leftover:
            self._raise_cycle()

        sorted_nodes = [self.nodes[node_id] for level in levels for node_id in level]
        logger.debug("Topological sort complete", node_count=len(sorted_nodes))
        return sorted_nodes

    def validate(self) -> bool:
        """
        Validate the dependency graph.

        Checks:
        - All dependency references exist
        - create_before_destroy propagates to managed dependencies
        - No cycles

        Returns:
            True if graph is valid

        Raises:
            LifecyclePolicyViolation: If lifecycle propagation is violated
            CycleError: If cycles are detected
        """
        if self._validated:
            return True

        logger.info("Validating dependency graph")

        for node_id, node in self.nodes.items():
            for dep_id in node.dependencies | node.dependents:
                if dep_id not in self.nodes:
                    raise ValueError(f"Invalid edge reference: {dep_id} in node {node_id}")

        catalog = Catalog(node.entity for node in self.nodes.values())
        check_propagation(catalog, self.edges)

        if self.find_cycles():
            self._raise_cycle()

        self._validated = True
        logger.info("Dependency graph validation successful")

        return True

    def _raise_cycle(self) -> None:
        cycles = self.find_cycles()
        cycle = cycles[0]
        description = self.describe_cycle(cycle)

        logger.error("Dependency cycle detected", cycle=description.splitlines()[0])

        raise CycleError(
            f"Dependency cycle detected: {description}",
            cycle=[node_id.address for node_id in cycle],
            cycles=[[node_id.address for node_id in c] for c in cycles],
        )

    def to_dot(self) -> str:
        """
        Generate DOT format representation of the dependency graph.

        Returns:
            String containing the Graphviz DOT definition
        """
        lines = ["digraph DependencyGraph {"]
        lines.append("    rankdir=LR;")
        lines.append("    node [shape=box style=filled];")

        for node_id in sorted(self.nodes):
            entity = self.nodes[node_id].entity

            if entity.is_data:
                color = "#fff3cd"  # Yellow
                policy = "data"
            elif entity.create_before_destroy:
                color = "#d4edda"  # Green
                policy = "create_before_destroy"
            else:
                color = "#cce5ff"  # Blue
                policy = "destroy_before_create"

            label = f"{entity.type}\\n{entity.name}\\n({policy})"
            lines.append(f'    "{node_id.address}" [label="{label}" fillcolor="{color}"];')

            for dep_id in self.dependencies_of(node_id):
                lines.append(f'    "{dep_id.address}" -> "{node_id.address}";')

        lines.append("}")
        return "\n".join(lines)
