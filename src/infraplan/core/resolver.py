"""Reference Resolver - turn attribute references into dependency edges.

Purpose:
-------
Every Reference found in an entity's attributes (at any nesting depth,
including Interpolation parts) and every explicit ``depends_on`` entry means
"the owning entity cannot be created or updated until the referenced entity
is in its target state". The resolver emits one edge per
(dependent, dependency) pair.

Detection Mechanism:
-------------------
1. Top-level attributes: ``{"vpc_id": Reference(aws_vpc.main.id)}``
2. Nested blocks: ``{"ingress": [{"security_groups": [Reference(...)]}]}``
3. Interpolations: ``{"user_data": Interpolation(["ECS_CLUSTER=", Reference(...)])}``
4. Explicit dependencies: ``depends_on = [aws_iam_role_policy.ecs]``

Important Design Notes:
----------------------
- The graph is simple: several references from A to B collapse into one
  edge. The attribute paths that produced it are kept in ``origins`` for
  diagnostics only.
- Nested references are treated exactly like top-level references; no
  extra collapsing applies at any depth.
- A reference to an undeclared entity fails immediately
  (UnknownReferenceError); a reference to the owning entity fails with
  SelfDependencyError.
- Scanning is read-only over the catalog.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

import structlog

from ..models.entity import Entity, EntityId, Interpolation, Reference
from ..utils.exceptions import SelfDependencyError, UnknownReferenceError
from .catalog import Catalog

logger = structlog.get_logger(__name__)


@dataclass
class DependencyEdges:
    """
    Set of (dependent, dependency) edges produced by the resolver.

    Attributes:
        dependencies: dependent -> set of entities it depends on
        origins: (dependent, dependency) -> attribute paths that produced the edge
    """

    dependencies: dict[EntityId, set[EntityId]] = field(default_factory=dict)
    origins: dict[tuple[EntityId, EntityId], list[str]] = field(default_factory=dict)

    def add(self, dependent: EntityId, dependency: EntityId, origin: str | None = None) -> bool:
        """
        Add an edge.

        Args:
            dependent: Entity that executes AFTER
            dependency: Entity that executes BEFORE
            origin: Attribute path that produced the edge

        Returns:
            True if the edge is new, False if it collapsed into an existing one
        """
        targets = self.dependencies.setdefault(dependent, set())
        is_new = dependency not in targets
        targets.add(dependency)

        origins = self.origins.setdefault((dependent, dependency), [])
        if origin and origin not in origins:
            origins.append(origin)

        return is_new

    def targets_of(self, dependent: EntityId) -> list[EntityId]:
        """Direct dependencies of an entity, in total order."""
        return sorted(self.dependencies.get(dependent, ()))

    def origins_of(self, dependent: EntityId, dependency: EntityId) -> list[str]:
        return list(self.origins.get((dependent, dependency), []))

    def __iter__(self) -> Iterator[tuple[EntityId, EntityId]]:
        for dependent in sorted(self.dependencies):
            for dependency in sorted(self.dependencies[dependent]):
                yield (dependent, dependency)

    def __contains__(self, edge: object) -> bool:
        if not isinstance(edge, tuple) or len(edge) != 2:
            return False
        dependent, dependency = edge
        return dependency in self.dependencies.get(dependent, ())

    def __len__(self) -> int:
        return sum(len(targets) for targets in self.dependencies.values())


def iter_references(value: Any, path: str) -> Iterator[tuple[str, Reference]]:
    """
    Walk an attribute value and yield every reference in it.

    Args:
        value: Attribute value (literal, block, list, Reference or Interpolation)
        path: Attribute path of ``value``

    Yields:
        (attribute path, Reference) pairs in declaration order
    """
    if isinstance(value, Reference):
        yield path, value
    elif isinstance(value, Interpolation):
        for reference in value.references:
            yield path, reference
    elif isinstance(value, dict):
        for key, item in value.items():
            yield from iter_references(item, f"{path}.{key}")
    elif isinstance(value, list):
        for index, item in enumerate(value):
            yield from iter_references(item, f"{path}[{index}]")


class ReferenceResolver:
    """
    Resolve references between catalog entities into dependency edges.

    Stateless; one instance can resolve any number of catalogs.
    """

    def resolve(self, catalog: Catalog) -> DependencyEdges:
        """
        Scan every entity and emit dependency edges.

        Args:
            catalog: Catalog to scan

        Returns:
            DependencyEdges with one edge per (dependent, dependency) pair

        Raises:
            UnknownReferenceError: If a reference points at an undeclared entity
            SelfDependencyError: If an entity references itself
        """
        logger.info("Resolving references", entities=len(catalog))

        edges = DependencyEdges()
        collapsed = 0

        for entity in catalog:
            edges.dependencies.setdefault(entity.id, set())
            for attribute, reference in self.scan(entity):
                target = reference.target

                if target == entity.id:
                    raise SelfDependencyError(entity.address, reference.expression, attribute)

                if target not in catalog:
                    raise UnknownReferenceError(entity.address, reference.expression, attribute)

                if edges.add(entity.id, target, attribute):
                    logger.debug(
                        "Added reference edge",
                        dependent=entity.address,
                        dependency=target.address,
                        attribute=attribute,
                    )
                else:
                    collapsed += 1

        if collapsed:
            logger.debug("Collapsed repeated references", count=collapsed)

        logger.info("References resolved", edges=len(edges))

        return edges

    def scan(self, entity: Entity) -> Iterator[tuple[str, Reference]]:
        """
        Yield every reference declared by an entity.

        Args:
            entity: Entity to scan

        Yields:
            (attribute path, Reference) pairs, attributes first then depends_on
        """
        for name, value in entity.attributes.items():
            yield from iter_references(value, name)

        for index, reference in enumerate(entity.depends_on):
            yield f"depends_on[{index}]", reference
