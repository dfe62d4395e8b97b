"""Lifecycle Policy Store and create_before_destroy propagation.

Rule:
----
If entity A has ``create_before_destroy`` enabled, every managed entity A
depends on must have it enabled too. Otherwise replacing both would need
B destroyed before the new B exists, while the new A must exist before the
old A goes away and the old A must go away before B is destroyed: a cycle.

The check runs on direct edges and continues through data sources, which
are read-only and never destroyed:

    aws_iam_instance_profile.ecs (cbd) -> aws_iam_role.ecs (cbd)          OK
    aws_iam_role.ecs (cbd) -> data.aws_iam_policy_document.assume         OK
    aws_launch_configuration.ecs (cbd) -> data.x.y -> aws_ecs_cluster.main
        requires aws_ecs_cluster.main to be cbd

Managed entities stop the walk: their own direct edges are checked when the
walk starts from them, so checking direct edges is enough to enforce the
rule transitively.
"""

from dataclasses import dataclass, field

import structlog

from ..core.catalog import Catalog
from ..core.resolver import DependencyEdges
from ..models.entity import EntityId
from ..utils.exceptions import LifecyclePolicyViolation

logger = structlog.get_logger(__name__)


@dataclass
class LifecyclePolicyStore:
    """
    Per-entity lifecycle flags for one planning run.

    Attributes:
        create_before_destroy: entity id -> create_before_destroy flag
        data_sources: ids of data entities (transparent to propagation)
    """

    create_before_destroy: dict[EntityId, bool] = field(default_factory=dict)
    data_sources: set[EntityId] = field(default_factory=set)

    @classmethod
    def from_catalog(cls, catalog: Catalog) -> "LifecyclePolicyStore":
        store = cls()
        for entity in catalog:
            store.create_before_destroy[entity.id] = entity.create_before_destroy
            if entity.is_data:
                store.data_sources.add(entity.id)
        return store

    def requires_create_before_destroy(self, entity_id: EntityId) -> bool:
        return self.create_before_destroy.get(entity_id, False)

    def is_data(self, entity_id: EntityId) -> bool:
        return entity_id in self.data_sources

    def flagged(self) -> list[EntityId]:
        """Entities with create_before_destroy enabled, in total order."""
        return sorted(eid for eid, flag in self.create_before_destroy.items() if flag)


def find_violations(
    store: LifecyclePolicyStore, edges: DependencyEdges
) -> list[LifecyclePolicyViolation]:
    """
    Collect every propagation violation.

    Args:
        store: Lifecycle flags
        edges: Dependency edges

    Returns:
        Violations ordered by dependent id, then by walk order
    """
    violations: list[LifecyclePolicyViolation] = []

    for source in store.flagged():
        seen: set[EntityId] = set()
        stack = [(target, [source, target]) for target in reversed(edges.targets_of(source))]

        while stack:
            entity_id, path = stack.pop()
            if entity_id in seen:
                continue
            seen.add(entity_id)

            if store.is_data(entity_id):
                for target in reversed(edges.targets_of(entity_id)):
                    if target not in seen:
                        stack.append((target, path + [target]))
                continue

            if not store.requires_create_before_destroy(entity_id):
                violations.append(
                    LifecyclePolicyViolation(
                        source.address,
                        entity_id.address,
                        [step.address for step in path],
                    )
                )

    return violations


def check_propagation(catalog: Catalog, edges: DependencyEdges) -> None:
    """
    Verify create_before_destroy propagates to every managed dependency.

    Args:
        catalog: Catalog snapshot
        edges: Resolved dependency edges

    Raises:
        LifecyclePolicyViolation: For the first violation in total id order,
            carrying every violation in ``violations``
    """
    store = LifecyclePolicyStore.from_catalog(catalog)
    violations = find_violations(store, edges)

    if violations:
        for violation in violations:
            logger.error(
                "Lifecycle policy violation",
                dependent=violation.dependent,
                dependency=violation.dependency,
                path=" -> ".join(violation.path),
            )
        first = violations[0]
        raise LifecyclePolicyViolation(first.dependent, first.dependency, first.path, violations)

    logger.debug("Lifecycle propagation verified", flagged=len(store.flagged()))
