"""Entity catalog - immutable snapshot of declared entities.

Overview:
--------
The Catalog is the first stage of a planning run. It validates each
declaration into a strongly-typed Entity (pydantic), assigns its id and
guarantees:

1. Ids are unique across the catalog.
2. Every attribute value is a literal or a well-formed Reference or
   Interpolation.

It does NOT check that referenced entities exist. The ReferenceResolver does
that and produces a clearer UnknownReferenceError naming the owning entity.

Declaration Format:
------------------
Each declaration is an Entity or a mapping:
```
{
    "kind": "resource",                 # or "data", default "resource"
    "type": "aws_launch_configuration",
    "name": "ecs",
    "attributes": {
        "security_groups": [{"$ref": "aws_security_group.ecs.id"}],
        "user_data": {"$template": ["ECS_CLUSTER=", {"$ref": "aws_ecs_cluster.main.name"}]},
    },
    "lifecycle": {"create_before_destroy": True},
}
```
"""

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from ..models.entity import Entity, EntityId
from ..observability.logger import log_verbose
from ..utils.exceptions import DuplicateIdError, SchemaValidationError

logger = structlog.get_logger(__name__)


class Catalog:
    """
    Read-only set of declared entities keyed by EntityId.

    Iteration always follows the total id order (kind, type, name), so every
    stage built on top of the catalog is deterministic.
    """

    def __init__(self, entities: Iterable[Entity] = ()) -> None:
        """
        Initialize catalog from already validated entities.

        Args:
            entities: Entities to hold

        Raises:
            DuplicateIdError: If two entities share an id
        """
        self._entities: dict[EntityId, Entity] = {}
        positions: dict[EntityId, int] = {}

        for index, entity in enumerate(entities):
            entity_id = entity.id
            if entity_id in self._entities:
                raise DuplicateIdError(entity_id.address, positions[entity_id], index)
            self._entities[entity_id] = entity
            positions[entity_id] = index

        self._order = sorted(self._entities)

    @classmethod
    def load(cls, declarations: Iterable[Entity | Mapping[str, Any]]) -> "Catalog":
        """
        Validate declarations and build a catalog.

        Args:
            declarations: Entities or declaration mappings

        Returns:
            Catalog snapshot

        Raises:
            SchemaValidationError: If a declaration does not match the schema
            MalformedReferenceError: If a reference expression is invalid
            DuplicateIdError: If two declarations share an id
        """
        entities: list[Entity] = []

        for index, declaration in enumerate(declarations):
            if isinstance(declaration, Entity):
                entities.append(declaration)
                continue

            if not isinstance(declaration, Mapping):
                raise SchemaValidationError(
                    f"expected a mapping, got {type(declaration).__name__}", index=index
                )

            try:
                entities.append(Entity.model_validate(dict(declaration)))
            except ValidationError as e:
                errors = "; ".join(
                    f"{'.'.join(str(loc) for loc in err['loc']) or 'declaration'}: {err['msg']}"
                    for err in e.errors()
                )
                raise SchemaValidationError(errors, index=index, original_error=e) from e

        catalog = cls(entities)

        for entity in catalog:
            log_verbose(
                logger,
                "Entity loaded",
                entity=entity.address,
                create_before_destroy=entity.create_before_destroy,
            )

        logger.info(
            "Catalog loaded",
            entities=len(catalog),
            data_sources=sum(1 for entity in catalog if entity.is_data),
        )

        return catalog

    def get(self, entity_id: EntityId | str) -> Entity:
        """
        Look up an entity by id or address.

        Raises:
            KeyError: If the entity is not in the catalog
        """
        if isinstance(entity_id, str):
            entity_id = EntityId.parse(entity_id)
        return self._entities[entity_id]

    def ids(self) -> list[EntityId]:
        """All entity ids in total order."""
        return list(self._order)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entities

    def __iter__(self) -> Iterator[Entity]:
        return (self._entities[entity_id] for entity_id in self._order)

    def __len__(self) -> int:
        return len(self._entities)
