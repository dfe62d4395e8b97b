"""Action types and execution plan models."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .entity import EntityId


class Action(str, Enum):
    """Action requested for an entity by the state-diffing layer."""

    CREATE = "create"
    UPDATE = "update"
    DESTROY = "destroy"
    REPLACE = "replace"
    READ = "read"
    NOOP = "noop"


class NodeAction(str, Enum):
    """
    Action carried by a single plan node.

    A replaced entity expands into CREATE_NEW and DESTROY_OLD; every other
    action maps to one node of the same name.
    """

    CREATE = "create"
    UPDATE = "update"
    DESTROY = "destroy"
    READ = "read"
    CREATE_NEW = "create_new"
    DESTROY_OLD = "destroy_old"

    @property
    def is_release(self) -> bool:
        """True for nodes that tear an instance down."""
        return self in (NodeAction.DESTROY, NodeAction.DESTROY_OLD)


# Ordinal used as the secondary sort key inside a batch
NODE_ACTION_ORDER = {action: index for index, action in enumerate(NodeAction)}


@dataclass(frozen=True)
class PlanNode:
    """
    One (entity id, action) pair of an execution plan.

    Attributes:
        entity_id: Entity the action applies to
        action: What the executor should do
    """

    entity_id: EntityId
    action: NodeAction

    @property
    def node_id(self) -> str:
        """Unique identifier for this node."""
        return f"{self.entity_id.address}:{self.action.value}"

    @property
    def sort_key(self) -> tuple[EntityId, int]:
        return (self.entity_id, NODE_ACTION_ORDER[self.action])

    def __str__(self) -> str:
        return f"{self.entity_id.address} ({self.action.value})"

    def to_dict(self) -> dict[str, str]:
        return {"entity": self.entity_id.address, "action": self.action.value}


@dataclass
class ExecutionBatch:
    """
    A batch of plan nodes that can execute concurrently.

    Attributes:
        batch_id: Position of this batch in the plan
        nodes: Nodes in this batch, in deterministic order
        depth: Dependency level the batch was taken from
    """

    batch_id: int
    nodes: list[PlanNode] = field(default_factory=list)
    depth: int = 0

    def __len__(self) -> int:
        """Number of nodes in batch."""
        return len(self.nodes)

    def __iter__(self):
        return iter(self.nodes)


@dataclass
class ExecutionPlan:
    """
    Complete execution plan with batches and metadata.

    Batches execute strictly in order; nodes within a batch carry no ordering
    dependency on each other.

    Attributes:
        batches: List of execution batches in order
        total_operations: Total number of plan nodes
        max_parallelism: Size of the largest batch
        metadata: Per-action counts and other plan metadata
    """

    batches: list[ExecutionBatch] = field(default_factory=list)
    total_operations: int = 0
    max_parallelism: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def nodes(self) -> list[PlanNode]:
        """All nodes in execution order."""
        return [node for batch in self.batches for node in batch.nodes]

    def batch_index(self, entity_id: EntityId | str, action: NodeAction | str) -> int:
        """
        Find the batch holding a node.

        Args:
            entity_id: Entity id or address
            action: Node action

        Returns:
            Index of the batch containing the node

        Raises:
            KeyError: If the plan has no such node
        """
        address = entity_id.address if isinstance(entity_id, EntityId) else entity_id
        action = NodeAction(action)
        for index, batch in enumerate(self.batches):
            for node in batch.nodes:
                if node.entity_id.address == address and node.action == action:
                    return index
        raise KeyError(f"{address}:{action.value}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "batches": [[node.to_dict() for node in batch.nodes] for batch in self.batches],
            "total_operations": self.total_operations,
            "max_parallelism": self.max_parallelism,
            "metadata": self.metadata,
        }

    def to_json(self) -> str:
        """Deterministic JSON rendering of the plan."""
        return json.dumps(self.to_dict(), sort_keys=True, indent=2)
