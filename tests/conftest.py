"""Pytest configuration and shared fixtures.

Fixtures are organized by category:
- Factory fixtures: build declarations and entities with little noise
- Scenario fixtures: the ECS cluster stack used across planner tests
"""

from typing import Any

import pytest

from src.infraplan.core.catalog import Catalog
from src.infraplan.core.resolver import ReferenceResolver
from src.infraplan.dependency.graph import DependencyGraph


def ref(expression: str) -> dict[str, str]:
    """Reference value in declaration form."""
    return {"$ref": expression}


def declaration(
    address: str,
    attributes: dict[str, Any] | None = None,
    create_before_destroy: bool = False,
    **extra: Any,
) -> dict[str, Any]:
    """Build a declaration mapping from an address like ``aws_vpc.main``."""
    parts = address.split(".")
    kind = "resource"
    if parts[0] == "data":
        kind = "data"
        parts = parts[1:]
    entity_type, name = parts

    result: dict[str, Any] = {
        "kind": kind,
        "type": entity_type,
        "name": name,
        "attributes": attributes or {},
    }
    if create_before_destroy:
        result["lifecycle"] = {"create_before_destroy": True}
    result.update(extra)
    return result


def build_graph(declarations: list[dict[str, Any]]) -> DependencyGraph:
    """Catalog -> edges -> graph, without validation."""
    catalog = Catalog.load(declarations)
    edges = ReferenceResolver().resolve(catalog)
    return DependencyGraph.build(catalog, edges)


# =============================================================================
# Factory Fixtures
# =============================================================================


@pytest.fixture
def declare():
    """Factory for declaration mappings.

    Example:
        def test_something(declare):
            vpc = declare("aws_vpc.main", {"cidr_block": "10.0.0.0/16"})
    """
    return declaration


@pytest.fixture
def graph_from():
    """Factory building an unvalidated DependencyGraph from declarations."""
    return build_graph


# =============================================================================
# Scenario Fixtures
# =============================================================================


@pytest.fixture
def ecs_declarations() -> list[dict[str, Any]]:
    """ECS cluster stack.

    Every managed entity except the autoscaling group replaces
    create-before-destroy. The IAM policy document is a data source.
    """
    return [
        declaration(
            "aws_autoscaling_group.ecs",
            {
                "launch_configuration": ref("aws_launch_configuration.ecs.name"),
                "min_size": 1,
                "max_size": 3,
                "tag": [{"key": "Name", "value": "ecs", "propagate_at_launch": True}],
            },
        ),
        declaration(
            "aws_launch_configuration.ecs",
            {
                "image_id": "ami-0123456789",
                "instance_type": "t3.small",
                "user_data": {
                    "$template": [
                        "#!/bin/bash\necho ECS_CLUSTER=",
                        ref("aws_ecs_cluster.main.name"),
                        " >> /etc/ecs/ecs.config",
                    ]
                },
            },
            create_before_destroy=True,
        ),
        declaration("aws_ecs_cluster.main", {"name": "main"}, create_before_destroy=True),
        declaration(
            "aws_iam_instance_profile.ecs",
            {"role": ref("aws_iam_role.ecs.name")},
            create_before_destroy=True,
        ),
        declaration(
            "aws_iam_role.ecs",
            {"assume_role_policy": ref("data.aws_iam_policy_document.ecs_assume.json")},
            create_before_destroy=True,
        ),
        declaration(
            "data.aws_iam_policy_document.ecs_assume",
            {
                "statement": [
                    {
                        "actions": ["sts:AssumeRole"],
                        "principals": [{"type": "Service", "identifiers": ["ec2.amazonaws.com"]}],
                    }
                ]
            },
        ),
        declaration(
            "aws_security_group.ecs",
            {"ingress": [{"from_port": 443, "to_port": 443, "protocol": "tcp"}]},
            create_before_destroy=True,
        ),
    ]


@pytest.fixture
def ecs_catalog(ecs_declarations) -> Catalog:
    """Loaded ECS catalog."""
    return Catalog.load(ecs_declarations)


@pytest.fixture
def ecs_graph(ecs_declarations) -> DependencyGraph:
    """Built (not yet validated) ECS dependency graph."""
    return build_graph(ecs_declarations)
