"""Tests for the DependencyGraph class."""

import pytest

from src.infraplan.dependency.graph import DependencyGraph, find_cycle_paths, kahn_levels
from src.infraplan.models.entity import Entity, EntityId
from src.infraplan.utils.exceptions import (
    CycleError,
    LifecyclePolicyViolation,
    SelfDependencyError,
)


def eid(address):
    return EntityId.parse(address)


class TestDependencyGraph:
    """Test suite for DependencyGraph."""

    @pytest.fixture
    def graph(self):
        """Create a new DependencyGraph instance."""
        return DependencyGraph()

    def test_add_entity(self, graph):
        """Test adding nodes to the graph."""
        entity = Entity(type="aws_vpc", name="main")

        node = graph.add_entity(entity)

        assert node.node_id in graph.nodes
        assert graph.nodes[node.node_id].entity == entity
        assert node.address == "aws_vpc.main"
        assert graph.add_entity(entity) is node

    def test_add_dependency(self, graph):
        """Test adding dependencies between nodes."""
        vpc = graph.add_entity(Entity(type="aws_vpc", name="main"))
        subnet = graph.add_entity(Entity(type="aws_subnet", name="a"))

        graph.add_dependency(subnet.node_id, vpc.node_id, origin="vpc_id")

        assert vpc.node_id in graph.nodes[subnet.node_id].dependencies
        assert subnet.node_id in graph.nodes[vpc.node_id].dependents
        assert graph.origins[(subnet.node_id, vpc.node_id)] == ["vpc_id"]

    def test_add_dependency_unknown_node(self, graph):
        """Test edges require both nodes."""
        vpc = graph.add_entity(Entity(type="aws_vpc", name="main"))

        with pytest.raises(ValueError):
            graph.add_dependency(vpc.node_id, eid("aws_subnet.a"))

    def test_add_self_dependency(self, graph):
        """Test self edges are rejected."""
        vpc = graph.add_entity(Entity(type="aws_vpc", name="main"))

        with pytest.raises(SelfDependencyError):
            graph.add_dependency(vpc.node_id, vpc.node_id)

    def test_build_from_ecs(self, ecs_graph):
        """Test building from a catalog and its edges."""
        assert len(ecs_graph.nodes) == 7
        assert ecs_graph.edge_count == 4
        assert ecs_graph.dependencies_of(eid("aws_autoscaling_group.ecs")) == [
            eid("aws_launch_configuration.ecs")
        ]
        assert ecs_graph.dependents_of(eid("aws_ecs_cluster.main")) == [
            eid("aws_launch_configuration.ecs")
        ]

    def test_depths(self, ecs_graph):
        """Test depths are the longest distance from a root."""
        depths = {str(node_id): node.depth for node_id, node in ecs_graph.nodes.items()}

        assert depths["data.aws_iam_policy_document.ecs_assume"] == 0
        assert depths["aws_ecs_cluster.main"] == 0
        assert depths["aws_iam_role.ecs"] == 1
        assert depths["aws_launch_configuration.ecs"] == 1
        assert depths["aws_autoscaling_group.ecs"] == 2
        assert depths["aws_iam_instance_profile.ecs"] == 2

    def test_transitive_dependencies(self, ecs_graph):
        """Test reachability over dependency edges."""
        reachable = ecs_graph.transitive_dependencies(eid("aws_iam_instance_profile.ecs"))

        assert reachable == {
            eid("aws_iam_role.ecs"),
            eid("data.aws_iam_policy_document.ecs_assume"),
        }

    def test_topological_sort(self, ecs_graph):
        """Test every dependency precedes its dependents."""
        order = [node.node_id for node in ecs_graph.topological_sort()]

        for node_id in order:
            for dependency in ecs_graph.dependencies_of(node_id):
                assert order.index(dependency) < order.index(node_id)

    def test_topological_sort_is_deterministic(self, ecs_graph):
        """Test ties are broken by total id order, level by level."""
        order = [node.address for node in ecs_graph.topological_sort()]

        assert order == [
            "data.aws_iam_policy_document.ecs_assume",
            "aws_ecs_cluster.main",
            "aws_security_group.ecs",
            "aws_iam_role.ecs",
            "aws_launch_configuration.ecs",
            "aws_autoscaling_group.ecs",
            "aws_iam_instance_profile.ecs",
        ]

    def test_validate_ecs(self, ecs_graph):
        """Test the ECS stack validates."""
        assert ecs_graph.validate() is True

    def test_edges_round_trip_origins(self, ecs_graph):
        """Test edges exported from the graph keep their origins."""
        edges = ecs_graph.edges

        assert len(edges) == 4
        assert edges.origins_of(
            eid("aws_launch_configuration.ecs"), eid("aws_ecs_cluster.main")
        ) == ["user_data"]


class TestCycleValidation:
    """Test cycle detection and diagnostics."""

    def test_two_node_cycle(self, declare, graph_from):
        """Test a mutual reference is reported as a closed path."""
        graph = graph_from(
            [
                declare("aws_security_group.a", {"peer": {"$ref": "aws_security_group.b.id"}}),
                declare("aws_security_group.b", {"peer": {"$ref": "aws_security_group.a.id"}}),
            ]
        )

        with pytest.raises(CycleError) as exc_info:
            graph.validate()

        error = exc_info.value
        assert error.cycle == ["aws_security_group.a", "aws_security_group.b", "aws_security_group.a"]
        assert error.entities == ["aws_security_group.a", "aws_security_group.b"]
        assert "aws_security_group.a -> aws_security_group.b -> aws_security_group.a" in str(error)
        assert "via peer" in str(error)

    def test_reported_cycle_is_real(self, declare, graph_from):
        """Test every consecutive pair of the reported path is an edge."""
        graph = graph_from(
            [
                declare("aws_a.root", {"x": {"$ref": "aws_b.x.id"}}),
                declare("aws_b.x", {"y": {"$ref": "aws_c.x.id"}}),
                declare("aws_c.x", {"z": {"$ref": "aws_d.x.id"}}),
                declare("aws_d.x", {"back": {"$ref": "aws_b.x.id"}}),
            ]
        )

        with pytest.raises(CycleError) as exc_info:
            graph.validate()

        cycle = [eid(address) for address in exc_info.value.cycle]
        assert cycle[0] == cycle[-1]
        assert eid("aws_a.root") not in cycle
        for dependent, dependency in zip(cycle, cycle[1:]):
            assert dependency in graph.nodes[dependent].dependencies

    def test_find_cycles_lists_each_back_edge(self, declare, graph_from):
        """Test independent cycles are all found."""
        graph = graph_from(
            [
                declare("aws_a.x", {"r": {"$ref": "aws_b.x.id"}}),
                declare("aws_b.x", {"r": {"$ref": "aws_a.x.id"}}),
                declare("aws_c.x", {"r": {"$ref": "aws_d.x.id"}}),
                declare("aws_d.x", {"r": {"$ref": "aws_c.x.id"}}),
            ]
        )

        cycles = graph.find_cycles()

        assert [[str(i) for i in cycle] for cycle in cycles] == [
            ["aws_a.x", "aws_b.x", "aws_a.x"],
            ["aws_c.x", "aws_d.x", "aws_c.x"],
        ]

    def test_topological_sort_raises_on_cycle(self, declare, graph_from):
        """Test sorting a cyclic graph raises CycleError."""
        graph = graph_from(
            [
                declare("aws_a.x", {"r": {"$ref": "aws_b.x.id"}}),
                declare("aws_b.x", {"r": {"$ref": "aws_a.x.id"}}),
            ]
        )

        with pytest.raises(CycleError):
            graph.topological_sort()

    def test_lifecycle_checked_before_cycles(self, declare, graph_from):
        """Test lifecycle violations win over reference cycles."""
        graph = graph_from(
            [
                declare("aws_a.x", {"r": {"$ref": "aws_b.x.id"}}, create_before_destroy=True),
                declare("aws_b.x", {"r": {"$ref": "aws_c.x.id"}}),
                declare("aws_c.x", {"r": {"$ref": "aws_b.x.id"}}),
            ]
        )

        with pytest.raises(LifecyclePolicyViolation):
            graph.validate()

    def test_validate_after_change(self, declare, graph_from):
        """Test adding an edge invalidates a previous validation."""
        graph = graph_from(
            [
                declare("aws_a.x", {"r": {"$ref": "aws_b.x.id"}}),
                declare("aws_b.x"),
            ]
        )
        assert graph.validate() is True

        graph.add_dependency(eid("aws_b.x"), eid("aws_a.x"))

        with pytest.raises(CycleError):
            graph.validate()


class TestGraphAlgorithms:
    """Test the generic graph helpers."""

    def test_kahn_levels(self):
        """Test levels and leftovers."""
        dependencies = {"b": {"a"}, "c": {"a"}, "d": {"b", "c"}, "x": {"y"}, "y": {"x"}}

        levels, leftover = kahn_levels(["a", "b", "c", "d", "x", "y"], dependencies, sort_key=str)

        assert levels == [["a"], ["b", "c"], ["d"]]
        assert leftover == {"x", "y"}

    def test_find_cycle_paths_deep_chain(self):
        """Test long chains do not hit the recursion limit."""
        size = 5000
        dependencies = {i: [i + 1] for i in range(size)}
        dependencies[size] = [0]

        cycles = find_cycle_paths(range(size + 1), lambda key: dependencies[key])

        assert len(cycles) == 1
        assert len(cycles[0]) == size + 2


def test_to_dot(ecs_graph):
    """Test DOT generation."""
    dot = ecs_graph.to_dot()

    assert "digraph DependencyGraph {" in dot
    assert (
        '"aws_ecs_cluster.main" [label="aws_ecs_cluster\\nmain\\n(create_before_destroy)" '
        'fillcolor="#d4edda"];'
    ) in dot
    assert '"aws_autoscaling_group.ecs" [label="aws_autoscaling_group\\necs\\n(destroy_before_create)"' in dot
    assert '"aws_ecs_cluster.main" -> "aws_launch_configuration.ecs";' in dot
