"""Dependency management for entity ordering."""

from .graph import DependencyGraph, DependencyNode, find_cycle_paths, kahn_levels
from .lifecycle import LifecyclePolicyStore, check_propagation, find_violations

__all__ = [
    "DependencyGraph",
    "DependencyNode",
    "LifecyclePolicyStore",
    "check_propagation",
    "find_cycle_paths",
    "find_violations",
    "kahn_levels",
]
