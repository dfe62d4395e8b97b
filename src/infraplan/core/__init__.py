"""Core planning components: entity catalog and reference resolution."""

from .catalog import Catalog
from .resolver import DependencyEdges, ReferenceResolver, iter_references

__all__ = [
    "Catalog",
    "DependencyEdges",
    "ReferenceResolver",
    "iter_references",
]
