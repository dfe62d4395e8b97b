"""Utility functions and exceptions."""

from .exceptions import (
    CycleError,
    DuplicateIdError,
    InvalidActionError,
    LifecyclePolicyViolation,
    MalformedReferenceError,
    PlannerError,
    SchemaValidationError,
    SelfDependencyError,
    UnknownReferenceError,
)

__all__ = [
    "PlannerError",
    "SchemaValidationError",
    "DuplicateIdError",
    "MalformedReferenceError",
    "UnknownReferenceError",
    "SelfDependencyError",
    "LifecyclePolicyViolation",
    "CycleError",
    "InvalidActionError",
]
