"""Custom exceptions for the infrastructure planner.

Exception Hierarchy:
-------------------
PlannerError (base)
├── SchemaValidationError       # Declaration shape is invalid (pydantic failure)
├── DuplicateIdError            # Two declarations share an entity id
├── MalformedReferenceError     # Reference expression cannot be parsed
├── UnknownReferenceError       # Reference points at an entity not in the catalog
├── SelfDependencyError         # Entity references itself
├── LifecyclePolicyViolation    # create_before_destroy does not propagate
├── CycleError                  # Circular dependency in the entity or plan graph
└── InvalidActionError          # Action not applicable to the entity kind

Usage Guidelines:
----------------
1. Every error is fatal to the current planning run. Nothing in the planner
   catches these and continues; they propagate to the caller verbatim.

2. Use PlannerError as catch-all for planner-specific errors.

3. Include context in exceptions:
   - Offending entity id(s) as attributes, not only in the message
   - Full cycle path for cycle-shaped errors
   - Offending reference text for reference errors
"""


class PlannerError(Exception):
    """Base exception for all planner errors."""

    pass


class SchemaValidationError(PlannerError):
    """Raised when a declaration does not match the entity schema."""

    def __init__(
        self,
        message: str,
        index: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """
        Initialize SchemaValidationError.

        Args:
            message: Error message.
            index: Optional position of the offending declaration.
            original_error: Optional original exception that caused this error.
        """
        super().__init__(message)
        self.index = index
        self.original_error = original_error

    def __str__(self) -> str:
        if self.index is not None:
            return f"Declaration {self.index}: {self.args[0]}"
        return str(self.args[0]) if self.args else "Schema validation error"


class DuplicateIdError(PlannerError):
    """Raised when two declarations resolve to the same entity id."""

    def __init__(self, entity_id: str, first_index: int, second_index: int) -> None:
        """
        Initialize DuplicateIdError.

        Args:
            entity_id: The duplicated entity id.
            first_index: Position of the first declaration using the id.
            second_index: Position of the conflicting declaration.
        """
        super().__init__(
            f"Duplicate entity id {entity_id} "
            f"(declarations {first_index} and {second_index})"
        )
        self.entity_id = entity_id
        self.first_index = first_index
        self.second_index = second_index


class MalformedReferenceError(PlannerError):
    """Raised when a reference expression is not syntactically valid."""

    def __init__(
        self,
        expression: str,
        reason: str,
        entity_id: str | None = None,
        attribute: str | None = None,
    ) -> None:
        """
        Initialize MalformedReferenceError.

        Args:
            expression: The offending reference text.
            reason: Why the expression was rejected.
            entity_id: Optional id of the entity owning the reference.
            attribute: Optional attribute path where the reference appears.
        """
        location = ""
        if entity_id:
            location = f" in {entity_id}"
            if attribute:
                location += f" (attribute {attribute})"
        super().__init__(f"Malformed reference {expression!r}{location}: {reason}")
        self.expression = expression
        self.reason = reason
        self.entity_id = entity_id
        self.attribute = attribute


class UnknownReferenceError(PlannerError):
    """Raised when a reference points at an entity that is not declared."""

    def __init__(self, entity_id: str, reference: str, attribute: str) -> None:
        """
        Initialize UnknownReferenceError.

        Args:
            entity_id: Entity that owns the dangling reference.
            reference: The dangling reference text.
            attribute: Attribute path where the reference appears.
        """
        super().__init__(
            f"{entity_id} references undeclared entity {reference!r} "
            f"(attribute {attribute})"
        )
        self.entity_id = entity_id
        self.reference = reference
        self.attribute = attribute


class SelfDependencyError(PlannerError):
    """Raised when an entity references its own id."""

    def __init__(self, entity_id: str, reference: str, attribute: str) -> None:
        """
        Initialize SelfDependencyError.

        Args:
            entity_id: The self-referencing entity.
            reference: The reference text.
            attribute: Attribute path where the reference appears.
        """
        super().__init__(
            f"{entity_id} references itself via {reference!r} (attribute {attribute})"
        )
        self.entity_id = entity_id
        self.reference = reference
        self.attribute = attribute


class LifecyclePolicyViolation(PlannerError):
    """
    Raised when create_before_destroy does not propagate to a dependency.

    If A is replaced create-before-destroy, every managed entity it depends on
    must be as well. Otherwise B would be destroyed before the new A exists,
    breaking A, and the replacement ordering forms a cycle.
    """

    def __init__(
        self,
        dependent: str,
        dependency: str,
        path: list[str] | None = None,
        violations: list["LifecyclePolicyViolation"] | None = None,
    ) -> None:
        """
        Initialize LifecyclePolicyViolation.

        Args:
            dependent: Entity with create_before_destroy enabled (A).
            dependency: Managed entity it depends on without the flag (B).
            path: Dependency path from A to B (length 2 for a direct edge).
            violations: Every violation found in the run, this one first.
        """
        self.dependent = dependent
        self.dependency = dependency
        self.path = path or [dependent, dependency]
        chain = " -> ".join(self.path)
        super().__init__(
            f"{dependent} has create_before_destroy enabled but depends on "
            f"{dependency}, which does not ({chain}). Destroying {dependency} "
            f"before {dependent} is recreated would break {dependent}; enable "
            f"create_before_destroy on {dependency}"
        )
        self.violations = violations or [self]

    @property
    def edge(self) -> tuple[str, str]:
        """Final edge of the violating path as (dependent, dependency)."""
        return (self.path[-2], self.path[-1])


class CycleError(PlannerError):
    """
    Raised when circular dependencies are detected.

    Example cycles:
    1. Security group A references group B in an ingress rule, and B
       references A
    2. A launch configuration reads a cluster name, the cluster reads the
       autoscaling group created from that launch configuration

    The planner fails fast when cycles are detected; no partial plan is built.
    """

    def __init__(
        self,
        message: str,
        cycle: list[str] | None = None,
        cycles: list[list[str]] | None = None,
    ) -> None:
        """
        Initialize CycleError.

        Args:
            message: Error message.
            cycle: The reported cycle, first node repeated at the end.
            cycles: Every detected cycle, the reported one first.
        """
        super().__init__(message)
        self.cycle = cycle or []
        self.cycles = cycles or ([self.cycle] if self.cycle else [])

    @property
    def entities(self) -> list[str]:
        """Distinct ids on the reported cycle, in path order."""
        return self.cycle[:-1] if len(self.cycle) > 1 else list(self.cycle)


class InvalidActionError(PlannerError):
    """Raised when an action cannot be applied to an entity."""

    def __init__(self, entity_id: str, action: str, reason: str) -> None:
        """
        Initialize InvalidActionError.

        Args:
            entity_id: Entity the action was requested for.
            action: The rejected action.
            reason: Why the action is not applicable.
        """
        super().__init__(f"Cannot {action} {entity_id}: {reason}")
        self.entity_id = entity_id
        self.action = action
        self.reason = reason
