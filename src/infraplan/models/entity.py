"""Entity models with Pydantic v2 validation.

An entity is one declared resource or data source. Its attribute map holds
literals (strings, numbers, booleans, lists, nested blocks) and two explicit
reference variants:

- Reference: points at another entity's id and an attribute path in it.
- Interpolation: a string template whose parts are literals or References.

Strings are always literals. A declaration author writes a reference as
``{"$ref": "aws_iam_role.node.arn"}`` and a template as
``{"$template": ["#!/bin/bash\\necho ", {"$ref": "aws_ecs_cluster.main.name"}]}``;
both are converted to their model form when the Entity is validated.

Reference expression grammar:
    [data.]<type>.<name>[.<segment>...]
    segment := <identifier>[<index>]... | <integer>
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..utils.exceptions import MalformedReferenceError

IDENTIFIER = r"[A-Za-z_][A-Za-z0-9_-]*"

_IDENTIFIER_RE = re.compile(rf"^{IDENTIFIER}$")
_SEGMENT_RE = re.compile(rf"^(?P<head>{IDENTIFIER}|\d+)(?P<indices>(?:\[\d+\])*)$")
_INDEX_RE = re.compile(r"\[(\d+)\]")

REF_KEY = "$ref"
TEMPLATE_KEY = "$template"
DATA_PREFIX = "data"


class EntityKind(str, Enum):
    """Kind of declared entity."""

    DATA = "data"  # Read-only data source, never destroyed
    RESOURCE = "resource"  # Managed resource with create/update/destroy side effects


@dataclass(frozen=True, order=True)
class EntityId:
    """
    Stable entity identifier.

    Field order defines the total order used for deterministic planning:
    kind, then type, then name, all lexicographic.
    """

    kind: EntityKind
    type: str
    name: str

    @property
    def address(self) -> str:
        """Address form, e.g. ``aws_iam_role.node`` or ``data.aws_ami.ecs``."""
        if self.kind == EntityKind.DATA:
            return f"{DATA_PREFIX}.{self.type}.{self.name}"
        return f"{self.type}.{self.name}"

    @property
    def is_data(self) -> bool:
        return self.kind == EntityKind.DATA

    def __str__(self) -> str:
        return self.address

    @classmethod
    def parse(cls, address: str) -> "EntityId":
        """
        Parse an entity address.

        Args:
            address: ``<type>.<name>`` or ``data.<type>.<name>``

        Returns:
            The parsed EntityId

        Raises:
            MalformedReferenceError: If the address is not exactly an entity id
        """
        ref = Reference.parse(address)
        if ref.path:
            raise MalformedReferenceError(address, "expected an entity address without attributes")
        return ref.target


class Reference(BaseModel):
    """Reference to another entity's id and an attribute path within it."""

    model_config = ConfigDict(frozen=True)

    target: EntityId
    path: tuple[str | int, ...] = ()

    @property
    def expression(self) -> str:
        """Canonical expression text for this reference."""
        text = self.target.address
        for segment in self.path:
            if isinstance(segment, int):
                text += f"[{segment}]"
            else:
                text += f".{segment}"
        return text

    def __str__(self) -> str:
        return self.expression

    @classmethod
    def parse(cls, expression: Any) -> "Reference":
        """
        Parse a reference expression.

        Args:
            expression: Reference text, e.g. ``aws_security_group.ecs.id``

        Returns:
            The parsed Reference

        Raises:
            MalformedReferenceError: If the text does not follow the grammar
        """
        if not isinstance(expression, str):
            raise MalformedReferenceError(
                repr(expression), f"expected a string, got {type(expression).__name__}"
            )

        text = expression.strip()
        if not text:
            raise MalformedReferenceError(expression, "empty reference")

        parts = text.split(".")
        if any(not part for part in parts):
            raise MalformedReferenceError(expression, "empty segment")

        if parts[0] == DATA_PREFIX:
            kind = EntityKind.DATA
            parts = parts[1:]
        else:
            kind = EntityKind.RESOURCE

        if len(parts) < 2:
            raise MalformedReferenceError(expression, "expected <type>.<name>")

        entity_type, name, *rest = parts
        for label, value in (("type", entity_type), ("name", name)):
            if not _IDENTIFIER_RE.match(value):
                raise MalformedReferenceError(expression, f"invalid {label} {value!r}")

        path: list[str | int] = []
        for segment in rest:
            match = _SEGMENT_RE.match(segment)
            if not match:
                raise MalformedReferenceError(expression, f"invalid attribute segment {segment!r}")
            head = match.group("head")
            path.append(int(head) if head.isdigit() else head)
            path.extend(int(i) for i in _INDEX_RE.findall(match.group("indices")))

        return cls(target=EntityId(kind, entity_type, name), path=tuple(path))


class Interpolation(BaseModel):
    """String template built from literal text and references."""

    model_config = ConfigDict(frozen=True)

    parts: tuple[str | Reference, ...]

    @property
    def references(self) -> list[Reference]:
        return [part for part in self.parts if isinstance(part, Reference)]


class Lifecycle(BaseModel):
    """Per-entity lifecycle policy."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    create_before_destroy: bool = Field(default=False, alias="createBeforeDestroy")


def coerce_attribute_value(value: Any, owner: str, attribute: str) -> Any:
    """
    Convert a declared attribute value to its model form.

    ``{"$ref": ...}`` mappings become References and ``{"$template": [...]}``
    mappings become Interpolations, at any nesting depth. Literals pass
    through; lists and tuples become lists.

    Args:
        value: Declared value
        owner: Address of the owning entity (for diagnostics)
        attribute: Attribute path of the value (for diagnostics)

    Returns:
        The converted value

    Raises:
        MalformedReferenceError: If a reference expression is invalid
        ValueError: If the value is not a supported literal type
    """
    if isinstance(value, (Reference, Interpolation)):
        return value

    if value is None or isinstance(value, (str, bool, int, float)):
        return value

    if isinstance(value, (list, tuple)):
        return [
            coerce_attribute_value(item, owner, f"{attribute}[{i}]")
            for i, item in enumerate(value)
        ]

    if isinstance(value, dict):
        if REF_KEY in value:
            if len(value) != 1:
                raise MalformedReferenceError(
                    str(value[REF_KEY]), f"{REF_KEY} must be the only key", owner, attribute
                )
            return _parse_in_context(value[REF_KEY], owner, attribute)

        if TEMPLATE_KEY in value:
            parts = value[TEMPLATE_KEY]
            if len(value) != 1 or not isinstance(parts, (list, tuple)):
                raise MalformedReferenceError(
                    repr(parts),
                    f"{TEMPLATE_KEY} must be the only key and hold a list",
                    owner,
                    attribute,
                )
            converted: list[str | Reference] = []
            for i, part in enumerate(parts):
                part = coerce_attribute_value(part, owner, f"{attribute}.{TEMPLATE_KEY}[{i}]")
                if isinstance(part, Reference):
                    converted.append(part)
                elif isinstance(part, (str, int, float, bool)):
                    converted.append(str(part))
                else:
                    raise ValueError(
                        f"template part {attribute}[{i}] must be text or a reference"
                    )
            return Interpolation(parts=tuple(converted))

        block: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValueError(f"block keys must be strings, got {key!r} in {attribute}")
            block[key] = coerce_attribute_value(item, owner, f"{attribute}.{key}")
        return block

    raise ValueError(f"unsupported value type {type(value).__name__} in {attribute}")


def _parse_in_context(expression: Any, owner: str, attribute: str) -> Reference:
    try:
        return Reference.parse(expression)
    except MalformedReferenceError as e:
        raise MalformedReferenceError(e.expression, e.reason, owner, attribute) from e


class Entity(BaseModel):
    """
    A declared resource or data source.

    Attributes:
        kind: Managed resource or data source
        type: Provider type, e.g. ``aws_launch_configuration``
        name: Local name, unique per kind and type
        attributes: Attribute map of literals, blocks and references
        lifecycle: Replacement ordering policy
        depends_on: Explicit dependencies with no attribute carrying them
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: EntityKind = EntityKind.RESOURCE
    type: str
    name: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    lifecycle: Lifecycle = Field(default_factory=Lifecycle)
    depends_on: tuple[Reference, ...] = ()

    @field_validator("type", "name")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        if not _IDENTIFIER_RE.match(v):
            raise ValueError(f"{v!r} is not a valid identifier")
        return v

    @model_validator(mode="before")
    @classmethod
    def convert_references(cls, data: Any) -> Any:
        """Convert ``$ref``/``$template`` mappings before field validation."""
        if not isinstance(data, dict):
            return data

        data = dict(data)
        owner = _owner_address(data)

        attributes = data.get("attributes")
        if isinstance(attributes, dict):
            data["attributes"] = {
                key: coerce_attribute_value(value, owner, key) for key, value in attributes.items()
            }

        depends_on = data.get("depends_on")
        if isinstance(depends_on, (list, tuple)):
            data["depends_on"] = tuple(
                item
                if isinstance(item, Reference)
                else _parse_in_context(item, owner, f"depends_on[{i}]")
                for i, item in enumerate(depends_on)
            )

        return data

    @model_validator(mode="after")
    def check_data_lifecycle(self) -> "Entity":
        if self.kind == EntityKind.DATA and self.lifecycle.create_before_destroy:
            raise ValueError(
                "data sources are never destroyed and cannot set create_before_destroy"
            )
        return self

    @property
    def id(self) -> EntityId:
        return EntityId(self.kind, self.type, self.name)

    @property
    def address(self) -> str:
        return self.id.address

    @property
    def create_before_destroy(self) -> bool:
        return self.lifecycle.create_before_destroy

    @property
    def is_data(self) -> bool:
        return self.kind == EntityKind.DATA


def _owner_address(data: dict[str, Any]) -> str:
    kind = data.get("kind", EntityKind.RESOURCE)
    prefix = f"{DATA_PREFIX}." if kind in (EntityKind.DATA, DATA_PREFIX) else ""
    return f"{prefix}{data.get('type', '?')}.{data.get('name', '?')}"
