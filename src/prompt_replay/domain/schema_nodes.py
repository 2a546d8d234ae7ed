"""
Neutral Schema Nodes

Provider-agnostic description of a structured-output schema, as a closed set
of node kinds. Production generations record their schema in observation
metadata in JSON Schema form; decode_schema() turns that into nodes, the
translators turn nodes into each provider's native format, and validate()
re-checks model output against the nodes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar

from prompt_replay.domain.errors import SchemaValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchemaNode:
    """Base class for every neutral schema node kind"""
    kind: ClassVar[str] = "node"


@dataclass(frozen=True)
class StringNode(SchemaNode):
    kind: ClassVar[str] = "string"
    pattern: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class NumberNode(SchemaNode):
    kind: ClassVar[str] = "number"
    integer: bool = False
    description: str | None = None


@dataclass(frozen=True)
class BooleanNode(SchemaNode):
    kind: ClassVar[str] = "boolean"
    description: str | None = None


@dataclass(frozen=True)
class ArrayNode(SchemaNode):
    kind: ClassVar[str] = "array"
    items: SchemaNode = field(default_factory=lambda: UnknownNode(source="missing items"))
    description: str | None = None


@dataclass(frozen=True)
class ObjectNode(SchemaNode):
    """Object with ordered fields; optionality lives on the field nodes"""
    kind: ClassVar[str] = "object"
    fields: dict[str, SchemaNode] = field(default_factory=dict)
    description: str | None = None


@dataclass(frozen=True)
class EnumNode(SchemaNode):
    kind: ClassVar[str] = "enum"
    values: tuple[str, ...] = ()
    description: str | None = None


@dataclass(frozen=True)
class OptionalNode(SchemaNode):
    kind: ClassVar[str] = "optional"
    inner: SchemaNode = field(default_factory=lambda: UnknownNode(source="missing inner"))
    description: str | None = None


@dataclass(frozen=True)
class NullableNode(SchemaNode):
    kind: ClassVar[str] = "nullable"
    inner: SchemaNode = field(default_factory=lambda: UnknownNode(source="missing inner"))
    description: str | None = None


@dataclass(frozen=True)
class DefaultNode(SchemaNode):
    kind: ClassVar[str] = "default"
    inner: SchemaNode = field(default_factory=lambda: UnknownNode(source="missing inner"))
    default: Any = None
    description: str | None = None


@dataclass(frozen=True)
class LiteralNode(SchemaNode):
    kind: ClassVar[str] = "literal"
    value: Any = None
    description: str | None = None


@dataclass(frozen=True)
class UnionNode(SchemaNode):
    kind: ClassVar[str] = "union"
    options: tuple[SchemaNode, ...] = ()
    description: str | None = None


@dataclass(frozen=True)
class AnnotatedNode(SchemaNode):
    """Refinement or annotation wrapper; behaves like its inner type"""
    kind: ClassVar[str] = "annotated"
    inner: SchemaNode = field(default_factory=lambda: UnknownNode(source="missing inner"))
    description: str | None = None


@dataclass(frozen=True)
class UnknownNode(SchemaNode):
    """Anything the decoder did not recognize"""
    kind: ClassVar[str] = "unknown"
    source: str = ""
    description: str | None = None


_WRAPPERS = (OptionalNode, DefaultNode, AnnotatedNode, NullableNode)


def is_optional(node: SchemaNode) -> bool:
    """True when an object field of this type may be absent"""
    if isinstance(node, (OptionalNode, DefaultNode)):
        return True
    if isinstance(node, AnnotatedNode):
        return is_optional(node.inner)
    return False


def field_description(node: SchemaNode) -> str | None:
    """Description of a field, looking through wrapper nodes"""
    while True:
        description = getattr(node, "description", None)
        if description:
            return description
        if isinstance(node, _WRAPPERS):
            node = node.inner
            continue
        return None


def _default_of(node: SchemaNode) -> tuple[bool, Any]:
    while isinstance(node, (OptionalNode, DefaultNode, AnnotatedNode)):
        if isinstance(node, DefaultNode):
            return True, node.default
        node = node.inner
    return False, None


# ---------------------------------------------------------------------------
# Decoding (JSON Schema form stored in observation metadata)
# ---------------------------------------------------------------------------

def decode_schema(data: Any) -> SchemaNode:
    """
    Build a neutral schema from its JSON Schema encoding.

    Unrecognized shapes decode to UnknownNode instead of raising, so a
    partially understood schema still yields a usable (looser) node tree.

    Args:
        data: JSON Schema dictionary

    Returns:
        SchemaNode: Root node
    """
    if not isinstance(data, dict):
        return UnknownNode(source=type(data).__name__)

    node = _decode_kind(data)

    description = data.get("description")
    if isinstance(description, str) and description:
        node = replace(node, description=description)

    if "default" in data:
        node = DefaultNode(inner=node, default=data["default"])
    return node


def _decode_kind(data: dict) -> SchemaNode:
    for key in ("anyOf", "oneOf"):
        if isinstance(data.get(key), list):
            return _decode_union(data[key])

    all_of = data.get("allOf")
    if isinstance(all_of, list) and len(all_of) == 1:
        return AnnotatedNode(inner=decode_schema(all_of[0]))

    if "const" in data:
        return LiteralNode(value=data["const"])

    if isinstance(data.get("enum"), list):
        values = [v for v in data["enum"] if v is not None]
        if len(values) == len(data["enum"]):
            return _decode_enum_values(values)
        if not values:
            return LiteralNode(value=None)
        return NullableNode(inner=_decode_enum_values(values))

    type_name = data.get("type")
    if isinstance(type_name, list):
        return _decode_type_list(data, type_name)
    if type_name is None and isinstance(data.get("properties"), dict):
        type_name = "object"

    if type_name == "string":
        return StringNode(pattern=data.get("pattern"))
    if type_name == "number":
        return NumberNode()
    if type_name == "integer":
        return NumberNode(integer=True)
    if type_name == "boolean":
        return BooleanNode()
    if type_name == "null":
        return LiteralNode(value=None)
    if type_name == "array":
        items = data.get("items")
        return ArrayNode(items=decode_schema(items) if items is not None else UnknownNode(source="missing items"))
    if type_name == "object":
        return _decode_object(data)

    return UnknownNode(source=str(type_name))


def _decode_enum_values(values: list) -> SchemaNode:
    if values and all(isinstance(v, str) for v in values):
        return EnumNode(values=tuple(values))
    if len(values) == 1:
        return LiteralNode(value=values[0])
    return UnionNode(options=tuple(LiteralNode(value=v) for v in values))


def _decode_union(members: list) -> SchemaNode:
    decoded = [decode_schema(m) for m in members]
    non_null = [n for n in decoded if not (isinstance(n, LiteralNode) and n.value is None)]
    if len(non_null) == len(decoded):
        return UnionNode(options=tuple(decoded))
    if len(non_null) == 1:
        return NullableNode(inner=non_null[0])
    return NullableNode(inner=UnionNode(options=tuple(non_null)))


def _decode_type_list(data: dict, type_names: list) -> SchemaNode:
    non_null = [t for t in type_names if t != "null"]
    variants = [_decode_kind({**data, "type": t}) for t in non_null]
    inner: SchemaNode
    if len(variants) == 1:
        inner = variants[0]
    else:
        inner = UnionNode(options=tuple(variants))
    if "null" in type_names:
        return NullableNode(inner=inner)
    return inner


def _decode_object(data: dict) -> ObjectNode:
    properties = data.get("properties") or {}
    required = set(data.get("required") or [])
    fields: dict[str, SchemaNode] = {}
    for name, sub_schema in properties.items():
        node = decode_schema(sub_schema)
        if name not in required and not is_optional(node):
            node = OptionalNode(inner=node)
        fields[name] = node
    return ObjectNode(fields=fields)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate(node: SchemaNode, value: Any, path: str = "$") -> Any:
    """
    Validate a parsed value against a neutral schema.

    Unknown object keys are dropped and field defaults are filled in, so the
    return value is the cleaned structure rather than the input itself.

    Raises:
        SchemaValidationError: If the value does not conform
    """
    if isinstance(node, (OptionalNode, DefaultNode, AnnotatedNode)):
        return validate(node.inner, value, path)

    if isinstance(node, NullableNode):
        if value is None:
            return None
        return validate(node.inner, value, path)

    if isinstance(node, StringNode):
        if not isinstance(value, str):
            raise SchemaValidationError(f"expected string, got {type(value).__name__}", path)
        if node.pattern and re.search(node.pattern, value) is None:
            raise SchemaValidationError(f"does not match pattern {node.pattern!r}", path)
        return value

    if isinstance(node, NumberNode):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise SchemaValidationError(f"expected number, got {type(value).__name__}", path)
        if node.integer and not float(value).is_integer():
            raise SchemaValidationError("expected integer", path)
        return value

    if isinstance(node, BooleanNode):
        if not isinstance(value, bool):
            raise SchemaValidationError(f"expected boolean, got {type(value).__name__}", path)
        return value

    if isinstance(node, ArrayNode):
        if not isinstance(value, list):
            raise SchemaValidationError(f"expected array, got {type(value).__name__}", path)
        return [validate(node.items, item, f"{path}[{i}]") for i, item in enumerate(value)]

    if isinstance(node, ObjectNode):
        return _validate_object(node, value, path)

    if isinstance(node, EnumNode):
        if value not in node.values:
            raise SchemaValidationError(f"expected one of {list(node.values)}", path)
        return value

    if isinstance(node, LiteralNode):
        if type(value) is not type(node.value) or value != node.value:
            raise SchemaValidationError(f"expected literal {node.value!r}", path)
        return value

    if isinstance(node, UnionNode):
        for option in node.options:
            try:
                return validate(option, value, path)
            except SchemaValidationError:
                continue
        raise SchemaValidationError("no union member matched", path)

    # UnknownNode: accepted as-is, the node carries no constraint
    return value


def _validate_object(node: ObjectNode, value: Any, path: str) -> dict:
    if not isinstance(value, dict):
        raise SchemaValidationError(f"expected object, got {type(value).__name__}", path)

    result: dict[str, Any] = {}
    for name, field_node in node.fields.items():
        field_path = f"{path}.{name}"
        if name not in value:
            if not is_optional(field_node):
                raise SchemaValidationError("required field missing", field_path)
            has_default, default = _default_of(field_node)
            if has_default:
                result[name] = default
            continue
        result[name] = validate(field_node, value[name], field_path)
    return result
