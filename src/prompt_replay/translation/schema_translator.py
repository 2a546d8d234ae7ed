"""
Schema Translator

Converts a neutral schema into each provider's native constrained-output
format:
- Gemini: google-genai Schema dictionaries (upper-case type names, nullable flag)
- OpenAI / Claude: JSON Schema dictionaries

Lossy cases are logged rather than raised: regex constraints are dropped,
mixed unions keep only their first member, and unknown node kinds become an
unconstrained string.
"""

from __future__ import annotations

import logging

from prompt_replay.domain.constants import ModelProvider
from prompt_replay.domain.schema_nodes import (
    AnnotatedNode,
    ArrayNode,
    BooleanNode,
    DefaultNode,
    EnumNode,
    LiteralNode,
    NullableNode,
    NumberNode,
    ObjectNode,
    OptionalNode,
    SchemaNode,
    StringNode,
    UnionNode,
    UnknownNode,
    field_description,
    is_optional,
)

logger = logging.getLogger(__name__)


class SchemaVisitor:
    """Dispatches on the node kind tag; one visit_<kind> method per kind"""

    def visit(self, node: SchemaNode) -> dict:
        method = getattr(self, f"visit_{node.kind}", None)
        if method is None:
            return self.visit_unknown(UnknownNode(source=type(node).__name__))
        return method(node)

    # Wrappers unwrap to their inner type; optionality is handled by the object
    def visit_optional(self, node: OptionalNode) -> dict:
        return self.visit(node.inner)

    def visit_default(self, node: DefaultNode) -> dict:
        return self.visit(node.inner)

    def visit_annotated(self, node: AnnotatedNode) -> dict:
        return self.visit(node.inner)

    def visit_union(self, node: UnionNode) -> dict:
        options = node.options
        if options and all(isinstance(o, LiteralNode) and isinstance(o.value, str) for o in options):
            return self.string_enum([o.value for o in options])
        if not options:
            logger.warning("Empty union in schema, translating as string")
            return self.string()
        logger.debug("Mixed union translated as its first member (%s)", options[0].kind)
        return self.visit(options[0])

    def visit_enum(self, node: EnumNode) -> dict:
        return self.string_enum(list(node.values))

    def visit_unknown(self, node: UnknownNode) -> dict:
        logger.warning("Unknown schema node kind '%s', defaulting to string", node.source)
        return self.string()

    def visit_string(self, node: StringNode) -> dict:
        if node.pattern:
            logger.debug("Regex constraint %r cannot be translated, using plain string", node.pattern)
        return self.string()

    def string(self) -> dict:
        raise NotImplementedError

    def string_enum(self, values: list[str]) -> dict:
        raise NotImplementedError


class GeminiSchemaVisitor(SchemaVisitor):
    """Translates to Gemini's native Schema format"""

    def string(self) -> dict:
        return {"type": "STRING"}

    def string_enum(self, values: list[str]) -> dict:
        return {"type": "STRING", "enum": values}

    def visit_number(self, node: NumberNode) -> dict:
        return {"type": "INTEGER" if node.integer else "NUMBER"}

    def visit_boolean(self, node: BooleanNode) -> dict:
        return {"type": "BOOLEAN"}

    def visit_array(self, node: ArrayNode) -> dict:
        return {"type": "ARRAY", "items": self.visit(node.items)}

    def visit_nullable(self, node: NullableNode) -> dict:
        return {**self.visit(node.inner), "nullable": True}

    def visit_literal(self, node: LiteralNode) -> dict:
        value = node.value
        if isinstance(value, str):
            return {"type": "STRING", "enum": [value]}
        # Gemini only supports enums on strings
        if isinstance(value, bool):
            return {"type": "BOOLEAN"}
        if isinstance(value, (int, float)):
            return {"type": "NUMBER"}
        return {"type": "STRING"}

    def visit_object(self, node: ObjectNode) -> dict:
        properties: dict[str, dict] = {}
        required: list[str] = []
        for name, field_node in node.fields.items():
            properties[name] = self.visit(field_node)
            if not is_optional(field_node):
                required.append(name)
            description = field_description(field_node)
            if description:
                properties[name]["description"] = description

        schema: dict = {"type": "OBJECT", "properties": properties}
        if required:
            schema["required"] = required
        return schema


class JsonSchemaVisitor(SchemaVisitor):
    """Translates to JSON Schema (OpenAI response_format, Claude tool input)"""

    def string(self) -> dict:
        return {"type": "string"}

    def string_enum(self, values: list[str]) -> dict:
        return {"type": "string", "enum": values}

    def visit_number(self, node: NumberNode) -> dict:
        return {"type": "integer" if node.integer else "number"}

    def visit_boolean(self, node: BooleanNode) -> dict:
        return {"type": "boolean"}

    def visit_array(self, node: ArrayNode) -> dict:
        return {"type": "array", "items": self.visit(node.items)}

    def visit_nullable(self, node: NullableNode) -> dict:
        inner = self.visit(node.inner)
        if isinstance(inner.get("type"), str):
            nullable = {**inner, "type": [inner["type"], "null"]}
            if isinstance(inner.get("enum"), list) and None not in inner["enum"]:
                nullable["enum"] = [*inner["enum"], None]
            return nullable
        return {"anyOf": [inner, {"type": "null"}]}

    def visit_literal(self, node: LiteralNode) -> dict:
        value = node.value
        if isinstance(value, str):
            return {"type": "string", "enum": [value]}
        if isinstance(value, bool):
            return {"type": "boolean", "enum": [value]}
        if isinstance(value, int):
            return {"type": "integer", "enum": [value]}
        if isinstance(value, float):
            return {"type": "number", "enum": [value]}
        if value is None:
            return {"type": "null"}
        return {"type": "string"}

    def visit_object(self, node: ObjectNode) -> dict:
        properties: dict[str, dict] = {}
        required: list[str] = []
        for name, field_node in node.fields.items():
            properties[name] = self.visit(field_node)
            if not is_optional(field_node):
                required.append(name)
            description = field_description(field_node)
            if description:
                properties[name]["description"] = description

        return {
            "type": "object",
            "properties": properties,
            "required": required,
            "additionalProperties": False,
        }


_VISITORS: dict[ModelProvider, SchemaVisitor] = {
    ModelProvider.GEMINI: GeminiSchemaVisitor(),
    ModelProvider.OPENAI: JsonSchemaVisitor(),
    ModelProvider.CLAUDE: JsonSchemaVisitor(),
}


def translate_schema(node: SchemaNode, provider: ModelProvider) -> dict:
    """
    Translate a neutral schema to a provider's native format

    Args:
        node: Neutral schema root
        provider: Target provider

    Returns:
        dict: Native schema (never raises on unsupported node kinds)
    """
    return _VISITORS[ModelProvider(provider)].visit(node)


def to_gemini_schema(node: SchemaNode) -> dict:
    return translate_schema(node, ModelProvider.GEMINI)


def to_json_schema(node: SchemaNode) -> dict:
    return translate_schema(node, ModelProvider.OPENAI)
