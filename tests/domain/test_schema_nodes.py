"""
Tests for neutral schema nodes

Covers decode_schema() (JSON Schema form -> nodes) and validate().
"""

import pytest

from prompt_replay.domain.errors import SchemaValidationError
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
    StringNode,
    UnionNode,
    UnknownNode,
    decode_schema,
    field_description,
    is_optional,
    validate,
)


class TestDecodeSchema:
    """Tests for decode_schema()"""

    def test_primitives(self):
        assert decode_schema({"type": "string"}) == StringNode()
        assert decode_schema({"type": "number"}) == NumberNode()
        assert decode_schema({"type": "integer"}) == NumberNode(integer=True)
        assert decode_schema({"type": "boolean"}) == BooleanNode()

    def test_string_pattern_is_kept(self):
        node = decode_schema({"type": "string", "pattern": "^[A-Z]+$"})
        assert node == StringNode(pattern="^[A-Z]+$")

    def test_object_fields_not_required_become_optional(self):
        """Fields missing from required are wrapped in OptionalNode"""
        node = decode_schema({
            "type": "object",
            "properties": {"a": {"type": "string"}, "b": {"type": "number"}},
            "required": ["a"],
        })
        assert isinstance(node, ObjectNode)
        assert node.fields["a"] == StringNode()
        assert node.fields["b"] == OptionalNode(inner=NumberNode())

    def test_properties_without_type_are_an_object(self):
        node = decode_schema({"properties": {"x": {"type": "string"}}, "required": ["x"]})
        assert isinstance(node, ObjectNode)
        assert list(node.fields) == ["x"]

    def test_field_with_default_is_not_double_wrapped(self):
        node = decode_schema({
            "type": "object",
            "properties": {"n": {"type": "integer", "default": 3}},
        })
        assert node.fields["n"] == DefaultNode(inner=NumberNode(integer=True), default=3)

    def test_string_enum(self):
        assert decode_schema({"enum": ["a", "b"]}) == EnumNode(values=("a", "b"))

    def test_mixed_enum_becomes_union_of_literals(self):
        node = decode_schema({"enum": ["a", 1]})
        assert node == UnionNode(options=(LiteralNode(value="a"), LiteralNode(value=1)))

    def test_enum_with_null_is_nullable_enum(self):
        """A null enum value makes the enum nullable and keeps every other value"""
        node = decode_schema({"type": ["string", "null"], "enum": ["a", "b", None]})
        assert node == NullableNode(inner=EnumNode(values=("a", "b")))
        assert validate(node, None) is None
        assert validate(node, "b") == "b"

    def test_mixed_enum_with_null(self):
        node = decode_schema({"enum": [1, 2, None]})
        assert node == NullableNode(inner=UnionNode(options=(LiteralNode(value=1), LiteralNode(value=2))))

    def test_null_only_enum_is_null_literal(self):
        assert decode_schema({"enum": [None]}) == LiteralNode(value=None)

    def test_const_is_literal(self):
        assert decode_schema({"const": "fixed"}) == LiteralNode(value="fixed")

    def test_any_of_with_null_is_nullable(self):
        node = decode_schema({"anyOf": [{"type": "string"}, {"type": "null"}]})
        assert node == NullableNode(inner=StringNode())

    def test_type_list_with_null_is_nullable(self):
        node = decode_schema({"type": ["integer", "null"]})
        assert node == NullableNode(inner=NumberNode(integer=True))

    def test_any_of_without_null_is_union(self):
        node = decode_schema({"oneOf": [{"type": "string"}, {"type": "number"}]})
        assert node == UnionNode(options=(StringNode(), NumberNode()))

    def test_single_all_of_is_annotated(self):
        node = decode_schema({"allOf": [{"type": "boolean"}]})
        assert node == AnnotatedNode(inner=BooleanNode())

    def test_array_items(self):
        node = decode_schema({"type": "array", "items": {"type": "string"}})
        assert node == ArrayNode(items=StringNode())

    def test_description_is_attached(self):
        node = decode_schema({"type": "string", "description": "A name"})
        assert node.description == "A name"

    def test_unrecognized_type_is_unknown(self):
        node = decode_schema({"type": "date-time"})
        assert isinstance(node, UnknownNode)
        assert node.source == "date-time"

    def test_non_dict_is_unknown(self):
        assert isinstance(decode_schema("string"), UnknownNode)


class TestOptionalityHelpers:
    """Tests for is_optional() and field_description()"""

    def test_is_optional(self):
        assert is_optional(OptionalNode(inner=StringNode()))
        assert is_optional(DefaultNode(inner=StringNode(), default="x"))
        assert is_optional(AnnotatedNode(inner=OptionalNode(inner=StringNode())))
        assert not is_optional(NullableNode(inner=StringNode()))
        assert not is_optional(StringNode())

    def test_field_description_looks_through_wrappers(self):
        node = OptionalNode(inner=NullableNode(inner=StringNode(description="inner doc")))
        assert field_description(node) == "inner doc"
        assert field_description(StringNode()) is None


class TestValidate:
    """Tests for validate()"""

    SCHEMA = ObjectNode(fields={
        "title": StringNode(),
        "score": NumberNode(),
        "tags": OptionalNode(inner=ArrayNode(items=StringNode())),
        "level": DefaultNode(inner=EnumNode(values=("low", "high")), default="low"),
        "note": NullableNode(inner=StringNode()),
    })

    def test_valid_object_applies_defaults_and_drops_unknown_keys(self):
        cleaned = validate(self.SCHEMA, {"title": "t", "score": 1.5, "note": None, "extra": 1})
        assert cleaned == {"title": "t", "score": 1.5, "level": "low", "note": None}

    def test_missing_required_field(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            validate(self.SCHEMA, {"score": 1, "note": None})
        assert exc_info.value.path == "$.title"

    def test_wrong_nested_type_reports_path(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            validate(self.SCHEMA, {"title": "t", "score": 1, "note": None, "tags": ["a", 2]})
        assert exc_info.value.path == "$.tags[1]"

    def test_bool_is_not_a_number(self):
        with pytest.raises(SchemaValidationError):
            validate(NumberNode(), True)

    def test_integer(self):
        assert validate(NumberNode(integer=True), 3) == 3
        with pytest.raises(SchemaValidationError, match="expected integer"):
            validate(NumberNode(integer=True), 3.5)

    def test_pattern_is_checked(self):
        node = StringNode(pattern="^[0-9]{3}$")
        assert validate(node, "123") == "123"
        with pytest.raises(SchemaValidationError, match="pattern"):
            validate(node, "12a")

    def test_literal_is_type_strict(self):
        with pytest.raises(SchemaValidationError):
            validate(LiteralNode(value=1), True)
        assert validate(LiteralNode(value=1), 1) == 1

    def test_union_tries_members_in_order(self):
        node = UnionNode(options=(NumberNode(), StringNode()))
        assert validate(node, "x") == "x"
        with pytest.raises(SchemaValidationError, match="no union member matched"):
            validate(node, [])

    def test_unknown_accepts_anything(self):
        assert validate(UnknownNode(source="x"), {"a": [1]}) == {"a": [1]}

    def test_enum(self):
        with pytest.raises(SchemaValidationError):
            validate(EnumNode(values=("a",)), "b")
