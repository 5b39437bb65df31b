"""Tests for descriptor -> JSON Schema compilation."""

import pytest

from aitask.core.errors import SchemaCompileError
from aitask.schema.compiler import RECORD_FLAG, compile_schema, is_compiled_schema


class TestLeafFields:
    """Leaf descriptor strings."""

    def test_basic_types(self):
        schema = compile_schema({
            "title": "String | the title",
            "count": "Number | how many",
            "done": "Boolean | finished",
        })

        assert schema == {
            "type": "object",
            "properties": {
                "title": {"description": "the title", "type": "string"},
                "count": {"description": "how many", "type": "number"},
                "done": {"description": "finished", "type": "boolean"},
            },
            "required": ["title", "count", "done"],
        }

    def test_naming_is_length_bounded(self):
        schema = compile_schema({"name": "Naming | short name"})

        assert schema["properties"]["name"] == {
            "description": "short name",
            "type": "string",
            "maxLength": 80,
        }

    def test_paragraph_and_unknown_keywords_are_strings(self):
        schema = compile_schema({"body": "Paragraph | long text", "other": "Whatever | x"})

        assert schema["properties"]["body"] == {"description": "long text", "type": "string"}
        assert schema["properties"]["other"] == {"description": "x", "type": "string"}

    def test_text_without_separator_is_described_string(self):
        schema = compile_schema({"summary": "a short summary"})

        assert schema["properties"]["summary"] == {"description": "a short summary", "type": "string"}

    def test_non_string_scalar(self):
        schema = compile_schema({"flag": True})

        assert schema["properties"]["flag"] == {"description": "Type of bool"}


class TestOptionalFields:
    """`optional` marker handling."""

    def test_optional_string_is_nullable_and_not_required(self):
        schema = compile_schema({"a": "String | required one", "b": "String optional | d"})

        assert schema["properties"]["b"] == {
            "description": "d",
            "anyOf": [{"type": "string"}, {"type": "null"}],
        }
        assert schema["required"] == ["a"]

    def test_all_optional_omits_required(self):
        schema = compile_schema({"b": "Number optional | maybe"})

        assert "required" not in schema

    def test_optional_array(self):
        schema = compile_schema({"tags": ["String | tag", "optional"]})

        assert schema["properties"]["tags"] == {
            "anyOf": [
                {"type": "array", "items": {"description": "tag", "type": "string"}},
                {"type": "null"},
            ]
        }
        assert "required" not in schema


class TestEnum:
    """Enum parsing."""

    def test_enum_values(self):
        schema = compile_schema({"color": 'Enum | ["red", "green"]'})

        assert schema["properties"]["color"] == {"type": "string", "enum": ["red", "green"]}

    def test_malformed_enum_raises(self):
        with pytest.raises(SchemaCompileError):
            compile_schema({"color": "Enum | [red, green"})

    def test_non_array_enum_raises(self):
        with pytest.raises(SchemaCompileError):
            compile_schema({"color": 'Enum | {"a": 1}'})


class TestArraysAndRecords:
    """Arrays, unions and dynamic-key records."""

    def test_array_of_objects(self):
        schema = compile_schema({"items": [{"name": "String | item name"}]})

        assert schema["properties"]["items"] == {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"name": {"description": "item name", "type": "string"}},
                "required": ["name"],
            },
        }

    def test_any_of_union(self):
        schema = compile_schema({"values": [["String | s", "Number | n"], "anyOf"]})

        assert schema["properties"]["values"] == {
            "type": "array",
            "items": {
                "anyOf": [
                    {"description": "s", "type": "string"},
                    {"description": "n", "type": "number"},
                ]
            },
        }

    def test_empty_list_is_array_of_anything(self):
        schema = compile_schema({"anything": []})

        assert schema["properties"]["anything"] == {"type": "array", "items": {}}

    def test_record_uses_key_and_value_templates(self):
        schema = compile_schema({
            "attributes": {
                "<K> | key desc": {"value": "String | attribute value"},
                RECORD_FLAG: True,
            }
        })

        attributes = schema["properties"]["attributes"]
        assert attributes["type"] == "object"
        assert attributes["propertyNames"] == {"description": "key desc", "type": "string"}
        assert attributes["additionalProperties"]["properties"] == {
            "value": {"description": "attribute value", "type": "string"},
        }
        assert "properties" not in attributes
        assert "<K> | key desc" not in str(attributes.get("properties", {}))

    def test_record_without_sample(self):
        schema = compile_schema({"map": {RECORD_FLAG: True}})

        assert schema["properties"]["map"] == {
            "type": "object",
            "propertyNames": {"type": "string"},
            "additionalProperties": {},
        }


class TestCompiledPassThrough:
    """Already compiled schemas."""

    def test_compiled_schema_is_returned_unchanged(self):
        schema = {"type": "object", "properties": {"a": {"type": "string"}}}

        assert is_compiled_schema(schema)
        assert compile_schema(schema) is schema

    def test_descriptor_is_not_compiled_schema(self):
        assert not is_compiled_schema({"type": "String | kind"})
        assert not is_compiled_schema("String | x")
