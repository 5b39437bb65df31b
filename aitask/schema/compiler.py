"""Output-descriptor to JSON Schema compiler.

Descriptor syntax:
    Leaf strings use `"<TypeKeyword>[ optional] | <description-or-JSON-array>"`.
    Keywords: String, Number, Boolean, Naming (max 80 chars), Paragraph, Enum.
    Lists describe arrays: `[item]`, `[item, "optional"]` for a nullable array and
    `[[a, b], "anyOf"]` for a union of item schemas. An object carrying
    `"__is_record": true` is a dynamic-key map whose single sample entry supplies
    the key schema and the shared value schema.

Design constraints:
    - Pure transform, no I/O.
    - Optional fields become `anyOf [<type>, null]` and are left out of `required`.
    - The produced document carries no `$schema` key; Gemini rejects unknown keys.
"""

import json

from aitask.core.errors import SchemaCompileError


RECORD_FLAG = "__is_record"
OPTIONAL_MARKER = "optional"
ANY_OF_MARKER = "anyOf"
NAMING_MAX_LENGTH = 80


def is_compiled_schema(value) -> bool:
    """Return whether `value` already is a JSON Schema with an object/array root."""
    if not isinstance(value, dict):
        return False
    if value.get("type") not in ("object", "array"):
        return False
    return any(key in value for key in ("properties", "items", "additionalProperties"))


def compile_schema(descriptor) -> dict:
    """Compile a descriptor object into a JSON Schema document.

    Args:
        descriptor: Descriptor object, list or leaf string. Already compiled schemas
            are returned unchanged.

    Returns:
        JSON Schema dictionary.

    Raises:
        SchemaCompileError: On malformed `Enum` values.
    """
    if is_compiled_schema(descriptor):
        return descriptor
    return _convert(descriptor)


def _convert(node):
    if isinstance(node, dict):
        if node.get(RECORD_FLAG):
            return _convert_record(node)
        return _convert_object(node)

    if isinstance(node, list):
        if len(node) > 1 and isinstance(node[0], list) and node[1] == ANY_OF_MARKER:
            return _union_array(node[0])
        if node:
            return {"type": "array", "items": _convert(node[0])}
        return {"type": "array", "items": {}}

    if isinstance(node, str):
        schema, _ = _parse_leaf(node)
        return schema

    return {"description": f"Type of {type(node).__name__}"}


def _convert_object(node: dict) -> dict:
    properties = {}
    required = []

    for key, value in node.items():
        optional = False

        if isinstance(value, str):
            schema, optional = _parse_leaf(value)
        elif isinstance(value, list):
            schema, optional = _convert_array_field(value)
        elif isinstance(value, dict):
            schema = _convert(value)
        else:
            schema = {"description": f"Type of {type(value).__name__}"}

        properties[key] = schema
        if not optional:
            required.append(key)

    result = {"type": "object", "properties": properties}
    if required:
        result["required"] = required
    return result


def _convert_array_field(value: list):
    """Compile a list-valued object field, returning `(schema, is_optional)`."""
    if not value:
        return {"type": "array", "items": {}}, False

    if len(value) > 1 and value[1] == OPTIONAL_MARKER:
        array_schema = {"type": "array", "items": _convert(value[0])}
        return {"anyOf": [array_schema, {"type": "null"}]}, True

    if len(value) > 1 and isinstance(value[0], list) and value[1] == ANY_OF_MARKER:
        return _union_array(value[0]), False

    return {"type": "array", "items": _convert(value[0])}, False


def _union_array(members: list) -> dict:
    return {
        "type": "array",
        "items": {"anyOf": [_convert(member) for member in members]},
    }


def _convert_record(node: dict) -> dict:
    sample_keys = [key for key in node if key != RECORD_FLAG]
    if not sample_keys:
        return {
            "type": "object",
            "propertyNames": {"type": "string"},
            "additionalProperties": {},
        }

    sample_key = sample_keys[0]
    key_schema, _ = _parse_leaf(sample_key)
    return {
        "type": "object",
        "propertyNames": key_schema,
        "additionalProperties": _convert(node[sample_key]),
    }


def _parse_leaf(text: str):
    """Parse one leaf descriptor string, returning `(schema, is_optional)`."""
    if "|" not in text:
        return {"description": text, "type": "string"}, False

    parts = [part.strip() for part in text.split("|")]
    keyword = (parts[0] or "string").lower()
    description = parts[1] if len(parts) > 1 and parts[1] else parts[0]

    optional = False
    if " " + OPTIONAL_MARKER in keyword:
        optional = True
        keyword = keyword.replace(" " + OPTIONAL_MARKER, "").strip()

    if keyword == "number":
        type_schema = {"type": "number"}
    elif keyword == "boolean":
        type_schema = {"type": "boolean"}
    elif keyword == "naming":
        type_schema = {"type": "string", "maxLength": NAMING_MAX_LENGTH}
    elif keyword == "enum":
        type_schema = {"type": "string", "enum": _parse_enum(description)}
        description = None
    else:
        type_schema = {"type": "string"}

    if optional:
        schema = {"anyOf": [type_schema, {"type": "null"}]}
    else:
        schema = dict(type_schema)

    if description:
        schema = {"description": description, **schema}

    return schema, optional


def _parse_enum(literal: str) -> list:
    try:
        values = json.loads(literal)
    except (TypeError, ValueError) as exc:
        raise SchemaCompileError(f"Malformed Enum: {exc}") from exc

    if not isinstance(values, list):
        raise SchemaCompileError("Malformed Enum: Enum values must be a JSON array.")

    return values
