"""OpenAPI schema -> JSON Schema (draft-07) translation.

References are not followed here; the index resolves the top-level
``$ref`` before translation and nested references are kept as pointers.
"""

import json
import logging

logger = logging.getLogger(__name__)

DRAFT_07 = "http://json-schema.org/draft-07/schema#"

_SCALAR_KEYWORDS = ("title", "description", "format")
_FLAG_KEYWORDS = ("deprecated", "readOnly", "writeOnly")
_STRING_KEYWORDS = ("minLength", "maxLength", "pattern")
_ARRAY_KEYWORDS = ("minItems", "maxItems", "uniqueItems")
_COMPOSITION_KEYWORDS = ("allOf", "anyOf", "oneOf")


def to_json_schema(schema) -> dict:
    """Translate an OpenAPI schema node into a neutral JSON Schema document.

    Returns ``{}`` if translation fails for any reason.
    """
    try:
        converted = _convert(schema)
    except Exception:
        logger.exception("Error converting OpenAPI schema to JSON Schema")
        return {}

    root = {"$schema": DRAFT_07}
    if converted:
        root.update(converted)
    return root


def convert_to_json_schema(schema) -> str:
    """Serialized (pretty-printed) form of :func:`to_json_schema`."""
    document = to_json_schema(schema)
    try:
        return json.dumps(document, indent=2, default=str)
    except (TypeError, ValueError):
        logger.exception("Error serializing JSON Schema")
        return "{}"


def _convert(s) -> dict | None:
    if s is None:
        return None
    if isinstance(s, bool):
        # JSON Schema boolean schemas are already neutral.
        return {} if s else {"not": {}}
    if not isinstance(s, dict):
        raise TypeError(f"Schema node must be a mapping, got {type(s).__name__}")

    if "$ref" in s:
        return {"$ref": s["$ref"]}

    n: dict = {}

    for key in _SCALAR_KEYWORDS:
        if isinstance(s.get(key), str) and s[key].strip():
            n[key] = s[key]
    for key in ("default", "example"):
        if s.get(key) is not None:
            n[key] = s[key]
    for key in _FLAG_KEYWORDS:
        if s.get(key) is True:
            n[key] = True
    if s.get("multipleOf") is not None:
        n["multipleOf"] = s["multipleOf"]
    if s.get("enum"):
        n["enum"] = list(s["enum"])

    for key in _COMPOSITION_KEYWORDS:
        branches = s.get(key)
        if branches:
            n[key] = [_convert(branch) for branch in branches]
    if s.get("not") is not None:
        n["not"] = _convert(s["not"])
    # No early return: type and property keywords may sit beside a composition.

    schema_type = s.get("type")
    nullable = s.get("nullable") is True
    if schema_type is not None:
        if isinstance(schema_type, list):
            types = list(schema_type)
            if nullable and "null" not in types:
                types.append("null")
            n["type"] = types
        elif nullable:
            n["type"] = [schema_type, "null"]
        else:
            n["type"] = schema_type
    elif nullable:
        n["type"] = ["null"]

    _copy_numeric_bounds(s, n)

    for key in _STRING_KEYWORDS:
        if s.get(key) is not None:
            n[key] = s[key]

    if _has_type(schema_type, "array") or (schema_type is None and "items" in s):
        if s.get("items") is not None:
            n["items"] = _convert(s["items"])
        for key in _ARRAY_KEYWORDS:
            if s.get(key) is not None:
                n[key] = s[key]

    if _has_type(schema_type, "object") or (
        schema_type is None and ("properties" in s or "additionalProperties" in s)
    ):
        n["properties"] = {name: _convert(prop) for name, prop in (s.get("properties") or {}).items()}
        if s.get("required"):
            n["required"] = list(s["required"])

        additional = s.get("additionalProperties")
        if isinstance(additional, bool):
            n["additionalProperties"] = additional
        elif isinstance(additional, dict):
            n["additionalProperties"] = _convert(additional)

    return n


def _copy_numeric_bounds(s: dict, n: dict) -> None:
    # OpenAPI 3.0 marks bounds exclusive with booleans; draft-07 carries the value itself.
    for bound, exclusive in (("minimum", "exclusiveMinimum"), ("maximum", "exclusiveMaximum")):
        value = s.get(bound)
        flag = s.get(exclusive)
        if flag is True and value is not None:
            n[exclusive] = value
        elif value is not None:
            n[bound] = value
        if isinstance(flag, (int, float)) and not isinstance(flag, bool):
            n[exclusive] = flag
            n.pop(bound, None)


def _has_type(schema_type, name: str) -> bool:
    if isinstance(schema_type, list):
        return name in schema_type
    return schema_type == name
