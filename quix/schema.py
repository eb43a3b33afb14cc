"""
Quix - Parameter schema normalization and runtime argument validators.

Tool servers publish JSON-Schema-like parameter documents of varying
quality. Before a document is used it is normalized (array nodes always
carry an ``items`` sub-schema), optionally given workspace-level defaults,
and translated into a pydantic model that validates proposed arguments.
"""

import copy
import itertools
import logging
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, create_model

from .exceptions import SchemaError

logger = logging.getLogger("quix.schema")

DEFAULT_ARRAY_ITEMS: dict[str, Any] = {"type": "object"}

_JSON_TYPES: dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
    "null": type(None),
}

_model_counter = itertools.count(1)


def normalize_schema(schema: Any) -> Any:
    """Return a copy of *schema* where every array node has an ``items`` schema.

    Array-typed nodes lacking ``items`` are given ``{"type": "object"}``.
    The fix is applied recursively through ``properties`` and ``items``.
    The input document is never mutated.
    """
    if not isinstance(schema, dict):
        return schema

    fixed = dict(schema)

    if _is_array(fixed) and fixed.get("items") is None:
        fixed["items"] = dict(DEFAULT_ARRAY_ITEMS)

    properties = fixed.get("properties")
    if isinstance(properties, dict):
        fixed["properties"] = {key: normalize_schema(value) for key, value in properties.items()}

    if isinstance(fixed.get("items"), dict):
        fixed["items"] = normalize_schema(fixed["items"])

    for key in ("anyOf", "oneOf"):
        if isinstance(fixed.get(key), list):
            fixed[key] = [normalize_schema(option) for option in fixed[key]]

    return fixed


def _is_array(schema: dict[str, Any]) -> bool:
    node_type = schema.get("type")
    if isinstance(node_type, list):
        return "array" in node_type
    return node_type == "array"


def apply_defaults(schema: dict[str, Any], defaults: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Make top-level parameters named in *defaults* optional with that default.

    Parameters not named in *defaults* are left untouched, as are default
    names with no matching parameter.
    """
    if not defaults:
        return schema

    updated = copy.deepcopy(schema)
    properties = updated.get("properties") or {}
    required = list(updated.get("required") or [])

    for name, value in defaults.items():
        if name not in properties:
            continue
        prop = dict(properties[name]) if isinstance(properties[name], dict) else {}
        prop["default"] = value
        properties[name] = prop
        if name in required:
            required.remove(name)
        logger.debug("Added default value for property %s", name)

    updated["properties"] = properties
    if "required" in updated or required:
        updated["required"] = required
    return updated


def schema_defaults(schema: dict[str, Any]) -> dict[str, Any]:
    """Return the top-level ``default`` values declared by *schema*."""
    properties = schema.get("properties") or {}
    return {
        name: prop["default"]
        for name, prop in properties.items()
        if isinstance(prop, dict) and "default" in prop
    }


def schema_to_model(schema: dict[str, Any], name: str = "ToolArguments") -> type[BaseModel]:
    """Translate an object schema into a pydantic model class.

    Raises:
        SchemaError: If the schema uses an array node without ``items`` or is
            not an object schema.
    """
    if not isinstance(schema, dict):
        raise SchemaError(f"Schema for {name} must be a mapping, got {type(schema).__name__}")
    node_type = schema.get("type", "object")
    if node_type != "object" and "properties" not in schema:
        raise SchemaError(f"Schema for {name} must describe an object, got '{node_type}'")
    return _object_model(schema, name)


def _object_model(schema: dict[str, Any], name: str) -> type[BaseModel]:
    properties = schema.get("properties") or {}
    required = set(schema.get("required") or [])
    extra = "forbid" if schema.get("additionalProperties") is False else "allow"

    fields: dict[str, Any] = {}
    for index, (prop_name, prop_schema) in enumerate(properties.items()):
        if not isinstance(prop_schema, dict):
            prop_schema = {}
        annotation = _annotation(prop_schema, f"{name}_{prop_name}")
        description = prop_schema.get("description")
        # Property names are free-form; fields are positional and aliased back.
        field_name = f"field_{index}"
        if prop_name in required and "default" not in prop_schema:
            fields[field_name] = (annotation, Field(..., alias=prop_name, description=description))
        else:
            default = prop_schema.get("default")
            fields[field_name] = (
                Optional[annotation],
                Field(default, alias=prop_name, description=description),
            )

    model_name = f"{_safe_name(name)}_{next(_model_counter)}"
    return create_model(
        model_name,
        __config__=ConfigDict(extra=extra, populate_by_name=False),
        **fields,
    )


def _annotation(schema: Any, name: str) -> Any:
    # Boolean subschemas (`true`) and `{}` accept any value.
    if not isinstance(schema, dict) or not schema:
        return Any
    if "enum" in schema and schema["enum"]:
        return Literal[tuple(schema["enum"])]
    if "const" in schema:
        return Literal[schema["const"]]

    for key in ("anyOf", "oneOf"):
        if isinstance(schema.get(key), list) and schema[key]:
            options = tuple(
                _annotation(option, f"{name}_{i}") for i, option in enumerate(schema[key])
            )
            if Any in options:
                return Any
            return Union[options] if len(options) > 1 else options[0]

    node_type = schema.get("type")
    if isinstance(node_type, list):
        options = tuple(_annotation({**schema, "type": t}, name) for t in node_type)
        return Union[options] if len(options) > 1 else options[0]

    if node_type == "array":
        items = schema.get("items")
        if items is None:
            raise SchemaError(f"Array schema '{name}' has no items; normalize the schema first")
        if isinstance(items, list):
            return list[Any]
        return list[_annotation(items, f"{name}_item")]

    if node_type == "object" or (node_type is None and "properties" in schema):
        if schema.get("properties"):
            return _object_model(schema, name)
        return dict[str, Any]

    if node_type in _JSON_TYPES:
        return _JSON_TYPES[node_type]
    return Any


def _safe_name(name: str) -> str:
    cleaned = "".join(c if c.isalnum() else "_" for c in name)
    return cleaned or "Model"


class ArgumentValidator:
    """Validates tool arguments against a normalized parameter schema."""

    def __init__(self, schema: dict[str, Any], name: str = "ToolArguments") -> None:
        self.schema = schema
        self.model = schema_to_model(schema, name)
        self._defaults = schema_defaults(schema)

    def validate(self, args: dict[str, Any]) -> dict[str, Any]:
        """Return *args* checked against the schema with defaults filled in.

        Raises:
            pydantic.ValidationError: If the arguments do not conform.
        """
        instance = self.model.model_validate(args)
        validated = instance.model_dump(by_alias=True, exclude_unset=True)
        for key, value in (instance.model_extra or {}).items():
            validated.setdefault(key, value)
        for key, value in self._defaults.items():
            validated.setdefault(key, value)
        return validated
