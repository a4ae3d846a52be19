"""
JSON serialization helpers for schemas and metadata values.

Provides a single canonical JSON policy, the JSON shape of types and schemas stored in
table metadata, and ``to_json_value`` for partition values and column bounds. Zero-IO.

Schema JSON shape
- struct: ``{"type": "struct", "fields": [{"id", "name", "required", "type", "doc"?}]}``
- list: ``{"type": "list", "element-id", "element", "element-required"}``
- map: ``{"type": "map", "key-id", "key", "value-id", "value", "value-required"}``
- primitives: their string form (``"long"``, ``"fixed[16]"``, ``"decimal(9, 2)"``).
- schema: the root struct plus ``"schema-id"``.

Notes:
    - Canonical JSON: sort_keys=True, separators=(",", ":"), ensure_ascii=False.
"""

from __future__ import annotations

import json
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID

from .errors import SchemaError
from .types import ListType, MapType, NestedField, PrimitiveType, Schema, StructType, Type

__all__ = [
    "json_dumps_canonical",
    "json_loads",
    "to_json_value",
    "type_to_json",
    "type_from_json",
    "schema_to_json",
    "schema_from_json",
]


def json_dumps_canonical(obj: Any) -> str:
    """Serialize an object to a canonical JSON string."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def json_loads(s: str) -> Any:
    """Deserialize a JSON string with the stdlib json module (no custom hooks)."""
    return json.loads(s)


def to_json_value(value: Any) -> Any:
    """
    Convert a record value to a JSON-friendly scalar.

    Dates/times become ISO-8601 strings, decimals and UUIDs their string form, and bytes
    lowercase hex. Other values pass through unchanged.

    Examples:
        >>> from datetime import date
        >>> to_json_value(date(2024, 1, 2)), to_json_value(b"\\x01\\xff")
        ('2024-01-02', '01ff')
    """
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    return value


def _field_to_json(f: NestedField) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": f.field_id,
        "name": f.name,
        "required": f.required,
        "type": type_to_json(f.type),
    }
    if f.doc is not None:
        out["doc"] = f.doc
    return out


def type_to_json(t: Type) -> Any:
    if isinstance(t, StructType):
        return {"type": "struct", "fields": [_field_to_json(f) for f in t.fields]}
    if isinstance(t, ListType):
        return {
            "type": "list",
            "element-id": t.element_id,
            "element": type_to_json(t.element_type),
            "element-required": t.element_required,
        }
    if isinstance(t, MapType):
        return {
            "type": "map",
            "key-id": t.key_id,
            "key": type_to_json(t.key_type),
            "value-id": t.value_id,
            "value": type_to_json(t.value_type),
            "value-required": t.value_required,
        }
    return str(t)


def type_from_json(obj: Any) -> Type:
    """
    Rebuild a type from its JSON shape.

    Raises:
        SchemaError: If the object is not a recognized type shape.
    """
    if isinstance(obj, str):
        return PrimitiveType.parse(obj)
    if not isinstance(obj, dict):
        raise SchemaError(f"cannot parse type from {obj!r}")
    kind = obj.get("type")
    if kind == "struct":
        return StructType(tuple(_field_from_json(f) for f in obj.get("fields") or []))
    if kind == "list":
        return ListType(
            NestedField(
                int(obj["element-id"]),
                "element",
                bool(obj["element-required"]),
                type_from_json(obj["element"]),
            )
        )
    if kind == "map":
        return MapType(
            NestedField(int(obj["key-id"]), "key", True, type_from_json(obj["key"])),
            NestedField(
                int(obj["value-id"]),
                "value",
                bool(obj["value-required"]),
                type_from_json(obj["value"]),
            ),
        )
    raise SchemaError(f"unknown nested type {kind!r}")


def _field_from_json(obj: dict[str, Any]) -> NestedField:
    return NestedField(
        int(obj["id"]),
        obj["name"],
        bool(obj["required"]),
        type_from_json(obj["type"]),
        obj.get("doc"),
    )


def schema_to_json(schema: Schema) -> dict[str, Any]:
    out = type_to_json(schema.as_struct())
    out["schema-id"] = schema.schema_id
    return out


def schema_from_json(obj: dict[str, Any]) -> Schema:
    fields = [_field_from_json(f) for f in obj.get("fields") or []]
    return Schema(*fields, schema_id=int(obj.get("schema-id", 0)))
