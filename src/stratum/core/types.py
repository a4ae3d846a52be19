"""
Type model for table schemas.

Defines the closed set of primitive and nested types, ID-carrying fields, and the
immutable Schema that forms an implicit root struct. Field IDs are the only stable
identity across schema versions; names and positions are not.

Responsibilities
- Primitive types: boolean, int (32-bit), long (64-bit), float (32-bit), double (64-bit),
  date, time, timestamp (without zone), timestamptz (with zone), string, uuid,
  fixed[L], binary, decimal(P, S).
- Nested types: struct, list (one element field), map (key field + value field).
- Schema: ordered top-level fields, unique field ids across the whole tree, lookup by
  id or name.

Notes
- Types compare by shape (dataclass equality), never by reference.
- Schemas are intentionally not comparable with ``==``; use stratum.core.compat to decide
  whether one schema can stand in for another.
- Zero-IO; stdlib only.

Examples:
    >>> from stratum.core.types import LONG, STRING, ListType, Schema, optional, required
    >>> schema = Schema(
    ...     required(1, "id", LONG),
    ...     optional(2, "tags", ListType.of_optional(3, STRING)),
    ... )
    >>> schema.find_column_name(3)
    'tags.element'
    >>> str(schema.find_field("tags").type)
    'list<string>'
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Final

from .errors import SchemaError

__all__ = [
    "TypeId",
    "Type",
    "PrimitiveType",
    "NestedField",
    "StructType",
    "ListType",
    "MapType",
    "Schema",
    "required",
    "optional",
    "fixed",
    "decimal",
    "BOOLEAN",
    "INT",
    "LONG",
    "FLOAT",
    "DOUBLE",
    "DATE",
    "TIME",
    "TIMESTAMP",
    "TIMESTAMPTZ",
    "STRING",
    "UUID",
    "BINARY",
]


class TypeId(str, Enum):
    """Closed set of type kinds. Values are the lower_snake names used in messages and JSON."""

    BOOLEAN = "boolean"
    INT = "int"
    LONG = "long"
    FLOAT = "float"
    DOUBLE = "double"
    DATE = "date"
    TIME = "time"
    TIMESTAMP = "timestamp"
    TIMESTAMPTZ = "timestamptz"
    STRING = "string"
    UUID = "uuid"
    FIXED = "fixed"
    BINARY = "binary"
    DECIMAL = "decimal"
    STRUCT = "struct"
    LIST = "list"
    MAP = "map"


_NESTED_IDS: Final[frozenset[TypeId]] = frozenset({TypeId.STRUCT, TypeId.LIST, TypeId.MAP})


class Type:
    """Base for all types. Subclasses are frozen dataclasses exposing ``type_id``."""

    type_id: TypeId

    @property
    def is_primitive(self) -> bool:
        return self.type_id not in _NESTED_IDS

    @property
    def is_nested(self) -> bool:
        return self.type_id in _NESTED_IDS


@dataclass(frozen=True)
class PrimitiveType(Type):
    """
    A primitive type.

    Attributes:
        type_id (TypeId): Primitive kind (never struct/list/map).
        length (int | None): Byte length, set only for fixed.
        precision (int | None): Decimal precision, set only for decimal.
        scale (int | None): Decimal scale, set only for decimal.

    Raises:
        SchemaError: If the kind is nested or parameters do not match the kind.
    """

    type_id: TypeId
    length: int | None = None
    precision: int | None = None
    scale: int | None = None

    def __post_init__(self) -> None:
        if self.type_id in _NESTED_IDS:
            raise SchemaError(f"{self.type_id.value} is not a primitive type")
        if self.type_id is TypeId.FIXED:
            if self.length is None or self.length <= 0:
                raise SchemaError(f"fixed length must be positive, got {self.length}")
        elif self.length is not None:
            raise SchemaError(f"length is only valid for fixed, not {self.type_id.value}")
        if self.type_id is TypeId.DECIMAL:
            if self.precision is None or self.scale is None:
                raise SchemaError("decimal requires precision and scale")
            if not 0 < self.precision <= 38:
                raise SchemaError(f"decimal precision must be in [1, 38], got {self.precision}")
        elif self.precision is not None or self.scale is not None:
            raise SchemaError(f"precision/scale are only valid for decimal, not {self.type_id.value}")

    def __str__(self) -> str:
        if self.type_id is TypeId.FIXED:
            return f"fixed[{self.length}]"
        if self.type_id is TypeId.DECIMAL:
            return f"decimal({self.precision}, {self.scale})"
        return self.type_id.value

    @classmethod
    def parse(cls, text: str) -> PrimitiveType:
        """
        Parse the string form produced by ``str(PrimitiveType)``.

        Raises:
            SchemaError: If the text does not name a primitive type.
        """
        s = text.strip().lower()
        m = _FIXED_RE.match(s)
        if m:
            return fixed(int(m.group(1)))
        m = _DECIMAL_RE.match(s)
        if m:
            return decimal(int(m.group(1)), int(m.group(2)))
        try:
            kind = TypeId(s)
        except ValueError:
            raise SchemaError(f"unknown primitive type {text!r}") from None
        return cls(kind)


_FIXED_RE: Final[re.Pattern[str]] = re.compile(r"^fixed\[(\d+)\]$")
_DECIMAL_RE: Final[re.Pattern[str]] = re.compile(r"^decimal\(\s*(\d+)\s*,\s*(\d+)\s*\)$")

BOOLEAN: Final = PrimitiveType(TypeId.BOOLEAN)
INT: Final = PrimitiveType(TypeId.INT)
LONG: Final = PrimitiveType(TypeId.LONG)
FLOAT: Final = PrimitiveType(TypeId.FLOAT)
DOUBLE: Final = PrimitiveType(TypeId.DOUBLE)
DATE: Final = PrimitiveType(TypeId.DATE)
TIME: Final = PrimitiveType(TypeId.TIME)
TIMESTAMP: Final = PrimitiveType(TypeId.TIMESTAMP)
TIMESTAMPTZ: Final = PrimitiveType(TypeId.TIMESTAMPTZ)
STRING: Final = PrimitiveType(TypeId.STRING)
UUID: Final = PrimitiveType(TypeId.UUID)
BINARY: Final = PrimitiveType(TypeId.BINARY)


def fixed(length: int) -> PrimitiveType:
    """Fixed-length binary of ``length`` bytes."""
    return PrimitiveType(TypeId.FIXED, length=length)


def decimal(precision: int, scale: int) -> PrimitiveType:
    """Decimal with the given precision and scale."""
    return PrimitiveType(TypeId.DECIMAL, precision=precision, scale=scale)


@dataclass(frozen=True)
class NestedField:
    """
    A named, ID-carrying field.

    Attributes:
        field_id (int): Stable id; the sole key used to match fields across schema versions.
        name (str): Current field name (not stable).
        required (bool): False when the field may be null or absent.
        type (Type): Field type.
        doc (str | None): Optional documentation string.
    """

    field_id: int
    name: str
    required: bool
    type: Type
    doc: str | None = None

    @property
    def is_optional(self) -> bool:
        return not self.required

    def __str__(self) -> str:
        req = "required" if self.required else "optional"
        return f"{self.field_id}: {self.name}: {req} {self.type}"


def required(field_id: int, name: str, field_type: Type, doc: str | None = None) -> NestedField:
    """Build a required field."""
    return NestedField(field_id, name, True, field_type, doc)


def optional(field_id: int, name: str, field_type: Type, doc: str | None = None) -> NestedField:
    """Build an optional field."""
    return NestedField(field_id, name, False, field_type, doc)


@dataclass(frozen=True)
class StructType(Type):
    """Ordered sequence of fields. Declaration order is preserved and never changed implicitly."""

    fields: tuple[NestedField, ...]
    type_id: TypeId = TypeId.STRUCT

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", tuple(self.fields))

    @classmethod
    def of(cls, *fields: NestedField) -> StructType:
        return cls(fields)

    def field(self, field_id: int) -> NestedField | None:
        """Return the direct child with ``field_id``, or None."""
        for f in self.fields:
            if f.field_id == field_id:
                return f
        return None

    def field_by_name(self, name: str) -> NestedField | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def __str__(self) -> str:
        return "struct<" + ", ".join(str(f) for f in self.fields) + ">"


@dataclass(frozen=True)
class ListType(Type):
    """List with a single element field named ``element``."""

    element_field: NestedField
    type_id: TypeId = TypeId.LIST

    @classmethod
    def of_required(cls, element_id: int, element_type: Type) -> ListType:
        return cls(NestedField(element_id, "element", True, element_type))

    @classmethod
    def of_optional(cls, element_id: int, element_type: Type) -> ListType:
        return cls(NestedField(element_id, "element", False, element_type))

    @property
    def element_id(self) -> int:
        return self.element_field.field_id

    @property
    def element_type(self) -> Type:
        return self.element_field.type

    @property
    def element_required(self) -> bool:
        return self.element_field.required

    def __str__(self) -> str:
        return f"list<{self.element_type}>"


@dataclass(frozen=True)
class MapType(Type):
    """Map with a required ``key`` field and a ``value`` field."""

    key_field: NestedField
    value_field: NestedField
    type_id: TypeId = TypeId.MAP

    def __post_init__(self) -> None:
        if not self.key_field.required:
            raise SchemaError("map keys are always required")

    @classmethod
    def of_required(cls, key_id: int, value_id: int, key_type: Type, value_type: Type) -> MapType:
        return cls(
            NestedField(key_id, "key", True, key_type),
            NestedField(value_id, "value", True, value_type),
        )

    @classmethod
    def of_optional(cls, key_id: int, value_id: int, key_type: Type, value_type: Type) -> MapType:
        return cls(
            NestedField(key_id, "key", True, key_type),
            NestedField(value_id, "value", False, value_type),
        )

    @property
    def key_id(self) -> int:
        return self.key_field.field_id

    @property
    def key_type(self) -> Type:
        return self.key_field.type

    @property
    def value_id(self) -> int:
        return self.value_field.field_id

    @property
    def value_type(self) -> Type:
        return self.value_field.type

    @property
    def value_required(self) -> bool:
        return self.value_field.required

    def __str__(self) -> str:
        return f"map<{self.key_type}, {self.value_type}>"


def _children(field_type: Type) -> tuple[NestedField, ...]:
    if isinstance(field_type, StructType):
        return field_type.fields
    if isinstance(field_type, ListType):
        return (field_type.element_field,)
    if isinstance(field_type, MapType):
        return (field_type.key_field, field_type.value_field)
    return ()


class Schema:
    """
    Immutable, ordered set of top-level fields forming an implicit root struct.

    Args:
        *fields (NestedField): Top-level fields in declaration order.
        schema_id (int): Id of this schema version within a table.

    Raises:
        SchemaError: If any field id appears more than once anywhere in the tree.
    """

    __slots__ = ("_struct", "schema_id", "_by_id", "_names")

    def __init__(self, *fields: NestedField, schema_id: int = 0) -> None:
        self._struct = StructType(fields)
        self.schema_id = schema_id
        self._by_id: dict[int, NestedField] = {}
        self._names: dict[int, str] = {}
        for path, f in self._walk(self._struct.fields, ()):
            if f.field_id in self._by_id:
                raise SchemaError(
                    f"duplicate field id {f.field_id}: {self._names[f.field_id]!r} and "
                    f"{'.'.join(path)!r}"
                )
            self._by_id[f.field_id] = f
            self._names[f.field_id] = ".".join(path)

    @classmethod
    def _walk(
        cls, fields: tuple[NestedField, ...], prefix: tuple[str, ...]
    ) -> Iterator[tuple[tuple[str, ...], NestedField]]:
        for f in fields:
            path = (*prefix, f.name)
            yield path, f
            yield from cls._walk(_children(f.type), path)

    @property
    def fields(self) -> tuple[NestedField, ...]:
        return self._struct.fields

    def as_struct(self) -> StructType:
        return self._struct

    def find_field(self, key: int | str) -> NestedField | None:
        """Find a field anywhere in the tree by id, or by dotted column name."""
        if isinstance(key, int):
            return self._by_id.get(key)
        for field_id, name in self._names.items():
            if name == key:
                return self._by_id[field_id]
        return None

    def find_column_name(self, field_id: int) -> str | None:
        """Dotted path of a field (``a.b``, ``tags.element``, ``props.value``)."""
        return self._names.get(field_id)

    @property
    def highest_field_id(self) -> int:
        return max(self._by_id, default=0)

    def __len__(self) -> int:
        return len(self._struct.fields)

    def __iter__(self) -> Iterator[NestedField]:
        return iter(self._struct.fields)

    def __str__(self) -> str:
        body = "\n".join(f"  {f}" for f in self._struct.fields)
        return "table {\n" + body + "\n}"

    def __repr__(self) -> str:
        return f"Schema({', '.join(repr(f) for f in self._struct.fields)}, schema_id={self.schema_id})"
