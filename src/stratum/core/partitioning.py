"""
Partition specs, transforms, and the per-record partition key.

A PartitionSpec is an ordered list of (source field, transform) pairs. Writers derive a
PartitionKey from every record and route records into per-partition files; records must
arrive grouped by key (see stratum.io.writers.PartitionedWriter).

Transforms
- identity: the source value.
- truncate[W]: ints/longs -> ``v - v % W`` (floor semantics for negatives); strings and
  binary -> first W characters/bytes. Generalizes the tick-bucket layout
  (``bucket = tick // size``) to any integer column.
- year / month / day / hour: integers counted from 1970-01-01 (hour: timestamps only).
- void: always null.

PartitionKey
- A mutable accumulator reused across records: ``partition(record)`` overwrites its values.
- ``copy()`` is the only way to retain a key; a retained key never aliases the live one.

Notes
- Records are mappings from column name to value; nested sources resolve by dotted path.
- Zero-IO; stdlib only.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Final
from urllib.parse import quote

from .errors import SchemaError
from .serde import to_json_value
from .types import PrimitiveType, Schema, TypeId

__all__ = [
    "TransformKind",
    "Transform",
    "PartitionField",
    "PartitionSpec",
    "PartitionSpecBuilder",
    "PartitionKey",
]

_EPOCH_DATE: Final = date(1970, 1, 1)
_EPOCH_NAIVE: Final = datetime(1970, 1, 1)
_EPOCH_UTC: Final = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROS_PER_HOUR: Final = 3_600_000_000
_MICROS_PER_DAY: Final = 24 * _MICROS_PER_HOUR

_TRUNCATE_RE: Final[re.Pattern[str]] = re.compile(r"^truncate\[(\d+)\]$")

_TEMPORAL: Final = frozenset({TypeId.DATE, TypeId.TIMESTAMP, TypeId.TIMESTAMPTZ})
_TIMESTAMPS: Final = frozenset({TypeId.TIMESTAMP, TypeId.TIMESTAMPTZ})


class TransformKind(str, Enum):
    IDENTITY = "identity"
    TRUNCATE = "truncate"
    YEAR = "year"
    MONTH = "month"
    DAY = "day"
    HOUR = "hour"
    VOID = "void"


def _micros(value: datetime) -> int:
    delta = value - (_EPOCH_UTC if value.tzinfo is not None else _EPOCH_NAIVE)
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def _utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc) if value.tzinfo is not None else value


@dataclass(frozen=True)
class Transform:
    """
    A partition transform.

    Attributes:
        kind (TransformKind): Transform family.
        width (int | None): Truncation width; set only for truncate.
    """

    kind: TransformKind
    width: int | None = None

    def __post_init__(self) -> None:
        if self.kind is TransformKind.TRUNCATE:
            if self.width is None or self.width <= 0:
                raise SchemaError(f"truncate width must be positive, got {self.width}")
        elif self.width is not None:
            raise SchemaError(f"width is only valid for truncate, not {self.kind.value}")

    @classmethod
    def parse(cls, text: str) -> Transform:
        """Parse ``identity``, ``truncate[W]``, ``year``, ``month``, ``day``, ``hour``, ``void``."""
        s = text.strip().lower()
        m = _TRUNCATE_RE.match(s)
        if m:
            return cls(TransformKind.TRUNCATE, int(m.group(1)))
        try:
            return cls(TransformKind(s))
        except ValueError:
            raise SchemaError(f"unknown partition transform {text!r}") from None

    def __str__(self) -> str:
        if self.kind is TransformKind.TRUNCATE:
            return f"truncate[{self.width}]"
        return self.kind.value

    def can_transform(self, source: PrimitiveType) -> bool:
        kind = self.kind
        if kind in (TransformKind.IDENTITY, TransformKind.VOID):
            return True
        if kind is TransformKind.TRUNCATE:
            return source.type_id in (TypeId.INT, TypeId.LONG, TypeId.STRING, TypeId.BINARY)
        if kind is TransformKind.HOUR:
            return source.type_id in _TIMESTAMPS
        return source.type_id in _TEMPORAL

    def apply(self, value: Any) -> Any:
        """Transform one source value; null stays null."""
        if value is None or self.kind is TransformKind.VOID:
            return None
        kind = self.kind
        if kind is TransformKind.IDENTITY:
            return value
        if kind is TransformKind.TRUNCATE:
            assert self.width is not None
            if isinstance(value, int):
                return value - value % self.width
            return value[: self.width]
        if kind is TransformKind.HOUR:
            return _micros(value) // _MICROS_PER_HOUR
        if kind is TransformKind.DAY:
            if isinstance(value, datetime):
                return _micros(value) // _MICROS_PER_DAY
            return (value - _EPOCH_DATE).days
        if isinstance(value, datetime):
            value = _utc(value)
        if kind is TransformKind.YEAR:
            return value.year - 1970
        return (value.year - 1970) * 12 + value.month - 1

    def to_human_string(self, value: Any) -> str:
        """Render a transformed value for use in a partition path."""
        if value is None:
            return "null"
        kind = self.kind
        if kind is TransformKind.YEAR:
            return f"{1970 + value:04d}"
        if kind is TransformKind.MONTH:
            return f"{1970 + value // 12:04d}-{value % 12 + 1:02d}"
        if kind is TransformKind.DAY:
            return (_EPOCH_DATE + timedelta(days=value)).isoformat()
        if kind is TransformKind.HOUR:
            ts = _EPOCH_NAIVE + timedelta(hours=value)
            return ts.strftime("%Y-%m-%d-%H")
        if isinstance(value, bytes):
            return value.hex()
        return str(to_json_value(value))


@dataclass(frozen=True)
class PartitionField:
    """
    One partition column.

    Attributes:
        source_id (int): Field id of the source column in the table schema.
        field_id (int): Id of the partition field itself (1000 and up).
        name (str): Partition column name; used in partition paths.
        transform (Transform): Transform applied to the source value.
    """

    source_id: int
    field_id: int
    name: str
    transform: Transform


@dataclass(frozen=True)
class PartitionSpec:
    """Ordered partition fields. A spec without fields is unpartitioned."""

    fields: tuple[PartitionField, ...] = ()
    spec_id: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", tuple(self.fields))
        names = [f.name for f in self.fields]
        if len(set(names)) != len(names):
            raise SchemaError(f"duplicate partition field names: {names!r}")

    @classmethod
    def unpartitioned(cls) -> PartitionSpec:
        return cls()

    @classmethod
    def builder(cls, schema: Schema) -> PartitionSpecBuilder:
        return PartitionSpecBuilder(schema)

    @property
    def is_unpartitioned(self) -> bool:
        return not self.fields

    def bind(self, schema: Schema) -> PartitionSpec:
        """
        Validate this spec against ``schema`` and return it.

        Raises:
            SchemaError: If a source field is missing, not primitive, or cannot be transformed.
        """
        for f in self.fields:
            source = schema.find_field(f.source_id)
            if source is None:
                raise SchemaError(f"cannot find source field {f.source_id} for partition {f.name!r}")
            if not isinstance(source.type, PrimitiveType):
                raise SchemaError(f"cannot partition by non-primitive field {source.name!r}")
            if not f.transform.can_transform(source.type):
                raise SchemaError(
                    f"invalid transform {f.transform} for partition {f.name!r} on {source.type}"
                )
        return self

    def to_json_obj(self) -> dict[str, Any]:
        return {
            "spec-id": self.spec_id,
            "fields": [
                {
                    "source-id": f.source_id,
                    "field-id": f.field_id,
                    "name": f.name,
                    "transform": str(f.transform),
                }
                for f in self.fields
            ],
        }

    @classmethod
    def from_json_obj(cls, obj: Mapping[str, Any]) -> PartitionSpec:
        fields = tuple(
            PartitionField(
                source_id=int(f["source-id"]),
                field_id=int(f["field-id"]),
                name=f["name"],
                transform=Transform.parse(f["transform"]),
            )
            for f in obj.get("fields") or []
        )
        return cls(fields, int(obj.get("spec-id", 0)))

    def partition_to_path(self, values: Sequence[Any]) -> str:
        """Render ``name=value`` segments joined by ``/``, URL-quoting names and values."""
        return "/".join(
            f"{quote(f.name, safe='')}={quote(f.transform.to_human_string(v), safe='')}"
            for f, v in zip(self.fields, values)
        )


class PartitionSpecBuilder:
    """
    Fluent builder resolving source columns by name.

    Examples:
        >>> from stratum.core.types import DATE, LONG, Schema, required
        >>> schema = Schema(required(1, "id", LONG), required(2, "day", DATE))
        >>> spec = PartitionSpec.builder(schema).day("day", "event_day").truncate("id", 100).build()
        >>> [str(f.transform) for f in spec.fields]
        ['day', 'truncate[100]']
    """

    def __init__(self, schema: Schema, spec_id: int = 0) -> None:
        self._schema = schema
        self._spec_id = spec_id
        self._fields: list[PartitionField] = []
        self._next_id = 1000

    def _add(self, source_name: str, transform: Transform, name: str) -> PartitionSpecBuilder:
        source = self._schema.find_field(source_name)
        if source is None:
            raise SchemaError(f"cannot find source column {source_name!r}")
        self._fields.append(PartitionField(source.field_id, self._next_id, name, transform))
        self._next_id += 1
        return self

    def identity(self, source_name: str, name: str | None = None) -> PartitionSpecBuilder:
        return self._add(source_name, Transform(TransformKind.IDENTITY), name or source_name)

    def truncate(self, source_name: str, width: int, name: str | None = None) -> PartitionSpecBuilder:
        return self._add(
            source_name, Transform(TransformKind.TRUNCATE, width), name or f"{source_name}_trunc"
        )

    def year(self, source_name: str, name: str | None = None) -> PartitionSpecBuilder:
        return self._add(source_name, Transform(TransformKind.YEAR), name or f"{source_name}_year")

    def month(self, source_name: str, name: str | None = None) -> PartitionSpecBuilder:
        return self._add(source_name, Transform(TransformKind.MONTH), name or f"{source_name}_month")

    def day(self, source_name: str, name: str | None = None) -> PartitionSpecBuilder:
        return self._add(source_name, Transform(TransformKind.DAY), name or f"{source_name}_day")

    def hour(self, source_name: str, name: str | None = None) -> PartitionSpecBuilder:
        return self._add(source_name, Transform(TransformKind.HOUR), name or f"{source_name}_hour")

    def void(self, source_name: str, name: str | None = None) -> PartitionSpecBuilder:
        return self._add(source_name, Transform(TransformKind.VOID), name or f"{source_name}_null")

    def build(self) -> PartitionSpec:
        return PartitionSpec(tuple(self._fields), self._spec_id).bind(self._schema)


def _lookup(record: Mapping[str, Any], path: tuple[str, ...]) -> Any:
    value: Any = record
    for part in path:
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
        if value is None:
            return None
    return value


class PartitionKey:
    """
    Mutable partition tuple computed from records.

    Args:
        spec (PartitionSpec): Spec supplying fields and transforms.
        schema (Schema): Table schema used to resolve source columns.

    Notes:
        - Equality and hashing use the current values, so only copies may be stored in
          sets or dicts; the live accumulator changes on every ``partition`` call.
    """

    __slots__ = ("_spec", "_paths", "_values")

    def __init__(self, spec: PartitionSpec, schema: Schema) -> None:
        self._spec = spec
        paths: list[tuple[str, ...]] = []
        for f in spec.fields:
            name = schema.find_column_name(f.source_id)
            if name is None:
                raise SchemaError(f"cannot find source field {f.source_id} for partition {f.name!r}")
            paths.append(tuple(name.split(".")))
        self._paths = tuple(paths)
        self._values: list[Any] = [None] * len(spec.fields)

    def partition(self, record: Mapping[str, Any]) -> None:
        """Overwrite this key's values with the partition of ``record``."""
        for pos, (f, path) in enumerate(zip(self._spec.fields, self._paths)):
            self._values[pos] = f.transform.apply(_lookup(record, path))

    def copy(self) -> PartitionKey:
        dup = PartitionKey.__new__(PartitionKey)
        dup._spec = self._spec
        dup._paths = self._paths
        dup._values = list(self._values)
        return dup

    @property
    def spec(self) -> PartitionSpec:
        return self._spec

    @property
    def values(self) -> tuple[Any, ...]:
        return tuple(self._values)

    def to_path(self) -> str:
        return self._spec.partition_to_path(self._values)

    def to_dict(self) -> dict[str, Any]:
        """Partition values keyed by partition field name, JSON-friendly."""
        return {f.name: to_json_value(v) for f, v in zip(self._spec.fields, self._values)}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PartitionKey):
            return NotImplemented
        return self._spec.spec_id == other._spec.spec_id and self._values == other._values

    def __hash__(self) -> int:
        return hash((self._spec.spec_id, tuple(self._values)))

    def __repr__(self) -> str:
        return f"PartitionKey({self.to_path()!r})"
