"""
File formats and record appenders.

Overview
- FileFormat: the supported data file formats (Parquet, Avro).
- FileAppender: the contract every appender honors (add, length, close, metrics,
  split_offsets).
- ParquetAppender: buffers records and writes row groups with pyarrow's ParquetWriter.
  Field ids travel in Arrow field metadata (``PARQUET:field_id``).
- AvroAppender: streams records through fastavro. Field ids travel as ``field-id``
  attributes on the Avro schema.
- AppenderFactory: builds an appender for a (file, format) pair using table properties.

Lifecycle
- add() any number of times, then close() exactly once. length() is valid at any time and
  grows monotonically; metrics() and split_offsets() are valid only after close().
- close() publishes the file at its final location (see stratum.io.fileio).

Notes
- Records are mappings keyed by column name; missing optional columns are written as null.
- length() before close is an estimate (bytes flushed + buffered estimate); after close it
  is the exact file size.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol

import fastavro
import pyarrow as pa
import pyarrow.parquet as pq
from fastavro.write import Writer as AvroWriter

from stratum.core import constants as C
from stratum.core.types import (
    STRING,
    ListType,
    MapType,
    NestedField,
    PrimitiveType,
    Schema,
    StructType,
    Type,
    TypeId,
)

from .config import property_as_int
from .errors import IoConfigError, IoWriteError, WriterStateError
from .fileio import OutputFile, PositionOutputStream
from .metrics import Metrics, MetricsCollector, MetricsConfig

__all__ = [
    "FileFormat",
    "FileAppender",
    "ParquetAppender",
    "AvroAppender",
    "AppenderFactory",
    "arrow_schema",
    "avro_schema",
]

FIELD_ID_KEY = b"PARQUET:field_id"


class FileFormat(str, Enum):
    PARQUET = "parquet"
    AVRO = "avro"

    def add_extension(self, filename: str) -> str:
        ext = "." + self.value
        return filename if filename.endswith(ext) else filename + ext

    @classmethod
    def from_name(cls, name: str) -> FileFormat:
        """
        Resolve a format name case-insensitively.

        Raises:
            IoConfigError: If the name is not a supported format.
        """
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            raise IoConfigError(f"unsupported file format {name!r}") from None


class FileAppender(Protocol):
    def add(self, record: Mapping[str, Any]) -> None: ...

    def length(self) -> int: ...

    def close(self) -> None: ...

    def metrics(self) -> Metrics: ...

    def split_offsets(self) -> list[int] | None: ...


# ============================================================================
# Arrow / Parquet
# ============================================================================


def _arrow_field(f: NestedField) -> pa.Field:
    return pa.field(
        f.name,
        _arrow_type(f.type),
        nullable=f.is_optional,
        metadata={FIELD_ID_KEY: str(f.field_id).encode()},
    )


def _arrow_type(t: Type) -> pa.DataType:
    if isinstance(t, StructType):
        return pa.struct([_arrow_field(f) for f in t.fields])
    if isinstance(t, ListType):
        return pa.list_(_arrow_field(t.element_field))
    if isinstance(t, MapType):
        return pa.map_(_arrow_field(t.key_field), _arrow_field(t.value_field))
    assert isinstance(t, PrimitiveType)
    tid = t.type_id
    if tid is TypeId.BOOLEAN:
        return pa.bool_()
    if tid is TypeId.INT:
        return pa.int32()
    if tid is TypeId.LONG:
        return pa.int64()
    if tid is TypeId.FLOAT:
        return pa.float32()
    if tid is TypeId.DOUBLE:
        return pa.float64()
    if tid is TypeId.DATE:
        return pa.date32()
    if tid is TypeId.TIME:
        return pa.time64("us")
    if tid is TypeId.TIMESTAMP:
        return pa.timestamp("us")
    if tid is TypeId.TIMESTAMPTZ:
        return pa.timestamp("us", tz="UTC")
    if tid is TypeId.STRING:
        return pa.string()
    if tid is TypeId.UUID:
        return pa.binary(16)
    if tid is TypeId.FIXED:
        return pa.binary(t.length)
    if tid is TypeId.BINARY:
        return pa.binary()
    if tid is TypeId.DECIMAL:
        return pa.decimal128(t.precision, t.scale)
    raise IoConfigError(f"no arrow type for {t}")


def arrow_schema(schema: Schema) -> pa.Schema:
    """Arrow schema for ``schema`` with field ids in field metadata."""
    return pa.schema([_arrow_field(f) for f in schema.fields])


def _to_arrow_value(t: Type, value: Any) -> Any:
    if value is None:
        return None
    if isinstance(t, StructType):
        return {f.name: _to_arrow_value(f.type, value.get(f.name)) for f in t.fields}
    if isinstance(t, ListType):
        return [_to_arrow_value(t.element_type, v) for v in value]
    if isinstance(t, MapType):
        return [
            (_to_arrow_value(t.key_type, k), _to_arrow_value(t.value_type, v))
            for k, v in value.items()
        ]
    if isinstance(t, PrimitiveType) and t.type_id is TypeId.UUID and isinstance(value, uuid.UUID):
        return value.bytes
    return value


def _estimate_size(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 1
    if isinstance(value, (int, float, date, datetime, time)):
        return 8
    if isinstance(value, (Decimal, uuid.UUID)):
        return 16
    if isinstance(value, str):
        return len(value.encode("utf-8"))
    if isinstance(value, (bytes, bytearray)):
        return len(value)
    if isinstance(value, Mapping):
        return sum(_estimate_size(k) + _estimate_size(v) for k, v in value.items())
    if isinstance(value, Sequence):
        return sum(_estimate_size(v) for v in value)
    return 8


class ParquetAppender:
    """
    Append records to a Parquet file.

    Args:
        output_file (OutputFile): Destination; created on construction.
        schema (Schema): Write schema.
        properties (Mapping[str, str]): Resolved table properties (compression, row group
            size, metrics modes).
    """

    def __init__(
        self, output_file: OutputFile, schema: Schema, properties: Mapping[str, str]
    ) -> None:
        self._location = output_file.location
        self._schema = schema
        self._struct = schema.as_struct()
        self._arrow_schema = arrow_schema(schema)
        self._row_group_size = max(
            1,
            property_as_int(properties, C.PARQUET_ROW_GROUP_SIZE, C.PARQUET_ROW_GROUP_SIZE_DEFAULT),
        )
        compression = properties.get(C.PARQUET_COMPRESSION, C.PARQUET_COMPRESSION_DEFAULT)
        self._metrics = MetricsCollector(schema, MetricsConfig.from_properties(properties))
        self._stream: PositionOutputStream = output_file.create()
        self._collector: list[pq.FileMetaData] = []
        try:
            self._writer = pq.ParquetWriter(
                self._stream,
                self._arrow_schema,
                compression=None if compression == "none" else compression,
                metadata_collector=self._collector,
            )
        except Exception:
            self._stream.abort()
            raise
        self._buffer: list[dict[str, Any]] = []
        self._buffered_bytes = 0
        self._closed = False

    def add(self, record: Mapping[str, Any]) -> None:
        if self._closed:
            raise WriterStateError(f"cannot add to closed appender for {self._location}")
        row = _to_arrow_value(self._struct, record)
        self._buffer.append(row)
        self._buffered_bytes += _estimate_size(record)
        self._metrics.update(record)
        if len(self._buffer) >= self._row_group_size:
            self._flush()

    def _flush(self) -> None:
        if not self._buffer:
            return
        table = pa.Table.from_pylist(self._buffer, schema=self._arrow_schema)
        self._writer.write_table(table)
        self._buffer = []
        self._buffered_bytes = 0

    def length(self) -> int:
        return self._stream.tell() + self._buffered_bytes

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._flush()
            self._writer.close()
        except Exception as exc:
            self._stream.abort()
            raise IoWriteError(f"failed to close parquet file: {exc}", location=self._location) from exc
        self._stream.close()

    def metrics(self) -> Metrics:
        if not self._closed:
            raise WriterStateError("metrics are only available after close")
        return self._metrics.result()

    def split_offsets(self) -> list[int] | None:
        if not self._closed:
            raise WriterStateError("split offsets are only available after close")
        if not self._collector:
            return None
        md = self._collector[-1]
        offsets: list[int] = []
        for i in range(md.num_row_groups):
            col = md.row_group(i).column(0)
            offsets.append(
                col.dictionary_page_offset if col.has_dictionary_page else col.data_page_offset
            )
        return offsets


# ============================================================================
# Avro
# ============================================================================


def _avro_field(f: NestedField) -> dict[str, Any]:
    t = _avro_type(f.type, f.field_id)
    out: dict[str, Any] = {"name": f.name, "field-id": f.field_id}
    if f.is_optional:
        out["type"] = ["null", t]
        out["default"] = None
    else:
        out["type"] = t
    return out


def _maybe_optional(t: Any, required: bool) -> Any:
    return t if required else ["null", t]


def _avro_type(t: Type, field_id: int) -> Any:
    if isinstance(t, StructType):
        return {"type": "record", "name": f"r{field_id}", "fields": [_avro_field(f) for f in t.fields]}
    if isinstance(t, ListType):
        return {
            "type": "array",
            "items": _maybe_optional(_avro_type(t.element_type, t.element_id), t.element_required),
            "element-id": t.element_id,
        }
    if isinstance(t, MapType):
        value = _maybe_optional(_avro_type(t.value_type, t.value_id), t.value_required)
        if t.key_type == STRING:
            return {"type": "map", "values": value, "key-id": t.key_id, "value-id": t.value_id}
        return {
            "type": "array",
            "logicalType": "map",
            "items": {
                "type": "record",
                "name": f"k{t.key_id}_v{t.value_id}",
                "fields": [
                    {"name": "key", "type": _avro_type(t.key_type, t.key_id), "field-id": t.key_id},
                    {"name": "value", "type": value, "field-id": t.value_id},
                ],
            },
        }
    assert isinstance(t, PrimitiveType)
    tid = t.type_id
    if tid in (TypeId.BOOLEAN, TypeId.INT, TypeId.LONG, TypeId.FLOAT, TypeId.DOUBLE, TypeId.STRING):
        return tid.value
    if tid is TypeId.DATE:
        return {"type": "int", "logicalType": "date"}
    if tid is TypeId.TIME:
        return {"type": "long", "logicalType": "time-micros"}
    if tid is TypeId.TIMESTAMP:
        return {"type": "long", "logicalType": "timestamp-micros", "adjust-to-utc": False}
    if tid is TypeId.TIMESTAMPTZ:
        return {"type": "long", "logicalType": "timestamp-micros", "adjust-to-utc": True}
    if tid is TypeId.UUID:
        return {"type": "string", "logicalType": "uuid"}
    if tid is TypeId.FIXED:
        return {"type": "fixed", "name": f"fixed_{field_id}", "size": t.length}
    if tid is TypeId.BINARY:
        return "bytes"
    if tid is TypeId.DECIMAL:
        return {"type": "bytes", "logicalType": "decimal", "precision": t.precision, "scale": t.scale}
    raise IoConfigError(f"no avro type for {t}")


def avro_schema(schema: Schema, name: str = "table") -> dict[str, Any]:
    """Avro record schema for ``schema`` with ``field-id`` attributes."""
    return {"type": "record", "name": name, "fields": [_avro_field(f) for f in schema.fields]}


def _to_avro_value(t: Type, value: Any) -> Any:
    if value is None:
        return None
    if isinstance(t, StructType):
        return {f.name: _to_avro_value(f.type, value.get(f.name)) for f in t.fields}
    if isinstance(t, ListType):
        return [_to_avro_value(t.element_type, v) for v in value]
    if isinstance(t, MapType):
        if t.key_type == STRING:
            return {k: _to_avro_value(t.value_type, v) for k, v in value.items()}
        return [
            {"key": _to_avro_value(t.key_type, k), "value": _to_avro_value(t.value_type, v)}
            for k, v in value.items()
        ]
    return value


class AvroAppender:
    """
    Append records to an Avro container file.

    Notes:
        Avro files carry no split offsets.
    """

    def __init__(
        self, output_file: OutputFile, schema: Schema, properties: Mapping[str, str]
    ) -> None:
        self._location = output_file.location
        self._struct = schema.as_struct()
        self._metrics = MetricsCollector(schema, MetricsConfig.from_properties(properties))
        self._stream: PositionOutputStream = output_file.create()
        try:
            parsed = fastavro.parse_schema(avro_schema(schema))
            self._writer = AvroWriter(self._stream, parsed)
        except Exception:
            self._stream.abort()
            raise
        self._flushed_pos = self._stream.tell()
        self._pending = 0
        self._closed = False

    def add(self, record: Mapping[str, Any]) -> None:
        if self._closed:
            raise WriterStateError(f"cannot add to closed appender for {self._location}")
        self._writer.write(_to_avro_value(self._struct, record))
        self._metrics.update(record)
        pos = self._stream.tell()
        if pos != self._flushed_pos:
            self._flushed_pos = pos
            self._pending = 0
        self._pending += _estimate_size(record)

    def length(self) -> int:
        return self._stream.tell() + self._pending

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._writer.flush()
        except Exception as exc:
            self._stream.abort()
            raise IoWriteError(f"failed to close avro file: {exc}", location=self._location) from exc
        self._pending = 0
        self._stream.close()

    def metrics(self) -> Metrics:
        if not self._closed:
            raise WriterStateError("metrics are only available after close")
        return self._metrics.result()

    def split_offsets(self) -> list[int] | None:
        return None


class AppenderFactory:
    """
    Build appenders for a write schema.

    Args:
        schema (Schema): Schema of the records being written.
        properties (Mapping[str, str]): Resolved table properties.
    """

    def __init__(self, schema: Schema, properties: Mapping[str, str]) -> None:
        self._schema = schema
        self._properties = dict(properties)

    def new_appender(self, output_file: OutputFile, file_format: FileFormat) -> FileAppender:
        if file_format is FileFormat.PARQUET:
            return ParquetAppender(output_file, self._schema, self._properties)
        if file_format is FileFormat.AVRO:
            return AvroAppender(output_file, self._schema, self._properties)
        raise IoConfigError(f"cannot write unknown format: {file_format}")
