"""
Read utilities for stratum tables.

Overview
- scan(): a Polars LazyFrame over the data files of one snapshot (current by default).
- read(): collects scan(), with an optional pre-collect row cap.

Semantics
- Only files listed in the snapshot are read; files on disk that no snapshot references
  (e.g. output of an aborted write) are never visible.
- Parquet files are scanned lazily with polars.scan_parquet. Avro files are decoded with
  fastavro. Every file is aligned to the table schema: columns in table order, promoted
  types cast up, columns absent from older files filled with nulls.
- A table without snapshots, or a snapshot without files, yields an empty frame carrying
  the table schema.

Notes
- Staged (write-audit-publish) snapshots are readable by id.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

import fastavro
import polars as pl

from stratum.core.types import (
    ListType,
    MapType,
    PrimitiveType,
    Schema,
    StructType,
    Type,
    TypeId,
)

from .errors import IoError
from .fileio import local_path
from .formats import FileFormat
from .table import Snapshot, Table

__all__ = ["polars_schema", "scan", "read"]

_PRIMITIVE_DTYPES: dict[TypeId, Any] = {
    TypeId.BOOLEAN: pl.Boolean,
    TypeId.INT: pl.Int32,
    TypeId.LONG: pl.Int64,
    TypeId.FLOAT: pl.Float32,
    TypeId.DOUBLE: pl.Float64,
    TypeId.DATE: pl.Date,
    TypeId.TIME: pl.Time,
    TypeId.TIMESTAMP: pl.Datetime("us"),
    TypeId.TIMESTAMPTZ: pl.Datetime("us", "UTC"),
    TypeId.STRING: pl.Utf8,
    TypeId.UUID: pl.Binary,
    TypeId.FIXED: pl.Binary,
    TypeId.BINARY: pl.Binary,
}


def _dtype(t: Type) -> Any:
    if isinstance(t, StructType):
        return pl.Struct({f.name: _dtype(f.type) for f in t.fields})
    if isinstance(t, ListType):
        return pl.List(_dtype(t.element_type))
    if isinstance(t, MapType):
        return pl.List(pl.Struct({"key": _dtype(t.key_type), "value": _dtype(t.value_type)}))
    assert isinstance(t, PrimitiveType)
    if t.type_id is TypeId.DECIMAL:
        return pl.Decimal(t.precision, t.scale)
    return _PRIMITIVE_DTYPES[t.type_id]


def polars_schema(schema: Schema) -> dict[str, Any]:
    """Polars dtypes by column name for a table schema."""
    return {f.name: _dtype(f.type) for f in schema.fields}


def _from_avro_value(t: Type, value: Any) -> Any:
    if value is None:
        return None
    if isinstance(t, StructType):
        return {f.name: _from_avro_value(f.type, value.get(f.name)) for f in t.fields}
    if isinstance(t, ListType):
        return [_from_avro_value(t.element_type, v) for v in value]
    if isinstance(t, MapType):
        if isinstance(value, Mapping):
            pairs = list(value.items())
        else:
            pairs = [(p["key"], p["value"]) for p in value]
        return [
            {"key": _from_avro_value(t.key_type, k), "value": _from_avro_value(t.value_type, v)}
            for k, v in pairs
        ]
    if isinstance(value, uuid.UUID):
        return value.bytes
    # fastavro decodes every timestamp-micros as aware UTC
    if t.type_id is TypeId.TIMESTAMP and isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _scan_avro(paths: list[str], schema: Schema) -> pl.LazyFrame:
    struct = schema.as_struct()
    rows: list[dict[str, Any]] = []
    for path in paths:
        with open(local_path(path), "rb") as fh:
            for rec in fastavro.reader(fh):
                rows.append(_from_avro_value(struct, rec))
    return pl.from_dicts(rows, schema=polars_schema(schema)).lazy()


def _align(lf: pl.LazyFrame, dtypes: dict[str, Any]) -> pl.LazyFrame:
    """Select the table columns in order, casting promoted types and null-filling absent ones."""
    present = set(lf.collect_schema().names())
    return lf.select(
        [
            pl.col(name).cast(dtype) if name in present else pl.lit(None, dtype=dtype).alias(name)
            for name, dtype in dtypes.items()
        ]
    )


def _resolve_snapshot(table: Table, snapshot_id: int | None) -> Snapshot | None:
    if snapshot_id is None:
        return table.current_snapshot()
    snap = table.snapshot(snapshot_id)
    if snap is None:
        raise IoError(f"snapshot {snapshot_id} not found in table {table.location}")
    return snap


def scan(table: Table, snapshot_id: int | None = None) -> pl.LazyFrame:
    """
    Create a LazyFrame over the data files of a snapshot.

    Args:
        table (Table): Table to read.
        snapshot_id (int | None): Snapshot to read; the current snapshot if None.

    Returns:
        pl.LazyFrame: Lazy scan over the snapshot's files, with the table schema.

    Raises:
        IoError: If ``snapshot_id`` is not part of the table.
    """
    schema = table.schema()
    snap = _resolve_snapshot(table, snapshot_id)
    files = list(snap.data_files) if snap is not None else []
    if not files:
        return pl.LazyFrame(schema=polars_schema(schema))

    dtypes = polars_schema(schema)
    frames = [
        _align(pl.scan_parquet(local_path(f.file_path)), dtypes)
        for f in files
        if f.file_format is FileFormat.PARQUET
    ]
    avro = [f.file_path for f in files if f.file_format is FileFormat.AVRO]
    if avro:
        frames.append(_scan_avro(avro, schema))
    if len(frames) == 1:
        return frames[0]
    return pl.concat(frames, how="vertical")


def read(table: Table, snapshot_id: int | None = None, limit: int | None = None) -> pl.DataFrame:
    """
    Collect a DataFrame from scan(), optionally applying a pre-collect row cap.

    Notes:
        - Equivalent to scan(...).limit(limit).collect() when limit is provided.
    """
    lf = scan(table, snapshot_id)
    if limit is not None:
        lf = lf.limit(int(limit))
    return lf.collect()
