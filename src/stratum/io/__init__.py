"""
stratum.io: Write path, table store, and read path for stratum tables.

## Responsibilities
- Turn streams of records into immutable Parquet/Avro data files with per-task writers
  (target-size rollover, grouped partitions, zero-record cleanup).
- Register task output atomically in a table snapshot (append or dynamic partition
  overwrite), with write-audit-publish staging and retried cleanup on abort.
- Keep stratum.core as the single source of truth for types, compatibility rules,
  partition specs, property names, and the metadata format version.

## Public API
- WriteSettings: process defaults for the write path (env > TOML > defaults).
- Table: local table with versioned metadata and snapshot-update operations.
- TableWrite / WriterFactory: job coordinator and per-task writer factory.
- UnpartitionedWriter / PartitionedWriter: per-task writers.
- write: one-call driver (writers + commit + abort on failure).
- scan / read: Polars access to a snapshot's data files.

## Import DAG discipline
- Depends only on stdlib, polars/pyarrow, fastavro, pydantic, loguru, and stratum.core.*.

## Examples
```python
from stratum.core.partitioning import PartitionSpec
from stratum.core.types import LONG, STRING, Schema, optional, required
from stratum.io import Table, read, write

schema = Schema(required(1, "id", LONG), optional(2, "region", STRING))
spec = PartitionSpec.builder(schema).identity("region").build()
table = Table.create("out/events", schema, spec)  # doctest: +SKIP
write(table, [[{"id": 1, "region": "eu"}, {"id": 2, "region": "us"}]])  # doctest: +SKIP
read(table)  # doctest: +SKIP
```

## Notes
- Data files: tmp → fsync → os.replace on the same filesystem; never visible half-written.
- Metadata versions: exclusive create of v<N>.metadata.json is the commit point.
- Logging goes through loguru's ``logger``; configure sinks in the application.
"""

from __future__ import annotations

from .commit import TableWrite, WriterFactory
from .config import WriteSettings
from .datafile import DataFile, TaskCommit
from .formats import FileFormat
from .read import read, scan
from .table import Snapshot, Table
from .write import write
from .writers import PartitionedWriter, UnpartitionedWriter

__all__ = [
    "WriteSettings",
    "Table",
    "Snapshot",
    "TableWrite",
    "WriterFactory",
    "UnpartitionedWriter",
    "PartitionedWriter",
    "DataFile",
    "TaskCommit",
    "FileFormat",
    "write",
    "scan",
    "read",
]
