"""
Local table: versioned metadata, snapshots, and snapshot-update operations.

Layout
- ``<table>/metadata/v<N>.metadata.json``: one immutable JSON document per version. The
  highest N is the current version.
- ``<table>/data/...``: data files (see stratum.io.locations).

Metadata document (TableMetadata)
- format_version ("1.0@2025-10-01"), location, table_uuid, last_updated_ms
- current_schema / partition_spec: JSON shapes from stratum.core.serde and
  PartitionSpec.to_json_obj
- properties: string-keyed table properties
- snapshots: every snapshot, staged ones included; each lists the full set of live data
  files it references
- current_snapshot_id, last_sequence_number

Commit protocol (optimistic concurrency)
- An operation builds new metadata from the base version N and publishes version N+1 by
  exclusive create. If another writer published N+1 first, the table is refreshed and the
  operation retried with backoff under the ``commit.retry.*`` properties.
- When all attempts fail the operation rolls back its pending state and raises
  CommitFailedError; data files are never touched here.

Notes
- Staged snapshots (``stage_only``) are recorded in the snapshot log but never become
  current.
- Single-host file protocol baseline; no inter-process locks beyond exclusive create.
"""

from __future__ import annotations

import os
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from stratum.core import constants as C
from stratum.core.partitioning import PartitionSpec
from stratum.core.serde import json_dumps_canonical, json_loads, schema_from_json, schema_to_json
from stratum.core.types import Schema
from stratum.core.versioning import FORMAT_V, FormatVersion, require_compatible

from .config import property_as_int
from .datafile import DataFile
from .encryption import EncryptionManager, PlaintextEncryptionManager
from .errors import CommitFailedError, IoError
from .fileio import FileIO, LocalFileIO
from .fs import fsync_file, listdir, makedirs, publish_exclusive
from .locations import DefaultLocationProvider, LocationProvider
from .paths import metadata_dir, metadata_path, parse_version_file
from .tasks import retry_delay_ms

__all__ = [
    "Snapshot",
    "TableMetadata",
    "Table",
    "SnapshotUpdate",
    "AppendFiles",
    "ReplacePartitions",
]

Operation = Literal["append", "overwrite"]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_snapshot_id() -> int:
    return uuid.uuid4().int & ((1 << 63) - 1)


class Snapshot(BaseModel):
    """
    One table state.

    Attributes:
        snapshot_id (int): Random positive id.
        parent_id (int | None): Current snapshot when this one was created.
        sequence_number (int): Monotonic per table.
        timestamp_ms (int): Creation time.
        operation (str): ``append`` or ``overwrite``.
        summary (dict[str, str]): Counts plus provenance tags (``app.id``, ``wap.id``).
        data_files (list[DataFile]): Every live data file in this snapshot.
        staged (bool): True for write-audit-publish snapshots that are not current.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    snapshot_id: int
    parent_id: int | None = None
    sequence_number: int
    timestamp_ms: int
    operation: Operation
    summary: dict[str, str] = Field(default_factory=dict)
    data_files: list[DataFile] = Field(default_factory=list)
    staged: bool = False


class TableMetadata(BaseModel):
    """Versioned table metadata document (see module docstring)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    format_version: str = str(FORMAT_V)
    location: str
    table_uuid: str
    last_updated_ms: int
    current_schema: dict[str, Any]
    partition_spec: dict[str, Any]
    properties: dict[str, str] = Field(default_factory=dict)
    snapshots: list[Snapshot] = Field(default_factory=list)
    current_snapshot_id: int | None = None
    last_sequence_number: int = 0

    def snapshot(self, snapshot_id: int) -> Snapshot | None:
        for s in self.snapshots:
            if s.snapshot_id == snapshot_id:
                return s
        return None

    def current_snapshot(self) -> Snapshot | None:
        if self.current_snapshot_id is None:
            return None
        return self.snapshot(self.current_snapshot_id)


def _latest_version(location: str) -> int | None:
    versions = [v for v in map(parse_version_file, listdir(metadata_dir(location))) if v]
    return max(versions) if versions else None


def _read_metadata(location: str, version: int) -> TableMetadata:
    path = metadata_path(location, version)
    try:
        with open(path, encoding="utf-8") as fh:
            meta = TableMetadata.model_validate(json_loads(fh.read()))
    except OSError as exc:
        raise IoError(f"failed to read table metadata {path}: {exc}") from exc
    require_compatible(FormatVersion.parse(meta.format_version))
    return meta


def _publish_metadata(location: str, version: int, meta: TableMetadata) -> bool:
    """Write ``meta`` as ``version``; False if that version already exists."""
    mdir = metadata_dir(location)
    makedirs(mdir, exist_ok=True)
    tmp = os.path.join(mdir, f".v{version}.{uuid.uuid4().hex}.tmp")
    with open(tmp, "wb") as fh:
        fh.write(json_dumps_canonical(meta.model_dump(mode="json")).encode("utf-8"))
        fsync_file(fh)
    return publish_exclusive(tmp, metadata_path(location, version))


class Table:
    """
    A table stored at a local location.

    Use ``Table.create`` or ``Table.load``; both return a table bound to the latest
    metadata version.

    Examples:
        >>> from stratum.core.types import LONG, Schema, required
        >>> t = Table.create("/tmp/ex", Schema(required(1, "id", LONG)))  # doctest: +SKIP
        >>> t.current_snapshot() is None  # doctest: +SKIP
        True
    """

    def __init__(
        self,
        location: str,
        metadata: TableMetadata,
        version: int,
        io: FileIO | None = None,
        encryption: EncryptionManager | None = None,
    ) -> None:
        self.location = location
        self._metadata = metadata
        self._version = version
        self._io = io or LocalFileIO()
        self._encryption = encryption or PlaintextEncryptionManager()

    @classmethod
    def create(
        cls,
        location: str,
        schema: Schema,
        spec: PartitionSpec | None = None,
        properties: Mapping[str, str] | None = None,
        io: FileIO | None = None,
    ) -> Table:
        """
        Create a new table.

        Raises:
            SchemaError: If the partition spec does not bind to the schema.
            IoError: If a table already exists at ``location``.
        """
        spec = (spec or PartitionSpec.unpartitioned()).bind(schema)
        if _latest_version(location) is not None:
            raise IoError(f"table already exists at {location}")
        meta = TableMetadata(
            location=location,
            table_uuid=str(uuid.uuid4()),
            last_updated_ms=_now_ms(),
            current_schema=schema_to_json(schema),
            partition_spec=spec.to_json_obj(),
            properties=dict(properties or {}),
        )
        if not _publish_metadata(location, 1, meta):
            raise IoError(f"table already exists at {location}")
        logger.info("created table at {}", location)
        return cls(location, meta, 1, io=io)

    @classmethod
    def load(cls, location: str, io: FileIO | None = None) -> Table:
        """
        Load the latest version of a table.

        Raises:
            IoError: If no table exists at ``location``.
            VersionMismatch: If the metadata format is not supported.
        """
        version = _latest_version(location)
        if version is None:
            raise IoError(f"no table at {location}")
        return cls(location, _read_metadata(location, version), version, io=io)

    def refresh(self) -> Table:
        version = _latest_version(self.location)
        if version is not None and version != self._version:
            self._metadata = _read_metadata(self.location, version)
            self._version = version
        return self

    @property
    def metadata(self) -> TableMetadata:
        return self._metadata

    @property
    def version(self) -> int:
        return self._version

    @property
    def properties(self) -> dict[str, str]:
        return dict(self._metadata.properties)

    def schema(self) -> Schema:
        return schema_from_json(self._metadata.current_schema)

    def spec(self) -> PartitionSpec:
        return PartitionSpec.from_json_obj(self._metadata.partition_spec)

    def io(self) -> FileIO:
        return self._io

    def encryption(self) -> EncryptionManager:
        return self._encryption

    def location_provider(self) -> LocationProvider:
        return DefaultLocationProvider(self.location, self._metadata.properties)

    def current_snapshot(self) -> Snapshot | None:
        return self._metadata.current_snapshot()

    def snapshots(self) -> list[Snapshot]:
        return list(self._metadata.snapshots)

    def snapshot(self, snapshot_id: int) -> Snapshot | None:
        return self._metadata.snapshot(snapshot_id)

    def new_append(self) -> AppendFiles:
        return AppendFiles(self)

    def new_replace_partitions(self) -> ReplacePartitions:
        return ReplacePartitions(self)

    def _swap(self, base_version: int, meta: TableMetadata) -> bool:
        if _publish_metadata(self.location, base_version + 1, meta):
            self._metadata = meta
            self._version = base_version + 1
            return True
        return False

    def __repr__(self) -> str:
        return f"Table({self.location!r}, version={self._version})"


class SnapshotUpdate(ABC):
    """
    Base for operations that produce a new snapshot.

    Subclasses decide which existing files survive (``_retained``) and the operation name.
    """

    operation: Operation = "append"

    def __init__(self, table: Table) -> None:
        self._table = table
        self._added: list[DataFile] = []
        self._summary: dict[str, str] = {}
        self._stage_only = False
        self._committed: Snapshot | None = None

    def add_file(self, data_file: DataFile) -> SnapshotUpdate:
        self._added.append(data_file)
        return self

    def set(self, key: str, value: str) -> SnapshotUpdate:
        self._summary[key] = str(value)
        return self

    def stage_only(self) -> SnapshotUpdate:
        self._stage_only = True
        return self

    @property
    def added_files(self) -> tuple[DataFile, ...]:
        return tuple(self._added)

    @abstractmethod
    def _retained(self, current: list[DataFile]) -> list[DataFile]: ...

    def _apply(self, base: TableMetadata) -> tuple[TableMetadata, Snapshot]:
        parent = base.current_snapshot()
        current = list(parent.data_files) if parent is not None else []
        retained = self._retained(current)
        live = retained + self._added

        summary = dict(self._summary)
        summary.update(
            {
                "added-data-files": str(len(self._added)),
                "added-records": str(sum(f.record_count for f in self._added)),
                "deleted-data-files": str(len(current) - len(retained)),
                "deleted-records": str(
                    sum(f.record_count for f in current) - sum(f.record_count for f in retained)
                ),
                "total-data-files": str(len(live)),
                "total-records": str(sum(f.record_count for f in live)),
            }
        )

        seq = base.last_sequence_number + 1
        snap = Snapshot(
            snapshot_id=_new_snapshot_id(),
            parent_id=parent.snapshot_id if parent is not None else None,
            sequence_number=seq,
            timestamp_ms=_now_ms(),
            operation=self.operation,
            summary=summary,
            data_files=live,
            staged=self._stage_only,
        )
        meta = base.model_copy(
            update={
                "snapshots": [*base.snapshots, snap],
                "current_snapshot_id": (
                    base.current_snapshot_id if self._stage_only else snap.snapshot_id
                ),
                "last_sequence_number": seq,
                "last_updated_ms": snap.timestamp_ms,
            }
        )
        return meta, snap

    def _rollback(self) -> None:
        self._added = []
        self._summary = {}
        self._stage_only = False

    def commit(self) -> Snapshot:
        """
        Publish the new snapshot, retrying on concurrent commits.

        Raises:
            CommitFailedError: If the operation was already committed, or if every attempt
                conflicted or failed. Pending state is discarded in the latter case.
        """
        if self._committed is not None:
            raise CommitFailedError("operation was already committed")

        table = self._table
        props = table.properties
        retries = property_as_int(props, C.COMMIT_NUM_RETRIES, C.COMMIT_NUM_RETRIES_DEFAULT)
        min_wait = property_as_int(
            props, C.COMMIT_MIN_RETRY_WAIT_MS, C.COMMIT_MIN_RETRY_WAIT_MS_DEFAULT
        )
        max_wait = property_as_int(
            props, C.COMMIT_MAX_RETRY_WAIT_MS, C.COMMIT_MAX_RETRY_WAIT_MS_DEFAULT
        )
        total = property_as_int(
            props, C.COMMIT_TOTAL_RETRY_TIME_MS, C.COMMIT_TOTAL_RETRY_TIME_MS_DEFAULT
        )

        start = time.monotonic()
        attempt = 0
        while True:
            try:
                table.refresh()
                base_version = table.version
                meta, snap = self._apply(table.metadata)
                if table._swap(base_version, meta):
                    self._committed = snap
                    return snap
            except (OSError, IoError) as exc:
                self._rollback()
                raise CommitFailedError(f"failed to commit {self.operation}: {exc}") from exc

            logger.warning(
                "concurrent commit on {} (version {}), attempt {}",
                table.location,
                base_version + 1,
                attempt + 1,
            )
            elapsed_ms = (time.monotonic() - start) * 1000.0
            if attempt >= retries or elapsed_ms >= total:
                self._rollback()
                raise CommitFailedError(
                    f"failed to commit {self.operation} to {table.location} "
                    f"after {attempt + 1} attempt(s)"
                )
            time.sleep(retry_delay_ms(attempt, min_wait, max_wait) / 1000.0)
            attempt += 1


class AppendFiles(SnapshotUpdate):
    """Add files without touching existing data."""

    operation: Operation = "append"

    def _retained(self, current: list[DataFile]) -> list[DataFile]:
        return current


class ReplacePartitions(SnapshotUpdate):
    """
    Dynamic partition overwrite: replace all existing data in every partition touched by
    the added files. For an unpartitioned table any added file replaces every existing one.
    """

    operation: Operation = "overwrite"

    def _retained(self, current: list[DataFile]) -> list[DataFile]:
        if self._table.spec().is_unpartitioned:
            return [] if self._added else current
        touched = {(f.spec_id, f.partition_key()) for f in self._added}
        return [f for f in current if (f.spec_id, f.partition_key()) not in touched]
