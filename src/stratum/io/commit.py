"""
Job-level write coordination: writer factory, commit, and abort.

Overview
- TableWrite is created once per write job. It validates the write schema against the
  table schema before anything else, resolves the file format and target file size, and
  hands out a WriterFactory for the per-task writers.
- commit(messages) registers every file from every task in one snapshot update: an append,
  or a dynamic partition overwrite when ``replace_partitions`` is set.
- abort(messages) deletes every file from every task, retrying failed deletions with
  exponential backoff under the table's ``commit.retry.*`` properties.

Resolution order for settings
- file format: ``write-format`` option > ``write.format.default`` property > WriteSettings.
- target size: ``target-file-size`` option > ``write.target-file-size-bytes`` > WriteSettings.

Provenance
- ``app.id`` is set on the snapshot when an application id is supplied.
- When ``write.wap.enabled`` is true and a wap id is supplied, the snapshot is staged
  (not made current) and tagged with ``wap.id``.
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence

from loguru import logger

from stratum.core import constants as C
from stratum.core.compat import check_write_compatibility
from stratum.core.partitioning import PartitionSpec
from stratum.core.types import Schema

from .config import WriteSettings, property_as_bool, property_as_int, resolve_properties
from .datafile import DataFile, TaskCommit
from .encryption import EncryptionManager
from .errors import IoConfigError
from .fileio import FileIO
from .files import OutputFileFactory
from .formats import AppenderFactory, FileFormat
from .locations import LocationProvider
from .table import Snapshot, SnapshotUpdate, Table
from .tasks import run_tasks
from .writers import DataWriter, PartitionedWriter, UnpartitionedWriter

__all__ = ["TableWrite", "WriterFactory"]


class WriterFactory:
    """
    Create per-task writers. Holds only immutable job settings, so it can be shipped to
    workers.
    """

    def __init__(
        self,
        spec: PartitionSpec,
        file_format: FileFormat,
        locations: LocationProvider,
        properties: Mapping[str, str],
        io: FileIO,
        encryption: EncryptionManager,
        target_file_size: int,
        schema: Schema,
    ) -> None:
        self.spec = spec
        self.format = file_format
        self.locations = locations
        self.properties = dict(properties)
        self.io = io
        self.encryption = encryption
        self.target_file_size = target_file_size
        self.schema = schema

    def create_data_writer(self, partition_id: int, task_id: int, epoch_id: int = 0) -> DataWriter:
        files = OutputFileFactory(
            self.spec,
            self.format,
            self.locations,
            self.io,
            self.encryption,
            partition_id,
            task_id,
            epoch_id,
        )
        appenders = AppenderFactory(self.schema, self.properties)
        if self.spec.is_unpartitioned:
            return UnpartitionedWriter(
                self.spec, self.format, appenders, files, self.io, self.target_file_size
            )
        return PartitionedWriter(
            self.spec, self.format, appenders, files, self.io, self.target_file_size, self.schema
        )


class TableWrite:
    """
    Coordinate one write job against a table.

    Args:
        table (Table): Target table.
        options (Mapping[str, str] | None): Per-write options (``write-format``,
            ``target-file-size``).
        replace_partitions (bool): Dynamic partition overwrite instead of append.
        application_id (str | None): Recorded as ``app.id`` in the snapshot summary.
        wap_id (str | None): Write-audit-publish id; stages the snapshot on WAP tables.
        write_schema (Schema | None): Schema of incoming records; defaults to the table's.
        settings (WriteSettings | None): Process defaults; loaded from env/TOML if None.

    Raises:
        IncompatibleSchemaError: If the write schema cannot be written to the table.
        IoConfigError: If the format or target size cannot be resolved.
    """

    def __init__(
        self,
        table: Table,
        options: Mapping[str, str] | None = None,
        replace_partitions: bool = False,
        application_id: str | None = None,
        wap_id: str | None = None,
        write_schema: Schema | None = None,
        settings: WriteSettings | None = None,
    ) -> None:
        table_schema = table.schema()
        self.write_schema = write_schema if write_schema is not None else table_schema
        check_write_compatibility(table_schema, self.write_schema)

        self.table = table
        self.options = dict(options or {})
        self.replace_partitions = replace_partitions
        self.application_id = application_id
        self.wap_id = wap_id
        self.properties = resolve_properties(
            table.properties, settings if settings is not None else WriteSettings.load()
        )
        self.format = FileFormat.from_name(
            self.options.get(C.WRITE_FORMAT_OPTION) or self.properties[C.DEFAULT_FILE_FORMAT]
        )
        self.target_file_size = self._target_file_size()

    def _target_file_size(self) -> int:
        table_size = property_as_int(
            self.properties,
            C.WRITE_TARGET_FILE_SIZE_BYTES,
            C.WRITE_TARGET_FILE_SIZE_BYTES_DEFAULT,
        )
        size = property_as_int(self.options, C.TARGET_FILE_SIZE_OPTION, table_size)
        if size <= 0:
            raise IoConfigError(f"target file size must be positive, got {size}")
        return size

    def is_wap_table(self) -> bool:
        return property_as_bool(
            self.table.properties,
            C.WRITE_AUDIT_PUBLISH_ENABLED,
            C.WRITE_AUDIT_PUBLISH_ENABLED_DEFAULT == "true",
        )

    def create_writer_factory(self) -> WriterFactory:
        return WriterFactory(
            self.table.spec(),
            self.format,
            self.table.location_provider(),
            self.properties,
            self.table.io(),
            self.table.encryption(),
            self.target_file_size,
            self.write_schema,
        )

    @staticmethod
    def files(messages: Sequence[TaskCommit | None]) -> list[DataFile]:
        """Flatten task messages into one file list; None messages contribute nothing."""
        return [f for m in messages if m is not None for f in m.files]

    def commit(self, messages: Sequence[TaskCommit | None]) -> Snapshot:
        """
        Register all task output in one snapshot.

        Raises:
            CommitFailedError: If the table rejects the update; the caller must then
                call abort(messages).
        """
        if self.replace_partitions:
            op: SnapshotUpdate = self.table.new_replace_partitions()
            description = "dynamic partition overwrite"
        else:
            op = self.table.new_append()
            description = "append"

        files = self.files(messages)
        for f in files:
            op.add_file(f)
        return self._commit_operation(op, len(files), description)

    def _commit_operation(self, op: SnapshotUpdate, num_files: int, description: str) -> Snapshot:
        logger.info(
            "Committing {} with {} files to table {}", description, num_files, self.table.location
        )
        if self.application_id is not None:
            op.set(C.SUMMARY_APP_ID, self.application_id)

        if self.is_wap_table() and self.wap_id is not None:
            op.set(C.SUMMARY_WAP_ID, self.wap_id)
            op.stage_only()

        start = time.monotonic()
        snapshot = op.commit()
        logger.info("Committed in {} ms", int((time.monotonic() - start) * 1000))
        return snapshot

    def abort(self, messages: Sequence[TaskCommit | None]) -> None:
        """
        Delete every file produced by the job.

        Raises:
            CleanupError: If some files could not be deleted after all retries; every
                file is attempted regardless.
        """
        props = self.properties
        run_tasks(
            [f.file_path for f in self.files(messages)],
            self.table.io().delete_file,
            retries=property_as_int(props, C.COMMIT_NUM_RETRIES, C.COMMIT_NUM_RETRIES_DEFAULT),
            min_wait_ms=property_as_int(
                props, C.COMMIT_MIN_RETRY_WAIT_MS, C.COMMIT_MIN_RETRY_WAIT_MS_DEFAULT
            ),
            max_wait_ms=property_as_int(
                props, C.COMMIT_MAX_RETRY_WAIT_MS, C.COMMIT_MAX_RETRY_WAIT_MS_DEFAULT
            ),
            total_timeout_ms=property_as_int(
                props, C.COMMIT_TOTAL_RETRY_TIME_MS, C.COMMIT_TOTAL_RETRY_TIME_MS_DEFAULT
            ),
            scale_factor=2.0,
        )

    def __repr__(self) -> str:
        return f"TableWrite(table={self.table.location!r}, format={self.format.value})"
