"""
Per-task data writers.

Overview
- UnpartitionedWriter: one stream of files for the whole task, opened at construction.
- PartitionedWriter: one stream of files per partition key. Input must arrive grouped by
  partition key; a key whose files were already closed is a fatal PartitionOrderError.

Lifecycle (both writers)
- write(record): roll over to a new file when the current file's length has reached the
  target size (checked before the append, so a record never spans files), then append.
- commit(): close the current file and return a TaskCommit with every completed file.
- abort(): close the current file and delete every file this task produced. Each file is
  attempted once; every deletion failure is reported in one CleanupError.
- A writer accepts exactly one of commit()/abort(); a second call raises WriterStateError.

Notes
- A closed file with zero records is deleted and contributes no DataFile.
- If closing a file, or deleting an empty one, fails, its location is kept so abort()
  still removes it and reports it when it cannot.
- Writers are single-threaded; one instance per task.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from loguru import logger

from stratum.core.partitioning import PartitionKey, PartitionSpec
from stratum.core.types import Schema

from .datafile import DataFile, TaskCommit
from .encryption import EncryptedOutputFile
from .errors import CleanupError, IoError, IoWriteError, PartitionOrderError, WriterStateError
from .fileio import FileIO
from .files import OutputFileFactory
from .formats import AppenderFactory, FileAppender, FileFormat
from .tasks import run_tasks

__all__ = ["DataWriter", "UnpartitionedWriter", "PartitionedWriter"]


class DataWriter(ABC):
    """
    Shared file lifecycle for task writers.

    Args:
        spec (PartitionSpec): Table partition spec.
        file_format (FileFormat): Format of the data files.
        appenders (AppenderFactory): Builds an appender per file.
        files (OutputFileFactory): Names and places new files.
        io (FileIO): Deletes empty and aborted files.
        target_file_size (int): Rollover threshold in bytes.
    """

    def __init__(
        self,
        spec: PartitionSpec,
        file_format: FileFormat,
        appenders: AppenderFactory,
        files: OutputFileFactory,
        io: FileIO,
        target_file_size: int,
    ) -> None:
        self.spec = spec
        self.format = file_format
        self.appenders = appenders
        self.files = files
        self.io = io
        self.target_file_size = target_file_size
        self._appender: FileAppender | None = None
        self._current_file: EncryptedOutputFile | None = None
        self._current_key: PartitionKey | None = None
        self._completed: list[DataFile] = []
        self._orphans: list[str] = []
        self._closed = False

    @property
    def completed_files(self) -> tuple[DataFile, ...]:
        return tuple(self._completed)

    @abstractmethod
    def write(self, record: Mapping[str, Any]) -> None: ...

    def _open_current(self, key: PartitionKey | None = None) -> None:
        self._current_key = None
        current = self.files.new_output_file(key)
        appender = self.appenders.new_appender(current.encrypting_output_file, self.format)
        self._current_file, self._appender, self._current_key = current, appender, key
        logger.debug("opened {}", current.encrypting_output_file.location)

    def _close_current(self) -> None:
        if self._appender is None or self._current_file is None:
            return
        appender, current = self._appender, self._current_file
        location = current.encrypting_output_file.location
        self._appender = None
        self._current_file = None

        try:
            appender.close()
        except Exception:
            self._orphans.append(location)
            raise

        metrics = appender.metrics()
        if metrics.record_count == 0:
            try:
                self.io.delete_file(location)
            except Exception:
                self._orphans.append(location)
                raise
            logger.debug("deleted empty file {}", location)
            return

        data_file = DataFile.from_encrypted_output_file(
            current,
            file_format=self.format,
            file_size_in_bytes=appender.length(),
            metrics=metrics,
            split_offsets=appender.split_offsets(),
            spec_id=self.spec.spec_id,
            partition=self._current_key if not self.spec.is_unpartitioned else None,
        )
        self._completed.append(data_file)
        logger.debug("closed {} with {} records", location, metrics.record_count)

    def _write_to_current(self, record: Mapping[str, Any]) -> None:
        if self._appender is None or self._current_file is None:
            raise WriterStateError("cannot write: no open data file; abort this writer")
        if self._appender.length() >= self.target_file_size:
            logger.info(
                "rolling over {} at {} bytes",
                self._current_file.encrypting_output_file.location,
                self._appender.length(),
            )
            self._close_current()
            self._open_current(self._current_key)
            assert self._appender is not None and self._current_file is not None

        try:
            self._appender.add(record)
        except IoError:
            raise
        except Exception as exc:
            raise IoWriteError(
                f"failed to append record: {exc}",
                location=self._current_file.encrypting_output_file.location,
                partition=self._current_key.to_path() if self._current_key is not None else None,
            ) from exc

    def _check_open(self, action: str) -> None:
        if self._closed:
            raise WriterStateError(f"cannot {action}: writer is already closed")

    def commit(self) -> TaskCommit:
        """
        Close the current file and return the files this task wrote.

        Raises:
            WriterStateError: If the writer was already committed or aborted.
        """
        self._check_open("commit")
        self._close_current()
        self._closed = True
        return TaskCommit(files=tuple(self._completed))

    def abort(self) -> None:
        """
        Close the current file and delete every file this task produced.

        Raises:
            WriterStateError: If the writer was already committed or aborted.
            CleanupError: If any file could not be deleted; lists every such file.
        """
        self._check_open("abort")
        self._closed = True
        try:
            self._close_current()
        except Exception as exc:
            logger.warning("failed to close current file during abort: {}", exc)

        locations = [f.file_path for f in self._completed] + self._orphans
        self._completed = []
        self._orphans = []
        if not locations:
            return
        try:
            run_tasks(locations, self.io.delete_file, retries=0)
        except CleanupError as exc:
            raise CleanupError("failed to delete task output", exc.failures) from exc


class UnpartitionedWriter(DataWriter):
    """Writer for tables without partition fields. Opens its first file immediately."""

    def __init__(
        self,
        spec: PartitionSpec,
        file_format: FileFormat,
        appenders: AppenderFactory,
        files: OutputFileFactory,
        io: FileIO,
        target_file_size: int,
    ) -> None:
        super().__init__(spec, file_format, appenders, files, io, target_file_size)
        self._open_current()

    def write(self, record: Mapping[str, Any]) -> None:
        self._check_open("write")
        self._write_to_current(record)


class PartitionedWriter(DataWriter):
    """
    Writer for partitioned tables.

    Args:
        schema (Schema): Schema used to resolve partition source columns in records.

    Raises:
        PartitionOrderError: From write(), when a record's partition was already closed.
    """

    def __init__(
        self,
        spec: PartitionSpec,
        file_format: FileFormat,
        appenders: AppenderFactory,
        files: OutputFileFactory,
        io: FileIO,
        target_file_size: int,
        schema: Schema,
    ) -> None:
        super().__init__(spec, file_format, appenders, files, io, target_file_size)
        self._key = PartitionKey(spec, schema)
        self._completed_partitions: set[PartitionKey] = set()

    def write(self, record: Mapping[str, Any]) -> None:
        self._check_open("write")
        self._key.partition(record)

        if self._current_key is None or self._key != self._current_key:
            if self._current_key is not None:
                self._close_current()
                self._completed_partitions.add(self._current_key)
                self._current_key = None

            if self._key in self._completed_partitions:
                path = self._key.to_path()
                logger.warning("partition {} was already closed; input is not grouped", path)
                raise PartitionOrderError(f"Already closed files for partition: {path}")

            self._open_current(self._key.copy())

        self._write_to_current(record)
