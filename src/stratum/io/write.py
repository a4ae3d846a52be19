"""
One-call write driver over TableWrite.

Overview
- write() plays the role of the engine that normally drives the write path: it validates
  the schema (via TableWrite), runs one data writer per task, collects the TaskCommit
  messages, and commits them as one snapshot.
- Any failure aborts: the failing task's writer deletes its own files, the job deletes
  every file already committed by earlier tasks, and the original error propagates.

Inputs
- ``tasks`` is a sequence of tasks; each task is an iterable of records (mappings keyed
  by column name) or a polars DataFrame. Within a task, records of a partitioned table must
  be grouped by partition.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import polars as pl
from loguru import logger

from stratum.core.types import Schema

from .commit import TableWrite
from .config import WriteSettings
from .datafile import TaskCommit
from .table import Table

__all__ = ["write"]

Task = Iterable[Mapping[str, Any]] | pl.DataFrame


def _records(task: Task) -> Iterable[Mapping[str, Any]]:
    if isinstance(task, pl.DataFrame):
        return task.iter_rows(named=True)
    return task


def _abort_quietly(action: str, fn: Any, *args: Any) -> None:
    try:
        fn(*args)
    except Exception as exc:
        logger.error("{} failed while handling an earlier error: {}", action, exc)


def write(
    table: Table,
    tasks: Sequence[Task],
    *,
    write_schema: Schema | None = None,
    options: Mapping[str, str] | None = None,
    replace_partitions: bool = False,
    application_id: str | None = None,
    wap_id: str | None = None,
    settings: WriteSettings | None = None,
) -> dict[str, Any]:
    """
    Write records to a table and commit them as one snapshot.

    Args:
        table (Table): Target table.
        tasks (Sequence): One entry per task; records or a polars DataFrame each.
        write_schema (Schema | None): Schema of the records; defaults to the table schema.
        options (Mapping[str, str] | None): Per-write options (``write-format``,
            ``target-file-size``).
        replace_partitions (bool): Dynamic partition overwrite instead of append.
        application_id (str | None): Stored as ``app.id`` in the snapshot summary.
        wap_id (str | None): Stages the snapshot on write-audit-publish tables.
        settings (WriteSettings | None): Process defaults; loaded from env/TOML if None.

    Returns:
        dict[str, Any]: Summary with keys:
            - table (str)
            - operation (str): "append" or "overwrite"
            - snapshot_id (int)
            - staged (bool)
            - files (list[str]): Data file paths written
            - rows (int): Total records written

    Raises:
        IncompatibleSchemaError: Before any file is opened, if the schema is incompatible.
        PartitionOrderError: If a task's records are not grouped by partition.
        IoWriteError / CommitFailedError: On IO or commit failure, after cleanup.
    """
    job = TableWrite(
        table,
        options=options,
        replace_partitions=replace_partitions,
        application_id=application_id,
        wap_id=wap_id,
        write_schema=write_schema,
        settings=settings,
    )
    factory = job.create_writer_factory()
    messages: list[TaskCommit] = []

    for partition_id, task in enumerate(tasks):
        try:
            writer = factory.create_data_writer(partition_id, partition_id)
        except Exception:
            _abort_quietly("job abort", job.abort, messages)
            raise
        try:
            for record in _records(task):
                writer.write(record)
            messages.append(writer.commit())
        except Exception:
            _abort_quietly("task abort", writer.abort)
            _abort_quietly("job abort", job.abort, messages)
            raise

    try:
        snapshot = job.commit(messages)
    except Exception:
        _abort_quietly("job abort", job.abort, messages)
        raise

    files = TableWrite.files(messages)
    return {
        "table": table.location,
        "operation": snapshot.operation,
        "snapshot_id": snapshot.snapshot_id,
        "staged": snapshot.staged,
        "files": [f.file_path for f in files],
        "rows": sum(f.record_count for f in files),
    }
