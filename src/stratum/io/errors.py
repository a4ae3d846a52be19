"""
Custom exceptions for the stratum.io module.

Purpose
- Provide IO-layer error types that map onto the write path's failure taxonomy.
- Keep stratum.core as the source of truth for schema errors (SchemaError,
  IncompatibleSchemaError, VersionMismatch).

Taxonomy
- IoConfigError: unsupported file format or malformed property value.
- IoWriteError: append/close of a data file failed. Carries the file location and
  partition path so orphaned output can be found.
- WriterStateError: usage error, e.g. commit or abort on a writer that is already closed.
- PartitionOrderError: records arrived with a partition key whose files were already
  closed (input not grouped by partition). Fatal to the task; never retried.
- CommitFailedError: a snapshot-update operation could not be committed.
- CleanupError: one or more files could not be deleted. Carries every failure, not just
  the first.
"""

from __future__ import annotations

from collections.abc import Mapping


class IoError(Exception):
    """
    Base class for IO-related errors in stratum.io.

    Notes:
        Use this as a catch-all for IO-layer failures, distinct from stratum.core errors.
    """


class IoConfigError(IoError):
    """
    Raised when IO configuration is invalid or unsupported.

    Examples:
        - Unknown file format name in ``write.format.default``
        - Non-integer ``write.target-file-size-bytes``
    """


class IoWriteError(IoError):
    """
    Raised when appending to or closing a data file fails.

    Attributes:
        location (str | None): Location of the file being written.
        partition (str | None): Partition path of the file, if partitioned.
    """

    def __init__(
        self, message: str, *, location: str | None = None, partition: str | None = None
    ) -> None:
        context = [f"location={location}"] if location else []
        if partition:
            context.append(f"partition={partition}")
        super().__init__(f"{message} ({', '.join(context)})" if context else message)
        self.location = location
        self.partition = partition


class WriterStateError(IoError):
    """Raised when a writer is used outside its lifecycle (e.g., commit after commit)."""


class PartitionOrderError(WriterStateError):
    """
    Raised when a partitioned writer sees a partition key it has already closed.

    Notes:
        Input must be grouped by partition key; the writer detects violations instead of
        sorting.
    """


class CommitFailedError(IoError):
    """Raised when a snapshot-update operation cannot be committed to the table."""


class CleanupError(IoError):
    """
    Raised when files could not be deleted during abort or cleanup.

    Attributes:
        failures (dict[str, BaseException]): Last failure per unrecoverable item.
    """

    def __init__(self, message: str, failures: Mapping[str, BaseException]) -> None:
        lines = "\n".join(f"  {item}: {exc!r}" for item, exc in failures.items())
        super().__init__(f"{message}:\n{lines}" if lines else message)
        self.failures = dict(failures)
