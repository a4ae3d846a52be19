"""
Data file descriptors and task commit messages.

A DataFile describes one closed, non-empty data file: where it lives, its format and
partition, its size and record count, column metrics, split offsets, and key metadata.
A TaskCommit is the message a task sends to the driver: the DataFiles it produced.

Both are pydantic models so they serialize into table metadata (snapshots) and across
process boundaries unchanged.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from stratum.core.partitioning import PartitionKey

from .encryption import EncryptedOutputFile
from .formats import FileFormat
from .metrics import Metrics

__all__ = ["DataFile", "TaskCommit"]


class DataFile(BaseModel):
    """
    Descriptor of a written data file.

    Attributes:
        file_path (str): Final location of the file.
        file_format (FileFormat): Parquet or Avro.
        spec_id (int): Partition spec the file was written with.
        partition (dict[str, Any] | None): Partition values by partition field name; None
            when unpartitioned.
        record_count (int): Number of records; always > 0.
        file_size_in_bytes (int): Size of the closed file.
        value_counts / null_value_counts (dict[int, int]): Per field id.
        lower_bounds / upper_bounds (dict[int, Any]): JSON-friendly bounds per field id.
        split_offsets (list[int] | None): Row group start offsets (Parquet only).
        key_metadata (bytes | None): Encryption key metadata.

    Raises:
        pydantic.ValidationError: If record_count or file_size_in_bytes is negative.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    file_path: str
    file_format: FileFormat
    spec_id: int = 0
    partition: dict[str, Any] | None = None
    record_count: int = Field(..., ge=0)
    file_size_in_bytes: int = Field(..., ge=0)
    value_counts: dict[int, int] = Field(default_factory=dict)
    null_value_counts: dict[int, int] = Field(default_factory=dict)
    lower_bounds: dict[int, Any] = Field(default_factory=dict)
    upper_bounds: dict[int, Any] = Field(default_factory=dict)
    split_offsets: list[int] | None = None
    key_metadata: bytes | None = None

    @field_validator("key_metadata", mode="before")
    @classmethod
    def _decode_key_metadata(cls, v: Any) -> Any:
        if isinstance(v, str):
            return bytes.fromhex(v)
        return v

    @field_serializer("key_metadata", when_used="json")
    def _encode_key_metadata(self, v: bytes | None) -> str | None:
        return v.hex() if v is not None else None

    @classmethod
    def from_encrypted_output_file(
        cls,
        file: EncryptedOutputFile,
        *,
        file_format: FileFormat,
        file_size_in_bytes: int,
        metrics: Metrics,
        split_offsets: list[int] | None,
        spec_id: int = 0,
        partition: PartitionKey | None = None,
    ) -> DataFile:
        return cls(
            file_path=file.encrypting_output_file.location,
            file_format=file_format,
            spec_id=spec_id,
            partition=partition.to_dict() if partition is not None else None,
            record_count=metrics.record_count,
            file_size_in_bytes=file_size_in_bytes,
            value_counts=metrics.value_counts,
            null_value_counts=metrics.null_value_counts,
            lower_bounds=metrics.lower_bounds,
            upper_bounds=metrics.upper_bounds,
            split_offsets=split_offsets,
            key_metadata=file.key_metadata,
        )

    def partition_key(self) -> tuple[tuple[str, Any], ...]:
        """Hashable view of the partition values, used to group files by partition."""
        return tuple(sorted((self.partition or {}).items()))


class TaskCommit(BaseModel):
    """Commit message from one task: the data files it wrote, in write order."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    files: tuple[DataFile, ...] = ()
