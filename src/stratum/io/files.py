"""
Output file naming for one write task.

File names are ``<partition id:05d>-<task id>-<uuid>.<ext>``: unique per task attempt,
sortable by partition, and carrying the format extension. Each new file passes through
the table's EncryptionManager.
"""

from __future__ import annotations

import uuid

from stratum.core.partitioning import PartitionKey, PartitionSpec

from .encryption import EncryptedOutputFile, EncryptionManager
from .fileio import FileIO
from .formats import FileFormat
from .locations import LocationProvider

__all__ = ["OutputFileFactory"]


class OutputFileFactory:
    """
    Generate output files for one task.

    Args:
        spec (PartitionSpec): Table partition spec.
        file_format (FileFormat): Format of the files to write.
        locations (LocationProvider): Places files in the table layout.
        io (FileIO): Creates output files.
        encryption (EncryptionManager): Wraps each output file.
        partition_id (int): Input partition number of the task.
        task_id (int): Task attempt id.
        epoch_id (int): Streaming epoch; unused for batch writes.
    """

    def __init__(
        self,
        spec: PartitionSpec,
        file_format: FileFormat,
        locations: LocationProvider,
        io: FileIO,
        encryption: EncryptionManager,
        partition_id: int,
        task_id: int,
        epoch_id: int = 0,
    ) -> None:
        self.spec = spec
        self.format = file_format
        self.locations = locations
        self.io = io
        self.encryption = encryption
        self.partition_id = partition_id
        self.task_id = task_id
        self.epoch_id = epoch_id

    def generate_filename(self) -> str:
        return self.format.add_extension(f"{self.partition_id:05d}-{self.task_id}-{uuid.uuid4()}")

    def new_output_file(self, key: PartitionKey | None = None) -> EncryptedOutputFile:
        """Create a new, not-yet-written output file, under the key's partition path if given."""
        location = self.locations.new_data_location(self.generate_filename(), self.spec, key)
        return self.encryption.encrypt(self.io.new_output_file(location))
