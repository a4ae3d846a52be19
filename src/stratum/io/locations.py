"""
Data file placement.

Layout
- ``<data dir>/<filename>`` for unpartitioned files.
- ``<data dir>/<name>=<value>/.../<filename>`` for partitioned files, using
  PartitionSpec.partition_to_path (Hive-style, URL-quoted).
- ``<data dir>`` is ``write.data.path`` when set, otherwise ``<table location>/data``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Protocol

from stratum.core import constants as C
from stratum.core.partitioning import PartitionKey, PartitionSpec

from .paths import data_dir

__all__ = ["LocationProvider", "DefaultLocationProvider"]


class LocationProvider(Protocol):
    def new_data_location(
        self,
        filename: str,
        spec: PartitionSpec | None = None,
        key: PartitionKey | None = None,
    ) -> str: ...


class DefaultLocationProvider:
    """
    Place data files under the table's data directory.

    Examples:
        >>> DefaultLocationProvider("/tmp/t", {}).new_data_location("a.parquet")
        '/tmp/t/data/a.parquet'
    """

    def __init__(self, table_location: str, properties: Mapping[str, str]) -> None:
        override = properties.get(C.WRITE_DATA_LOCATION)
        self._data_location = override.rstrip("/") if override else data_dir(table_location)

    @property
    def data_location(self) -> str:
        return self._data_location

    def new_data_location(
        self,
        filename: str,
        spec: PartitionSpec | None = None,
        key: PartitionKey | None = None,
    ) -> str:
        if key is None or spec is None or spec.is_unpartitioned:
            return os.path.join(self._data_location, filename)
        return os.path.join(self._data_location, key.to_path(), filename)
