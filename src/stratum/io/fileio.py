"""
File abstraction used by writers, the table, and the commit coordinator.

Responsibilities
- FileIO: create output files, open input files, delete files by location.
- OutputFile.create(): a byte stream that writes to a tmp file next to the final path and
  publishes it with fsync + atomic rename on close. A file is therefore either absent or
  complete at its final location.
- The stream counts bytes written, so appenders can report their current length without
  stat calls.

Notes
- Locations are local paths; a leading ``file://`` is accepted and stripped.
- Remote backends can implement the FileIO protocol; nothing above this module touches
  ``os`` directly.
"""

from __future__ import annotations

import os
import uuid
from typing import BinaryIO, Protocol

from loguru import logger

from .fs import exists, file_size, fsync_file, makedirs, remove_if_exists, rename_atomic

__all__ = [
    "FileIO",
    "LocalFileIO",
    "InputFile",
    "OutputFile",
    "PositionOutputStream",
    "local_path",
]


def local_path(location: str) -> str:
    """Strip a ``file://`` scheme, if present."""
    return location[len("file://") :] if location.startswith("file://") else location


class PositionOutputStream:
    """
    Write-only byte stream with a running position, published atomically on close.

    Args:
        final_path (str): Destination path.

    Notes:
        - ``abort()`` discards the tmp file without publishing.
        - ``close()`` is idempotent.
    """

    def __init__(self, final_path: str) -> None:
        parent = os.path.dirname(final_path)
        if parent:
            makedirs(parent, exist_ok=True)
        base = os.path.basename(final_path)
        self._final_path = final_path
        self._tmp_path = os.path.join(parent, f".{base}.{uuid.uuid4().hex}.tmp")
        self._fh: BinaryIO = open(self._tmp_path, "wb")  # noqa: SIM115
        self._pos = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def writable(self) -> bool:
        return True

    def readable(self) -> bool:
        return False

    def seekable(self) -> bool:
        return False

    def write(self, data: bytes | bytearray | memoryview) -> int:
        n = self._fh.write(data)
        self._pos += n
        return n

    def tell(self) -> int:
        return self._pos

    def flush(self) -> None:
        if not self._closed:
            self._fh.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            fsync_file(self._fh)
            self._fh.close()
            rename_atomic(self._tmp_path, self._final_path)
        except BaseException:
            self._fh.close()
            remove_if_exists(self._tmp_path)
            raise

    def abort(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._fh.close()
        remove_if_exists(self._tmp_path)

    def __enter__(self) -> PositionOutputStream:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()


class OutputFile:
    """A location that can be created once."""

    def __init__(self, location: str) -> None:
        self.location = location

    def exists(self) -> bool:
        return exists(local_path(self.location))

    def create(self) -> PositionOutputStream:
        return PositionOutputStream(local_path(self.location))

    def __repr__(self) -> str:
        return f"OutputFile({self.location!r})"


class InputFile:
    """A readable location."""

    def __init__(self, location: str) -> None:
        self.location = location

    def exists(self) -> bool:
        return exists(local_path(self.location))

    def length(self) -> int:
        return file_size(local_path(self.location))

    def open(self) -> BinaryIO:
        return open(local_path(self.location), "rb")  # noqa: SIM115

    def __repr__(self) -> str:
        return f"InputFile({self.location!r})"


class FileIO(Protocol):
    def new_output_file(self, location: str) -> OutputFile: ...

    def new_input_file(self, location: str) -> InputFile: ...

    def delete_file(self, location: str) -> None: ...


class LocalFileIO:
    """FileIO over the local filesystem."""

    def new_output_file(self, location: str) -> OutputFile:
        return OutputFile(location)

    def new_input_file(self, location: str) -> InputFile:
        return InputFile(location)

    def delete_file(self, location: str) -> None:
        """
        Delete a file. A missing file is not an error.

        Raises:
            OSError: For any failure other than the file being absent.
        """
        if remove_if_exists(local_path(location)):
            logger.debug("deleted {}", location)
