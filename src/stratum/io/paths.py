"""
Path and layout helpers for stratum.io.

Overview (file protocol baseline)
- <table>/metadata/v<N>.metadata.json
- <table>/data/<partition path>/<NNNNN>-<task>-<uuid>.<ext>

Notes
- This module focuses solely on path construction; it never touches the filesystem.
- ``write.data.path`` relocates data files; metadata always stays under the table root.
"""

from __future__ import annotations

import os
import re
from typing import Final

_METADATA_DIR: Final[str] = "metadata"
_DATA_DIR: Final[str] = "data"
_VERSION_RE: Final[re.Pattern[str]] = re.compile(r"^v(\d+)\.metadata\.json$")


def metadata_dir(table_location: str) -> str:
    """Path "<table>/metadata"."""
    return os.path.join(table_location, _METADATA_DIR)


def data_dir(table_location: str) -> str:
    """Path "<table>/data"."""
    return os.path.join(table_location, _DATA_DIR)


def format_version_file(version: int) -> str:
    """
    Format a metadata file name as 'v00000003.metadata.json'.

    Raises:
        ValueError: If version < 1.
    """
    if version < 1:
        raise ValueError("metadata version must be >= 1")
    return f"v{version:08d}.metadata.json"


def metadata_path(table_location: str, version: int) -> str:
    return os.path.join(metadata_dir(table_location), format_version_file(version))


def parse_version_file(name: str) -> int | None:
    """Return the version encoded in a metadata file name, or None for other files."""
    m = _VERSION_RE.match(name)
    return int(m.group(1)) if m else None
