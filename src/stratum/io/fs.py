"""
Local-disk primitives behind LocalFileIO and the metadata commit.

Two publication paths are supported:
- Data and scratch files: write to ``<name>.tmp``, fsync, then ``os.replace`` into place.
- Metadata versions: write to a tmp file, fsync, then hard-link to the versioned name.
  The link refuses to clobber, so two committers racing for the same version cannot
  both win.

Both paths require the tmp file to live in the destination directory.
"""

from __future__ import annotations

import os
from typing import BinaryIO


def exists(path: str) -> bool:
    return os.path.exists(path)


def makedirs(path: str, exist_ok: bool = True) -> None:
    os.makedirs(path, exist_ok=exist_ok)


def fsync_file(fh: BinaryIO) -> None:
    """Push buffered bytes of ``fh`` to the device."""
    fh.flush()
    os.fsync(fh.fileno())


def rename_atomic(src: str, dst: str) -> None:
    """Move a finished tmp file over ``dst``; an existing ``dst`` is replaced."""
    os.replace(src, dst)


def publish_exclusive(src: str, dst: str) -> bool:
    """
    Link ``src`` to ``dst`` unless ``dst`` is already taken. ``src`` is removed either way.

    Returns:
        bool: False when another committer claimed ``dst`` first.
    """
    try:
        os.link(src, dst)
    except FileExistsError:
        return False
    finally:
        remove_if_exists(src)
    return True


def remove_if_exists(path: str) -> bool:
    """Delete ``path``; returns False if there was nothing to delete."""
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    return True


def file_size(path: str) -> int:
    return int(os.path.getsize(path))


def listdir(path: str) -> list[str]:
    """Names under ``path``, or [] for a directory that was never created."""
    try:
        return os.listdir(path)
    except FileNotFoundError:
        return []
