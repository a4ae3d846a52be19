"""
Core exception types raised by the type model, partition specs, the compatibility
checker, and metadata versioning.

Provides typed exceptions for core-domain failures:
- SchemaError for invalid schema or partition spec construction (duplicate field ids,
  unknown source columns, unsupported transforms).
- IncompatibleSchemaError when a write schema cannot be written into a table schema.
- VersionMismatch for table metadata written with an unsupported format version.

Notes:
    - This module uses only the Python standard library and has no side effects.
    - The compatibility checker itself returns diagnostics as a list of strings; only
      stratum.core.compat.check_write_compatibility turns them into an exception.

Examples:
    >>> from stratum.core.errors import IncompatibleSchemaError
    >>> err = IncompatibleSchemaError("cannot write", ["id: long cannot be promoted to int"])
    >>> err.errors
    ['id: long cannot be promoted to int']
"""

from __future__ import annotations

from collections.abc import Iterable

__all__ = [
    "SchemaError",
    "IncompatibleSchemaError",
    "VersionMismatch",
]


class SchemaError(ValueError):
    """Schema-level construction failure (duplicate ids, bad partition sources, bad types)."""


class IncompatibleSchemaError(SchemaError):
    """
    A write schema is not write-compatible with the table schema.

    Attributes:
        errors (list[str]): Diagnostics in checker order.
    """

    def __init__(self, message: str, errors: Iterable[str]) -> None:
        super().__init__(message)
        self.errors = list(errors)


class VersionMismatch(RuntimeError):
    """Incompatible or unexpected table metadata format version encountered."""
