"""
Schema compatibility checks between a read schema and a write schema.

Fields are matched by id, never by name or position. One pass walks the read schema's
tree alongside the write schema and returns every incompatibility it finds; nothing
short-circuits except a shape mismatch, below which there is nothing left to compare.

Entry points
- write_compatibility_errors(read_schema, write_schema): can records produced against
  ``write_schema`` be written into a table declared as ``read_schema``? Order-sensitive:
  struct fields must appear in the same relative order on both sides.
- read_compatibility_errors(read_schema, write_schema): can data written as
  ``write_schema`` be read back as ``read_schema``? Fields may be reordered freely.
- check_write_compatibility: raises IncompatibleSchemaError when the write check fails;
  the write path calls this before any file is opened.

Diagnostics
- ``<name> is required, but is missing``
- ``<name> should be required, but is optional``
- ``<name> is out of order, before <name>``
- ``elements should be required, but are optional``
- ``values should be required, but are optional``
- ``<write type> cannot be promoted to <read type>``
- ``<write kind> cannot be read as a <read kind>``

Each diagnostic is prefixed with the path of read-side field names that leads to it:
``name: message`` for a problem with the field's own type, ``parent.child ...`` for a
problem further down.

Notes
- Map keys go through the type check but their required/optional flags are not compared
  (keys are always required by construction).
"""

from __future__ import annotations

from .errors import IncompatibleSchemaError
from .promotion import is_promotion_allowed
from .types import ListType, MapType, NestedField, PrimitiveType, Schema, StructType, Type

__all__ = [
    "write_compatibility_errors",
    "read_compatibility_errors",
    "check_write_compatibility",
]


def _kind(t: Type) -> str:
    return t.type_id.value if t.is_nested else str(t)


class _CompatibilityChecker:
    """Recursive walk over (read, write) type pairs; ``check_ordering`` enables struct order checks."""

    def __init__(self, check_ordering: bool) -> None:
        self.check_ordering = check_ordering

    def check(self, read_schema: Schema, write_schema: Schema) -> list[str]:
        return self._struct(read_schema.as_struct(), write_schema.as_struct())

    def _visit(self, read: Type, write: Type) -> list[str]:
        if isinstance(read, StructType):
            return self._struct(read, write)
        if isinstance(read, ListType):
            return self._list(read, write)
        if isinstance(read, MapType):
            return self._map(read, write)
        assert isinstance(read, PrimitiveType)
        return self._primitive(read, write)

    def _struct(self, read: StructType, write: Type) -> list[str]:
        if not isinstance(write, StructType):
            return [f": {_kind(write)} cannot be read as a struct"]

        errors: list[str] = []
        for read_field in read.fields:
            errors.extend(self._field(read_field, write))

        if self.check_ordering:
            errors.extend(self._ordering(read, write))
        return errors

    def _field(self, read_field: NestedField, write: StructType) -> list[str]:
        name = read_field.name
        write_field = write.field(read_field.field_id)
        if write_field is None:
            if read_field.required:
                return [f"{name} is required, but is missing"]
            # optional fields that were never written read as nulls
            return []

        errors: list[str] = []
        if read_field.required and write_field.is_optional:
            errors.append(f"{name} should be required, but is optional")

        for error in self._visit(read_field.type, write_field.type):
            if error.startswith(":"):
                errors.append(name + error)
            else:
                errors.append(f"{name}.{error}")
        return errors

    @staticmethod
    def _ordering(read: StructType, write: StructType) -> list[str]:
        positions = {f.field_id: pos for pos, f in enumerate(write.fields)}
        errors: list[str] = []
        last = -1
        for read_field in read.fields:
            pos = positions.get(read_field.field_id)
            if pos is None:
                continue
            if last >= pos:
                errors.append(
                    f"{read_field.name} is out of order, before {write.fields[last].name}"
                )
            else:
                last = pos
        return errors

    def _list(self, read: ListType, write: Type) -> list[str]:
        if not isinstance(write, ListType):
            return [f": {_kind(write)} cannot be read as a list"]

        errors: list[str] = []
        if read.element_required and not write.element_required:
            errors.append(": elements should be required, but are optional")
        errors.extend(self._visit(read.element_type, write.element_type))
        return errors

    def _map(self, read: MapType, write: Type) -> list[str]:
        if not isinstance(write, MapType):
            return [f": {_kind(write)} cannot be read as a map"]

        errors: list[str] = []
        errors.extend(self._visit(read.key_type, write.key_type))
        if read.value_required and not write.value_required:
            errors.append(": values should be required, but are optional")
        errors.extend(self._visit(read.value_type, write.value_type))
        return errors

    @staticmethod
    def _primitive(read: PrimitiveType, write: Type) -> list[str]:
        if read == write:
            return []
        if not isinstance(write, PrimitiveType):
            return [f": {_kind(write)} cannot be read as a {read}"]
        if not is_promotion_allowed(write, read):
            return [f": {write} cannot be promoted to {read}"]
        return []


def write_compatibility_errors(read_schema: Schema, write_schema: Schema) -> list[str]:
    """
    Diagnostics for writing ``write_schema`` records into a table declared as ``read_schema``.

    Args:
        read_schema (Schema): The table's declared schema.
        write_schema (Schema): The schema records are produced against.

    Returns:
        list[str]: Empty when compatible; otherwise one entry per problem, in pre-order of
        the read schema with each struct's order problems after its field problems.

    Examples:
        >>> from stratum.core.types import INT, Schema, optional, required
        >>> write_compatibility_errors(Schema(required(1, "a", INT)), Schema(optional(1, "a", INT)))
        ['a should be required, but is optional']
    """
    return _CompatibilityChecker(check_ordering=True).check(read_schema, write_schema)


def read_compatibility_errors(read_schema: Schema, write_schema: Schema) -> list[str]:
    """
    Diagnostics for reading data written as ``write_schema`` back as ``read_schema``.

    Same rules as write_compatibility_errors except that field order is never checked.
    """
    return _CompatibilityChecker(check_ordering=False).check(read_schema, write_schema)


def check_write_compatibility(read_schema: Schema, write_schema: Schema) -> None:
    """
    Refuse a write whose schema is not write-compatible with the table schema.

    Raises:
        IncompatibleSchemaError: Carrying the full diagnostic list when any problem exists.
    """
    errors = write_compatibility_errors(read_schema, write_schema)
    if errors:
        problems = "\n".join(f"* {e}" for e in errors)
        raise IncompatibleSchemaError(
            f"Cannot write incompatible dataset to table with schema:\n{read_schema}\n"
            f"Problems:\n{problems}",
            errors,
        )
