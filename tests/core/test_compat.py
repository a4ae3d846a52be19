from __future__ import annotations

import pytest

from stratum.core.compat import (
    check_write_compatibility,
    read_compatibility_errors,
    write_compatibility_errors,
)
from stratum.core.errors import IncompatibleSchemaError
from stratum.core.promotion import is_promotion_allowed
from stratum.core.types import (
    BINARY,
    BOOLEAN,
    DATE,
    DOUBLE,
    FLOAT,
    INT,
    LONG,
    STRING,
    TIME,
    TIMESTAMP,
    TIMESTAMPTZ,
    UUID,
    ListType,
    MapType,
    Schema,
    StructType,
    decimal,
    fixed,
    optional,
    required,
)

PRIMITIVES = [
    BOOLEAN,
    INT,
    LONG,
    FLOAT,
    DOUBLE,
    DATE,
    TIME,
    TIMESTAMP,
    TIMESTAMPTZ,
    STRING,
    UUID,
    fixed(3),
    fixed(4),
    BINARY,
    decimal(9, 2),
    decimal(11, 2),
    decimal(9, 3),
]


@pytest.mark.parametrize("from_type", PRIMITIVES, ids=str)
@pytest.mark.parametrize("to_type", PRIMITIVES, ids=str)
def test_primitive_write_follows_promotion_table(from_type, to_type) -> None:
    write = Schema(required(1, "from_field", from_type))
    read = Schema(required(1, "to_field", to_type))

    errors = write_compatibility_errors(read, write)

    if is_promotion_allowed(from_type, to_type):
        assert errors == []
    else:
        assert len(errors) == 1
        assert "cannot be promoted to" in errors[0]


@pytest.mark.parametrize("from_type", PRIMITIVES, ids=str)
@pytest.mark.parametrize(
    "read_type,shape",
    [
        (lambda t: StructType.of(required(2, "from", t)), "struct"),
        (lambda t: ListType.of_required(2, t), "list"),
        (lambda t: MapType.of_required(2, 3, STRING, t), "map"),
        (lambda t: MapType.of_required(2, 3, t, STRING), "map"),
    ],
)
def test_primitive_cannot_be_read_as_nested(from_type, read_type, shape) -> None:
    write = Schema(required(1, "from_field", from_type))
    read = Schema(required(1, "nested_field", read_type(from_type)))

    errors = write_compatibility_errors(read, write)

    assert len(errors) == 1
    assert f"cannot be read as a {shape}" in errors[0]


def test_required_schema_field_written_optional() -> None:
    write = Schema(optional(1, "from_field", INT))
    read = Schema(required(1, "to_field", INT))

    assert write_compatibility_errors(read, write) == ["to_field should be required, but is optional"]


def test_optional_read_field_accepts_required_write() -> None:
    write = Schema(required(1, "from_field", INT))
    read = Schema(optional(1, "to_field", INT))

    assert write_compatibility_errors(read, write) == []


def test_missing_schema_field() -> None:
    write = Schema(required(0, "other_field", INT))
    read = Schema(required(1, "to_field", INT))

    assert write_compatibility_errors(read, write) == ["to_field is required, but is missing"]


def test_required_struct_field() -> None:
    write = Schema(required(0, "nested", StructType.of(optional(1, "from_field", INT))))
    read = Schema(required(0, "nested", StructType.of(required(1, "to_field", INT))))

    assert write_compatibility_errors(read, write) == [
        "nested.to_field should be required, but is optional"
    ]


def test_missing_required_struct_field() -> None:
    write = Schema(required(0, "nested", StructType.of(optional(2, "from_field", INT))))
    read = Schema(required(0, "nested", StructType.of(required(1, "to_field", INT))))

    assert write_compatibility_errors(read, write) == ["nested.to_field is required, but is missing"]


def test_missing_optional_struct_field() -> None:
    write = Schema(required(0, "nested", StructType.of(required(2, "from_field", INT))))
    read = Schema(required(0, "nested", StructType.of(optional(1, "to_field", INT))))

    assert write_compatibility_errors(read, write) == []


def test_incompatible_struct_field() -> None:
    write = Schema(required(0, "nested", StructType.of(required(1, "from_field", INT))))
    read = Schema(required(0, "nested", StructType.of(required(1, "to_field", FLOAT))))

    assert write_compatibility_errors(read, write) == [
        "nested.to_field: int cannot be promoted to float"
    ]


def test_incompatible_struct_and_primitive() -> None:
    write = Schema(required(0, "nested", StructType.of(required(1, "from_field", STRING))))
    read = Schema(required(0, "nested", STRING))

    errors = write_compatibility_errors(read, write)

    assert len(errors) == 1
    assert "struct cannot be read as a string" in errors[0]


def test_multiple_errors_accumulate_in_order() -> None:
    write = Schema(required(0, "nested", StructType.of(optional(1, "from_field", INT))))
    read = Schema(required(0, "nested", StructType.of(required(1, "to_field", FLOAT))))

    errors = write_compatibility_errors(read, write)

    assert len(errors) == 2
    assert "should be required, but is optional" in errors[0]
    assert "cannot be promoted to float" in errors[1]


def test_sibling_errors_do_not_short_circuit() -> None:
    write = Schema(required(1, "a", LONG), optional(2, "b", STRING))
    read = Schema(required(1, "a", INT), required(2, "b", STRING), required(3, "c", INT))

    assert write_compatibility_errors(read, write) == [
        "a: long cannot be promoted to int",
        "b should be required, but is optional",
        "c is required, but is missing",
    ]


def test_required_map_value() -> None:
    write = Schema(required(0, "map_field", MapType.of_optional(1, 2, STRING, INT)))
    read = Schema(required(0, "map_field", MapType.of_required(1, 2, STRING, INT)))

    assert write_compatibility_errors(read, write) == [
        "map_field: values should be required, but are optional"
    ]


def test_incompatible_map_key() -> None:
    write = Schema(required(0, "map_field", MapType.of_optional(1, 2, INT, STRING)))
    read = Schema(required(0, "map_field", MapType.of_optional(1, 2, DOUBLE, STRING)))

    errors = write_compatibility_errors(read, write)

    assert len(errors) == 1
    assert "cannot be promoted to double" in errors[0]


def test_incompatible_map_value() -> None:
    write = Schema(required(0, "map_field", MapType.of_optional(1, 2, STRING, INT)))
    read = Schema(required(0, "map_field", MapType.of_optional(1, 2, STRING, DOUBLE)))

    errors = write_compatibility_errors(read, write)

    assert len(errors) == 1
    assert "cannot be promoted to double" in errors[0]


def test_incompatible_map_and_primitive() -> None:
    write = Schema(required(0, "map_field", MapType.of_optional(1, 2, STRING, INT)))
    read = Schema(required(0, "map_field", STRING))

    errors = write_compatibility_errors(read, write)

    assert len(errors) == 1
    assert "map cannot be read as a string" in errors[0]


def test_required_list_element() -> None:
    write = Schema(required(0, "list_field", ListType.of_optional(1, INT)))
    read = Schema(required(0, "list_field", ListType.of_required(1, INT)))

    assert write_compatibility_errors(read, write) == [
        "list_field: elements should be required, but are optional"
    ]


def test_incompatible_list_element() -> None:
    write = Schema(required(0, "list_field", ListType.of_optional(1, INT)))
    read = Schema(required(0, "list_field", ListType.of_optional(1, STRING)))

    errors = write_compatibility_errors(read, write)

    assert len(errors) == 1
    assert "cannot be promoted to string" in errors[0]


def test_incompatible_list_and_primitive() -> None:
    write = Schema(required(0, "list_field", ListType.of_optional(1, INT)))
    read = Schema(required(0, "list_field", STRING))

    errors = write_compatibility_errors(read, write)

    assert len(errors) == 1
    assert "list cannot be read as a string" in errors[0]


def test_struct_write_reordering_is_flagged() -> None:
    read = Schema(
        required(0, "nested", StructType.of(required(1, "field_a", INT), required(2, "field_b", INT)))
    )
    write = Schema(
        required(0, "nested", StructType.of(required(2, "field_b", INT), required(1, "field_a", INT)))
    )

    errors = write_compatibility_errors(read, write)

    assert len(errors) == 1
    assert "field_b is out of order, before field_a" in errors[0]


def test_struct_read_reordering_is_allowed() -> None:
    read = Schema(
        required(0, "nested", StructType.of(required(1, "field_a", INT), required(2, "field_b", INT)))
    )
    write = Schema(
        required(0, "nested", StructType.of(required(2, "field_b", INT), required(1, "field_a", INT)))
    )

    assert read_compatibility_errors(read, write) == []


def test_map_key_optionality_is_not_checked() -> None:
    # map keys are always required; only their types are compared
    write = Schema(required(0, "m", MapType.of_required(1, 2, STRING, INT)))
    read = Schema(required(0, "m", MapType.of_required(1, 2, STRING, LONG)))

    assert write_compatibility_errors(read, write) == []


def test_check_write_compatibility_raises_with_all_errors() -> None:
    write = Schema(optional(1, "id", LONG), required(2, "name", BINARY))
    read = Schema(required(1, "id", LONG), required(2, "name", STRING))

    with pytest.raises(IncompatibleSchemaError) as excinfo:
        check_write_compatibility(read, write)

    assert excinfo.value.errors == [
        "id should be required, but is optional",
        "name: binary cannot be promoted to string",
    ]
    message = str(excinfo.value)
    assert message.startswith("Cannot write incompatible dataset to table with schema:")
    assert "* id should be required, but is optional" in message


def test_check_write_compatibility_accepts_promotions() -> None:
    write = Schema(required(1, "id", INT), optional(2, "score", FLOAT))
    read = Schema(required(1, "id", LONG), optional(2, "score", DOUBLE))

    check_write_compatibility(read, write)
