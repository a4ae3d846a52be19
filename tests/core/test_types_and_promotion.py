from __future__ import annotations

import pytest

from stratum.core.errors import SchemaError
from stratum.core.promotion import is_promotion_allowed
from stratum.core.types import (
    BINARY,
    DOUBLE,
    FLOAT,
    INT,
    LONG,
    STRING,
    TIMESTAMP,
    TIMESTAMPTZ,
    ListType,
    MapType,
    NestedField,
    PrimitiveType,
    Schema,
    StructType,
    TypeId,
    decimal,
    fixed,
    optional,
    required,
)


@pytest.mark.parametrize(
    "from_type,to_type,allowed",
    [
        (INT, INT, True),
        (INT, LONG, True),
        (LONG, INT, False),
        (FLOAT, DOUBLE, True),
        (DOUBLE, FLOAT, False),
        (INT, DOUBLE, False),
        (INT, FLOAT, False),
        (STRING, BINARY, False),
        (BINARY, STRING, False),
        (TIMESTAMP, TIMESTAMPTZ, False),
        (fixed(3), fixed(4), False),
        (fixed(4), fixed(4), True),
        (decimal(9, 2), decimal(11, 2), True),
        (decimal(11, 2), decimal(9, 2), False),
        (decimal(9, 2), decimal(9, 3), False),
        (decimal(9, 2), DOUBLE, False),
    ],
)
def test_promotion_table(from_type, to_type, allowed: bool) -> None:
    assert is_promotion_allowed(from_type, to_type) is allowed


def test_promotion_is_not_transitive_beyond_listed_pairs() -> None:
    # int -> long and float -> double exist, int -> double does not
    assert is_promotion_allowed(INT, LONG)
    assert not is_promotion_allowed(INT, DOUBLE)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("long", LONG),
        ("  String ", STRING),
        ("fixed[16]", fixed(16)),
        ("decimal(9, 2)", decimal(9, 2)),
        ("decimal(38,0)", decimal(38, 0)),
    ],
)
def test_primitive_parse_accepts_string_forms(text: str, expected: PrimitiveType) -> None:
    parsed = PrimitiveType.parse(text)

    assert parsed == expected
    assert PrimitiveType.parse(str(parsed)) == parsed


@pytest.mark.parametrize(
    "build,match",
    [
        (lambda: PrimitiveType.parse("varchar"), "unknown primitive type"),
        (lambda: PrimitiveType(TypeId.STRUCT), "is not a primitive type"),
        (lambda: fixed(0), "fixed length must be positive"),
        (lambda: decimal(0, 0), r"decimal precision must be in \[1, 38\]"),
        (lambda: decimal(39, 2), r"decimal precision must be in \[1, 38\]"),
        (lambda: PrimitiveType(TypeId.LONG, length=4), "length is only valid for fixed"),
        (lambda: PrimitiveType(TypeId.DECIMAL, precision=9), "decimal requires precision and scale"),
    ],
)
def test_invalid_primitives_are_rejected(build, match: str) -> None:
    with pytest.raises(SchemaError, match=match):
        build()


def test_map_keys_must_be_required() -> None:
    with pytest.raises(SchemaError, match="map keys are always required"):
        MapType(NestedField(1, "key", False, STRING), NestedField(2, "value", True, INT))


def test_schema_rejects_duplicate_field_ids_anywhere_in_tree() -> None:
    with pytest.raises(SchemaError, match="duplicate field id 2"):
        Schema(
            required(1, "id", LONG),
            optional(3, "point", StructType.of(required(2, "x", DOUBLE), required(2, "y", DOUBLE))),
        )


def test_schema_lookups_by_id_and_dotted_name() -> None:
    schema = Schema(
        required(1, "id", LONG),
        optional(2, "location", StructType.of(required(3, "lat", DOUBLE), required(4, "lon", DOUBLE))),
        optional(5, "tags", ListType.of_optional(6, STRING)),
        optional(7, "props", MapType.of_required(8, 9, STRING, STRING)),
        schema_id=3,
    )

    assert schema.schema_id == 3
    assert len(schema) == 4
    assert [f.name for f in schema] == ["id", "location", "tags", "props"]
    assert schema.find_field(4).name == "lon"
    assert schema.find_field("location.lat").field_id == 3
    assert schema.find_field("missing") is None
    assert schema.find_column_name(6) == "tags.element"
    assert schema.find_column_name(9) == "props.value"
    assert schema.highest_field_id == 9


def test_type_strings_are_readable() -> None:
    schema = Schema(required(1, "id", LONG), optional(2, "tags", ListType.of_optional(3, STRING)))

    assert str(MapType.of_optional(1, 2, STRING, decimal(9, 2))) == "map<string, decimal(9, 2)>"
    assert str(schema) == "table {\n  1: id: required long\n  2: tags: optional list<string>\n}"
    assert schema.fields[1].is_optional
    assert schema.fields[1].type.is_nested
    assert LONG.is_primitive
