from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from stratum.core.errors import SchemaError
from stratum.core.partitioning import PartitionKey, PartitionSpec, Transform, TransformKind
from stratum.core.types import (
    DATE,
    LONG,
    STRING,
    TIMESTAMP,
    TIMESTAMPTZ,
    Schema,
    StructType,
    optional,
    required,
)

SCHEMA = Schema(
    required(1, "id", LONG),
    optional(2, "region", STRING),
    optional(3, "day", DATE),
    optional(4, "ts", TIMESTAMP),
    optional(5, "tstz", TIMESTAMPTZ),
    optional(6, "meta", StructType.of(optional(7, "source", STRING))),
)


@pytest.mark.parametrize(
    "transform,value,expected,human",
    [
        (Transform(TransformKind.IDENTITY), "eu west", "eu west", "eu west"),
        (Transform(TransformKind.TRUNCATE, 10), 27, 20, "20"),
        (Transform(TransformKind.TRUNCATE, 10), -1, -10, "-10"),
        (Transform(TransformKind.TRUNCATE, 3), "abcdef", "abc", "abc"),
        (Transform(TransformKind.YEAR), date(2024, 3, 5), 54, "2024"),
        (Transform(TransformKind.MONTH), date(2024, 3, 5), 650, "2024-03"),
        (Transform(TransformKind.DAY), date(1970, 1, 2), 1, "1970-01-02"),
        (Transform(TransformKind.DAY), datetime(1970, 1, 3, 5), 2, "1970-01-03"),
        (Transform(TransformKind.HOUR), datetime(1970, 1, 1, 7, 30), 7, "1970-01-01-07"),
        (
            Transform(TransformKind.HOUR),
            datetime(1970, 1, 1, 1, tzinfo=timezone.utc),
            1,
            "1970-01-01-01",
        ),
        (Transform(TransformKind.VOID), "anything", None, "null"),
    ],
)
def test_transform_apply_and_render(transform: Transform, value, expected, human: str) -> None:
    result = transform.apply(value)

    assert result == expected
    assert transform.to_human_string(result) == human


def test_transforms_keep_null() -> None:
    for kind in TransformKind:
        width = 4 if kind is TransformKind.TRUNCATE else None
        assert Transform(kind, width).apply(None) is None


@pytest.mark.parametrize("text", ["identity", "truncate[8]", "year", "month", "day", "hour", "void"])
def test_transform_parse_round_trips(text: str) -> None:
    assert str(Transform.parse(text)) == text


def test_transform_parse_rejects_unknown() -> None:
    with pytest.raises(SchemaError, match="unknown partition transform"):
        Transform.parse("bucket[16]")


def test_builder_assigns_partition_field_ids_and_names() -> None:
    spec = (
        PartitionSpec.builder(SCHEMA)
        .identity("region")
        .day("day", "event_day")
        .truncate("id", 100)
        .build()
    )

    assert [(f.source_id, f.field_id, f.name) for f in spec.fields] == [
        (2, 1000, "region"),
        (3, 1001, "event_day"),
        (1, 1002, "id_trunc"),
    ]
    assert not spec.is_unpartitioned
    assert PartitionSpec.unpartitioned().is_unpartitioned


@pytest.mark.parametrize(
    "build,match",
    [
        (lambda b: b.identity("nope"), "cannot find source column"),
        (lambda b: b.hour("day"), "invalid transform hour"),
        (lambda b: b.year("region"), "invalid transform year"),
        (lambda b: b.identity("meta"), "cannot partition by non-primitive field"),
        (lambda b: b.identity("region").identity("region"), "duplicate partition field names"),
    ],
)
def test_builder_rejects_invalid_partitioning(build, match: str) -> None:
    with pytest.raises(SchemaError, match=match):
        build(PartitionSpec.builder(SCHEMA)).build()


def test_spec_json_round_trip() -> None:
    spec = PartitionSpec.builder(SCHEMA).month("tstz").truncate("region", 2, "r2").build()

    restored = PartitionSpec.from_json_obj(spec.to_json_obj())

    assert restored == spec


def test_partition_key_accumulator_and_copies() -> None:
    spec = PartitionSpec.builder(SCHEMA).identity("region").day("day").build()
    key = PartitionKey(spec, SCHEMA)

    key.partition({"id": 1, "region": "eu", "day": date(2024, 1, 2)})
    snapshot = key.copy()
    key.partition({"id": 2, "region": "us", "day": None})

    assert snapshot.values == ("eu", 19724)
    assert key.values == ("us", None)
    assert snapshot != key
    assert snapshot.to_path() == "region=eu/day_day=2024-01-02"
    assert key.to_path() == "region=us/day_day=null"
    assert snapshot.to_dict() == {"region": "eu", "day_day": 19724}
    assert len({snapshot, snapshot.copy()}) == 1


def test_partition_key_reads_nested_source_and_quotes_path() -> None:
    spec = PartitionSpec.builder(SCHEMA).identity("meta.source", "source").build()
    key = PartitionKey(spec, SCHEMA)

    key.partition({"id": 1, "meta": {"source": "a/b c"}})
    assert key.to_path() == "source=a%2Fb%20c"

    key.partition({"id": 2, "meta": None})
    assert key.values == (None,)
