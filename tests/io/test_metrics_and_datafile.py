from __future__ import annotations

import math

import pytest

from stratum.core import constants as C
from stratum.core.types import BINARY, DOUBLE, LONG, STRING, ListType, Schema, optional, required
from stratum.io.datafile import DataFile, TaskCommit
from stratum.io.errors import IoConfigError
from stratum.io.formats import FileFormat
from stratum.io.metrics import MetricsCollector, MetricsConfig, MetricsMode

SCHEMA = Schema(
    required(1, "id", LONG),
    optional(2, "name", STRING),
    optional(3, "score", DOUBLE),
    optional(4, "blob", BINARY),
    optional(5, "tags", ListType.of_optional(6, STRING)),
)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("none", MetricsMode(False, False)),
        ("counts", MetricsMode(True, False)),
        ("full", MetricsMode(True, True)),
        ("Truncate(8)", MetricsMode(True, True, 8)),
    ],
)
def test_metrics_mode_parse(text: str, expected: MetricsMode) -> None:
    assert MetricsMode.parse(text) == expected


@pytest.mark.parametrize("text", ["truncate(0)", "some", "truncate[4]"])
def test_metrics_mode_rejects_invalid(text: str) -> None:
    with pytest.raises(IoConfigError, match="invalid metrics mode"):
        MetricsMode.parse(text)


def test_collector_counts_bounds_and_skips_nan() -> None:
    collector = MetricsCollector(SCHEMA, MetricsConfig.from_properties({}))

    for rec in [
        {"id": 3, "name": "b", "score": math.nan, "tags": ["x"]},
        {"id": 1, "name": None, "score": 2.0, "blob": b"\x01"},
        {"id": 2, "name": "a", "score": -1.0, "blob": b"\x00\xff"},
    ]:
        collector.update(rec)
    m = collector.result()

    assert m.record_count == 3
    assert m.value_counts == {1: 3, 2: 3, 3: 3, 4: 3}
    assert m.null_value_counts == {1: 0, 2: 1, 3: 0, 4: 1}
    assert m.lower_bounds == {1: 1, 2: "a", 3: -1.0, 4: "00ff"}
    assert m.upper_bounds == {1: 3, 2: "b", 3: 2.0, 4: "01"}


def test_collector_truncates_string_bounds_and_rounds_upper_up() -> None:
    props = {C.METRICS_MODE_DEFAULT: "truncate(2)", C.METRICS_MODE_COLUMN_PREFIX + "id": "none"}
    collector = MetricsCollector(SCHEMA, MetricsConfig.from_properties(props))

    collector.update({"id": 1, "name": "abcz", "blob": b"\x01\xff\xff"})
    collector.update({"id": 2, "name": "abc", "blob": b"\x01\xff"})
    m = collector.result()

    assert 1 not in m.value_counts
    assert m.lower_bounds[2] == "ab"
    assert m.upper_bounds[2] == "ac"
    assert m.lower_bounds[4] == "01ff"
    # 0x01ff cannot be incremented in place, so the carry moves left
    assert m.upper_bounds[4] == "02"


def test_counts_mode_records_no_bounds() -> None:
    config = MetricsConfig.from_properties({C.METRICS_MODE_DEFAULT: "counts"})
    collector = MetricsCollector(SCHEMA, config)

    collector.update({"id": 1, "name": "a"})
    m = collector.result()

    assert m.value_counts[1] == 1
    assert m.lower_bounds == {}
    assert m.upper_bounds == {}


def test_data_file_json_round_trip() -> None:
    data_file = DataFile(
        file_path="/t/data/region=eu/00000-0-x.parquet",
        file_format=FileFormat.PARQUET,
        partition={"region": "eu"},
        record_count=2,
        file_size_in_bytes=512,
        value_counts={1: 2},
        lower_bounds={1: 1},
        upper_bounds={1: 9},
        split_offsets=[4],
        key_metadata=b"\x00\x01",
    )
    message = TaskCommit(files=(data_file,))

    encoded = message.model_dump_json()
    restored = TaskCommit.model_validate_json(encoded)

    assert '"key_metadata":"0001"' in encoded
    assert restored == message
    assert restored.files[0].partition_key() == (("region", "eu"),)


def test_data_file_rejects_negative_counts() -> None:
    with pytest.raises(ValueError):
        DataFile(
            file_path="x.parquet",
            file_format=FileFormat.PARQUET,
            record_count=-1,
            file_size_in_bytes=0,
        )
