from __future__ import annotations

import json
from pathlib import Path

import pytest

from stratum.core import constants as C
from stratum.core.errors import VersionMismatch
from stratum.core.partitioning import PartitionSpec
from stratum.core.types import LONG, STRING, Schema, optional, required
from stratum.io.datafile import DataFile
from stratum.io.errors import CommitFailedError, IoError
from stratum.io.formats import FileFormat
from stratum.io.paths import metadata_path
from stratum.io.table import SnapshotUpdate, Table

SCHEMA = Schema(required(1, "id", LONG), optional(2, "region", STRING))


def _data_file(path: str, region: str | None = None, records: int = 10) -> DataFile:
    return DataFile(
        file_path=path,
        file_format=FileFormat.PARQUET,
        partition={"region": region} if region is not None else None,
        record_count=records,
        file_size_in_bytes=100,
    )


def _partitioned_table(tmp_path: Path, properties: dict[str, str] | None = None) -> Table:
    spec = PartitionSpec.builder(SCHEMA).identity("region").build()
    return Table.create(str(tmp_path / "t"), SCHEMA, spec, properties)


def test_create_then_load_round_trips_schema_and_spec(tmp_path: Path) -> None:
    table = _partitioned_table(tmp_path, {"owner": "analytics"})

    loaded = Table.load(table.location)

    assert loaded.version == 1
    assert loaded.schema().fields == SCHEMA.fields
    assert loaded.spec() == table.spec()
    assert loaded.properties == {"owner": "analytics"}
    assert loaded.current_snapshot() is None
    assert Path(metadata_path(table.location, 1)).name == "v00000001.metadata.json"


def test_create_refuses_existing_table(tmp_path: Path) -> None:
    table = _partitioned_table(tmp_path)

    with pytest.raises(IoError, match="table already exists"):
        Table.create(table.location, SCHEMA)


def test_load_missing_table(tmp_path: Path) -> None:
    with pytest.raises(IoError, match="no table at"):
        Table.load(str(tmp_path / "absent"))


def test_load_rejects_other_format_versions(tmp_path: Path) -> None:
    table = _partitioned_table(tmp_path)
    path = Path(metadata_path(table.location, 1))
    doc = json.loads(path.read_text())
    doc["format_version"] = "9.0@2030-01-01"
    path.write_text(json.dumps(doc))

    with pytest.raises(VersionMismatch):
        Table.load(table.location)


def test_append_adds_snapshot_and_summary(tmp_path: Path) -> None:
    table = _partitioned_table(tmp_path)

    first = table.new_append().add_file(_data_file("a.parquet", "eu")).commit()
    second = (
        table.new_append()
        .add_file(_data_file("b.parquet", "us", records=5))
        .set("app.id", "job-1")
        .commit()
    )

    assert table.version == 3
    assert table.current_snapshot() == second
    assert second.parent_id == first.snapshot_id
    assert second.sequence_number == first.sequence_number + 1
    assert [f.file_path for f in second.data_files] == ["a.parquet", "b.parquet"]
    assert second.summary["added-data-files"] == "1"
    assert second.summary["total-records"] == "15"
    assert second.summary["app.id"] == "job-1"
    assert Table.load(table.location).current_snapshot() == second


def test_replace_partitions_drops_only_touched_partitions(tmp_path: Path) -> None:
    table = _partitioned_table(tmp_path)
    table.new_append().add_file(_data_file("eu-1.parquet", "eu")).add_file(
        _data_file("us-1.parquet", "us")
    ).commit()

    snap = table.new_replace_partitions().add_file(_data_file("eu-2.parquet", "eu", 3)).commit()

    assert snap.operation == "overwrite"
    assert sorted(f.file_path for f in snap.data_files) == ["eu-2.parquet", "us-1.parquet"]
    assert snap.summary["deleted-data-files"] == "1"
    assert snap.summary["deleted-records"] == "10"


def test_replace_partitions_on_unpartitioned_table(tmp_path: Path) -> None:
    table = Table.create(str(tmp_path / "t"), SCHEMA)
    table.new_append().add_file(_data_file("old.parquet")).commit()

    kept = table.new_replace_partitions().commit()
    assert [f.file_path for f in kept.data_files] == ["old.parquet"]

    replaced = table.new_replace_partitions().add_file(_data_file("new.parquet")).commit()
    assert [f.file_path for f in replaced.data_files] == ["new.parquet"]


def test_staged_snapshot_does_not_become_current(tmp_path: Path) -> None:
    table = _partitioned_table(tmp_path)
    base = table.new_append().add_file(_data_file("a.parquet", "eu")).commit()

    staged = table.new_append().add_file(_data_file("b.parquet", "us")).stage_only().commit()

    assert staged.staged is True
    assert table.current_snapshot() == base
    assert table.snapshot(staged.snapshot_id) == staged
    assert len(table.snapshots()) == 2


def test_operation_commits_once(tmp_path: Path) -> None:
    table = _partitioned_table(tmp_path)
    op = table.new_append().add_file(_data_file("a.parquet", "eu"))
    op.commit()

    with pytest.raises(CommitFailedError, match="already committed"):
        op.commit()


def test_concurrent_commit_is_retried_on_fresh_metadata(tmp_path: Path, monkeypatch) -> None:
    table = _partitioned_table(tmp_path)
    other = Table.load(table.location)
    monkeypatch.setattr("stratum.io.table.time.sleep", lambda s: None)

    original_swap = Table._swap
    raced = []

    def racing_swap(self: Table, base_version: int, meta) -> bool:
        if not raced:
            raced.append(True)
            # another writer publishes the same version first
            other.new_append().add_file(_data_file("theirs.parquet", "us")).commit()
        return original_swap(self, base_version, meta)

    monkeypatch.setattr(Table, "_swap", racing_swap)

    snap = table.new_append().add_file(_data_file("ours.parquet", "eu")).commit()

    assert table.version == 3
    assert sorted(f.file_path for f in snap.data_files) == ["ours.parquet", "theirs.parquet"]
    assert snap.parent_id == other.current_snapshot().snapshot_id


def test_commit_gives_up_after_retries(tmp_path: Path, monkeypatch) -> None:
    table = _partitioned_table(tmp_path, {C.COMMIT_NUM_RETRIES: "2", C.COMMIT_MIN_RETRY_WAIT_MS: "1"})
    sleeps: list[float] = []
    monkeypatch.setattr("stratum.io.table.time.sleep", sleeps.append)
    monkeypatch.setattr("stratum.io.table._publish_metadata", lambda *args: False)

    op = table.new_append().add_file(_data_file("a.parquet", "eu"))

    with pytest.raises(CommitFailedError, match="after 3 attempt"):
        op.commit()
    assert sleeps == [0.001, 0.002]
    assert op.added_files == ()
    assert table.current_snapshot() is None


def test_snapshot_update_subclass_must_choose_retained_files(tmp_path: Path) -> None:
    class _NoRetained(SnapshotUpdate):
        operation = "append"

    table = _partitioned_table(tmp_path)

    with pytest.raises(TypeError):
        _NoRetained(table)
