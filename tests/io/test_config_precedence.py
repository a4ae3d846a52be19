from __future__ import annotations

from pathlib import Path

import pytest

from stratum.core import constants as C
from stratum.io.config import (
    WriteSettings,
    property_as_bool,
    property_as_int,
    resolve_properties,
)
from stratum.io.errors import IoConfigError

_ENV_KEYS = [
    "STRATUM_IO_DEFAULT_FILE_FORMAT",
    "STRATUM_IO_TARGET_FILE_SIZE_BYTES",
    "STRATUM_IO_COMPRESSION",
    "STRATUM_IO_ROW_GROUP_SIZE",
    "STRATUM_IO_METRICS_MODE",
    "STRATUM_IO_COMMIT_NUM_RETRIES",
]


def _write_stratum_toml(tmp: Path, content: str) -> Path:
    p = tmp / "stratum.toml"
    p.write_text(content)
    return p


def _clear_env(monkeypatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_write_settings_precedence_env_over_toml(tmp_path: Path, monkeypatch) -> None:
    # Arrange TOML
    _write_stratum_toml(
        tmp_path,
        """
        [io]
        default_file_format = "avro"
        target_file_size_bytes = 2048
        compression = "lz4"
        """.strip(),
    )
    monkeypatch.chdir(tmp_path)
    _clear_env(monkeypatch)
    # Arrange ENV that should override TOML
    monkeypatch.setenv("STRATUM_IO_TARGET_FILE_SIZE_BYTES", "4096")
    monkeypatch.setenv("STRATUM_IO_COMPRESSION", "zstd")

    # Act
    s = WriteSettings.load()

    # Assert precedence: env > TOML > defaults
    assert s.default_file_format == "avro"
    assert s.target_file_size_bytes == 4096
    assert s.compression == "zstd"
    assert s.row_group_size == C.PARQUET_ROW_GROUP_SIZE_DEFAULT


def test_write_settings_from_pyproject_tool_table(tmp_path: Path, monkeypatch) -> None:
    (tmp_path / "pyproject.toml").write_text(
        """
        [tool.stratum.io]
        row_group_size = 1000
        commit_num_retries = 7
        metrics_mode = "Counts"
        """.strip()
    )
    monkeypatch.chdir(tmp_path)
    _clear_env(monkeypatch)

    s = WriteSettings.load()

    assert s.row_group_size == 1000
    assert s.commit_num_retries == 7
    assert s.metrics_mode == "counts"


def test_write_settings_top_level_keys_and_invalid_values(tmp_path: Path, monkeypatch) -> None:
    _write_stratum_toml(
        tmp_path,
        """
        default_file_format = "orc"
        compression = "snappy"
        row_group_size = "many"
        """.strip(),
    )
    monkeypatch.chdir(tmp_path)
    _clear_env(monkeypatch)

    s = WriteSettings.load()

    # Unsupported values are ignored, valid ones applied
    assert s.default_file_format == "parquet"
    assert s.compression == "snappy"
    assert s.row_group_size == C.PARQUET_ROW_GROUP_SIZE_DEFAULT


def test_write_settings_defaults_when_no_config(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    _clear_env(monkeypatch)

    s = WriteSettings.load()

    assert s == WriteSettings()
    assert s.default_file_format == C.DEFAULT_FILE_FORMAT_DEFAULT
    assert s.target_file_size_bytes == C.WRITE_TARGET_FILE_SIZE_BYTES_DEFAULT


def test_table_properties_override_settings() -> None:
    settings = WriteSettings(default_file_format="avro", target_file_size_bytes=10)

    props = resolve_properties({C.WRITE_TARGET_FILE_SIZE_BYTES: "99"}, settings)

    assert props[C.DEFAULT_FILE_FORMAT] == "avro"
    assert props[C.WRITE_TARGET_FILE_SIZE_BYTES] == "99"
    assert props[C.COMMIT_NUM_RETRIES] == str(C.COMMIT_NUM_RETRIES_DEFAULT)


def test_property_parsers() -> None:
    props = {"n": "12", "bad": "x", "flag": "TRUE", "off": "no"}

    assert property_as_int(props, "n", 0) == 12
    assert property_as_int(props, "missing", 5) == 5
    assert property_as_bool(props, "flag", False) is True
    assert property_as_bool(props, "off", True) is False
    assert property_as_bool(props, "missing", True) is True
    with pytest.raises(IoConfigError, match="'bad' must be an integer"):
        property_as_int(props, "bad", 0)
