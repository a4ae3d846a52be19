"""
Configuration for the stratum.io module.

Defines WriteSettings, a frozen dataclass carrying process-wide defaults for the write
path, plus helpers that resolve a single setting from table properties and per-write
options.

Precedence
- Loading WriteSettings: environment (``STRATUM_IO_*``) > TOML > built-in defaults.
- Resolving a setting for one write: per-write option > table property > WriteSettings.

Source of truth
- Property names and built-in defaults: stratum.core.constants.

Notes
- TOML search order: ./stratum.toml (``[io]`` table or top-level keys), then
  ./pyproject.toml under ``[tool.stratum.io]``.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Literal

from loguru import logger

from stratum.core import constants as C

from .errors import IoConfigError

FileFormatName = Literal["parquet", "avro"]
Compression = Literal["zstd", "lz4", "snappy", "gzip", "brotli", "none"]

_FORMATS = ("parquet", "avro")
_COMPRESSIONS = ("zstd", "lz4", "snappy", "gzip", "brotli", "none")
_INT_KEYS = (
    "target_file_size_bytes",
    "row_group_size",
    "commit_num_retries",
    "commit_min_retry_wait_ms",
    "commit_max_retry_wait_ms",
    "commit_total_retry_time_ms",
)


@dataclass(frozen=True)
class WriteSettings:
    """
    Process-wide defaults for the write path.

    Attributes:
        default_file_format (Literal["parquet","avro"]): Format used when neither the write
            options nor the table properties name one.
        target_file_size_bytes (int): Size at which a writer rolls over to a new file.
        compression (str): Parquet compression codec.
        row_group_size (int): Parquet row group size, in rows.
        metrics_mode (str): Default column metrics mode (``none``, ``counts``,
            ``truncate(N)``, ``full``).
        commit_num_retries (int): Retry rounds for commits and abort cleanup.
        commit_min_retry_wait_ms (int): Lower bound on the wait between rounds.
        commit_max_retry_wait_ms (int): Upper bound on the wait between rounds.
        commit_total_retry_time_ms (int): Total time budget across all rounds.

    Examples:
        >>> from stratum.io.config import WriteSettings
        >>> WriteSettings(target_file_size_bytes=1024)  # doctest: +ELLIPSIS
        WriteSettings(...)
    """

    default_file_format: FileFormatName = C.DEFAULT_FILE_FORMAT_DEFAULT  # type: ignore[assignment]
    target_file_size_bytes: int = C.WRITE_TARGET_FILE_SIZE_BYTES_DEFAULT
    compression: Compression = C.PARQUET_COMPRESSION_DEFAULT  # type: ignore[assignment]
    row_group_size: int = C.PARQUET_ROW_GROUP_SIZE_DEFAULT
    metrics_mode: str = C.METRICS_MODE_DEFAULT_DEFAULT
    commit_num_retries: int = C.COMMIT_NUM_RETRIES_DEFAULT
    commit_min_retry_wait_ms: int = C.COMMIT_MIN_RETRY_WAIT_MS_DEFAULT
    commit_max_retry_wait_ms: int = C.COMMIT_MAX_RETRY_WAIT_MS_DEFAULT
    commit_total_retry_time_ms: int = C.COMMIT_TOTAL_RETRY_TIME_MS_DEFAULT

    def as_properties(self) -> dict[str, str]:
        """Render these defaults as table properties (the lowest-precedence layer)."""
        return {
            C.DEFAULT_FILE_FORMAT: self.default_file_format,
            C.WRITE_TARGET_FILE_SIZE_BYTES: str(self.target_file_size_bytes),
            C.PARQUET_COMPRESSION: self.compression,
            C.PARQUET_ROW_GROUP_SIZE: str(self.row_group_size),
            C.METRICS_MODE_DEFAULT: self.metrics_mode,
            C.COMMIT_NUM_RETRIES: str(self.commit_num_retries),
            C.COMMIT_MIN_RETRY_WAIT_MS: str(self.commit_min_retry_wait_ms),
            C.COMMIT_MAX_RETRY_WAIT_MS: str(self.commit_max_retry_wait_ms),
            C.COMMIT_TOTAL_RETRY_TIME_MS: str(self.commit_total_retry_time_ms),
        }

    # Configuration loaders (env/TOML) with precedence: env > TOML > defaults.

    @classmethod
    def _apply_mapping(cls, base: WriteSettings, cfg: dict[str, Any] | None) -> WriteSettings:
        """Apply a loose config mapping onto WriteSettings, returning a new instance."""
        if not isinstance(cfg, dict):
            return base

        s = base

        if "default_file_format" in cfg and isinstance(cfg["default_file_format"], str):
            fmt = cfg["default_file_format"].strip().lower()
            if fmt in _FORMATS:
                s = replace(s, default_file_format=fmt)  # type: ignore[arg-type]
            else:
                logger.warning("ignoring unsupported default_file_format {!r}", fmt)

        if "compression" in cfg and isinstance(cfg["compression"], str):
            comp = cfg["compression"].strip().lower()
            if comp in _COMPRESSIONS:
                s = replace(s, compression=comp)  # type: ignore[arg-type]
            else:
                logger.warning("ignoring unsupported compression {!r}", comp)

        if "metrics_mode" in cfg and isinstance(cfg["metrics_mode"], str):
            s = replace(s, metrics_mode=cfg["metrics_mode"].strip().lower())

        for key in _INT_KEYS:
            if key not in cfg:
                continue
            try:
                s = replace(s, **{key: int(cfg[key])})
            except (TypeError, ValueError):
                logger.warning("ignoring non-integer {} = {!r}", key, cfg[key])

        return s

    @classmethod
    def from_env(
        cls, base: WriteSettings | None = None, prefix: str = "STRATUM_IO_"
    ) -> WriteSettings:
        """
        Build WriteSettings from environment variables. Precedence is env > base > defaults.

        Recognized variables:
            - STRATUM_IO_DEFAULT_FILE_FORMAT ("parquet" | "avro")
            - STRATUM_IO_TARGET_FILE_SIZE_BYTES
            - STRATUM_IO_COMPRESSION
            - STRATUM_IO_ROW_GROUP_SIZE
            - STRATUM_IO_METRICS_MODE
            - STRATUM_IO_COMMIT_NUM_RETRIES
            - STRATUM_IO_COMMIT_MIN_RETRY_WAIT_MS
            - STRATUM_IO_COMMIT_MAX_RETRY_WAIT_MS
            - STRATUM_IO_COMMIT_TOTAL_RETRY_TIME_MS
        """
        s = base or cls()
        mapping: dict[str, Any] = {}
        for key in ("default_file_format", "compression", "metrics_mode", *_INT_KEYS):
            v = os.getenv(prefix + key.upper())
            if v:
                mapping[key] = v
        return cls._apply_mapping(s, mapping)

    @classmethod
    def from_toml(cls, path: str | os.PathLike[str] | None = None) -> WriteSettings:
        """
        Build WriteSettings from a TOML file.

        Search order when `path` is None:
            1) ./stratum.toml (with either top-level [io] or direct keys)
            2) ./pyproject.toml under [tool.stratum.io]

        Returns defaults if no file is present.
        """
        s = cls()

        cand: list[Path] = []
        if path is not None:
            cand.append(Path(path))
        else:
            cand.append(Path.cwd() / "stratum.toml")
            cand.append(Path.cwd() / "pyproject.toml")

        cfg: dict[str, Any] | None = None
        for p in cand:
            if not p.exists():
                continue
            try:
                with p.open("rb") as fh:
                    data = tomllib.load(fh)
            except (OSError, tomllib.TOMLDecodeError) as exc:
                logger.warning("skipping unreadable config {}: {}", p, exc)
                continue
            if p.name == "pyproject.toml":
                tool = data.get("tool", {})
                cfg = tool.get("stratum", {}).get("io") if isinstance(tool, dict) else None
            elif isinstance(data.get("io"), dict):
                cfg = data["io"]
            else:
                cfg = data
            if cfg:
                logger.debug("loaded write settings from {}", p)
                break

        return cls._apply_mapping(s, cfg)

    @classmethod
    def load(cls, path: str | os.PathLike[str] | None = None) -> WriteSettings:
        """
        Load WriteSettings applying precedence: environment > TOML > defaults.

        Args:
            path: Optional explicit TOML path. If None, search defaults.
        """
        s = cls.from_toml(path)
        return cls.from_env(base=s)


def resolve_properties(
    properties: Mapping[str, str], settings: WriteSettings | None = None
) -> dict[str, str]:
    """Overlay table properties on top of the WriteSettings defaults."""
    merged = (settings or WriteSettings()).as_properties()
    merged.update(properties)
    return merged


def property_as_int(properties: Mapping[str, str], name: str, default: int) -> int:
    """
    Read an integer property, falling back to ``default`` when unset.

    Raises:
        IoConfigError: If the property is set but is not an integer.
    """
    value = properties.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise IoConfigError(f"property {name!r} must be an integer, got {value!r}") from None


def property_as_bool(properties: Mapping[str, str], name: str, default: bool) -> bool:
    """Read a boolean property (``true``/``false``, case-insensitive)."""
    value = properties.get(name)
    if value is None:
        return default
    return str(value).strip().lower() == "true"
