"""
Table property names and defaults consumed by the write path.

Table properties are string-keyed and string-valued. Writers resolve each setting as:
per-write option > table property > stratum.io.config.WriteSettings default, where the
WriteSettings defaults are seeded from the values below. This module is zero-IO and uses
only the Python standard library.

Notes:
    - Commit retry knobs govern both snapshot commit conflicts (owned by the table) and the
      coordinator's own file-deletion retries on abort; they are read independently.
    - Parquet row group size is expressed in rows.
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_FILE_FORMAT",
    "DEFAULT_FILE_FORMAT_DEFAULT",
    "WRITE_TARGET_FILE_SIZE_BYTES",
    "WRITE_TARGET_FILE_SIZE_BYTES_DEFAULT",
    "WRITE_AUDIT_PUBLISH_ENABLED",
    "WRITE_AUDIT_PUBLISH_ENABLED_DEFAULT",
    "WRITE_DATA_LOCATION",
    "COMMIT_NUM_RETRIES",
    "COMMIT_NUM_RETRIES_DEFAULT",
    "COMMIT_MIN_RETRY_WAIT_MS",
    "COMMIT_MIN_RETRY_WAIT_MS_DEFAULT",
    "COMMIT_MAX_RETRY_WAIT_MS",
    "COMMIT_MAX_RETRY_WAIT_MS_DEFAULT",
    "COMMIT_TOTAL_RETRY_TIME_MS",
    "COMMIT_TOTAL_RETRY_TIME_MS_DEFAULT",
    "PARQUET_COMPRESSION",
    "PARQUET_COMPRESSION_DEFAULT",
    "PARQUET_ROW_GROUP_SIZE",
    "PARQUET_ROW_GROUP_SIZE_DEFAULT",
    "METRICS_MODE_DEFAULT",
    "METRICS_MODE_DEFAULT_DEFAULT",
    "METRICS_MODE_COLUMN_PREFIX",
    "WRITE_FORMAT_OPTION",
    "TARGET_FILE_SIZE_OPTION",
    "SUMMARY_APP_ID",
    "SUMMARY_WAP_ID",
]

DEFAULT_FILE_FORMAT = "write.format.default"
DEFAULT_FILE_FORMAT_DEFAULT = "parquet"

WRITE_TARGET_FILE_SIZE_BYTES = "write.target-file-size-bytes"
WRITE_TARGET_FILE_SIZE_BYTES_DEFAULT = 512 * 1024 * 1024

WRITE_AUDIT_PUBLISH_ENABLED = "write.wap.enabled"
WRITE_AUDIT_PUBLISH_ENABLED_DEFAULT = "false"

# Overrides <table location>/data when set.
WRITE_DATA_LOCATION = "write.data.path"

COMMIT_NUM_RETRIES = "commit.retry.num-retries"
COMMIT_NUM_RETRIES_DEFAULT = 4

COMMIT_MIN_RETRY_WAIT_MS = "commit.retry.min-wait-ms"
COMMIT_MIN_RETRY_WAIT_MS_DEFAULT = 100

COMMIT_MAX_RETRY_WAIT_MS = "commit.retry.max-wait-ms"
COMMIT_MAX_RETRY_WAIT_MS_DEFAULT = 60 * 1000

COMMIT_TOTAL_RETRY_TIME_MS = "commit.retry.total-timeout-ms"
COMMIT_TOTAL_RETRY_TIME_MS_DEFAULT = 30 * 60 * 1000

PARQUET_COMPRESSION = "write.parquet.compression-codec"
PARQUET_COMPRESSION_DEFAULT = "zstd"

PARQUET_ROW_GROUP_SIZE = "write.parquet.row-group-size"
PARQUET_ROW_GROUP_SIZE_DEFAULT = 128 * 1024

METRICS_MODE_DEFAULT = "write.metadata.metrics.default"
METRICS_MODE_DEFAULT_DEFAULT = "truncate(16)"
METRICS_MODE_COLUMN_PREFIX = "write.metadata.metrics.column."

# Per-write options (take precedence over table properties).
WRITE_FORMAT_OPTION = "write-format"
TARGET_FILE_SIZE_OPTION = "target-file-size"

# Snapshot summary keys used for provenance.
SUMMARY_APP_ID = "app.id"
SUMMARY_WAP_ID = "wap.id"
