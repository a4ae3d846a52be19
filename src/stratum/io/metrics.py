"""
Column metrics collected while appending records.

Metrics are keyed by field id and cover top-level primitive columns: value counts, null
counts, and lower/upper bounds. Bounds are stored JSON-friendly (see
stratum.core.serde.to_json_value) so they can live in table metadata unchanged.

Modes (``write.metadata.metrics.default`` or ``write.metadata.metrics.column.<name>``)
- none: no metrics for the column.
- counts: value and null counts only.
- truncate(N): counts plus bounds; string and binary bounds truncated to N.
- full: counts plus untruncated bounds.

Notes
- NaN never becomes a bound.
- A truncated upper bound is rounded up (last character/byte incremented) so it still
  bounds every value; when that is impossible the upper bound is dropped.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from stratum.core import constants as C
from stratum.core.serde import to_json_value
from stratum.core.types import NestedField, PrimitiveType, Schema

from .errors import IoConfigError

__all__ = ["MetricsMode", "MetricsConfig", "Metrics", "MetricsCollector"]

_TRUNCATE_RE = re.compile(r"^truncate\((\d+)\)$")


@dataclass(frozen=True)
class MetricsMode:
    """
    Attributes:
        counts (bool): Collect value and null counts.
        bounds (bool): Collect lower/upper bounds.
        truncate_length (int | None): Truncation length for string/binary bounds.
    """

    counts: bool
    bounds: bool
    truncate_length: int | None = None

    @classmethod
    def parse(cls, text: str) -> MetricsMode:
        s = text.strip().lower()
        if s == "none":
            return cls(False, False)
        if s == "counts":
            return cls(True, False)
        if s == "full":
            return cls(True, True)
        m = _TRUNCATE_RE.match(s)
        if m and int(m.group(1)) > 0:
            return cls(True, True, int(m.group(1)))
        raise IoConfigError(f"invalid metrics mode {text!r}")


@dataclass(frozen=True)
class MetricsConfig:
    default: MetricsMode
    columns: Mapping[str, MetricsMode] = field(default_factory=dict)

    @classmethod
    def from_properties(cls, properties: Mapping[str, str]) -> MetricsConfig:
        default = MetricsMode.parse(
            properties.get(C.METRICS_MODE_DEFAULT, C.METRICS_MODE_DEFAULT_DEFAULT)
        )
        columns = {
            name[len(C.METRICS_MODE_COLUMN_PREFIX) :]: MetricsMode.parse(value)
            for name, value in properties.items()
            if name.startswith(C.METRICS_MODE_COLUMN_PREFIX)
        }
        return cls(default, columns)

    def mode_for(self, column: str) -> MetricsMode:
        return self.columns.get(column, self.default)


@dataclass(frozen=True)
class Metrics:
    record_count: int
    value_counts: dict[int, int] = field(default_factory=dict)
    null_value_counts: dict[int, int] = field(default_factory=dict)
    lower_bounds: dict[int, Any] = field(default_factory=dict)
    upper_bounds: dict[int, Any] = field(default_factory=dict)


def _truncate_upper(value: Any, length: int) -> Any:
    if len(value) <= length:
        return value
    prefix = value[:length]
    if isinstance(prefix, str):
        chars = list(prefix)
        for i in range(len(chars) - 1, -1, -1):
            code = ord(chars[i])
            if code < 0x10FFFF and not (0xD7FF <= code < 0xDFFF):
                chars[i] = chr(code + 1)
                return "".join(chars[: i + 1])
        return None
    data = bytearray(prefix)
    for i in range(len(data) - 1, -1, -1):
        if data[i] < 0xFF:
            data[i] += 1
            return bytes(data[: i + 1])
    return None


class _ColumnStats:
    __slots__ = ("values", "nulls", "lower", "upper")

    def __init__(self) -> None:
        self.values = 0
        self.nulls = 0
        self.lower: Any = None
        self.upper: Any = None

    def update(self, value: Any, bounds: bool) -> None:
        self.values += 1
        if value is None:
            self.nulls += 1
            return
        if not bounds or (isinstance(value, float) and math.isnan(value)):
            return
        if self.lower is None or value < self.lower:
            self.lower = value
        if self.upper is None or value > self.upper:
            self.upper = value


class MetricsCollector:
    """
    Accumulate metrics for one data file.

    Args:
        schema (Schema): Write schema; only top-level primitive fields are tracked.
        config (MetricsConfig): Per-column modes.
    """

    def __init__(self, schema: Schema, config: MetricsConfig) -> None:
        self._tracked: list[tuple[NestedField, MetricsMode]] = []
        for f in schema.fields:
            mode = config.mode_for(f.name)
            if isinstance(f.type, PrimitiveType) and mode.counts:
                self._tracked.append((f, mode))
        self._stats = {f.field_id: _ColumnStats() for f, _ in self._tracked}
        self._count = 0

    def update(self, record: Mapping[str, Any]) -> None:
        self._count += 1
        for f, mode in self._tracked:
            self._stats[f.field_id].update(record.get(f.name), mode.bounds)

    def result(self) -> Metrics:
        value_counts: dict[int, int] = {}
        null_counts: dict[int, int] = {}
        lower: dict[int, Any] = {}
        upper: dict[int, Any] = {}
        for f, mode in self._tracked:
            st = self._stats[f.field_id]
            value_counts[f.field_id] = st.values
            null_counts[f.field_id] = st.nulls
            if not mode.bounds or st.lower is None:
                continue
            lo, hi = st.lower, st.upper
            n = mode.truncate_length
            if n is not None and isinstance(lo, (str, bytes)):
                lo = lo[:n]
                hi = _truncate_upper(hi, n)
            lower[f.field_id] = to_json_value(lo)
            if hi is not None:
                upper[f.field_id] = to_json_value(hi)
        return Metrics(self._count, value_counts, null_counts, lower, upper)
