"""
Format version stamped into table metadata files.

Every ``v<N>.metadata.json`` carries ``format-version`` as ``major.minor@date``. A
loader accepts only the major/minor line it was built for; the date is informational.
Pure functions, no IO.
"""

from dataclasses import dataclass
from datetime import date

from .errors import VersionMismatch

FORMAT_MAJOR_VERSION = 1
FORMAT_MINOR_VERSION = 0


@dataclass(frozen=True)
class FormatVersion:
    """
    Metadata layout version.

    Attributes:
        major (int): Bumped when older readers can no longer interpret the layout.
        minor (int): Bumped for additive fields.
        date (str): Day the layout was frozen, ISO formatted.
    """

    major: int
    minor: int
    date: str

    def __post_init__(self) -> None:
        for field in ("major", "minor"):
            value = getattr(self, field)
            if value < 0:
                raise ValueError(f"FormatVersion {field} must be non-negative, got {value}")
        try:
            date.fromisoformat(self.date)
        except ValueError as exc:
            raise ValueError(f"FormatVersion date must be ISO YYYY-MM-DD, got {self.date!r}") from exc

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}@{self.date}"

    @classmethod
    def parse(cls, text: str) -> "FormatVersion":
        """Inverse of ``str()``; raises VersionMismatch on anything else."""
        try:
            numbers, _, day = text.partition("@")
            major, minor = numbers.split(".")
            return cls(int(major), int(minor), day)
        except ValueError as exc:
            raise VersionMismatch(f"unreadable metadata format version {text!r}") from exc


FORMAT_V = FormatVersion(FORMAT_MAJOR_VERSION, FORMAT_MINOR_VERSION, "2025-10-01")


def is_compatible(ver: FormatVersion) -> bool:
    """
    True when ``ver`` is on the same major/minor line as FORMAT_V.

    Examples:
        >>> is_compatible(FormatVersion(1, 0, "2030-01-01"))
        True
        >>> is_compatible(FormatVersion(2, 0, "2030-01-01"))
        False
    """
    return (ver.major, ver.minor) == (FORMAT_V.major, FORMAT_V.minor)


def require_compatible(ver: FormatVersion) -> FormatVersion:
    if not is_compatible(ver):
        raise VersionMismatch(f"unsupported metadata format {ver}; expected {FORMAT_V}")
    return ver
