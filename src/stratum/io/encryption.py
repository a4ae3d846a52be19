"""
Encryption hook for data files.

Every output file passes through an EncryptionManager before an appender writes to it.
The manager returns the file to write plus opaque key metadata that is recorded on the
data file descriptor. The only built-in manager is plaintext (no key metadata).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from .fileio import OutputFile

__all__ = ["EncryptedOutputFile", "EncryptionManager", "PlaintextEncryptionManager"]


@dataclass(frozen=True)
class EncryptedOutputFile:
    """
    Output file paired with its key metadata.

    Attributes:
        encrypting_output_file (OutputFile): File the appender writes to.
        key_metadata (bytes | None): Opaque key material reference; None when plaintext.
    """

    encrypting_output_file: OutputFile
    key_metadata: bytes | None = None


class EncryptionManager(Protocol):
    def encrypt(self, raw: OutputFile) -> EncryptedOutputFile: ...


class PlaintextEncryptionManager:
    def encrypt(self, raw: OutputFile) -> EncryptedOutputFile:
        return EncryptedOutputFile(raw, None)
