"""Content addressing — fingerprints for icon binaries.

A fingerprint is the SHA-256 hex digest of the raw bytes. It only decides
whether content must be uploaded or downloaded again; it is never derived
from anything but bytes this tool actually read or fetched.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

from rbxsync.errors import ValidationError


def fingerprint(data: bytes) -> str:
    """Return the content fingerprint of a byte sequence."""
    return hashlib.sha256(data).hexdigest()


class ContentStore:
    """Reads and writes icon files relative to the project directory."""

    def __init__(self, root: str | Path = "."):
        self.root = Path(root)

    def resolve(self, path: str | Path) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.root / path

    def exists(self, path: str | Path) -> bool:
        return self.resolve(path).is_file()

    def read_bytes(self, path: str | Path) -> bytes:
        full = self.resolve(path)
        try:
            return full.read_bytes()
        except OSError as e:
            raise ValidationError(f"Cannot read icon {full}: {e}") from e

    def write_bytes(self, path: str | Path, data: bytes) -> Path:
        full = self.resolve(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_bytes(data)
        return full

    def fingerprint_file(self, path: str | Path) -> str:
        return fingerprint(self.read_bytes(path))
