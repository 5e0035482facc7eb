"""Hashing utilities."""

from __future__ import annotations

import hashlib
from pathlib import Path

# SHA-1 of zero bytes.
EMPTY_HASH = "da39a3ee5e6b4b0d3255bfef95601890afd80709"


def new_hasher() -> "hashlib._Hash":
    """Return an incremental hasher for blob and file content."""
    return hashlib.sha1()


def sha1_bytes(data: bytes) -> str:
    """Return hex digest for bytes input."""
    return hashlib.sha1(data).hexdigest()


def sha1_file(path: Path, read_size: int = 64 << 10) -> str:
    """Return hex digest for file contents."""
    h = new_hasher()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(read_size), b""):
            h.update(chunk)
    return h.hexdigest()
