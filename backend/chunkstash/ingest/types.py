"""Common ingestion data structures."""

from __future__ import annotations

import socket
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import orjson

from chunkstash.utils.hashing import sha1_bytes


@dataclass(slots=True, frozen=True)
class ChunkOutcome:
    """Result of submitting one finalized chunk to the store."""

    hash: str
    size: int
    uploaded: bool


@dataclass(slots=True, frozen=True)
class IndexEntry:
    """One Chunk Index row: cumulative end offset and the chunk hash."""

    offset: int
    hash: str


@dataclass(slots=True)
class WriteResult:
    """Accounting for one ingestion (or an aggregate of several)."""

    hash: str = ""
    size: int = 0
    blobs_count: int = 0
    blobs_uploaded: int = 0
    size_uploaded: int = 0
    blobs_skipped: int = 0
    size_skipped: int = 0
    files_count: int = 0
    files_uploaded: int = 0
    files_skipped: int = 0
    already_exists: bool = False

    def record(self, outcome: ChunkOutcome) -> None:
        """Account for one chunk."""
        self.blobs_count += 1
        self.size += outcome.size
        if outcome.uploaded:
            self.blobs_uploaded += 1
            self.size_uploaded += outcome.size
        else:
            self.blobs_skipped += 1
            self.size_skipped += outcome.size

    def add(self, other: "WriteResult") -> None:
        """Merge counters from another result (the hash is not merged)."""
        self.size += other.size
        self.blobs_count += other.blobs_count
        self.blobs_uploaded += other.blobs_uploaded
        self.size_uploaded += other.size_uploaded
        self.blobs_skipped += other.blobs_skipped
        self.size_skipped += other.size_skipped
        self.files_count += other.files_count
        self.files_uploaded += other.files_uploaded
        self.files_skipped += other.files_skipped

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Meta:
    """Persisted description of one ingested file."""

    ref: str
    name: str
    size: int
    mtime: str
    mode: int
    type: str = "file"

    @property
    def hash(self) -> str:
        """Identity of this metadata version."""
        return sha1_bytes(self.to_json())

    def to_json(self) -> bytes:
        return orjson.dumps(self.to_dict(), option=orjson.OPT_SORT_KEYS)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_json(cls, payload: bytes | str) -> "Meta":
        return cls(**orjson.loads(payload))


@dataclass(slots=True, frozen=True)
class TxContext:
    """Client context attached to a store transaction."""

    hostname: str = field(default_factory=socket.gethostname)
    archive: bool = False

    def args(self) -> list[str]:
        args = ["hostname", self.hostname]
        if self.archive:
            args.append("archive")
        return args


@dataclass(slots=True)
class IngestStats:
    """Aggregated ingest statistics."""

    processed: int = 0
    skipped: int = 0
    failed: int = 0
    blobs_uploaded: int = 0
    blobs_skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "blobs_uploaded": self.blobs_uploaded,
            "blobs_skipped": self.blobs_skipped,
        }


@dataclass(slots=True)
class IngestResult:
    """Outcome for a single processed path."""

    path: Path
    status: str
    meta: Meta | None = None
    write_result: WriteResult | None = None
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "status": self.status,
            "meta": self.meta.to_dict() if self.meta else None,
            "write_result": self.write_result.to_dict() if self.write_result else None,
            "detail": self.detail,
        }


__all__ = [
    "ChunkOutcome",
    "IndexEntry",
    "WriteResult",
    "Meta",
    "TxContext",
    "IngestStats",
    "IngestResult",
]
