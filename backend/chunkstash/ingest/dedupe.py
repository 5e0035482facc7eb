"""Chunk hashing and deduplicated upload."""

from __future__ import annotations

from chunkstash.core.errors import IntegrityViolation
from chunkstash.core.logging import get_logger
from chunkstash.core.metrics import BLOB_BYTES_TOTAL, BLOBS_TOTAL
from chunkstash.ingest.types import ChunkOutcome
from chunkstash.store.base import BlobStore
from chunkstash.utils.hashing import sha1_bytes

logger = get_logger(__name__)


class BlobDeduper:
    """Upload a chunk unless the store already holds it."""

    def __init__(self, store: BlobStore) -> None:
        self.store = store

    def submit(self, data: bytes) -> ChunkOutcome:
        digest = sha1_bytes(data)
        if self.store.blob_exists(digest):
            logger.debug("Blob %s already stored (%d bytes)", digest, len(data))
            BLOBS_TOTAL.labels(outcome="skipped").inc()
            BLOB_BYTES_TOTAL.labels(outcome="skipped").inc(len(data))
            return ChunkOutcome(hash=digest, size=len(data), uploaded=False)

        stored = self.store.put_blob(data)
        if stored != digest:
            raise IntegrityViolation(
                f"corrupted blob: store returned {stored}, expected {digest}",
                expected=digest,
                actual=stored,
            )
        BLOBS_TOTAL.labels(outcome="uploaded").inc()
        BLOB_BYTES_TOTAL.labels(outcome="uploaded").inc(len(data))
        return ChunkOutcome(hash=digest, size=len(data), uploaded=True)


__all__ = ["BlobDeduper"]
