"""Content-defined chunking of files into deduplicated blobs."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator

from chunkstash.core.config import Settings
from chunkstash.core.errors import IOFailure, NotFound
from chunkstash.core.logging import get_logger
from chunkstash.ingest.dedupe import BlobDeduper
from chunkstash.ingest.rolling import RollingChecksum
from chunkstash.ingest.types import WriteResult
from chunkstash.store.base import BlobStore, StoreTransaction
from chunkstash.utils.hashing import new_hasher, sha1_bytes

logger = get_logger(__name__)

MIN_BLOB_SIZE = 64 << 10
MAX_BLOB_SIZE = 1 << 20


class FileChunker:
    """Split files into chunks and record them in a transaction's Chunk Index.

    A chunk ends after a byte where the rolling checksum reports a split point
    and the chunk is longer than ``min_blob_size``, when it reaches
    ``max_blob_size``, or at end of file. The index starts with the sentinel
    ``(0, "")`` followed by one ``(cumulative end offset, hash)`` entry per
    chunk.
    """

    def __init__(
        self,
        store: BlobStore,
        min_blob_size: int = MIN_BLOB_SIZE,
        max_blob_size: int = MAX_BLOB_SIZE,
        window_size: int = 64,
        blob_bits: int = 13,
        read_size: int = 64 << 10,
    ) -> None:
        if not 0 < min_blob_size < max_blob_size:
            raise ValueError("expected 0 < min_blob_size < max_blob_size")
        self.store = store
        self.deduper = BlobDeduper(store)
        self.min_blob_size = min_blob_size
        self.max_blob_size = max_blob_size
        self.window_size = window_size
        self.blob_bits = blob_bits
        self.read_size = read_size

    @classmethod
    def from_settings(cls, store: BlobStore, settings: Settings) -> "FileChunker":
        return cls(
            store,
            min_blob_size=settings.min_blob_size,
            max_blob_size=settings.max_blob_size,
            window_size=settings.window_size,
            blob_bits=settings.blob_bits,
            read_size=settings.read_size,
        )

    def write_file(self, tx: StoreTransaction, key: str, path: Path) -> WriteResult:
        """Chunk ``path`` with the rolling checksum and upload missing blobs."""
        logger.info("Chunking %s into %s", path, key)
        result = WriteResult()
        roller = RollingChecksum(self.window_size, self.blob_bits)
        full_hash = new_hasher()
        window = self.window_size
        buf = bytearray()
        # Last ``window`` bytes of the stream before ``buf``.
        tail = b""
        stale = False

        self.store.append_index(tx, key, 0, "")
        with _open(path) as fh:
            for block in _read_blocks(fh, path, self.read_size):
                full_hash.update(block)
                view = memoryview(block)
                pos = 0
                while pos < len(view):
                    room = self.min_blob_size - len(buf)
                    if room > 0:
                        # No split can happen yet, skip the checksum.
                        taken = view[pos : pos + room]
                        buf += taken
                        pos += len(taken)
                        stale = True
                        continue
                    if stale:
                        preceding = bytes(buf[-window:]) if len(buf) >= window else tail + bytes(buf)
                        roller.seed(preceding)
                        stale = False
                    segment = view[pos : pos + self.max_blob_size - len(buf)]
                    consumed, split = roller.find_split(segment)
                    buf += segment[:consumed]
                    pos += consumed
                    if split or len(buf) >= self.max_blob_size:
                        self._finalize(tx, key, buf, result)
                        tail = (tail + bytes(buf[-window:]))[-window:]
                        buf = bytearray()
        if buf:
            self._finalize(tx, key, buf, result)

        result.hash = full_hash.hexdigest()
        result.files_count += 1
        result.files_uploaded += 1
        logger.debug(
            "Chunked %s: %d blobs, %d uploaded, %d skipped",
            path,
            result.blobs_count,
            result.blobs_uploaded,
            result.blobs_skipped,
        )
        return result

    def write_small_file(self, tx: StoreTransaction, key: str, path: Path) -> WriteResult:
        """Upload a file no larger than ``min_blob_size`` as a single blob."""
        logger.info("Storing small file %s into %s", path, key)
        result = WriteResult()
        self.store.append_index(tx, key, 0, "")
        with _open(path) as fh:
            try:
                data = fh.read()
            except OSError as exc:
                raise IOFailure(f"cannot read {path}: {exc}") from exc
        if data:
            self._finalize(tx, key, data, result)
        result.hash = sha1_bytes(data)
        result.files_count += 1
        result.files_uploaded += 1
        return result

    def _finalize(self, tx: StoreTransaction, key: str, data: bytes | bytearray, result: WriteResult) -> None:
        outcome = self.deduper.submit(bytes(data))
        result.record(outcome)
        self.store.append_index(tx, key, result.size, outcome.hash)


@contextmanager
def _open(path: Path) -> Iterator[BinaryIO]:
    try:
        fh = path.open("rb")
    except FileNotFoundError as exc:
        raise NotFound(f"no such file: {path}") from exc
    except OSError as exc:
        raise IOFailure(f"cannot open {path}: {exc}") from exc
    with fh:
        yield fh


def _read_blocks(fh: BinaryIO, path: Path, read_size: int) -> Iterator[bytes]:
    while True:
        try:
            block = fh.read(read_size)
        except OSError as exc:
            raise IOFailure(f"cannot read {path}: {exc}") from exc
        if not block:
            return
        yield block


__all__ = ["FileChunker", "MIN_BLOB_SIZE", "MAX_BLOB_SIZE"]
