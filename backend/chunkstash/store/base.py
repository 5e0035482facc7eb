"""Blob store collaborator interface.

The ingestion core talks to storage only through :class:`BlobStore`. Blobs
are content addressed and immutable, so ``put_blob`` is visible immediately
and idempotent. Chunk Index rows and metadata are staged on an explicit
:class:`StoreTransaction` and only become visible on ``commit``; ``abort``
drops them.
"""

from __future__ import annotations

import abc
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from chunkstash.core.errors import StoreUnavailable
from chunkstash.core.logging import get_logger
from chunkstash.ingest.types import IndexEntry, Meta, TxContext

logger = get_logger(__name__)


@dataclass(slots=True)
class StoreTransaction:
    """Staged index entries and metadata awaiting commit."""

    id: str
    context: TxContext
    started_at: int
    index: dict[str, list[IndexEntry]] = field(default_factory=dict)
    metas: list[Meta] = field(default_factory=list)
    state: str = "open"
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def is_open(self) -> bool:
        return self.state == "open"

    def stage_entry(self, file_key: str, entry: IndexEntry) -> None:
        with self._lock:
            self._ensure_open()
            entries = self.index.setdefault(file_key, [])
            if entries and entry.offset <= entries[-1].offset:
                raise ValueError(
                    f"index offsets must increase for {file_key}: {entry.offset} after {entries[-1].offset}"
                )
            entries.append(entry)

    def stage_meta(self, meta: Meta) -> None:
        with self._lock:
            self._ensure_open()
            self.metas.append(meta)

    def staged_length(self, file_key: str) -> int:
        with self._lock:
            return len(self.index.get(file_key, ()))

    def _ensure_open(self) -> None:
        if not self.is_open:
            raise StoreUnavailable(f"transaction {self.id} is {self.state}")


class BlobStore(abc.ABC):
    """Operations the ingestion core needs from a blob store."""

    @abc.abstractmethod
    def blob_exists(self, blob_hash: str) -> bool:
        """Return True if a blob with this hash is stored."""

    @abc.abstractmethod
    def put_blob(self, data: bytes) -> str:
        """Store ``data`` and return the hash computed by the store."""

    @abc.abstractmethod
    def begin(self, ctx: TxContext) -> StoreTransaction:
        """Open a transaction for the given client context."""

    @abc.abstractmethod
    def commit(self, tx: StoreTransaction) -> None:
        """Atomically publish everything staged on ``tx``."""

    def abort(self, tx: StoreTransaction) -> None:
        """Discard everything staged on ``tx``."""
        if tx.state == "open":
            tx.state = "aborted"
            tx.index.clear()
            tx.metas.clear()
            logger.debug("Aborted transaction %s", tx.id)

    def append_index(self, tx: StoreTransaction, file_key: str, offset: int, chunk_hash: str) -> None:
        tx.stage_entry(file_key, IndexEntry(offset=offset, hash=chunk_hash))

    @abc.abstractmethod
    def index_length(self, tx: StoreTransaction, file_key: str) -> int:
        """Number of index rows for ``file_key``, committed or staged on ``tx``."""

    def save_meta(self, tx: StoreTransaction, meta: Meta) -> None:
        tx.stage_meta(meta)

    @abc.abstractmethod
    def get_index(self, file_key: str) -> list[IndexEntry]:
        """Committed Chunk Index for ``file_key``, ordered by offset."""

    @abc.abstractmethod
    def get_meta(self, meta_hash: str) -> Meta | None:
        """Committed metadata version by its hash."""

    @abc.abstractmethod
    def list_metas(self, name: str | None = None) -> list[Meta]:
        """Committed metadata versions, oldest first."""

    def close(self) -> None:
        """Release store resources."""

    @contextmanager
    def transaction(self, ctx: TxContext) -> Iterator[StoreTransaction]:
        """Commit on success, abort on any exception."""
        tx = self.begin(ctx)
        try:
            yield tx
            self.commit(tx)
        except BaseException:
            self.abort(tx)
            raise


__all__ = ["BlobStore", "StoreTransaction"]
