"""Test fixtures for chunkstash."""

from __future__ import annotations

import itertools
import random
import sys
import threading
from pathlib import Path
from typing import Iterator

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from chunkstash.core.config import Settings  # noqa: E402
from chunkstash.core.errors import StoreUnavailable  # noqa: E402
from chunkstash.ingest.types import IndexEntry, Meta, TxContext  # noqa: E402
from chunkstash.runtime import Runtime  # noqa: E402
from chunkstash.store.base import BlobStore, StoreTransaction  # noqa: E402
from chunkstash.utils.hashing import sha1_bytes  # noqa: E402


class MemoryBlobStore(BlobStore):
    """In-process store used to exercise the ingestion core in isolation."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.indexes: dict[str, list[IndexEntry]] = {}
        self.metas: dict[str, Meta] = {}
        self.meta_order: list[str] = []
        self.puts = 0
        self.commits = 0
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def blob_exists(self, blob_hash: str) -> bool:
        with self._lock:
            return blob_hash in self.blobs

    def put_blob(self, data: bytes) -> str:
        blob_hash = sha1_bytes(data)
        with self._lock:
            self.blobs.setdefault(blob_hash, bytes(data))
            self.puts += 1
        return blob_hash

    def begin(self, ctx: TxContext) -> StoreTransaction:
        return StoreTransaction(id=f"tx{next(self._ids)}", context=ctx, started_at=0)

    def commit(self, tx: StoreTransaction) -> None:
        if not tx.is_open:
            raise StoreUnavailable(f"transaction {tx.id} is {tx.state}")
        with self._lock:
            for key, entries in tx.index.items():
                self.indexes.setdefault(key, list(entries))
            for meta in tx.metas:
                if meta.hash not in self.metas:
                    self.metas[meta.hash] = meta
                    self.meta_order.append(meta.hash)
            self.commits += 1
        tx.state = "committed"

    def index_length(self, tx: StoreTransaction, file_key: str) -> int:
        with self._lock:
            committed = len(self.indexes.get(file_key, ()))
        return committed or tx.staged_length(file_key)

    def get_index(self, file_key: str) -> list[IndexEntry]:
        return list(self.indexes.get(file_key, ()))

    def get_meta(self, meta_hash: str) -> Meta | None:
        return self.metas.get(meta_hash)

    def list_metas(self, name: str | None = None) -> list[Meta]:
        metas = [self.metas[h] for h in self.meta_order]
        return [meta for meta in metas if name is None or meta.name == name]


class CorruptingBlobStore(MemoryBlobStore):
    """Returns a hash that does not match the uploaded bytes."""

    def put_blob(self, data: bytes) -> str:
        super().put_blob(data)
        return sha1_bytes(bytes(data) + b"\x00")


class FlakyBlobStore(MemoryBlobStore):
    """Fails every upload after the first ``healthy_puts``."""

    def __init__(self, healthy_puts: int = 1) -> None:
        super().__init__()
        self.healthy_puts = healthy_puts

    def put_blob(self, data: bytes) -> str:
        if self.puts >= self.healthy_puts:
            raise StoreUnavailable("connection reset by peer")
        return super().put_blob(data)


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Point the default database at a temporary path and drop config overrides."""
    monkeypatch.setenv("CHST_DB_PATH", str(tmp_path / "blobs.db"))
    monkeypatch.delenv("CHST_CONFIG", raising=False)
    yield


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(db_path=tmp_path / "blobs.db", hostname="test-host", upload_concurrency=4, pool_size=4)


@pytest.fixture
def memory_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def memory_runtime(settings: Settings, memory_store: MemoryBlobStore) -> Iterator[Runtime]:
    with Runtime.with_store(settings, memory_store) as runtime:
        yield runtime


@pytest.fixture
def sqlite_runtime(settings: Settings) -> Iterator[Runtime]:
    with Runtime.open(settings) as runtime:
        yield runtime


@pytest.fixture
def make_file(tmp_path: Path):
    def _make(name: str, data: bytes) -> Path:
        path = tmp_path / "files" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    return _make


@pytest.fixture
def random_bytes():
    def _random(size: int, seed: int = 0) -> bytes:
        return random.Random(seed).randbytes(size)

    return _random
