"""Process-wide resources with an explicit lifecycle."""

from __future__ import annotations

from dataclasses import dataclass

from chunkstash.core.config import Settings
from chunkstash.core.logging import get_logger
from chunkstash.db.pool import ConnectionPool
from chunkstash.ingest.gate import UploadGate
from chunkstash.ingest.pipeline import IngestPipeline
from chunkstash.store.base import BlobStore
from chunkstash.store.sqlite_store import SQLiteBlobStore

logger = get_logger(__name__)


@dataclass
class Runtime:
    """Settings, connection pool, store, upload gate and pipeline.

    Built once at startup with :meth:`open` and torn down with :meth:`close`
    (or by using the runtime as a context manager).
    """

    settings: Settings
    store: BlobStore
    gate: UploadGate
    pipeline: IngestPipeline
    pool: ConnectionPool | None = None

    @classmethod
    def open(cls, settings: Settings) -> "Runtime":
        pool = ConnectionPool(
            settings.db_path,
            max_active=settings.pool_size,
            idle_timeout=settings.pool_idle_timeout,
            wait_timeout=settings.pool_wait_timeout,
        )
        try:
            store = SQLiteBlobStore(pool)
        except Exception:
            pool.close()
            raise
        logger.info("Opened blob store at %s", settings.db_path)
        return cls.with_store(settings, store, pool=pool)

    @classmethod
    def with_store(cls, settings: Settings, store: BlobStore, pool: ConnectionPool | None = None) -> "Runtime":
        gate = UploadGate(settings.upload_concurrency)
        pipeline = IngestPipeline(store, settings, gate=gate)
        return cls(settings=settings, store=store, gate=gate, pipeline=pipeline, pool=pool)

    def close(self) -> None:
        self.store.close()
        if self.pool is not None:
            self.pool.close()

    def __enter__(self) -> "Runtime":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["Runtime"]
