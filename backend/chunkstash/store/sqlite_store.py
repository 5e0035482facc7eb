"""Blob store backed by a pooled SQLite database."""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from typing import Iterator

import orjson

from chunkstash.core.errors import StoreUnavailable
from chunkstash.core.logging import get_logger
from chunkstash.db.pool import ConnectionPool
from chunkstash.db.sqlite import SQLiteDatabase
from chunkstash.ingest.types import IndexEntry, Meta, TxContext
from chunkstash.store.base import BlobStore, StoreTransaction
from chunkstash.utils.hashing import sha1_bytes
from chunkstash.utils.time import now_ms

logger = get_logger(__name__)


class SQLiteBlobStore(BlobStore):
    """Content-addressed blobs, Chunk Indexes and metadata in SQLite.

    Every call borrows its own connection from the pool; no state is tied to
    a connection between calls.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self.pool = pool
        with self._db() as db:
            db.ensure_schema()

    @contextmanager
    def _db(self) -> Iterator[SQLiteDatabase]:
        with self.pool.connection() as db:
            try:
                yield db
            except sqlite3.Error as exc:
                try:
                    db.rollback()
                except sqlite3.Error:
                    logger.warning("Rollback failed after store error", exc_info=True)
                raise StoreUnavailable(f"store error: {exc}") from exc

    def blob_exists(self, blob_hash: str) -> bool:
        with self._db() as db:
            row = db.execute("SELECT 1 FROM blobs WHERE hash = ?", [blob_hash]).fetchone()
        return row is not None

    def put_blob(self, data: bytes) -> str:
        blob_hash = sha1_bytes(data)
        with self._db() as db:
            with db.transaction() as cur:
                cur.execute(
                    "INSERT OR IGNORE INTO blobs (hash, size, data, created_at) VALUES (?, ?, ?, ?)",
                    [blob_hash, len(data), sqlite3.Binary(data), now_ms()],
                )
        return blob_hash

    def begin(self, ctx: TxContext) -> StoreTransaction:
        tx = StoreTransaction(id=f"tx_{uuid.uuid4().hex}", context=ctx, started_at=now_ms())
        logger.debug("Began transaction %s (%s)", tx.id, " ".join(ctx.args()))
        return tx

    def commit(self, tx: StoreTransaction) -> None:
        if not tx.is_open:
            raise StoreUnavailable(f"cannot commit transaction {tx.id}: {tx.state}")
        now = now_ms()
        with self._db() as db:
            with db.transaction() as cur:
                cur.execute(
                    "INSERT INTO transactions (id, hostname, args_json, started_at, committed_at) VALUES (?, ?, ?, ?, ?)",
                    [
                        tx.id,
                        tx.context.hostname,
                        orjson.dumps(tx.context.args()).decode("utf-8"),
                        tx.started_at,
                        now,
                    ],
                )
                for file_key, entries in tx.index.items():
                    # Same key means same content, so a concurrently committed index is identical.
                    cur.executemany(
                        "INSERT OR IGNORE INTO chunk_index (file_key, byte_offset, blob_hash, tx_id) VALUES (?, ?, ?, ?)",
                        [(file_key, entry.offset, entry.hash, tx.id) for entry in entries],
                    )
                cur.executemany(
                    """
                    INSERT OR IGNORE INTO metas (
                      hash, ref, name, size, type, mtime, mode, meta_json, tx_id, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            meta.hash,
                            meta.ref,
                            meta.name,
                            meta.size,
                            meta.type,
                            meta.mtime,
                            meta.mode,
                            meta.to_json().decode("utf-8"),
                            tx.id,
                            now,
                        )
                        for meta in tx.metas
                    ],
                )
        tx.state = "committed"
        logger.debug(
            "Committed transaction %s (%d indexes, %d metas)", tx.id, len(tx.index), len(tx.metas)
        )

    def index_length(self, tx: StoreTransaction, file_key: str) -> int:
        with self._db() as db:
            row = db.execute(
                "SELECT COUNT(*) AS count FROM chunk_index WHERE file_key = ?", [file_key]
            ).fetchone()
        committed = int(row["count"]) if row else 0
        return committed or tx.staged_length(file_key)

    def get_index(self, file_key: str) -> list[IndexEntry]:
        with self._db() as db:
            rows = db.query(
                "SELECT byte_offset, blob_hash FROM chunk_index WHERE file_key = ? ORDER BY byte_offset",
                [file_key],
            )
        return [IndexEntry(offset=row["byte_offset"], hash=row["blob_hash"]) for row in rows]

    def get_meta(self, meta_hash: str) -> Meta | None:
        with self._db() as db:
            row = db.execute("SELECT meta_json FROM metas WHERE hash = ?", [meta_hash]).fetchone()
        return Meta.from_json(row["meta_json"]) if row else None

    def list_metas(self, name: str | None = None) -> list[Meta]:
        with self._db() as db:
            if name is None:
                rows = db.query("SELECT meta_json FROM metas ORDER BY created_at, rowid", [])
            else:
                rows = db.query(
                    "SELECT meta_json FROM metas WHERE name = ? ORDER BY created_at, rowid", [name]
                )
        return [Meta.from_json(row["meta_json"]) for row in rows]

    def blob_count(self) -> int:
        with self._db() as db:
            row = db.execute("SELECT COUNT(*) AS count FROM blobs").fetchone()
        return int(row["count"]) if row else 0

    def close(self) -> None:
        self.pool.close()


__all__ = ["SQLiteBlobStore"]
