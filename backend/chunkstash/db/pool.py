"""Bounded pool of SQLite connections shared by concurrent ingestions."""

from __future__ import annotations

import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator

from chunkstash.core.errors import StoreUnavailable
from chunkstash.core.logging import get_logger
from chunkstash.core.metrics import POOL_CONNECTIONS
from chunkstash.db.sqlite import SQLiteDatabase

logger = get_logger(__name__)

ConnectionFactory = Callable[[], SQLiteDatabase]


class ConnectionPool:
    """Hand out at most ``max_active`` connections.

    Idle connections older than ``idle_timeout`` seconds are closed instead of
    reused, and every idle connection is pinged before it is handed out again.
    Borrowers wait up to ``wait_timeout`` seconds for a free slot.
    """

    def __init__(
        self,
        db_path: Path,
        max_active: int = 50,
        idle_timeout: float = 240.0,
        wait_timeout: float = 30.0,
        factory: ConnectionFactory | None = None,
    ) -> None:
        self.db_path = db_path
        self.max_active = max_active
        self.idle_timeout = idle_timeout
        self.wait_timeout = wait_timeout
        self._factory = factory or (lambda: SQLiteDatabase(self.db_path))
        self._idle: list[SQLiteDatabase] = []
        self._active = 0
        self._closed = False
        self._cond = threading.Condition()

    @property
    def active(self) -> int:
        return self._active

    @property
    def idle(self) -> int:
        return len(self._idle)

    def acquire(self) -> SQLiteDatabase:
        deadline = time.monotonic() + self.wait_timeout
        with self._cond:
            while True:
                if self._closed:
                    raise StoreUnavailable("connection pool is closed")
                conn = self._pop_healthy_idle()
                if conn is not None:
                    self._active += 1
                    self._report()
                    return conn
                if self._active < self.max_active:
                    self._active += 1
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise StoreUnavailable(
                        f"no store connection available after {self.wait_timeout:.1f}s"
                    )
                self._cond.wait(remaining)
        try:
            conn = self._factory()
            conn.connect()
        except Exception as exc:
            with self._cond:
                self._active -= 1
                self._cond.notify()
                self._report()
            raise StoreUnavailable(f"cannot open store at {self.db_path}: {exc}") from exc
        with self._cond:
            self._report()
        return conn

    def release(self, conn: SQLiteDatabase, discard: bool = False) -> None:
        with self._cond:
            self._active -= 1
            if not (discard or self._closed):
                try:
                    conn.rollback()
                except sqlite3.Error:
                    discard = True
            if discard or self._closed:
                conn.close()
            else:
                conn.last_used = time.monotonic()
                self._idle.append(conn)
            self._cond.notify()
            self._report()

    @contextmanager
    def connection(self) -> Iterator[SQLiteDatabase]:
        """Borrow a connection for the duration of the block."""
        conn = self.acquire()
        broken = False
        try:
            yield conn
        except StoreUnavailable:
            broken = not conn.ping()
            raise
        finally:
            self.release(conn, discard=broken)

    def close(self) -> None:
        with self._cond:
            self._closed = True
            idle, self._idle = self._idle, []
            self._cond.notify_all()
            self._report()
        for conn in idle:
            conn.close()

    def _pop_healthy_idle(self) -> SQLiteDatabase | None:
        now = time.monotonic()
        while self._idle:
            # Most recently used first.
            conn = self._idle.pop()
            if self.idle_timeout and now - conn.last_used > self.idle_timeout:
                logger.debug("Recycling idle connection to %s", self.db_path)
                conn.close()
                continue
            if not conn.ping():
                logger.warning("Dropping unhealthy connection to %s", self.db_path)
                conn.close()
                continue
            return conn
        return None

    def _report(self) -> None:
        POOL_CONNECTIONS.labels(state="active").set(self._active)
        POOL_CONNECTIONS.labels(state="idle").set(len(self._idle))


__all__ = ["ConnectionPool"]
