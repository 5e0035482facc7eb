"""Admission gate bounding concurrent uploads."""

from __future__ import annotations

import threading

from chunkstash.core.metrics import UPLOADS_IN_FLIGHT


class UploadGate:
    """Counting semaphore; hold a slot for the whole ingestion of one file."""

    def __init__(self, limit: int = 25) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self._slots = threading.BoundedSemaphore(limit)
        self._lock = threading.Lock()
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def acquire(self) -> None:
        self._slots.acquire()
        with self._lock:
            self._in_flight += 1
            UPLOADS_IN_FLIGHT.set(self._in_flight)

    def release(self) -> None:
        with self._lock:
            self._in_flight -= 1
            UPLOADS_IN_FLIGHT.set(self._in_flight)
        self._slots.release()

    def __enter__(self) -> "UploadGate":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


__all__ = ["UploadGate"]
