"""Error taxonomy for the ingestion core."""

from __future__ import annotations


class ChunkStashError(Exception):
    """Base class for all chunkstash errors."""


class NotFound(ChunkStashError, FileNotFoundError):
    """The source file does not exist."""


class IOFailure(ChunkStashError):
    """A local read failed while the file was being ingested."""


class StoreUnavailable(ChunkStashError):
    """A blob store call failed; the open transaction is never committed."""


class IntegrityViolation(ChunkStashError):
    """Two hashes that must agree did not.

    Raised when the store returns a different hash than the one computed
    locally for an uploaded blob, or when the whole-file hash disagrees with
    the hash accumulated while chunking. Callers must not retry it.
    """

    def __init__(self, message: str, expected: str | None = None, actual: str | None = None) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class IngestAborted(ChunkStashError):
    """Another file in the same run failed fatally; this file was not committed."""


__all__ = [
    "ChunkStashError",
    "NotFound",
    "IOFailure",
    "StoreUnavailable",
    "IntegrityViolation",
    "IngestAborted",
]
