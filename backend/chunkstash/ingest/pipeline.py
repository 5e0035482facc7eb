"""Ingest pipeline orchestration."""

from __future__ import annotations

import fnmatch
import os
import stat
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Iterable, Iterator, Sequence

from chunkstash.core.config import Settings
from chunkstash.core.errors import (
    ChunkStashError,
    IngestAborted,
    IntegrityViolation,
    IOFailure,
    NotFound,
)
from chunkstash.core.logging import ctx_fields, get_logger
from chunkstash.core.metrics import FILES_TOTAL, INGEST_DURATION
from chunkstash.ingest.chunker import FileChunker
from chunkstash.ingest.gate import UploadGate
from chunkstash.ingest.types import IngestResult, IngestStats, Meta, TxContext, WriteResult
from chunkstash.store.base import BlobStore
from chunkstash.utils.hashing import EMPTY_HASH, sha1_file
from chunkstash.utils.time import rfc3339

logger = get_logger(__name__)


class IngestPipeline:
    """Coordinate hashing, chunking, deduplication and the store transaction."""

    def __init__(
        self,
        store: BlobStore,
        settings: Settings,
        gate: UploadGate | None = None,
        chunker: FileChunker | None = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.gate = gate or UploadGate(settings.upload_concurrency)
        self.chunker = chunker or FileChunker.from_settings(store, settings)
        self.context = TxContext(hostname=settings.hostname)

    def ingest_path(
        self,
        path: Path,
        ctx: TxContext | None = None,
        halt: threading.Event | None = None,
    ) -> tuple[Meta, WriteResult]:
        """Ingest one file and commit its Chunk Index and metadata atomically.

        When ``halt`` is set before the commit, the transaction is aborted
        with :class:`IngestAborted`.
        """
        path = Path(path)
        with self.gate:
            fstat = _stat(path)
            if not stat.S_ISREG(fstat.st_mode):
                raise IOFailure(f"not a regular file: {path}")
            started = time.perf_counter()
            digest = self._full_hash(path)

            with self.store.transaction(ctx or self.context) as tx:
                count = self.store.index_length(tx, digest)
                if count > 0 or digest == EMPTY_HASH:
                    route = "known"
                    logger.debug("Skipping already stored file %s (%s)", path, digest)
                    result = _already_exists(digest, fstat.st_size, count)
                elif fstat.st_size > self.chunker.min_blob_size:
                    route = "chunked"
                    result = self.chunker.write_file(tx, digest, path)
                else:
                    route = "small"
                    result = self.chunker.write_small_file(tx, digest, path)

                if result.hash != digest:
                    raise IntegrityViolation(
                        f"hash of {path} changed while ingesting: {digest} then {result.hash}",
                        expected=digest,
                        actual=result.hash,
                    )
                meta = Meta(
                    ref=result.hash,
                    name=path.name,
                    size=result.size,
                    mtime=rfc3339(fstat.st_mtime),
                    mode=fstat.st_mode,
                )
                self.store.save_meta(tx, meta)
                if halt is not None and halt.is_set():
                    raise IngestAborted(f"ingest run aborted before committing {path}")

        INGEST_DURATION.labels(route=route).observe(time.perf_counter() - started)
        FILES_TOTAL.labels(status="skipped" if result.already_exists else "processed").inc()
        logger.info(
            "Ingested %s",
            path,
            extra=ctx_fields(hash=digest, route=route, uploaded=result.blobs_uploaded),
        )
        return meta, result

    def ingest_paths(self, paths: Sequence[Path], ctx: TxContext | None = None) -> dict[str, object]:
        """Ingest many files concurrently; one bad file does not stop the others.

        An :class:`IntegrityViolation`, or any error that is not a
        :class:`ChunkStashError`, aborts the run: pending files are cancelled,
        files already in flight abort their transactions instead of
        committing, and the error is re-raised.
        """
        stats = IngestStats()
        total = WriteResult()
        halt = threading.Event()
        outcomes: dict[Future, int] = {}
        results: dict[int, IngestResult] = {}
        with ThreadPoolExecutor(max_workers=self.gate.limit, thread_name_prefix="ingest") as executor:
            for position, path in enumerate(paths):
                outcomes[executor.submit(self._process_path, Path(path), ctx, halt)] = position
            try:
                for future in as_completed(outcomes):
                    results[outcomes[future]] = future.result()
            except BaseException as exc:
                halt.set()
                if isinstance(exc, IntegrityViolation):
                    logger.critical("Integrity violation, aborting ingest run", exc_info=True)
                else:
                    logger.error("Unexpected failure, aborting ingest run", exc_info=True)
                for future in outcomes:
                    future.cancel()
                raise

        ordered = [results[position] for position in range(len(paths))]
        for item in ordered:
            _update_stats(stats, total, item)
        return {
            "stats": stats.to_dict(),
            "write_result": total.to_dict(),
            "results": [item.to_dict() for item in ordered],
        }

    # Internal helpers -------------------------------------------------

    def _process_path(self, path: Path, ctx: TxContext | None, halt: threading.Event) -> IngestResult:
        if halt.is_set():
            return IngestResult(path=path, status="error", detail="ingest run aborted")
        try:
            meta, result = self.ingest_path(path, ctx, halt)
        except IntegrityViolation:
            halt.set()
            FILES_TOTAL.labels(status="error").inc()
            raise
        except ChunkStashError as exc:
            logger.error("Failed to ingest %s: %s", path, exc)
            FILES_TOTAL.labels(status="error").inc()
            return IngestResult(path=path, status="error", detail=str(exc))
        except BaseException:
            halt.set()
            raise
        status = "skipped" if result.already_exists else "processed"
        return IngestResult(path=path, status=status, meta=meta, write_result=result)

    def _full_hash(self, path: Path) -> str:
        try:
            return sha1_file(path, self.settings.read_size)
        except FileNotFoundError as exc:
            raise NotFound(f"no such file: {path}") from exc
        except OSError as exc:
            raise IOFailure(f"cannot read {path}: {exc}") from exc


def iter_files(paths: Iterable[Path], ignore: str | None = None) -> Iterator[Path]:
    """Expand directories into the regular files below them, minus ignored names."""
    patterns = _expand_patterns(ignore) if ignore else []
    for path in paths:
        path = Path(path).expanduser()
        if not path.is_dir():
            yield path
            continue
        for root, dirnames, filenames in os.walk(path):
            dirnames[:] = sorted(d for d in dirnames if not _is_ignored(d, patterns))
            for filename in sorted(filenames):
                if not _is_ignored(filename, patterns):
                    yield Path(root) / filename


def _is_ignored(name: str, patterns: Sequence[str]) -> bool:
    return any(fnmatch.fnmatch(name, pattern) for pattern in patterns)


def _expand_patterns(pattern: str) -> list[str]:
    patterns = []
    for part in pattern.split(","):
        part = part.strip()
        if not part:
            continue
        if "{" in part and "}" in part:
            prefix = part[: part.index("{")]
            suffix = part[part.index("}") + 1 :]
            options = part[part.index("{") + 1 : part.index("}")].split("|")
            for option in options:
                patterns.append(f"{prefix}{option}{suffix}")
        else:
            patterns.append(part)
    return patterns


def _stat(path: Path) -> os.stat_result:
    try:
        return path.stat()
    except FileNotFoundError as exc:
        raise NotFound(f"no such file: {path}") from exc
    except OSError as exc:
        raise IOFailure(f"cannot stat {path}: {exc}") from exc


def _already_exists(digest: str, size: int, index_length: int) -> WriteResult:
    # The stored index holds the sentinel plus one row per blob.
    blobs = max(index_length - 1, 0)
    return WriteResult(
        hash=digest,
        size=size,
        blobs_count=blobs,
        blobs_skipped=blobs,
        size_skipped=size,
        files_count=1,
        files_skipped=1,
        already_exists=True,
    )


def _update_stats(stats: IngestStats, total: WriteResult, item: IngestResult) -> None:
    if item.status == "processed":
        stats.processed += 1
    elif item.status == "skipped":
        stats.skipped += 1
    elif item.status == "error":
        stats.failed += 1
    if item.write_result is not None:
        total.add(item.write_result)
        stats.blobs_uploaded += item.write_result.blobs_uploaded
        stats.blobs_skipped += item.write_result.blobs_skipped


__all__ = ["IngestPipeline", "iter_files"]
