"""Prometheus metrics instrumentation."""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

BLOBS_TOTAL = Counter(
    "chst_blobs_total",
    "Chunks processed, by outcome",
    labelnames=("outcome",),
    registry=REGISTRY,
)

BLOB_BYTES_TOTAL = Counter(
    "chst_blob_bytes_total",
    "Chunk bytes processed, by outcome",
    labelnames=("outcome",),
    registry=REGISTRY,
)

FILES_TOTAL = Counter(
    "chst_files_total",
    "Files ingested, by status",
    labelnames=("status",),
    registry=REGISTRY,
)

INGEST_DURATION = Histogram(
    "chst_ingest_duration_seconds",
    "Time spent ingesting a single file",
    labelnames=("route",),
    registry=REGISTRY,
)

UPLOADS_IN_FLIGHT = Gauge(
    "chst_uploads_in_flight",
    "Files currently holding an upload slot",
    registry=REGISTRY,
)

POOL_CONNECTIONS = Gauge(
    "chst_pool_connections",
    "Store connections held by the pool, by state",
    labelnames=("state",),
    registry=REGISTRY,
)


def render_metrics() -> tuple[bytes, str]:
    """Return Prometheus exposition payload and its content type."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST


__all__ = [
    "REGISTRY",
    "BLOBS_TOTAL",
    "BLOB_BYTES_TOTAL",
    "FILES_TOTAL",
    "INGEST_DURATION",
    "UPLOADS_IN_FLIGHT",
    "POOL_CONNECTIONS",
    "render_metrics",
]
