"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

REGISTRY = CollectorRegistry()

SNIPPET_SAVES = Counter(
    "astro_snippet_saves_total",
    "Snippet collection writes",
    labelnames=("operation",),
    registry=REGISTRY,
)

QUOTA_REJECTIONS = Counter(
    "astro_snippet_quota_rejections_total",
    "Snippet writes rejected by the storage quota",
    registry=REGISTRY,
)

SNIPPET_STORAGE_BYTES = Gauge(
    "astro_snippet_storage_bytes",
    "Serialized size of the snippet collection",
    registry=REGISTRY,
)

DATASET_COUNT = Gauge(
    "astro_datasets",
    "Number of datasets stored",
    registry=REGISTRY,
)

RESOLUTIONS = Counter(
    "astro_resolutions_total",
    "Reference resolutions",
    labelnames=("outcome",),
    registry=REGISTRY,
)

IMPORTS = Counter(
    "astro_import_records_total",
    "Imported records",
    labelnames=("store", "outcome"),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "SNIPPET_SAVES",
    "QUOTA_REJECTIONS",
    "SNIPPET_STORAGE_BYTES",
    "DATASET_COUNT",
    "RESOLUTIONS",
    "IMPORTS",
    "metrics_response",
]
