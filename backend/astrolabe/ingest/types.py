"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from astrolabe.models.entities import Confidence, DatasetFormat, DatasetMetadata


@dataclass(slots=True)
class Detection:
    """Outcome of classifying a raw blob.

    ``format`` is ``None`` only for URL input, whose format is decided after
    fetching. ``parsed`` carries the decoded JSON value when detection parsed
    one, so callers need not parse twice.
    """

    format: DatasetFormat | None
    confidence: Confidence
    is_url: bool = False
    parsed: Any = None


@dataclass(slots=True)
class RemoteDetection:
    """A fetched URL with the format decided from headers, extension or content."""

    url: str
    format: DatasetFormat
    confidence: Confidence
    content: str
    metadata: DatasetMetadata


@dataclass(slots=True)
class FetchedPayload:
    url: str
    text: str
    content_type: str | None
    content_length: int | None


@dataclass(slots=True)
class ImportStats:
    """Aggregated import statistics."""

    inserted: int = 0
    skipped: int = 0
    renamed: int = 0
    reassigned: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "inserted": self.inserted,
            "skipped": self.skipped,
            "renamed": self.renamed,
            "reassigned": self.reassigned,
        }


@dataclass(slots=True)
class ImportOutcome:
    """Outcome for a single record of an import batch."""

    index: int
    status: str
    record_id: int | None = None
    name: str | None = None
    detail: str | None = None


@dataclass(slots=True)
class ImportReport:
    stats: ImportStats = field(default_factory=ImportStats)
    outcomes: list[ImportOutcome] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stats": self.stats.to_dict(),
            "results": [
                {
                    "index": item.index,
                    "status": item.status,
                    "id": item.record_id,
                    "name": item.name,
                    "detail": item.detail,
                }
                for item in self.outcomes
            ],
        }


__all__ = [
    "Detection",
    "FetchedPayload",
    "ImportOutcome",
    "ImportReport",
    "ImportStats",
    "RemoteDetection",
]
