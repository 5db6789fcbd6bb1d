"""Format detection for raw dataset input."""

from __future__ import annotations

import csv
import io
from itertools import islice
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import urlparse

import orjson

from astrolabe.core.errors import FetchError
from astrolabe.ingest.fetch import RemoteFetcher
from astrolabe.ingest.tabular import parse_payload, payload_metadata
from astrolabe.ingest.types import Detection, RemoteDetection
from astrolabe.models.entities import Confidence, DatasetFormat

_EXTENSIONS = {
    ".json": DatasetFormat.JSON,
    ".csv": DatasetFormat.CSV,
    ".tsv": DatasetFormat.TSV,
    ".tab": DatasetFormat.TSV,
    ".txt": DatasetFormat.TSV,
    ".topojson": DatasetFormat.TOPOJSON,
}

_CONTENT_TYPES = {
    "text/csv": DatasetFormat.CSV,
    "application/csv": DatasetFormat.CSV,
    "text/tab-separated-values": DatasetFormat.TSV,
    "application/json": DatasetFormat.JSON,
    "text/json": DatasetFormat.JSON,
}


def is_url(text: str) -> bool:
    candidate = text.strip()
    if not candidate or any(ch.isspace() for ch in candidate):
        return False
    parsed = urlparse(candidate)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def format_from_filename(filename: str | None) -> DatasetFormat | None:
    if not filename:
        return None
    return _EXTENSIONS.get(PurePosixPath(filename).suffix.lower())


def format_from_url(url: str) -> DatasetFormat | None:
    path = urlparse(url).path
    if path.lower().endswith(".txt"):
        # Too ambiguous for a remote resource.
        return None
    return format_from_filename(path)


def format_from_content_type(content_type: str | None) -> DatasetFormat | None:
    if not content_type:
        return None
    mime = content_type.split(";", 1)[0].strip().lower()
    if mime.endswith("+json"):
        return DatasetFormat.JSON
    return _CONTENT_TYPES.get(mime)


def _is_topology(value: Any) -> bool:
    return isinstance(value, dict) and value.get("type") == "Topology"


class FormatDetector:
    """Classify raw text as JSON, TopoJSON, CSV or TSV with a confidence label.

    Detection never raises: anything that is neither JSON nor cleanly
    delimited falls back to CSV at low or medium confidence.
    """

    def __init__(self, sample_rows: int = 10) -> None:
        self.sample_rows = sample_rows

    def detect(self, text: str, filename: str | None = None) -> Detection:
        stripped = text.strip()
        if is_url(stripped):
            return Detection(format=None, confidence=Confidence.LOW, is_url=True)

        detection = self._detect_json(stripped)
        if detection is None:
            detection = self._detect_delimited(stripped)

        hinted = format_from_filename(filename)
        if detection.confidence is Confidence.LOW and hinted is not None:
            parsed = detection.parsed
            if not hinted.is_delimited and parsed is None:
                return detection
            return Detection(format=hinted, confidence=Confidence.LOW, parsed=parsed)
        return detection

    def _detect_json(self, text: str) -> Detection | None:
        try:
            parsed = orjson.loads(text)
        except orjson.JSONDecodeError:
            return None
        if _is_topology(parsed):
            return Detection(format=DatasetFormat.TOPOJSON, confidence=Confidence.HIGH, parsed=parsed)
        if isinstance(parsed, list) and parsed and all(isinstance(item, dict) for item in parsed):
            return Detection(format=DatasetFormat.JSON, confidence=Confidence.HIGH, parsed=parsed)
        return Detection(format=DatasetFormat.JSON, confidence=Confidence.MEDIUM, parsed=parsed)

    def _column_counts(self, text: str, delimiter: str) -> list[int]:
        reader = csv.reader(io.StringIO(text), delimiter=delimiter)
        rows = (row for row in reader if any(cell.strip() for cell in row))
        return [len(row) for row in islice(rows, self.sample_rows)]

    def _detect_delimited(self, text: str) -> Detection:
        if not text:
            return Detection(format=DatasetFormat.CSV, confidence=Confidence.LOW)
        tab_counts = self._column_counts(text, "\t")
        comma_counts = self._column_counts(text, ",")
        multi_row = len(tab_counts) >= 2

        if tab_counts and tab_counts[0] > 1 and tab_counts[0] >= comma_counts[0]:
            if multi_row and len(set(tab_counts)) == 1:
                return Detection(format=DatasetFormat.TSV, confidence=Confidence.HIGH)

        if comma_counts and comma_counts[0] > 1:
            if multi_row and len(set(comma_counts)) == 1:
                return Detection(format=DatasetFormat.CSV, confidence=Confidence.HIGH)
            header = comma_counts[0]
            if all(abs(count - header) <= 1 for count in comma_counts):
                return Detection(format=DatasetFormat.CSV, confidence=Confidence.MEDIUM)

        return Detection(format=DatasetFormat.CSV, confidence=Confidence.LOW)


def detect_remote(url: str, fetcher: RemoteFetcher, detector: FormatDetector | None = None) -> RemoteDetection:
    """Fetch ``url`` and decide its format from headers, extension, then content."""
    detector = detector or FormatDetector()
    payload = fetcher.fetch(url)
    sniffed = detector.detect(payload.text)

    declared = format_from_content_type(payload.content_type) or format_from_url(url)
    if declared is None:
        fmt, confidence = sniffed.format or DatasetFormat.CSV, sniffed.confidence
    else:
        fmt = declared
        if declared is DatasetFormat.JSON and _is_topology(sniffed.parsed):
            fmt = DatasetFormat.TOPOJSON
        confidence = Confidence.HIGH if sniffed.format is fmt else Confidence.MEDIUM

    try:
        data = parse_payload(payload.text, fmt)
    except ValueError as exc:
        raise FetchError(url, "parse", str(exc)) from exc
    size = payload.content_length if payload.content_length is not None else len(payload.text.encode("utf-8"))
    metadata = payload_metadata(data, fmt, size=size)
    return RemoteDetection(url=url, format=fmt, confidence=confidence, content=payload.text, metadata=metadata)


__all__ = [
    "FormatDetector",
    "detect_remote",
    "format_from_content_type",
    "format_from_filename",
    "format_from_url",
    "is_url",
]
