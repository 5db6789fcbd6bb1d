"""Payload parsing and metadata computation for dataset records."""

from __future__ import annotations

import csv
import io
from typing import Any, Mapping, Sequence

import orjson

from astrolabe.ingest.infer import ColumnTypeInferencer
from astrolabe.models.entities import DatasetFormat, DatasetMetadata, DatasetSource


def parse_delimited(text: str, fmt: DatasetFormat) -> tuple[list[str], list[dict[str, str]]]:
    """Split CSV/TSV text into a header and row dicts."""
    reader = csv.reader(io.StringIO(text.strip()), delimiter=fmt.delimiter)
    header: list[str] | None = None
    rows: list[dict[str, str]] = []
    for cells in reader:
        if not any(cell.strip() for cell in cells):
            continue
        if header is None:
            header = [cell.strip() for cell in cells]
            continue
        rows.append({column: (cells[idx].strip() if idx < len(cells) else "") for idx, column in enumerate(header)})
    return header or [], rows


def parse_payload(text: str, fmt: DatasetFormat) -> Any:
    """Decode fetched or imported text into the stored payload form.

    JSON and TopoJSON decode to a JSON value; delimited formats stay text.
    Raises ``ValueError`` when JSON text does not decode.
    """
    if fmt is DatasetFormat.JSON or fmt is DatasetFormat.TOPOJSON:
        try:
            return orjson.loads(text)
        except orjson.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON: {exc}") from exc
    return text.strip()


def serialize_payload(data: Any) -> str:
    if isinstance(data, str):
        return data
    return orjson.dumps(data).decode("utf-8")


def payload_size(data: Any) -> int:
    """Byte length of the canonical serialization."""
    return len(serialize_payload(data).encode("utf-8"))


def _first_row_columns(rows: Sequence[Any]) -> list[str]:
    if rows and isinstance(rows[0], Mapping):
        return [str(key) for key in rows[0].keys()]
    return []


def payload_metadata(
    data: Any,
    fmt: DatasetFormat,
    inferencer: ColumnTypeInferencer | None = None,
    size: int | None = None,
) -> DatasetMetadata:
    """Compute row/column/size metadata for an inline payload."""
    inferencer = inferencer or ColumnTypeInferencer()
    measured = payload_size(data) if size is None else size

    if fmt is DatasetFormat.TOPOJSON:
        return DatasetMetadata(row_count=1, column_count=0, columns=[], column_types=[], size=measured)

    if fmt.is_delimited and isinstance(data, str):
        columns, rows = parse_delimited(data, fmt)
    elif isinstance(data, list):
        rows = data
        columns = _first_row_columns(rows)
    else:
        # A single JSON value that is not a row array.
        return DatasetMetadata(row_count=1, column_count=0, columns=[], column_types=[], size=measured)

    column_types = inferencer.infer_columns(rows, columns) if rows else []
    return DatasetMetadata(
        row_count=len(rows),
        column_count=len(columns),
        columns=columns,
        column_types=column_types,
        size=measured,
    )


def compute_metadata(
    data: Any,
    fmt: DatasetFormat,
    source: DatasetSource,
    inferencer: ColumnTypeInferencer | None = None,
) -> DatasetMetadata:
    """Metadata for a freshly written record.

    URL datasets get empty metadata here; only a refresh, which fetches the
    remote payload, populates it.
    """
    if source is DatasetSource.URL:
        return DatasetMetadata()
    return payload_metadata(data, fmt, inferencer)


def validate_payload(data: Any, fmt: DatasetFormat, source: DatasetSource) -> None:
    """Reject payload shapes that cannot be stored for ``fmt``/``source``."""
    if source is DatasetSource.URL:
        if not isinstance(data, str) or not data.strip():
            raise ValueError("URL datasets store the URL as a non-empty string")
        return
    if fmt.is_delimited:
        if isinstance(data, str):
            columns, rows = parse_delimited(data, fmt)
            if not columns or not rows:
                raise ValueError(f"{fmt.value.upper()} data needs a header row and at least one data row")
            return
        if isinstance(data, list) and all(isinstance(row, Mapping) for row in data):
            return
        raise ValueError(f"{fmt.value.upper()} data must be delimited text or a list of row objects")
    if fmt is DatasetFormat.JSON and isinstance(data, str):
        raise ValueError("JSON data must be a decoded JSON value, not text")


__all__ = [
    "compute_metadata",
    "parse_delimited",
    "parse_payload",
    "payload_metadata",
    "payload_size",
    "serialize_payload",
    "validate_payload",
]
