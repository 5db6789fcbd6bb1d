"""Dataset records in the high-capacity structured store."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Any, Mapping

import orjson

from astrolabe.core.errors import DuplicateNameError, FetchError, RecordNotFoundError
from astrolabe.core.logging import get_logger
from astrolabe.core.metrics import DATASET_COUNT
from astrolabe.db.sqlite import SQLiteDatabase
from astrolabe.ingest.fetch import RemoteFetcher
from astrolabe.ingest.infer import ColumnTypeInferencer
from astrolabe.ingest.tabular import (
    compute_metadata,
    parse_payload,
    payload_metadata,
    validate_payload,
)
from astrolabe.models.entities import (
    ColumnInfo,
    ColumnType,
    Dataset,
    DatasetFormat,
    DatasetMetadata,
    DatasetSource,
)
from astrolabe.utils.ids import new_id
from astrolabe.utils.time import iso_now, now_ms

logger = get_logger(__name__)

SORT_KEYS = ("name", "created", "modified", "size")
UPDATABLE_FIELDS = frozenset({"name", "data", "format", "source", "comment", "meta"})

_COLUMNS = (
    "id, name, created, modified, data_json, format, source, comment, row_count, "
    "column_count, columns_json, column_types_json, size, meta_json"
)

_EXPORT_TYPES = {
    DatasetFormat.JSON: ("json", "application/json"),
    DatasetFormat.CSV: ("csv", "text/csv"),
    DatasetFormat.TSV: ("tsv", "text/tab-separated-values"),
    DatasetFormat.TOPOJSON: ("topojson", "application/json"),
}


@dataclass(slots=True)
class ExportedFile:
    filename: str
    media_type: str
    content: str


class DatasetStore:
    """CRUD and metadata computation over dataset records.

    Names are unique through a constraint in the database, so a collision is
    reported by the store itself rather than checked by callers.
    """

    def __init__(
        self,
        database: SQLiteDatabase,
        fetcher: RemoteFetcher | None = None,
        inferencer: ColumnTypeInferencer | None = None,
    ) -> None:
        self.db = database
        self.db.ensure_schema("datasets.sql")
        self.fetcher = fetcher or RemoteFetcher()
        self.inferencer = inferencer or ColumnTypeInferencer()

    # Reads -------------------------------------------------------------

    def get(self, dataset_id: int) -> Dataset | None:
        row = self.db.execute(f"SELECT {_COLUMNS} FROM datasets WHERE id = ?", [dataset_id]).fetchone()
        return _row_to_dataset(row) if row else None

    def require(self, dataset_id: int) -> Dataset:
        dataset = self.get(dataset_id)
        if dataset is None:
            raise RecordNotFoundError("dataset", dataset_id)
        return dataset

    def get_by_name(self, name: str) -> Dataset | None:
        row = self.db.execute(f"SELECT {_COLUMNS} FROM datasets WHERE name = ?", [name]).fetchone()
        return _row_to_dataset(row) if row else None

    def name_exists(self, name: str, exclude_id: int | None = None) -> bool:
        row = self.db.execute("SELECT id FROM datasets WHERE name = ?", [name]).fetchone()
        return row is not None and row["id"] != exclude_id

    def id_exists(self, dataset_id: Any) -> bool:
        return self.db.execute("SELECT 1 FROM datasets WHERE id = ?", [dataset_id]).fetchone() is not None

    def count(self) -> int:
        row = self.db.execute("SELECT COUNT(*) AS count FROM datasets").fetchone()
        return int(row["count"]) if row else 0

    def all(self) -> list[Dataset]:
        return [_row_to_dataset(row) for row in self.db.query(f"SELECT {_COLUMNS} FROM datasets ORDER BY id", [])]

    def list(self, sort_key: str = "modified", order: str = "desc", search: str | None = None) -> list[Dataset]:
        """Filter by case-insensitive substring over name and comment, then sort.

        Ties on the sort key are broken by id ascending in both directions.
        """
        if sort_key not in SORT_KEYS:
            raise ValueError(f"Unsupported sort key: {sort_key}")
        if order not in ("asc", "desc"):
            raise ValueError(f"Unsupported sort order: {order}")
        datasets = self.all()
        term = (search or "").strip().lower()
        if term:
            datasets = [d for d in datasets if term in d.name.lower() or term in (d.comment or "").lower()]
        # all() is ordered by id and sort() is stable even when reversed.
        datasets.sort(key=lambda d: _sort_value(d, sort_key), reverse=order == "desc")
        return datasets

    def unique_name(self, base: str) -> str:
        """``base`` if free, otherwise ``base`` with a timestamp (and counter) suffix."""
        base = base.strip()
        if not self.name_exists(base):
            return base
        stamp = str(now_ms())[-6:]
        candidate = f"{base}_{stamp}"
        counter = 1
        while self.name_exists(candidate):
            candidate = f"{base}_{stamp}_{counter}"
            counter += 1
        return candidate

    # Writes ------------------------------------------------------------

    def create(
        self,
        name: str,
        data: Any,
        format: DatasetFormat | str,
        source: DatasetSource | str = DatasetSource.INLINE,
        comment: str = "",
        meta: Mapping[str, Any] | None = None,
        metadata: DatasetMetadata | None = None,
        on_conflict: str = "error",
        dataset_id: int | None = None,
        created: str | None = None,
    ) -> Dataset:
        """Insert a dataset.

        ``on_conflict="suffix"`` renames on a name collision instead of
        raising :class:`DuplicateNameError`. ``metadata`` is only honoured for
        URL datasets, whose metadata cannot be computed without a fetch.
        """
        fmt = DatasetFormat.parse(format)
        src = DatasetSource(source)
        clean_name = _clean_name(name)
        validate_payload(data, fmt, src)
        if on_conflict == "suffix":
            clean_name = self.unique_name(clean_name)
        elif on_conflict != "error":
            raise ValueError(f"Unsupported conflict policy: {on_conflict}")

        if src is DatasetSource.URL and metadata is not None:
            computed = metadata
        else:
            computed = compute_metadata(data, fmt, src, self.inferencer)
        now = iso_now()
        record_id = dataset_id if dataset_id is not None and not self.id_exists(dataset_id) else self._fresh_id()
        dataset = Dataset(
            id=record_id,
            name=clean_name,
            created=created or now,
            modified=now,
            data=data,
            format=fmt,
            source=src,
            comment=(comment or "").strip(),
            metadata=computed,
            meta=dict(meta or {}),
        )
        try:
            with self.db.transaction() as cursor:
                cursor.execute(
                    f"INSERT INTO datasets ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    _dataset_params(dataset),
                )
        except sqlite3.IntegrityError as exc:
            if self.name_exists(clean_name):
                logger.warning("Dataset name collision: %s", clean_name)
                raise DuplicateNameError(clean_name) from exc
            raise
        DATASET_COUNT.set(self.count())
        logger.info("Created dataset %s (%s)", dataset.id, dataset.name)
        return dataset

    def update(self, dataset_id: int, patch: Mapping[str, Any]) -> Dataset:
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported dataset fields: {', '.join(sorted(unknown))}")
        dataset = self.require(dataset_id)

        if "name" in patch:
            new_name = _clean_name(patch["name"])
            if self.name_exists(new_name, exclude_id=dataset.id):
                raise DuplicateNameError(new_name)
            dataset.name = new_name
        if "comment" in patch:
            dataset.comment = (patch["comment"] or "").strip()
        if "meta" in patch:
            dataset.meta = dict(patch["meta"] or {})

        payload_changed = any(key in patch for key in ("data", "format", "source"))
        if payload_changed:
            data = patch.get("data", dataset.data)
            fmt = DatasetFormat.parse(patch.get("format", dataset.format))
            src = DatasetSource(patch.get("source", dataset.source))
            validate_payload(data, fmt, src)
            dataset.data, dataset.format, dataset.source = data, fmt, src
            dataset.metadata = compute_metadata(data, fmt, src, self.inferencer)

        dataset.modified = iso_now()
        self._write(dataset)
        logger.info("Updated dataset %s", dataset.id)
        return dataset

    def delete(self, dataset_id: int) -> bool:
        """Remove a dataset. Snippets referencing it are left untouched."""
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM datasets WHERE id = ?", [dataset_id])
            deleted = cursor.rowcount > 0
        if deleted:
            DATASET_COUNT.set(self.count())
            logger.info("Deleted dataset %s", dataset_id)
        return deleted

    def refresh_metadata(self, dataset_id: int) -> Dataset:
        """Recompute metadata; URL datasets are re-fetched first.

        A failed fetch or parse raises :class:`FetchError` and leaves the
        stored metadata as it was.
        """
        dataset = self.require(dataset_id)
        if dataset.source is DatasetSource.URL:
            payload = self.fetcher.fetch(dataset.data, use_cache=False)
            try:
                parsed = parse_payload(payload.text, dataset.format)
            except ValueError as exc:
                logger.warning("Could not parse %s as %s", dataset.data, dataset.format.value)
                raise FetchError(dataset.data, "parse", str(exc)) from exc
            size = payload.content_length
            if size is None:
                size = len(payload.text.encode("utf-8"))
            dataset.metadata = payload_metadata(parsed, dataset.format, self.inferencer, size=size)
        else:
            dataset.metadata = compute_metadata(dataset.data, dataset.format, dataset.source, self.inferencer)
        dataset.modified = iso_now()
        self._write(dataset)
        return dataset

    # Payload access ----------------------------------------------------

    def preview(self, dataset_id: int, use_cache: bool = True) -> Any:
        """The dataset payload; URL datasets are fetched and cached, never stored."""
        dataset = self.require(dataset_id)
        if dataset.source is DatasetSource.INLINE:
            return dataset.data
        payload = self.fetcher.fetch(dataset.data, use_cache=use_cache)
        try:
            return parse_payload(payload.text, dataset.format)
        except ValueError as exc:
            raise FetchError(dataset.data, "parse", str(exc)) from exc

    def export(self, dataset_id: int) -> ExportedFile:
        dataset = self.require(dataset_id)
        extension, media_type = _EXPORT_TYPES[dataset.format]
        if dataset.source is DatasetSource.URL:
            content = self.fetcher.fetch(dataset.data).text
        elif isinstance(dataset.data, str):
            content = dataset.data
        elif dataset.format.is_delimited:
            content = _rows_to_delimited(dataset.data, dataset.format)
        else:
            content = orjson.dumps(dataset.data, option=orjson.OPT_INDENT_2).decode("utf-8")
        return ExportedFile(filename=f"{dataset.name}.{extension}", media_type=media_type, content=content)

    # Internal helpers --------------------------------------------------

    def _fresh_id(self) -> int:
        candidate = new_id()
        while self.id_exists(candidate):
            candidate = new_id()
        return candidate

    def _write(self, dataset: Dataset) -> None:
        _, name, _, modified, *rest = _dataset_params(dataset)
        try:
            with self.db.transaction() as cursor:
                cursor.execute(
                    """
                    UPDATE datasets SET name = ?, modified = ?, data_json = ?, format = ?, source = ?,
                      comment = ?, row_count = ?, column_count = ?, columns_json = ?,
                      column_types_json = ?, size = ?, meta_json = ?
                    WHERE id = ?
                    """,
                    [name, modified, *rest, dataset.id],
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateNameError(dataset.name) from exc


def _clean_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Dataset name is required")
    return name.strip()


def _sort_value(dataset: Dataset, sort_key: str) -> Any:
    if sort_key == "name":
        return dataset.name.lower()
    if sort_key == "size":
        return -1 if dataset.size is None else dataset.size
    return getattr(dataset, sort_key)


def _rows_to_delimited(rows: list[Mapping[str, Any]], fmt: DatasetFormat) -> str:
    columns = list(rows[0].keys()) if rows else []
    lines = [fmt.delimiter.join(columns)]
    for row in rows:
        lines.append(fmt.delimiter.join("" if row.get(col) is None else str(row.get(col)) for col in columns))
    return "\n".join(lines)


def _dataset_params(dataset: Dataset) -> list[Any]:
    metadata = dataset.metadata
    return [
        dataset.id,
        dataset.name,
        dataset.created,
        dataset.modified,
        orjson.dumps(dataset.data).decode("utf-8"),
        dataset.format.value,
        dataset.source.value,
        dataset.comment,
        metadata.row_count,
        metadata.column_count,
        orjson.dumps(metadata.columns).decode("utf-8"),
        orjson.dumps([column.to_record() for column in metadata.column_types]).decode("utf-8"),
        metadata.size,
        orjson.dumps(dataset.meta).decode("utf-8"),
    ]


def _row_to_dataset(row: sqlite3.Row) -> Dataset:
    column_types = [
        ColumnInfo(name=item["name"], type=ColumnType(item["type"])) for item in orjson.loads(row["column_types_json"])
    ]
    return Dataset(
        id=row["id"],
        name=row["name"],
        created=row["created"],
        modified=row["modified"],
        data=orjson.loads(row["data_json"]),
        format=DatasetFormat(row["format"]),
        source=DatasetSource(row["source"]),
        comment=row["comment"] or "",
        metadata=DatasetMetadata(
            row_count=row["row_count"],
            column_count=row["column_count"],
            columns=orjson.loads(row["columns_json"]),
            column_types=column_types,
            size=row["size"],
        ),
        meta=orjson.loads(row["meta_json"]),
    )


__all__ = ["DatasetStore", "ExportedFile", "SORT_KEYS"]
