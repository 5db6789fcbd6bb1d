"""Additive import and export of snippet and dataset record sets."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Any, Mapping

import orjson

from astrolabe.core.errors import MalformedInputError, PerRecordImportError
from astrolabe.core.logging import get_logger
from astrolabe.core.metrics import IMPORTS
from astrolabe.ingest.detect import FormatDetector, format_from_filename
from astrolabe.ingest.tabular import parse_delimited
from astrolabe.ingest.types import ImportOutcome, ImportReport
from astrolabe.models.entities import Confidence, Dataset, DatasetMetadata, DatasetSource, Snippet
from astrolabe.stores.datasets import DatasetStore
from astrolabe.stores.snippets import SnippetStore, extract_refs_from_text, serialize_spec
from astrolabe.utils.time import iso_now, name_token, parse_iso

logger = get_logger(__name__)

IMPORTED_TAG = "imported"


def _decode_batch(text: str | bytes) -> list[Any]:
    try:
        decoded = orjson.loads(text)
    except orjson.JSONDecodeError as exc:
        raise MalformedInputError(f"Import file is not valid JSON: {exc}") from exc
    records = decoded if isinstance(decoded, list) else [decoded]
    if not records:
        raise MalformedInputError("Import file contains no records")
    return records


def is_native_snippet(record: Mapping[str, Any]) -> bool:
    """Native records carry an ISO ``created`` timestamp."""
    created = record.get("created")
    return isinstance(created, str) and "T" in created


def _spec_text(value: Any, field: str, index: int) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return serialize_spec(value)
    raise PerRecordImportError(index, f"{field} must be a JSON object or text")


def _optional_text(record: Mapping[str, Any], field: str, index: int) -> str:
    value = record.get(field)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise PerRecordImportError(index, f"{field} must be text")
    return value


def _meta_object(record: Mapping[str, Any], index: int) -> dict[str, Any]:
    meta = record.get("meta")
    if meta is None:
        return {}
    if not isinstance(meta, Mapping):
        raise PerRecordImportError(index, "meta must be an object")
    return dict(meta)


def _timestamp(record: Mapping[str, Any], field: str, index: int) -> str | None:
    """An ISO timestamp field, or ``None`` when absent."""
    value = record.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise PerRecordImportError(index, f"{field} must be an ISO timestamp")
    try:
        parse_iso(value)
    except ValueError as exc:
        raise PerRecordImportError(index, f"invalid {field} timestamp: {exc}") from exc
    return value


def _record_id(record: Mapping[str, Any]) -> int | None:
    """The requested id; missing, zero or non-integer ids mean "pick one"."""
    value = record.get("id")
    if isinstance(value, int) and not isinstance(value, bool) and value:
        return value
    return None


def normalize_snippet(record: Any, index: int) -> Snippet:
    """Map one foreign or native record onto a :class:`Snippet`."""
    if not isinstance(record, Mapping):
        raise PerRecordImportError(index, "record is not an object")
    now = iso_now()
    name = _optional_text(record, "name", index).strip() or name_token()
    comment = _optional_text(record, "comment", index)

    if is_native_snippet(record):
        created = _timestamp(record, "created", index)
        modified = _timestamp(record, "modified", index) or created
        spec = _spec_text(record.get("spec", {}), "spec", index)
        raw_draft = record.get("draftSpec")
        draft = None if raw_draft is None else _spec_text(raw_draft, "draftSpec", index)
        tags = record.get("tags") or []
        if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
            raise PerRecordImportError(index, "tags must be a list of strings")
        snippet = Snippet(
            id=_record_id(record) or 0,
            name=name,
            created=created,
            modified=modified,
            spec=spec,
            draft_spec=draft,
            comment=comment,
            tags=list(tags),
            meta=_meta_object(record, index),
        )
    else:
        content = record.get("content", record.get("spec", {}))
        spec = _spec_text(content, "content", index)
        raw_draft = record.get("draft", record.get("draftSpec"))
        created = _timestamp(record, "createdAt", index) or now
        snippet = Snippet(
            id=0,
            name=name,
            created=created,
            modified=created,
            spec=spec,
            draft_spec=None if raw_draft is None else _spec_text(raw_draft, "draft", index),
            comment=comment,
            tags=[IMPORTED_TAG],
        )

    if snippet.draft_spec == snippet.spec:
        snippet.draft_spec = None
    refs = extract_refs_from_text(snippet.working_spec)
    snippet.dataset_refs = refs if refs is not None else []
    return snippet


class ImportExportEngine:
    """Merge foreign record sets into the stores without touching local records.

    Malformed input aborts before any write. After that, a corrupt record is
    skipped and counted while the rest of the batch continues.
    """

    def __init__(
        self,
        snippets: SnippetStore,
        datasets: DatasetStore,
        detector: FormatDetector | None = None,
    ) -> None:
        self.snippets = snippets
        self.datasets = datasets
        self.detector = detector or FormatDetector()

    # Snippets ----------------------------------------------------------

    def export_snippets(self) -> str:
        return orjson.dumps(self.snippets.export_records(), option=orjson.OPT_INDENT_2).decode("utf-8")

    def import_snippets(self, text: str | bytes) -> ImportReport:
        records = _decode_batch(text)
        report = ImportReport()
        accepted: list[tuple[int, Snippet]] = []
        for index, record in enumerate(records):
            try:
                accepted.append((index, normalize_snippet(record, index)))
            except PerRecordImportError as exc:
                logger.warning("Skipping snippet record: %s", exc)
                report.stats.skipped += 1
                report.outcomes.append(ImportOutcome(index=index, status="skipped", detail=exc.detail))
                IMPORTS.labels(store="snippets", outcome="skipped").inc()

        requested_ids = [snippet.id for _, snippet in accepted]
        # One write for the whole batch: the quota either fits all of it or none.
        self.snippets.insert_many([snippet for _, snippet in accepted])
        for (index, snippet), requested in zip(accepted, requested_ids):
            status = "inserted"
            if requested and snippet.id != requested:
                status = "reassigned"
                report.stats.reassigned += 1
            report.stats.inserted += 1
            report.outcomes.append(ImportOutcome(index=index, status=status, record_id=snippet.id, name=snippet.name))
            IMPORTS.labels(store="snippets", outcome=status).inc()
        report.outcomes.sort(key=lambda item: item.index)
        logger.info("Imported snippets: %s", report.stats.to_dict())
        return report

    # Datasets ----------------------------------------------------------

    def export_datasets(self) -> str:
        return orjson.dumps(
            [dataset.to_record() for dataset in self.datasets.all()], option=orjson.OPT_INDENT_2
        ).decode("utf-8")

    def import_datasets(self, text: str | bytes) -> ImportReport:
        records = _decode_batch(text)
        report = ImportReport()
        for index, record in enumerate(records):
            try:
                dataset, renamed, reassigned = self._import_dataset_record(record, index)
            except (PerRecordImportError, ValueError) as exc:
                detail = exc.detail if isinstance(exc, PerRecordImportError) else str(exc)
                logger.warning("Skipping dataset record %s: %s", index, detail)
                report.stats.skipped += 1
                report.outcomes.append(ImportOutcome(index=index, status="skipped", detail=detail))
                IMPORTS.labels(store="datasets", outcome="skipped").inc()
                continue
            status = "inserted"
            if reassigned:
                status = "reassigned"
                report.stats.reassigned += 1
            if renamed:
                status = "renamed"
                report.stats.renamed += 1
            report.stats.inserted += 1
            report.outcomes.append(ImportOutcome(index=index, status=status, record_id=dataset.id, name=dataset.name))
            IMPORTS.labels(store="datasets", outcome=status).inc()
        logger.info("Imported datasets: %s", report.stats.to_dict())
        return report

    def _import_dataset_record(self, record: Any, index: int) -> tuple[Dataset, bool, bool]:
        """Insert one exported dataset record.

        Returns the dataset, whether its name was suffixed and whether its id
        was replaced.
        """
        if not isinstance(record, Mapping):
            raise PerRecordImportError(index, "record is not an object")
        name = record.get("name")
        if not isinstance(name, str) or not name.strip():
            raise PerRecordImportError(index, "name is required")
        if "data" not in record:
            raise PerRecordImportError(index, "data is required")
        comment = _optional_text(record, "comment", index)
        meta = _meta_object(record, index)
        created = _timestamp(record, "created", index)
        source = DatasetSource(record.get("source", "inline"))
        # URL payloads are not fetched on import, so the exported metadata is kept.
        metadata = DatasetMetadata.from_record(record) if source is DatasetSource.URL else None
        requested_id = _record_id(record)
        unique = self.datasets.unique_name(name)
        dataset = self.datasets.create(
            name=unique,
            data=record["data"],
            format=record.get("format", "json"),
            source=source,
            comment=comment,
            meta=meta,
            metadata=metadata,
            dataset_id=requested_id,
            created=created,
        )
        reassigned = requested_id is not None and dataset.id != requested_id
        return dataset, unique != name.strip(), reassigned

    def import_dataset_file(self, text: str, filename: str) -> tuple[Dataset, bool]:
        """Create one inline dataset from a data file.

        Returns the dataset and whether its name had to be suffixed.
        """
        detection = self.detector.detect(text, filename=filename)
        if detection.is_url or detection.format is None:
            raise MalformedInputError("File content looks like a URL, not data")
        fmt = detection.format
        if detection.confidence is Confidence.LOW and format_from_filename(filename) is None:
            raise MalformedInputError(
                "Could not detect data format from file. Ensure it contains valid JSON, CSV, or TSV data."
            )
        if fmt.is_delimited:
            data: Any = text.strip()
            columns, rows = parse_delimited(data, fmt)
            if not columns or not rows:
                raise MalformedInputError(
                    f"{fmt.value.upper()} file must have at least a header row and one data row."
                )
        else:
            if detection.parsed is None:
                raise MalformedInputError("Invalid JSON data in file.")
            data = detection.parsed

        stem = PurePosixPath(filename).stem if filename else ""
        base = stem or f"dataset_{name_token()}"
        dataset = self.datasets.create(
            name=base,
            data=data,
            format=fmt,
            source=DatasetSource.INLINE,
            comment=f"Imported from file: {filename}",
            on_conflict="suffix",
        )
        renamed = dataset.name != base
        if renamed:
            logger.info('Dataset name "%s" was taken; imported as "%s"', base, dataset.name)
        IMPORTS.labels(store="datasets", outcome="renamed" if renamed else "inserted").inc()
        return dataset, renamed


__all__ = ["IMPORTED_TAG", "ImportExportEngine", "is_native_snippet", "normalize_snippet"]
