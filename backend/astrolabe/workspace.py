"""Operations that span the snippet and dataset stores."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

import orjson

from astrolabe.core.config import Settings
from astrolabe.core.errors import MalformedInputError, RecordNotFoundError
from astrolabe.core.logging import get_logger
from astrolabe.db.sqlite import SQLiteDatabase
from astrolabe.ingest.detect import FormatDetector, detect_remote
from astrolabe.ingest.fetch import RemoteFetcher
from astrolabe.ingest.infer import ColumnTypeInferencer
from astrolabe.ingest.transfer import ImportExportEngine
from astrolabe.ingest.types import RemoteDetection
from astrolabe.models.entities import Dataset, DatasetFormat, DatasetSource, Snippet, ViewMode
from astrolabe.resolve.resolver import ReferenceResolver
from astrolabe.stores.datasets import DatasetStore
from astrolabe.stores.snippets import SnippetStore, StorageUsage, serialize_spec

logger = get_logger(__name__)

SCHEMA_URL = "https://vega.github.io/schema/vega-lite/v5.json"


@dataclass(slots=True)
class DatasetUsage:
    name: str
    snippets: list[Snippet] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.snippets)


class Workspace:
    """The stores plus the services that read across them.

    Built once per process from :class:`Settings`; the HTTP layer holds a
    single instance.
    """

    def __init__(
        self,
        settings: Settings,
        snippets: SnippetStore,
        datasets: DatasetStore,
        fetcher: RemoteFetcher,
        detector: FormatDetector | None = None,
    ) -> None:
        self.settings = settings
        self.snippets = snippets
        self.datasets = datasets
        self.fetcher = fetcher
        self.detector = detector or FormatDetector()
        self.resolver = ReferenceResolver(datasets)
        self.transfer = ImportExportEngine(snippets, datasets, self.detector)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Workspace":
        fetcher = RemoteFetcher(timeout=settings.fetch_timeout_seconds)
        snippets = SnippetStore(SQLiteDatabase(settings.snippets_path), quota_bytes=settings.snippet_quota_bytes)
        datasets = DatasetStore(
            SQLiteDatabase(settings.datasets_path),
            fetcher=fetcher,
            inferencer=ColumnTypeInferencer(sample_size=settings.type_sample_size),
        )
        return cls(settings, snippets, datasets, fetcher)

    def close(self) -> None:
        self.snippets.db.close()
        self.datasets.db.close()

    def usage(self) -> StorageUsage:
        return self.snippets.usage()

    # Resolution --------------------------------------------------------

    def resolve_snippet(self, snippet_id: int, view: ViewMode = ViewMode.DRAFT) -> Any:
        """Resolved spec of a snippet's draft (or published) text."""
        snippet = self.snippets.require(snippet_id)
        text = snippet.working_spec if view is ViewMode.DRAFT else snippet.spec
        try:
            return self.resolver.resolve(text)
        except orjson.JSONDecodeError as exc:
            raise MalformedInputError(f"Snippet {snippet_id} is not valid JSON: {exc}") from exc

    # Cross-store operations --------------------------------------------

    def dataset_usage(self, name: str) -> DatasetUsage:
        return DatasetUsage(name=name, snippets=self.snippets.datasets_in_use(name))

    def create_snippet_from_dataset(self, dataset_name: str) -> Snippet:
        dataset = self.datasets.get_by_name(dataset_name)
        if dataset is None:
            raise RecordNotFoundError("dataset", dataset_name)
        spec = {
            "$schema": SCHEMA_URL,
            "data": {"name": dataset.name},
            "mark": {"type": "point", "tooltip": True},
            "encoding": {},
        }
        snippet = self.snippets.create(
            spec,
            name=f"{dataset.name} chart",
            comment=f"Created from dataset: {dataset.name}",
        )
        logger.info("Created snippet %s from dataset %s", snippet.id, dataset.name)
        return snippet

    def extract_inline_data(self, snippet_id: int, dataset_name: str, comment: str = "") -> tuple[Dataset, Snippet]:
        """Move a snippet's top-level inline ``data.values`` into a new dataset.

        The dataset is created first; the snippet draft is rewritten to
        reference it by name only once the dataset exists.
        """
        snippet = self.snippets.require(snippet_id)
        try:
            spec = orjson.loads(snippet.working_spec)
        except orjson.JSONDecodeError as exc:
            raise MalformedInputError(f"Snippet {snippet_id} is not valid JSON: {exc}") from exc
        data = spec.get("data") if isinstance(spec, dict) else None
        if not isinstance(data, dict) or "values" not in data:
            raise MalformedInputError("Snippet has no inline data.values to extract")

        values = data["values"]
        fmt = DatasetFormat.JSON
        declared = data.get("format")
        if isinstance(declared, dict) and isinstance(values, str) and declared.get("type") in ("csv", "tsv"):
            fmt = DatasetFormat.parse(declared["type"])
        dataset = self.datasets.create(
            name=dataset_name,
            data=copy.deepcopy(values),
            format=fmt,
            source=DatasetSource.INLINE,
            comment=comment or f"Extracted from snippet: {snippet.name}",
        )
        spec["data"] = {"name": dataset.name}
        updated = self.snippets.update_draft(snippet_id, serialize_spec(spec))
        logger.info("Extracted inline data of snippet %s into dataset %s", snippet_id, dataset.name)
        return dataset, updated

    # URL datasets ------------------------------------------------------

    def detect_remote(self, url: str) -> RemoteDetection:
        return detect_remote(url, self.fetcher, self.detector)

    def register_url_dataset(
        self,
        name: str,
        url: str,
        format: DatasetFormat | str | None = None,
        comment: str = "",
    ) -> Dataset:
        """Create a URL dataset with metadata computed from one fetch."""
        detection = self.detect_remote(url)
        fmt = DatasetFormat.parse(format) if format is not None else detection.format
        metadata = detection.metadata if fmt is detection.format else None
        return self.datasets.create(
            name=name,
            data=url.strip(),
            format=fmt,
            source=DatasetSource.URL,
            comment=comment,
            metadata=metadata,
        )


__all__ = ["DatasetUsage", "Workspace"]
