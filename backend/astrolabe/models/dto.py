"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from astrolabe.core.config import Settings
from astrolabe.models.entities import Dataset, DatasetMetadata, Snippet
from astrolabe.utils.time import format_timestamp

FormatName = Literal["json", "csv", "tsv", "topojson"]
SortKey = Literal["name", "created", "modified", "size"]
SortOrder = Literal["asc", "desc"]


class SnippetCreateRequest(BaseModel):
    spec: Any = None
    name: str | None = None
    comment: str = ""
    tags: list[str] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


class SnippetUpdateRequest(BaseModel):
    name: str | None = None
    comment: str | None = None
    tags: list[str] | None = None
    meta: dict[str, Any] | None = None
    spec: Any = None
    draft_spec: Any = None


class SnippetResponse(BaseModel):
    id: int
    name: str
    created: str
    modified: str
    spec: str
    draft_spec: str | None
    comment: str
    tags: list[str]
    dataset_refs: list[str]
    meta: dict[str, Any]
    state: Literal["clean", "dirty"]
    size: int
    modified_display: str | None = None

    @classmethod
    def from_entity(cls, snippet: Snippet, settings: Settings | None = None) -> "SnippetResponse":
        return cls(
            id=snippet.id,
            name=snippet.name,
            created=snippet.created,
            modified=snippet.modified,
            spec=snippet.spec,
            draft_spec=snippet.draft_spec,
            comment=snippet.comment,
            tags=list(snippet.tags),
            dataset_refs=list(snippet.dataset_refs),
            meta=dict(snippet.meta),
            state=snippet.state.value,
            size=len(snippet.working_spec.encode("utf-8")),
            modified_display=display_timestamp(snippet.modified, settings),
        )


class DraftRequest(BaseModel):
    text: str
    view: Literal["draft", "published"] = "draft"


class RevertRequest(BaseModel):
    confirm: bool = Field(default=False, description="Must be true; reverting discards the draft")


class ExtractRequest(BaseModel):
    dataset_name: str
    comment: str = ""


class RefsResponse(BaseModel):
    id: int
    dataset_refs: list[str]


class ImportRequest(BaseModel):
    content: str = Field(description="Raw JSON text of the exported record set")


class ImportResponse(BaseModel):
    stats: dict[str, int]
    results: list[dict[str, Any]]


class ColumnTypeResponse(BaseModel):
    name: str
    type: Literal["number", "date", "boolean", "text"]


class DatasetMetadataResponse(BaseModel):
    row_count: int | None = None
    column_count: int | None = None
    columns: list[str] = Field(default_factory=list)
    column_types: list[ColumnTypeResponse] = Field(default_factory=list)
    size: int | None = None


class DatasetCreateRequest(BaseModel):
    name: str
    data: Any
    format: FormatName = "json"
    source: Literal["inline", "url"] = "inline"
    comment: str = ""
    meta: dict[str, Any] = Field(default_factory=dict)
    on_conflict: Literal["error", "suffix"] = "error"
    sniff: bool = Field(default=False, description="Fetch a URL dataset once to detect format and metadata")


class DatasetUpdateRequest(BaseModel):
    name: str | None = None
    data: Any = None
    format: FormatName | None = None
    source: Literal["inline", "url"] | None = None
    comment: str | None = None
    meta: dict[str, Any] | None = None


class DatasetSummary(BaseModel):
    id: int
    name: str
    created: str
    modified: str
    format: FormatName
    source: Literal["inline", "url"]
    comment: str
    metadata: DatasetMetadataResponse
    modified_display: str | None = None

    @classmethod
    def from_entity(cls, dataset: Dataset, settings: Settings | None = None) -> "DatasetSummary":
        return cls(**_dataset_fields(dataset), modified_display=display_timestamp(dataset.modified, settings))


class DatasetResponse(DatasetSummary):
    data: Any
    meta: dict[str, Any]

    @classmethod
    def from_entity(cls, dataset: Dataset) -> "DatasetResponse":
        return cls(**_dataset_fields(dataset), data=dataset.data, meta=dict(dataset.meta))


class DatasetFileImportRequest(BaseModel):
    content: str
    filename: str


class DatasetFileImportResponse(BaseModel):
    dataset: DatasetResponse
    renamed: bool


class DatasetUsageResponse(BaseModel):
    name: str
    count: int
    snippets: list[SnippetResponse]


class DeleteResponse(BaseModel):
    status: Literal["ok", "noop"]
    deleted: int


class DetectRequest(BaseModel):
    text: str
    filename: str | None = None


class DetectResponse(BaseModel):
    format: FormatName | None
    confidence: Literal["high", "medium", "low"]
    is_url: bool


class RemoteDetectRequest(BaseModel):
    url: str


class RemoteDetectResponse(BaseModel):
    url: str
    format: FormatName
    confidence: Literal["high", "medium", "low"]
    metadata: DatasetMetadataResponse


class ResolveRequest(BaseModel):
    spec: Any


class ResolveResponse(BaseModel):
    spec: Any
    dataset_refs: list[str]


class StorageResponse(BaseModel):
    used_bytes: int
    quota_bytes: int
    percent: float
    level: Literal["ok", "warning", "critical"]
    snippet_count: int
    dataset_count: int


class SettingsResponse(BaseModel):
    render_debounce_ms: int
    autosave_debounce_ms: int
    date_format: Literal["smart", "locale", "iso", "custom"]
    custom_date_format: str
    sort_by: SortKey
    sort_order: SortOrder
    snippet_quota_bytes: int


def display_timestamp(value: str, settings: Settings | None) -> str | None:
    """``value`` rendered with the configured date format; ``None`` without settings."""
    if settings is None:
        return None
    return format_timestamp(value, settings.date_format, settings.custom_date_format)


def metadata_response(metadata: DatasetMetadata) -> DatasetMetadataResponse:
    return DatasetMetadataResponse(
        row_count=metadata.row_count,
        column_count=metadata.column_count,
        columns=list(metadata.columns),
        column_types=[ColumnTypeResponse(name=col.name, type=col.type.value) for col in metadata.column_types],
        size=metadata.size,
    )


def _dataset_fields(dataset: Dataset) -> dict[str, Any]:
    return {
        "id": dataset.id,
        "name": dataset.name,
        "created": dataset.created,
        "modified": dataset.modified,
        "format": dataset.format.value,
        "source": dataset.source.value,
        "comment": dataset.comment,
        "metadata": metadata_response(dataset.metadata),
    }


__all__ = [
    "ColumnTypeResponse",
    "DatasetCreateRequest",
    "DatasetFileImportRequest",
    "DatasetFileImportResponse",
    "DatasetMetadataResponse",
    "DatasetResponse",
    "DatasetSummary",
    "DatasetUpdateRequest",
    "DatasetUsageResponse",
    "DeleteResponse",
    "DetectRequest",
    "DetectResponse",
    "DraftRequest",
    "ExtractRequest",
    "ImportRequest",
    "ImportResponse",
    "RefsResponse",
    "RemoteDetectRequest",
    "RemoteDetectResponse",
    "ResolveRequest",
    "ResolveResponse",
    "RevertRequest",
    "SettingsResponse",
    "SnippetCreateRequest",
    "SnippetResponse",
    "SnippetUpdateRequest",
    "StorageResponse",
    "display_timestamp",
    "metadata_response",
]
