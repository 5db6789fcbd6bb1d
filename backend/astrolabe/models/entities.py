"""Internal dataclasses representing persisted records.

Records serialize to the camelCase layout used on disk and in export files
(``draftSpec``, ``datasetRefs``, ``rowCount`` ...); attributes stay snake_case.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from astrolabe.core.errors import UnsupportedFormatError


class DatasetFormat(str, Enum):
    JSON = "json"
    CSV = "csv"
    TSV = "tsv"
    TOPOJSON = "topojson"

    @classmethod
    def parse(cls, value: Any) -> "DatasetFormat":
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedFormatError(value) from None

    @property
    def is_delimited(self) -> bool:
        return self in (DatasetFormat.CSV, DatasetFormat.TSV)

    @property
    def delimiter(self) -> str:
        if self is DatasetFormat.CSV:
            return ","
        if self is DatasetFormat.TSV:
            return "\t"
        raise ValueError(f"{self.value} is not a delimited format")


class DatasetSource(str, Enum):
    INLINE = "inline"
    URL = "url"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ColumnType(str, Enum):
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    TEXT = "text"


class SnippetState(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"


class ViewMode(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


@dataclass(slots=True)
class Snippet:
    id: int
    name: str
    created: str
    modified: str
    spec: str
    draft_spec: str | None = None
    comment: str = ""
    tags: list[str] = field(default_factory=list)
    dataset_refs: list[str] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def state(self) -> SnippetState:
        return SnippetState.CLEAN if self.draft_spec is None else SnippetState.DIRTY

    @property
    def has_pending_changes(self) -> bool:
        return self.draft_spec is not None

    @property
    def working_spec(self) -> str:
        """The draft when one exists, otherwise the published spec."""
        return self.spec if self.draft_spec is None else self.draft_spec

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created": self.created,
            "modified": self.modified,
            "spec": self.spec,
            "draftSpec": self.draft_spec,
            "comment": self.comment,
            "tags": list(self.tags),
            "datasetRefs": list(self.dataset_refs),
            "meta": dict(self.meta),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Snippet":
        return cls(
            id=record["id"],
            name=record["name"],
            created=record["created"],
            modified=record.get("modified") or record["created"],
            spec=record["spec"],
            draft_spec=record.get("draftSpec"),
            comment=record.get("comment") or "",
            tags=list(record.get("tags") or []),
            dataset_refs=list(record.get("datasetRefs") or []),
            meta=dict(record.get("meta") or {}),
        )


@dataclass(slots=True)
class ColumnInfo:
    name: str
    type: ColumnType

    def to_record(self) -> dict[str, str]:
        return {"name": self.name, "type": self.type.value}


@dataclass(slots=True)
class DatasetMetadata:
    """Advisory caches derived from a dataset payload."""

    row_count: int | None = None
    column_count: int | None = None
    columns: list[str] = field(default_factory=list)
    column_types: list[ColumnInfo] = field(default_factory=list)
    size: int | None = None

    def to_record(self) -> dict[str, Any]:
        return {
            "rowCount": self.row_count,
            "columnCount": self.column_count,
            "columns": list(self.columns),
            "columnTypes": [column.to_record() for column in self.column_types],
            "size": self.size,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "DatasetMetadata":
        """Read the exported layout back; raises ``ValueError`` on mistyped fields."""
        for key in ("rowCount", "columnCount", "size"):
            value = record.get(key)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
                raise ValueError(f"{key} must be an integer")
        columns = record.get("columns") or []
        if not isinstance(columns, list) or not all(isinstance(name, str) for name in columns):
            raise ValueError("columns must be a list of strings")
        column_types = record.get("columnTypes") or []
        if not isinstance(column_types, list) or not all(
            isinstance(item, dict) and isinstance(item.get("name"), str) for item in column_types
        ):
            raise ValueError("columnTypes must be a list of {name, type} objects")
        return cls(
            row_count=record.get("rowCount"),
            column_count=record.get("columnCount"),
            columns=list(columns),
            column_types=[ColumnInfo(name=item["name"], type=ColumnType(item.get("type"))) for item in column_types],
            size=record.get("size"),
        )


@dataclass(slots=True)
class Dataset:
    id: int
    name: str
    created: str
    modified: str
    data: Any
    format: DatasetFormat
    source: DatasetSource
    comment: str = ""
    metadata: DatasetMetadata = field(default_factory=DatasetMetadata)
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def row_count(self) -> int | None:
        return self.metadata.row_count

    @property
    def columns(self) -> list[str]:
        return self.metadata.columns

    @property
    def size(self) -> int | None:
        return self.metadata.size

    def to_record(self) -> dict[str, Any]:
        record = {
            "id": self.id,
            "name": self.name,
            "created": self.created,
            "modified": self.modified,
            "data": self.data,
            "format": self.format.value,
            "source": self.source.value,
            "comment": self.comment,
            "meta": dict(self.meta),
        }
        record.update(self.metadata.to_record())
        return record


__all__ = [
    "ColumnInfo",
    "ColumnType",
    "Confidence",
    "Dataset",
    "DatasetFormat",
    "DatasetMetadata",
    "DatasetSource",
    "Snippet",
    "SnippetState",
    "ViewMode",
]
