"""Snippet records in the size-constrained key/value store.

The whole collection is one serialized document under a single key, and its
byte length is what counts against the quota. A write serializes the new
collection first and only persists it when it fits, so a rejected write never
leaves a partial collection behind.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import orjson

from astrolabe.core.errors import (
    ConfirmationRequiredError,
    QuotaExceededError,
    ReadOnlyViewError,
    RecordNotFoundError,
)
from astrolabe.core.logging import get_logger
from astrolabe.core.metrics import QUOTA_REJECTIONS, SNIPPET_SAVES, SNIPPET_STORAGE_BYTES
from astrolabe.db.sqlite import SQLiteDatabase
from astrolabe.models.entities import Snippet, ViewMode
from astrolabe.resolve.tree import collect_dataset_refs
from astrolabe.utils.ids import new_id
from astrolabe.utils.time import iso_now, name_token

logger = get_logger(__name__)

STORAGE_KEY = "astrolabe-snippets"
DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024
WARNING_PERCENT = 90.0
CRITICAL_PERCENT = 95.0
SORT_KEYS = ("name", "created", "modified", "size")
UPDATABLE_FIELDS = frozenset({"name", "comment", "tags", "meta", "spec", "draft_spec"})

EMPTY_SPEC: dict[str, Any] = {
    "$schema": "https://vega.github.io/schema/vega-lite/v5.json",
    "data": {"values": []},
    "mark": "point",
    "encoding": {},
}

SAMPLE_SPEC: dict[str, Any] = {
    "$schema": "https://vega.github.io/schema/vega-lite/v5.json",
    "description": "A simple bar chart with embedded data.",
    "data": {
        "values": [
            {"category": "A", "value": 28},
            {"category": "B", "value": 55},
            {"category": "C", "value": 43},
            {"category": "D", "value": 91},
            {"category": "E", "value": 81},
            {"category": "F", "value": 53},
            {"category": "G", "value": 19},
            {"category": "H", "value": 87},
        ]
    },
    "mark": "bar",
    "encoding": {
        "x": {"field": "category", "type": "nominal", "axis": {"labelAngle": 0}},
        "y": {"field": "value", "type": "quantitative"},
    },
}


@dataclass(slots=True)
class StorageUsage:
    used_bytes: int
    quota_bytes: int

    @property
    def percent(self) -> float:
        return self.used_bytes / self.quota_bytes * 100

    @property
    def level(self) -> str:
        if self.percent >= CRITICAL_PERCENT:
            return "critical"
        if self.percent >= WARNING_PERCENT:
            return "warning"
        return "ok"

    def to_dict(self) -> dict[str, Any]:
        return {
            "usedBytes": self.used_bytes,
            "quotaBytes": self.quota_bytes,
            "percent": round(self.percent, 2),
            "level": self.level,
        }


def serialize_spec(spec: Any) -> str:
    """Specs are stored as text; structured input is pretty-printed."""
    if isinstance(spec, str):
        return spec
    return orjson.dumps(spec, option=orjson.OPT_INDENT_2).decode("utf-8")


def extract_refs_from_text(text: str) -> list[str] | None:
    """Referenced dataset names, or ``None`` when the text is not valid JSON."""
    try:
        tree = orjson.loads(text)
    except orjson.JSONDecodeError:
        return None
    return collect_dataset_refs(tree)


class SnippetStore:
    """CRUD, draft/publish workflow and storage accounting for snippets."""

    def __init__(self, database: SQLiteDatabase, quota_bytes: int = DEFAULT_QUOTA_BYTES) -> None:
        self.db = database
        self.db.ensure_schema("snippets.sql")
        self.quota_bytes = quota_bytes

    # Persistence -------------------------------------------------------

    def _raw(self) -> str | None:
        row = self.db.execute("SELECT value FROM kv WHERE key = ?", [STORAGE_KEY]).fetchone()
        return row["value"] if row else None

    def load(self) -> list[Snippet]:
        raw = self._raw()
        if not raw:
            return []
        return [Snippet.from_record(record) for record in orjson.loads(raw)]

    def _persist(self, snippets: Iterable[Snippet], operation: str) -> None:
        serialized = orjson.dumps([snippet.to_record() for snippet in snippets])
        required = len(serialized)
        if required > self.quota_bytes:
            QUOTA_REJECTIONS.inc()
            used = self.usage().used_bytes
            logger.warning("Rejected %s: %s bytes exceeds quota of %s", operation, required, self.quota_bytes)
            raise QuotaExceededError(used=used, required=required, quota=self.quota_bytes)
        with self.db.transaction() as cursor:
            cursor.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                [STORAGE_KEY, serialized.decode("utf-8")],
            )
        SNIPPET_SAVES.labels(operation=operation).inc()
        SNIPPET_STORAGE_BYTES.set(required)

    def usage(self) -> StorageUsage:
        raw = self._raw()
        return StorageUsage(used_bytes=len(raw.encode("utf-8")) if raw else 0, quota_bytes=self.quota_bytes)

    def _save(self, snippet: Snippet, operation: str, touch: bool = True) -> Snippet:
        if touch:
            snippet.modified = iso_now()
        snippets = self.load()
        for idx, existing in enumerate(snippets):
            if existing.id == snippet.id:
                snippets[idx] = snippet
                break
        else:
            snippets.append(snippet)
        self._persist(snippets, operation)
        return snippet

    def _fresh_id(self, taken: set[int] | None = None) -> int:
        taken = taken if taken is not None else {snippet.id for snippet in self.load()}
        candidate = new_id()
        while candidate in taken:
            candidate = new_id()
        return candidate

    # Reads -------------------------------------------------------------

    def get(self, snippet_id: int) -> Snippet | None:
        for snippet in self.load():
            if snippet.id == snippet_id:
                return snippet
        return None

    def require(self, snippet_id: int) -> Snippet:
        snippet = self.get(snippet_id)
        if snippet is None:
            raise RecordNotFoundError("snippet", snippet_id)
        return snippet

    def list(self, sort_key: str | None = None, order: str | None = None, search: str | None = None) -> list[Snippet]:
        """Case-insensitive search over name, comment and spec text, then sort.

        Ties are broken by id ascending.
        """
        sort_key = sort_key or "modified"
        order = order or "desc"
        if sort_key not in SORT_KEYS:
            raise ValueError(f"Unsupported sort key: {sort_key}")
        if order not in ("asc", "desc"):
            raise ValueError(f"Unsupported sort order: {order}")
        snippets = sorted(self.load(), key=lambda s: s.id)
        term = (search or "").strip().lower()
        if term:
            snippets = [s for s in snippets if _matches(s, term)]
        snippets.sort(key=lambda s: _sort_value(s, sort_key), reverse=order == "desc")
        return snippets

    def datasets_in_use(self, dataset_name: str) -> list[Snippet]:
        return [snippet for snippet in self.load() if dataset_name in snippet.dataset_refs]

    # Writes ------------------------------------------------------------

    def create(
        self,
        spec: Any = None,
        name: str | None = None,
        comment: str = "",
        tags: Iterable[str] | None = None,
        meta: Mapping[str, Any] | None = None,
    ) -> Snippet:
        text = serialize_spec(copy.deepcopy(EMPTY_SPEC) if spec is None else spec)
        now = iso_now()
        snippet = Snippet(
            id=self._fresh_id(),
            name=(name or "").strip() or name_token(),
            created=now,
            modified=now,
            spec=text,
            comment=comment,
            tags=list(tags or []),
            meta=dict(meta or {}),
        )
        _refresh_refs(snippet)
        self._save(snippet, "create", touch=False)
        logger.info("Created snippet %s", snippet.id)
        return snippet

    def seed_default(self) -> list[Snippet]:
        """Put a sample chart into an empty store."""
        existing = self.load()
        if existing:
            return existing
        snippet = self.create(SAMPLE_SPEC, name="Sample Bar Chart", comment="A simple bar chart showing category values")
        return [snippet]

    def update(self, snippet_id: int, patch: Mapping[str, Any]) -> Snippet:
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported snippet fields: {', '.join(sorted(unknown))}")
        snippet = self.require(snippet_id)
        if "name" in patch:
            snippet.name = (patch["name"] or "").strip() or name_token()
        if "comment" in patch:
            snippet.comment = patch["comment"] or ""
        if "tags" in patch:
            snippet.tags = list(patch["tags"] or [])
        if "meta" in patch:
            snippet.meta = dict(patch["meta"] or {})
        if "spec" in patch:
            snippet.spec = serialize_spec(patch["spec"])
        if "draft_spec" in patch:
            draft = patch["draft_spec"]
            snippet.draft_spec = None if draft is None else serialize_spec(draft)
        _normalize_draft(snippet)
        _refresh_refs(snippet)
        return self._save(snippet, "update")

    def delete(self, snippet_id: int) -> bool:
        snippets = self.load()
        remaining = [snippet for snippet in snippets if snippet.id != snippet_id]
        if len(remaining) == len(snippets):
            return False
        self._persist(remaining, "delete")
        logger.info("Deleted snippet %s", snippet_id)
        return True

    def duplicate(self, snippet_id: int) -> Snippet:
        source = self.require(snippet_id)
        now = iso_now()
        clone = Snippet(
            id=self._fresh_id(),
            name=f"{source.name}_copy",
            created=now,
            modified=now,
            spec=source.spec,
            draft_spec=source.draft_spec,
            comment=source.comment,
            tags=list(source.tags),
            dataset_refs=list(source.dataset_refs),
            meta=copy.deepcopy(source.meta),
        )
        self._save(clone, "duplicate", touch=False)
        return clone

    def insert_many(self, snippets: list[Snippet]) -> list[Snippet]:
        """Append records in one write; missing ids and ids colliding with stored ones are replaced."""
        existing = self.load()
        taken = {snippet.id for snippet in existing}
        for snippet in snippets:
            if not snippet.id or snippet.id in taken:
                snippet.id = self._fresh_id(taken)
            taken.add(snippet.id)
        self._persist(existing + snippets, "import")
        return snippets

    # Draft / publish ---------------------------------------------------

    def update_draft(self, snippet_id: int, text: str, view: ViewMode = ViewMode.DRAFT) -> Snippet:
        """Store edited text as the working draft.

        Editing through the published view is allowed only while the snippet
        is clean; the edit then starts a draft.
        """
        snippet = self.require(snippet_id)
        if view is ViewMode.PUBLISHED and snippet.has_pending_changes:
            raise ReadOnlyViewError("The published version is read-only while a draft exists")
        snippet.draft_spec = text
        _normalize_draft(snippet)
        _refresh_refs(snippet)
        return self._save(snippet, "draft")

    def publish(self, snippet_id: int) -> Snippet:
        snippet = self.require(snippet_id)
        if snippet.draft_spec is None:
            return snippet
        snippet.spec = snippet.draft_spec
        snippet.draft_spec = None
        _refresh_refs(snippet)
        logger.info("Published snippet %s", snippet_id)
        return self._save(snippet, "publish")

    def revert(self, snippet_id: int, confirm: bool = False) -> Snippet:
        """Discard the draft. Destructive, so ``confirm`` must be set."""
        snippet = self.require(snippet_id)
        if snippet.draft_spec is None:
            return snippet
        if not confirm:
            raise ConfirmationRequiredError("Reverting discards all draft changes; confirm to continue")
        snippet.draft_spec = None
        _refresh_refs(snippet)
        logger.info("Reverted snippet %s", snippet_id)
        return self._save(snippet, "revert")

    def extract_dataset_refs(self, snippet_id: int) -> list[str]:
        snippet = self.require(snippet_id)
        before = list(snippet.dataset_refs)
        _refresh_refs(snippet)
        if snippet.dataset_refs != before:
            self._save(snippet, "refs", touch=False)
        return list(snippet.dataset_refs)

    def export_records(self) -> list[dict[str, Any]]:
        return [snippet.to_record() for snippet in self.load()]


def _normalize_draft(snippet: Snippet) -> None:
    # A draft identical to the published spec is no draft at all.
    if snippet.draft_spec is not None and snippet.draft_spec == snippet.spec:
        snippet.draft_spec = None


def _refresh_refs(snippet: Snippet) -> None:
    refs = extract_refs_from_text(snippet.working_spec)
    if refs is None:
        # Mid-edit text that does not parse keeps the last known index.
        logger.debug("Snippet %s spec is not valid JSON; keeping dataset refs", snippet.id)
        return
    snippet.dataset_refs = refs


def _matches(snippet: Snippet, term: str) -> bool:
    return (
        term in snippet.name.lower()
        or term in (snippet.comment or "").lower()
        or term in snippet.working_spec.lower()
    )


def _sort_value(snippet: Snippet, sort_key: str) -> Any:
    if sort_key == "name":
        return snippet.name.lower()
    if sort_key == "size":
        return len(snippet.working_spec.encode("utf-8"))
    return getattr(snippet, sort_key)


__all__ = [
    "EMPTY_SPEC",
    "SAMPLE_SPEC",
    "SnippetStore",
    "StorageUsage",
    "extract_refs_from_text",
    "serialize_spec",
]
