"""Tests for the snippet store and its draft/publish workflow."""

from pathlib import Path

import orjson
import pytest

from astrolabe.core.errors import (
    ConfirmationRequiredError,
    QuotaExceededError,
    ReadOnlyViewError,
    RecordNotFoundError,
)
from astrolabe.db.sqlite import SQLiteDatabase
from astrolabe.models.entities import SnippetState, ViewMode
from astrolabe.stores.snippets import SnippetStore, StorageUsage


def test_create_defaults(snippet_store: SnippetStore) -> None:
    snippet = snippet_store.create()
    assert snippet.name
    assert snippet.state is SnippetState.CLEAN
    assert orjson.loads(snippet.spec)["mark"] == "point"
    assert snippet_store.require(snippet.id) == snippet


def test_edit_publish_round_trip(snippet_store: SnippetStore) -> None:
    snippet = snippet_store.create({"mark": "bar"})
    edited = '{"mark": "line"}'
    dirty = snippet_store.update_draft(snippet.id, edited)
    assert dirty.state is SnippetState.DIRTY
    assert dirty.has_pending_changes

    published = snippet_store.publish(snippet.id)
    assert published.spec == edited
    assert published.draft_spec is None
    stored = snippet_store.require(snippet.id)
    assert stored.spec == edited
    assert stored.draft_spec is None


def test_publish_and_revert_on_clean_are_noops(snippet_store: SnippetStore) -> None:
    snippet = snippet_store.create({"mark": "bar"})
    assert snippet_store.publish(snippet.id) == snippet
    assert snippet_store.revert(snippet.id) == snippet
    assert snippet_store.require(snippet.id) == snippet


def test_revert_requires_confirmation(snippet_store: SnippetStore) -> None:
    snippet = snippet_store.create({"mark": "bar"})
    snippet_store.update_draft(snippet.id, '{"mark": "area"}')
    with pytest.raises(ConfirmationRequiredError):
        snippet_store.revert(snippet.id)
    assert snippet_store.require(snippet.id).has_pending_changes

    reverted = snippet_store.revert(snippet.id, confirm=True)
    assert reverted.draft_spec is None
    assert reverted.spec == snippet.spec


def test_draft_equal_to_published_is_clean(snippet_store: SnippetStore) -> None:
    snippet = snippet_store.create({"mark": "bar"})
    assert snippet_store.update_draft(snippet.id, snippet.spec).state is SnippetState.CLEAN


def test_published_view_is_read_only_while_dirty(snippet_store: SnippetStore) -> None:
    snippet = snippet_store.create({"mark": "bar"})
    started = snippet_store.update_draft(snippet.id, '{"mark": "tick"}', view=ViewMode.PUBLISHED)
    assert started.state is SnippetState.DIRTY
    with pytest.raises(ReadOnlyViewError):
        snippet_store.update_draft(snippet.id, '{"mark": "rect"}', view=ViewMode.PUBLISHED)
    assert snippet_store.require(snippet.id).draft_spec == '{"mark": "tick"}'


def test_refs_follow_the_working_spec(snippet_store: SnippetStore) -> None:
    snippet = snippet_store.create({"data": {"name": "sales"}, "mark": "bar"})
    assert snippet.dataset_refs == ["sales"]

    draft = snippet_store.update_draft(snippet.id, '{"layer": [{"data": {"name": "costs"}}]}')
    assert draft.dataset_refs == ["costs"]

    # Mid-edit text that does not parse keeps the last known refs.
    broken = snippet_store.update_draft(snippet.id, '{"layer": [')
    assert broken.dataset_refs == ["costs"]

    reverted = snippet_store.revert(snippet.id, confirm=True)
    assert reverted.dataset_refs == ["sales"]
    assert snippet_store.extract_dataset_refs(snippet.id) == ["sales"]
    assert [s.id for s in snippet_store.datasets_in_use("sales")] == [snippet.id]


def test_update_patch(snippet_store: SnippetStore) -> None:
    snippet = snippet_store.create({"mark": "bar"})
    updated = snippet_store.update(snippet.id, {"name": "  Revenue  ", "tags": ["q1"], "comment": "draft"})
    assert updated.name == "Revenue"
    assert updated.tags == ["q1"]
    with pytest.raises(ValueError):
        snippet_store.update(snippet.id, {"id": 1})
    with pytest.raises(RecordNotFoundError):
        snippet_store.update(12345, {"name": "x"})


def test_duplicate_shares_no_state(snippet_store: SnippetStore) -> None:
    source = snippet_store.create({"mark": "bar"}, name="chart", tags=["a"], meta={"nested": {"k": 1}})
    clone = snippet_store.duplicate(source.id)
    assert clone.id != source.id
    assert clone.name == "chart_copy"
    assert clone.spec == source.spec
    clone.meta["nested"]["k"] = 2
    clone.tags.append("b")
    assert source.meta == {"nested": {"k": 1}}
    assert source.tags == ["a"]
    assert len(snippet_store.load()) == 2


def test_delete(snippet_store: SnippetStore) -> None:
    snippet = snippet_store.create()
    assert snippet_store.delete(snippet.id) is True
    assert snippet_store.delete(snippet.id) is False
    assert snippet_store.get(snippet.id) is None


def test_list_search_and_sort(snippet_store: SnippetStore) -> None:
    snippet_store.create({"mark": "bar"}, name="b-chart")
    snippet_store.create({"mark": "line", "description": "Quarterly"}, name="a-chart")
    snippet_store.create({"mark": "area"}, name="c-chart", comment="QUARTERLY review")

    assert [s.name for s in snippet_store.list("name", "asc")] == ["a-chart", "b-chart", "c-chart"]
    assert [s.name for s in snippet_store.list("name", "desc")] == ["c-chart", "b-chart", "a-chart"]
    assert [s.name for s in snippet_store.list("name", "asc", search="quarterly")] == ["a-chart", "c-chart"]
    with pytest.raises(ValueError):
        snippet_store.list("name", "sideways")


def test_quota_rejects_write_and_keeps_prior_state(tmp_path: Path) -> None:
    store = SnippetStore(SQLiteDatabase(tmp_path / "small.db"), quota_bytes=600)
    first = store.create({"mark": "bar"})
    before = store.usage().used_bytes

    with pytest.raises(QuotaExceededError) as excinfo:
        store.update_draft(first.id, orjson.dumps({"description": "x" * 1000}).decode())
    assert excinfo.value.quota == 600
    assert excinfo.value.required > 600
    assert store.usage().used_bytes == before
    assert store.require(first.id).draft_spec is None
    store.db.close()


def test_storage_levels() -> None:
    assert StorageUsage(used_bytes=10, quota_bytes=100).level == "ok"
    assert StorageUsage(used_bytes=90, quota_bytes=100).level == "warning"
    assert StorageUsage(used_bytes=95, quota_bytes=100).level == "critical"
    assert StorageUsage(used_bytes=50, quota_bytes=200).to_dict() == {
        "usedBytes": 50,
        "quotaBytes": 200,
        "percent": 25.0,
        "level": "ok",
    }


def test_usage_counts_serialized_collection(snippet_store: SnippetStore) -> None:
    assert snippet_store.usage().used_bytes == 0
    snippet_store.create()
    raw = orjson.dumps(snippet_store.export_records())
    assert snippet_store.usage().used_bytes == len(raw)


def test_seed_default_only_fills_an_empty_store(snippet_store: SnippetStore) -> None:
    seeded = snippet_store.seed_default()
    assert [s.name for s in seeded] == ["Sample Bar Chart"]
    assert len(snippet_store.seed_default()) == 1
    assert len(snippet_store.load()) == 1
