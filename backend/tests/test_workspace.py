"""Tests for cross-store workspace operations."""

from pathlib import Path

import orjson
import pytest

from astrolabe.core.config import Settings
from astrolabe.core.errors import DatasetNotFoundError, DuplicateNameError, MalformedInputError, RecordNotFoundError
from astrolabe.models.entities import DatasetFormat, DatasetSource, ViewMode
from astrolabe.workspace import Workspace

from conftest import FakeResponse, FakeSession


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    settings = Settings(snippets_path=tmp_path / "ws-snippets.db", datasets_path=tmp_path / "ws-datasets.db")
    ws = Workspace.from_settings(settings)
    yield ws
    ws.close()


def test_extract_inline_data_moves_values_into_a_dataset(workspace: Workspace) -> None:
    snippet = workspace.snippets.create({"data": {"values": [{"a": 1}, {"a": 2}]}, "mark": "bar"})
    dataset, updated = workspace.extract_inline_data(snippet.id, "extracted")

    assert dataset.name == "extracted"
    assert dataset.format is DatasetFormat.JSON
    assert dataset.metadata.row_count == 2
    assert orjson.loads(updated.draft_spec)["data"] == {"name": "extracted"}
    assert updated.dataset_refs == ["extracted"]
    # The published spec is untouched until the draft is published.
    assert orjson.loads(updated.spec)["data"] == {"values": [{"a": 1}, {"a": 2}]}

    resolved = workspace.resolve_snippet(snippet.id)
    assert resolved["data"] == {"values": [{"a": 1}, {"a": 2}]}


def test_extract_keeps_delimited_values_as_text(workspace: Workspace) -> None:
    spec = {"data": {"values": "a,b\n1,2", "format": {"type": "csv"}}, "mark": "bar"}
    snippet = workspace.snippets.create(spec)
    dataset, _ = workspace.extract_inline_data(snippet.id, "table")
    assert dataset.format is DatasetFormat.CSV
    assert dataset.data == "a,b\n1,2"


def test_extract_requires_inline_values_and_a_free_name(workspace: Workspace) -> None:
    no_values = workspace.snippets.create({"data": {"name": "x"}})
    with pytest.raises(MalformedInputError):
        workspace.extract_inline_data(no_values.id, "anything")

    workspace.datasets.create("taken", [{"a": 1}], "json")
    snippet = workspace.snippets.create({"data": {"values": [{"a": 1}]}})
    with pytest.raises(DuplicateNameError):
        workspace.extract_inline_data(snippet.id, "taken")
    assert workspace.snippets.require(snippet.id).draft_spec is None


def test_snippet_from_dataset_and_usage(workspace: Workspace) -> None:
    workspace.datasets.create("sales", [{"x": 1, "y": 2}], "json")
    snippet = workspace.create_snippet_from_dataset("sales")
    assert snippet.dataset_refs == ["sales"]
    assert snippet.comment == "Created from dataset: sales"

    workspace.snippets.create({"layer": [{"data": {"name": "sales"}}]})
    workspace.snippets.create({"mark": "bar"})
    usage = workspace.dataset_usage("sales")
    assert usage.count == 2
    assert snippet.id in {s.id for s in usage.snippets}

    with pytest.raises(RecordNotFoundError):
        workspace.create_snippet_from_dataset("missing")


def test_deleted_dataset_leaves_dangling_reference(workspace: Workspace) -> None:
    dataset = workspace.datasets.create("sales", [{"x": 1}], "json")
    snippet = workspace.create_snippet_from_dataset("sales")
    workspace.datasets.delete(dataset.id)

    assert workspace.snippets.require(snippet.id).dataset_refs == ["sales"]
    with pytest.raises(DatasetNotFoundError):
        workspace.resolve_snippet(snippet.id, ViewMode.PUBLISHED)


def test_register_url_dataset_uses_detected_metadata(workspace: Workspace) -> None:
    url = "https://example.com/cities"
    workspace.fetcher.session = FakeSession(
        {url: FakeResponse("city\tpop\nOslo\t1\nBergen\t2", headers={"content-type": "text/tab-separated-values"})}
    )
    dataset = workspace.register_url_dataset("cities", url)
    assert dataset.source is DatasetSource.URL
    assert dataset.format is DatasetFormat.TSV
    assert dataset.data == url
    assert dataset.metadata.row_count == 2
    assert workspace.datasets.require(dataset.id).metadata.columns == ["city", "pop"]


def test_resolve_snippet_reports_invalid_json(workspace: Workspace) -> None:
    snippet = workspace.snippets.create({"mark": "bar"})
    workspace.snippets.update_draft(snippet.id, '{"mark": ')
    with pytest.raises(MalformedInputError):
        workspace.resolve_snippet(snippet.id)
    assert workspace.resolve_snippet(snippet.id, ViewMode.PUBLISHED) == {"mark": "bar"}
