"""Tests for reference extraction and resolution."""

import copy

import pytest

from astrolabe.core.errors import DatasetNotFoundError
from astrolabe.models.entities import DatasetFormat, DatasetSource
from astrolabe.resolve import ReferenceResolver, collect_dataset_refs, data_node_for, iter_views
from astrolabe.stores.datasets import DatasetStore


def _nested_spec() -> dict:
    return {
        "data": {"name": "sales"},
        "vconcat": [
            {
                "layer": [
                    {"data": {"name": "costs"}, "mark": "line"},
                    {"mark": "rule"},
                ]
            },
            {
                "hconcat": [
                    {"spec": {"data": {"name": "sales"}, "mark": "bar"}},
                    {"concat": [{"data": {"name": "regions"}, "mark": "point"}]},
                ]
            },
        ],
    }


def _remaining_refs(tree) -> list[str]:
    return collect_dataset_refs(tree)


@pytest.fixture
def populated(dataset_store: DatasetStore) -> DatasetStore:
    dataset_store.create("sales", [{"x": 1, "y": 2}], DatasetFormat.JSON)
    dataset_store.create("costs", "a,b\n1,2", DatasetFormat.CSV)
    dataset_store.create("regions", "https://example.com/regions.tsv", DatasetFormat.TSV, source=DatasetSource.URL)
    return dataset_store


def test_collect_refs_walks_every_child_location() -> None:
    assert collect_dataset_refs(_nested_spec()) == ["sales", "costs", "regions"]


def test_iter_views_handles_deep_nesting_without_recursion() -> None:
    root: dict = {"mark": "point"}
    node = root
    for _ in range(5000):
        child: dict = {"mark": "point"}
        node["spec"] = child
        node = child
    node["data"] = {"name": "deep"}
    assert sum(1 for _ in iter_views(root)) == 5001
    assert collect_dataset_refs(root) == ["deep"]


def test_refs_ignore_non_view_positions() -> None:
    spec = {"transform": [{"lookup": "id", "from": {"data": {"name": "other"}}}], "data": {"values": []}}
    assert collect_dataset_refs(spec) == []


def test_resolve_replaces_every_reference(populated: DatasetStore) -> None:
    spec = _nested_spec()
    original = copy.deepcopy(spec)
    resolved = ReferenceResolver(populated).resolve(spec)

    assert _remaining_refs(resolved) == []
    assert spec == original
    assert resolved["data"] == {"values": [{"x": 1, "y": 2}]}
    layer = resolved["vconcat"][0]["layer"][0]
    assert layer["data"] == {"values": "a,b\n1,2", "format": {"type": "csv"}}
    regions = resolved["vconcat"][1]["hconcat"][1]["concat"][0]
    assert regions["data"] == {"url": "https://example.com/regions.tsv", "format": {"type": "tsv"}}


def test_resolve_is_idempotent(populated: DatasetStore) -> None:
    resolver = ReferenceResolver(populated)
    once = resolver.resolve(_nested_spec())
    assert resolver.resolve(once) == once


def test_missing_reference_aborts_whole_resolution(populated: DatasetStore) -> None:
    spec = _nested_spec()
    spec["vconcat"][0]["layer"][1]["data"] = {"name": "ghost"}
    original = copy.deepcopy(spec)
    with pytest.raises(DatasetNotFoundError) as excinfo:
        ReferenceResolver(populated).resolve(spec)
    assert excinfo.value.name == "ghost"
    assert "ghost" in str(excinfo.value)
    assert spec == original


def test_resolve_accepts_text(populated: DatasetStore) -> None:
    resolved = ReferenceResolver(populated).resolve('{"data": {"name": "sales"}, "mark": "bar"}')
    assert resolved == {"data": {"values": [{"x": 1, "y": 2}]}, "mark": "bar"}


def test_data_node_covers_every_format(populated: DatasetStore) -> None:
    topo = populated.create("world", {"type": "Topology", "objects": {}, "arcs": []}, DatasetFormat.TOPOJSON)
    assert data_node_for(topo) == {
        "values": {"type": "Topology", "objects": {}, "arcs": []},
        "format": {"type": "topojson"},
    }
    for fmt in DatasetFormat:
        url_dataset = populated.create(f"remote-{fmt.value}", f"https://example.com/x.{fmt.value}", fmt, source="url")
        assert data_node_for(url_dataset)["format"] == {"type": fmt.value}


def test_end_to_end_sales(dataset_store: DatasetStore, snippet_store) -> None:
    dataset_store.create("sales", [{"x": 1, "y": 2}], "json")
    snippet = snippet_store.create({"data": {"name": "sales"}, "mark": "bar", "encoding": {}})
    resolved = ReferenceResolver(dataset_store).resolve(snippet.spec)
    assert resolved["data"] == {"values": [{"x": 1, "y": 2}]}
    assert snippet_store.extract_dataset_refs(snippet.id) == ["sales"]
