"""Substitution of named dataset references with concrete data nodes."""

from __future__ import annotations

import copy
from typing import Any, Protocol

import orjson

from astrolabe.core.errors import DatasetNotFoundError, UnsupportedFormatError
from astrolabe.core.logging import get_logger
from astrolabe.core.metrics import RESOLUTIONS
from astrolabe.models.entities import Dataset, DatasetFormat, DatasetSource
from astrolabe.resolve.tree import collect_dataset_refs, transform_references

logger = get_logger(__name__)


class DatasetLookup(Protocol):
    def get_by_name(self, name: str) -> Dataset | None: ...


def data_node_for(dataset: Dataset) -> dict[str, Any]:
    """The inline or lazy data node that stands in for ``dataset``."""
    fmt = dataset.format
    if dataset.source is DatasetSource.URL:
        return {"url": dataset.data, "format": {"type": fmt.value}}
    if dataset.source is not DatasetSource.INLINE:
        raise ValueError(f"Unknown dataset source: {dataset.source!r}")
    if fmt is DatasetFormat.JSON:
        return {"values": dataset.data}
    if fmt is DatasetFormat.CSV or fmt is DatasetFormat.TSV or fmt is DatasetFormat.TOPOJSON:
        return {"values": dataset.data, "format": {"type": fmt.value}}
    raise UnsupportedFormatError(fmt)


class ReferenceResolver:
    """Turn ``{"data": {"name": ...}}`` references into literal data.

    Read-only with respect to the dataset store. Resolution is all or
    nothing: every referenced name is looked up before the tree is touched,
    and the input tree is never mutated.
    """

    def __init__(self, datasets: DatasetLookup) -> None:
        self.datasets = datasets

    def resolve(self, spec: Any) -> Any:
        tree = orjson.loads(spec) if isinstance(spec, (str, bytes)) else spec
        names = collect_dataset_refs(tree)
        if not names:
            RESOLUTIONS.labels(outcome="noop").inc()
            return tree

        found: dict[str, Dataset] = {}
        for name in names:
            dataset = self.datasets.get_by_name(name)
            if dataset is None:
                RESOLUTIONS.labels(outcome="missing").inc()
                logger.warning("Unresolved dataset reference %s", name)
                raise DatasetNotFoundError(name)
            found[name] = dataset

        resolved = copy.deepcopy(tree)
        transform_references(resolved, lambda name: copy.deepcopy(data_node_for(found[name])))
        RESOLUTIONS.labels(outcome="resolved").inc()
        logger.debug("Resolved %s dataset references", len(found))
        return resolved


__all__ = ["DatasetLookup", "ReferenceResolver", "data_node_for"]
