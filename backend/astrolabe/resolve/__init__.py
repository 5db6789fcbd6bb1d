"""Reference resolution and render scheduling."""

from .render import RenderOutcome, RenderScheduler
from .resolver import ReferenceResolver, data_node_for
from .tree import collect_dataset_refs, iter_views

__all__ = [
    "ReferenceResolver",
    "RenderOutcome",
    "RenderScheduler",
    "collect_dataset_refs",
    "data_node_for",
    "iter_views",
]
