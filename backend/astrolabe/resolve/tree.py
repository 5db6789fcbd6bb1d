"""Walking the view nodes of a visualization specification.

Composite views nest sub-views in a small, closed set of places. All of them
live in ``CHILD_LOCATIONS`` so reference extraction and resolution share one
traversal rule.
"""

from __future__ import annotations

from typing import Any, Callable, Iterator, Mapping

# (key, holds a list of sub-views?)
CHILD_LOCATIONS: tuple[tuple[str, bool], ...] = (
    ("layer", True),
    ("concat", True),
    ("hconcat", True),
    ("vconcat", True),
    ("spec", False),
)


def child_views(node: Mapping[str, Any]) -> Iterator[dict[str, Any]]:
    """Yield the direct sub-views of ``node`` in document order."""
    for key, is_list in CHILD_LOCATIONS:
        value = node.get(key)
        if is_list:
            if isinstance(value, list):
                yield from (item for item in value if isinstance(item, dict))
        elif isinstance(value, dict):
            yield value


def iter_views(root: Any) -> Iterator[dict[str, Any]]:
    """Depth-first, pre-order walk over every view node.

    Uses an explicit stack, so nesting depth is bounded only by memory.
    """
    if not isinstance(root, dict):
        return
    stack: list[dict[str, Any]] = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(list(child_views(node))))


def named_reference(node: Mapping[str, Any]) -> str | None:
    """Dataset name referenced by ``node['data']['name']``, if any."""
    data = node.get("data")
    if isinstance(data, dict):
        name = data.get("name")
        if isinstance(name, str) and name:
            return name
    return None


def collect_dataset_refs(root: Any) -> list[str]:
    """Distinct referenced dataset names, in first-seen order."""
    seen: dict[str, None] = {}
    for node in iter_views(root):
        name = named_reference(node)
        if name is not None:
            seen.setdefault(name, None)
    return list(seen)


def transform_references(root: Any, replace: Callable[[str], dict[str, Any]]) -> None:
    """Replace every named data node in place with ``replace(name)``."""
    for node in iter_views(root):
        name = named_reference(node)
        if name is not None:
            node["data"] = replace(name)


__all__ = [
    "CHILD_LOCATIONS",
    "child_views",
    "collect_dataset_refs",
    "iter_views",
    "named_reference",
    "transform_references",
]
