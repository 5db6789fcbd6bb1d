"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from astrolabe.core.config import Settings, get_settings
from astrolabe.ingest.transfer import ImportExportEngine
from astrolabe.stores.datasets import DatasetStore
from astrolabe.stores.snippets import SnippetStore
from astrolabe.workspace import Workspace

_WORKSPACE: Workspace | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_workspace() -> Workspace:
    global _WORKSPACE
    if _WORKSPACE is None:
        _WORKSPACE = Workspace.from_settings(get_app_settings())
    return _WORKSPACE


def get_snippet_store() -> SnippetStore:
    return get_workspace().snippets


def get_dataset_store() -> DatasetStore:
    return get_workspace().datasets


def get_transfer_engine() -> ImportExportEngine:
    return get_workspace().transfer


def reset_workspace() -> None:
    global _WORKSPACE
    if _WORKSPACE is not None:
        _WORKSPACE.close()
    _WORKSPACE = None


__all__ = [
    "get_app_settings",
    "get_dataset_store",
    "get_snippet_store",
    "get_transfer_engine",
    "get_workspace",
    "reset_workspace",
]
