"""Dataset API routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from astrolabe.api.dependencies import get_app_settings, get_dataset_store, get_transfer_engine, get_workspace
from astrolabe.core.config import Settings
from astrolabe.ingest.transfer import ImportExportEngine
from astrolabe.models.dto import (
    DatasetCreateRequest,
    DatasetFileImportRequest,
    DatasetFileImportResponse,
    DatasetResponse,
    DatasetSummary,
    DatasetUpdateRequest,
    DatasetUsageResponse,
    DeleteResponse,
    ImportRequest,
    ImportResponse,
    SnippetResponse,
    SortKey,
    SortOrder,
)
from astrolabe.models.entities import DatasetSource
from astrolabe.stores.datasets import DatasetStore
from astrolabe.workspace import Workspace

router = APIRouter()


@router.get("", response_model=list[DatasetSummary], summary="List datasets")
async def list_datasets(
    sort: SortKey | None = Query(default=None),
    order: SortOrder | None = Query(default=None),
    q: str | None = Query(default=None, description="Case-insensitive search over name and comment"),
    store: DatasetStore = Depends(get_dataset_store),
    settings: Settings = Depends(get_app_settings),
) -> list[DatasetSummary]:
    datasets = store.list(sort or settings.sort_by, order or settings.sort_order, q)
    return [DatasetSummary.from_entity(dataset, settings) for dataset in datasets]


@router.post("", response_model=DatasetResponse, status_code=201, summary="Create a dataset")
async def create_dataset(
    request: DatasetCreateRequest,
    workspace: Workspace = Depends(get_workspace),
) -> DatasetResponse:
    if request.source == DatasetSource.URL.value and request.sniff:
        dataset = workspace.register_url_dataset(
            request.name, request.data, format=request.format, comment=request.comment
        )
    else:
        dataset = workspace.datasets.create(
            name=request.name,
            data=request.data,
            format=request.format,
            source=request.source,
            comment=request.comment,
            meta=request.meta,
            on_conflict=request.on_conflict,
        )
    return DatasetResponse.from_entity(dataset)


@router.get("/export", summary="Export all datasets as JSON")
async def export_datasets(engine: ImportExportEngine = Depends(get_transfer_engine)) -> Response:
    return Response(content=engine.export_datasets(), media_type="application/json")


@router.post("/import", response_model=ImportResponse, summary="Import datasets additively")
async def import_datasets(
    request: ImportRequest,
    engine: ImportExportEngine = Depends(get_transfer_engine),
) -> ImportResponse:
    return ImportResponse(**engine.import_datasets(request.content).to_dict())


@router.post("/import-file", response_model=DatasetFileImportResponse, status_code=201, summary="Create a dataset from file text")
async def import_dataset_file(
    request: DatasetFileImportRequest,
    engine: ImportExportEngine = Depends(get_transfer_engine),
) -> DatasetFileImportResponse:
    dataset, renamed = engine.import_dataset_file(request.content, request.filename)
    return DatasetFileImportResponse(dataset=DatasetResponse.from_entity(dataset), renamed=renamed)


@router.get("/by-name/{name}", response_model=DatasetResponse, summary="Fetch a dataset by name")
async def get_dataset_by_name(name: str, store: DatasetStore = Depends(get_dataset_store)) -> DatasetResponse:
    dataset = store.get_by_name(name)
    if dataset is None:
        raise HTTPException(status_code=404, detail=f'Dataset "{name}" not found')
    return DatasetResponse.from_entity(dataset)


@router.get("/by-name/{name}/usage", response_model=DatasetUsageResponse, summary="Snippets referencing a dataset")
async def dataset_usage(name: str, workspace: Workspace = Depends(get_workspace)) -> DatasetUsageResponse:
    usage = workspace.dataset_usage(name)
    return DatasetUsageResponse(
        name=usage.name,
        count=usage.count,
        snippets=[SnippetResponse.from_entity(snippet) for snippet in usage.snippets],
    )


@router.post("/by-name/{name}/snippet", response_model=SnippetResponse, status_code=201, summary="Start a snippet on a dataset")
async def snippet_from_dataset(name: str, workspace: Workspace = Depends(get_workspace)) -> SnippetResponse:
    return SnippetResponse.from_entity(workspace.create_snippet_from_dataset(name))


@router.get("/{dataset_id}", response_model=DatasetResponse, summary="Fetch one dataset")
async def get_dataset(dataset_id: int, store: DatasetStore = Depends(get_dataset_store)) -> DatasetResponse:
    return DatasetResponse.from_entity(store.require(dataset_id))


@router.patch("/{dataset_id}", response_model=DatasetResponse, summary="Update dataset fields")
async def update_dataset(
    dataset_id: int,
    request: DatasetUpdateRequest,
    store: DatasetStore = Depends(get_dataset_store),
) -> DatasetResponse:
    patch = request.model_dump(exclude_unset=True)
    return DatasetResponse.from_entity(store.update(dataset_id, patch))


@router.delete("/{dataset_id}", response_model=DeleteResponse, summary="Delete a dataset")
async def delete_dataset(dataset_id: int, store: DatasetStore = Depends(get_dataset_store)) -> DeleteResponse:
    if not store.delete(dataset_id):
        raise HTTPException(status_code=404, detail="Dataset not found")
    return DeleteResponse(status="ok", deleted=1)


@router.post("/{dataset_id}/refresh", response_model=DatasetResponse, summary="Recompute dataset metadata")
async def refresh_dataset(dataset_id: int, store: DatasetStore = Depends(get_dataset_store)) -> DatasetResponse:
    return DatasetResponse.from_entity(store.refresh_metadata(dataset_id))


@router.get("/{dataset_id}/preview", summary="Dataset payload, fetched for URL datasets")
async def preview_dataset(dataset_id: int, store: DatasetStore = Depends(get_dataset_store)) -> dict[str, Any]:
    return {"id": dataset_id, "data": store.preview(dataset_id)}


@router.get("/{dataset_id}/export", summary="Download one dataset as a file")
async def export_dataset(dataset_id: int, store: DatasetStore = Depends(get_dataset_store)) -> Response:
    exported = store.export(dataset_id)
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )


__all__ = ["router"]
