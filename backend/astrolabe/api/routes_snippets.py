"""Snippet API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse

from astrolabe.api.dependencies import get_app_settings, get_snippet_store, get_transfer_engine, get_workspace
from astrolabe.core.config import Settings
from astrolabe.ingest.transfer import ImportExportEngine
from astrolabe.models.dto import (
    DatasetResponse,
    DeleteResponse,
    DraftRequest,
    ExtractRequest,
    ImportRequest,
    ImportResponse,
    RefsResponse,
    RevertRequest,
    SnippetCreateRequest,
    SnippetResponse,
    SnippetUpdateRequest,
    SortKey,
    SortOrder,
)
from astrolabe.models.entities import ViewMode
from astrolabe.stores.snippets import SnippetStore
from astrolabe.workspace import Workspace

router = APIRouter()


@router.get("", response_model=list[SnippetResponse], summary="List snippets")
async def list_snippets(
    sort: SortKey | None = Query(default=None),
    order: SortOrder | None = Query(default=None),
    q: str | None = Query(default=None, description="Case-insensitive search over name, comment and spec"),
    store: SnippetStore = Depends(get_snippet_store),
    settings: Settings = Depends(get_app_settings),
) -> list[SnippetResponse]:
    snippets = store.list(sort or settings.sort_by, order or settings.sort_order, q)
    return [SnippetResponse.from_entity(snippet, settings) for snippet in snippets]


@router.post("", response_model=SnippetResponse, status_code=201, summary="Create a snippet")
async def create_snippet(
    request: SnippetCreateRequest,
    store: SnippetStore = Depends(get_snippet_store),
) -> SnippetResponse:
    snippet = store.create(
        spec=request.spec,
        name=request.name,
        comment=request.comment,
        tags=request.tags,
        meta=request.meta,
    )
    return SnippetResponse.from_entity(snippet)


@router.get("/export", response_class=PlainTextResponse, summary="Export all snippets as JSON")
async def export_snippets(engine: ImportExportEngine = Depends(get_transfer_engine)) -> PlainTextResponse:
    return PlainTextResponse(engine.export_snippets(), media_type="application/json")


@router.post("/import", response_model=ImportResponse, summary="Import snippets additively")
async def import_snippets(
    request: ImportRequest,
    engine: ImportExportEngine = Depends(get_transfer_engine),
) -> ImportResponse:
    return ImportResponse(**engine.import_snippets(request.content).to_dict())


@router.get("/{snippet_id}", response_model=SnippetResponse, summary="Fetch one snippet")
async def get_snippet(snippet_id: int, store: SnippetStore = Depends(get_snippet_store)) -> SnippetResponse:
    return SnippetResponse.from_entity(store.require(snippet_id))


@router.patch("/{snippet_id}", response_model=SnippetResponse, summary="Update snippet fields")
async def update_snippet(
    snippet_id: int,
    request: SnippetUpdateRequest,
    store: SnippetStore = Depends(get_snippet_store),
) -> SnippetResponse:
    patch = request.model_dump(exclude_unset=True)
    return SnippetResponse.from_entity(store.update(snippet_id, patch))


@router.delete("/{snippet_id}", response_model=DeleteResponse, summary="Delete a snippet")
async def delete_snippet(snippet_id: int, store: SnippetStore = Depends(get_snippet_store)) -> DeleteResponse:
    if not store.delete(snippet_id):
        raise HTTPException(status_code=404, detail="Snippet not found")
    return DeleteResponse(status="ok", deleted=1)


@router.post("/{snippet_id}/duplicate", response_model=SnippetResponse, status_code=201, summary="Duplicate a snippet")
async def duplicate_snippet(snippet_id: int, store: SnippetStore = Depends(get_snippet_store)) -> SnippetResponse:
    return SnippetResponse.from_entity(store.duplicate(snippet_id))


@router.put("/{snippet_id}/draft", response_model=SnippetResponse, summary="Save editor text as the draft")
async def save_draft(
    snippet_id: int,
    request: DraftRequest,
    store: SnippetStore = Depends(get_snippet_store),
) -> SnippetResponse:
    snippet = store.update_draft(snippet_id, request.text, view=ViewMode(request.view))
    return SnippetResponse.from_entity(snippet)


@router.post("/{snippet_id}/publish", response_model=SnippetResponse, summary="Publish the draft")
async def publish_snippet(snippet_id: int, store: SnippetStore = Depends(get_snippet_store)) -> SnippetResponse:
    return SnippetResponse.from_entity(store.publish(snippet_id))


@router.post("/{snippet_id}/revert", response_model=SnippetResponse, summary="Discard the draft")
async def revert_snippet(
    snippet_id: int,
    request: RevertRequest,
    store: SnippetStore = Depends(get_snippet_store),
) -> SnippetResponse:
    return SnippetResponse.from_entity(store.revert(snippet_id, confirm=request.confirm))


@router.post("/{snippet_id}/refs", response_model=RefsResponse, summary="Re-extract dataset references")
async def refresh_refs(snippet_id: int, store: SnippetStore = Depends(get_snippet_store)) -> RefsResponse:
    return RefsResponse(id=snippet_id, dataset_refs=store.extract_dataset_refs(snippet_id))


@router.get("/{snippet_id}/resolved", summary="Snippet spec with dataset references resolved")
async def resolved_snippet(
    snippet_id: int,
    view: ViewMode = Query(default=ViewMode.DRAFT),
    workspace: Workspace = Depends(get_workspace),
) -> dict:
    return {"id": snippet_id, "spec": workspace.resolve_snippet(snippet_id, view)}


@router.post("/{snippet_id}/extract", response_model=DatasetResponse, status_code=201, summary="Move inline data into a dataset")
async def extract_inline_data(
    snippet_id: int,
    request: ExtractRequest,
    workspace: Workspace = Depends(get_workspace),
) -> DatasetResponse:
    dataset, _ = workspace.extract_inline_data(snippet_id, request.dataset_name, comment=request.comment)
    return DatasetResponse.from_entity(dataset)


__all__ = ["router"]
