"""Administrative and stateless routes for Astrolabe."""

from __future__ import annotations

import orjson
from fastapi import APIRouter, Depends

from astrolabe.api.dependencies import get_app_settings, get_workspace
from astrolabe.core.config import Settings
from astrolabe.core.errors import MalformedInputError
from astrolabe.core.metrics import metrics_response
from astrolabe.models.dto import (
    DetectRequest,
    DetectResponse,
    RemoteDetectRequest,
    RemoteDetectResponse,
    ResolveRequest,
    ResolveResponse,
    SettingsResponse,
    StorageResponse,
    metadata_response,
)
from astrolabe.resolve.tree import collect_dataset_refs
from astrolabe.workspace import Workspace

router = APIRouter()


@router.post("/resolve", response_model=ResolveResponse, summary="Resolve dataset references in a spec")
async def resolve_spec(request: ResolveRequest, workspace: Workspace = Depends(get_workspace)) -> ResolveResponse:
    spec = request.spec
    if isinstance(spec, str):
        try:
            spec = orjson.loads(spec)
        except orjson.JSONDecodeError as exc:
            raise MalformedInputError(f"Spec is not valid JSON: {exc}") from exc
    resolved = workspace.resolver.resolve(spec)
    return ResolveResponse(spec=resolved, dataset_refs=collect_dataset_refs(spec))


@router.post("/detect", response_model=DetectResponse, summary="Detect the format of raw data text")
async def detect_format(request: DetectRequest, workspace: Workspace = Depends(get_workspace)) -> DetectResponse:
    detection = workspace.detector.detect(request.text, filename=request.filename)
    return DetectResponse(
        format=detection.format.value if detection.format else None,
        confidence=detection.confidence.value,
        is_url=detection.is_url,
    )


@router.post("/detect/remote", response_model=RemoteDetectResponse, summary="Fetch a URL and detect its format")
async def detect_remote_format(
    request: RemoteDetectRequest,
    workspace: Workspace = Depends(get_workspace),
) -> RemoteDetectResponse:
    detection = workspace.detect_remote(request.url)
    return RemoteDetectResponse(
        url=detection.url,
        format=detection.format.value,
        confidence=detection.confidence.value,
        metadata=metadata_response(detection.metadata),
    )


@router.get("/storage", response_model=StorageResponse, summary="Snippet storage usage")
async def storage(workspace: Workspace = Depends(get_workspace)) -> StorageResponse:
    usage = workspace.usage()
    return StorageResponse(
        used_bytes=usage.used_bytes,
        quota_bytes=usage.quota_bytes,
        percent=round(usage.percent, 2),
        level=usage.level,
        snippet_count=len(workspace.snippets.load()),
        dataset_count=workspace.datasets.count(),
    )


@router.get("/settings", response_model=SettingsResponse, summary="Effective settings")
async def get_effective_settings(settings: Settings = Depends(get_app_settings)) -> SettingsResponse:
    return SettingsResponse(
        render_debounce_ms=settings.render_debounce_ms,
        autosave_debounce_ms=settings.autosave_debounce_ms,
        date_format=settings.date_format,
        custom_date_format=settings.custom_date_format,
        sort_by=settings.sort_by,
        sort_order=settings.sort_order,
        snippet_quota_bytes=settings.snippet_quota_bytes,
    )


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


__all__ = ["router"]
