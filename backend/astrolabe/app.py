"""FastAPI application setup for Astrolabe."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from astrolabe.api.dependencies import get_app_settings, get_workspace
from astrolabe.api.routes_admin import router as admin_router
from astrolabe.api.routes_datasets import router as datasets_router
from astrolabe.api.routes_snippets import router as snippets_router
from astrolabe.core.errors import (
    AstrolabeError,
    ConfirmationRequiredError,
    DatasetNotFoundError,
    DuplicateNameError,
    FetchError,
    MalformedInputError,
    PerRecordImportError,
    QuotaExceededError,
    ReadOnlyViewError,
    RecordNotFoundError,
    UnsupportedFormatError,
)
from astrolabe.core.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)

ERROR_STATUS: dict[type[AstrolabeError], int] = {
    RecordNotFoundError: 404,
    DuplicateNameError: 409,
    ReadOnlyViewError: 409,
    ConfirmationRequiredError: 428,
    QuotaExceededError: 507,
    FetchError: 502,
    MalformedInputError: 400,
    PerRecordImportError: 400,
    UnsupportedFormatError: 400,
    DatasetNotFoundError: 422,
}

app = FastAPI(
    title="Astrolabe",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5174",
        "http://localhost:5174",
    ],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(snippets_router, prefix="/snippets", tags=["snippets"])
app.include_router(datasets_router, prefix="/datasets", tags=["datasets"])
app.include_router(admin_router, prefix="", tags=["admin"])


def status_for(exc: AstrolabeError) -> int:
    for error_type in type(exc).__mro__:
        status = ERROR_STATUS.get(error_type)
        if status is not None:
            return status
    return 400


@app.exception_handler(AstrolabeError)
async def astrolabe_error_handler(request: Request, exc: AstrolabeError) -> JSONResponse:
    status = status_for(exc)
    logger.warning("%s %s failed with %s: %s", request.method, request.url.path, type(exc).__name__, exc)
    body: dict[str, object] = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, FetchError):
        body["kind"] = exc.kind
    return JSONResponse(status_code=status, content=body)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc), "error": "ValueError"})


@app.on_event("startup")
async def startup() -> None:
    """Open both stores and seed an empty snippet store."""
    get_app_settings()
    workspace = get_workspace()
    workspace.snippets.seed_default()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
