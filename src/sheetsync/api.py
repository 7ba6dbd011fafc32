"""
HTTP API over a SyncEngine.

Every endpoint under /api/v1/sync answers with the ApiResponse envelope.
Engine calls block on store I/O, so the handlers are plain functions and
run in FastAPI's threadpool.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Generic, TypeVar

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from sheetsync import __version__
from sheetsync.errors import ConfigurationError, NoActiveSession, SheetSyncError, UpstreamUnavailable
from sheetsync.session import SyncEngine

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard API response envelope."""

    success: bool
    data: T | None = None
    error: str | None = None
    meta: dict | None = None

    @classmethod
    def ok(cls, data: T, meta: dict | None = None) -> "ApiResponse[T]":
        return cls(success=True, data=data, meta=meta)

    @classmethod
    def fail(cls, error: str, meta: dict | None = None) -> "ApiResponse[None]":
        return cls(success=False, error=error, meta=meta)


class ConnectRequest(BaseModel):
    source: str = Field(min_length=1, description="Spreadsheet URL or id")
    sheet_name: str = Field(min_length=1)
    table_name: str = Field(min_length=1)


class StartRequest(BaseModel):
    interval_ms: int | None = Field(default=None, gt=0)


def error_status(exc: SheetSyncError) -> int:
    """HTTP status for an engine error."""
    if isinstance(exc, NoActiveSession):
        return 409
    if isinstance(exc, ConfigurationError):
        return 400
    if isinstance(exc, UpstreamUnavailable):
        return 502
    return 500


def get_engine(request: Request) -> SyncEngine:
    return request.app.state.engine


router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/sheets")
def list_sheets(
    source: str = Query(..., min_length=1), engine: SyncEngine = Depends(get_engine)
) -> ApiResponse[dict[str, Any]]:
    return ApiResponse.ok(engine.list_sheets(source))


@router.post("/connect")
def connect(body: ConnectRequest, engine: SyncEngine = Depends(get_engine)) -> ApiResponse[dict[str, Any]]:
    return ApiResponse.ok(engine.connect(body.source, body.sheet_name, body.table_name))


@router.post("/start")
def start(
    body: StartRequest | None = None, engine: SyncEngine = Depends(get_engine)
) -> ApiResponse[dict[str, Any]]:
    interval_ms = body.interval_ms if body else None
    return ApiResponse.ok(engine.start_schedule(interval_ms))


@router.post("/stop")
def stop(engine: SyncEngine = Depends(get_engine)) -> ApiResponse[dict[str, Any]]:
    return ApiResponse.ok(engine.stop_schedule())


@router.post("/trigger")
def trigger(engine: SyncEngine = Depends(get_engine)) -> ApiResponse[dict[str, Any]]:
    return ApiResponse.ok(engine.reconcile_now())


@router.get("/status")
def status(engine: SyncEngine = Depends(get_engine)) -> ApiResponse[dict[str, Any]]:
    return ApiResponse.ok(engine.status())


@router.get("/data")
def data(engine: SyncEngine = Depends(get_engine)) -> ApiResponse[dict[str, Any]]:
    return ApiResponse.ok(engine.combined_view())


@router.post("/sample-row")
def sample_row(engine: SyncEngine = Depends(get_engine)) -> ApiResponse[dict[str, Any]]:
    return ApiResponse.ok(engine.insert_sample_row())


@router.delete("/rows/{position}")
def delete_row(position: int, engine: SyncEngine = Depends(get_engine)) -> ApiResponse[dict[str, Any]]:
    return ApiResponse.ok(engine.delete_row(position))


def create_app(engine: SyncEngine) -> FastAPI:
    """
    Build the FastAPI app around an engine.

    The engine's schedule is cancelled when the app shuts down.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down, stopping the sync schedule")
        app.state.engine.close()

    app = FastAPI(title="sheetsync", version=__version__, lifespan=lifespan)
    app.state.engine = engine

    @app.exception_handler(SheetSyncError)
    async def sheetsync_error_handler(request: Request, exc: SheetSyncError) -> JSONResponse:
        status_code = error_status(exc)
        meta = {"error_type": type(exc).__name__}
        applied = getattr(exc, "applied", None)
        if applied is not None:
            meta["applied"] = applied
        logger.warning(f"{request.method} {request.url.path} failed ({status_code}): {exc}")
        return JSONResponse(
            status_code=status_code,
            content=ApiResponse.fail(str(exc), meta=meta).model_dump(),
        )

    app.include_router(router, prefix=API_PREFIX)

    @app.get("/health")
    def health_check() -> dict:
        return {"status": "ok", "version": __version__}

    return app
