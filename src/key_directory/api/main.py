from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Dict, List, Optional

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from ..config import AppConfig, load_config
from ..directory import RenderedDirectory, render_hpke_jwks, render_privacypass_directory
from ..exceptions import DirectoryUninitialized, KeyDirectoryError
from ..metrics import DIRECTORY_REQUESTS
from ..models import KeyPurpose, KeyRecord
from ..services import KeyServices, RotationScheduler, build_services
from ..storage import ObjectStore, StepJournal
from ..version import __version__

logger = structlog.get_logger(__name__)

PRIVACYPASS_PATH = "/.well-known/private-token-issuer-directory"
HPKE_JWKS_PATH = "/ietf-hpke-jose/jwks.json"


class MintedKey(BaseModel):
    purpose: str
    token_key_id: int
    public_key: str
    not_before: Optional[int] = None


class RotateResponse(BaseModel):
    keys: List[MintedKey]


class ClearResponse(BaseModel):
    deleted: Dict[str, List[int]]


class WorkflowStarted(BaseModel):
    run_id: str


class StepRow(BaseModel):
    step: str
    status: str
    timestamp: str
    detail: Optional[str] = None


class WorkflowStatus(BaseModel):
    run_id: str
    steps: List[StepRow]


def _minted(record: KeyRecord) -> MintedKey:
    return MintedKey(
        purpose=record.purpose.value,
        token_key_id=record.identifier,
        public_key=record.public_key_b64,
        not_before=record.not_before,
    )


def _directory_response(rendered: RenderedDirectory, name: str) -> Response:
    DIRECTORY_REQUESTS.labels(name, "ok").inc()
    return Response(content=rendered.body, media_type=rendered.media_type, headers=rendered.headers)


def create_app(
    config: AppConfig | None = None,
    *,
    objects: ObjectStore | None = None,
    journal: StepJournal | None = None,
    enable_scheduler: bool = True,
) -> FastAPI:
    """Build the HTTP surface over freshly wired lifecycle services.

    Directory routes only read through ``KeyLifecycle.select``; admin routes
    drive the minter, the sweeper and the rotation workflow.
    """
    config = config or load_config()
    services: KeyServices = build_services(config, objects=objects, journal=journal)

    @contextlib.asynccontextmanager
    async def lifespan(_app: FastAPI):
        scheduler: RotationScheduler | None = None
        runner: asyncio.Task | None = None
        if enable_scheduler and config.rotation.interval_seconds > 0:
            scheduler = RotationScheduler(services.workflow, config.rotation.interval_seconds)
            runner = asyncio.create_task(scheduler.run_forever(), name="rotation-scheduler")
        try:
            yield
        finally:
            if scheduler and runner:
                scheduler.stop()
                await runner
            await services.workflow.drain()
            await services.objects.close()

    app = FastAPI(title="Key Directory", version=__version__, lifespan=lifespan)
    app.state.services = services

    @app.exception_handler(DirectoryUninitialized)
    async def _uninitialized(request: Request, exc: DirectoryUninitialized) -> JSONResponse:
        DIRECTORY_REQUESTS.labels(request.url.path, "uninitialized").inc()
        logger.warning("directory.uninitialized", path=request.url.path, purpose=exc.purpose)
        return JSONResponse({"error": "directory_uninitialized", "detail": str(exc)}, status_code=503)

    @app.exception_handler(KeyDirectoryError)
    async def _lifecycle_error(request: Request, exc: KeyDirectoryError) -> JSONResponse:
        logger.error("request.failed", path=request.url.path, error=str(exc))
        return JSONResponse({"error": type(exc).__name__, "detail": str(exc)}, status_code=500)

    @app.get("/")
    def index():
        return {
            "name": "Key Directory over HTTP",
            "rotation_interval_seconds": config.rotation.interval_seconds,
            "endpoints": [PRIVACYPASS_PATH, HPKE_JWKS_PATH],
        }

    @app.api_route(PRIVACYPASS_PATH, methods=["GET", "HEAD"])
    async def privacypass_directory():
        records = await services.lifecycle.select(KeyPurpose.SIGNATURE)
        rendered = render_privacypass_directory(
            records,
            issuer_request_uri=config.directory.issuer_request_uri,
            cache_max_age=config.directory.cache_max_age_seconds,
        )
        return _directory_response(rendered, PRIVACYPASS_PATH)

    @app.api_route(HPKE_JWKS_PATH, methods=["GET", "HEAD"])
    async def hpke_jwks():
        records = await services.lifecycle.select(KeyPurpose.ENCRYPTION)
        rendered = render_hpke_jwks(records, cache_max_age=config.directory.cache_max_age_seconds)
        return _directory_response(rendered, HPKE_JWKS_PATH)

    @app.post("/admin/rotate", response_model=RotateResponse)
    async def admin_rotate(purpose: Optional[KeyPurpose] = None):
        purposes = [purpose] if purpose else list(KeyPurpose)
        minted = []
        for p in purposes:
            minted.append(await services.minter.mint_unique(p))
        return RotateResponse(keys=[_minted(r) for r in minted])

    @app.post("/admin/clear", response_model=ClearResponse)
    async def admin_clear():
        deleted = {p.value: await services.lifecycle.sweep(p) for p in KeyPurpose}
        return ClearResponse(deleted=deleted)

    @app.post("/admin/workflow", response_model=WorkflowStarted, status_code=202)
    async def admin_workflow():
        return WorkflowStarted(run_id=services.workflow.start())

    @app.get("/admin/workflow/{run_id}", response_model=WorkflowStatus)
    async def admin_workflow_status(run_id: str):
        rows = await services.workflow.journal.entries(run_id)
        return WorkflowStatus(
            run_id=run_id,
            steps=[StepRow(step=r.step, status=r.status.value, timestamp=r.timestamp, detail=r.detail) for r in rows],
        )

    @app.get("/healthz")
    def healthz():
        return {"status": "ok", "ts": int(time.time())}

    @app.get("/metrics")
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


__all__ = ["create_app", "PRIVACYPASS_PATH", "HPKE_JWKS_PATH"]
