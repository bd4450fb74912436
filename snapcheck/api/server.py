"""FastAPI application for the snapcheck manager.

Serves API key management, checklist CRUD, checklist runs, snapshot
seeding, schedules and webhooks. Errors are rendered as
``{"error": {cause, code, message}}`` with the status of the matching
``SnapcheckError``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import aiosqlite
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from snapcheck import __version__
from snapcheck.api.auth import require_api_key
from snapcheck.errors import NotFoundError, SnapcheckError, ValidationError
from snapcheck.notify.events import RunEventEmitter
from snapcheck.notify.webhooks import WebhookNotifier
from snapcheck.persistence.api_keys import ApiKeyStore
from snapcheck.persistence.checklists import ChecklistStore
from snapcheck.persistence.database import close_db, init_db
from snapcheck.persistence.schedules import ScheduleStore
from snapcheck.persistence.snapshots import SnapshotStore
from snapcheck.persistence.webhooks import WebhookStore
from snapcheck.run.runner import ChecklistRunner
from snapcheck.run.worker_client import WorkerClient
from snapcheck.scheduler import ChecklistScheduler, is_valid_cron
from snapcheck.schemas.entities import ApiKey, Checklist
from snapcheck.schemas.payloads import (
    ChecklistPayload,
    SchedulePayload,
    SnapshotsUpdatePayload,
    WebhookPayload,
)
from snapcheck.schemas.settings import ManagerSettings
from snapcheck.settings import load_settings

logger = logging.getLogger(__name__)

_DELETED = {"message": "Successfully deleted."}


@dataclass
class ManagerServices:
    """Everything a request handler needs, built once per app lifespan."""

    db: aiosqlite.Connection
    api_keys: ApiKeyStore
    checklists: ChecklistStore
    snapshots: SnapshotStore
    schedules: ScheduleStore
    webhooks: WebhookStore
    emitter: RunEventEmitter
    runner: ChecklistRunner
    scheduler: ChecklistScheduler


def _error_response(error: SnapcheckError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content={"error": error.to_dict()})


def create_app(
    settings: ManagerSettings | None = None,
    worker_client: WorkerClient | None = None,
) -> FastAPI:
    """Create and configure the manager FastAPI application.

    Args:
        settings: Manager settings. Loaded from defaults + env when omitted.
        worker_client: Worker client to run checklists with. Built from
            the settings when omitted.
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = await init_db(settings.database_path)
        emitter = RunEventEmitter()
        notifier = WebhookNotifier(db, timeout=settings.webhook_timeout)
        emitter.add_listener(notifier.create_listener())

        client = worker_client or WorkerClient(
            timeout=settings.worker_timeout,
            run_path=settings.worker_run_path,
        )
        runner = ChecklistRunner(db, client, emitter)
        scheduler = ChecklistScheduler(
            db, runner, emitter, interval=settings.scheduler_interval,
        )
        app.state.services = ManagerServices(
            db=db,
            api_keys=ApiKeyStore(db),
            checklists=ChecklistStore(db),
            snapshots=SnapshotStore(db),
            schedules=ScheduleStore(db),
            webhooks=WebhookStore(db),
            emitter=emitter,
            runner=runner,
            scheduler=scheduler,
        )
        if settings.scheduler_enabled:
            scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop()
            await close_db(db)

    app = FastAPI(
        title="snapcheck manager",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    def services() -> ManagerServices:
        return app.state.services

    async def find_checklist(checklist_id: int, api_key: ApiKey) -> Checklist:
        checklist = await services().checklists.find(checklist_id, api_key.id)
        if checklist is None:
            raise NotFoundError(f"Checklist {checklist_id} not found")
        return checklist

    # ── Error handling ───────────────────────────────────────────

    @app.exception_handler(SnapcheckError)
    async def handle_snapcheck_error(request: Request, exc: SnapcheckError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError,
    ) -> JSONResponse:
        return _error_response(ValidationError(str(exc)))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code in (404, 405):
            return _error_response(NotFoundError())
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": {"cause": str(exc.detail), "code": exc.status_code * 10, "message": str(exc.detail)}},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_response(SnapcheckError())

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if settings.env != "test":
            logger.info("%s %s", request.method, request.url.path)
        return await call_next(request)

    # ── Index & API keys ─────────────────────────────────────────

    @app.get("/")
    async def index() -> dict[str, Any]:
        return {}

    @app.post("/api-keys", status_code=201)
    async def create_api_key() -> dict[str, Any]:
        """Create an API key. The raw key is only ever returned here."""
        _, raw_key = await services().api_keys.create()
        return {"data": {"api_key": raw_key}}

    @app.delete("/api-keys")
    async def delete_api_key(api_key: ApiKey = Depends(require_api_key)) -> dict[str, Any]:
        """Delete the caller's key together with everything it owns."""
        await services().api_keys.delete(api_key.id)
        return _DELETED

    # ── Checklists ───────────────────────────────────────────────

    @app.get("/v1/checklists")
    async def list_checklists(api_key: ApiKey = Depends(require_api_key)) -> dict[str, Any]:
        checklists = await services().checklists.find_all(api_key.id)
        return {"data": {"checklists": [c.to_response() for c in checklists]}}

    @app.post("/v1/checklists", status_code=201)
    async def create_checklist(
        body: ChecklistPayload,
        api_key: ApiKey = Depends(require_api_key),
    ) -> dict[str, Any]:
        checklist = await services().checklists.create(api_key.id, body.workerOrigin)
        return {"data": {"checklist": checklist.to_response()}}

    @app.put("/v1/checklists/{id}")
    async def update_checklist(
        id: int,  # noqa: A002
        body: ChecklistPayload,
        api_key: ApiKey = Depends(require_api_key),
    ) -> dict[str, Any]:
        checklist = await find_checklist(id, api_key)
        checklist.worker_origin = body.workerOrigin
        await services().checklists.update(checklist)
        return {"data": {"checklist": checklist.to_response()}}

    @app.delete("/v1/checklists/{id}")
    async def delete_checklist(
        id: int,  # noqa: A002
        api_key: ApiKey = Depends(require_api_key),
    ) -> dict[str, Any]:
        checklist = await find_checklist(id, api_key)
        await services().checklists.delete(checklist.id)
        return _DELETED

    @app.post("/v1/checklists/{id}/run")
    async def run_checklist(
        id: int,  # noqa: A002
        api_key: ApiKey = Depends(require_api_key),
    ) -> dict[str, Any]:
        """Run a checklist against its worker and return annotated flows."""
        checklist = await find_checklist(id, api_key)
        flows = await services().runner.run(checklist)
        return {"data": {"flows": [f.to_response() for f in flows]}}

    @app.post("/v1/checklists/{id}/snapshots", status_code=201)
    async def seed_snapshots(
        id: int,  # noqa: A002
        body: SnapshotsUpdatePayload,
        api_key: ApiKey = Depends(require_api_key),
    ) -> dict[str, Any]:
        """Seed snapshots (insert-if-absent) and echo the payload back."""
        checklist = await find_checklist(id, api_key)
        for flow in body.flows:
            for snapshot in flow.snapshots:
                await services().snapshots.upsert_if_absent(
                    checklist.id, flow.name, snapshot.name, snapshot.value,
                )
        return {"data": body.model_dump()}

    # ── Schedules ────────────────────────────────────────────────

    async def validated_schedule(body: SchedulePayload, api_key: ApiKey) -> Checklist:
        if not is_valid_cron(body.cron):
            raise ValidationError(f"Invalid cron expression {body.cron!r}")
        return await find_checklist(body.checklistId, api_key)

    @app.get("/v1/schedules")
    async def list_schedules(api_key: ApiKey = Depends(require_api_key)) -> dict[str, Any]:
        schedules = await services().schedules.find_all(api_key.id)
        return {"data": {"schedules": [s.to_response() for s in schedules]}}

    @app.post("/v1/schedules", status_code=201)
    async def create_schedule(
        body: SchedulePayload,
        api_key: ApiKey = Depends(require_api_key),
    ) -> dict[str, Any]:
        checklist = await validated_schedule(body, api_key)
        schedule = await services().schedules.create(checklist.id, body.cron)
        return {"data": {"schedule": schedule.to_response()}}

    @app.put("/v1/schedules/{id}")
    async def update_schedule(
        id: int,  # noqa: A002
        body: SchedulePayload,
        api_key: ApiKey = Depends(require_api_key),
    ) -> dict[str, Any]:
        schedule = await services().schedules.find(id, api_key.id)
        if schedule is None:
            raise NotFoundError(f"Schedule {id} not found")
        checklist = await validated_schedule(body, api_key)
        schedule.checklist_id = checklist.id
        schedule.cron = body.cron
        await services().schedules.update(schedule)
        return {"data": {"schedule": schedule.to_response()}}

    @app.delete("/v1/schedules/{id}")
    async def delete_schedule(
        id: int,  # noqa: A002
        api_key: ApiKey = Depends(require_api_key),
    ) -> dict[str, Any]:
        schedule = await services().schedules.find(id, api_key.id)
        if schedule is None:
            raise NotFoundError(f"Schedule {id} not found")
        await services().schedules.delete(schedule.id)
        return _DELETED

    # ── Webhooks ─────────────────────────────────────────────────

    @app.get("/v1/webhooks")
    async def list_webhooks(api_key: ApiKey = Depends(require_api_key)) -> dict[str, Any]:
        webhooks = await services().webhooks.find_all(api_key.id)
        return {"data": {"webhooks": [w.to_response() for w in webhooks]}}

    @app.post("/v1/webhooks", status_code=201)
    async def create_webhook(
        body: WebhookPayload,
        api_key: ApiKey = Depends(require_api_key),
    ) -> dict[str, Any]:
        if not body.url.startswith(("http://", "https://")):
            raise ValidationError(f"Webhook URL must be http(s): {body.url!r}")
        webhook = await services().webhooks.create(api_key.id, body.eventType, body.url)
        return {"data": {"webhook": webhook.to_response()}}

    @app.delete("/v1/webhooks/{id}")
    async def delete_webhook(
        id: int,  # noqa: A002
        api_key: ApiKey = Depends(require_api_key),
    ) -> dict[str, Any]:
        webhook = await services().webhooks.find(id, api_key.id)
        if webhook is None:
            raise NotFoundError(f"Webhook {id} not found")
        await services().webhooks.delete(webhook.id)
        return _DELETED

    return app
