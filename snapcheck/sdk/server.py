"""FastAPI application serving a RunContext as a worker.

The manager calls ``POST /v0/run`` with the checklist's known flows and
gets back the flows the worker just observed.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import pydantic
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from snapcheck import __version__
from snapcheck.errors import NotFoundError, ValidationError
from snapcheck.schemas.payloads import WorkerRunPayload
from snapcheck.schemas.run import ObservedAssertion, ObservedFlow
from snapcheck.sdk.context import RunContext

logger = logging.getLogger(__name__)


def _known_flows(payload: WorkerRunPayload) -> list[ObservedFlow]:
    return [
        ObservedFlow(
            name=flow.name,
            assertions=[
                ObservedAssertion(name=a.name, snapshot=a.snapshot) for a in flow.assertions
            ],
        )
        for flow in payload.flows
    ]


def create_worker_app(ctx: RunContext, env: str = "development") -> FastAPI:
    """Create the worker FastAPI app for ``ctx``."""
    app = FastAPI(title="snapcheck worker", version=__version__)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": NotFoundError().to_dict()})

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if env != "test":
            logger.info("%s %s", request.method, request.url.path)
        return await call_next(request)

    @app.get("/")
    async def index() -> dict[str, Any]:
        return {}

    @app.post("/v0/run")
    async def run(request: Request) -> JSONResponse:
        """Execute every flow and return the observations."""
        try:
            payload = WorkerRunPayload.model_validate(await request.json())
        except (json.JSONDecodeError, UnicodeDecodeError, pydantic.ValidationError):
            return JSONResponse(status_code=400, content={"error": ValidationError().to_dict()})

        observed = await ctx.run(_known_flows(payload))
        return JSONResponse(content={"flows": [f.model_dump() for f in observed]})

    return app
