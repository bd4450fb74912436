"""Worker client: sends a checklist's known flows to its worker.

The worker re-executes the checklist and answers with freshly observed
flows. Only canonical assertion names cross the wire: disambiguation
suffixes (``check[2]``) are stripped before sending. Uses only stdlib
HTTP, run in the default executor so the event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import http.client
import json
import logging
import urllib.error
import urllib.request
from typing import Any

import pydantic

from snapcheck.errors import WorkerUnavailableError
from snapcheck.schemas.run import Flow, ObservedFlow

logger = logging.getLogger(__name__)

_DEFAULT_RUN_PATH = "/v0/run"
_DEFAULT_TIMEOUT_S = 30.0


def build_run_payload(flows: list[Flow]) -> dict[str, Any]:
    """Build the outbound ``{flows: [{name, assertions: [{name, snapshot}]}]}`` body."""
    return {
        "flows": [
            {
                "name": flow.name,
                "assertions": [
                    {"name": a.name_without_number(), "snapshot": a.snapshot}
                    for a in flow.assertions
                ],
            }
            for flow in flows
        ],
    }


def parse_run_response(body: Any) -> list[ObservedFlow]:
    """Normalize a worker response into a list of ObservedFlow.

    Accepts either a bare JSON array of flows or an object with a
    ``flows`` array.

    Raises:
        WorkerUnavailableError: If the body has any other shape.
    """
    if isinstance(body, dict):
        body = body.get("flows")
    if not isinstance(body, list):
        raise WorkerUnavailableError("Worker response has no flows array")
    try:
        return [ObservedFlow.model_validate(item) for item in body]
    except pydantic.ValidationError as exc:
        raise WorkerUnavailableError(f"Worker response has an invalid flow: {exc}") from exc


class WorkerClient:
    """Invokes a checklist's worker over HTTP.

    Usage:
        client = WorkerClient(timeout=settings.worker_timeout)
        observed = await client.invoke(checklist.worker_origin, flows)
    """

    def __init__(
        self,
        timeout: float = _DEFAULT_TIMEOUT_S,
        run_path: str = _DEFAULT_RUN_PATH,
    ) -> None:
        self._timeout = timeout
        self._run_path = run_path

    def run_url(self, worker_origin: str) -> str:
        return worker_origin.rstrip("/") + self._run_path

    async def invoke(self, worker_origin: str, flows: list[Flow]) -> list[ObservedFlow]:
        """POST the known flows to the worker and return what it observed.

        Raises:
            WorkerUnavailableError: On transport failure, timeout, non-2xx
                status, undecodable body or unexpected response shape.
        """
        url = self.run_url(worker_origin)
        body = json.dumps(build_run_payload(flows)).encode("utf-8")
        try:
            req = urllib.request.Request(
                url,
                data=body,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                method="POST",
            )
        except ValueError as exc:
            logger.warning("Worker URL %r is invalid: %s", url, exc)
            raise WorkerUnavailableError(f"Worker URL {url!r} is invalid") from exc

        loop = asyncio.get_running_loop()
        raw = await loop.run_in_executor(None, self._send_request, req, self._timeout)

        try:
            decoded = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise WorkerUnavailableError(f"Worker at {url} returned invalid JSON") from exc

        observed = parse_run_response(decoded)
        logger.info("Worker %s reported %d flow(s)", url, len(observed))
        return observed

    @staticmethod
    def _send_request(req: urllib.request.Request, timeout: float) -> bytes:
        """Synchronous HTTP send (runs in executor)."""
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                status = resp.status
                payload = resp.read()
        except urllib.error.HTTPError as exc:
            logger.warning("Worker %s answered HTTP %d", req.full_url, exc.code)
            raise WorkerUnavailableError(
                f"Worker at {req.full_url} answered HTTP {exc.code}"
            ) from exc
        except (urllib.error.URLError, OSError, TimeoutError, ValueError) as exc:
            logger.warning("Worker %s unreachable: %s", req.full_url, exc)
            raise WorkerUnavailableError(f"Worker at {req.full_url} is unreachable") from exc
        except http.client.HTTPException as exc:
            # Not an HTTP response at all (bad status line, truncated headers)
            logger.warning("Worker %s sent a malformed response: %r", req.full_url, exc)
            raise WorkerUnavailableError(
                f"Worker at {req.full_url} sent a malformed response"
            ) from exc

        if not 200 <= status < 300:
            raise WorkerUnavailableError(f"Worker at {req.full_url} answered HTTP {status}")
        return payload
