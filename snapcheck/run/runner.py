"""Checklist run orchestrator.

Ties one checklist run together: load the persisted flows and their
snapshots, ask the worker to re-execute them, then reconcile the
observations. Nothing is written before the worker has answered, so a
failed worker call leaves the stored state exactly as it was.
"""

from __future__ import annotations

import logging

import aiosqlite

from snapcheck.errors import WorkerUnavailableError
from snapcheck.notify.events import EventType, RunEventEmitter
from snapcheck.persistence.flows import FlowStore
from snapcheck.persistence.snapshots import SnapshotStore
from snapcheck.run.reconciler import ReconciliationEngine
from snapcheck.run.worker_client import WorkerClient
from snapcheck.schemas.entities import Checklist
from snapcheck.schemas.run import Flow, FlowRunSummary

logger = logging.getLogger(__name__)


class ChecklistRunner:
    """Runs checklists end-to-end.

    The caller is responsible for resolving the checklist and checking
    ownership before calling ``run``.
    """

    def __init__(
        self,
        db: aiosqlite.Connection,
        worker_client: WorkerClient,
        emitter: RunEventEmitter | None = None,
    ) -> None:
        self._flows = FlowStore(db)
        self._snapshots = SnapshotStore(db)
        self._engine = ReconciliationEngine(db)
        self._worker = worker_client
        self._emitter = emitter

    async def load_flows(self, checklist_id: int) -> list[Flow]:
        """Persisted flows of a checklist, each with its snapshots as assertions."""
        flows = await self._flows.find_all_by_checklist(checklist_id)
        for flow in flows:
            snapshots = await self._snapshots.find_all_by_flow(flow.id)
            flow.assertions = [s.to_assertion() for s in snapshots]
        return flows

    async def run(self, checklist: Checklist) -> list[Flow]:
        """Run a checklist and return its annotated flows.

        Raises:
            WorkerUnavailableError: If the worker call fails; propagated
                unchanged, with no snapshot written.
        """
        known = await self.load_flows(checklist.id)
        await self._emit(
            EventType.CHECKLIST_RUN_STARTED,
            checklist_id=checklist.id,
            worker_origin=checklist.worker_origin,
        )

        try:
            observed = await self._worker.invoke(checklist.worker_origin, known)
        except WorkerUnavailableError as exc:
            logger.warning("Run of checklist %d failed: %s", checklist.id, exc)
            await self._emit(
                EventType.CHECKLIST_RUN_FAILED,
                checklist_id=checklist.id,
                error=exc.to_dict(),
            )
            raise

        flows = await self._engine.reconcile(checklist.id, known, observed)

        total = FlowRunSummary.total([f.summary for f in flows])
        logger.info(
            "Checklist %d run: %d flow(s), %d match, %d miss, %d new",
            checklist.id,
            len(flows),
            total.match,
            total.miss,
            total.new,
        )
        await self._emit(
            EventType.CHECKLIST_RUN_COMPLETED,
            checklist_id=checklist.id,
            summary=total.model_dump(),
        )
        return flows

    async def _emit(self, event_type: EventType, **data) -> None:
        if self._emitter is not None:
            await self._emitter.emit(event_type, **data)
