"""Checklist run engine: worker client, reconciliation and orchestration."""

from snapcheck.run.reconciler import ReconciliationEngine, disambiguate, snapshots_match
from snapcheck.run.runner import ChecklistRunner
from snapcheck.run.worker_client import WorkerClient

__all__ = [
    "ChecklistRunner",
    "ReconciliationEngine",
    "WorkerClient",
    "disambiguate",
    "snapshots_match",
]
