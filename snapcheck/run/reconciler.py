"""Snapshot reconciliation engine.

Merges a worker's freshly observed flows with the checklist's persisted
flows and snapshots. Each observed assertion is classified NEW, MATCH or
MISS, first-seen values are committed as snapshots, and every reported
flow gets a per-flow summary.

Repeated assertion names within one flow are disambiguated by position
in the worker's response: the first occurrence keeps the bare name, the
following ones become ``name[2]``, ``name[3]``, and so on.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import aiosqlite

from snapcheck.persistence.flows import FlowStore
from snapcheck.persistence.snapshots import SnapshotStore
from snapcheck.schemas.run import (
    Assertion,
    AssertionResult,
    Flow,
    FlowRunSummary,
    ObservedFlow,
)

logger = logging.getLogger(__name__)


def disambiguate(name: str, seen: dict[str, int]) -> str:
    """Return the effective name for the next occurrence of ``name``.

    ``seen`` counts occurrences per raw name for one flow-processing pass
    and is updated in place.
    """
    count = seen.get(name, 0)
    seen[name] = count + 1
    if count > 0:
        return f"{name}[{count + 1}]"
    return name


def _structurally_equal(left: Any, right: Any) -> bool:
    """Deep equality of decoded JSON values.

    Objects compare regardless of key order, arrays in order, numbers by
    value. Booleans never equal numbers.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, dict) and isinstance(right, dict):
        if left.keys() != right.keys():
            return False
        return all(_structurally_equal(left[k], right[k]) for k in left)
    if isinstance(left, list) and isinstance(right, list):
        if len(left) != len(right):
            return False
        return all(_structurally_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def snapshots_match(stored: str, observed: str) -> bool:
    """Compare two serialized snapshots as parsed JSON.

    Any parse failure counts as a mismatch.
    """
    try:
        return _structurally_equal(json.loads(stored), json.loads(observed))
    except (TypeError, ValueError, RecursionError):
        return False


class ReconciliationEngine:
    """Classifies a worker's observations against persisted snapshots.

    Holds only request-scoped state: the Flow and Assertion objects it
    returns are a working copy, never the source of truth.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._flows = FlowStore(db)
        self._snapshots = SnapshotStore(db)

    async def reconcile(
        self,
        checklist_id: int,
        known_flows: list[Flow],
        observed_flows: list[ObservedFlow],
    ) -> list[Flow]:
        """Reconcile observed flows and return the annotated run output.

        Args:
            checklist_id: Checklist the flows belong to.
            known_flows: Persisted flows, each carrying its snapshots as
                assertions (in snapshot insertion order).
            observed_flows: The worker's flows, in the order it reported them.

        Returns:
            One output Flow per observed flow, in worker order. Persisted
            flows the worker did not report are not included.
        """
        flows_by_name: dict[str, Flow] = {f.name: f for f in known_flows}
        output: list[Flow] = []

        for observed in observed_flows:
            database_flow = flows_by_name.get(observed.name)
            if database_flow is None:
                database_flow = await self._flows.create_or_get(checklist_id, observed.name)
                flows_by_name[observed.name] = database_flow

            output.append(await self._reconcile_flow(database_flow, observed))

        return output

    async def _reconcile_flow(self, database_flow: Flow, observed: ObservedFlow) -> Flow:
        summary = FlowRunSummary()
        seen: dict[str, int] = {}
        known: dict[str, Assertion] = {a.name: a for a in database_flow.assertions}
        assertions: list[Assertion] = []

        for observed_assertion in observed.assertions:
            name = disambiguate(observed_assertion.name, seen)
            value = observed_assertion.snapshot or ""
            stored = known.get(name)

            expected: str | None = None
            if stored is None:
                result = AssertionResult.NEW
                snapshot, created = await self._snapshots.create_if_absent(
                    database_flow.id, name, value,
                )
                if not created:
                    logger.debug(
                        "Snapshot %r in flow %r was created by a concurrent run",
                        name,
                        database_flow.name,
                    )
                known[name] = snapshot.to_assertion()
            elif snapshots_match(stored.snapshot, value):
                result = AssertionResult.MATCH
            else:
                result = AssertionResult.MISS
                expected = stored.snapshot

            summary.record(result)
            assertions.append(Assertion(
                name=name,
                snapshot=value,
                result=result,
                expected_snapshot=expected,
            ))

        database_flow.assertions = list(known.values())

        logger.info(
            "Flow %r: %d match, %d miss, %d new",
            observed.name,
            summary.match,
            summary.miss,
            summary.new,
        )
        return Flow(
            id=database_flow.id,
            checklist_id=database_flow.checklist_id,
            name=observed.name,
            assertions=assertions,
            summary=summary,
        )
