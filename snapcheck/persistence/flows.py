"""Flow store.

Flows are keyed by name within a checklist; the name, not the row id,
is what the reconciliation engine merges on.
"""

from __future__ import annotations

import logging

import aiosqlite

from snapcheck.errors import ConflictError
from snapcheck.schemas.run import Flow

logger = logging.getLogger(__name__)


def _row_to_flow(row: aiosqlite.Row) -> Flow:
    return Flow(id=row["id"], checklist_id=row["checklist_id"], name=row["name"])


class FlowStore:
    """Persistent flow store backed by SQLite."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def create(self, checklist_id: int, name: str) -> Flow:
        """Insert a new flow.

        Raises:
            ConflictError: If the checklist already has a flow with this name.
        """
        try:
            async with self._db.execute(
                "INSERT INTO flows (checklist_id, name) VALUES (?, ?)",
                (checklist_id, name),
            ) as cursor:
                flow_id = cursor.lastrowid
        except aiosqlite.IntegrityError as exc:
            raise ConflictError(f"Flow {name!r} already exists in checklist {checklist_id}") from exc
        await self._db.commit()
        return Flow(id=flow_id, checklist_id=checklist_id, name=name)

    async def create_or_get(self, checklist_id: int, name: str) -> Flow:
        """Return the flow named ``name``, creating it if absent.

        Uses a conditional insert followed by a re-read, so two runs
        racing to create the same flow end up sharing one row.
        """
        async with self._db.execute(
            "INSERT INTO flows (checklist_id, name) VALUES (?, ?)"
            " ON CONFLICT (checklist_id, name) DO NOTHING",
            (checklist_id, name),
        ) as cursor:
            created = cursor.rowcount > 0
        await self._db.commit()

        flow = await self.find_by_name(checklist_id, name)
        if flow is None:
            # Only possible if the checklist was deleted concurrently
            raise ConflictError(f"Flow {name!r} vanished from checklist {checklist_id}")
        if created:
            logger.info("Created flow %r (id=%d) in checklist %d", name, flow.id, checklist_id)
        return flow

    async def find_by_name(self, checklist_id: int, name: str) -> Flow | None:
        async with self._db.execute(
            "SELECT * FROM flows WHERE checklist_id = ? AND name = ?",
            (checklist_id, name),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_flow(row) if row else None

    async def find_all_by_checklist(self, checklist_id: int) -> list[Flow]:
        """All flows of a checklist, in creation order."""
        async with self._db.execute(
            "SELECT * FROM flows WHERE checklist_id = ? ORDER BY id",
            (checklist_id,),
        ) as cursor:
            return [_row_to_flow(row) for row in await cursor.fetchall()]
