"""Snapshot store.

Owns the persisted expected values, keyed by ``(flow_id, name)``.
Snapshots are only ever inserted: neither runs nor seeding overwrite a
stored value.
"""

from __future__ import annotations

import logging

import aiosqlite

from snapcheck.errors import ConflictError
from snapcheck.persistence.flows import FlowStore
from snapcheck.schemas.entities import Snapshot

logger = logging.getLogger(__name__)


def _row_to_snapshot(row: aiosqlite.Row) -> Snapshot:
    return Snapshot(
        id=row["id"],
        flow_id=row["flow_id"],
        name=row["name"],
        value=row["value"],
    )


class SnapshotStore:
    """Persistent snapshot store backed by SQLite."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        self._flows = FlowStore(db)

    async def create(self, flow_id: int, name: str, value: str) -> Snapshot:
        """Insert a new snapshot.

        Raises:
            ConflictError: If ``(flow_id, name)`` already exists.
        """
        try:
            async with self._db.execute(
                "INSERT INTO snapshots (flow_id, name, value) VALUES (?, ?, ?)",
                (flow_id, name, value),
            ) as cursor:
                snapshot_id = cursor.lastrowid
        except aiosqlite.IntegrityError as exc:
            raise ConflictError(f"Snapshot {name!r} already exists in flow {flow_id}") from exc
        await self._db.commit()
        return Snapshot(id=snapshot_id, flow_id=flow_id, name=name, value=value)

    async def create_if_absent(
        self, flow_id: int, name: str, value: str,
    ) -> tuple[Snapshot, bool]:
        """Insert a snapshot unless ``(flow_id, name)`` already exists.

        Returns:
            The materialised snapshot (ours, or the one that won a
            concurrent insert) and whether this call created it.
        """
        async with self._db.execute(
            "INSERT INTO snapshots (flow_id, name, value) VALUES (?, ?, ?)"
            " ON CONFLICT (flow_id, name) DO NOTHING",
            (flow_id, name, value),
        ) as cursor:
            created = cursor.rowcount > 0
            snapshot_id = cursor.lastrowid
        await self._db.commit()

        if created:
            return Snapshot(id=snapshot_id, flow_id=flow_id, name=name, value=value), True

        existing = await self.find(flow_id, name)
        if existing is None:
            raise ConflictError(f"Snapshot {name!r} vanished from flow {flow_id}")
        logger.debug("Snapshot %r already present in flow %d", name, flow_id)
        return existing, False

    async def find(self, flow_id: int, name: str) -> Snapshot | None:
        async with self._db.execute(
            "SELECT * FROM snapshots WHERE flow_id = ? AND name = ?",
            (flow_id, name),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_snapshot(row) if row else None

    async def find_all_by_flow(self, flow_id: int) -> list[Snapshot]:
        """All snapshots of a flow, in insertion order."""
        async with self._db.execute(
            "SELECT * FROM snapshots WHERE flow_id = ? ORDER BY id",
            (flow_id,),
        ) as cursor:
            return [_row_to_snapshot(row) for row in await cursor.fetchall()]

    async def upsert_if_absent(
        self, checklist_id: int, flow_name: str, name: str, value: str,
    ) -> None:
        """Seed a snapshot by flow name; an existing value is left untouched.

        An unknown flow name creates the flow, so snapshots can be seeded
        before the first run.
        """
        flow = await self._flows.create_or_get(checklist_id, flow_name)
        _, created = await self.create_if_absent(flow.id, name, value)
        if created:
            logger.info("Seeded snapshot %r in flow %r", name, flow_name)

    async def count_by_checklist(self, checklist_id: int) -> int:
        async with self._db.execute(
            "SELECT COUNT(*) FROM snapshots WHERE flow_id IN"
            " (SELECT id FROM flows WHERE checklist_id = ?)",
            (checklist_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0
