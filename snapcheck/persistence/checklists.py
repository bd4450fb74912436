"""Checklist store."""

from __future__ import annotations

import logging

import aiosqlite

from snapcheck.schemas.entities import Checklist

logger = logging.getLogger(__name__)


def _row_to_checklist(row: aiosqlite.Row) -> Checklist:
    return Checklist(
        id=row["id"],
        api_key_id=row["api_key_id"],
        worker_origin=row["worker_origin"],
    )


class ChecklistStore:
    """Persistent checklist store backed by SQLite.

    Lookups that take an ``api_key_id`` only return checklists owned by
    that key, so handlers can treat "not yours" exactly like "missing".
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def create(self, api_key_id: int, worker_origin: str) -> Checklist:
        async with self._db.execute(
            "INSERT INTO checklists (api_key_id, worker_origin) VALUES (?, ?)",
            (api_key_id, worker_origin),
        ) as cursor:
            checklist_id = cursor.lastrowid
        await self._db.commit()
        logger.info("Created checklist %d -> %s", checklist_id, worker_origin)
        return Checklist(id=checklist_id, api_key_id=api_key_id, worker_origin=worker_origin)

    async def update(self, checklist: Checklist) -> None:
        """Persist a checklist's worker origin."""
        await self._db.execute(
            "UPDATE checklists SET worker_origin = ? WHERE id = ?",
            (checklist.worker_origin, checklist.id),
        )
        await self._db.commit()

    async def delete(self, checklist_id: int) -> None:
        """Delete a checklist with its flows, snapshots and schedules (cascade)."""
        await self._db.execute("DELETE FROM checklists WHERE id = ?", (checklist_id,))
        await self._db.commit()
        logger.info("Deleted checklist %d", checklist_id)

    async def find(self, checklist_id: int, api_key_id: int) -> Checklist | None:
        async with self._db.execute(
            "SELECT * FROM checklists WHERE id = ? AND api_key_id = ?",
            (checklist_id, api_key_id),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_checklist(row) if row else None

    async def find_by_id(self, checklist_id: int) -> Checklist | None:
        """Look up a checklist regardless of owner (scheduler use only)."""
        async with self._db.execute(
            "SELECT * FROM checklists WHERE id = ?",
            (checklist_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_checklist(row) if row else None

    async def find_all(self, api_key_id: int) -> list[Checklist]:
        async with self._db.execute(
            "SELECT * FROM checklists WHERE api_key_id = ? ORDER BY id",
            (api_key_id,),
        ) as cursor:
            return [_row_to_checklist(row) for row in await cursor.fetchall()]
