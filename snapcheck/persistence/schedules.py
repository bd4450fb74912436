"""Schedule store."""

from __future__ import annotations

import aiosqlite

from snapcheck.schemas.entities import Schedule


def _row_to_schedule(row: aiosqlite.Row) -> Schedule:
    return Schedule(id=row["id"], checklist_id=row["checklist_id"], cron=row["cron"])


class ScheduleStore:
    """Persistent schedule store backed by SQLite.

    Ownership is transitive: a schedule belongs to whoever owns its
    checklist.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def create(self, checklist_id: int, cron: str) -> Schedule:
        async with self._db.execute(
            "INSERT INTO schedules (checklist_id, cron) VALUES (?, ?)",
            (checklist_id, cron),
        ) as cursor:
            schedule_id = cursor.lastrowid
        await self._db.commit()
        return Schedule(id=schedule_id, checklist_id=checklist_id, cron=cron)

    async def update(self, schedule: Schedule) -> None:
        await self._db.execute(
            "UPDATE schedules SET checklist_id = ?, cron = ? WHERE id = ?",
            (schedule.checklist_id, schedule.cron, schedule.id),
        )
        await self._db.commit()

    async def delete(self, schedule_id: int) -> None:
        await self._db.execute("DELETE FROM schedules WHERE id = ?", (schedule_id,))
        await self._db.commit()

    async def find(self, schedule_id: int, api_key_id: int) -> Schedule | None:
        async with self._db.execute(
            "SELECT * FROM schedules WHERE id = ? AND checklist_id IN"
            " (SELECT id FROM checklists WHERE api_key_id = ?)",
            (schedule_id, api_key_id),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_schedule(row) if row else None

    async def find_all(self, api_key_id: int) -> list[Schedule]:
        async with self._db.execute(
            "SELECT * FROM schedules WHERE checklist_id IN"
            " (SELECT id FROM checklists WHERE api_key_id = ?) ORDER BY id",
            (api_key_id,),
        ) as cursor:
            return [_row_to_schedule(row) for row in await cursor.fetchall()]

    async def find_all_active(self) -> list[Schedule]:
        """Every schedule, across all owners."""
        async with self._db.execute("SELECT * FROM schedules ORDER BY id") as cursor:
            return [_row_to_schedule(row) for row in await cursor.fetchall()]
