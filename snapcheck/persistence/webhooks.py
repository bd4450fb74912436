"""Webhook store."""

from __future__ import annotations

import aiosqlite

from snapcheck.schemas.entities import Webhook, WebhookEventType


def _row_to_webhook(row: aiosqlite.Row) -> Webhook:
    return Webhook(
        id=row["id"],
        api_key_id=row["api_key_id"],
        event_type=row["event_type"],
        url=row["url"],
    )


class WebhookStore:
    """Persistent webhook store backed by SQLite."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def create(
        self, api_key_id: int, event_type: WebhookEventType, url: str,
    ) -> Webhook:
        async with self._db.execute(
            "INSERT INTO webhooks (api_key_id, event_type, url) VALUES (?, ?, ?)",
            (api_key_id, event_type.value, url),
        ) as cursor:
            webhook_id = cursor.lastrowid
        await self._db.commit()
        return Webhook(id=webhook_id, api_key_id=api_key_id, event_type=event_type, url=url)

    async def delete(self, webhook_id: int) -> None:
        await self._db.execute("DELETE FROM webhooks WHERE id = ?", (webhook_id,))
        await self._db.commit()

    async def find(self, webhook_id: int, api_key_id: int) -> Webhook | None:
        async with self._db.execute(
            "SELECT * FROM webhooks WHERE id = ? AND api_key_id = ?",
            (webhook_id, api_key_id),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_webhook(row) if row else None

    async def find_all(self, api_key_id: int) -> list[Webhook]:
        async with self._db.execute(
            "SELECT * FROM webhooks WHERE api_key_id = ? ORDER BY id",
            (api_key_id,),
        ) as cursor:
            return [_row_to_webhook(row) for row in await cursor.fetchall()]

    async def find_by_event(
        self, api_key_id: int, event_type: WebhookEventType,
    ) -> list[Webhook]:
        """Webhooks of one owner subscribed to ``event_type``."""
        async with self._db.execute(
            "SELECT * FROM webhooks WHERE api_key_id = ? AND event_type = ? ORDER BY id",
            (api_key_id, event_type.value),
        ) as cursor:
            return [_row_to_webhook(row) for row in await cursor.fetchall()]
