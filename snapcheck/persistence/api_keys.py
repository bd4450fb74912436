"""API key store.

Raw keys are generated once, returned to the caller, and only their
SHA-256 digest is persisted.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import UTC, datetime

import aiosqlite

from snapcheck.schemas.entities import ApiKey

logger = logging.getLogger(__name__)

_KEY_PREFIX = "sk_snap_"


def hash_key(key: str) -> str:
    """SHA-256 hash of an API key for lookup."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class ApiKeyStore:
    """Persistent API key store backed by SQLite."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def create(self) -> tuple[ApiKey, str]:
        """Generate and store a new API key.

        Returns:
            The stored ApiKey and the raw key, which is never stored.
        """
        raw_key = f"{_KEY_PREFIX}{secrets.token_hex(16)}"
        key_prefix = raw_key[:12] + "..."
        created_at = datetime.now(UTC).isoformat()

        async with self._db.execute(
            "INSERT INTO api_keys (key_hash, key_prefix, created_at) VALUES (?, ?, ?)",
            (hash_key(raw_key), key_prefix, created_at),
        ) as cursor:
            key_id = cursor.lastrowid
        await self._db.commit()

        logger.info("Created API key %s (id=%d)", key_prefix, key_id)
        api_key = ApiKey(
            id=key_id,
            key_hash=hash_key(raw_key),
            key_prefix=key_prefix,
            created_at=created_at,
        )
        return api_key, raw_key

    async def find_by_key(self, key: str) -> ApiKey | None:
        """Look up an API key by its raw value."""
        if not key:
            return None
        async with self._db.execute(
            "SELECT * FROM api_keys WHERE key_hash = ?",
            (hash_key(key),),
        ) as cursor:
            row = await cursor.fetchone()
        if not row:
            return None
        return ApiKey(
            id=row["id"],
            key_hash=row["key_hash"],
            key_prefix=row["key_prefix"],
            created_at=row["created_at"],
        )

    async def delete(self, key_id: int) -> None:
        """Delete an API key with its checklists and webhooks (cascade)."""
        await self._db.execute("DELETE FROM api_keys WHERE id = ?", (key_id,))
        await self._db.commit()
        logger.info("Deleted API key %d", key_id)
