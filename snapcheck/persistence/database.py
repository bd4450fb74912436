"""SQLite database layer for the manager.

Manages the SQLite database connection and schema creation. Uses
aiosqlite for async access with WAL mode for concurrent read
performance. The unique constraints on ``flows(checklist_id, name)``
and ``snapshots(flow_id, name)`` are what keep concurrent runs of one
checklist from materialising the same row twice.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

_MEMORY = ":memory:"

# SQL schema for the manager database
_SCHEMA = """
CREATE TABLE IF NOT EXISTS api_keys (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    key_hash    TEXT NOT NULL UNIQUE,
    key_prefix  TEXT NOT NULL DEFAULT '',
    created_at  TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS checklists (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    api_key_id     INTEGER NOT NULL REFERENCES api_keys(id) ON DELETE CASCADE,
    worker_origin  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS flows (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    checklist_id  INTEGER NOT NULL REFERENCES checklists(id) ON DELETE CASCADE,
    name          TEXT NOT NULL,
    UNIQUE (checklist_id, name)
);

CREATE TABLE IF NOT EXISTS snapshots (
    id       INTEGER PRIMARY KEY AUTOINCREMENT,
    flow_id  INTEGER NOT NULL REFERENCES flows(id) ON DELETE CASCADE,
    name     TEXT NOT NULL,
    value    TEXT NOT NULL,
    UNIQUE (flow_id, name)
);

CREATE TABLE IF NOT EXISTS schedules (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    checklist_id  INTEGER NOT NULL REFERENCES checklists(id) ON DELETE CASCADE,
    cron          TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS webhooks (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    api_key_id  INTEGER NOT NULL REFERENCES api_keys(id) ON DELETE CASCADE,
    event_type  TEXT NOT NULL,
    url         TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_checklists_api_key ON checklists(api_key_id);
CREATE INDEX IF NOT EXISTS idx_schedules_checklist ON schedules(checklist_id);
CREATE INDEX IF NOT EXISTS idx_webhooks_api_key ON webhooks(api_key_id, event_type);
"""


async def init_db(db_path: str) -> aiosqlite.Connection:
    """Initialize the database connection and create tables if needed.

    Creates parent directories if they don't exist, enables WAL mode
    and foreign keys, then runs the schema DDL. Rows are returned as
    ``aiosqlite.Row`` so columns can be read by name.

    Args:
        db_path: Path to the SQLite database file. Supports ~ expansion
            and ``:memory:``.

    Returns:
        An open aiosqlite connection ready for use.
    """
    if db_path == _MEMORY:
        target = _MEMORY
    else:
        resolved = Path(db_path).expanduser()
        resolved.parent.mkdir(parents=True, exist_ok=True)
        target = str(resolved)

    db = await aiosqlite.connect(target)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA foreign_keys=ON")
    await db.executescript(_SCHEMA)
    await db.commit()

    logger.info("Manager database initialized at %s", target)
    return db


async def close_db(db: aiosqlite.Connection) -> None:
    """Close the database connection."""
    await db.close()
