"""snapcheck persistence layer.

Provides SQLite-backed stores for API keys, checklists, flows,
snapshots, schedules and webhooks.
"""

from snapcheck.persistence.api_keys import ApiKeyStore
from snapcheck.persistence.checklists import ChecklistStore
from snapcheck.persistence.database import close_db, init_db
from snapcheck.persistence.flows import FlowStore
from snapcheck.persistence.schedules import ScheduleStore
from snapcheck.persistence.snapshots import SnapshotStore
from snapcheck.persistence.webhooks import WebhookStore

__all__ = [
    "ApiKeyStore",
    "ChecklistStore",
    "FlowStore",
    "ScheduleStore",
    "SnapshotStore",
    "WebhookStore",
    "close_db",
    "init_db",
]
