"""Persisted entity schemas.

Pydantic mirrors of the rows stored by the persistence layer: API keys,
checklists, snapshots, schedules and webhooks.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from snapcheck.schemas.run import Assertion


class ApiKey(BaseModel):
    """An API key. Only its hash is ever stored."""

    id: int
    key_hash: str = Field(description="SHA-256 hex digest of the raw key")
    key_prefix: str = Field(default="", description="Displayable prefix of the raw key")
    created_at: str = Field(default="", description="ISO timestamp of creation")


class Checklist(BaseModel):
    """One test target: a worker endpoint owned by an API key."""

    id: int
    api_key_id: int
    worker_origin: str = Field(description="Base URL of the worker under test")

    def to_response(self) -> dict:
        return {"id": self.id, "workerOrigin": self.worker_origin}


class Snapshot(BaseModel):
    """The stored expected value for one (flow, assertion name) pair."""

    id: int
    flow_id: int
    name: str
    value: str

    def to_assertion(self) -> Assertion:
        """Project the snapshot as a known assertion carrying its stored value."""
        return Assertion(id=self.id, name=self.name, snapshot=self.value)


class Schedule(BaseModel):
    """A cron expression that triggers a checklist run."""

    id: int
    checklist_id: int
    cron: str = Field(description="Five-field cron expression")

    def to_response(self) -> dict:
        return {"id": self.id, "checklistId": self.checklist_id, "cron": self.cron}


class WebhookEventType(StrEnum):
    """Scheduled-run events a webhook can subscribe to."""

    SCHEDULED_CHECKLIST_START = "SCHEDULED_CHECKLIST_START"
    SCHEDULED_CHECKLIST_END = "SCHEDULED_CHECKLIST_END"


class Webhook(BaseModel):
    """An owner-registered URL notified on scheduled-run events."""

    id: int
    api_key_id: int
    event_type: WebhookEventType
    url: str

    def to_response(self) -> dict:
        return {"id": self.id, "eventType": self.event_type.value, "url": self.url}
