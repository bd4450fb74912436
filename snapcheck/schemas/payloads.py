"""Inbound request payload schemas.

Field names follow the public wire format (camelCase), so these models
are validated directly from request bodies.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from snapcheck.schemas.entities import WebhookEventType


class _StrictPayload(BaseModel):
    model_config = ConfigDict(strict=True)


class ChecklistPayload(_StrictPayload):
    """Body of checklist create/update requests."""

    workerOrigin: str = Field(min_length=1, description="Base URL of the worker")  # noqa: N815


class SnapshotSeed(_StrictPayload):
    name: str
    value: str


class FlowSnapshotsSeed(_StrictPayload):
    name: str
    snapshots: list[SnapshotSeed]


class SnapshotsUpdatePayload(_StrictPayload):
    """Body of the snapshot seeding request."""

    flows: list[FlowSnapshotsSeed]


class SchedulePayload(_StrictPayload):
    """Body of schedule create/update requests."""

    checklistId: int  # noqa: N815
    cron: str = Field(min_length=1)


class WebhookPayload(BaseModel):
    """Body of webhook create requests."""

    eventType: WebhookEventType  # noqa: N815
    url: str = Field(min_length=1)


class WorkerRunAssertion(BaseModel):
    name: str = Field(min_length=1)
    snapshot: str | None = None


class WorkerRunFlow(BaseModel):
    name: str = Field(min_length=1)
    assertions: list[WorkerRunAssertion]


class WorkerRunPayload(BaseModel):
    """Body a worker receives on ``POST /v0/run``."""

    flows: list[WorkerRunFlow]
