"""snapcheck schema definitions.

Pydantic v2 models for persisted entities, run results, request payloads
and manager settings.
"""

from snapcheck.schemas.entities import (
    ApiKey,
    Checklist,
    Schedule,
    Snapshot,
    Webhook,
    WebhookEventType,
)
from snapcheck.schemas.run import (
    Assertion,
    AssertionResult,
    Flow,
    FlowRunSummary,
    ObservedAssertion,
    ObservedFlow,
)
from snapcheck.schemas.settings import ManagerSettings

__all__ = [
    "ApiKey",
    "Assertion",
    "AssertionResult",
    "Checklist",
    "Flow",
    "FlowRunSummary",
    "ManagerSettings",
    "ObservedAssertion",
    "ObservedFlow",
    "Schedule",
    "Snapshot",
    "Webhook",
    "WebhookEventType",
]
