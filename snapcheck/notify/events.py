"""Run event emitter.

Emits structured events during checklist runs. The webhook notifier
subscribes to the scheduled-run events and the CLI prints the
checklist-run events as progress lines.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from snapcheck.schemas.entities import WebhookEventType

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Types of run events."""

    CHECKLIST_RUN_STARTED = "checklist_run_started"
    CHECKLIST_RUN_COMPLETED = "checklist_run_completed"
    CHECKLIST_RUN_FAILED = "checklist_run_failed"
    SCHEDULED_CHECKLIST_START = WebhookEventType.SCHEDULED_CHECKLIST_START.value
    SCHEDULED_CHECKLIST_END = WebhookEventType.SCHEDULED_CHECKLIST_END.value


class RunEvent(BaseModel):
    """A single run event."""

    type: EventType = Field(description="Event type")
    timestamp: float = Field(
        default_factory=time.time,
        description="Unix timestamp when the event occurred",
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Event payload, varies by event type",
    )


# Type alias for event listener callbacks
EventListener = Callable[[RunEvent], Any]


class RunEventEmitter:
    """Broadcasts run events to registered listeners.

    Listeners can be sync or async callables. The emitter is passed into
    the runner and scheduler as an optional dependency; without one, no
    events are built at all.
    """

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def add_listener(self, listener: EventListener) -> None:
        """Register a listener to receive run events."""
        self._listeners.append(listener)

    async def emit(self, event_type: EventType, **data: Any) -> None:
        """Emit a run event to all registered listeners.

        Sync listeners are called directly; async listeners are awaited.
        Listener exceptions are logged but never propagate.
        """
        event = RunEvent(type=event_type, data=data)

        for listener in self._listeners:
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Event listener error for %s", event_type)
