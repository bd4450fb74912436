"""Run events and webhook delivery."""

from snapcheck.notify.events import EventType, RunEvent, RunEventEmitter
from snapcheck.notify.webhooks import WebhookNotifier

__all__ = [
    "EventType",
    "RunEvent",
    "RunEventEmitter",
    "WebhookNotifier",
]
