"""WebhookNotifier: forwards scheduled-run events to owner webhooks.

Registers as a RunEventEmitter listener. For every scheduled-run event
it looks up the checklist owner's webhooks for that event type and POSTs
the event as JSON. Uses only stdlib HTTP. Graceful degradation: if a
webhook is unreachable, the delivery is logged and dropped. A run is
never blocked or failed by a webhook.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request
from collections.abc import Callable
from typing import Any

import aiosqlite

from snapcheck.notify.events import EventType, RunEvent
from snapcheck.persistence.webhooks import WebhookStore
from snapcheck.schemas.entities import WebhookEventType

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_S = 5.0

# Only these events are ever delivered to webhooks
_WEBHOOK_EVENTS = {
    EventType.SCHEDULED_CHECKLIST_START: WebhookEventType.SCHEDULED_CHECKLIST_START,
    EventType.SCHEDULED_CHECKLIST_END: WebhookEventType.SCHEDULED_CHECKLIST_END,
}


class WebhookNotifier:
    """Delivers scheduled-run events to registered webhooks.

    Usage:
        notifier = WebhookNotifier(db)
        emitter.add_listener(notifier.create_listener())
    """

    def __init__(self, db: aiosqlite.Connection, timeout: float = _DEFAULT_TIMEOUT_S) -> None:
        self._webhooks = WebhookStore(db)
        self._timeout = timeout

    def create_listener(self) -> Callable[[RunEvent], Any]:
        """Return an async event listener callback for RunEventEmitter."""

        async def on_event(event: RunEvent) -> None:
            await self.notify(event)

        return on_event

    async def notify(self, event: RunEvent) -> int:
        """Deliver ``event`` to every matching webhook.

        Returns:
            Number of webhooks that accepted the delivery.
        """
        webhook_event = _WEBHOOK_EVENTS.get(event.type)
        api_key_id = event.data.get("api_key_id")
        if webhook_event is None or api_key_id is None:
            return 0

        webhooks = await self._webhooks.find_by_event(api_key_id, webhook_event)
        if not webhooks:
            return 0

        body = json.dumps({
            "event": webhook_event.value,
            "timestamp": event.timestamp,
            "data": {k: v for k, v in event.data.items() if k != "api_key_id"},
        }).encode("utf-8")

        loop = asyncio.get_running_loop()
        delivered = 0
        for webhook in webhooks:
            req = urllib.request.Request(
                webhook.url,
                data=body,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            ok = await loop.run_in_executor(None, self._send_request, req, self._timeout)
            if ok:
                delivered += 1
            else:
                logger.warning(
                    "Webhook %d (%s) failed for %s", webhook.id, webhook.url, webhook_event,
                )
        logger.debug("Delivered %s to %d/%d webhook(s)", webhook_event, delivered, len(webhooks))
        return delivered

    @staticmethod
    def _send_request(req: urllib.request.Request, timeout: float) -> bool:
        """Synchronous HTTP send (runs in executor)."""
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                resp.read()
            return True
        except (urllib.error.URLError, OSError, TimeoutError):
            return False  # dropped, never retried
