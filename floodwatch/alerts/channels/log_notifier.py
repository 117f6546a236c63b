"""
log_notifier.py — Reference notification channel.

Delivery mechanism:
    • Logs the formatted alert text and keeps the most recent messages in
      a bounded in-memory outbox
    • Returns a simulated ``BroadcastResult`` sized from the alert's
      notified-user estimate

Real channels (Telegram, WhatsApp, web push...) live outside this package
and only have to satisfy the ``Notifier`` protocol. Whatever the channel,
the engine calls it through ``broadcast_safely`` so a failing channel is
logged and never blocks alert-state progress. Broadcasts are not retried.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Optional

from floodwatch.alerts.collaborators import BroadcastResult, Notifier
from floodwatch.alerts.models import Alert

logger = logging.getLogger(__name__)

AUDIENCE_NEARBY = "nearby_residents"
AUDIENCE_FOLLOW_UP = "follow_up"

OUTBOX_MAXLEN = 500


@dataclass
class OutboxEntry:
    """One message handed to the channel."""
    alert_id: str
    area_name: str
    audience: str
    message: str
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class LogNotifier:
    """Simulated channel: logs and records every broadcast."""

    def __init__(self, maxlen: int = OUTBOX_MAXLEN) -> None:
        self.outbox: Deque[OutboxEntry] = deque(maxlen=maxlen)

    def broadcast(
        self, alert: Alert, audience: str, message: Optional[str] = None,
    ) -> BroadcastResult:
        text = message or f"Flood alert for {alert.area_name}"
        self.outbox.append(OutboxEntry(
            alert_id=alert.id,
            area_name=alert.area_name,
            audience=audience,
            message=text,
        ))

        logger.info(
            "[NOTIFY:%s] Alert %s (%s): %s",
            audience, alert.id, alert.area_name, text.splitlines()[0],
            extra={"alert_id": alert.id, "area_name": alert.area_name},
        )
        return BroadcastResult(sent_count=max(alert.notified_users, 1))


def broadcast_safely(
    notifier: Notifier,
    alert: Alert,
    audience: str,
    message: Optional[str] = None,
) -> BroadcastResult:
    """Call a notifier, converting any failure into a logged error result."""
    try:
        result = notifier.broadcast(alert, audience, message)
    except Exception as exc:
        logger.error(
            "Broadcast for alert %s failed: %s", alert.id, exc,
            extra={"alert_id": alert.id, "area_name": alert.area_name},
        )
        return BroadcastResult(sent_count=0, errors=[str(exc)])

    for error in result.errors:
        logger.warning(
            "Broadcast for alert %s reported error: %s", alert.id, error,
            extra={"alert_id": alert.id},
        )
    return result
