"""
Order notifications — transactional outbox plus a pluggable dispatcher.

Every successful transition writes one notification_events row in the same
transaction as the status change. flush_outbox() later hands pending rows
to the dispatcher:

  delivered → row marked dispatched_at
  failed    → attempts += 1, last_error stored, row stays pending
  exhausted → after NOTIFICATION_MAX_ATTEMPTS failures the row is no longer
              offered to the dispatcher; it stays undispatched

A crash between dispatch and marking re-sends on the next flush, so
delivery is at-least-once; duplicates are acceptable, omissions are not.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from tastesphere.config import settings
from tastesphere.utils.order_states import Actor

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_LIMIT = 100


@dataclass(frozen=True)
class OrderNotification:
    """(orderId, newStatus, recipientRole), as handed to the dispatcher."""

    event_id: int
    order_id: str
    status: str
    recipient_role: str
    note: str = ""
    attempts: int = 0


class NotificationDispatcher(Protocol):
    async def dispatch(self, notification: OrderNotification) -> None:
        ...


class LoggingNotificationDispatcher:
    """Default dispatcher: writes the notification to the log and returns."""

    async def dispatch(self, notification: OrderNotification) -> None:
        logger.info(
            "Notify %s: order %s is now %s",
            notification.recipient_role, notification.order_id, notification.status,
        )


def recipient_role_for(actor: Actor | str) -> str:
    """Seller actions notify the customer, customer actions notify the seller."""
    actor = Actor(actor)
    if actor == Actor.CUSTOMER:
        return "seller"
    return "customer"


async def flush_outbox(
    store: Any,
    dispatcher: NotificationDispatcher,
    limit: int = DEFAULT_FLUSH_LIMIT,
    max_attempts: Optional[int] = None,
) -> int:
    """
    Dispatch pending outbox rows; returns how many were delivered.
    Rows that have failed max_attempts times are no longer offered, but stay
    undispatched so the readiness probe keeps counting them.
    """
    if max_attempts is None:
        max_attempts = settings.notification_max_attempts
    pending = await store.pending_notifications(limit=limit, max_attempts=max_attempts)
    delivered = 0
    for notification in pending:
        try:
            await dispatcher.dispatch(notification)
        except Exception as exc:
            if notification.attempts + 1 >= max_attempts:
                logger.error(
                    "Notification %d for order %s failed %d times, giving up: %s",
                    notification.event_id, notification.order_id, max_attempts, exc,
                )
            else:
                logger.warning(
                    "Notification %d for order %s failed, will retry: %s",
                    notification.event_id, notification.order_id, exc,
                )
            await store.mark_notification_failed(notification.event_id, str(exc))
            continue
        await store.mark_notification_dispatched(notification.event_id)
        delivered += 1

    if pending:
        logger.debug("Outbox flush: %d/%d delivered", delivered, len(pending))
    return delivered
