"""Celery tasks delivering notification intents from the outbox."""

import structlog
from celery import shared_task

from modules.notifications.services import NotificationDispatcher

logger = structlog.get_logger(__name__)


@shared_task(name="notifications.deliver")
def deliver_notification(event_id: str) -> bool:
    """Deliver one intent right after the transition commits.

    Failures are recorded on the intent; the periodic sweeper retries them.
    """
    return NotificationDispatcher().deliver(event_id)


@shared_task(name="notifications.dispatch_pending")
def dispatch_pending_notifications(limit: int = 100) -> dict:
    sent = NotificationDispatcher().dispatch_pending(limit=limit)
    logger.info("notification.dispatch_pending.executed", sent=sent)
    return {"status": "ok", "sent": sent}
