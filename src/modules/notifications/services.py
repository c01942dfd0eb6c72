"""Notification intents and their delivery.

``NotificationService.notify`` runs inside the caller's transaction: it
only writes ``OutboxEvent`` rows (topic ``notifications``), one per
distinct recipient, and registers an ``on_commit`` hook that enqueues the
Celery delivery task.  Nothing here ever raises into a state transition:
a rolled-back transition takes its intents with it, a committed one keeps
them until they are delivered or exhaust their retries.

``NotificationDispatcher`` is the worker side: render, send through
``django.core.mail``, mark the intent published or failed.
"""

from __future__ import annotations

from functools import partial
from typing import Any, Iterable, List, Mapping, Optional

import structlog
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.db import transaction

from modules.core.models import EventStatus, OutboxEvent, OutboxTopic
from modules.notifications.email_templates import (
    EmailTemplateRegistry,
    default_registry,
)
from shared.serialization import to_json_safe

logger = structlog.get_logger(__name__)


def unique_recipients(
    recipients: Iterable[Optional[str]],
    exclude: Iterable[Optional[str]] = (),
) -> List[str]:
    """Drop blanks, case-insensitive duplicates and excluded addresses; keep order."""
    excluded = {e.strip().lower() for e in exclude if e}
    seen: set[str] = set()
    result: List[str] = []
    for address in recipients:
        if not address:
            continue
        key = address.strip().lower()
        if key in excluded or key in seen:
            continue
        seen.add(key)
        result.append(address.strip())
    return result


class NotificationService:
    """Records notification intents in the transactional outbox."""

    def __init__(self, registry: Optional[EmailTemplateRegistry] = None) -> None:
        self._registry = registry or default_registry()

    def notify(
        self,
        template: str,
        recipients: Iterable[Optional[str]],
        context: Mapping[str, Any],
        aggregate_id: Any,
    ) -> List[OutboxEvent]:
        log = logger.bind(template=template, aggregate_id=str(aggregate_id))

        if template not in self._registry:
            log.error("notification.unknown_template")
            return []

        addresses = unique_recipients(recipients)
        if not addresses:
            log.info("notification.no_recipients")
            return []

        payload_context = to_json_safe(dict(context))
        events = [
            OutboxEvent.objects.create(
                event_type=template,
                aggregate_id=str(aggregate_id),
                topic=OutboxTopic.NOTIFICATIONS,
                payload={"to": address, "template": template, "context": payload_context},
            )
            for address in addresses
        ]
        for event in events:
            transaction.on_commit(partial(_enqueue_delivery, str(event.id)))

        log.info("notification.queued", recipient_count=len(events))
        return events


def _enqueue_delivery(event_id: str) -> None:
    from modules.notifications.tasks import deliver_notification

    try:
        deliver_notification.delay(event_id)
    except Exception:
        # the periodic sweeper picks the intent up later
        logger.warning("notification.enqueue_failed", event_id=event_id, exc_info=True)


class NotificationDispatcher:
    """Delivers outbox intents by email."""

    def __init__(
        self,
        registry: Optional[EmailTemplateRegistry] = None,
        max_retries: Optional[int] = None,
    ) -> None:
        self._registry = registry or default_registry()
        self._max_retries = (
            max_retries if max_retries is not None else settings.NOTIFICATION_MAX_RETRIES
        )

    def deliver(self, event_id: str) -> bool:
        """Send one intent.  Returns ``True`` once it is published."""
        event = OutboxEvent.objects.filter(
            id=event_id, topic=OutboxTopic.NOTIFICATIONS
        ).first()
        if event is None:
            logger.warning("notification.missing", event_id=event_id)
            return False
        if event.status == EventStatus.PUBLISHED:
            return True
        if event.retry_count >= self._max_retries:
            logger.warning(
                "notification.retries_exhausted",
                event_id=event_id,
                retry_count=event.retry_count,
            )
            return False
        return self._send(event)

    def dispatch_pending(self, limit: int = 100) -> int:
        """Retry every deliverable intent, oldest first.  Returns how many were sent."""
        events = list(
            OutboxEvent.objects.deliverable(OutboxTopic.NOTIFICATIONS, self._max_retries)[
                :limit
            ]
        )
        sent = sum(1 for event in events if self._send(event))
        logger.info(
            "notification.sweep_completed",
            attempted=len(events),
            sent=sent,
        )
        return sent

    def _send(self, event: OutboxEvent) -> bool:
        payload = event.payload or {}
        log = logger.bind(
            event_id=str(event.id),
            template=event.event_type,
            aggregate_id=event.aggregate_id,
        )
        try:
            rendered = self._registry.render(payload["template"], payload.get("context") or {})
            message = EmailMultiAlternatives(
                subject=rendered.subject,
                body=rendered.text,
                from_email=settings.DEFAULT_FROM_EMAIL,
                to=[payload["to"]],
            )
            message.attach_alternative(rendered.html, "text/html")
            message.send(fail_silently=False)
        except Exception as exc:
            event.mark_as_failed(f"{exc.__class__.__name__}: {exc}")
            log.warning(
                "notification.failed",
                retry_count=event.retry_count,
                exc_info=True,
            )
            return False

        event.mark_as_published()
        log.info("notification.sent")
        return True
