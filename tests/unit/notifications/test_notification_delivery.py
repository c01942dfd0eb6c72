"""Unit tests for notification intents and their delivery.

Covers:
- Intents are outbox rows written with the transition, one per recipient.
- After commit the delivery task sends the email (eager Celery).
- Delivery failures mark the intent FAILED and the sweeper retries it.
- A failing notification layer never fails the transition.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from modules.core.models import EventStatus, OutboxEvent, OutboxTopic
from modules.notifications.services import (
    NotificationDispatcher,
    NotificationService,
    unique_recipients,
)
from modules.notifications.tasks import dispatch_pending_notifications
from modules.orders.constants import OrderStatus
from modules.orders.dtos import ConfirmPaymentDTO

pytestmark = pytest.mark.unit

CONTEXT = {"order_number": "ORD-1", "customer_name": "Bea", "total_price": "10.00"}


def _intent(to="bea@example.com", template="order_delivered") -> OutboxEvent:
    return OutboxEvent.objects.create(
        event_type=template,
        aggregate_id="order-1",
        topic=OutboxTopic.NOTIFICATIONS,
        payload={"to": to, "template": template, "context": CONTEXT},
    )


class TestUniqueRecipients:
    def test_dedupes_case_insensitively_and_drops_blanks(self):
        assert unique_recipients(["a@x.io", "", None, "A@X.io", "b@x.io"]) == ["a@x.io", "b@x.io"]

    def test_excludes(self):
        assert unique_recipients(["a@x.io", "b@x.io"], exclude=["B@x.io", None]) == ["a@x.io"]


class TestNotificationService:
    def test_writes_one_intent_per_recipient(self):
        events = NotificationService().notify(
            "order_delivered", ["s1@x.io", "s2@x.io", "S1@x.io"], CONTEXT, "order-1"
        )
        assert [e.payload["to"] for e in events] == ["s1@x.io", "s2@x.io"]
        assert all(e.status == EventStatus.PENDING for e in events)
        assert all(e.topic == OutboxTopic.NOTIFICATIONS for e in events)

    def test_unknown_template_records_nothing(self):
        assert NotificationService().notify("nope", ["a@x.io"], CONTEXT, "order-1") == []
        assert not OutboxEvent.objects.exists()

    def test_no_recipients_records_nothing(self):
        assert NotificationService().notify("order_delivered", ["", None], CONTEXT, "order-1") == []

    def test_delivered_after_commit(self, django_capture_on_commit_callbacks, mailoutbox):
        with django_capture_on_commit_callbacks(execute=True):
            (event,) = NotificationService().notify("order_delivered", ["s1@x.io"], CONTEXT, "order-1")

        event.refresh_from_db()
        assert event.status == EventStatus.PUBLISHED
        assert len(mailoutbox) == 1
        assert mailoutbox[0].to == ["s1@x.io"]
        assert mailoutbox[0].subject == "Order Delivered - #ORD-1"
        assert mailoutbox[0].from_email == "orders@marketplace.test"

    def test_nothing_sent_before_commit(self, mailoutbox):
        NotificationService().notify("order_delivered", ["s1@x.io"], CONTEXT, "order-1")
        assert mailoutbox == []

    def test_enqueue_failure_is_swallowed(self, django_capture_on_commit_callbacks):
        with patch("modules.notifications.tasks.deliver_notification.delay", side_effect=ConnectionError):
            with django_capture_on_commit_callbacks(execute=True):
                (event,) = NotificationService().notify("order_delivered", ["s1@x.io"], CONTEXT, "order-1")

        event.refresh_from_db()
        assert event.status == EventStatus.PENDING


class TestNotificationDispatcher:
    def test_failure_marks_intent_failed(self, mailoutbox):
        event = _intent()
        with patch("django.core.mail.EmailMultiAlternatives.send", side_effect=OSError("smtp down")):
            assert NotificationDispatcher().deliver(str(event.id)) is False

        event.refresh_from_db()
        assert event.status == EventStatus.FAILED
        assert event.retry_count == 1
        assert event.error_message == "OSError: smtp down"

    def test_sweeper_retries_failed_intents(self, mailoutbox):
        event = _intent()
        event.mark_as_failed("OSError: smtp down")

        result = dispatch_pending_notifications()

        event.refresh_from_db()
        assert result == {"status": "ok", "sent": 1}
        assert event.status == EventStatus.PUBLISHED
        assert len(mailoutbox) == 1

    def test_exhausted_intents_are_skipped(self, mailoutbox):
        event = _intent()
        for _ in range(3):
            event.mark_as_failed("boom")

        assert NotificationDispatcher(max_retries=3).deliver(str(event.id)) is False
        assert NotificationDispatcher(max_retries=3).dispatch_pending() == 0
        assert mailoutbox == []

    def test_published_intent_not_resent(self, mailoutbox):
        event = _intent()
        event.mark_as_published()
        assert NotificationDispatcher().deliver(str(event.id)) is True
        assert mailoutbox == []

    def test_missing_intent(self):
        assert NotificationDispatcher().deliver("0190f0f0-0000-7000-8000-000000000000") is False

    def test_unknown_template_marks_failed(self):
        event = _intent(template="vanished")
        assert NotificationDispatcher().deliver(str(event.id)) is False
        event.refresh_from_db()
        assert event.status == EventStatus.FAILED


class TestOrderNotifications:
    def test_order_created_queues_payment_reminder(self, order):
        (event,) = OutboxEvent.objects.filter(topic=OutboxTopic.NOTIFICATIONS, aggregate_id=str(order.id))
        assert event.event_type == "payment_reminder"
        assert event.payload["to"] == "bea@example.com"
        assert event.payload["context"]["total_price"] == "350.00"
        assert event.payload["context"]["order_url"] == f"http://frontend.test/order/{order.id}"

    def test_payment_notifies_buyer_and_each_seller(self, order_service, make_order, product, other_product):
        from modules.orders.dtos import CreateOrderItemDTO

        order = make_order(
            items=[
                CreateOrderItemDTO(product_id=product.id, quantity=1),
                CreateOrderItemDTO(product_id=other_product.id, quantity=1),
            ]
        )
        order_service.confirm_payment(str(order.id), ConfirmPaymentDTO(transaction_id="T-1"))

        intents = OutboxEvent.objects.filter(topic=OutboxTopic.NOTIFICATIONS, aggregate_id=str(order.id))
        assert {e.payload["to"] for e in intents.filter(event_type="order_confirmation")} == {"bea@example.com"}
        assert {e.payload["to"] for e in intents.filter(event_type="payment_received")} == {
            "sam@example.com",
            "olga@example.com",
        }

    def test_notification_failure_does_not_fail_transition(self, order_service, order):
        with patch.object(NotificationService, "notify", side_effect=RuntimeError("outbox down")):
            paid = order_service.confirm_payment(str(order.id), ConfirmPaymentDTO(transaction_id="T-2"))

        assert paid.status == OrderStatus.PROCESSING
        assert paid.is_paid

    def test_full_flow_sends_emails_after_commit(
        self, order_service, order, django_capture_on_commit_callbacks, mailoutbox
    ):
        with django_capture_on_commit_callbacks(execute=True):
            order_service.confirm_payment(str(order.id), ConfirmPaymentDTO(transaction_id="T-3"))

        subjects = sorted(m.subject for m in mailoutbox)
        assert subjects == [
            f"Order Confirmation - #{order.order_number}",
            f"Payment Received - Order #{order.order_number}",
        ]
