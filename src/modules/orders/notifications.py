"""Which emails each order transition produces, and for whom.

Every method only records outbox intents through ``NotificationService``,
inside the transition's transaction.  Recipient lists are deduplicated;
dispute fan-outs also drop the acting user's own address.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from django.conf import settings
from django.contrib.auth import get_user_model

from modules.accounts.dtos import ActorDTO
from modules.accounts.repositories.interfaces import IUserRepository
from modules.notifications.services import NotificationService, unique_recipients
from modules.orders.models import Dispute, Order

logger = structlog.get_logger(__name__)


class OrderNotifications:
    def __init__(
        self,
        notification_service: NotificationService,
        user_repository: IUserRepository,
    ) -> None:
        self._notifier = notification_service
        self._users = user_repository

    # ------------------------------------------------------------------
    # Recipients / context
    # ------------------------------------------------------------------

    def _seller_emails(self, order: Order) -> List[str]:
        User = get_user_model()
        ids = order.seller_ids()
        emails = dict(User.objects.filter(pk__in=ids).values_list("pk", "email"))
        return unique_recipients(emails.get(pk) for pk in ids)

    @staticmethod
    def _buyer_name(order: Order) -> str:
        buyer = order.buyer
        return buyer.get_full_name() or buyer.get_username()

    def _context(self, order: Order, **extra: Any) -> Dict[str, Any]:
        return {
            "order_number": order.order_number,
            "order_id": str(order.id),
            "customer_name": self._buyer_name(order),
            "total_price": order.total_price,
            "payment_method": order.payment_method,
            "order_url": f"{settings.FRONTEND_URL.rstrip('/')}/order/{order.id}",
            **extra,
        }

    def _send(self, template: str, recipients: List[Optional[str]], order: Order, **extra: Any) -> None:
        self._notifier.notify(template, recipients, self._context(order, **extra), order.id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def order_created(self, order: Order) -> None:
        self._send("payment_reminder", [order.buyer.email], order)

    def order_paid(self, order: Order) -> None:
        items_summary = ", ".join(f"{item.name} x{item.quantity}" for item in order.items.all())
        self._send("order_confirmation", [order.buyer.email], order, items_summary=items_summary)
        self._send(
            "payment_received",
            self._seller_emails(order),
            order,
            shipping_summary=order.shipping_summary,
        )

    def order_shipped(self, order: Order) -> None:
        self._send(
            "order_shipped",
            [order.buyer.email],
            order,
            tracking_number=order.tracking_number,
            carrier=order.carrier,
        )

    def order_delivered(self, order: Order) -> None:
        self._send("order_delivered", self._seller_emails(order), order)

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    def dispute_opened(self, order: Order, dispute: Dispute, actor: ActorDTO) -> None:
        extra = {
            "reason": dispute.get_reason_display(),
            "description": dispute.description,
            "opened_by": actor.name or actor.email,
        }
        self._send(
            "dispute_created",
            unique_recipients(self._users.list_admin_emails(), exclude=[actor.email]),
            order,
            **extra,
        )

        if actor.user_id == order.buyer_id:
            counterparty = self._seller_emails(order)
        else:
            counterparty = [order.buyer.email]
        self._send(
            "dispute_notification",
            unique_recipients(counterparty, exclude=[actor.email]),
            order,
            **extra,
        )

        self._send(
            "dispute_request_received",
            [actor.email],
            order,
            customer_name=actor.name,
            reason=extra["reason"],
        )

    def dispute_updated(self, order: Order, dispute: Dispute, actor: ActorDTO) -> None:
        recipients = unique_recipients(
            [order.buyer.email, *self._seller_emails(order)],
            exclude=[actor.email],
        )
        self._send(
            "dispute_updated",
            recipients,
            order,
            status=dispute.get_status_display(),
            resolution=dispute.resolution,
        )
