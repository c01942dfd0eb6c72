"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.  Aggregate
writes run in ``transaction.atomic()``; when the service layer already
opened a transaction they join it.

Concurrency control:

- ``get_for_update`` locks the order row (``SELECT FOR UPDATE``) on
  backends that support it.
- ``claim_payment`` and ``claim_dispute`` are conditional ``UPDATE``
  statements, so exactly one of two racing callers wins on every
  backend, including SQLite.
- Every claim bumps ``version`` in the same statement.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, F, Q, QuerySet, Sum
from django.db.models.functions import TruncMonth
from django.utils import timezone

from modules.core.models import OutboxEvent, OutboxTopic
from modules.orders.constants import NEW_SALES_STATUSES, DisputeStatus, OrderStatus
from modules.orders.models import Dispute, Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository
from shared.serialization import to_json_safe

logger = structlog.get_logger(__name__)

ZERO = Decimal("0.00")


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    def _base(self) -> QuerySet[Order]:
        return (
            Order.objects.alive()
            .select_related("buyer", "dispute", "dispute__created_by", "dispute__resolved_by")
            .prefetch_related("items__seller", "status_history")
        )

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        items = data.pop("items", [])
        order = Order(**data)
        order.save()

        for item_data in items:
            OrderItem(order=order, **item_data).save()

        logger.bind(order_id=str(order.id), item_count=len(items)).info("order.persisted")
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with eager-loaded relations.

        Returns ``None`` for non-existent, soft-deleted or malformed IDs.
        """
        try:
            return self._base().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock.

        Items are prefetched so the caller can iterate them while the row
        is locked.  ``select_related`` is kept to the buyer: nullable
        joins cannot be locked on PostgreSQL.
        """
        try:
            return (
                Order.objects.alive()
                .select_for_update(of=("self",))
                .select_related("buyer")
                .prefetch_related("items__seller")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    # ------------------------------------------------------------------
    # Save (IRepository contract) + outbox
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist an order and flush its pending domain events to the outbox."""
        entity.save()

        events = entity.domain_events
        for event in events:
            OutboxEvent.objects.create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=to_json_safe(event),
                topic=OutboxTopic.ORDERS,
            )
        entity.clear_domain_events()

        logger.info("order.saved", order_id=str(entity.id), event_count=len(events))
        return entity

    # ------------------------------------------------------------------
    # Conditional claims
    # ------------------------------------------------------------------

    def claim_payment(self, id: str, fields: Dict[str, Any]) -> bool:
        # savepoint: a unique violation must not poison the caller's transaction
        with transaction.atomic():
            updated = Order.objects.filter(id=id, paid_at__isnull=True).update(
                version=F("version") + 1,
                updated_at=timezone.now(),
                **fields,
            )
        return updated == 1

    def is_transaction_used(self, transaction_id: str, exclude_order_id: str) -> bool:
        return (
            Order.objects.filter(payment_transaction_id=transaction_id)
            .exclude(id=exclude_order_id)
            .exists()
        )

    def claim_dispute(self, id: str) -> bool:
        updated = Order.objects.filter(id=id, dispute_status=DisputeStatus.NONE).update(
            dispute_status=DisputeStatus.OPEN,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        return updated == 1

    @transaction.atomic
    def create_dispute(self, order: Order, data: Dict[str, Any]) -> Dispute:
        dispute = Dispute.objects.create(order=order, **data)
        logger.info("order.dispute_persisted", order_id=str(order.id))
        return dispute

    def save_dispute(self, dispute: Dispute) -> Dispute:
        dispute.save()
        return dispute

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    def add_history(
        self,
        order_id: Any,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=status,
            notes=notes,
            user_id=user_id,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=status,
        )
        return history

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet[Order]:
        queryset = self._base().order_by("-created_at", "-id")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def for_buyer(self, user_id: int) -> QuerySet[Order]:
        return self.list({"buyer_id": user_id})

    def _seller_ids(self, user_id: int, extra: Q = Q()) -> QuerySet:
        return (
            Order.objects.alive()
            .filter(Q(items__seller_id=user_id) & extra)
            .values("id")
        )

    def for_seller(self, user_id: int) -> QuerySet[Order]:
        return self.list({"id__in": self._seller_ids(user_id)})

    def seller_new_sales(self, user_id: int) -> QuerySet[Order]:
        extra = Q(cancelled_at__isnull=True, status__in=NEW_SALES_STATUSES)
        return self.list({"id__in": self._seller_ids(user_id, extra)})

    def seller_open_sales(self, user_id: int) -> QuerySet[Order]:
        extra = Q(cancelled_at__isnull=True) & ~Q(status=OrderStatus.DELIVERED)
        return self.list({"id__in": self._seller_ids(user_id, extra)})

    def with_disputes(self) -> QuerySet[Order]:
        return (
            self._base()
            .exclude(dispute_status=DisputeStatus.NONE)
            .filter(dispute__isnull=False)
            .order_by("-dispute__created_at", "-id")
        )

    def recent(self, limit: int) -> List[Order]:
        return list(self.list()[:limit])

    def stats(self, months: int) -> Dict[str, Any]:
        orders = Order.objects.alive()
        paid = Q(paid_at__isnull=False)

        totals = orders.aggregate(
            total_orders=Count("id"),
            paid_orders=Count("id", filter=paid),
            delivered_orders=Count("id", filter=Q(delivered_at__isnull=False)),
            cancelled_orders=Count("id", filter=Q(cancelled_at__isnull=False)),
            disputed_orders=Count("id", filter=~Q(dispute_status=DisputeStatus.NONE)),
            total_revenue=Sum("total_price", filter=paid),
        )
        totals["total_revenue"] = totals["total_revenue"] or ZERO

        since = timezone.now() - timedelta(days=30 * months)
        rows = (
            orders.filter(created_at__gte=since)
            .annotate(month=TruncMonth("created_at"))
            .values("month")
            .annotate(
                orders=Count("id"),
                revenue=Sum("total_price", filter=paid),
            )
            .order_by("month")
        )
        totals["monthly"] = [
            {
                "month": row["month"].strftime("%Y-%m"),
                "orders": row["orders"],
                "revenue": row["revenue"] or ZERO,
            }
            for row in rows
        ]
        return totals
