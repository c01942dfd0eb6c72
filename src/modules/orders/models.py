"""Order, OrderItem, Dispute and OrderStatusHistory models.

Business rules implemented:
- ``status`` is the single source of truth for the order lifecycle;
  ``is_paid`` / ``is_shipped`` / ``is_delivered`` / ``is_cancelled`` /
  ``confirmed_receipt`` are derived from their milestone timestamps.
- Guarded transitions are validated against ``VALID_TRANSITIONS``
  (enforced at the service layer).
- ``total_price == items + tax + shipping + service_fee - discount``.
- ``payment_transaction_id`` is unique: a gateway transaction pays at
  most one order.
- At most one dispute per order (one-to-one) and ``dispute_status``
  mirrors the dispute row.
- OrderItem snapshots name, image, price and seller at checkout and is
  never modified afterwards.
- Every status change appends an OrderStatusHistory row.
- ``version`` increases on every transition.
- Soft delete via ``deleted_at`` (inherited from SoftDeleteModel).
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any, Dict

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel, SoftDeleteModel
from modules.orders.constants import (
    ORDER_NUMBER_MAX_RETRIES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    DisputeReason,
    DisputeStatus,
    OrderStatus,
    PackagingOption,
    PaymentMethod,
)
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)

ZERO = Decimal("0.00")

MONEY_FIELDS = (
    "items_price",
    "tax_price",
    "shipping_price",
    "service_fee",
    "discount_amount",
    "total_price",
)


def _money(**kwargs: Any) -> models.DecimalField:
    return models.DecimalField(max_digits=12, decimal_places=2, default=ZERO, **kwargs)


class Order(DomainEventMixin, SoftDeleteModel):
    """Order aggregate root.

    ``order_number`` is a human-readable identifier generated on first
    save (``ORD-YYYYMMDD-XXXXXX``); the UUIDv7 ``id`` is used for every
    internal reference and API look-up.
    """

    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    buyer: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )

    # Shipping address (value object)
    shipping_address: models.CharField = models.CharField(max_length=255)
    shipping_city: models.CharField = models.CharField(max_length=120)
    shipping_state: models.CharField = models.CharField(max_length=120, blank=True, default="")
    shipping_postal_code: models.CharField = models.CharField(max_length=32)
    shipping_country: models.CharField = models.CharField(max_length=120)
    shipping_phone: models.CharField = models.CharField(max_length=40, blank=True, default="")

    payment_method: models.CharField = models.CharField(
        max_length=20, choices=PaymentMethod.choices
    )
    packaging_option: models.CharField = models.CharField(
        max_length=20,
        choices=PackagingOption.choices,
        default=PackagingOption.STANDARD,
    )

    # Payment result, present once paid
    payment_transaction_id: models.CharField = models.CharField(  # noqa: DJ01
        max_length=255, unique=True, null=True, blank=True, default=None
    )
    payment_status: models.CharField = models.CharField(max_length=64, blank=True, default="")
    payment_email: models.CharField = models.CharField(max_length=254, blank=True, default="")
    payment_update_time: models.CharField = models.CharField(max_length=64, blank=True, default="")

    # Money
    items_price: models.DecimalField = _money()
    tax_price: models.DecimalField = _money()
    shipping_price: models.DecimalField = _money()
    service_fee: models.DecimalField = _money()
    discount_amount: models.DecimalField = _money()
    total_price: models.DecimalField = _money()

    # Milestones
    paid_at: models.DateTimeField = models.DateTimeField(null=True, blank=True, default=None)
    shipped_at: models.DateTimeField = models.DateTimeField(null=True, blank=True, default=None)
    delivered_at: models.DateTimeField = models.DateTimeField(null=True, blank=True, default=None)
    cancelled_at: models.DateTimeField = models.DateTimeField(null=True, blank=True, default=None)
    confirmed_receipt_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True, default=None
    )

    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    dispute_status: models.CharField = models.CharField(
        max_length=20,
        choices=DisputeStatus.choices,
        default=DisputeStatus.NONE,
    )

    # Shipping details
    tracking_number: models.CharField = models.CharField(max_length=120, blank=True, default="")
    carrier: models.CharField = models.CharField(max_length=120, blank=True, default="")

    notes: models.TextField = models.TextField(blank=True, default="")
    version: models.PositiveIntegerField = models.PositiveIntegerField(default=1)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["dispute_status"], name="orders_dispute_status_idx"),
            models.Index(fields=["paid_at"], name="orders_paid_at_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(**{f"{name}__gte": 0}),
                name=f"orders_{name}_non_negative",
            )
            for name in MONEY_FIELDS
        ]

    # ------------------------------------------------------------------
    # Derived milestone flags
    # ------------------------------------------------------------------

    @property
    def is_paid(self) -> bool:
        return self.paid_at is not None

    @property
    def is_shipped(self) -> bool:
        return self.shipped_at is not None

    @property
    def is_delivered(self) -> bool:
        return self.delivered_at is not None

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    @property
    def confirmed_receipt(self) -> bool:
        return self.confirmed_receipt_at is not None

    @property
    def has_dispute(self) -> bool:
        return self.dispute_status != DisputeStatus.NONE

    # ------------------------------------------------------------------
    # Value objects
    # ------------------------------------------------------------------

    @property
    def shipping_address_data(self) -> Dict[str, str]:
        return {
            "address": self.shipping_address,
            "city": self.shipping_city,
            "state": self.shipping_state,
            "postal_code": self.shipping_postal_code,
            "country": self.shipping_country,
            "phone": self.shipping_phone,
        }

    @property
    def shipping_summary(self) -> str:
        parts = [
            self.shipping_address,
            self.shipping_city,
            self.shipping_state,
            self.shipping_postal_code,
            self.shipping_country,
        ]
        return ", ".join(p for p in parts if p)

    @property
    def shipping_details(self) -> Dict[str, Any]:
        return {
            "tracking_number": self.tracking_number,
            "carrier": self.carrier,
            "shipped_at": self.shipped_at,
        }

    @property
    def payment_result(self) -> Dict[str, str] | None:
        if not self.payment_status:
            return None
        return {
            "id": self.payment_transaction_id or "",
            "status": self.payment_status,
            "email_address": self.payment_email,
            "update_time": self.payment_update_time,
        }

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    def seller_ids(self) -> list[int]:
        """Distinct seller ids across line items, in line order."""
        seen: list[int] = []
        for item in self.items.all():
            if item.seller_id not in seen:
                seen.append(item.seller_id)
        return seen

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"ORD-{now:%Y%m%d}-{suffix}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for _attempt in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderItem(BaseModel):
    """Line item snapshot taken at checkout.

    ``unit_price``, ``name``, ``image`` and ``seller`` are copied from the
    catalog when the order is created and never follow later product
    changes.  ``subtotal`` is ``quantity * unit_price``.  Items are
    immutable: saving an existing row raises.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product: models.ForeignKey = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    seller: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="sold_items",
    )
    name: models.CharField = models.CharField(max_length=255)
    image: models.CharField = models.CharField(max_length=500, blank=True, default="")
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    unit_price: models.DecimalField = models.DecimalField(max_digits=10, decimal_places=2)
    subtotal: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        editable=False,
    )

    class Meta:
        db_table = "order_items"
        ordering = ["created_at", "id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.quantity is not None and self.quantity < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1."})

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ValidationError("Order items are immutable once created.")
        self.subtotal = (self.unit_price * self.quantity).quantize(Decimal("0.01"))
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.name} x{self.quantity} (${self.subtotal})"


class Dispute(BaseModel):
    """The (single) dispute raised on an order.

    ``order.dispute_status`` and ``status`` always change together in the
    same transaction.
    """

    order: models.OneToOneField = models.OneToOneField(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="dispute",
    )
    reason: models.CharField = models.CharField(max_length=40, choices=DisputeReason.choices)
    description: models.TextField = models.TextField(blank=True, default="")
    dispute_type: models.CharField = models.CharField(max_length=40, default="general")
    created_by: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="disputes_opened",
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=DisputeStatus.choices,
        default=DisputeStatus.OPEN,
    )
    resolved_at: models.DateTimeField = models.DateTimeField(null=True, blank=True, default=None)
    resolved_by: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="disputes_resolved",
    )
    resolution: models.TextField = models.TextField(blank=True, default="")
    admin_notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_disputes"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Dispute {self.reason} on {self.order_id} [{self.status}]"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    Inherits ``BaseModel`` (not ``SoftDeleteModel``): audit records are
    immutable.  ``user`` is ``None`` when the system made the change.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    user: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["order", "-created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order} : {self.old_status} -> {self.new_status}"
