"""Order domain constants.

Status choices and the guarded transitions of the order state machine,
plus the dispute sub-state-machine that runs alongside it.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


# Guarded flow only; the admin override bypasses this table.
VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: {OrderStatus.CANCELLED},
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.CANCELLED}

# Milestone stamped by the admin override when it moves an order into a status
OVERRIDE_MILESTONES: dict[str, str] = {
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}

NEW_SALES_STATUSES: set[str] = {
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
}


class DisputeStatus(models.TextChoices):
    NONE = "none", "None"
    OPEN = "open", "Open"
    IN_REVIEW = "in_review", "In review"
    RESOLVED = "resolved", "Resolved"
    CLOSED = "closed", "Closed"


DISPUTE_FINAL_STATES: set[str] = {DisputeStatus.RESOLVED, DisputeStatus.CLOSED}


class DisputeReason(models.TextChoices):
    ITEM_NOT_RECEIVED = "item_not_received", "Item not received"
    ITEM_NOT_AS_DESCRIBED = "item_not_as_described", "Item not as described"
    DAMAGED_ITEM = "damaged_item", "Damaged item"
    WRONG_ITEM = "wrong_item", "Wrong item"
    PAYMENT_ISSUE = "payment_issue", "Payment issue"
    OTHER = "other", "Other"


class PaymentMethod(models.TextChoices):
    PAYPAL = "PayPal", "PayPal"
    STRIPE = "Stripe", "Stripe"
    CASH = "Cash", "Cash"
    BANK_TRANSFER = "Bank Transfer", "Bank Transfer"
    CARD = "Card", "Card"


class PackagingOption(models.TextChoices):
    STANDARD = "Standard", "Standard"
    ARTSAFE = "ArtSafe", "ArtSafe"


DEFAULT_CARRIER = "Standard Shipping"
DEFAULT_DISPUTE_TYPE = "general"

ORDER_NUMBER_MAX_RETRIES = 5
RECENT_ORDERS_LIMIT = 10
STATS_MONTHS = 12
