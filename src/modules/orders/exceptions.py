"""Order domain exceptions.

Each one specialises a kind from ``shared.domain.exceptions``; the API
exception handler maps the kind to an HTTP status.
"""

from __future__ import annotations

from modules.products.exceptions import ProductNotFound
from shared.domain.exceptions import (
    AuthorizationError,
    NotFoundError,
    PaymentVerificationError,
    PreconditionError,
    ValidationError,
)

__all__ = [
    "DisputeAlreadyClosed",
    "DisputeAlreadyExists",
    "DisputeNotFound",
    "EmptyOrder",
    "InvalidDisputeReason",
    "InvalidDisputeStatus",
    "InvalidOrderStatus",
    "InvalidTransition",
    "NotAuthorized",
    "OrderAlreadyCompleted",
    "OrderNotFound",
    "OrderNotPaid",
    "OrderNotShipped",
    "PaymentNotVerified",
    "ProductNotFound",
    "TransactionReplayed",
]


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class OrderNotFound(NotFoundError):
    """The requested order does not exist or has been soft-deleted."""

    default_code = "order_not_found"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class EmptyOrder(ValidationError):
    default_code = "empty_order"


class InvalidOrderStatus(ValidationError):
    """The requested status is not one of the known order statuses."""

    default_code = "invalid_status"


class InvalidDisputeReason(ValidationError):
    default_code = "invalid_dispute_reason"


class InvalidDisputeStatus(ValidationError):
    default_code = "invalid_dispute_status"


class DisputeAlreadyExists(ValidationError):
    """A dispute is already open (or was) on this order."""

    default_code = "dispute_exists"
    http_status = 409


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class NotAuthorized(AuthorizationError):
    default_code = "not_authorized"


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------


class OrderNotPaid(PreconditionError):
    default_code = "order_not_paid"


class OrderNotShipped(PreconditionError):
    default_code = "order_not_shipped"


class OrderAlreadyCompleted(PreconditionError):
    """Paid and delivered orders can no longer be cancelled."""

    default_code = "order_completed"


class InvalidTransition(PreconditionError):
    """The state machine does not allow the move from the current status."""

    default_code = "invalid_transition"


class DisputeNotFound(PreconditionError):
    default_code = "dispute_not_found"


class DisputeAlreadyClosed(PreconditionError):
    """Resolved and closed disputes cannot move to another status."""

    default_code = "dispute_closed"


# ---------------------------------------------------------------------------
# Payment verification
# ---------------------------------------------------------------------------


class PaymentNotVerified(PaymentVerificationError):
    default_code = "payment_not_verified"


class TransactionReplayed(PaymentVerificationError):
    """The gateway transaction already paid another order."""

    default_code = "transaction_replayed"
