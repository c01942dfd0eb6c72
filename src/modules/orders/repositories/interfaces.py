"""Order repository interface.

Extends ``IRepository[Order]`` with what the Order aggregate needs:
atomic creation with items, row locking, the two storage-level
conditional claims (payment and dispute), the audit trail and the
read-only projections used by the listing endpoints.

The service layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.orders.models import Dispute, Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The aggregate includes OrderItem children, the optional Dispute and
    the OrderStatusHistory records.
    """

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order and its items.

        ``data`` holds the order columns plus ``items``: a list of dicts
        with ``product_id``, ``seller_id``, ``name``, ``image``,
        ``quantity`` and ``unit_price``.
        """

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE)."""

    @abstractmethod
    def claim_payment(self, id: str, fields: Dict[str, Any]) -> bool:
        """Mark the order paid only if it is not paid yet.

        Returns ``True`` when this call performed the claim.  A duplicate
        ``payment_transaction_id`` propagates the database IntegrityError.
        """

    @abstractmethod
    def is_transaction_used(self, transaction_id: str, exclude_order_id: str) -> bool:
        """Whether another order was already paid with *transaction_id*."""

    @abstractmethod
    def claim_dispute(self, id: str) -> bool:
        """Move ``dispute_status`` from none to open; ``False`` if a dispute exists."""

    @abstractmethod
    def create_dispute(self, order: Order, data: Dict[str, Any]) -> Dispute:
        """Persist the dispute row of *order*."""

    @abstractmethod
    def save_dispute(self, dispute: Dispute) -> Dispute:
        """Persist changes to an existing dispute."""

    @abstractmethod
    def add_history(
        self,
        order_id: Any,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet[Order]:
        """All live orders, newest first, optionally filtered."""

    @abstractmethod
    def for_buyer(self, user_id: int) -> QuerySet[Order]:
        """Orders placed by *user_id*."""

    @abstractmethod
    def for_seller(self, user_id: int) -> QuerySet[Order]:
        """Orders containing at least one item sold by *user_id*."""

    @abstractmethod
    def seller_new_sales(self, user_id: int) -> QuerySet[Order]:
        """Seller orders not cancelled with status pending, processing or shipped."""

    @abstractmethod
    def seller_open_sales(self, user_id: int) -> QuerySet[Order]:
        """Seller orders not cancelled and not yet delivered."""

    @abstractmethod
    def with_disputes(self) -> QuerySet[Order]:
        """Orders that carry a dispute, newest dispute first."""

    @abstractmethod
    def recent(self, limit: int) -> List[Order]:
        """The *limit* most recently created orders."""

    @abstractmethod
    def stats(self, months: int) -> Dict[str, Any]:
        """Counts, revenue and a monthly series over the last *months* months."""
