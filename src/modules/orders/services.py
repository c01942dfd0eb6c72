"""Order service layer (Use Cases).

Orchestrates the order lifecycle and the dispute sub-state-machine.
Every write operation is one ``transaction.atomic`` unit of work: all
preconditions are checked before the first write, so a rejected
transition leaves no partial state behind.

Business rules enforced:
- Prices always come from the catalog; a missing or unsellable product
  rejects the whole order.
- Guarded flow: pending -> processing -> shipped -> delivered, with
  cancellation from any non-completed state (``VALID_TRANSITIONS``).
- Payment is claimed with a conditional update on ``paid_at IS NULL``:
  only the winning caller decrements stock; re-confirming a paid order
  is a no-op.
- A gateway transaction id can pay one order only.
- Ship requires paid; deliver requires shipped; paid + delivered orders
  cannot be cancelled.
- ``override_status`` is the labelled administrative escape hatch and is
  never called by the guarded transitions.
- Disputes: none -> open -> in_review -> resolved/closed, one per order.
- Notifications are outbox intents written with the transition; a
  failure to record them is logged and never fails the transition.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

import structlog
from django.db import IntegrityError, transaction
from django.utils import timezone

from modules.orders.constants import (
    DISPUTE_FINAL_STATES,
    OVERRIDE_MILESTONES,
    RECENT_ORDERS_LIMIT,
    STATS_MONTHS,
    DisputeReason,
    DisputeStatus,
    OrderStatus,
    PackagingOption,
    PaymentMethod,
)
from modules.orders.events import (
    DisputeOpened,
    DisputeUpdated,
    OrderCancelled,
    OrderCreated,
    OrderDelivered,
    OrderPaid,
    OrderShipped,
    OrderStatusOverridden,
)
from modules.orders.exceptions import (
    DisputeAlreadyClosed,
    DisputeAlreadyExists,
    DisputeNotFound,
    EmptyOrder,
    InvalidDisputeReason,
    InvalidDisputeStatus,
    InvalidOrderStatus,
    InvalidTransition,
    NotAuthorized,
    OrderAlreadyCompleted,
    OrderNotFound,
    OrderNotPaid,
    OrderNotShipped,
    PaymentNotVerified,
    ProductNotFound,
    TransactionReplayed,
)
from modules.orders.pricing import PricingPolicy, calculate_prices
from shared.domain.exceptions import PreconditionError, ValidationError

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.accounts.dtos import ActorDTO
    from modules.orders.dtos import (
        ConfirmPaymentDTO,
        CreateOrderDTO,
        OpenDisputeDTO,
        ShipOrderDTO,
        UpdateDisputeDTO,
    )
    from modules.orders.models import Order
    from modules.orders.notifications import OrderNotifications
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.registry import PaymentVerifierRegistry
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _is_seller(order: Order, actor: ActorDTO) -> bool:
    return actor.user_id in order.seller_ids()


def _is_buyer(order: Order, actor: ActorDTO) -> bool:
    return order.buyer_id == actor.user_id


def _require_admin(actor: ActorDTO, action: str) -> None:
    if not actor.is_admin:
        raise NotAuthorized(f"Only administrators can {action}.")


def _best_effort(hook: Callable[..., None], *args: Any) -> None:
    """Run a notification hook in a savepoint; log and swallow any failure."""
    try:
        with transaction.atomic():
            hook(*args)
    except Exception:
        logger.warning(
            "order.notification_failed",
            hook=getattr(hook, "__name__", repr(hook)),
            exc_info=True,
        )


class OrderService:
    """Application service for the order lifecycle.

    Receives its collaborators via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
        notifications: OrderNotifications,
        payment_verifiers: PaymentVerifierRegistry,
        pricing_policy: Optional[PricingPolicy] = None,
    ) -> None:
        self._order_repo = order_repository
        self._product_repo = product_repository
        self._notifications = notifications
        self._verifiers = payment_verifiers
        self._pricing = pricing_policy or PricingPolicy.from_settings()

    def _load_for_update(self, order_id: str) -> Order:
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def _reload(self, order_id: Any) -> Order:
        return self._order_repo.get_by_id(str(order_id))

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(self, dto: CreateOrderDTO) -> Order:
        """Create a pending order priced from the catalog.

        Raises:
            EmptyOrder: no line items.
            ValidationError: unknown payment method or packaging option.
            ProductNotFound: a product is unknown, deleted or inactive.
        """
        log = logger.bind(buyer_id=dto.buyer_id)
        log.info("order.creation_started", item_count=len(dto.items))

        if not dto.items:
            raise EmptyOrder("Order must have at least one item.", field="items")
        if dto.payment_method not in PaymentMethod.values:
            raise ValidationError(
                f"Unknown payment method '{dto.payment_method}'.",
                code="invalid_payment_method",
                field="payment_method",
            )
        if dto.packaging_option not in PackagingOption.values:
            raise ValidationError(
                f"Unknown packaging option '{dto.packaging_option}'.",
                code="invalid_packaging_option",
                field="packaging_option",
            )

        products = self._product_repo.get_many(str(i.product_id) for i in dto.items)
        missing = [str(i.product_id) for i in dto.items if str(i.product_id) not in products]
        if missing:
            log.warning("order.products_missing", product_ids=missing)
            raise ProductNotFound(
                f"Product(s) not found: {', '.join(sorted(set(missing)))}.",
                field="items",
            )

        line_items: List[Dict[str, Any]] = []
        for item_dto in dto.items:
            product = products[str(item_dto.product_id)]
            line_items.append(
                {
                    "product_id": product.id,
                    "seller_id": product.seller_id,
                    "name": product.name,
                    "image": product.image,
                    "quantity": item_dto.quantity,
                    "unit_price": product.price,
                }
            )

        prices = calculate_prices(line_items, self._pricing)
        address = dto.shipping_address

        order = self._order_repo.create(
            {
                "buyer_id": dto.buyer_id,
                "items": line_items,
                "shipping_address": address.address,
                "shipping_city": address.city,
                "shipping_state": address.state,
                "shipping_postal_code": address.postal_code,
                "shipping_country": address.country,
                "shipping_phone": address.phone,
                "payment_method": dto.payment_method,
                "packaging_option": dto.packaging_option,
                "notes": dto.notes,
                "items_price": prices.items_price,
                "tax_price": prices.tax_price,
                "shipping_price": prices.shipping_price,
                "service_fee": prices.service_fee,
                "total_price": prices.total_price,
            }
        )

        order.add_domain_event(
            OrderCreated(
                aggregate_id=order.id,
                payload={"buyer_id": dto.buyer_id, **prices.as_strings()},
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.PENDING,
            notes="Order created",
            user_id=dto.buyer_id,
        )

        order = self._reload(order.id)
        log.info("order.created", order_id=str(order.id), total_price=str(order.total_price))
        _best_effort(self._notifications.order_created, order)
        return order

    # ------------------------------------------------------------------
    # Pay
    # ------------------------------------------------------------------

    def confirm_payment(self, order_id: str, dto: ConfirmPaymentDTO) -> Order:
        """Mark an order paid and decrement stock exactly once.

        Gateway verification (network I/O) runs before the transaction
        is opened.

        Raises:
            OrderNotFound: order does not exist.
            ValidationError: verification required but no transaction id.
            PaymentNotVerified: the gateway did not confirm the payment.
            TransactionReplayed: the transaction id paid another order.
            InvalidTransition: the order can no longer be paid.
        """
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(order_id=str(order_id), payment_method=order.payment_method)
        if order.is_paid:
            log.info("order.payment_already_confirmed")
            return order

        verifier = self._verifiers.for_method(order.payment_method)
        if verifier is not None:
            if not dto.transaction_id:
                raise ValidationError(
                    "A transaction id is required for this payment method.",
                    code="transaction_id_required",
                    field="transaction_id",
                )
            result = verifier.verify(dto.transaction_id)
            if not result.verified:
                log.warning("order.payment_not_verified", gateway_status=result.status)
                raise PaymentNotVerified("Payment not verified.")
            if self._order_repo.is_transaction_used(dto.transaction_id, str(order.id)):
                log.warning("order.transaction_replayed", transaction_id=dto.transaction_id)
                raise TransactionReplayed("Transaction used before.")
            dto = dto.model_copy(
                update={
                    "status": result.status or dto.status,
                    "payer_email": dto.payer_email or result.payer_email,
                }
            )

        return self._apply_payment(str(order_id), dto)

    @transaction.atomic
    def _apply_payment(self, order_id: str, dto: ConfirmPaymentDTO) -> Order:
        order = self._load_for_update(order_id)
        log = logger.bind(order_id=order_id, current_status=order.status)

        if order.is_paid:
            log.info("order.payment_already_confirmed")
            return self._reload(order_id)
        if not order.can_transition_to(OrderStatus.PROCESSING):
            log.warning("order.invalid_transition", new_status=OrderStatus.PROCESSING)
            raise InvalidTransition(f"Cannot pay an order in status {order.status}.")

        old_status = order.status
        paid_at = timezone.now()
        try:
            claimed = self._order_repo.claim_payment(
                order_id,
                {
                    "paid_at": paid_at,
                    "status": OrderStatus.PROCESSING,
                    "payment_transaction_id": dto.transaction_id or None,
                    "payment_status": dto.status or "COMPLETED",
                    "payment_email": dto.payer_email or "",
                    "payment_update_time": dto.update_time or paid_at.isoformat(),
                },
            )
        except IntegrityError:
            log.warning("order.transaction_replayed", transaction_id=dto.transaction_id)
            raise TransactionReplayed("Transaction used before.") from None

        if not claimed:
            # a concurrent request paid the order between our read and the claim
            log.info("order.payment_claim_lost")
            return self._reload(order_id)

        for item in order.items.all():
            self._product_repo.decrement_stock(str(item.product_id), item.quantity)

        order.refresh_from_db()
        order.add_domain_event(
            OrderPaid(
                aggregate_id=order.id,
                payload={"transaction_id": dto.transaction_id, "total_price": order.total_price},
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.PROCESSING,
            old_status=old_status,
            notes="Payment confirmed",
        )

        order = self._reload(order_id)
        log.info("order.paid", total_price=str(order.total_price))
        _best_effort(self._notifications.order_paid, order)
        return order

    # ------------------------------------------------------------------
    # Ship
    # ------------------------------------------------------------------

    @transaction.atomic
    def ship_order(self, order_id: str, actor: ActorDTO, dto: ShipOrderDTO) -> Order:
        """Record shipment of a paid order.

        Raises:
            OrderNotFound, NotAuthorized, OrderNotPaid, InvalidTransition.
        """
        order = self._load_for_update(order_id)
        log = logger.bind(order_id=str(order_id), current_status=order.status, actor_id=actor.user_id)

        if not (_is_buyer(order, actor) or _is_seller(order, actor) or actor.is_admin):
            raise NotAuthorized("Only the buyer, a seller on the order or an admin can ship it.")
        if not order.is_paid:
            raise OrderNotPaid("Order must be paid before it can be shipped.")
        if not order.can_transition_to(OrderStatus.SHIPPED):
            log.warning("order.invalid_transition", new_status=OrderStatus.SHIPPED)
            raise InvalidTransition(f"Cannot ship an order in status {order.status}.")

        old_status = order.status
        order.status = OrderStatus.SHIPPED
        order.shipped_at = dto.shipped_at or timezone.now()
        order.tracking_number = dto.tracking_number
        order.carrier = dto.carrier
        order.version += 1
        order.add_domain_event(
            OrderShipped(
                aggregate_id=order.id,
                payload={"tracking_number": order.tracking_number, "carrier": order.carrier},
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.SHIPPED,
            old_status=old_status,
            notes=f"Shipped via {order.carrier}",
            user_id=actor.user_id,
        )

        order = self._reload(order_id)
        log.info("order.shipped", carrier=order.carrier)
        _best_effort(self._notifications.order_shipped, order)
        return order

    # ------------------------------------------------------------------
    # Deliver
    # ------------------------------------------------------------------

    @transaction.atomic
    def confirm_delivery(self, order_id: str, actor: ActorDTO) -> Order:
        """Buyer (or admin) confirms receipt of a shipped order.

        Raises:
            OrderNotFound, NotAuthorized, OrderNotShipped, PreconditionError
            (already delivered), InvalidTransition.
        """
        order = self._load_for_update(order_id)
        log = logger.bind(order_id=str(order_id), current_status=order.status, actor_id=actor.user_id)

        if not (_is_buyer(order, actor) or actor.is_admin):
            raise NotAuthorized("Only the buyer or an admin can confirm delivery.")
        if not order.is_shipped:
            raise OrderNotShipped("Order must be shipped before delivery can be confirmed.")
        if order.is_delivered:
            raise PreconditionError("Order delivery was already confirmed.", code="already_delivered")
        if not order.can_transition_to(OrderStatus.DELIVERED):
            log.warning("order.invalid_transition", new_status=OrderStatus.DELIVERED)
            raise InvalidTransition(f"Cannot deliver an order in status {order.status}.")

        now = timezone.now()
        old_status = order.status
        order.status = OrderStatus.DELIVERED
        order.delivered_at = now
        order.confirmed_receipt_at = now
        order.version += 1
        order.add_domain_event(OrderDelivered(aggregate_id=order.id))
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.DELIVERED,
            old_status=old_status,
            notes="Delivery confirmed",
            user_id=actor.user_id,
        )

        order = self._reload(order_id)
        log.info("order.delivered")
        _best_effort(self._notifications.order_delivered, order)
        return order

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    @transaction.atomic
    def cancel_order(self, order_id: str, actor: ActorDTO, notes: str = "") -> Order:
        """Cancel an order.  Stock is not restored.

        Raises:
            OrderNotFound, NotAuthorized, OrderAlreadyCompleted,
            InvalidTransition (already cancelled).
        """
        order = self._load_for_update(order_id)
        log = logger.bind(order_id=str(order_id), current_status=order.status, actor_id=actor.user_id)

        if not (_is_buyer(order, actor) or actor.is_admin):
            raise NotAuthorized("Only the buyer or an admin can cancel the order.")
        if order.is_paid and order.is_delivered:
            raise OrderAlreadyCompleted("A paid and delivered order cannot be cancelled.")
        if order.is_cancelled or not order.can_transition_to(OrderStatus.CANCELLED):
            log.warning("order.cancel_not_allowed")
            raise InvalidTransition(f"Cannot cancel an order in status {order.status}.")

        old_status = order.status
        order.status = OrderStatus.CANCELLED
        order.cancelled_at = timezone.now()
        order.version += 1
        order.add_domain_event(OrderCancelled(aggregate_id=order.id, payload={"notes": notes}))
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.CANCELLED,
            old_status=old_status,
            notes=notes or "Order cancelled",
            user_id=actor.user_id,
        )

        log.info("order.cancelled")
        return self._reload(order_id)

    # ------------------------------------------------------------------
    # Administrative override (unguarded)
    # ------------------------------------------------------------------

    @transaction.atomic
    def override_status(
        self,
        order_id: str,
        actor: ActorDTO,
        status: str,
        notes: str = "",
    ) -> Order:
        """Force *status* without checking the guarded transition rules.

        Stamps the milestone matching the target status when it is not
        stamped yet; may leave the order in a state the guarded flow
        could never reach (e.g. delivered but unpaid).

        Raises:
            NotAuthorized, InvalidOrderStatus, OrderNotFound.
        """
        _require_admin(actor, "override an order status")
        if status not in OrderStatus.values:
            raise InvalidOrderStatus(f"Unknown order status '{status}'.", field="status")

        order = self._load_for_update(order_id)
        log = logger.bind(
            order_id=str(order_id),
            current_status=order.status,
            new_status=status,
            actor_id=actor.user_id,
        )

        old_status = order.status
        order.status = status
        milestone = OVERRIDE_MILESTONES.get(status)
        if milestone and getattr(order, milestone) is None:
            setattr(order, milestone, timezone.now())
        order.version += 1
        order.add_domain_event(
            OrderStatusOverridden(
                aggregate_id=order.id,
                payload={"old_status": old_status, "new_status": status, "actor_id": actor.user_id},
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=status,
            old_status=old_status,
            notes=f"[override] {notes}".strip(),
            user_id=actor.user_id,
        )

        log.warning("order.status_overridden")
        return self._reload(order_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str, actor: ActorDTO) -> Order:
        """Retrieve an order visible to *actor* (buyer, seller on it, or admin).

        Raises:
            OrderNotFound, NotAuthorized.
        """
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        if not (_is_buyer(order, actor) or _is_seller(order, actor) or actor.is_admin):
            raise NotAuthorized("You are not allowed to view this order.")
        return order

    def list_orders(self, actor: ActorDTO, filters: Optional[Dict[str, Any]] = None) -> QuerySet[Order]:
        _require_admin(actor, "list all orders")
        return self._order_repo.list(filters)

    def list_buyer_orders(self, actor: ActorDTO) -> QuerySet[Order]:
        return self._order_repo.for_buyer(actor.user_id)

    def list_seller_orders(self, actor: ActorDTO) -> QuerySet[Order]:
        return self._order_repo.for_seller(actor.user_id)

    def seller_new_sales(self, actor: ActorDTO) -> QuerySet[Order]:
        return self._order_repo.seller_new_sales(actor.user_id)

    def seller_open_sales(self, actor: ActorDTO) -> QuerySet[Order]:
        return self._order_repo.seller_open_sales(actor.user_id)

    def list_disputes(self, actor: ActorDTO) -> QuerySet[Order]:
        _require_admin(actor, "list disputes")
        return self._order_repo.with_disputes()

    def recent_orders(self, actor: ActorDTO, limit: int = RECENT_ORDERS_LIMIT) -> List[Order]:
        _require_admin(actor, "list recent orders")
        return self._order_repo.recent(max(1, limit))

    def get_stats(self, actor: ActorDTO) -> Dict[str, Any]:
        _require_admin(actor, "view order statistics")
        return self._order_repo.stats(STATS_MONTHS)


class DisputeService:
    """Application service for the dispute sub-state-machine."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        notifications: OrderNotifications,
    ) -> None:
        self._order_repo = order_repository
        self._notifications = notifications

    @transaction.atomic
    def open_dispute(self, order_id: str, actor: ActorDTO, dto: OpenDisputeDTO) -> Order:
        """Open the (single) dispute of an order.

        Raises:
            OrderNotFound, NotAuthorized, InvalidDisputeReason,
            DisputeAlreadyExists.
        """
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        log = logger.bind(order_id=str(order_id), actor_id=actor.user_id)

        if not (_is_buyer(order, actor) or _is_seller(order, actor) or actor.is_admin):
            raise NotAuthorized("Only the buyer, a seller on the order or an admin can open a dispute.")
        if dto.reason not in DisputeReason.values:
            raise InvalidDisputeReason(f"Unknown dispute reason '{dto.reason}'.", field="reason")
        if order.has_dispute or not self._order_repo.claim_dispute(str(order.id)):
            log.warning("order.dispute_exists", dispute_status=order.dispute_status)
            raise DisputeAlreadyExists("A dispute already exists for this order.")

        order.refresh_from_db()
        dispute = self._order_repo.create_dispute(
            order,
            {
                "reason": dto.reason,
                "description": dto.description,
                "dispute_type": dto.dispute_type or "general",
                "created_by_id": actor.user_id,
                "status": DisputeStatus.OPEN,
            },
        )
        order.add_domain_event(
            DisputeOpened(
                aggregate_id=order.id,
                payload={"reason": dto.reason, "actor_id": actor.user_id},
            )
        )
        self._order_repo.save(order)

        order = self._order_repo.get_by_id(str(order_id))
        log.info("order.dispute_opened", reason=dto.reason)
        _best_effort(self._notifications.dispute_opened, order, dispute, actor)
        return order

    @transaction.atomic
    def update_dispute(self, order_id: str, actor: ActorDTO, dto: UpdateDisputeDTO) -> Order:
        """Move a dispute to a new status (admin only).

        Raises:
            NotAuthorized, OrderNotFound, DisputeNotFound,
            InvalidDisputeStatus, DisputeAlreadyClosed.
        """
        _require_admin(actor, "update disputes")
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        log = logger.bind(order_id=str(order_id), actor_id=actor.user_id)

        dispute = getattr(order, "dispute", None) if order.has_dispute else None
        if dispute is None:
            raise DisputeNotFound("This order has no dispute.")
        if dto.status not in DisputeStatus.values or dto.status == DisputeStatus.NONE:
            raise InvalidDisputeStatus(f"Unknown dispute status '{dto.status}'.", field="status")
        # resolved and closed are terminal
        if dispute.status in DISPUTE_FINAL_STATES:
            log.warning("order.dispute_closed", dispute_status=dispute.status, new_status=dto.status)
            raise DisputeAlreadyClosed(f"The dispute is already {dispute.status}.")

        old_status = dispute.status
        dispute.status = dto.status
        if dto.status in DISPUTE_FINAL_STATES:
            dispute.resolved_at = timezone.now()
            dispute.resolved_by_id = actor.user_id
        if dto.resolution is not None:
            dispute.resolution = dto.resolution
        if dto.admin_notes is not None:
            dispute.admin_notes = dto.admin_notes
        self._order_repo.save_dispute(dispute)

        order.dispute_status = dto.status
        order.version += 1
        order.add_domain_event(
            DisputeUpdated(
                aggregate_id=order.id,
                payload={"old_status": old_status, "new_status": dto.status, "actor_id": actor.user_id},
            )
        )
        self._order_repo.save(order)

        order = self._order_repo.get_by_id(str(order_id))
        log.info("order.dispute_updated", old_status=old_status, new_status=dto.status)
        _best_effort(self._notifications.dispute_updated, order, dispute, actor)
        return order
