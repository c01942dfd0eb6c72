"""Unit tests for OrderService lifecycle transitions.

Covers:
- Order creation priced from the catalog, with history and outbox event.
- Product validation (missing, inactive, soft-deleted) and empty orders.
- Ship / deliver / cancel preconditions and authorization.
- The unguarded administrative override.
- Full lifecycle with monotonic milestones.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from modules.core.models import OutboxEvent, OutboxTopic
from modules.orders.constants import OrderStatus
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO, ShipOrderDTO, ShippingAddressDTO
from modules.orders.exceptions import (
    EmptyOrder,
    InvalidOrderStatus,
    InvalidTransition,
    NotAuthorized,
    OrderAlreadyCompleted,
    OrderNotFound,
    OrderNotPaid,
    OrderNotShipped,
    ProductNotFound,
)
from modules.orders.models import Order
from modules.products.models import ProductStatus
from shared.domain.exceptions import PreconditionError, ValidationError

pytestmark = pytest.mark.unit

ADDRESS = ShippingAddressDTO(address="1 Harbour Road", city="Lisbon", postal_code="1100-001", country="PT")


def _dto(buyer, items, **overrides):
    data = {
        "buyer_id": buyer.pk,
        "items": items,
        "shipping_address": ADDRESS,
        "payment_method": "Stripe",
    }
    data.update(overrides)
    return CreateOrderDTO(**data)


# ===========================================================================
# create_order
# ===========================================================================


class TestCreateOrder:
    def test_creates_pending_order_priced_from_catalog(self, order):
        assert order.status == OrderStatus.PENDING
        assert order.items_price == Decimal("200.00")
        assert order.shipping_price == Decimal("35.00")
        assert order.service_fee == Decimal("100.00")
        assert order.tax_price == Decimal("15.00")
        assert order.total_price == Decimal("350.00")
        assert order.paid_at is None
        assert order.dispute_status == "none"
        assert order.version == 1

    def test_records_initial_history(self, order, buyer):
        history = list(order.status_history.all())
        assert len(history) == 1
        assert history[0].old_status is None
        assert history[0].new_status == OrderStatus.PENDING
        assert history[0].user_id == buyer.pk

    def test_writes_order_created_event(self, order):
        event = OutboxEvent.objects.get(topic=OutboxTopic.ORDERS, aggregate_id=str(order.id))
        assert event.event_type == "OrderCreated"
        assert event.payload["payload"]["total_price"] == "350.00"

    def test_does_not_touch_stock(self, order, product):
        product.refresh_from_db()
        assert product.stock_quantity == 10

    def test_empty_items_rejected(self, order_service, buyer):
        with pytest.raises(EmptyOrder) as exc_info:
            order_service.create_order(_dto(buyer, []))
        assert isinstance(exc_info.value, ValidationError)
        assert not Order.objects.exists()

    def test_unknown_product_rejects_whole_order(self, order_service, buyer, product):
        items = [
            CreateOrderItemDTO(product_id=product.id, quantity=1),
            CreateOrderItemDTO(product_id=uuid4(), quantity=1),
        ]
        with pytest.raises(ProductNotFound):
            order_service.create_order(_dto(buyer, items))
        assert not Order.objects.exists()

    def test_inactive_product_rejected(self, order_service, buyer, product):
        product.status = ProductStatus.INACTIVE
        product.save()
        with pytest.raises(ProductNotFound):
            order_service.create_order(_dto(buyer, [CreateOrderItemDTO(product_id=product.id, quantity=1)]))

    def test_soft_deleted_product_rejected(self, order_service, buyer, product):
        product.delete()
        with pytest.raises(ProductNotFound):
            order_service.create_order(_dto(buyer, [CreateOrderItemDTO(product_id=product.id, quantity=1)]))

    def test_unknown_payment_method_rejected(self, order_service, buyer, product):
        items = [CreateOrderItemDTO(product_id=product.id, quantity=1)]
        with pytest.raises(ValidationError) as exc_info:
            order_service.create_order(_dto(buyer, items, payment_method="Barter"))
        assert exc_info.value.field == "payment_method"


# ===========================================================================
# ship_order
# ===========================================================================


class TestShipOrder:
    def test_ship_unpaid_raises(self, order_service, order, seller_actor):
        with pytest.raises(OrderNotPaid) as exc_info:
            order_service.ship_order(str(order.id), seller_actor, ShipOrderDTO())
        assert isinstance(exc_info.value, PreconditionError)
        order.refresh_from_db()
        assert order.status == OrderStatus.PENDING

    def test_ship_records_tracking(self, shipped_order):
        assert shipped_order.status == OrderStatus.SHIPPED
        assert shipped_order.is_shipped
        assert shipped_order.tracking_number == "TRK-1"
        assert shipped_order.carrier == "Standard Shipping"

    def test_buyer_and_admin_may_ship(self, order_service, paid_order, buyer_actor):
        order = order_service.ship_order(str(paid_order.id), buyer_actor, ShipOrderDTO(carrier="DHL"))
        assert order.carrier == "DHL"

    def test_outsider_cannot_ship(self, order_service, paid_order, outsider_actor):
        with pytest.raises(NotAuthorized):
            order_service.ship_order(str(paid_order.id), outsider_actor, ShipOrderDTO())

    def test_ship_twice_rejected(self, order_service, shipped_order, seller_actor):
        with pytest.raises(InvalidTransition):
            order_service.ship_order(str(shipped_order.id), seller_actor, ShipOrderDTO())

    def test_unknown_order(self, order_service, seller_actor):
        with pytest.raises(OrderNotFound):
            order_service.ship_order(str(uuid4()), seller_actor, ShipOrderDTO())


# ===========================================================================
# confirm_delivery
# ===========================================================================


class TestConfirmDelivery:
    def test_deliver_unshipped_raises(self, order_service, paid_order, buyer_actor):
        with pytest.raises(OrderNotShipped):
            order_service.confirm_delivery(str(paid_order.id), buyer_actor)

    def test_deliver_stamps_receipt(self, delivered_order):
        assert delivered_order.status == OrderStatus.DELIVERED
        assert delivered_order.is_delivered
        assert delivered_order.confirmed_receipt

    def test_deliver_twice_rejected(self, order_service, delivered_order, buyer_actor):
        with pytest.raises(PreconditionError):
            order_service.confirm_delivery(str(delivered_order.id), buyer_actor)

    def test_seller_cannot_confirm_receipt(self, order_service, shipped_order, seller_actor):
        with pytest.raises(NotAuthorized):
            order_service.confirm_delivery(str(shipped_order.id), seller_actor)


# ===========================================================================
# cancel_order
# ===========================================================================


class TestCancelOrder:
    def test_cancel_pending_unpaid(self, order_service, order, buyer_actor):
        cancelled = order_service.cancel_order(str(order.id), buyer_actor, notes="changed my mind")
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.is_cancelled
        assert cancelled.status_history.last().notes == "changed my mind"

    def test_cancel_paid_and_delivered_raises(self, order_service, delivered_order, buyer_actor):
        with pytest.raises(OrderAlreadyCompleted):
            order_service.cancel_order(str(delivered_order.id), buyer_actor)
        delivered_order.refresh_from_db()
        assert delivered_order.status == OrderStatus.DELIVERED

    def test_cancel_twice_rejected(self, order_service, order, buyer_actor):
        order_service.cancel_order(str(order.id), buyer_actor)
        with pytest.raises(PreconditionError):
            order_service.cancel_order(str(order.id), buyer_actor)

    def test_seller_cannot_cancel(self, order_service, order, seller_actor):
        with pytest.raises(NotAuthorized):
            order_service.cancel_order(str(order.id), seller_actor)

    def test_admin_can_cancel_paid_order_without_restoring_stock(
        self, order_service, paid_order, admin_actor, product
    ):
        order_service.cancel_order(str(paid_order.id), admin_actor)
        product.refresh_from_db()
        assert product.stock_quantity == 8

    def test_cancelled_order_cannot_be_paid(self, order_service, order, buyer_actor):
        from modules.orders.dtos import ConfirmPaymentDTO

        order_service.cancel_order(str(order.id), buyer_actor)
        with pytest.raises(InvalidTransition):
            order_service.confirm_payment(str(order.id), ConfirmPaymentDTO(transaction_id="X"))


# ===========================================================================
# override_status
# ===========================================================================


class TestOverrideStatus:
    def test_admin_override_ignores_guards(self, order_service, order, admin_actor):
        overridden = order_service.override_status(str(order.id), admin_actor, "delivered", "manual fix")

        assert overridden.status == OrderStatus.DELIVERED
        assert overridden.delivered_at is not None
        assert not overridden.is_paid
        assert not overridden.confirmed_receipt
        assert overridden.status_history.last().notes == "[override] manual fix"

    def test_override_keeps_existing_milestone(self, order_service, shipped_order, admin_actor):
        shipped_at = shipped_order.shipped_at
        overridden = order_service.override_status(str(shipped_order.id), admin_actor, "shipped")
        assert overridden.shipped_at == shipped_at

    def test_override_writes_event(self, order_service, order, admin_actor):
        order_service.override_status(str(order.id), admin_actor, "processing")
        assert OutboxEvent.objects.filter(
            aggregate_id=str(order.id), event_type="OrderStatusOverridden"
        ).exists()

    def test_non_admin_rejected(self, order_service, order, buyer_actor):
        with pytest.raises(NotAuthorized):
            order_service.override_status(str(order.id), buyer_actor, "delivered")

    def test_unknown_status_rejected(self, order_service, order, admin_actor):
        with pytest.raises(InvalidOrderStatus):
            order_service.override_status(str(order.id), admin_actor, "teleported")


# ===========================================================================
# Full lifecycle
# ===========================================================================


class TestLifecycle:
    def test_milestones_are_stamped_once_and_monotonic(self, delivered_order):
        order = delivered_order
        assert order.created_at <= order.paid_at <= order.shipped_at <= order.delivered_at
        statuses = [h.new_status for h in order.status_history.all()]
        assert statuses == [
            OrderStatus.PENDING,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        ]

    def test_version_increases_on_every_transition(self, delivered_order):
        assert delivered_order.version == 4

    def test_get_order_visibility(self, order_service, order, buyer_actor, seller_actor, admin_actor, outsider_actor):
        for allowed in (buyer_actor, seller_actor, admin_actor):
            assert order_service.get_order(str(order.id), allowed).id == order.id
        with pytest.raises(NotAuthorized):
            order_service.get_order(str(order.id), outsider_actor)

    def test_get_order_malformed_id(self, order_service, buyer_actor):
        with pytest.raises(OrderNotFound):
            order_service.get_order("not-a-uuid", buyer_actor)
