from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from modules.accounts.dtos import ActorDTO
from modules.accounts.repositories.django_repository import UserDjangoRepository
from modules.notifications.services import NotificationService
from modules.orders.dtos import (
    ConfirmPaymentDTO,
    CreateOrderDTO,
    CreateOrderItemDTO,
    ShipOrderDTO,
    ShippingAddressDTO,
)
from modules.orders.notifications import OrderNotifications
from modules.orders.pricing import PricingPolicy
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import DisputeService, OrderService
from modules.payments.interfaces import PaymentVerification
from modules.payments.registry import PAYPAL, PaymentVerifierRegistry
from modules.products.models import Product, ProductStatus
from modules.products.repositories.django_repository import ProductDjangoRepository

User = get_user_model()


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture()
def buyer():
    return User.objects.create_user(
        "bea", email="bea@example.com", password="pw", first_name="Bea", last_name="Buyer"
    )


@pytest.fixture()
def seller():
    return User.objects.create_user(
        "sam", email="sam@example.com", password="pw", first_name="Sam", last_name="Seller"
    )


@pytest.fixture()
def other_seller():
    return User.objects.create_user("olga", email="olga@example.com", password="pw")


@pytest.fixture()
def admin_user():
    return User.objects.create_user(
        "root", email="admin@example.com", password="pw", is_staff=True
    )


@pytest.fixture()
def outsider():
    return User.objects.create_user("eve", email="eve@example.com", password="pw")


def actor(user) -> ActorDTO:
    return ActorDTO.from_user(user)


@pytest.fixture()
def buyer_actor(buyer):
    return actor(buyer)


@pytest.fixture()
def seller_actor(seller):
    return actor(seller)


@pytest.fixture()
def admin_actor(admin_user):
    return actor(admin_user)


@pytest.fixture()
def outsider_actor(outsider):
    return actor(outsider)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.fixture()
def product(seller):
    return Product.objects.create(
        seller=seller,
        name="Sunset over the Bay",
        image="/images/sunset.jpg",
        price=Decimal("100.00"),
        stock_quantity=10,
        status=ProductStatus.ACTIVE,
    )


@pytest.fixture()
def other_product(other_seller):
    return Product.objects.create(
        seller=other_seller,
        name="Charcoal Study",
        price=Decimal("20.00"),
        stock_quantity=5,
        status=ProductStatus.ACTIVE,
    )


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture()
def paypal_verifier():
    verifier = MagicMock()
    verifier.verify.return_value = PaymentVerification(
        verified=True, transaction_id="PAYPAL-TX-1", status="COMPLETED", payer_email="bea@paypal.test"
    )
    return verifier


@pytest.fixture()
def payment_verifiers(paypal_verifier):
    return PaymentVerifierRegistry({PAYPAL: paypal_verifier})


@pytest.fixture()
def order_notifications():
    return OrderNotifications(NotificationService(), UserDjangoRepository())


@pytest.fixture()
def order_service(payment_verifiers, order_notifications):
    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
        notifications=order_notifications,
        payment_verifiers=payment_verifiers,
        pricing_policy=PricingPolicy(),
    )


@pytest.fixture()
def dispute_service(order_notifications):
    return DisputeService(
        order_repository=OrderDjangoRepository(),
        notifications=order_notifications,
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


SHIPPING_ADDRESS = ShippingAddressDTO(
    address="1 Harbour Road", city="Lisbon", postal_code="1100-001", country="PT"
)


@pytest.fixture()
def make_order(order_service, buyer, product):
    """Factory: ``make_order(quantity=2, payment_method="Stripe", items=None)``."""

    def _make(quantity=2, payment_method="Stripe", items=None, buyer_id=None):
        lines = items or [CreateOrderItemDTO(product_id=product.id, quantity=quantity)]
        return order_service.create_order(
            CreateOrderDTO(
                buyer_id=buyer_id or buyer.pk,
                items=lines,
                shipping_address=SHIPPING_ADDRESS,
                payment_method=payment_method,
            )
        )

    return _make


@pytest.fixture()
def order(make_order):
    return make_order()


@pytest.fixture()
def paid_order(order_service, order):
    return order_service.confirm_payment(str(order.id), ConfirmPaymentDTO(transaction_id="STRIPE-1"))


@pytest.fixture()
def shipped_order(order_service, paid_order, seller_actor):
    return order_service.ship_order(
        str(paid_order.id), seller_actor, ShipOrderDTO(tracking_number="TRK-1")
    )


@pytest.fixture()
def delivered_order(order_service, shipped_order, buyer_actor):
    return order_service.confirm_delivery(str(shipped_order.id), buyer_actor)
