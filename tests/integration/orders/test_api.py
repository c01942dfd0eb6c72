"""Integration tests for the order HTTP API.

Covers:
- Checkout, payment, shipping, delivery and cancellation over HTTP.
- Role checks: buyer / seller / admin visibility and admin-only endpoints.
- Domain errors rendered as the standard error envelope with their status.
- Listing filters and pagination.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from rest_framework.test import APIClient

from modules.orders.dtos import OpenDisputeDTO
from modules.products.models import Product

pytestmark = pytest.mark.integration

ORDERS_URL = "/api/v1/orders/"
ADDRESS = {
    "address": "1 Harbour Road",
    "city": "Lisbon",
    "postal_code": "1100-001",
    "country": "PT",
}


def _client(user) -> APIClient:
    client = APIClient()
    client.force_authenticate(user=user)
    return client


def _url(order, action="") -> str:
    base = f"{ORDERS_URL}{order.id}/"
    return f"{base}{action}/" if action else base


def _error_code(response) -> str:
    return response.json()["errors"][0]["code"]


@pytest.fixture()
def buyer_client(buyer):
    return _client(buyer)


@pytest.fixture()
def seller_client(seller):
    return _client(seller)


@pytest.fixture()
def admin_client(admin_user):
    return _client(admin_user)


@pytest.fixture()
def outsider_client(outsider):
    return _client(outsider)


def _checkout_payload(product, quantity=2, **overrides):
    payload = {
        "items": [{"product_id": str(product.id), "quantity": quantity}],
        "shipping_address": ADDRESS,
        "payment_method": "Stripe",
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


class TestCreateOrder:
    def test_create(self, buyer_client, buyer, product):
        response = buyer_client.post(ORDERS_URL, _checkout_payload(product), format="json")

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["buyer_id"] == buyer.pk
        assert data["buyer_email"] == "bea@example.com"
        assert data["total_price"] == "350.00"
        assert data["is_paid"] is False
        assert data["dispute"] is None
        assert data["shipping_address"]["city"] == "Lisbon"
        assert data["packaging_option"] == "Standard"
        (item,) = data["items"]
        assert item["name"] == "Sunset over the Bay"
        assert item["unit_price"] == "100.00"
        assert item["seller_name"] == "Sam Seller"

    def test_client_price_is_ignored(self, buyer_client, product):
        payload = _checkout_payload(product)
        payload["items"][0]["price"] = "0.01"
        payload["total_price"] = "0.01"

        response = buyer_client.post(ORDERS_URL, payload, format="json")

        assert response.status_code == 201
        assert response.json()["items"][0]["unit_price"] == "100.00"
        assert response.json()["total_price"] == "350.00"

    def test_empty_items(self, buyer_client, product):
        response = buyer_client.post(ORDERS_URL, _checkout_payload(product, items=[]), format="json")

        assert response.status_code == 400
        assert _error_code(response) == "empty_order"
        assert response.json()["errors"][0]["attr"] == "items"

    def test_unknown_product(self, buyer_client, product):
        payload = _checkout_payload(product)
        payload["items"][0]["product_id"] = "0190f0f0-0000-7000-8000-000000000000"

        response = buyer_client.post(ORDERS_URL, payload, format="json")

        assert response.status_code == 404
        assert response.json()["type"] == "client_error"

    def test_unknown_payment_method(self, buyer_client, product):
        response = buyer_client.post(
            ORDERS_URL, _checkout_payload(product, payment_method="Barter"), format="json"
        )
        assert response.status_code == 400
        assert _error_code(response) == "invalid_payment_method"

    def test_zero_quantity_is_field_error(self, buyer_client, product):
        response = buyer_client.post(ORDERS_URL, _checkout_payload(product, quantity=0), format="json")

        assert response.status_code == 400
        data = response.json()
        assert data["type"] == "validation_error"
        assert data["errors"][0]["attr"] == "items.0.quantity"

    def test_requires_authentication(self, api_client, product):
        response = api_client.post(ORDERS_URL, _checkout_payload(product), format="json")
        assert response.status_code == 401


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    def test_full_lifecycle(self, buyer_client, seller_client, order, product):
        paid = buyer_client.post(_url(order, "pay"), {"id": "STRIPE-9"}, format="json")
        assert paid.status_code == 200
        assert paid.json()["status"] == "processing"
        assert paid.json()["payment_result"]["id"] == "STRIPE-9"

        shipped = seller_client.post(
            _url(order, "ship"), {"tracking_number": "TRK-7", "carrier": "DHL"}, format="json"
        )
        assert shipped.status_code == 200
        assert shipped.json()["shipping_details"]["tracking_number"] == "TRK-7"
        assert shipped.json()["shipping_details"]["carrier"] == "DHL"

        delivered = buyer_client.post(_url(order, "deliver"))
        assert delivered.status_code == 200
        data = delivered.json()
        assert data["status"] == "delivered"
        assert data["confirmed_receipt"] is True
        assert data["version"] == 4
        assert len(data["status_history"]) == 4

        product.refresh_from_db()
        assert product.stock_quantity == 8

    def test_pay_twice_returns_same_order(self, buyer_client, paid_order, product):
        response = buyer_client.post(_url(paid_order, "pay"), {"id": "STRIPE-2"}, format="json")

        assert response.status_code == 200
        assert response.json()["payment_result"]["id"] == "STRIPE-1"
        product.refresh_from_db()
        assert product.stock_quantity == 8

    def test_outsider_cannot_pay(self, outsider_client, order):
        response = outsider_client.post(_url(order, "pay"), {"id": "X"}, format="json")
        assert response.status_code == 403
        assert _error_code(response) == "not_authorized"

    def test_paypal_unverified_is_402(self, buyer_client, make_order, payment_verifiers, paypal_verifier):
        from modules.payments.interfaces import PaymentVerification

        paypal_verifier.verify.return_value = PaymentVerification(
            verified=False, transaction_id="PP-1", status="PENDING"
        )
        order = make_order(payment_method="PayPal")

        with patch("modules.orders.views.PaymentVerifierRegistry.from_settings", return_value=payment_verifiers):
            response = buyer_client.post(_url(order, "pay"), {"id": "PP-1"}, format="json")

        assert response.status_code == 402
        assert _error_code(response) == "payment_not_verified"

    def test_ship_unpaid_is_conflict(self, seller_client, order):
        response = seller_client.post(_url(order, "ship"), {}, format="json")
        assert response.status_code == 409
        assert _error_code(response) == "order_not_paid"

    def test_deliver_unshipped_is_conflict(self, buyer_client, paid_order):
        response = buyer_client.post(_url(paid_order, "deliver"))
        assert response.status_code == 409
        assert _error_code(response) == "order_not_shipped"

    def test_seller_cannot_confirm_delivery(self, seller_client, shipped_order):
        response = seller_client.post(_url(shipped_order, "deliver"))
        assert response.status_code == 403

    def test_cancel(self, buyer_client, order):
        response = buyer_client.post(_url(order, "cancel"), {"notes": "Changed my mind"}, format="json")

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["is_cancelled"] is True

    def test_cancel_delivered_is_conflict(self, buyer_client, delivered_order):
        response = buyer_client.post(_url(delivered_order, "cancel"))
        assert response.status_code == 409
        assert _error_code(response) == "order_completed"

    def test_admin_override(self, admin_client, order):
        response = admin_client.post(
            _url(order, "status"), {"status": "delivered", "notes": "manual"}, format="json"
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "delivered"
        assert data["delivered_at"] is not None
        assert data["is_paid"] is False

    def test_override_requires_admin(self, buyer_client, order):
        response = buyer_client.post(_url(order, "status"), {"status": "shipped"}, format="json")
        assert response.status_code == 403

    def test_override_unknown_status(self, admin_client, order):
        response = admin_client.post(_url(order, "status"), {"status": "lost"}, format="json")
        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "status"


# ---------------------------------------------------------------------------
# Visibility / listings
# ---------------------------------------------------------------------------


class TestVisibility:
    def test_buyer_and_seller_can_retrieve(self, buyer_client, seller_client, order):
        assert buyer_client.get(_url(order)).status_code == 200
        assert seller_client.get(_url(order)).status_code == 200

    def test_outsider_cannot_retrieve(self, outsider_client, order):
        response = outsider_client.get(_url(order))
        assert response.status_code == 403

    def test_unknown_order(self, buyer_client):
        response = buyer_client.get(f"{ORDERS_URL}not-a-uuid/")
        assert response.status_code == 404
        assert _error_code(response) == "order_not_found"

    def test_admin_list_requires_admin(self, buyer_client):
        assert buyer_client.get(ORDERS_URL).status_code == 403

    def test_mine(self, buyer_client, outsider_client, order):
        response = buyer_client.get(f"{ORDERS_URL}mine/")

        assert response.status_code == 200
        assert response.json()["count"] == 1
        assert response.json()["results"][0]["id"] == str(order.id)
        assert outsider_client.get(f"{ORDERS_URL}mine/").json()["count"] == 0

    def test_seller_views(self, seller_client, order, paid_order):
        assert seller_client.get(f"{ORDERS_URL}seller/").json()["count"] == 1
        assert seller_client.get(f"{ORDERS_URL}new-sales/").json()["count"] == 1
        assert seller_client.get(f"{ORDERS_URL}open-sales/").json()["count"] == 1


class TestAdminListing:
    @pytest.fixture()
    def orders(self, make_order, order_service, buyer_actor):
        from modules.orders.dtos import ConfirmPaymentDTO

        pending = make_order(quantity=1)
        paid = make_order(quantity=2)
        order_service.confirm_payment(str(paid.id), ConfirmPaymentDTO(transaction_id="T-PAID"))
        cancelled = make_order(quantity=1, payment_method="Cash")
        order_service.cancel_order(str(cancelled.id), buyer_actor)
        return {"pending": pending, "paid": paid, "cancelled": cancelled}

    def _ids(self, response) -> set:
        return {row["id"] for row in response.json()["results"]}

    def test_lists_everything(self, admin_client, orders):
        response = admin_client.get(ORDERS_URL)
        assert response.status_code == 200
        assert response.json()["count"] == 3

    def test_filter_status(self, admin_client, orders):
        response = admin_client.get(ORDERS_URL, {"status": "PROCESSING"})
        assert self._ids(response) == {str(orders["paid"].id)}

    def test_filter_is_paid(self, admin_client, orders):
        paid = admin_client.get(ORDERS_URL, {"is_paid": "true"})
        unpaid = admin_client.get(ORDERS_URL, {"is_paid": "false"})
        assert self._ids(paid) == {str(orders["paid"].id)}
        assert self._ids(unpaid) == {str(orders["pending"].id), str(orders["cancelled"].id)}

    def test_filter_payment_method(self, admin_client, orders):
        response = admin_client.get(ORDERS_URL, {"payment_method": "Cash"})
        assert self._ids(response) == {str(orders["cancelled"].id)}

    def test_filter_total_range(self, admin_client, orders):
        response = admin_client.get(ORDERS_URL, {"min_total": "300"})
        assert self._ids(response) == {str(orders["paid"].id)}

    def test_search_by_order_number(self, admin_client, orders):
        response = admin_client.get(ORDERS_URL, {"search": orders["pending"].order_number})
        assert self._ids(response) == {str(orders["pending"].id)}

    def test_pagination(self, admin_client, orders):
        response = admin_client.get(ORDERS_URL, {"page_size": 2})
        data = response.json()
        assert data["count"] == 3
        assert len(data["results"]) == 2
        assert data["next"] is not None

    def test_recent(self, admin_client, orders):
        response = admin_client.get(f"{ORDERS_URL}recent/", {"limit": 2})
        assert response.status_code == 200
        assert len(response.json()) == 2

    def test_stats(self, admin_client, orders):
        response = admin_client.get(f"{ORDERS_URL}stats/")
        assert response.status_code == 200
        data = response.json()
        assert data["total_orders"] == 3
        assert data["paid_orders"] == 1
        assert data["cancelled_orders"] == 1

    def test_stats_requires_admin(self, seller_client):
        assert seller_client.get(f"{ORDERS_URL}stats/").status_code == 403


# ---------------------------------------------------------------------------
# Disputes
# ---------------------------------------------------------------------------


class TestDisputeApi:
    def test_open_dispute(self, buyer_client, paid_order):
        response = buyer_client.post(
            _url(paid_order, "dispute"),
            {"reason": "item_not_received", "description": "Nothing yet"},
            format="json",
        )

        assert response.status_code == 201
        data = response.json()
        assert data["dispute_status"] == "open"
        assert data["dispute"]["reason"] == "item_not_received"
        assert data["dispute"]["created_by_email"] == "bea@example.com"

    def test_second_dispute_is_conflict(self, buyer_client, seller_client, paid_order):
        buyer_client.post(_url(paid_order, "dispute"), {"reason": "other"}, format="json")

        response = seller_client.post(_url(paid_order, "dispute"), {"reason": "other"}, format="json")

        assert response.status_code == 409
        assert _error_code(response) == "dispute_exists"

    def test_unknown_reason(self, buyer_client, paid_order):
        response = buyer_client.post(_url(paid_order, "dispute"), {"reason": "meh"}, format="json")
        assert response.status_code == 400
        assert _error_code(response) == "invalid_dispute_reason"

    def test_admin_updates_dispute(self, admin_client, dispute_service, paid_order, buyer_actor):
        dispute_service.open_dispute(str(paid_order.id), buyer_actor, OpenDisputeDTO(reason="other"))

        response = admin_client.patch(
            _url(paid_order, "dispute"),
            {"status": "resolved", "resolution": "Refund issued"},
            format="json",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["dispute_status"] == "resolved"
        assert data["dispute"]["resolution"] == "Refund issued"
        assert data["dispute"]["resolved_by_email"] == "admin@example.com"

    def test_buyer_cannot_update_dispute(self, buyer_client, dispute_service, paid_order, buyer_actor):
        dispute_service.open_dispute(str(paid_order.id), buyer_actor, OpenDisputeDTO(reason="other"))
        response = buyer_client.patch(_url(paid_order, "dispute"), {"status": "closed"}, format="json")
        assert response.status_code == 403

    def test_update_without_dispute(self, admin_client, paid_order):
        response = admin_client.patch(_url(paid_order, "dispute"), {"status": "closed"}, format="json")
        assert response.status_code == 409
        assert _error_code(response) == "dispute_not_found"

    def test_closed_dispute_cannot_reopen(self, admin_client, dispute_service, paid_order, buyer_actor):
        dispute_service.open_dispute(str(paid_order.id), buyer_actor, OpenDisputeDTO(reason="other"))
        admin_client.patch(_url(paid_order, "dispute"), {"status": "closed"}, format="json")

        response = admin_client.patch(_url(paid_order, "dispute"), {"status": "open"}, format="json")

        assert response.status_code == 409
        assert _error_code(response) == "dispute_closed"

    def test_dispute_queue(self, admin_client, dispute_service, paid_order, order_service, make_order, buyer_actor):
        make_order(quantity=1)
        dispute_service.open_dispute(str(paid_order.id), buyer_actor, OpenDisputeDTO(reason="other"))

        response = admin_client.get(f"{ORDERS_URL}disputes/")

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["results"][0]["dispute"]["status"] == "open"


def test_product_stock_untouched_by_cancel(buyer_client, paid_order, product):
    buyer_client.post(_url(paid_order, "cancel"))
    assert Product.objects.get(pk=product.pk).stock_quantity == 8
