"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.

Input serializers only check shape; enum membership (payment method,
dispute reason/status, override status) is validated by the services so
the error codes stay the domain ones.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import DEFAULT_CARRIER, PackagingOption
from modules.orders.models import Dispute, Order, OrderItem, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CreateOrderItemSerializer(serializers.Serializer):
    """Validates a single line of a checkout request.

    Any client-supplied price is ignored: unknown fields are dropped.
    """

    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class ShippingAddressSerializer(serializers.Serializer):
    address = serializers.CharField(max_length=255)
    city = serializers.CharField(max_length=120)
    postal_code = serializers.CharField(max_length=32)
    country = serializers.CharField(max_length=120)
    state = serializers.CharField(max_length=120, required=False, default="", allow_blank=True)
    phone = serializers.CharField(max_length=40, required=False, default="", allow_blank=True)


class CreateOrderSerializer(serializers.Serializer):
    """Validates the checkout payload.

    An empty ``items`` list passes here and is rejected by the service as
    ``empty_order``.
    """

    items = CreateOrderItemSerializer(many=True)
    shipping_address = ShippingAddressSerializer()
    payment_method = serializers.CharField(max_length=20)
    packaging_option = serializers.CharField(
        max_length=20, required=False, default=PackagingOption.STANDARD
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class ConfirmPaymentSerializer(serializers.Serializer):
    """Gateway payment result, as sent by the checkout front end."""

    id = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    status = serializers.CharField(required=False, default="COMPLETED")
    email_address = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, default=None
    )
    update_time = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, default=None
    )


class ShipOrderSerializer(serializers.Serializer):
    tracking_number = serializers.CharField(
        max_length=120, required=False, default="", allow_blank=True
    )
    carrier = serializers.CharField(
        max_length=120, required=False, default=DEFAULT_CARRIER, allow_blank=True
    )
    shipped_at = serializers.DateTimeField(required=False, allow_null=True, default=None)


class NotesSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class OverrideStatusSerializer(NotesSerializer):
    status = serializers.CharField(max_length=20)


class OpenDisputeSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=40)
    description = serializers.CharField(required=False, default="", allow_blank=True)
    dispute_type = serializers.CharField(max_length=40, required=False, default="general")


class UpdateDisputeSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=20)
    resolution = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    admin_notes = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, default=None
    )


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Read serializer for the line-item snapshot."""

    seller_name = serializers.SerializerMethodField()

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "seller_id",
            "seller_name",
            "name",
            "image",
            "quantity",
            "unit_price",
            "subtotal",
        ]
        read_only_fields = fields

    def get_seller_name(self, obj: OrderItem) -> str:
        return obj.seller.get_full_name() or obj.seller.get_username()


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "old_status",
            "new_status",
            "notes",
            "user_id",
            "created_at",
        ]
        read_only_fields = fields


class DisputeSerializer(serializers.ModelSerializer):
    created_by_email = serializers.EmailField(source="created_by.email", read_only=True, default=None)
    resolved_by_email = serializers.EmailField(source="resolved_by.email", read_only=True, default=None)

    class Meta:
        model = Dispute
        fields = [
            "id",
            "reason",
            "description",
            "dispute_type",
            "status",
            "created_by_id",
            "created_by_email",
            "resolved_at",
            "resolved_by_id",
            "resolved_by_email",
            "resolution",
            "admin_notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ShippingDetailsSerializer(serializers.Serializer):
    tracking_number = serializers.CharField()
    carrier = serializers.CharField()
    shipped_at = serializers.DateTimeField(allow_null=True)


class PaymentResultSerializer(serializers.Serializer):
    id = serializers.CharField()
    status = serializers.CharField()
    email_address = serializers.CharField()
    update_time = serializers.CharField()


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested items, dispute and history."""

    buyer_email = serializers.EmailField(source="buyer.email", read_only=True)
    shipping_address = serializers.DictField(source="shipping_address_data", read_only=True)
    shipping_details = ShippingDetailsSerializer(read_only=True)
    payment_result = PaymentResultSerializer(read_only=True, allow_null=True)
    items = OrderItemSerializer(many=True, read_only=True)
    dispute = serializers.SerializerMethodField()
    status_history = StatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "buyer_id",
            "buyer_email",
            "status",
            "dispute_status",
            "payment_method",
            "packaging_option",
            "shipping_address",
            "shipping_details",
            "payment_result",
            "items_price",
            "tax_price",
            "shipping_price",
            "service_fee",
            "discount_amount",
            "total_price",
            "is_paid",
            "paid_at",
            "is_shipped",
            "shipped_at",
            "is_delivered",
            "delivered_at",
            "is_cancelled",
            "cancelled_at",
            "confirmed_receipt",
            "confirmed_receipt_at",
            "notes",
            "version",
            "created_at",
            "updated_at",
            "items",
            "dispute",
            "status_history",
        ]
        read_only_fields = fields

    def get_dispute(self, obj: Order) -> dict | None:
        if not obj.has_dispute:
            return None
        dispute = getattr(obj, "dispute", None)
        return DisputeSerializer(dispute).data if dispute else None


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order lists (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "buyer_id",
            "status",
            "dispute_status",
            "payment_method",
            "total_price",
            "is_paid",
            "is_delivered",
            "created_at",
        ]
        read_only_fields = fields
