from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import uuid6
from django.conf import settings
from django.db import migrations, models

ORDER_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("processing", "Processing"),
    ("shipped", "Shipped"),
    ("delivered", "Delivered"),
    ("cancelled", "Cancelled"),
]

DISPUTE_STATUS_CHOICES = [
    ("none", "None"),
    ("open", "Open"),
    ("in_review", "In review"),
    ("resolved", "Resolved"),
    ("closed", "Closed"),
]


def _pk():
    return models.UUIDField(default=uuid6.uuid7, editable=False, primary_key=True, serialize=False)


def _money():
    return models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("products", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", _pk()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "deleted_at",
                    models.DateTimeField(blank=True, db_index=True, default=None, null=True),
                ),
                ("order_number", models.CharField(editable=False, max_length=20, unique=True)),
                ("shipping_address", models.CharField(max_length=255)),
                ("shipping_city", models.CharField(max_length=120)),
                ("shipping_state", models.CharField(blank=True, default="", max_length=120)),
                ("shipping_postal_code", models.CharField(max_length=32)),
                ("shipping_country", models.CharField(max_length=120)),
                ("shipping_phone", models.CharField(blank=True, default="", max_length=40)),
                (
                    "payment_method",
                    models.CharField(
                        choices=[
                            ("PayPal", "PayPal"),
                            ("Stripe", "Stripe"),
                            ("Cash", "Cash"),
                            ("Bank Transfer", "Bank Transfer"),
                            ("Card", "Card"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "packaging_option",
                    models.CharField(
                        choices=[("Standard", "Standard"), ("ArtSafe", "ArtSafe")],
                        default="Standard",
                        max_length=20,
                    ),
                ),
                (
                    "payment_transaction_id",
                    models.CharField(blank=True, default=None, max_length=255, null=True, unique=True),
                ),
                ("payment_status", models.CharField(blank=True, default="", max_length=64)),
                ("payment_email", models.CharField(blank=True, default="", max_length=254)),
                ("payment_update_time", models.CharField(blank=True, default="", max_length=64)),
                ("items_price", _money()),
                ("tax_price", _money()),
                ("shipping_price", _money()),
                ("service_fee", _money()),
                ("discount_amount", _money()),
                ("total_price", _money()),
                ("paid_at", models.DateTimeField(blank=True, default=None, null=True)),
                ("shipped_at", models.DateTimeField(blank=True, default=None, null=True)),
                ("delivered_at", models.DateTimeField(blank=True, default=None, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, default=None, null=True)),
                ("confirmed_receipt_at", models.DateTimeField(blank=True, default=None, null=True)),
                (
                    "status",
                    models.CharField(choices=ORDER_STATUS_CHOICES, default="pending", max_length=20),
                ),
                (
                    "dispute_status",
                    models.CharField(choices=DISPUTE_STATUS_CHOICES, default="none", max_length=20),
                ),
                ("tracking_number", models.CharField(blank=True, default="", max_length=120)),
                ("carrier", models.CharField(blank=True, default="", max_length=120)),
                ("notes", models.TextField(blank=True, default="")),
                ("version", models.PositiveIntegerField(default=1)),
                (
                    "buyer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status"], name="orders_status_idx"),
                    models.Index(fields=["dispute_status"], name="orders_dispute_status_idx"),
                    models.Index(fields=["paid_at"], name="orders_paid_at_idx"),
                    models.Index(fields=["-created_at"], name="orders_created_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q((f"{name}__gte", 0)),
                        name=f"orders_{name}_non_negative",
                    )
                    for name in (
                        "items_price",
                        "tax_price",
                        "shipping_price",
                        "service_fee",
                        "discount_amount",
                        "total_price",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                ("id", _pk()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=255)),
                ("image", models.CharField(blank=True, default="", max_length=500)),
                (
                    "quantity",
                    models.PositiveIntegerField(
                        default=1, validators=[django.core.validators.MinValueValidator(1)]
                    ),
                ),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=10)),
                ("subtotal", models.DecimalField(decimal_places=2, editable=False, max_digits=12)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="orders.order",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="order_items",
                        to="products.product",
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sold_items",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "order_items",
                "ordering": ["created_at", "id"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("quantity__gte", 1)),
                        name="order_items_quantity_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Dispute",
            fields=[
                ("id", _pk()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "reason",
                    models.CharField(
                        choices=[
                            ("item_not_received", "Item not received"),
                            ("item_not_as_described", "Item not as described"),
                            ("damaged_item", "Damaged item"),
                            ("wrong_item", "Wrong item"),
                            ("payment_issue", "Payment issue"),
                            ("other", "Other"),
                        ],
                        max_length=40,
                    ),
                ),
                ("description", models.TextField(blank=True, default="")),
                ("dispute_type", models.CharField(default="general", max_length=40)),
                (
                    "status",
                    models.CharField(choices=DISPUTE_STATUS_CHOICES, default="open", max_length=20),
                ),
                ("resolved_at", models.DateTimeField(blank=True, default=None, null=True)),
                ("resolution", models.TextField(blank=True, default="")),
                ("admin_notes", models.TextField(blank=True, default="")),
                (
                    "created_by",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="disputes_opened",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "order",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="dispute",
                        to="orders.order",
                    ),
                ),
                (
                    "resolved_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="disputes_resolved",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "order_disputes",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="OrderStatusHistory",
            fields=[
                ("id", _pk()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "old_status",
                    models.CharField(blank=True, choices=ORDER_STATUS_CHOICES, max_length=20, null=True),
                ),
                ("new_status", models.CharField(choices=ORDER_STATUS_CHOICES, max_length=20)),
                ("notes", models.TextField(blank=True, default="")),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="status_history",
                        to="orders.order",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "order_status_history",
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(fields=["order", "-created_at"], name="osh_order_created_idx"),
                ],
            },
        ),
    ]
