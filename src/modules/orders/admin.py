from django.contrib import admin

from modules.orders.models import Dispute, Order, OrderItem, OrderStatusHistory


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ("product", "seller", "name", "quantity", "unit_price", "subtotal")


class OrderStatusHistoryInline(admin.TabularInline):
    model = OrderStatusHistory
    extra = 0
    can_delete = False
    readonly_fields = ("old_status", "new_status", "user", "notes", "created_at")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "order_number",
        "buyer",
        "status",
        "dispute_status",
        "payment_method",
        "total_price",
        "paid_at",
        "created_at",
    )
    list_filter = ("status", "dispute_status", "payment_method")
    search_fields = ("order_number", "buyer__email", "payment_transaction_id")
    raw_id_fields = ("buyer",)
    readonly_fields = ("order_number", "version", "paid_at", "payment_transaction_id")
    inlines = (OrderItemInline, OrderStatusHistoryInline)


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ("order", "reason", "status", "created_by", "resolved_at")
    list_filter = ("status", "reason")
    raw_id_fields = ("order", "created_by", "resolved_by")
