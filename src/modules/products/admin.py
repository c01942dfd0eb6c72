from django.contrib import admin

from modules.products.models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "seller", "price", "stock_quantity", "status", "deleted_at")
    list_filter = ("status",)
    search_fields = ("name", "seller__email")
    raw_id_fields = ("seller",)
