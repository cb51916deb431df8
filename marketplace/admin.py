from django.contrib import admin

from .models import Discount, Order, OrderItem, Product, Promotion, ShippingMethod, Store, Tax


class ShippingMethodInline(admin.TabularInline):
    model = ShippingMethod
    extra = 0
    fields = ("name", "cost", "status", "is_deleted")


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = (
        "product",
        "product_name",
        "quantity",
        "unit_price",
        "unit_price_final",
        "line_subtotal",
        "line_discount",
    )
    can_delete = False


@admin.register(Store)
class StoreAdmin(admin.ModelAdmin):
    list_display = ("name", "owner", "status", "is_deleted", "created_at")
    list_filter = ("status", "is_deleted")
    search_fields = ("name", "owner__email")
    inlines = [ShippingMethodInline]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "sku", "store", "price", "price_final", "stock", "status")
    list_filter = ("status", "store")
    search_fields = ("name", "sku")
    filter_horizontal = ("taxes",)
    readonly_fields = ("created_at", "updated_at")


@admin.register(Discount)
class DiscountAdmin(admin.ModelAdmin):
    list_display = ("name", "store", "type", "value", "status", "is_deleted")
    list_filter = ("type", "status")


@admin.register(Tax)
class TaxAdmin(admin.ModelAdmin):
    list_display = ("name", "store", "type", "rate", "status", "is_deleted")
    list_filter = ("type", "status")


@admin.register(Promotion)
class PromotionAdmin(admin.ModelAdmin):
    list_display = ("name", "store", "type", "code", "value", "starts_at", "ends_at", "status")
    list_filter = ("type", "status")
    search_fields = ("name", "code")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "store", "status", "total", "promotion_code_used", "created_at")
    list_filter = ("status", "created_at")
    search_fields = ("id", "user__email", "client_reference")
    readonly_fields = (
        "subtotal",
        "total_discount_amount",
        "tax_amount",
        "shipping_amount",
        "total",
        "price_adjustments",
        "client_reference",
        "created_at",
        "updated_at",
    )
    inlines = [OrderItemInline]
