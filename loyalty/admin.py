from django.contrib import admin

from .models import LoyaltyAccount, LoyaltyAction, LoyaltyRedemption, LoyaltyTransaction


@admin.register(LoyaltyAction)
class LoyaltyActionAdmin(admin.ModelAdmin):
    list_display = ("key", "name", "default_points", "is_active", "updated_at")
    list_filter = ("is_active",)
    search_fields = ("key", "name")


class LoyaltyTransactionInline(admin.TabularInline):
    model = LoyaltyTransaction
    extra = 0
    fields = ("points", "reference_type", "reference_id", "description", "created_at")
    readonly_fields = fields
    can_delete = False


@admin.register(LoyaltyAccount)
class LoyaltyAccountAdmin(admin.ModelAdmin):
    """Balances are only changed through LoyaltyService."""

    list_display = ("user", "balance", "lifetime_earned", "lifetime_redeemed", "updated_at")
    search_fields = ("user__email", "user__username")
    readonly_fields = ("balance", "lifetime_earned", "lifetime_redeemed", "created_at", "updated_at")
    inlines = [LoyaltyTransactionInline]


@admin.register(LoyaltyTransaction)
class LoyaltyTransactionAdmin(admin.ModelAdmin):
    list_display = ("user", "points", "reference_type", "reference_id", "action", "created_at")
    list_filter = ("reference_type", "created_at")
    search_fields = ("user__email", "reference_id")

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(LoyaltyRedemption)
class LoyaltyRedemptionAdmin(admin.ModelAdmin):
    list_display = ("user", "points", "amount", "created_at")
    readonly_fields = ("account", "user", "points", "amount", "note", "created_at")
