"""
Django Admin configuration for FINANCE app.
"""

from django.contrib import admin

from .models import (
    AdPlacement,
    CashTransaction,
    PlatformSettlement,
    RiderSettlement,
    ShopSettlement,
    WeeklyPeriod,
)


class ReadOnlyAdminMixin:
    """Settlement figures are produced by the aggregator, never by hand."""

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(CashTransaction)
class CashTransactionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ('order', 'transaction_type', 'formatted_amount', 'from_user', 'to_user', 'confirmed_at')
    list_filter = ('transaction_type', 'confirmed_at')
    search_fields = ('order__order_number', 'from_user__phone_number', 'to_user__phone_number')
    date_hierarchy = 'created_at'
    readonly_fields = (
        'order', 'transaction_type', 'amount', 'from_user', 'to_user',
        'confirmed_by', 'confirmed_at', 'created_at'
    )

    def formatted_amount(self, obj):
        return f"{obj.amount} EGP"
    formatted_amount.short_description = "Amount"


@admin.register(WeeklyPeriod)
class WeeklyPeriodAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ('label', 'start_date', 'end_date', 'status', 'closed_by', 'closed_at')
    list_filter = ('status', 'year')
    readonly_fields = (
        'year', 'week_number', 'start_date', 'end_date', 'status',
        'closed_by', 'closed_at', 'settled_at'
    )


class SettlementRecordAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_filter = ('status', 'period')
    # Only review fields are editable; status changes go through the API
    # so the transition rules apply.
    editable_fields = ('notes',)

    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields if f.name not in self.editable_fields]


@admin.register(ShopSettlement)
class ShopSettlementAdmin(SettlementRecordAdmin):
    list_display = ('shop', 'period', 'completed_orders', 'gross_sales', 'total_commission',
                    'points_discounts', 'ads_cost', 'amount_due', 'status')
    search_fields = ('shop__name',)


@admin.register(RiderSettlement)
class RiderSettlementAdmin(SettlementRecordAdmin):
    list_display = ('rider', 'period', 'total_deliveries', 'total_earnings', 'total_cash_handled', 'status')
    search_fields = ('rider__phone_number', 'rider__full_name')


@admin.register(PlatformSettlement)
class PlatformSettlementAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ('period', 'completed_orders', 'gross_sales', 'total_shop_commissions',
                    'points_discount_value', 'admin_net_commission', 'total_personal_commission')

    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]


@admin.register(AdPlacement)
class AdPlacementAdmin(admin.ModelAdmin):
    list_display = ('title', 'shop', 'cost', 'starts_at', 'ends_at')
    list_filter = ('starts_at',)
    search_fields = ('title', 'shop__name')
    raw_id_fields = ('shop',)
