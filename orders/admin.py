"""
Django Admin configuration for ORDERS app.
"""

from django.contrib import admin

from .models import FINANCIAL_FIELDS, Order, OrderItem, OrderStatusHistory


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ('product_id', 'name', 'unit_price', 'quantity', 'subtotal')
    can_delete = False


class OrderStatusHistoryInline(admin.TabularInline):
    model = OrderStatusHistory
    extra = 0
    readonly_fields = ('from_status', 'to_status', 'actor', 'actor_role', 'note', 'created_at')
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Orders change status through the API; financial snapshot is read-only here."""

    list_display = (
        'order_number', 'customer', 'shop', 'rider', 'status', 'total',
        'platform_commission', 'cash_collected', 'shop_confirmed_cash', 'created_at'
    )
    list_filter = ('status', 'is_free_delivery', 'shop', 'created_at')
    search_fields = ('order_number', 'customer__phone_number', 'shop__name')
    date_hierarchy = 'created_at'
    raw_id_fields = ('customer', 'shop', 'rider')
    inlines = [OrderItemInline, OrderStatusHistoryInline]

    readonly_fields = FINANCIAL_FIELDS + (
        'order_number', 'status', 'weekly_period',
        'cash_collected', 'cash_collected_at', 'cash_transferred_to_shop',
        'cash_transferred_at', 'shop_confirmed_cash', 'shop_confirmed_at',
        'accepted_at', 'preparing_at', 'picked_up_at', 'shop_paid_at',
        'completed_at', 'cancelled_at',
    )

    def has_add_permission(self, request):
        return False
