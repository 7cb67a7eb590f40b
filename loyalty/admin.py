"""
Django Admin configuration for LOYALTY app.
"""

from django.contrib import admin

from .models import PointsTransaction, Referral


@admin.register(PointsTransaction)
class PointsTransactionAdmin(admin.ModelAdmin):
    """Read-only ledger: balances change through PointsService only."""

    list_display = ('customer', 'transaction_type', 'points', 'balance_after', 'order', 'created_at')
    list_filter = ('transaction_type', 'created_at')
    search_fields = ('customer__phone_number', 'order__order_number', 'description')
    date_hierarchy = 'created_at'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Referral)
class ReferralAdmin(admin.ModelAdmin):
    list_display = ('referrer', 'referred', 'code_used', 'status', 'points_awarded', 'created_at', 'completed_at')
    list_filter = ('status', 'points_awarded')
    search_fields = ('referrer__phone_number', 'referred__phone_number', 'code_used')
    readonly_fields = ('referrer', 'referred', 'code_used', 'first_order', 'points_awarded', 'completed_at')
