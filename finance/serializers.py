"""
Finance App Serializers - Cash custody & Settlements
"""

from rest_framework import serializers

from .models import (
    CashTransaction,
    PlatformSettlement,
    RiderSettlement,
    SettlementStatus,
    ShopSettlement,
    WeeklyPeriod,
)


class CashTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = CashTransaction
        fields = [
            'id', 'order', 'transaction_type', 'amount', 'from_user', 'to_user',
            'confirmed_by', 'confirmed_at', 'notes', 'created_at'
        ]
        read_only_fields = fields


class WeeklyPeriodSerializer(serializers.ModelSerializer):
    label = serializers.CharField(read_only=True)

    class Meta:
        model = WeeklyPeriod
        fields = [
            'id', 'label', 'year', 'week_number', 'start_date', 'end_date',
            'status', 'closed_by', 'closed_at', 'settled_at', 'note'
        ]
        read_only_fields = fields


class ShopSettlementSerializer(serializers.ModelSerializer):
    shop_name = serializers.CharField(source='shop.name', read_only=True)

    class Meta:
        model = ShopSettlement
        fields = [
            'id', 'period', 'shop', 'shop_name', 'total_orders', 'completed_orders',
            'cancelled_orders', 'gross_sales', 'total_commission', 'points_discounts',
            'free_delivery_cost', 'ads_cost', 'net_amount', 'amount_due', 'status',
            'notes', 'reviewed_at', 'settled_at'
        ]
        read_only_fields = fields


class RiderSettlementSerializer(serializers.ModelSerializer):
    rider_name = serializers.CharField(source='rider.full_name', read_only=True)

    class Meta:
        model = RiderSettlement
        fields = [
            'id', 'period', 'rider', 'rider_name', 'total_deliveries', 'total_earnings',
            'total_cash_handled', 'net_earnings', 'status', 'notes', 'reviewed_at',
            'settled_at'
        ]
        read_only_fields = fields


class PlatformSettlementSerializer(serializers.ModelSerializer):
    class Meta:
        model = PlatformSettlement
        fields = ['period', *PlatformSettlement.SUMMARY_FIELDS]
        read_only_fields = fields


class ClosePeriodSerializer(serializers.Serializer):
    note = serializers.CharField(required=False, allow_blank=True, default='')


class SettlementStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=SettlementStatus.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


def serialize_settlement_result(result) -> dict:
    """JSON view of a SettlementResult."""
    return {
        'period': WeeklyPeriodSerializer(result.period).data,
        'next_period': WeeklyPeriodSerializer(result.next_period).data,
        'orders_processed': result.orders_processed,
        'completed_orders': result.completed_orders,
        'cancelled_orders': result.cancelled_orders,
        'shops_settled': result.shops_settled,
        'riders_settled': result.riders_settled,
        'total_points_redeemed_value': str(result.total_points_redeemed_value),
        'store_points_credits': {
            str(shop_id): str(credit) for shop_id, credit in result.store_points_credits.items()
        },
        'summary': PlatformSettlementSerializer(result.platform).data,
    }
