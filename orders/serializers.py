"""
Orders App Serializers
"""

from rest_framework import serializers

from finance.serializers import CashTransactionSerializer

from .models import Order, OrderItem, OrderStatus, OrderStatusHistory
from .services.custody import CashMilestone


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ['product_id', 'name', 'unit_price', 'quantity', 'subtotal']
        read_only_fields = fields


class OrderStatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusHistory
        fields = ['from_status', 'to_status', 'actor', 'actor_role', 'note', 'created_at']
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Full order view (read-only: orders change through services)."""

    items = OrderItemSerializer(many=True, read_only=True)
    shop_name = serializers.CharField(source='shop.name', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'customer', 'shop', 'shop_name', 'rider',
            'status', 'status_display', 'items', 'delivery_address', 'customer_notes',
            'cancellation_reason', 'subtotal', 'delivery_fee', 'is_free_delivery',
            'points_used', 'points_discount', 'total', 'shop_commission',
            'platform_commission', 'rider_earnings', 'points_earned',
            'personal_commission_store', 'personal_commission_delivery', 'personal_commission',
            'cash_collected', 'cash_collected_at', 'cash_transferred_to_shop',
            'cash_transferred_at', 'shop_confirmed_cash', 'shop_confirmed_at',
            'weekly_period', 'created_at', 'accepted_at', 'preparing_at',
            'picked_up_at', 'shop_paid_at', 'completed_at', 'cancelled_at'
        ]
        read_only_fields = fields


class OrderDetailSerializer(OrderSerializer):
    status_history = OrderStatusHistorySerializer(many=True, read_only=True)
    cash_transactions = CashTransactionSerializer(many=True, read_only=True)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ['status_history', 'cash_transactions']
        read_only_fields = fields


class OrderItemInputSerializer(serializers.Serializer):
    product_id = serializers.CharField(max_length=64)
    name = serializers.CharField(max_length=200)
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    quantity = serializers.IntegerField(min_value=1)


class OrderCreateSerializer(serializers.Serializer):
    """Place an order (customers)."""

    shop = serializers.UUIDField()
    items = OrderItemInputSerializer(many=True)
    delivery_address = serializers.CharField(max_length=255)
    customer_notes = serializers.CharField(required=False, allow_blank=True, default='')
    points_to_redeem = serializers.IntegerField(required=False, min_value=0, default=0)


class OrderTransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    note = serializers.CharField(required=False, allow_blank=True, default='')


class CashMilestoneSerializer(serializers.Serializer):
    milestone = serializers.ChoiceField(choices=CashMilestone.ALL)
