"""
Loyalty App Serializers
"""

from rest_framework import serializers

from .models import PointsTransaction, Referral


class PointsTransactionSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True, default=None)
    type_display = serializers.CharField(source='get_transaction_type_display', read_only=True)

    class Meta:
        model = PointsTransaction
        fields = [
            'id', 'transaction_type', 'type_display', 'points',
            'balance_before', 'balance_after', 'order', 'order_number',
            'description', 'created_at'
        ]
        read_only_fields = fields


class PointsAdjustmentSerializer(serializers.Serializer):
    """Admin points correction."""

    customer_id = serializers.UUIDField()
    points = serializers.IntegerField()
    reason = serializers.CharField(max_length=255)

    def validate_points(self, value):
        if value == 0:
            raise serializers.ValidationError("Points must be non-zero.")
        return value


class ApplyReferralSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=8, allow_blank=True)


class ReferralSerializer(serializers.ModelSerializer):
    class Meta:
        model = Referral
        fields = [
            'id', 'referrer', 'referred', 'code_used', 'first_order',
            'points_awarded', 'status', 'created_at', 'completed_at'
        ]
        read_only_fields = fields
