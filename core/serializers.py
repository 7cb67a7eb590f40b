"""
Core App Serializers - Shops
"""

from rest_framework import serializers

from .models import Shop


class ShopSerializer(serializers.ModelSerializer):
    owner_name = serializers.CharField(source='owner.full_name', read_only=True)

    class Meta:
        model = Shop
        fields = [
            'id', 'name', 'owner', 'owner_name', 'commission_rate',
            'minimum_order', 'default_delivery_fee', 'is_active', 'created_at'
        ]
        read_only_fields = ['id', 'owner', 'created_at']
