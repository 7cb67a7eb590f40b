"""
Core App Views - Shops API

Accounts are created by platform admins through the Django admin.
"""

from rest_framework import viewsets, permissions

from .models import Shop
from .serializers import ShopSerializer


class ShopViewSet(viewsets.ReadOnlyModelViewSet):
    """Active shops (read-only); admins also see inactive ones."""

    serializer_class = ShopSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ['is_active']

    def get_queryset(self):
        queryset = Shop.objects.select_related('owner')
        if self.request.user.is_platform_admin:
            return queryset
        return queryset.filter(is_active=True)
