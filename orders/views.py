"""
Orders App Views - Order lifecycle API
"""

from django.db.models import Q
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action

from core.api import IsCustomer, failure_response, result_response
from core.failures import NotFoundFailure
from core.models import Shop, UserRole

from .models import Order, OrderStatus
from .serializers import (
    CashMilestoneSerializer,
    OrderCreateSerializer,
    OrderDetailSerializer,
    OrderSerializer,
    OrderTransitionSerializer,
)
from .services.custody import record_milestone
from .services.placement import place_order
from .services.state_machine import transition_order


class OrderViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Orders visible to the current user.

    - Customers: their orders; may place and cancel
    - Shops: orders of shops they own
    - Riders: orders assigned to them plus preparing orders awaiting pickup
    - Admins: everything
    """

    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ['status', 'shop']
    ordering_fields = ['created_at', 'total']

    def get_permissions(self):
        if self.action == 'create':
            return [IsCustomer()]
        return super().get_permissions()

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return OrderDetailSerializer
        return OrderSerializer

    def get_queryset(self):
        user = self.request.user
        queryset = Order.objects.select_related('shop').prefetch_related('items')

        if user.is_platform_admin:
            return queryset
        if user.role == UserRole.SHOP:
            return queryset.filter(shop__owner=user)
        if user.role == UserRole.RIDER:
            return queryset.filter(Q(rider=user) | Q(rider__isnull=True, status=OrderStatus.PREPARING))
        return queryset.filter(customer=user)

    def create(self, request):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        shop = Shop.objects.filter(pk=data['shop']).first()
        if shop is None:
            return failure_response(NotFoundFailure("Shop not found"))

        result = place_order(
            customer=request.user,
            shop=shop,
            items=[dict(item) for item in data['items']],
            delivery_address=data['delivery_address'],
            points_to_redeem=data['points_to_redeem'],
            customer_notes=data['customer_notes'],
        )
        return result_response(
            result,
            lambda order: OrderDetailSerializer(order).data,
            success_status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=['post'])
    def transition(self, request, pk=None):
        """Advance or cancel the order."""
        serializer = OrderTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = transition_order(
            self.get_object(),
            serializer.validated_data['status'],
            request.user,
            serializer.validated_data['note'],
        )
        return result_response(result, lambda order: OrderDetailSerializer(order).data)

    @action(detail=True, methods=['post'])
    def cash(self, request, pk=None):
        """Record a cash custody milestone."""
        serializer = CashMilestoneSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = record_milestone(self.get_object(), serializer.validated_data['milestone'], request.user)
        return result_response(result, lambda order: OrderDetailSerializer(order).data)
