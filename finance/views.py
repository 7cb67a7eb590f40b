"""
Finance App Views - Settlement API (admins)
"""

from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action

from core.api import IsAdminUser, result_response

from .models import RiderSettlement, ShopSettlement, WeeklyPeriod
from .serializers import (
    ClosePeriodSerializer,
    RiderSettlementSerializer,
    SettlementStatusSerializer,
    ShopSettlementSerializer,
    WeeklyPeriodSerializer,
    serialize_settlement_result,
)
from .services import SettlementAggregator, settle_period, update_settlement_status


class WeeklyPeriodViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Settlement periods.

    - list/retrieve: Admin only
    - close: close the active period
    - settle: closed -> settled once every record is settled
    """

    queryset = WeeklyPeriod.objects.all()
    serializer_class = WeeklyPeriodSerializer
    permission_classes = [IsAdminUser]
    filterset_fields = ['status', 'year']

    @action(detail=False, methods=['post'])
    def close(self, request):
        serializer = ClosePeriodSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = SettlementAggregator().close_current_period(
            request.user, serializer.validated_data['note']
        )
        return result_response(result, serialize_settlement_result, success_status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def settle(self, request, pk=None):
        result = settle_period(self.get_object(), request.user)
        return result_response(result, lambda period: WeeklyPeriodSerializer(period).data)


class SettlementRecordViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Shared list / review behaviour for shop and rider settlements.

    Admins see everything; shop owners and riders see their own records.
    """

    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ['period', 'status']
    owner_lookup = None

    def get_queryset(self):
        queryset = self.model.objects.select_related('period')
        user = self.request.user
        if user.is_platform_admin:
            return queryset
        return queryset.filter(**{self.owner_lookup: user})

    @action(detail=True, methods=['post'], url_path='status', permission_classes=[IsAdminUser])
    def change_status(self, request, pk=None):
        serializer = SettlementStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = update_settlement_status(
            self.get_object(),
            serializer.validated_data['status'],
            request.user,
            serializer.validated_data['notes'],
        )
        return result_response(result, lambda record: self.get_serializer(record).data)


class ShopSettlementViewSet(SettlementRecordViewSet):
    model = ShopSettlement
    serializer_class = ShopSettlementSerializer
    owner_lookup = 'shop__owner'


class RiderSettlementViewSet(SettlementRecordViewSet):
    model = RiderSettlement
    serializer_class = RiderSettlementSerializer
    owner_lookup = 'rider'
