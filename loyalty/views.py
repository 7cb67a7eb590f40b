"""
Loyalty App Views - Points & Referrals API
"""

from django.contrib.auth import get_user_model
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from core.api import IsAdminUser, IsCustomer, failure_response, result_response
from core.failures import NotFoundFailure

from .serializers import (
    ApplyReferralSerializer,
    PointsAdjustmentSerializer,
    PointsTransactionSerializer,
    ReferralSerializer,
)
from .services import PointsService, adjust_points, apply_referral_code

User = get_user_model()


class PointsViewSet(viewsets.GenericViewSet):
    """
    ViewSet for points operations.
    """

    permission_classes = [permissions.IsAuthenticated]
    serializer_class = PointsTransactionSerializer

    def get_permissions(self):
        # as_view() routes ignore permission kwargs on @action
        if self.action == 'adjust':
            return [IsAdminUser()]
        return super().get_permissions()

    def get_queryset(self):
        return PointsService.history(self.request.user)

    @action(detail=False, methods=['get'])
    def balance(self, request):
        """Get current points balance."""
        user = request.user
        return Response({
            'points_balance': user.points_balance,
            'referral_code': user.referral_code,
        })

    @action(detail=False, methods=['get'])
    def history(self, request):
        """Paginated ledger of the current user."""
        page = self.paginate_queryset(self.get_queryset())
        serializer = PointsTransactionSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    @action(detail=False, methods=['post'])
    def adjust(self, request):
        """
        Adjust a customer's points (Admin only).
        """
        serializer = PointsAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        customer = User.objects.filter(pk=data['customer_id']).first()
        if customer is None:
            return failure_response(NotFoundFailure("Customer not found"))

        result = adjust_points(customer, data['points'], request.user, data['reason'])
        return result_response(
            result,
            lambda entry: PointsTransactionSerializer(entry).data,
            success_status=status.HTTP_201_CREATED,
        )


class ReferralViewSet(viewsets.ViewSet):

    permission_classes = [IsCustomer]

    @action(detail=False, methods=['post'])
    def apply(self, request):
        """Apply a friend's referral code to the current customer."""
        serializer = ApplyReferralSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = apply_referral_code(request.user, serializer.validated_data['code'])
        return result_response(
            result,
            lambda referral: ReferralSerializer(referral).data,
            success_status=status.HTTP_201_CREATED,
        )
