"""
Finance App URLs
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import RiderSettlementViewSet, ShopSettlementViewSet, WeeklyPeriodViewSet

router = DefaultRouter()
router.register(r'periods', WeeklyPeriodViewSet, basename='period')
router.register(r'shops', ShopSettlementViewSet, basename='shop-settlement')
router.register(r'riders', RiderSettlementViewSet, basename='rider-settlement')

urlpatterns = [
    path('close/', WeeklyPeriodViewSet.as_view({'post': 'close'}), name='settlement-close'),

    # Router URLs
    path('', include(router.urls)),
]
