"""
Loyalty App URLs
"""

from django.urls import path

from .views import PointsViewSet, ReferralViewSet

urlpatterns = [
    path('points/balance/', PointsViewSet.as_view({'get': 'balance'}), name='points-balance'),
    path('points/history/', PointsViewSet.as_view({'get': 'history'}), name='points-history'),
    path('points/adjust/', PointsViewSet.as_view({'post': 'adjust'}), name='points-adjust'),
    path('referrals/apply/', ReferralViewSet.as_view({'post': 'apply'}), name='referral-apply'),
]
