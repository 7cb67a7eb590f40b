"""
BALADI Main URL Configuration
"""

from django.contrib import admin
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from core.health import health_check, readiness_check


# ===========================================
# ADMIN SITE CUSTOMIZATION
# ===========================================
admin.site.site_header = "BALADI Operations"
admin.site.site_title = "BALADI Admin"
admin.site.index_title = "Orders & Settlements"


@api_view(['GET'])
@permission_classes([AllowAny])
def api_root(request):
    """API Root endpoint with available routes."""
    return Response({
        'name': 'BALADI API',
        'version': '1.0.0',
        'endpoints': {
            'auth': {
                'token': '/api/auth/token/',
                'refresh': '/api/auth/token/refresh/',
            },
            'shops': '/api/shops/',
            'orders': '/api/orders/',
            'points': {
                'balance': '/api/points/balance/',
                'history': '/api/points/history/',
                'adjust': '/api/points/adjust/',
            },
            'referrals': '/api/referrals/apply/',
            'settlements': {
                'periods': '/api/settlements/periods/',
                'close': '/api/settlements/close/',
                'shops': '/api/settlements/shops/',
                'riders': '/api/settlements/riders/',
            },
            'schema': '/api/schema/',
        }
    })


urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # Monitoring
    path('health/', health_check, name='health'),
    path('health/ready/', readiness_check, name='health-ready'),

    # API Root & docs
    path('api/', api_root, name='api-root'),
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),

    # App URLs
    path('api/', include('core.urls')),
    path('api/', include('orders.urls')),
    path('api/', include('loyalty.urls')),
    path('api/settlements/', include('reports.urls')),
    path('api/settlements/', include('finance.urls')),
]
