"""
REPORTS App - URL Configuration
"""

from django.urls import path
from . import views

app_name = 'reports'

urlpatterns = [
    path('periods/<uuid:period_id>/report/',
         views.settlement_report_view,
         name='settlement-report'),
    path('periods/<uuid:period_id>/report.csv',
         views.settlement_csv_export,
         name='settlement-report-csv'),
]
