"""
REPORTS App - Settlement report endpoints
"""

import logging

from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes

from core.api import IsAdminUser, failure_response, result_response
from core.failures import BusinessRuleFailure
from finance.models import WeeklyPeriod

from .services import ReportGenerator, settlement_report

logger = logging.getLogger(__name__)


@api_view(['GET'])
@permission_classes([IsAdminUser])
def settlement_report_view(request, period_id):
    """JSON settlement report of a closed period."""
    period = get_object_or_404(WeeklyPeriod, pk=period_id)
    return result_response(settlement_report(period), lambda report: report)


@api_view(['GET'])
@permission_classes([IsAdminUser])
def settlement_csv_export(request, period_id):
    """Export shop settlements of a period as CSV."""
    period = get_object_or_404(WeeklyPeriod, pk=period_id)
    try:
        csv_content = ReportGenerator.shop_settlements_csv(period)
    except BusinessRuleFailure as failure:
        return failure_response(failure)

    response = HttpResponse(csv_content, content_type='text/csv')
    response['Content-Disposition'] = (
        f'attachment; filename="settlement_{period.year}_w{period.week_number}.csv"'
    )
    return response
