"""
REPORTS App - Settlement report builder

Produces the settlement report consumed by external reporting tools.
Top-level and summary keys are a fixed contract:

    {
        "weekly_period": {...},
        "summary": {total_orders, completed_orders, cancelled_orders,
                    gross_sales, total_delivery_fees, total_shop_commissions,
                    total_points_redeemed, points_discount_value,
                    free_delivery_orders, free_delivery_cost,
                    total_ads_revenue, admin_net_commission},
        "shop_settlements": [...],
        "rider_settlements": [...]
    }

Money is rendered as strings with 2 decimals.
"""

import csv
import io
import logging
from decimal import Decimal

from core.failures import BusinessRuleFailure
from core.results import returns_result
from finance.models import PeriodStatus
from finance.services import get_rider_settlements, get_shop_settlements

logger = logging.getLogger(__name__)

SUMMARY_KEYS = (
    'total_orders',
    'completed_orders',
    'cancelled_orders',
    'gross_sales',
    'total_delivery_fees',
    'total_shop_commissions',
    'total_points_redeemed',
    'points_discount_value',
    'free_delivery_orders',
    'free_delivery_cost',
    'total_ads_revenue',
    'admin_net_commission',
)

SHOP_SETTLEMENT_KEYS = (
    'shop_id', 'shop_name', 'total_orders', 'completed_orders', 'cancelled_orders',
    'gross_sales', 'total_commission', 'points_discounts', 'free_delivery_cost',
    'ads_cost', 'net_amount', 'amount_due', 'status', 'notes', 'settled_at',
)


def _plain(value):
    """JSON-safe scalar."""
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    if value is None or isinstance(value, (int, str, bool)):
        return value
    return str(value)


# ===========================================
# REPORT GENERATOR SERVICE
# ===========================================

class ReportGenerator:
    """Settlement report for one closed (or settled) period."""

    @staticmethod
    def _period_block(period) -> dict:
        return {
            'id': str(period.pk),
            'year': period.year,
            'week_number': period.week_number,
            'start_date': _plain(period.start_date),
            'end_date': _plain(period.end_date),
            'status': period.status,
            'closed_by': str(period.closed_by_id) if period.closed_by_id else None,
            'closed_at': _plain(period.closed_at),
            'note': period.note,
        }

    @staticmethod
    def _shop_row(record) -> dict:
        row = {
            'shop_id': str(record.shop_id),
            'shop_name': record.shop.name,
        }
        for key in SHOP_SETTLEMENT_KEYS[2:]:
            row[key] = _plain(getattr(record, key))
        return row

    @staticmethod
    def _rider_row(record) -> dict:
        return {
            'rider_id': str(record.rider_id),
            'rider_name': record.rider.full_name or record.rider.phone_number,
            'total_deliveries': record.total_deliveries,
            'total_earnings': _plain(record.total_earnings),
            'total_cash_handled': _plain(record.total_cash_handled),
            'net_earnings': _plain(record.net_earnings),
            'status': record.status,
            'notes': record.notes,
            'settled_at': _plain(record.settled_at),
        }

    @staticmethod
    def build_settlement_report(period) -> dict:
        """
        Raises BusinessRuleFailure for a period that has not been closed.
        """
        if period.status == PeriodStatus.ACTIVE:
            raise BusinessRuleFailure(f"Period {period.label} is not closed yet")

        platform = getattr(period, 'platform_settlement', None)
        summary = {key: _plain(getattr(platform, key)) if platform else None for key in SUMMARY_KEYS}

        report = {
            'weekly_period': ReportGenerator._period_block(period),
            'summary': summary,
            'shop_settlements': [
                ReportGenerator._shop_row(record) for record in get_shop_settlements(period.pk)
            ],
            'rider_settlements': [
                ReportGenerator._rider_row(record) for record in get_rider_settlements(period.pk)
            ],
        }
        logger.info(f"[REPORTS] Built settlement report for {period.label}")
        return report

    @staticmethod
    def shop_settlements_csv(period) -> str:
        """Shop settlements of a period as CSV (one row per shop)."""
        report = ReportGenerator.build_settlement_report(period)
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=SHOP_SETTLEMENT_KEYS)
        writer.writeheader()
        writer.writerows(report['shop_settlements'])
        return buffer.getvalue()


settlement_report = returns_result(ReportGenerator.build_settlement_report)
