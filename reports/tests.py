"""
BALADI Reports Tests
====================

Settlement report JSON contract and CSV export.
"""

import csv
import io
from decimal import Decimal

from django.test import TestCase
from rest_framework.test import APIClient

from core.failures import BusinessRuleFailure
from finance.services import open_period_for
from finance.tests import SettlementFixtureMixin, cairo
from reports.services import SHOP_SETTLEMENT_KEYS, SUMMARY_KEYS, ReportGenerator, settlement_report


class TestSettlementReport(SettlementFixtureMixin, TestCase):

    def setUp(self):
        self.build_week()
        self.close()
        self.period.refresh_from_db()

    def test_top_level_and_summary_keys(self):
        """Keys are a fixed contract for reporting consumers."""
        report = ReportGenerator.build_settlement_report(self.period)

        self.assertEqual(
            list(report),
            ['weekly_period', 'summary', 'shop_settlements', 'rider_settlements'],
        )
        self.assertEqual(tuple(report['summary']), SUMMARY_KEYS)

    def test_money_rendered_with_two_decimals(self):
        report = ReportGenerator.build_settlement_report(self.period)

        self.assertEqual(report['summary']['gross_sales'], '600.00')
        self.assertEqual(report['summary']['admin_net_commission'], '95.00')
        self.assertEqual(report['summary']['completed_orders'], 3)

    def test_shop_and_rider_rows(self):
        report = ReportGenerator.build_settlement_report(self.period)

        shops = {row['shop_name']: row for row in report['shop_settlements']}
        self.assertEqual(set(shops), {'Koshary Corner', 'Fatayer House'})
        self.assertEqual(shops['Koshary Corner']['points_discounts'], '5.00')
        self.assertEqual(list(shops['Fatayer House']), list(SHOP_SETTLEMENT_KEYS))

        rider = report['rider_settlements'][0]
        self.assertEqual(rider['total_deliveries'], 3)
        self.assertEqual(rider['total_earnings'], '30.00')

    def test_period_block(self):
        block = ReportGenerator.build_settlement_report(self.period)['weekly_period']
        self.assertEqual(block['week_number'], 11)
        self.assertEqual(block['year'], 2026)
        self.assertEqual(block['status'], 'closed')
        self.assertEqual(block['closed_by'], str(self.admin.pk))

    def test_active_period_has_no_report(self):
        active = open_period_for(cairo(2026, 3, 16))
        result = settlement_report(active)
        self.assertIsInstance(result.failure, BusinessRuleFailure)

    def test_csv_export(self):
        content = ReportGenerator.shop_settlements_csv(self.period)

        rows = list(csv.DictReader(io.StringIO(content)))
        self.assertEqual(len(rows), 2)
        self.assertEqual(set(rows[0]), set(SHOP_SETTLEMENT_KEYS))
        amounts = {row['shop_name']: Decimal(row['amount_due']) for row in rows}
        self.assertEqual(amounts['Fatayer House'], Decimal('85.00'))


class TestReportEndpoints(SettlementFixtureMixin, TestCase):

    def setUp(self):
        self.client = APIClient()
        self.build_week()
        self.close()

    def test_admin_gets_json_report(self):
        self.client.force_authenticate(self.admin)
        response = self.client.get(f'/api/settlements/periods/{self.period.pk}/report/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['summary']['total_ads_revenue'], '25.00')

    def test_admin_downloads_csv(self):
        self.client.force_authenticate(self.admin)
        response = self.client.get(f'/api/settlements/periods/{self.period.pk}/report.csv')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'text/csv')
        self.assertIn('settlement_2026_w11.csv', response['Content-Disposition'])

    def test_report_of_active_period_conflicts(self):
        active = open_period_for(cairo(2026, 3, 16))
        self.client.force_authenticate(self.admin)

        response = self.client.get(f'/api/settlements/periods/{active.pk}/report/')
        self.assertEqual(response.status_code, 409)

    def test_shop_owner_forbidden(self):
        self.client.force_authenticate(self.owner_one)
        response = self.client.get(f'/api/settlements/periods/{self.period.pk}/report/')
        self.assertEqual(response.status_code, 403)
