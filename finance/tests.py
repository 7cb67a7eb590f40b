"""
BALADI Finance Tests
====================

Tests for:
1. Settlement week boundaries (Saturday -> Friday, settlement zone)
2. Weekly close: per-shop / per-rider / platform figures
3. Close guards: already closed, still running, nothing to settle, atomicity
4. Empty-week rollover
5. Settlement review & period settling
6. Celery close task
7. Settlement endpoints
"""

from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch
from zoneinfo import ZoneInfo

from celery.exceptions import Retry
from django.conf import settings
from django.db import OperationalError
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from baladi_core.celery import app as celery_app
from core.failures import BusinessRuleFailure, NetworkFailure, ValidationFailure
from core.models import UserRole
from core.results import Err
from finance.models import (
    AdPlacement,
    PeriodStatus,
    PlatformSettlement,
    RiderSettlement,
    SettlementStatus,
    ShopSettlement,
    WeeklyPeriod,
)
from finance.providers import AdPlacementCostProvider
from finance.services import (
    ALREADY_CLOSED,
    NOTHING_TO_SETTLE,
    PERIOD_RUNNING,
    SettlementAggregator,
    open_period_for,
    roll_over_empty_period,
    settle_period,
    settlement_zone,
    update_settlement_status,
    week_boundaries,
    week_label,
)
from finance.tasks import close_weekly_settlement
from loyalty.models import PointsTransactionType
from loyalty.services import PointsService
from orders.models import Order, OrderStatus
from orders.tests.factories import (
    advance,
    backdate,
    complete_order,
    create_order,
    create_shop,
    create_user,
)

CAIRO = ZoneInfo('Africa/Cairo')
UTC = ZoneInfo('UTC')


def cairo(year, month, day, hour=12, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=CAIRO)


class StubAdsProvider:
    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error

    def get_ads_cost_for_period(self, start, end):
        if self.error:
            raise self.error
        return self.rows


# ==========================================
# Week boundaries
# ==========================================

class TestWeekBoundaries(SimpleTestCase):

    def test_midweek_moment(self):
        """Wednesday belongs to the week that started the previous Saturday."""
        start, end = week_boundaries(cairo(2026, 3, 11))
        self.assertEqual(start, datetime(2026, 3, 7, 0, 0, tzinfo=CAIRO))
        self.assertEqual(end, datetime(2026, 3, 13, 23, 59, 59, 999999, tzinfo=CAIRO))

    def test_saturday_midnight_starts_a_week(self):
        start, _ = week_boundaries(cairo(2026, 3, 14, 0, 0))
        self.assertEqual(start, datetime(2026, 3, 14, 0, 0, tzinfo=CAIRO))

    def test_boundaries_use_settlement_zone(self):
        """22:30 UTC on Friday is already Saturday in Cairo."""
        start, _ = week_boundaries(datetime(2026, 3, 13, 22, 30, tzinfo=UTC))
        self.assertEqual(start.date().isoformat(), '2026-03-14')

        start, _ = week_boundaries(datetime(2026, 3, 13, 21, 30, tzinfo=UTC))
        self.assertEqual(start.date().isoformat(), '2026-03-07')

    def test_week_label_is_iso_week_of_friday(self):
        _, end = week_boundaries(cairo(2026, 3, 11))
        self.assertEqual(week_label(end), (2026, 11))


class TestBeatSchedule(SimpleTestCase):
    """The weekly close fires on the settlement clock, after the week ends."""

    def test_beat_runs_in_settlement_zone(self):
        self.assertEqual(settings.CELERY_TIMEZONE, settings.SETTLEMENT_TIME_ZONE)
        self.assertEqual(celery_app.conf.timezone, settings.SETTLEMENT_TIME_ZONE)

    def test_close_fires_after_friday_ends(self):
        schedule = settings.CELERY_BEAT_SCHEDULE['close-weekly-settlement']['schedule']
        self.assertEqual(schedule.day_of_week, {6})
        self.assertEqual((schedule.hour, schedule.minute), ({0}, {5}))

        fires_at = datetime(2026, 3, 14, 0, 5, tzinfo=settlement_zone())
        _, previous_end = week_boundaries(fires_at - timedelta(days=1))
        self.assertLess(previous_end, fires_at)


# ==========================================
# Weekly close
# ==========================================

class SettlementFixtureMixin:
    """One ended week (7-13 March 2026) with three completed orders."""

    def build_week(self):
        self.admin = create_user('+201000000101', UserRole.ADMIN)
        self.customer = create_user('+201000000102', UserRole.CUSTOMER)
        self.owner_one = create_user('+201000000103', UserRole.SHOP)
        self.owner_two = create_user('+201000000104', UserRole.SHOP)
        self.rider = create_user('+201000000105', UserRole.RIDER)
        self.shop_one = create_shop(self.owner_one, name='Koshary Corner')
        self.shop_two = create_shop(self.owner_two, name='Fatayer House', commission_rate=Decimal('0.20'))

        self.period = open_period_for(cairo(2026, 3, 10))
        self.after_week = cairo(2026, 3, 14, 10)
        PointsService.apply(self.customer, 20, PointsTransactionType.ADJUSTMENT, description='Seed')

        in_week = cairo(2026, 3, 10)
        # 200 EGP, 5 points redeemed: commission 20, discount 5
        self.order_a = self._completed(self.shop_one, '200.00', in_week, points_to_redeem=5)
        # 100 EGP free delivery: commission 10, platform absorbs 15
        self.order_b = self._completed(self.shop_one, '100.00', in_week, is_free_delivery=True)
        # 300 EGP at 20%: commission 60
        self.order_c = self._completed(self.shop_two, '300.00', in_week)

        self.cancelled = advance(create_order(self.customer, self.shop_one), OrderStatus.CANCELLED, self.customer)
        backdate(self.cancelled, cancelled_at=cairo(2026, 3, 11))

        # Completed after the week ended: belongs to the next period
        self.late = self._completed(self.shop_one, '150.00', cairo(2026, 3, 16))

        AdPlacement.objects.create(
            shop=self.shop_two,
            title='Ramadan banner',
            cost=Decimal('25.00'),
            starts_at=cairo(2026, 3, 9),
            ends_at=cairo(2026, 3, 20),
        )

    def _completed(self, shop, subtotal, completed_at, **kwargs):
        order = create_order(self.customer, shop, subtotal=subtotal, **kwargs)
        order = complete_order(order, shop.owner, self.rider)
        return backdate(order, completed_at=completed_at)

    def close(self, **kwargs):
        kwargs.setdefault('period', self.period)
        kwargs.setdefault('now', self.after_week)
        aggregator = kwargs.pop('aggregator', None) or SettlementAggregator()
        return aggregator.close_current_period(self.admin, 'Week closed', **kwargs)


class TestSettlementClose(SettlementFixtureMixin, TestCase):

    def setUp(self):
        self.build_week()

    def test_close_succeeds(self):
        result = self.close()

        self.assertTrue(result.ok)
        settlement = result.value
        self.assertEqual(settlement.orders_processed, 4)
        self.assertEqual(settlement.completed_orders, 3)
        self.assertEqual(settlement.cancelled_orders, 1)
        self.assertEqual(settlement.shops_settled, 2)
        self.assertEqual(settlement.riders_settled, 1)

    def test_shop_settlement_figures(self):
        """Points discount is credited back to the shop, ads are charged."""
        self.close()

        one = ShopSettlement.objects.get(period=self.period, shop=self.shop_one)
        self.assertEqual(one.total_orders, 3)
        self.assertEqual(one.completed_orders, 2)
        self.assertEqual(one.cancelled_orders, 1)
        self.assertEqual(one.gross_sales, Decimal('300.00'))
        self.assertEqual(one.total_commission, Decimal('30.00'))
        self.assertEqual(one.points_discounts, Decimal('5.00'))
        self.assertEqual(one.free_delivery_cost, Decimal('15.00'))
        self.assertEqual(one.net_amount, Decimal('270.00'))
        self.assertEqual(one.amount_due, Decimal('25.00'))
        self.assertEqual(one.status, SettlementStatus.PENDING)

        two = ShopSettlement.objects.get(period=self.period, shop=self.shop_two)
        self.assertEqual(two.total_commission, Decimal('60.00'))
        self.assertEqual(two.ads_cost, Decimal('25.00'))
        self.assertEqual(two.net_amount, Decimal('215.00'))
        self.assertEqual(two.amount_due, Decimal('85.00'))

    def test_rider_settlement_figures(self):
        self.close()

        rider = RiderSettlement.objects.get(period=self.period, rider=self.rider)
        self.assertEqual(rider.total_deliveries, 3)
        self.assertEqual(rider.total_earnings, Decimal('30.00'))
        self.assertEqual(rider.net_earnings, Decimal('30.00'))
        self.assertEqual(rider.total_cash_handled, Decimal('640.00'))

    def test_platform_summary(self):
        result = self.close()

        summary = PlatformSettlement.objects.get(period=self.period).as_summary()
        self.assertEqual(summary['total_orders'], 4)
        self.assertEqual(summary['gross_sales'], Decimal('600.00'))
        self.assertEqual(summary['total_delivery_fees'], Decimal('45.00'))
        self.assertEqual(summary['total_shop_commissions'], Decimal('90.00'))
        self.assertEqual(summary['total_points_redeemed'], 5)
        self.assertEqual(summary['points_discount_value'], Decimal('5.00'))
        self.assertEqual(summary['free_delivery_orders'], 1)
        self.assertEqual(summary['free_delivery_cost'], Decimal('15.00'))
        self.assertEqual(summary['total_ads_revenue'], Decimal('25.00'))
        self.assertEqual(summary['admin_net_commission'], Decimal('95.00'))
        self.assertEqual(result.value.total_points_redeemed_value, Decimal('5.00'))

    def test_personal_commission_tracked_outside_summary(self):
        """Summed per period but never netted into the platform figures."""
        self.close()

        platform = PlatformSettlement.objects.get(period=self.period)
        # 10 + 2.25, 5 + 0 (free delivery), 15 + 2.25
        self.assertEqual(platform.total_personal_commission, Decimal('34.50'))
        self.assertEqual(platform.admin_net_commission, Decimal('95.00'))
        self.assertNotIn('total_personal_commission', platform.as_summary())

    def test_store_points_credits(self):
        credits = self.close().value.store_points_credits
        self.assertEqual(credits[self.shop_one.pk], Decimal('5.00'))
        self.assertEqual(credits[self.shop_two.pk], Decimal('0.00'))

    def test_orders_stamped_and_late_order_untouched(self):
        self.close()

        stamped = Order.objects.filter(weekly_period=self.period)
        self.assertEqual(
            set(stamped.values_list('pk', flat=True)),
            {self.order_a.pk, self.order_b.pk, self.order_c.pk, self.cancelled.pk},
        )
        self.late.refresh_from_db()
        self.assertIsNone(self.late.weekly_period)

    def test_period_closed_and_next_opened(self):
        result = self.close()

        self.period.refresh_from_db()
        self.assertEqual(self.period.status, PeriodStatus.CLOSED)
        self.assertEqual(self.period.closed_by, self.admin)
        self.assertEqual(self.period.note, 'Week closed')

        next_period = result.value.next_period
        self.assertEqual(next_period.status, PeriodStatus.ACTIVE)
        self.assertEqual(next_period.start_date, cairo(2026, 3, 14, 0))
        self.assertEqual(WeeklyPeriod.objects.filter(status=PeriodStatus.ACTIVE).count(), 1)

    def test_late_order_settles_next_week(self):
        next_period = self.close().value.next_period

        result = self.close(period=next_period, now=cairo(2026, 3, 21, 10))

        self.assertTrue(result.ok)
        self.assertEqual(result.value.completed_orders, 1)
        self.late.refresh_from_db()
        self.assertEqual(self.late.weekly_period, next_period)

    # ==========================================
    # Guards
    # ==========================================

    def test_second_close_rejected(self):
        """Closing twice creates nothing new."""
        self.close()
        result = self.close()

        self.assertFalse(result.ok)
        self.assertEqual(result.failure.code, ALREADY_CLOSED)
        self.assertEqual(ShopSettlement.objects.filter(period=self.period).count(), 2)
        self.assertEqual(PlatformSettlement.objects.count(), 1)

    def test_claimed_period_rejected(self):
        """An existing platform settlement row blocks a concurrent close."""
        PlatformSettlement.objects.create(period=self.period)

        result = self.close()

        self.assertEqual(result.failure.code, ALREADY_CLOSED)
        self.assertFalse(ShopSettlement.objects.exists())

    def test_running_period_rejected(self):
        result = self.close(now=cairo(2026, 3, 13, 23, 59))

        self.assertFalse(result.ok)
        self.assertEqual(result.failure.code, PERIOD_RUNNING)
        self.period.refresh_from_db()
        self.assertEqual(self.period.status, PeriodStatus.ACTIVE)

    def test_only_admins_close(self):
        result = SettlementAggregator().close_current_period(
            self.customer, period=self.period, now=self.after_week
        )
        self.assertIsInstance(result.failure, ValidationFailure)

    def test_storage_failure_rolls_back_everything(self):
        """A database outage mid-close leaves no partial settlement."""
        aggregator = SettlementAggregator(ads_provider=StubAdsProvider(error=OperationalError('gone')))

        result = self.close(aggregator=aggregator)

        self.assertIsInstance(result.failure, NetworkFailure)
        self.assertTrue(result.retryable)
        self.assertFalse(PlatformSettlement.objects.exists())
        self.assertFalse(ShopSettlement.objects.exists())
        self.assertFalse(Order.objects.filter(weekly_period__isnull=False).exists())
        self.period.refresh_from_db()
        self.assertEqual(self.period.status, PeriodStatus.ACTIVE)

    # ==========================================
    # Injected collaborators
    # ==========================================

    def test_injected_ads_provider(self):
        ads = StubAdsProvider(rows=[{'shop_id': self.shop_one.pk, 'total_cost': Decimal('40.00')}])

        self.close(aggregator=SettlementAggregator(ads_provider=ads))

        one = ShopSettlement.objects.get(period=self.period, shop=self.shop_one)
        self.assertEqual(one.ads_cost, Decimal('40.00'))
        self.assertEqual(one.amount_due, Decimal('65.00'))
        self.assertFalse(ShopSettlement.objects.filter(shop=self.shop_two, ads_cost__gt=0).exists())

    def test_negative_platform_net_is_kept(self):
        """A week of free deliveries shows a loss instead of zero."""
        aggregator = SettlementAggregator(
            ads_provider=StubAdsProvider(),
            order_source=lambda start, end: [Order.objects.get(pk=self.order_b.pk)],
        )

        result = self.close(aggregator=aggregator)

        self.assertEqual(result.value.platform.admin_net_commission, Decimal('-5.00'))


class TestEmptyPeriods(TestCase):

    def setUp(self):
        self.admin = create_user('+201000000111', UserRole.ADMIN)
        self.period = open_period_for(cairo(2026, 3, 10))

    def test_nothing_to_settle(self):
        result = SettlementAggregator().close_current_period(
            self.admin, period=self.period, now=cairo(2026, 3, 14, 10)
        )

        self.assertEqual(result.failure.code, NOTHING_TO_SETTLE)
        self.assertFalse(PlatformSettlement.objects.exists())
        self.period.refresh_from_db()
        self.assertEqual(self.period.status, PeriodStatus.ACTIVE)

    def test_roll_over_empty_period(self):
        result = roll_over_empty_period(self.period, self.admin, now=cairo(2026, 3, 14, 10))

        self.assertTrue(result.ok)
        self.period.refresh_from_db()
        self.assertEqual(self.period.status, PeriodStatus.CLOSED)
        self.assertEqual(result.value.start_date, cairo(2026, 3, 14, 0))
        self.assertFalse(PlatformSettlement.objects.exists())

    def test_roll_over_refuses_running_period(self):
        result = roll_over_empty_period(self.period, self.admin, now=cairo(2026, 3, 12))
        self.assertEqual(result.failure.code, PERIOD_RUNNING)

    def test_ads_provider_bills_by_start(self):
        owner = create_user('+201000000112', UserRole.SHOP)
        shop = create_shop(owner)
        AdPlacement.objects.create(
            shop=shop, title='In week', cost=Decimal('10.00'),
            starts_at=cairo(2026, 3, 8), ends_at=cairo(2026, 3, 30),
        )
        AdPlacement.objects.create(
            shop=shop, title='Earlier', cost=Decimal('99.00'),
            starts_at=cairo(2026, 3, 1), ends_at=cairo(2026, 3, 10),
        )

        rows = AdPlacementCostProvider().get_ads_cost_for_period(self.period.start_date, self.period.end_date)

        self.assertEqual(rows, [{'shop_id': shop.pk, 'total_cost': Decimal('10.00')}])


# ==========================================
# Review
# ==========================================

class TestSettlementReview(SettlementFixtureMixin, TestCase):

    def setUp(self):
        self.build_week()
        self.close()
        self.record = ShopSettlement.objects.get(period=self.period, shop=self.shop_one)

    def test_review_then_settle(self):
        reviewed = update_settlement_status(self.record, SettlementStatus.REVIEWED, self.admin, 'Checked').unwrap()
        self.assertEqual(reviewed.reviewed_by, self.admin)

        settled = update_settlement_status(reviewed, SettlementStatus.SETTLED, self.admin).unwrap()
        self.assertIsNotNone(settled.settled_at)
        self.assertEqual(settled.amount_due, Decimal('25.00'))
        self.assertEqual(settled.notes, 'Checked')

    def test_cannot_skip_review(self):
        result = update_settlement_status(self.record, SettlementStatus.SETTLED, self.admin)
        self.assertIsInstance(result.failure, BusinessRuleFailure)

    def test_dispute_and_resolve(self):
        update_settlement_status(self.record, SettlementStatus.DISPUTED, self.admin, 'Shop disagrees')
        result = update_settlement_status(self.record, SettlementStatus.REVIEWED, self.admin)
        self.assertEqual(result.value.status, SettlementStatus.REVIEWED)

    def test_settled_is_final(self):
        update_settlement_status(self.record, SettlementStatus.REVIEWED, self.admin)
        update_settlement_status(self.record, SettlementStatus.SETTLED, self.admin)
        result = update_settlement_status(self.record, SettlementStatus.DISPUTED, self.admin)
        self.assertIsInstance(result.failure, BusinessRuleFailure)

    def test_non_admin_cannot_review(self):
        result = update_settlement_status(self.record, SettlementStatus.REVIEWED, self.owner_one)
        self.assertIsInstance(result.failure, ValidationFailure)

    def test_settle_period_requires_all_records_settled(self):
        result = settle_period(self.period, self.admin)
        self.assertIsInstance(result.failure, BusinessRuleFailure)

        for record in [*ShopSettlement.objects.filter(period=self.period),
                       *RiderSettlement.objects.filter(period=self.period)]:
            update_settlement_status(record, SettlementStatus.REVIEWED, self.admin)
            update_settlement_status(record, SettlementStatus.SETTLED, self.admin)

        period = settle_period(self.period, self.admin).unwrap()
        self.assertEqual(period.status, PeriodStatus.SETTLED)
        self.assertIsNotNone(period.settled_at)


# ==========================================
# Celery task
# ==========================================

class TestCloseWeeklySettlementTask(TestCase):
    """The scheduled close runs against the real clock: use a week two weeks back."""

    def setUp(self):
        self.customer = create_user('+201000000121', UserRole.CUSTOMER)
        self.owner = create_user('+201000000122', UserRole.SHOP)
        self.rider = create_user('+201000000123', UserRole.RIDER)
        self.shop = create_shop(self.owner)
        self.period = open_period_for(timezone.now() - timedelta(days=14))

    def _complete_in_period(self):
        order = complete_order(create_order(self.customer, self.shop), self.owner, self.rider)
        return backdate(order, completed_at=self.period.start_date + timedelta(days=2))

    def test_task_closes_active_period(self):
        self._complete_in_period()

        outcome = close_weekly_settlement()

        self.assertEqual(outcome['period'], str(self.period.pk))
        self.assertEqual(outcome['shops'], 1)
        self.assertEqual(outcome['riders'], 1)
        self.period.refresh_from_db()
        self.assertEqual(self.period.status, PeriodStatus.CLOSED)
        self.assertIsNone(self.period.closed_by)

    def test_task_rolls_over_empty_week(self):
        outcome = close_weekly_settlement()

        self.assertIn('skipped', outcome)
        self.period.refresh_from_db()
        self.assertEqual(self.period.status, PeriodStatus.CLOSED)
        self.assertEqual(WeeklyPeriod.objects.filter(status=PeriodStatus.ACTIVE).count(), 1)

    @patch('finance.services.SettlementAggregator.close_current_period')
    def test_task_retries_network_failures(self, mock_close):
        mock_close.return_value = Err(NetworkFailure('Database unavailable'))

        with patch.object(close_weekly_settlement, 'retry', side_effect=Retry()) as mock_retry:
            with self.assertRaises(Retry):
                close_weekly_settlement()

        mock_retry.assert_called_once()

    @patch('finance.services.SettlementAggregator.close_current_period')
    def test_task_does_not_retry_business_rules(self, mock_close):
        mock_close.return_value = Err(BusinessRuleFailure('Period closed', code=ALREADY_CLOSED))

        outcome = close_weekly_settlement()

        self.assertEqual(outcome, {'error': 'Period closed', 'code': ALREADY_CLOSED})


# ==========================================
# API
# ==========================================

class TestSettlementAPI(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.admin = create_user('+201000000131', UserRole.ADMIN)
        self.customer = create_user('+201000000132', UserRole.CUSTOMER)
        self.owner = create_user('+201000000133', UserRole.SHOP)
        self.other_owner = create_user('+201000000134', UserRole.SHOP)
        self.rider = create_user('+201000000135', UserRole.RIDER)
        self.shop = create_shop(self.owner)
        self.period = open_period_for(timezone.now() - timedelta(days=14))

        order = complete_order(create_order(self.customer, self.shop), self.owner, self.rider)
        backdate(order, completed_at=self.period.start_date + timedelta(days=1))

    def test_admin_closes_period(self):
        self.client.force_authenticate(self.admin)

        response = self.client.post('/api/settlements/close/', {'note': 'Weekly close'}, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['shops_settled'], 1)
        self.assertEqual(response.data['summary']['completed_orders'], 1)
        self.assertEqual(response.data['period']['status'], PeriodStatus.CLOSED)

    def test_second_close_conflicts(self):
        self.client.force_authenticate(self.admin)
        self.client.post('/api/settlements/close/', {}, format='json')

        # The following week has no completed orders
        response = self.client.post('/api/settlements/close/', {}, format='json')

        self.assertEqual(response.status_code, 409)

    def test_non_admin_cannot_close(self):
        self.client.force_authenticate(self.owner)
        response = self.client.post('/api/settlements/close/', {}, format='json')
        self.assertEqual(response.status_code, 403)

    def test_shop_owner_sees_own_settlements_only(self):
        SettlementAggregator().close_current_period(self.admin)

        self.client.force_authenticate(self.owner)
        self.assertEqual(self.client.get('/api/settlements/shops/').data['count'], 1)

        self.client.force_authenticate(self.other_owner)
        self.assertEqual(self.client.get('/api/settlements/shops/').data['count'], 0)

    def test_admin_reviews_settlement(self):
        SettlementAggregator().close_current_period(self.admin)
        record = ShopSettlement.objects.get()
        self.client.force_authenticate(self.admin)

        response = self.client.post(
            f'/api/settlements/shops/{record.pk}/status/',
            {'status': 'reviewed', 'notes': 'Numbers match'},
            format='json',
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], SettlementStatus.REVIEWED)
