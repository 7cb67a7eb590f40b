"""
FINANCE App - Weekly Settlement Engine for BALADI

Closing a period:
1. Resolve the period (explicit, else the active one, else the week that
   just ended) and lock it
2. Claim it with a PlatformSettlement row (one per period)
3. Fetch the period's unsettled orders; only completed orders carry money
4. Accumulate per shop / per rider, add ads costs
5. Persist settlement records and the platform summary, stamp the orders,
   close the period and open the next one

Steps 2-5 share one transaction: a failure leaves nothing behind.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta, SA
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from core.failures import BusinessRuleFailure, NotFoundFailure, ValidationFailure
from core.results import returns_result
from orders.models import Order, OrderStatus
from orders.selectors import get_orders_for_settlement

from .models import (
    PeriodStatus,
    PlatformSettlement,
    RiderSettlement,
    SettlementStatus,
    ShopSettlement,
    WeeklyPeriod,
)
from .providers import AdPlacementCostProvider

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')

ALREADY_CLOSED = 'PERIOD_ALREADY_CLOSED'
PERIOD_RUNNING = 'PERIOD_STILL_RUNNING'
NOTHING_TO_SETTLE = 'NOTHING_TO_SETTLE'


# ===========================================
# WEEK BOUNDARIES
# ===========================================

def settlement_zone() -> ZoneInfo:
    return ZoneInfo(settings.SETTLEMENT_TIME_ZONE)


def week_boundaries(moment: datetime, tz: ZoneInfo = None):
    """
    (start, end) of the settlement week containing `moment`.

    start = Saturday 00:00:00, end = Friday 23:59:59.999999, both in the
    settlement zone whatever the server zone is.
    """
    tz = tz or settlement_zone()
    local = moment.astimezone(tz)
    saturday = local.date() + relativedelta(weekday=SA(-1))
    start = datetime.combine(saturday, time.min, tzinfo=tz)
    end = datetime.combine(saturday + timedelta(days=6), time.max, tzinfo=tz)
    return start, end


def week_label(end: datetime):
    """(year, week_number): ISO week of the Friday that ends the period."""
    iso = end.isocalendar()
    return iso[0], iso[1]


def open_period_for(moment: datetime) -> WeeklyPeriod:
    """Get or create the period of the week containing `moment`."""
    start, end = week_boundaries(moment)
    year, week_number = week_label(end)
    period, created = WeeklyPeriod.objects.get_or_create(
        start_date=start,
        defaults={
            'end_date': end,
            'year': year,
            'week_number': week_number,
            'status': PeriodStatus.ACTIVE,
        },
    )
    if created:
        logger.info(f"[SETTLEMENT] Opened period {period.label} ({start.isoformat()} -> {end.isoformat()})")
    return period


def open_next_period(period: WeeklyPeriod) -> WeeklyPeriod:
    """
    Period following `period`, or the already active one if a different
    period is open (closing an older week must not open a second one).
    """
    active = WeeklyPeriod.objects.filter(status=PeriodStatus.ACTIVE).exclude(pk=period.pk).first()
    if active is not None:
        return active
    return open_period_for(period.end_date + timedelta(microseconds=1))


def get_current_week_settlement():
    """The active period, or None."""
    return WeeklyPeriod.objects.filter(status=PeriodStatus.ACTIVE).first()


def get_shop_settlements(period_id):
    return ShopSettlement.objects.filter(period_id=period_id).select_related('shop')


def get_rider_settlements(period_id):
    return RiderSettlement.objects.filter(period_id=period_id).select_related('rider')


# ===========================================
# ACCUMULATORS
# ===========================================

@dataclass
class ShopTotals:
    total_orders: int = 0
    completed_orders: int = 0
    cancelled_orders: int = 0
    gross_sales: Decimal = ZERO
    total_commission: Decimal = ZERO
    points_discounts: Decimal = ZERO
    free_delivery_cost: Decimal = ZERO
    ads_cost: Decimal = ZERO

    @property
    def net_amount(self) -> Decimal:
        return self.gross_sales - self.total_commission - self.ads_cost

    @property
    def amount_due(self) -> Decimal:
        return self.total_commission + self.ads_cost - self.points_discounts

    @property
    def participates(self) -> bool:
        return self.completed_orders > 0 or self.ads_cost > 0


@dataclass
class RiderTotals:
    total_deliveries: int = 0
    total_earnings: Decimal = ZERO
    total_cash_handled: Decimal = ZERO


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of a successful close."""

    period: WeeklyPeriod
    platform: PlatformSettlement
    next_period: WeeklyPeriod
    orders_processed: int
    completed_orders: int
    cancelled_orders: int
    shops_settled: int
    riders_settled: int
    total_points_redeemed_value: Decimal
    store_points_credits: dict = field(default_factory=dict)


# ===========================================
# AGGREGATOR
# ===========================================

class SettlementAggregator:
    """
    Weekly settlement close.

    Collaborators are injected: `ads_provider` needs
    get_ads_cost_for_period(start, end); `order_source` is a callable
    (start, end) -> iterable of orders.
    """

    def __init__(self, ads_provider=None, order_source=None):
        self.ads_provider = ads_provider or AdPlacementCostProvider()
        self.order_source = order_source or get_orders_for_settlement

    @returns_result
    @transaction.atomic
    def close_current_period(self, admin, note: str = '', period: WeeklyPeriod = None, now=None):
        """
        Close `period` (default: the active one) and produce its settlements.

        Returns Ok(SettlementResult) or Err(BusinessRuleFailure) when the
        period is already closed, still running, or has nothing to settle.
        """
        if admin is not None and not admin.is_platform_admin:
            raise ValidationFailure("Only admins can close settlement periods")

        now = now or timezone.now()
        period = self._resolve_period(period, now)

        if period.status != PeriodStatus.ACTIVE:
            raise BusinessRuleFailure(f"Period {period.label} is already closed", code=ALREADY_CLOSED)
        if now <= period.end_date:
            raise BusinessRuleFailure(
                f"Period {period.label} is still running until {period.end_date.isoformat()}",
                code=PERIOD_RUNNING,
            )

        platform = self._claim(period, admin)

        orders = list(self.order_source(period.start_date, period.end_date))
        completed = [order for order in orders if order.status == OrderStatus.COMPLETED]
        cancelled = [order for order in orders if order.status == OrderStatus.CANCELLED]

        if not completed:
            raise BusinessRuleFailure(
                f"Nothing to settle: no completed orders in {period.label}", code=NOTHING_TO_SETTLE
            )

        shop_totals, rider_totals = self._accumulate(completed, cancelled)
        ads_by_shop = self._ads_costs(period)
        for shop_id, cost in ads_by_shop.items():
            shop_totals[shop_id].ads_cost += cost

        shop_records = self._persist_shop_settlements(period, shop_totals)
        rider_records = self._persist_rider_settlements(period, rider_totals)
        self._fill_platform_summary(platform, completed, cancelled, ads_by_shop)

        Order.objects.filter(pk__in=[order.pk for order in orders]).update(weekly_period=period)

        period.status = PeriodStatus.CLOSED
        period.closed_by = admin
        period.closed_at = now
        period.note = note or ''
        period.save(update_fields=['status', 'closed_by', 'closed_at', 'note'])

        next_period = open_next_period(period)

        store_points_credits = {
            shop_id: totals.points_discounts
            for shop_id, totals in shop_totals.items()
            if totals.participates
        }

        logger.info(
            f"[SETTLEMENT] Closed {period.label}: {len(completed)} completed, "
            f"{len(cancelled)} cancelled, {len(shop_records)} shops, {len(rider_records)} riders, "
            f"platform net {platform.admin_net_commission} EGP"
        )

        return SettlementResult(
            period=period,
            platform=platform,
            next_period=next_period,
            orders_processed=len(orders),
            completed_orders=len(completed),
            cancelled_orders=len(cancelled),
            shops_settled=len(shop_records),
            riders_settled=len(rider_records),
            total_points_redeemed_value=platform.points_discount_value,
            store_points_credits=store_points_credits,
        )

    # -------------------------------------------
    # Steps
    # -------------------------------------------

    def _resolve_period(self, period, now) -> WeeklyPeriod:
        if period is not None:
            try:
                return WeeklyPeriod.objects.select_for_update().get(pk=period.pk)
            except WeeklyPeriod.DoesNotExist:
                raise NotFoundFailure(f"Settlement period {period.pk} not found")

        active = WeeklyPeriod.objects.select_for_update().filter(status=PeriodStatus.ACTIVE).first()
        if active is not None:
            return active

        # No open period: settle the week that just ended
        created = open_period_for(now - timedelta(days=7))
        return WeeklyPeriod.objects.select_for_update().get(pk=created.pk)

    def _claim(self, period, admin) -> PlatformSettlement:
        try:
            with transaction.atomic():
                return PlatformSettlement.objects.create(period=period, closed_by=admin)
        except IntegrityError:
            raise BusinessRuleFailure(f"Period {period.label} is already closed", code=ALREADY_CLOSED)

    def _accumulate(self, completed, cancelled):
        shop_totals = defaultdict(ShopTotals)
        rider_totals = defaultdict(RiderTotals)

        for order in completed:
            shop = shop_totals[order.shop_id]
            shop.total_orders += 1
            shop.completed_orders += 1
            shop.gross_sales += order.subtotal
            shop.total_commission += order.shop_commission
            # Platform-funded: credited back to the shop
            shop.points_discounts += order.points_discount
            shop.free_delivery_cost += order.free_delivery_cost

            if order.rider_id:
                rider = rider_totals[order.rider_id]
                rider.total_deliveries += 1
                rider.total_earnings += order.rider_earnings
                if order.cash_collected:
                    rider.total_cash_handled += order.total

        for order in cancelled:
            shop = shop_totals[order.shop_id]
            shop.total_orders += 1
            shop.cancelled_orders += 1

        return shop_totals, rider_totals

    def _ads_costs(self, period) -> dict:
        ads_by_shop = defaultdict(lambda: ZERO)
        for row in self.ads_provider.get_ads_cost_for_period(period.start_date, period.end_date):
            ads_by_shop[row['shop_id']] += Decimal(str(row['total_cost']))
        return dict(ads_by_shop)

    def _persist_shop_settlements(self, period, shop_totals):
        records = [
            ShopSettlement(
                period=period,
                shop_id=shop_id,
                total_orders=totals.total_orders,
                completed_orders=totals.completed_orders,
                cancelled_orders=totals.cancelled_orders,
                gross_sales=totals.gross_sales,
                total_commission=totals.total_commission,
                points_discounts=totals.points_discounts,
                free_delivery_cost=totals.free_delivery_cost,
                ads_cost=totals.ads_cost,
                net_amount=totals.net_amount,
                amount_due=totals.amount_due,
            )
            for shop_id, totals in shop_totals.items()
            if totals.participates
        ]
        return ShopSettlement.objects.bulk_create(records)

    def _persist_rider_settlements(self, period, rider_totals):
        records = [
            RiderSettlement(
                period=period,
                rider_id=rider_id,
                total_deliveries=totals.total_deliveries,
                total_earnings=totals.total_earnings,
                total_cash_handled=totals.total_cash_handled,
                net_earnings=totals.total_earnings,
            )
            for rider_id, totals in rider_totals.items()
        ]
        return RiderSettlement.objects.bulk_create(records)

    def _fill_platform_summary(self, platform, completed, cancelled, ads_by_shop):
        platform.total_orders = len(completed) + len(cancelled)
        platform.completed_orders = len(completed)
        platform.cancelled_orders = len(cancelled)
        platform.gross_sales = sum((o.subtotal for o in completed), ZERO)
        platform.total_delivery_fees = sum((o.delivery_fee for o in completed), ZERO)
        platform.total_shop_commissions = sum((o.shop_commission for o in completed), ZERO)
        platform.total_points_redeemed = sum(o.points_used for o in completed)
        platform.points_discount_value = sum((o.points_discount for o in completed), ZERO)
        platform.free_delivery_orders = sum(1 for o in completed if o.is_free_delivery)
        platform.free_delivery_cost = sum((o.free_delivery_cost for o in completed), ZERO)
        platform.total_ads_revenue = sum(ads_by_shop.values(), ZERO)
        platform.total_personal_commission = sum((o.personal_commission for o in completed), ZERO)
        platform.admin_net_commission = (
            platform.total_shop_commissions
            - platform.points_discount_value
            - platform.free_delivery_cost
            + platform.total_ads_revenue
        )
        platform.save()


def close_week(admin, note: str = ''):
    """Close the active period with the default collaborators."""
    return SettlementAggregator().close_current_period(admin, note)


@returns_result
@transaction.atomic
def roll_over_empty_period(period: WeeklyPeriod, admin=None, now=None):
    """
    Close an ended period that has no completed orders, without creating
    any settlement records, and open the next one.

    Keeps an empty week from blocking every later close.
    """
    now = now or timezone.now()
    period = WeeklyPeriod.objects.select_for_update().get(pk=period.pk)
    if period.status != PeriodStatus.ACTIVE:
        raise BusinessRuleFailure(f"Period {period.label} is already closed", code=ALREADY_CLOSED)
    if now <= period.end_date:
        raise BusinessRuleFailure(
            f"Period {period.label} is still running until {period.end_date.isoformat()}",
            code=PERIOD_RUNNING,
        )

    orders = list(get_orders_for_settlement(period.start_date, period.end_date))
    if any(order.status == OrderStatus.COMPLETED for order in orders):
        raise BusinessRuleFailure(f"Period {period.label} has completed orders; close it instead")

    Order.objects.filter(pk__in=[order.pk for order in orders]).update(weekly_period=period)
    period.status = PeriodStatus.CLOSED
    period.closed_by = admin
    period.closed_at = now
    period.note = "No completed orders"
    period.save(update_fields=['status', 'closed_by', 'closed_at', 'note'])

    logger.info(f"[SETTLEMENT] Rolled over empty period {period.label}")
    return open_next_period(period)


# ===========================================
# REVIEW
# ===========================================

SETTLEMENT_TRANSITIONS = {
    SettlementStatus.PENDING: frozenset({SettlementStatus.REVIEWED, SettlementStatus.DISPUTED}),
    SettlementStatus.REVIEWED: frozenset({SettlementStatus.SETTLED, SettlementStatus.DISPUTED}),
    SettlementStatus.DISPUTED: frozenset({SettlementStatus.REVIEWED}),
    SettlementStatus.SETTLED: frozenset(),
}


@returns_result
@transaction.atomic
def update_settlement_status(record, new_status, admin, notes: str = ''):
    """
    Admin review of a ShopSettlement or RiderSettlement.

    pending -> reviewed -> settled, pending|reviewed -> disputed,
    disputed -> reviewed. Figures never change.
    """
    if not admin.is_platform_admin:
        raise ValidationFailure("Only admins can review settlements")
    if new_status not in SettlementStatus.values:
        raise ValidationFailure(f"Unknown settlement status: {new_status}")

    record = type(record).objects.select_for_update().get(pk=record.pk)
    allowed = SETTLEMENT_TRANSITIONS[record.status]
    if new_status not in allowed:
        raise BusinessRuleFailure(f"Settlement cannot move from {record.status} to {new_status}")

    now = timezone.now()
    previous = record.status
    record.status = new_status
    record.reviewed_by = admin
    record.reviewed_at = now
    if new_status == SettlementStatus.SETTLED:
        record.settled_at = now
    if notes:
        record.notes = f"{record.notes}\n{notes}".strip()
    record.save(update_fields=['status', 'reviewed_by', 'reviewed_at', 'settled_at', 'notes'])

    logger.info(f"[SETTLEMENT] {type(record).__name__} {record.pk}: {previous} -> {new_status}")
    return record


@returns_result
@transaction.atomic
def settle_period(period, admin):
    """A closed period becomes settled once every record is settled."""
    if not admin.is_platform_admin:
        raise ValidationFailure("Only admins can settle periods")

    period = WeeklyPeriod.objects.select_for_update().get(pk=period.pk)
    if period.status != PeriodStatus.CLOSED:
        raise BusinessRuleFailure(f"Only closed periods can be settled ({period.label} is {period.status})")

    open_shops = period.shop_settlements.exclude(status=SettlementStatus.SETTLED).count()
    open_riders = period.rider_settlements.exclude(status=SettlementStatus.SETTLED).count()
    if open_shops or open_riders:
        raise BusinessRuleFailure(
            f"{open_shops} shop and {open_riders} rider settlement(s) are not settled yet"
        )

    period.status = PeriodStatus.SETTLED
    period.settled_at = timezone.now()
    period.save(update_fields=['status', 'settled_at'])
    logger.info(f"[SETTLEMENT] Period {period.label} settled")
    return period
