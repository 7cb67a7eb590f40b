"""
FINANCE App - Cash custody & Weekly settlements for BALADI

Handles: CashTransaction, WeeklyPeriod, Shop/Rider/Platform settlements,
AdPlacement (source of shop ads costs)
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone


# ===========================================
# CASH CUSTODY
# ===========================================

class CashTransactionType(models.TextChoices):
    """One hop of physical cash."""
    CUSTOMER_TO_RIDER = 'customer_to_rider', 'Customer -> Rider'
    RIDER_TO_SHOP = 'rider_to_shop', 'Rider -> Shop'
    SHOP_TO_ADMIN = 'shop_to_admin', 'Shop -> Platform'


class CashTransaction(models.Model):
    """
    Audit record of a cash handoff for an order.

    to_user is empty when the platform is the receiving party.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(
        'orders.Order',
        on_delete=models.PROTECT,
        related_name='cash_transactions',
        verbose_name="Order"
    )
    transaction_type = models.CharField(
        max_length=20,
        choices=CashTransactionType.choices,
        verbose_name="Type"
    )
    amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        verbose_name="Amount (EGP)"
    )
    from_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='cash_sent',
        verbose_name="From"
    )
    to_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='cash_received',
        verbose_name="To"
    )
    confirmed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='cash_confirmations',
        verbose_name="Confirmed by"
    )
    confirmed_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Cash transaction"
        verbose_name_plural = "Cash transactions"
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['order', 'transaction_type'],
                name='unique_cash_hop_per_order',
            ),
        ]

    def __str__(self):
        return f"{self.get_transaction_type_display()} {self.amount} EGP ({self.order_id})"


# ===========================================
# WEEKLY PERIODS
# ===========================================

class PeriodStatus(models.TextChoices):
    ACTIVE = 'active', 'Active'
    CLOSED = 'closed', 'Closed'
    SETTLED = 'settled', 'Settled'


class WeeklyPeriod(models.Model):
    """
    Settlement week: Saturday 00:00 -> Friday 23:59:59 (SETTLEMENT_TIME_ZONE).

    At most one period is active at a time.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    year = models.PositiveIntegerField(verbose_name="Year")
    week_number = models.PositiveSmallIntegerField(verbose_name="Week number")
    start_date = models.DateTimeField(unique=True, verbose_name="Start (Saturday 00:00)")
    end_date = models.DateTimeField(verbose_name="End (Friday 23:59:59)")
    status = models.CharField(
        max_length=20,
        choices=PeriodStatus.choices,
        default=PeriodStatus.ACTIVE,
        verbose_name="Status"
    )
    closed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='closed_periods',
        verbose_name="Closed by"
    )
    closed_at = models.DateTimeField(null=True, blank=True)
    settled_at = models.DateTimeField(null=True, blank=True)
    note = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Weekly period"
        verbose_name_plural = "Weekly periods"
        ordering = ['-start_date']
        constraints = [
            models.UniqueConstraint(
                fields=['status'],
                condition=Q(status='active'),
                name='single_active_period',
            ),
        ]

    def __str__(self):
        return self.label

    @property
    def label(self) -> str:
        return f"Week {self.week_number} - {self.year}"

    @property
    def is_active(self) -> bool:
        return self.status == PeriodStatus.ACTIVE


# ===========================================
# SETTLEMENT RECORDS
# ===========================================

class SettlementStatus(models.TextChoices):
    PENDING = 'pending', 'Pending review'
    REVIEWED = 'reviewed', 'Reviewed'
    SETTLED = 'settled', 'Settled'
    DISPUTED = 'disputed', 'Disputed'


class SettlementRecord(models.Model):
    """Review fields shared by shop and rider settlements."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    status = models.CharField(
        max_length=20,
        choices=SettlementStatus.choices,
        default=SettlementStatus.PENDING,
        verbose_name="Status"
    )
    notes = models.TextField(blank=True)
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    settled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        abstract = True


def money_field(verbose_name):
    return models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name=verbose_name
    )


class ShopSettlement(SettlementRecord):
    """
    One shop's figures for one period.

    net_amount = gross_sales - total_commission - ads_cost
    amount_due = total_commission + ads_cost - points_discounts
    (points discounts are platform-funded, so they are credited back)
    """

    period = models.ForeignKey(WeeklyPeriod, on_delete=models.PROTECT, related_name='shop_settlements')
    shop = models.ForeignKey('core.Shop', on_delete=models.PROTECT, related_name='settlements')

    total_orders = models.PositiveIntegerField(default=0)
    completed_orders = models.PositiveIntegerField(default=0)
    cancelled_orders = models.PositiveIntegerField(default=0)
    gross_sales = money_field("Gross sales (EGP)")
    total_commission = money_field("Commission (EGP)")
    points_discounts = money_field("Points discount credit (EGP)")
    free_delivery_cost = money_field("Free delivery cost (EGP)")
    ads_cost = money_field("Ads cost (EGP)")
    net_amount = money_field("Net amount (EGP)")
    amount_due = money_field("Due to platform (EGP)")

    class Meta:
        verbose_name = "Shop settlement"
        verbose_name_plural = "Shop settlements"
        ordering = ['period', 'shop__name']
        constraints = [
            models.UniqueConstraint(fields=['shop', 'period'], name='unique_shop_settlement_per_period'),
        ]

    def __str__(self):
        return f"{self.shop} - {self.period}"


class RiderSettlement(SettlementRecord):
    period = models.ForeignKey(WeeklyPeriod, on_delete=models.PROTECT, related_name='rider_settlements')
    rider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='rider_settlements'
    )

    total_deliveries = models.PositiveIntegerField(default=0)
    total_earnings = money_field("Delivery earnings (EGP)")
    total_cash_handled = money_field("Cash handled (EGP)")
    net_earnings = money_field("Net earnings (EGP)")

    class Meta:
        verbose_name = "Rider settlement"
        verbose_name_plural = "Rider settlements"
        ordering = ['period', 'rider__full_name']
        constraints = [
            models.UniqueConstraint(fields=['rider', 'period'], name='unique_rider_settlement_per_period'),
        ]

    def __str__(self):
        return f"{self.rider} - {self.period}"


class PlatformSettlement(models.Model):
    """
    Platform summary of a closed period.

    Created first thing in a close: the one-to-one on period is the claim
    that makes a concurrent second close fail.
    """

    SUMMARY_FIELDS = (
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

    period = models.OneToOneField(WeeklyPeriod, on_delete=models.PROTECT, related_name='platform_settlement')
    closed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )

    total_orders = models.PositiveIntegerField(default=0)
    completed_orders = models.PositiveIntegerField(default=0)
    cancelled_orders = models.PositiveIntegerField(default=0)
    gross_sales = money_field("Gross sales (EGP)")
    total_delivery_fees = money_field("Delivery fees (EGP)")
    total_shop_commissions = money_field("Shop commissions (EGP)")
    total_points_redeemed = models.PositiveIntegerField(default=0)
    points_discount_value = money_field("Points discount (EGP)")
    free_delivery_orders = models.PositiveIntegerField(default=0)
    free_delivery_cost = money_field("Free delivery cost (EGP)")
    total_ads_revenue = money_field("Ads revenue (EGP)")
    # Not clamped: a loss-making week shows as negative
    admin_net_commission = money_field("Platform net (EGP)")
    # Tracked beside the report summary; never part of the platform net
    total_personal_commission = money_field("Personal commission (EGP)")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Platform settlement"
        verbose_name_plural = "Platform settlements"

    def __str__(self):
        return f"Platform - {self.period}"

    def as_summary(self) -> dict:
        return {name: getattr(self, name) for name in self.SUMMARY_FIELDS}


# ===========================================
# ADS
# ===========================================

class AdPlacement(models.Model):
    """
    Paid promotion bought by a shop.

    Billed in the settlement period containing starts_at.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    shop = models.ForeignKey('core.Shop', on_delete=models.PROTECT, related_name='ad_placements')
    title = models.CharField(max_length=150)
    cost = models.DecimalField(max_digits=10, decimal_places=2, verbose_name="Cost (EGP)")
    starts_at = models.DateTimeField()
    ends_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Ad placement"
        verbose_name_plural = "Ad placements"
        ordering = ['-starts_at']

    def __str__(self):
        return f"{self.title} ({self.shop})"
