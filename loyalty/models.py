"""
LOYALTY App - Points ledger & referrals for BALADI

Handles: PointsTransaction (append-only ledger), Referral
"""

import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone


class PointsTransactionType(models.TextChoices):
    """Points ledger entry types."""
    EARNED = 'earned', 'Earned on completed order'
    REDEEMED = 'redeemed', 'Redeemed on order'
    REFERRAL_BONUS = 'referral_bonus', 'Referral bonus'
    ADJUSTMENT = 'adjustment', 'Adjustment'


class PointsTransaction(models.Model):
    """
    One signed change of a customer's points balance.

    Sum of `points` for a customer == customer.points_balance.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='points_transactions',
        verbose_name="Customer"
    )
    order = models.ForeignKey(
        'orders.Order',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='points_transactions',
        verbose_name="Order"
    )
    transaction_type = models.CharField(
        max_length=20,
        choices=PointsTransactionType.choices,
        verbose_name="Type"
    )
    points = models.IntegerField(verbose_name="Points (signed)")
    balance_before = models.PositiveIntegerField(verbose_name="Balance before")
    balance_after = models.PositiveIntegerField(verbose_name="Balance after")
    description = models.CharField(max_length=255, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='points_adjustments_made',
        verbose_name="Adjusted by"
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = "Points transaction"
        verbose_name_plural = "Points transactions"
        ordering = ['-created_at']
        constraints = [
            # At most one entry of each kind per order (earned, redeemed, refund...)
            models.UniqueConstraint(
                fields=['customer', 'order', 'transaction_type'],
                condition=Q(order__isnull=False),
                name='unique_points_entry_per_order',
            ),
        ]
        indexes = [
            models.Index(fields=['customer', 'created_at']),
        ]

    def __str__(self):
        sign = '+' if self.points >= 0 else ''
        return f"{self.get_transaction_type_display()} {sign}{self.points} ({self.customer_id})"


class ReferralStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    COMPLETED = 'completed', 'Completed'
    EXPIRED = 'expired', 'Expired'


class Referral(models.Model):
    """
    A referred customer joined with a referrer's code.

    Completes at most once, on the referred customer's first completed order.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    referrer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='referrals_made',
        verbose_name="Referrer"
    )
    referred = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='referral_received',
        verbose_name="Referred customer"
    )
    code_used = models.CharField(max_length=8, verbose_name="Code used")
    first_order = models.ForeignKey(
        'orders.Order',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name="First completed order"
    )
    points_awarded = models.BooleanField(default=False)
    status = models.CharField(
        max_length=20,
        choices=ReferralStatus.choices,
        default=ReferralStatus.PENDING
    )
    created_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Referral"
        verbose_name_plural = "Referrals"
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.referrer_id} -> {self.referred_id} ({self.status})"

    @property
    def is_pending(self) -> bool:
        return self.status == ReferralStatus.PENDING
