"""
ORDERS App - Orders & Lifecycle for BALADI

Handles: Orders, item snapshots, status history
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.failures import BusinessRuleFailure


class OrderStatus(models.TextChoices):
    """Order status enumeration."""
    PENDING = 'pending', 'Pending'
    ACCEPTED = 'accepted', 'Accepted by shop'
    PREPARING = 'preparing', 'Preparing'
    PICKED_UP = 'picked_up', 'Picked up by rider'
    SHOP_PAID = 'shop_paid', 'Cash handed to shop'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


# Lifecycle timestamp stamped when an order enters each status
STATUS_TIMESTAMP_FIELDS = {
    OrderStatus.ACCEPTED: 'accepted_at',
    OrderStatus.PREPARING: 'preparing_at',
    OrderStatus.PICKED_UP: 'picked_up_at',
    OrderStatus.SHOP_PAID: 'shop_paid_at',
    OrderStatus.COMPLETED: 'completed_at',
    OrderStatus.CANCELLED: 'cancelled_at',
}

# Snapshot fields computed once at placement
FINANCIAL_FIELDS = (
    'subtotal',
    'delivery_fee',
    'is_free_delivery',
    'points_used',
    'points_discount',
    'total',
    'shop_commission',
    'platform_commission',
    'rider_earnings',
    'points_earned',
    'personal_commission_store',
    'personal_commission_delivery',
    'personal_commission',
)


class Order(models.Model):
    """
    Core order model (aggregate root).

    Financial fields are frozen at creation. Only cancellation may
    recompute them, by saving with recompute_financials=True.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.CharField(
        max_length=20,
        unique=True,
        verbose_name="Order number"
    )

    # Actors
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='orders',
        verbose_name="Customer"
    )
    shop = models.ForeignKey(
        'core.Shop',
        on_delete=models.PROTECT,
        related_name='orders',
        verbose_name="Shop"
    )
    rider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='deliveries',
        verbose_name="Rider"
    )

    # Status
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        verbose_name="Status"
    )

    # Delivery details
    delivery_address = models.CharField(max_length=255, verbose_name="Delivery address")
    customer_notes = models.TextField(blank=True, verbose_name="Customer notes")
    cancellation_reason = models.TextField(blank=True, verbose_name="Cancellation reason")

    # Pricing (frozen at creation)
    subtotal = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'),
        verbose_name="Subtotal (EGP)"
    )
    delivery_fee = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'),
        verbose_name="Delivery fee (EGP)"
    )
    is_free_delivery = models.BooleanField(default=False, verbose_name="Free delivery")
    points_used = models.PositiveIntegerField(default=0, verbose_name="Points redeemed")
    points_discount = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'),
        verbose_name="Points discount (EGP)"
    )
    total = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'),
        verbose_name="Total (EGP)"
    )
    shop_commission = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'),
        verbose_name="Shop commission (EGP)"
    )
    # May be negative when discounts exceed the commission
    platform_commission = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'),
        verbose_name="Platform commission (EGP)"
    )
    rider_earnings = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'),
        verbose_name="Rider earnings (EGP)"
    )
    points_earned = models.PositiveIntegerField(default=0, verbose_name="Points earned")
    # Personal commission: tracked only, never deducted from the figures above
    personal_commission_store = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'),
        verbose_name="Personal commission from store (EGP)"
    )
    personal_commission_delivery = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'),
        verbose_name="Personal commission from delivery (EGP)"
    )
    personal_commission = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'),
        verbose_name="Personal commission (EGP)"
    )

    # Cash custody (customer -> rider -> shop -> platform)
    cash_collected = models.BooleanField(default=False, verbose_name="Cash collected by rider")
    cash_collected_at = models.DateTimeField(null=True, blank=True)
    cash_transferred_to_shop = models.BooleanField(default=False, verbose_name="Cash handed to shop")
    cash_transferred_at = models.DateTimeField(null=True, blank=True)
    shop_confirmed_cash = models.BooleanField(default=False, verbose_name="Shop confirmed cash")
    shop_confirmed_at = models.DateTimeField(null=True, blank=True)

    # Settlement
    weekly_period = models.ForeignKey(
        'finance.WeeklyPeriod',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='orders',
        verbose_name="Settlement period"
    )

    # Timestamps
    created_at = models.DateTimeField(default=timezone.now)
    accepted_at = models.DateTimeField(null=True, blank=True)
    preparing_at = models.DateTimeField(null=True, blank=True)
    picked_up_at = models.DateTimeField(null=True, blank=True)
    shop_paid_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'completed_at']),
            models.Index(fields=['shop', 'status']),
            models.Index(fields=['rider', 'status']),
        ]

    def __str__(self):
        return f"{self.order_number} - {self.status}"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._snapshot_financials()
        return instance

    def refresh_from_db(self, *args, **kwargs):
        super().refresh_from_db(*args, **kwargs)
        self._snapshot_financials()

    def _snapshot_financials(self):
        self._loaded_financials = {
            name: getattr(self, name)
            for name in FINANCIAL_FIELDS
            if name not in self.get_deferred_fields()
        }

    def changed_financial_fields(self):
        loaded = getattr(self, '_loaded_financials', None)
        if loaded is None:
            return []
        return [name for name, value in loaded.items() if getattr(self, name) != value]

    def save(self, *args, recompute_financials=False, **kwargs):
        """
        Reject silent edits of the frozen financial snapshot.
        """
        changed = self.changed_financial_fields()
        if changed and not recompute_financials:
            raise BusinessRuleFailure(
                f"Financial fields of order {self.order_number} are frozen: {', '.join(changed)}"
            )
        if not self.order_number:
            self.order_number = Order.get_next_order_number()
        super().save(*args, **kwargs)
        self._snapshot_financials()

    @classmethod
    def get_next_order_number(cls) -> str:
        """
        Generate next sequential order number.
        Format: ORD-YYYY-XXXXXX
        """
        year = timezone.now().year
        prefix = f"ORD-{year}-"

        last_order = cls.objects.filter(
            order_number__startswith=prefix
        ).order_by('-order_number').first()

        if last_order:
            try:
                next_seq = int(last_order.order_number.split('-')[-1]) + 1
            except (ValueError, IndexError):
                next_seq = 1
        else:
            next_seq = 1

        return f"{prefix}{next_seq:06d}"

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)

    @property
    def is_completed(self) -> bool:
        return self.status == OrderStatus.COMPLETED

    @property
    def free_delivery_cost(self) -> Decimal:
        """Delivery fee absorbed by the platform on free-delivery orders."""
        return self.delivery_fee if self.is_free_delivery else Decimal('0.00')


class OrderItem(models.Model):
    """Snapshot of a product line at the time of ordering."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product_id = models.CharField(max_length=64, verbose_name="Product ID")
    name = models.CharField(max_length=200, verbose_name="Product name")
    unit_price = models.DecimalField(max_digits=10, decimal_places=2, verbose_name="Unit price (EGP)")
    quantity = models.PositiveIntegerField(verbose_name="Quantity")
    subtotal = models.DecimalField(max_digits=10, decimal_places=2, verbose_name="Line subtotal (EGP)")

    class Meta:
        verbose_name = "Order item"
        verbose_name_plural = "Order items"

    def __str__(self):
        return f"{self.quantity} x {self.name}"


class OrderStatusHistory(models.Model):
    """Audit trail: one row per applied status transition."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='status_history')
    from_status = models.CharField(max_length=20, choices=OrderStatus.choices, blank=True)
    to_status = models.CharField(max_length=20, choices=OrderStatus.choices)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='order_status_changes'
    )
    actor_role = models.CharField(max_length=20, blank=True)
    note = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = "Order status change"
        verbose_name_plural = "Order status history"
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.order_id}: {self.from_status or '-'} -> {self.to_status}"
