"""
Commission & Points Calculator for BALADI

Pure functions, no database access. Computed once at order placement.

Formulas:
    points_earned       = floor(subtotal / POINTS_CURRENCY_PER_POINT)
    shop_commission     = subtotal * commission_rate
    points_discount     = min(requested, balance, subtotal) * POINT_VALUE
    platform_commission = shop_commission - points_discount - free_delivery_cost
    rider_earnings      = 0 if free delivery else delivery_fee
    total               = subtotal + delivery_fee - points_discount

The personal commission (PERSONAL_COMMISSION_STORE_RATE of the subtotal plus
PERSONAL_COMMISSION_DELIVERY_RATE of the delivery fee) is tracked alongside
and never reduces any of the figures above.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP

from django.conf import settings

from core.failures import ValidationFailure

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')


def to_money(amount) -> Decimal:
    """Quantize to 2 decimal places (half-up)."""
    return Decimal(str(amount)).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PersonalCommission:
    """Owner's personal cut of one order."""

    from_store: Decimal
    from_delivery: Decimal
    total: Decimal


class PersonalCommissionCalculator:
    """
    Personal commission, tracked apart from shop, rider and platform figures.

    Negative inputs earn nothing. Free-delivery orders earn nothing on the
    delivery side.
    """

    def __init__(self, store_rate: Decimal = None, delivery_rate: Decimal = None):
        if store_rate is None:
            store_rate = settings.PERSONAL_COMMISSION_STORE_RATE
        if delivery_rate is None:
            delivery_rate = settings.PERSONAL_COMMISSION_DELIVERY_RATE
        self.store_rate = Decimal(str(store_rate))
        self.delivery_rate = Decimal(str(delivery_rate))

    def from_store(self, subtotal) -> Decimal:
        subtotal = Decimal(str(subtotal))
        if subtotal < 0:
            return Decimal('0.00')
        return to_money(subtotal * self.store_rate)

    def from_delivery(self, delivery_fee) -> Decimal:
        delivery_fee = Decimal(str(delivery_fee))
        if delivery_fee < 0:
            return Decimal('0.00')
        return to_money(delivery_fee * self.delivery_rate)

    def calculate(self, subtotal, delivery_fee, is_free_delivery: bool = False) -> PersonalCommission:
        from_store = self.from_store(subtotal)
        from_delivery = Decimal('0.00') if is_free_delivery else self.from_delivery(delivery_fee)
        return PersonalCommission(
            from_store=from_store,
            from_delivery=from_delivery,
            total=to_money(from_store + from_delivery),
        )


@dataclass(frozen=True)
class OrderQuote:
    """Immutable financial snapshot of an order."""

    subtotal: Decimal
    delivery_fee: Decimal
    is_free_delivery: bool
    points_used: int
    points_discount: Decimal
    total: Decimal
    shop_commission: Decimal
    platform_commission: Decimal
    rider_earnings: Decimal
    points_earned: int
    personal_commission: PersonalCommission

    def as_model_fields(self) -> dict:
        return {
            'subtotal': self.subtotal,
            'delivery_fee': self.delivery_fee,
            'is_free_delivery': self.is_free_delivery,
            'points_used': self.points_used,
            'points_discount': self.points_discount,
            'total': self.total,
            'shop_commission': self.shop_commission,
            'platform_commission': self.platform_commission,
            'rider_earnings': self.rider_earnings,
            'points_earned': self.points_earned,
            'personal_commission_store': self.personal_commission.from_store,
            'personal_commission_delivery': self.personal_commission.from_delivery,
            'personal_commission': self.personal_commission.total,
        }


class CommissionCalculator:
    """
    Commission, rider earnings and loyalty points for one order.

    Rates come from settings so a deployment can tune them without code
    changes (POINTS_CURRENCY_PER_POINT, POINT_VALUE).
    """

    def __init__(self, currency_per_point: int = None, point_value: Decimal = None,
                 personal_calculator: PersonalCommissionCalculator = None):
        self.currency_per_point = currency_per_point or settings.POINTS_CURRENCY_PER_POINT
        self.point_value = Decimal(str(point_value or settings.POINT_VALUE))
        self.personal_calculator = personal_calculator or PersonalCommissionCalculator()

    def points_earned(self, subtotal: Decimal) -> int:
        """Truncating integer division: 350 -> 3, 99 -> 0."""
        if subtotal <= 0:
            return 0
        whole = (Decimal(subtotal) / self.currency_per_point).to_integral_value(rounding=ROUND_DOWN)
        return int(whole)

    def shop_commission(self, subtotal: Decimal, commission_rate: Decimal) -> Decimal:
        return to_money(Decimal(subtotal) * Decimal(commission_rate))

    def redeemable_points(self, requested: int, balance: int, subtotal: Decimal) -> int:
        """Points actually redeemed: bounded by balance and by the subtotal value."""
        if requested <= 0:
            return 0
        max_by_subtotal = int(
            (Decimal(subtotal) / self.point_value).to_integral_value(rounding=ROUND_DOWN)
        )
        return max(0, min(requested, balance, max_by_subtotal))

    def points_discount(self, points_used: int) -> Decimal:
        return to_money(points_used * self.point_value)

    def platform_commission(
        self,
        shop_commission: Decimal,
        points_discount: Decimal,
        delivery_fee: Decimal,
        is_free_delivery: bool,
    ) -> Decimal:
        """Not clamped: negative margins are netted weekly."""
        free_delivery_cost = delivery_fee if is_free_delivery else Decimal('0.00')
        return to_money(shop_commission - points_discount - free_delivery_cost)

    def rider_earnings(self, delivery_fee: Decimal, is_free_delivery: bool) -> Decimal:
        return Decimal('0.00') if is_free_delivery else to_money(delivery_fee)

    def quote(
        self,
        subtotal,
        delivery_fee,
        commission_rate,
        points_requested: int = 0,
        points_balance: int = 0,
        is_free_delivery: bool = False,
    ) -> OrderQuote:
        """
        Build the full financial snapshot.

        Raises ValidationFailure on negative amounts or points.
        """
        subtotal = to_money(subtotal)
        delivery_fee = to_money(delivery_fee)
        commission_rate = Decimal(str(commission_rate))

        if subtotal < 0 or delivery_fee < 0:
            raise ValidationFailure("Amounts cannot be negative")
        if points_requested < 0:
            raise ValidationFailure("Redeemed points cannot be negative")

        points_used = self.redeemable_points(points_requested, points_balance, subtotal)
        points_discount = self.points_discount(points_used)
        shop_commission = self.shop_commission(subtotal, commission_rate)

        quote = OrderQuote(
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            is_free_delivery=is_free_delivery,
            points_used=points_used,
            points_discount=points_discount,
            total=to_money(subtotal + delivery_fee - points_discount),
            shop_commission=shop_commission,
            platform_commission=self.platform_commission(
                shop_commission, points_discount, delivery_fee, is_free_delivery
            ),
            rider_earnings=self.rider_earnings(delivery_fee, is_free_delivery),
            points_earned=self.points_earned(subtotal),
            personal_commission=self.personal_calculator.calculate(
                subtotal, delivery_fee, is_free_delivery
            ),
        )

        logger.debug(
            f"[PRICING] subtotal={subtotal} fee={delivery_fee} rate={commission_rate} "
            f"-> commission={quote.shop_commission} platform={quote.platform_commission} "
            f"total={quote.total}"
        )
        return quote
