"""
Tests for the commission & points calculator (no database).
"""

from decimal import Decimal

from django.test import SimpleTestCase, override_settings

from core.failures import ValidationFailure
from orders.models import FINANCIAL_FIELDS
from orders.services.pricing import CommissionCalculator, PersonalCommissionCalculator, to_money


@override_settings(POINTS_CURRENCY_PER_POINT=100, POINT_VALUE=Decimal('1.00'))
class TestCommissionCalculator(SimpleTestCase):

    def setUp(self):
        self.calculator = CommissionCalculator()

    # ==========================================
    # Points earned
    # ==========================================

    def test_points_earned_truncates(self):
        """One point per full 100 EGP of subtotal."""
        self.assertEqual(self.calculator.points_earned(Decimal('350.00')), 3)
        self.assertEqual(self.calculator.points_earned(Decimal('99.99')), 0)
        self.assertEqual(self.calculator.points_earned(Decimal('100.00')), 1)

    def test_points_earned_zero_subtotal(self):
        self.assertEqual(self.calculator.points_earned(Decimal('0.00')), 0)

    # ==========================================
    # Commission & discounts
    # ==========================================

    def test_shop_commission_rounds_half_up(self):
        self.assertEqual(
            self.calculator.shop_commission(Decimal('33.35'), Decimal('0.10')),
            Decimal('3.34'),
        )

    def test_redeemable_points_bounded_by_balance(self):
        self.assertEqual(self.calculator.redeemable_points(50, 10, Decimal('200.00')), 10)

    def test_redeemable_points_bounded_by_subtotal(self):
        """Redeeming can never push the goods value below zero."""
        self.assertEqual(self.calculator.redeemable_points(500, 500, Decimal('40.50')), 40)

    def test_redeemable_points_none_requested(self):
        self.assertEqual(self.calculator.redeemable_points(0, 100, Decimal('200.00')), 0)

    def test_platform_commission_can_be_negative(self):
        """Discounts larger than the commission are kept, not clamped."""
        value = self.calculator.platform_commission(
            Decimal('5.00'), Decimal('8.00'), Decimal('15.00'), is_free_delivery=True
        )
        self.assertEqual(value, Decimal('-18.00'))

    def test_rider_earnings_zero_on_free_delivery(self):
        self.assertEqual(self.calculator.rider_earnings(Decimal('15.00'), True), Decimal('0.00'))
        self.assertEqual(self.calculator.rider_earnings(Decimal('15.00'), False), Decimal('15.00'))

    # ==========================================
    # Full quote
    # ==========================================

    def test_quote_worked_example(self):
        """200 EGP at 10% with 15 EGP delivery and 5 points redeemed."""
        quote = self.calculator.quote(
            subtotal=Decimal('200.00'),
            delivery_fee=Decimal('15.00'),
            commission_rate=Decimal('0.10'),
            points_requested=5,
            points_balance=20,
        )
        self.assertEqual(quote.shop_commission, Decimal('20.00'))
        self.assertEqual(quote.points_used, 5)
        self.assertEqual(quote.points_discount, Decimal('5.00'))
        self.assertEqual(quote.platform_commission, Decimal('15.00'))
        self.assertEqual(quote.rider_earnings, Decimal('15.00'))
        self.assertEqual(quote.total, Decimal('210.00'))
        self.assertEqual(quote.points_earned, 2)

    def test_quote_free_delivery(self):
        """The platform absorbs the delivery fee and the rider earns nothing."""
        quote = self.calculator.quote(
            subtotal=Decimal('200.00'),
            delivery_fee=Decimal('15.00'),
            commission_rate=Decimal('0.10'),
            is_free_delivery=True,
        )
        self.assertEqual(quote.rider_earnings, Decimal('0.00'))
        self.assertEqual(quote.platform_commission, Decimal('5.00'))
        self.assertEqual(quote.total, Decimal('215.00'))

    def test_quote_rejects_negative_amounts(self):
        with self.assertRaises(ValidationFailure):
            self.calculator.quote(Decimal('-1.00'), Decimal('15.00'), Decimal('0.10'))

    def test_quote_rejects_negative_points(self):
        with self.assertRaises(ValidationFailure):
            self.calculator.quote(
                Decimal('100.00'), Decimal('15.00'), Decimal('0.10'), points_requested=-3
            )

    def test_as_model_fields_covers_snapshot(self):
        quote = self.calculator.quote(Decimal('100.00'), Decimal('10.00'), Decimal('0.15'))
        fields = quote.as_model_fields()
        self.assertEqual(set(fields), set(FINANCIAL_FIELDS))
        self.assertEqual(fields['shop_commission'], Decimal('15.00'))
        self.assertEqual(fields['total'], Decimal('110.00'))


@override_settings(
    PERSONAL_COMMISSION_STORE_RATE=Decimal('0.05'),
    PERSONAL_COMMISSION_DELIVERY_RATE=Decimal('0.15'),
)
class TestPersonalCommissionCalculator(SimpleTestCase):
    """5% of the subtotal plus 15% of the delivery fee, tracked separately."""

    def setUp(self):
        self.calculator = PersonalCommissionCalculator()

    def test_from_store(self):
        self.assertEqual(self.calculator.from_store(Decimal('200.00')), Decimal('10.00'))
        self.assertEqual(self.calculator.from_store(Decimal('10000.00')), Decimal('500.00'))
        self.assertEqual(self.calculator.from_store(Decimal('0.00')), Decimal('0.00'))

    def test_from_store_rounds_half_up(self):
        self.assertEqual(self.calculator.from_store(Decimal('150.50')), Decimal('7.53'))

    def test_negative_inputs_earn_nothing(self):
        self.assertEqual(self.calculator.from_store(Decimal('-100.00')), Decimal('0.00'))
        self.assertEqual(self.calculator.from_delivery(Decimal('-10.00')), Decimal('0.00'))

    def test_from_delivery(self):
        self.assertEqual(self.calculator.from_delivery(Decimal('10.00')), Decimal('1.50'))
        self.assertEqual(self.calculator.from_delivery(Decimal('20.00')), Decimal('3.00'))
        self.assertEqual(self.calculator.from_delivery(Decimal('0.00')), Decimal('0.00'))

    def test_calculate_combines_both_sides(self):
        commission = self.calculator.calculate(Decimal('200.00'), Decimal('10.00'))
        self.assertEqual(commission.from_store, Decimal('10.00'))
        self.assertEqual(commission.from_delivery, Decimal('1.50'))
        self.assertEqual(commission.total, Decimal('11.50'))

        small = self.calculator.calculate(Decimal('50.00'), Decimal('10.00'))
        self.assertEqual(small.total, Decimal('4.00'))

    def test_free_delivery_skips_delivery_side(self):
        commission = self.calculator.calculate(Decimal('500.00'), Decimal('10.00'), is_free_delivery=True)
        self.assertEqual(commission.from_store, Decimal('25.00'))
        self.assertEqual(commission.from_delivery, Decimal('0.00'))
        self.assertEqual(commission.total, Decimal('25.00'))

    @override_settings(POINTS_CURRENCY_PER_POINT=100, POINT_VALUE=Decimal('1.00'))
    def test_quote_figures_unaffected(self):
        """300 EGP at 10%, 10 EGP delivery, 5 points: only the personal line is added."""
        quote = CommissionCalculator().quote(
            subtotal=Decimal('300.00'),
            delivery_fee=Decimal('10.00'),
            commission_rate=Decimal('0.10'),
            points_requested=5,
            points_balance=5,
        )
        self.assertEqual(quote.total, Decimal('305.00'))
        self.assertEqual(quote.shop_commission, Decimal('30.00'))
        self.assertEqual(quote.platform_commission, Decimal('25.00'))
        self.assertEqual(quote.rider_earnings, Decimal('10.00'))
        self.assertEqual(quote.personal_commission.from_store, Decimal('15.00'))
        self.assertEqual(quote.personal_commission.from_delivery, Decimal('1.50'))
        self.assertEqual(quote.personal_commission.total, Decimal('16.50'))

    def test_injected_rates(self):
        calculator = PersonalCommissionCalculator(store_rate=Decimal('0.02'), delivery_rate=Decimal('0'))
        self.assertEqual(calculator.calculate(Decimal('200.00'), Decimal('10.00')).total, Decimal('4.00'))


class TestToMoney(SimpleTestCase):

    def test_quantizes_half_up(self):
        self.assertEqual(to_money('2.345'), Decimal('2.35'))
        self.assertEqual(to_money(Decimal('2.344')), Decimal('2.34'))
        self.assertEqual(to_money(10), Decimal('10.00'))
