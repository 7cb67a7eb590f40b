"""
Tests for order placement.
"""

from decimal import Decimal

from django.test import TestCase, override_settings

from core.failures import BusinessRuleFailure, ValidationFailure
from core.models import UserRole
from loyalty.models import PointsTransaction, PointsTransactionType
from orders.models import Order, OrderStatus
from orders.services.placement import place_order, validate_items
from orders.tests.factories import create_shop, create_user, items_for

ADDRESS = '12 Tahrir Square, Downtown Cairo'


class TestPlaceOrder(TestCase):

    def setUp(self):
        self.customer = create_user('+201000000041', UserRole.CUSTOMER)
        self.shop_owner = create_user('+201000000042', UserRole.SHOP)
        self.shop = create_shop(self.shop_owner, minimum_order=Decimal('50.00'))

    def test_places_pending_order_with_snapshot(self):
        items = [
            {'product_id': 'P-1', 'name': 'Koshary', 'unit_price': '45.50', 'quantity': 2},
            {'product_id': 'P-2', 'name': 'Rice pudding', 'unit_price': '20.00', 'quantity': 1},
        ]
        result = place_order(self.customer, self.shop, items, ADDRESS)

        self.assertTrue(result.ok)
        order = result.value
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.subtotal, Decimal('111.00'))
        self.assertEqual(order.delivery_fee, Decimal('15.00'))
        self.assertEqual(order.shop_commission, Decimal('11.10'))
        self.assertEqual(order.total, Decimal('126.00'))
        self.assertEqual(order.points_earned, 1)
        # 5% of 111.00 plus 15% of 15.00
        self.assertEqual(order.personal_commission_store, Decimal('5.55'))
        self.assertEqual(order.personal_commission_delivery, Decimal('2.25'))
        self.assertEqual(order.personal_commission, Decimal('7.80'))
        self.assertEqual(order.items.count(), 2)
        self.assertEqual(order.status_history.get().to_status, OrderStatus.PENDING)

    def test_redeemed_points_are_debited(self):
        self.customer.points_balance = 30
        self.customer.save()

        order = place_order(
            self.customer, self.shop, items_for('100.00'), ADDRESS, points_to_redeem=12
        ).unwrap()

        self.customer.refresh_from_db()
        self.assertEqual(order.points_used, 12)
        self.assertEqual(order.points_discount, Decimal('12.00'))
        self.assertEqual(self.customer.points_balance, 18)
        entry = PointsTransaction.objects.get(order=order)
        self.assertEqual(entry.transaction_type, PointsTransactionType.REDEEMED)
        self.assertEqual(entry.points, -12)

    def test_redemption_capped_by_balance(self):
        self.customer.points_balance = 3
        self.customer.save()
        order = place_order(
            self.customer, self.shop, items_for('100.00'), ADDRESS, points_to_redeem=50
        ).unwrap()
        self.assertEqual(order.points_used, 3)

    def test_free_delivery_order(self):
        order = place_order(
            self.customer, self.shop, items_for('100.00'), ADDRESS, is_free_delivery=True
        ).unwrap()
        self.assertEqual(order.rider_earnings, Decimal('0.00'))
        self.assertEqual(order.free_delivery_cost, Decimal('15.00'))

    # ==========================================
    # Rejections
    # ==========================================

    def test_below_minimum_order(self):
        result = place_order(self.customer, self.shop, items_for('20.00'), ADDRESS)
        self.assertFalse(result.ok)
        self.assertIsInstance(result.failure, BusinessRuleFailure)
        self.assertFalse(Order.objects.exists())

    def test_inactive_shop(self):
        self.shop.is_active = False
        self.shop.save()
        result = place_order(self.customer, self.shop, items_for('100.00'), ADDRESS)
        self.assertIsInstance(result.failure, BusinessRuleFailure)

    def test_short_address(self):
        result = place_order(self.customer, self.shop, items_for('100.00'), 'Cairo')
        self.assertIsInstance(result.failure, ValidationFailure)

    def test_only_customers_place_orders(self):
        result = place_order(self.shop_owner, self.shop, items_for('100.00'), ADDRESS)
        self.assertIsInstance(result.failure, ValidationFailure)


class TestValidateItems(TestCase):

    def test_empty_items(self):
        with self.assertRaises(ValidationFailure):
            validate_items([])

    @override_settings(MAX_ITEMS_PER_ORDER=2)
    def test_too_many_items(self):
        with self.assertRaises(ValidationFailure):
            validate_items(items_for('10.00') * 3)

    def test_field_errors_per_item(self):
        items = [
            {'name': 'Bad', 'unit_price': '10.00', 'quantity': 0},
            {'name': 'Missing price', 'quantity': 1},
        ]
        with self.assertRaises(ValidationFailure) as ctx:
            validate_items(items)
        self.assertEqual(set(ctx.exception.field_errors['items']), {0, 1})

    def test_line_subtotal(self):
        lines = validate_items([{'name': 'Ful', 'unit_price': '12.25', 'quantity': 4}])
        self.assertEqual(lines[0]['subtotal'], Decimal('49.00'))
