"""
Tests for cash custody milestones (customer -> rider -> shop -> platform).
"""

from decimal import Decimal

from django.test import TestCase

from core.failures import BusinessRuleFailure, ValidationFailure
from core.models import UserRole
from finance.models import CashTransaction, CashTransactionType
from orders.models import OrderStatus
from orders.services.custody import (
    CashMilestone,
    confirm_cash_received,
    record_cash_collected,
    record_cash_transferred,
    record_milestone,
)
from orders.tests.factories import advance, create_order, create_shop, create_user


class TestCashCustody(TestCase):

    def setUp(self):
        self.customer = create_user('+201000000031', UserRole.CUSTOMER)
        self.shop_owner = create_user('+201000000032', UserRole.SHOP)
        self.rider = create_user('+201000000033', UserRole.RIDER)
        self.shop = create_shop(self.shop_owner)
        order = create_order(self.customer, self.shop, subtotal='200.00')
        order = advance(order, OrderStatus.ACCEPTED, self.shop_owner)
        order = advance(order, OrderStatus.PREPARING, self.shop_owner)
        self.order = advance(order, OrderStatus.PICKED_UP, self.rider)

    # ==========================================
    # Milestone amounts
    # ==========================================

    def test_collect_records_full_total(self):
        """The rider collects what the customer pays."""
        result = record_cash_collected(self.order, self.rider)

        self.assertTrue(result.ok)
        self.assertTrue(result.value.cash_collected)
        entry = CashTransaction.objects.get(
            order=self.order, transaction_type=CashTransactionType.CUSTOMER_TO_RIDER
        )
        self.assertEqual(entry.amount, Decimal('215.00'))
        self.assertEqual(entry.from_user, self.customer)
        self.assertEqual(entry.to_user, self.rider)

    def test_transfer_keeps_rider_earnings(self):
        """The rider keeps the delivery fee and hands over the rest."""
        record_cash_collected(self.order, self.rider)
        result = record_cash_transferred(self.order, self.rider)

        self.assertTrue(result.ok)
        entry = CashTransaction.objects.get(
            order=self.order, transaction_type=CashTransactionType.RIDER_TO_SHOP
        )
        self.assertEqual(entry.amount, Decimal('200.00'))
        self.assertEqual(entry.to_user, self.shop_owner)

    def test_full_chain_completes_order(self):
        record_cash_collected(self.order, self.rider)
        record_cash_transferred(self.order, self.rider)
        order = advance(self.order, OrderStatus.SHOP_PAID, self.rider)

        result = confirm_cash_received(order, self.shop_owner)

        self.assertTrue(result.ok)
        order = result.value
        self.assertEqual(order.status, OrderStatus.COMPLETED)
        self.assertTrue(order.shop_confirmed_cash)
        entry = CashTransaction.objects.get(
            order=order, transaction_type=CashTransactionType.SHOP_TO_ADMIN
        )
        self.assertEqual(entry.amount, Decimal('20.00'))
        self.assertIsNone(entry.to_user)

    def test_shop_paid_transition_fills_missing_milestones(self):
        """Moving to shop_paid records collection and hand-over if missing."""
        order = advance(self.order, OrderStatus.SHOP_PAID, self.rider)

        self.assertTrue(order.cash_collected)
        self.assertTrue(order.cash_transferred_to_shop)
        self.assertEqual(order.cash_transactions.count(), 2)

    # ==========================================
    # Ordering & actor rules
    # ==========================================

    def test_transfer_before_collect_rejected(self):
        result = record_cash_transferred(self.order, self.rider)
        self.assertFalse(result.ok)
        self.assertIsInstance(result.failure, BusinessRuleFailure)

    def test_collect_twice_rejected(self):
        record_cash_collected(self.order, self.rider)
        result = record_cash_collected(self.order, self.rider)
        self.assertFalse(result.ok)
        self.assertEqual(
            CashTransaction.objects.filter(
                order=self.order, transaction_type=CashTransactionType.CUSTOMER_TO_RIDER
            ).count(),
            1,
        )

    def test_confirm_before_shop_paid_rejected(self):
        record_cash_collected(self.order, self.rider)
        record_cash_transferred(self.order, self.rider)

        result = confirm_cash_received(self.order, self.shop_owner)

        self.assertFalse(result.ok)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.PICKED_UP)
        self.assertFalse(self.order.shop_confirmed_cash)

    def test_confirm_without_collection_rejected(self):
        """The shop cannot confirm cash the rider never collected."""
        result = confirm_cash_received(self.order, self.shop_owner)

        self.assertFalse(result.ok)
        self.assertIsInstance(result.failure, BusinessRuleFailure)
        self.assertFalse(
            CashTransaction.objects.filter(
                order=self.order, transaction_type=CashTransactionType.SHOP_TO_ADMIN
            ).exists()
        )
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.PICKED_UP)
        self.assertFalse(self.order.cash_collected)
        self.assertFalse(self.order.shop_confirmed_cash)

    def test_shop_cannot_collect_cash(self):
        result = record_cash_collected(self.order, self.shop_owner)
        self.assertFalse(result.ok)
        self.assertIsInstance(result.failure, ValidationFailure)

    def test_other_rider_cannot_collect(self):
        stranger = create_user('+201000000034', UserRole.RIDER)
        result = record_cash_collected(self.order, stranger)
        self.assertFalse(result.ok)
        self.assertIsInstance(result.failure, ValidationFailure)

    def test_collect_before_pickup_rejected(self):
        order = create_order(self.customer, self.shop)
        result = record_cash_collected(order, self.rider)
        self.assertFalse(result.ok)
        self.assertIsInstance(result.failure, BusinessRuleFailure)

    def test_record_milestone_dispatch(self):
        result = record_milestone(self.order, CashMilestone.COLLECTED, self.rider)
        self.assertTrue(result.ok)

        unknown = record_milestone(self.order, 'teleported', self.rider)
        self.assertFalse(unknown.ok)
        self.assertIsInstance(unknown.failure, ValidationFailure)
