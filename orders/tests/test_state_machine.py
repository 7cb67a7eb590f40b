"""
Tests for the order status state machine.
"""

import uuid
from decimal import Decimal

from django.test import SimpleTestCase, TestCase

from core.failures import BusinessRuleFailure, ValidationFailure
from core.models import UserRole
from loyalty.models import PointsTransaction, PointsTransactionType
from orders.models import Order, OrderStatus
from orders.selectors import update_order_status
from orders.services.state_machine import (
    ADVANCE_ROLES,
    TRANSITIONS,
    next_status,
    transition_order,
    validate_transition,
)
from orders.tests.factories import advance, complete_order, create_order, create_shop, create_user


class TestTransitionTable(SimpleTestCase):
    """Pure transition checks."""

    def test_forward_chain(self):
        chain = [OrderStatus.PENDING]
        while next_status(chain[-1]) is not None:
            chain.append(next_status(chain[-1]))
        self.assertEqual(chain, [
            OrderStatus.PENDING, OrderStatus.ACCEPTED, OrderStatus.PREPARING,
            OrderStatus.PICKED_UP, OrderStatus.SHOP_PAID, OrderStatus.COMPLETED,
        ])

    def test_skipping_a_step_is_rejected(self):
        with self.assertRaises(BusinessRuleFailure):
            validate_transition(OrderStatus.PENDING, OrderStatus.PREPARING, UserRole.SHOP)

    def test_terminal_states_have_no_exit(self):
        for terminal in (OrderStatus.COMPLETED, OrderStatus.CANCELLED):
            with self.assertRaises(BusinessRuleFailure):
                validate_transition(terminal, OrderStatus.ACCEPTED, UserRole.SHOP)

    def test_cancel_only_before_preparing(self):
        validate_transition(OrderStatus.PENDING, OrderStatus.CANCELLED, UserRole.CUSTOMER)
        validate_transition(OrderStatus.ACCEPTED, OrderStatus.CANCELLED, UserRole.SHOP)
        for status in (OrderStatus.PREPARING, OrderStatus.PICKED_UP, OrderStatus.SHOP_PAID):
            with self.assertRaises(BusinessRuleFailure):
                validate_transition(status, OrderStatus.CANCELLED, UserRole.ADMIN)

    def test_tables_cover_every_status(self):
        self.assertEqual(set(TRANSITIONS), set(OrderStatus))
        self.assertEqual(set(ADVANCE_ROLES), set(OrderStatus) - {OrderStatus.PENDING, OrderStatus.CANCELLED})

    def test_wrong_role_is_validation_failure(self):
        with self.assertRaises(ValidationFailure):
            validate_transition(OrderStatus.PENDING, OrderStatus.ACCEPTED, UserRole.RIDER)
        with self.assertRaises(ValidationFailure):
            validate_transition(OrderStatus.PENDING, OrderStatus.CANCELLED, UserRole.RIDER)

    def test_unknown_status(self):
        with self.assertRaises(ValidationFailure):
            validate_transition(OrderStatus.PENDING, 'teleported', UserRole.SHOP)


class TestTransitionOrder(TestCase):
    """Transitions against the database."""

    def setUp(self):
        self.customer = create_user('+201000000011', UserRole.CUSTOMER)
        self.shop_owner = create_user('+201000000012', UserRole.SHOP)
        self.rider = create_user('+201000000013', UserRole.RIDER)
        self.other_owner = create_user('+201000000014', UserRole.SHOP)
        self.admin = create_user('+201000000015', UserRole.ADMIN)
        self.shop = create_shop(self.shop_owner)
        self.order = create_order(self.customer, self.shop, subtotal='350.00')

    # ==========================================
    # Happy path
    # ==========================================

    def test_accept_stamps_timestamp_and_history(self):
        """Each transition stamps its timestamp and writes one history row."""
        order = advance(self.order, OrderStatus.ACCEPTED, self.shop_owner, note='On it')

        self.assertEqual(order.status, OrderStatus.ACCEPTED)
        self.assertIsNotNone(order.accepted_at)
        last = order.status_history.last()
        self.assertEqual(last.from_status, OrderStatus.PENDING)
        self.assertEqual(last.to_status, OrderStatus.ACCEPTED)
        self.assertEqual(last.actor, self.shop_owner)
        self.assertEqual(last.note, 'On it')

    def test_pickup_assigns_rider(self):
        order = advance(self.order, OrderStatus.ACCEPTED, self.shop_owner)
        order = advance(order, OrderStatus.PREPARING, self.shop_owner)
        order = advance(order, OrderStatus.PICKED_UP, self.rider)
        self.assertEqual(order.rider, self.rider)

    def test_full_lifecycle_awards_points(self):
        """Completion credits floor(subtotal / 100) points exactly once."""
        order = complete_order(self.order, self.shop_owner, self.rider)

        self.assertEqual(order.status, OrderStatus.COMPLETED)
        self.assertIsNotNone(order.completed_at)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.points_balance, 3)
        self.assertEqual(
            PointsTransaction.objects.filter(
                order=order, transaction_type=PointsTransactionType.EARNED
            ).count(),
            1,
        )
        # pending + five transitions
        self.assertEqual(order.status_history.count(), 6)

    def test_completed_order_is_terminal(self):
        order = complete_order(self.order, self.shop_owner, self.rider)
        result = transition_order(order, OrderStatus.CANCELLED, self.admin)
        self.assertFalse(result.ok)
        self.assertIsInstance(result.failure, BusinessRuleFailure)

    # ==========================================
    # Rejections
    # ==========================================

    def test_stale_state_is_rejected(self):
        """A caller holding an outdated copy cannot act on it."""
        stale = Order.objects.get(pk=self.order.pk)
        advance(self.order, OrderStatus.ACCEPTED, self.shop_owner)

        result = transition_order(stale, OrderStatus.ACCEPTED, self.shop_owner)
        self.assertFalse(result.ok)
        self.assertEqual(result.failure.code, 'STALE_STATE')

    def test_other_shop_cannot_accept(self):
        result = transition_order(self.order, OrderStatus.ACCEPTED, self.other_owner)
        self.assertFalse(result.ok)
        self.assertIsInstance(result.failure, ValidationFailure)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.PENDING)

    def test_failed_transition_writes_no_history(self):
        before = self.order.status_history.count()
        transition_order(self.order, OrderStatus.PICKED_UP, self.rider)
        self.assertEqual(self.order.status_history.count(), before)

    def test_update_order_status_unknown_id(self):
        result = update_order_status(uuid.uuid4(), OrderStatus.ACCEPTED, self.shop_owner)
        self.assertFalse(result.ok)
        self.assertEqual(result.failure.code, 'NOT_FOUND')

    # ==========================================
    # Cancellation
    # ==========================================

    def test_cancel_zeroes_earnings(self):
        result = transition_order(self.order, OrderStatus.CANCELLED, self.customer, note='Changed my mind')
        self.assertTrue(result.ok)

        order = Order.objects.get(pk=self.order.pk)
        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertEqual(order.cancellation_reason, 'Changed my mind')
        self.assertEqual(order.shop_commission, Decimal('0.00'))
        self.assertEqual(order.rider_earnings, Decimal('0.00'))
        self.assertEqual(order.points_earned, 0)
        self.assertEqual(order.personal_commission, Decimal('0.00'))

    def test_cancel_refunds_redeemed_points(self):
        """Redeemed points come back as an adjustment entry."""
        self.customer.points_balance = 10
        self.customer.save()
        order = create_order(self.customer, self.shop, subtotal='100.00', points_to_redeem=4)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.points_balance, 6)

        advance(order, OrderStatus.CANCELLED, self.shop_owner)

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.points_balance, 10)
        refund = PointsTransaction.objects.get(
            order=order, transaction_type=PointsTransactionType.ADJUSTMENT
        )
        self.assertEqual(refund.points, 4)

    def test_customer_cannot_cancel_someone_elses_order(self):
        stranger = create_user('+201000000016', UserRole.CUSTOMER)
        result = transition_order(self.order, OrderStatus.CANCELLED, stranger)
        self.assertFalse(result.ok)
        self.assertIsInstance(result.failure, ValidationFailure)


class TestFrozenFinancials(TestCase):
    """The financial snapshot cannot be edited silently."""

    def setUp(self):
        customer = create_user('+201000000021', UserRole.CUSTOMER)
        owner = create_user('+201000000022', UserRole.SHOP)
        self.order = create_order(customer, create_shop(owner))

    def test_editing_commission_raises(self):
        self.order.shop_commission = Decimal('99.00')
        with self.assertRaises(BusinessRuleFailure):
            self.order.save()

    def test_non_financial_edit_allowed(self):
        self.order.customer_notes = 'Ring twice'
        self.order.save()
        self.order.refresh_from_db()
        self.assertEqual(self.order.customer_notes, 'Ring twice')

    def test_order_number_format(self):
        self.assertRegex(self.order.order_number, r'^ORD-\d{4}-\d{6}$')
