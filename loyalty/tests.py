"""
BALADI Loyalty Tests
====================

Tests for:
1. PointsService ledger (balance never negative, ledger == balance)
2. Admin adjustments
3. Referral codes & first-order bonus
4. Referral expiry task
5. Points & referral endpoints
"""

from datetime import timedelta
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from core.failures import BusinessRuleFailure, NotFoundFailure, ValidationFailure
from core.models import UserRole
from core.results import Err
from loyalty.models import PointsTransaction, PointsTransactionType, Referral, ReferralStatus
from loyalty.services import PointsService, ReferralService, adjust_points, apply_referral_code
from loyalty.tasks import expire_stale_referrals
from orders.models import OrderStatus
from orders.tests.factories import advance, complete_order, create_order, create_shop, create_user


class TestPointsService(TestCase):
    """Tests for PointsService ledger operations."""

    def setUp(self):
        self.customer = create_user('+201000000061', UserRole.CUSTOMER)
        self.admin = create_user('+201000000062', UserRole.ADMIN)

    # ==========================================
    # Ledger
    # ==========================================

    def test_apply_records_balance_before_and_after(self):
        entry = PointsService.apply(self.customer, 7, PointsTransactionType.ADJUSTMENT)

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.points_balance, 7)
        self.assertEqual(entry.balance_before, 0)
        self.assertEqual(entry.balance_after, 7)

    def test_balance_cannot_go_negative(self):
        PointsService.apply(self.customer, 3, PointsTransactionType.ADJUSTMENT)
        with self.assertRaises(BusinessRuleFailure):
            PointsService.apply(self.customer, -4, PointsTransactionType.ADJUSTMENT)

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.points_balance, 3)
        self.assertEqual(PointsTransaction.objects.filter(customer=self.customer).count(), 1)

    def test_zero_delta_rejected(self):
        with self.assertRaises(ValidationFailure):
            PointsService.apply(self.customer, 0, PointsTransactionType.ADJUSTMENT)

    def test_ledger_total_matches_balance(self):
        PointsService.apply(self.customer, 10, PointsTransactionType.ADJUSTMENT)
        PointsService.apply(self.customer, -4, PointsTransactionType.ADJUSTMENT)
        PointsService.apply(self.customer, 2, PointsTransactionType.ADJUSTMENT)

        self.customer.refresh_from_db()
        self.assertEqual(PointsService.ledger_total(self.customer), self.customer.points_balance)
        self.assertEqual(self.customer.points_balance, 8)

    # ==========================================
    # Admin adjustments
    # ==========================================

    def test_admin_adjustment(self):
        result = adjust_points(self.customer, 25, self.admin, 'Goodwill for late delivery')

        self.assertTrue(result.ok)
        self.assertEqual(result.value.created_by, self.admin)
        self.assertEqual(result.value.description, 'Goodwill for late delivery')

    def test_adjustment_requires_reason(self):
        result = adjust_points(self.customer, 25, self.admin, '   ')
        self.assertIsInstance(result.failure, ValidationFailure)

    def test_adjustment_requires_admin(self):
        result = adjust_points(self.customer, 25, self.customer, 'Self service')
        self.assertIsInstance(result.failure, ValidationFailure)

    def test_negative_adjustment_below_zero(self):
        result = adjust_points(self.customer, -5, self.admin, 'Clawback')
        self.assertIsInstance(result.failure, BusinessRuleFailure)


class TestOrderPoints(TestCase):
    """Points earned on completion are awarded once."""

    def setUp(self):
        self.customer = create_user('+201000000071', UserRole.CUSTOMER)
        self.shop_owner = create_user('+201000000072', UserRole.SHOP)
        self.rider = create_user('+201000000073', UserRole.RIDER)
        self.shop = create_shop(self.shop_owner)

    def test_award_is_idempotent(self):
        order = complete_order(create_order(self.customer, self.shop, subtotal='250.00'), self.shop_owner, self.rider)

        self.assertIsNone(PointsService.award_order_points(order))

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.points_balance, 2)

    def test_no_entry_for_zero_points(self):
        order = complete_order(create_order(self.customer, self.shop, subtotal='99.00'), self.shop_owner, self.rider)
        self.assertFalse(
            PointsTransaction.objects.filter(order=order, transaction_type=PointsTransactionType.EARNED).exists()
        )


@override_settings(REFERRAL_BONUS_POINTS=2)
class TestReferrals(TestCase):
    """Tests for referral codes and the first-order bonus."""

    def setUp(self):
        self.referrer = create_user('+201000000081', UserRole.CUSTOMER)
        self.friend = create_user('+201000000082', UserRole.CUSTOMER)
        self.shop_owner = create_user('+201000000083', UserRole.SHOP)
        self.rider = create_user('+201000000084', UserRole.RIDER)
        self.shop = create_shop(self.shop_owner)

    def test_apply_code_creates_pending_referral(self):
        result = apply_referral_code(self.friend, self.referrer.referral_code.lower())

        self.assertTrue(result.ok)
        referral = result.value
        self.assertEqual(referral.referrer, self.referrer)
        self.assertEqual(referral.status, ReferralStatus.PENDING)

    def test_unknown_code(self):
        result = apply_referral_code(self.friend, 'NOPE0000')
        self.assertIsInstance(result.failure, NotFoundFailure)

    def test_own_code_rejected(self):
        result = apply_referral_code(self.referrer, self.referrer.referral_code)
        self.assertIsInstance(result.failure, BusinessRuleFailure)

    def test_code_applies_only_once(self):
        other = create_user('+201000000085', UserRole.CUSTOMER)
        apply_referral_code(self.friend, self.referrer.referral_code)
        result = apply_referral_code(self.friend, other.referral_code)
        self.assertIsInstance(result.failure, BusinessRuleFailure)

    def test_first_completed_order_pays_referrer_once(self):
        """Bonus on the first completed order only."""
        apply_referral_code(self.friend, self.referrer.referral_code)

        first = complete_order(create_order(self.friend, self.shop), self.shop_owner, self.rider)
        complete_order(create_order(self.friend, self.shop), self.shop_owner, self.rider)

        self.referrer.refresh_from_db()
        self.assertEqual(self.referrer.points_balance, 2)
        referral = Referral.objects.get(referred=self.friend)
        self.assertEqual(referral.status, ReferralStatus.COMPLETED)
        self.assertTrue(referral.points_awarded)
        self.assertEqual(referral.first_order, first)

    def test_reprocessing_is_noop(self):
        apply_referral_code(self.friend, self.referrer.referral_code)
        order = complete_order(create_order(self.friend, self.shop), self.shop_owner, self.rider)

        self.assertIsNone(ReferralService.process_completed_order(order))
        self.referrer.refresh_from_db()
        self.assertEqual(self.referrer.points_balance, 2)

    def test_cancelled_order_does_not_complete_referral(self):
        apply_referral_code(self.friend, self.referrer.referral_code)
        advance(create_order(self.friend, self.shop), OrderStatus.CANCELLED, self.friend)

        self.assertTrue(Referral.objects.get(referred=self.friend).is_pending)

    # ==========================================
    # Expiry
    # ==========================================

    @override_settings(REFERRAL_EXPIRY_DAYS=30)
    def test_stale_referrals_expire(self):
        referral = apply_referral_code(self.friend, self.referrer.referral_code).unwrap()
        Referral.objects.filter(pk=referral.pk).update(created_at=timezone.now() - timedelta(days=31))

        self.assertEqual(expire_stale_referrals(), {'expired': 1})
        referral.refresh_from_db()
        self.assertEqual(referral.status, ReferralStatus.EXPIRED)

    def test_fresh_referrals_survive_expiry(self):
        apply_referral_code(self.friend, self.referrer.referral_code)
        self.assertEqual(ReferralService.expire_stale_referrals(), 0)


class TestLoyaltyAPI(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.customer = create_user('+201000000091', UserRole.CUSTOMER)
        self.friend = create_user('+201000000092', UserRole.CUSTOMER)
        self.admin = create_user('+201000000093', UserRole.ADMIN)

    def test_balance_endpoint(self):
        PointsService.apply(self.customer, 4, PointsTransactionType.ADJUSTMENT)
        self.customer.refresh_from_db()
        self.client.force_authenticate(self.customer)

        response = self.client.get('/api/points/balance/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['points_balance'], 4)
        self.assertEqual(response.data['referral_code'], self.customer.referral_code)

    def test_history_is_paginated(self):
        PointsService.apply(self.customer, 4, PointsTransactionType.ADJUSTMENT)
        self.client.force_authenticate(self.customer)

        response = self.client.get('/api/points/history/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['points'], 4)

    def test_adjust_requires_admin(self):
        self.client.force_authenticate(self.customer)
        response = self.client.post('/api/points/adjust/', {
            'customer_id': str(self.customer.pk), 'points': 100, 'reason': 'Free points',
        }, format='json')
        self.assertEqual(response.status_code, 403)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.points_balance, 0)
        self.assertFalse(PointsTransaction.objects.filter(customer=self.customer).exists())

    def test_admin_adjusts_points(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post('/api/points/adjust/', {
            'customer_id': str(self.customer.pk), 'points': 15, 'reason': 'Compensation',
        }, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['balance_after'], 15)

    def test_apply_referral_endpoint(self):
        self.client.force_authenticate(self.friend)
        response = self.client.post(
            '/api/referrals/apply/', {'code': self.customer.referral_code}, format='json'
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['status'], ReferralStatus.PENDING)

    @patch('loyalty.views.apply_referral_code')
    def test_apply_referral_failure_mapping(self, mock_apply):
        mock_apply.return_value = Err(NotFoundFailure('Referral code XXXX does not exist'))
        self.client.force_authenticate(self.friend)

        response = self.client.post('/api/referrals/apply/', {'code': 'XXXX'}, format='json')

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['code'], 'NOT_FOUND')
