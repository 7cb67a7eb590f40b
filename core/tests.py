"""
BALADI Core Tests
=================

Tests for:
1. Custom User Model (creation, roles, referral codes)
2. Shop defaults
3. Failure taxonomy & Result type
4. Failure -> HTTP mapping
5. Health endpoints
6. Account endpoints
"""

import uuid
from decimal import Decimal
from unittest.mock import patch

from django.db import IntegrityError, OperationalError
from django.test import TestCase, SimpleTestCase
from rest_framework.test import APIClient

from core.api import failure_response
from core.failures import (
    BusinessRuleFailure,
    CacheFailure,
    NetworkFailure,
    NotFoundFailure,
    ServerFailure,
    ValidationFailure,
)
from core.models import REFERRAL_CODE_LENGTH, Shop, User, UserRole
from core.results import Err, Ok, returns_result


class TestUserModel(TestCase):
    """Tests for the custom User model."""

    def setUp(self):
        self.admin = User.objects.create_user(
            phone_number='+201000000001',
            password='testpass123',
            role=UserRole.ADMIN,
            full_name='Admin Test',
        )
        self.rider = User.objects.create_user(
            phone_number='+201000000002',
            password='testpass123',
            role=UserRole.RIDER,
            full_name='Rider Test',
        )
        self.customer = User.objects.create_user(
            phone_number='+201000000003',
            password='testpass123',
            role=UserRole.CUSTOMER,
            full_name='Customer Test',
        )
        self.shop_owner = User.objects.create_user(
            phone_number='+201000000004',
            password='testpass123',
            role=UserRole.SHOP,
            full_name='Shop Test',
        )

    # ==========================================
    # User Creation Tests
    # ==========================================

    def test_user_creation_with_phone(self):
        """User should be created with phone number as identifier."""
        self.assertEqual(self.rider.phone_number, '+201000000002')
        self.assertTrue(self.rider.check_password('testpass123'))

    def test_user_uuid_primary_key(self):
        self.assertIsInstance(self.rider.id, uuid.UUID)

    def test_role_properties(self):
        """Role helpers should match the stored role."""
        self.assertTrue(self.customer.is_customer)
        self.assertTrue(self.rider.is_rider)
        self.assertTrue(self.shop_owner.is_shop_owner)
        self.assertTrue(self.admin.is_platform_admin)
        self.assertFalse(self.customer.is_platform_admin)

    def test_superuser_creation(self):
        superuser = User.objects.create_superuser(
            phone_number='+201099999999',
            password='superpass123',
        )
        self.assertTrue(superuser.is_staff)
        self.assertTrue(superuser.is_superuser)
        self.assertEqual(superuser.role, UserRole.ADMIN)

    def test_duplicate_phone_number_rejected(self):
        with self.assertRaises(IntegrityError):
            User.objects.create_user(phone_number='+201000000002', password='testpass123')

    def test_new_customer_has_zero_points(self):
        self.assertEqual(self.customer.points_balance, 0)

    # ==========================================
    # Referral Code Tests
    # ==========================================

    def test_customer_gets_referral_code(self):
        """Customers get an 8-character referral code on creation."""
        self.assertIsNotNone(self.customer.referral_code)
        self.assertEqual(len(self.customer.referral_code), REFERRAL_CODE_LENGTH)

    def test_non_customers_have_no_referral_code(self):
        self.assertIsNone(self.rider.referral_code)
        self.assertIsNone(self.shop_owner.referral_code)

    def test_referral_code_is_stable_across_saves(self):
        code = self.customer.referral_code
        self.customer.full_name = 'Renamed'
        self.customer.save()
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.referral_code, code)

    @patch('core.models.generate_referral_code', side_effect=['DUPLICAT', 'DUPLICAT', 'FRESHONE'])
    def test_referral_code_collision_is_retried(self, _mock_generate):
        first = User.objects.create_user(phone_number='+201000000010')
        second = User.objects.create_user(phone_number='+201000000011')
        self.assertEqual(first.referral_code, 'DUPLICAT')
        self.assertEqual(second.referral_code, 'FRESHONE')


class TestShopModel(TestCase):

    def test_shop_defaults_from_settings(self):
        owner = User.objects.create_user(phone_number='+201000000020', role=UserRole.SHOP)
        shop = Shop.objects.create(owner=owner, name='Corner Grocery')
        self.assertEqual(shop.commission_rate, Decimal('0.10'))
        self.assertEqual(shop.default_delivery_fee, Decimal('10.00'))
        self.assertTrue(shop.is_active)


# ==========================================
# Failures & Results
# ==========================================

class TestFailures(SimpleTestCase):

    def test_default_codes(self):
        self.assertEqual(ValidationFailure('bad').code, 'VALIDATION_ERROR')
        self.assertEqual(BusinessRuleFailure('no').code, 'BUSINESS_RULE_ERROR')
        self.assertEqual(NotFoundFailure('gone').code, 'NOT_FOUND')
        self.assertEqual(CacheFailure('disk').code, 'CACHE_ERROR')

    def test_only_network_class_failures_are_retryable(self):
        self.assertTrue(NetworkFailure().retryable)
        self.assertTrue(ServerFailure('boom', status_code=502).retryable)
        self.assertFalse(BusinessRuleFailure('no').retryable)
        self.assertFalse(ValidationFailure('bad').retryable)

    def test_failures_compare_by_value(self):
        self.assertEqual(BusinessRuleFailure('Already closed'), BusinessRuleFailure('Already closed'))
        self.assertNotEqual(BusinessRuleFailure('x'), ValidationFailure('x'))


class TestResult(SimpleTestCase):

    def test_ok_map_and_then(self):
        result = Ok(2).map(lambda v: v * 10).and_then(lambda v: Ok(v + 1))
        self.assertTrue(result.ok)
        self.assertEqual(result.value, 21)

    def test_err_short_circuits(self):
        failure = BusinessRuleFailure('Invalid transition')
        result = Err(failure).map(lambda v: v * 10).and_then(lambda v: Ok(v))
        self.assertFalse(result.ok)
        self.assertIs(result.failure, failure)
        self.assertEqual(result.unwrap_or('fallback'), 'fallback')

    def test_err_unwrap_raises_failure(self):
        with self.assertRaises(NotFoundFailure):
            Err(NotFoundFailure('missing')).unwrap()

    def test_returns_result_wraps_failures(self):
        @returns_result
        def rejects():
            raise ValidationFailure('Wrong actor')

        result = rejects()
        self.assertIsInstance(result, Err)
        self.assertEqual(result.failure.message, 'Wrong actor')

    def test_returns_result_maps_database_outage_to_network_failure(self):
        @returns_result
        def db_down():
            raise OperationalError('could not connect to server')

        result = db_down()
        self.assertIsInstance(result.failure, NetworkFailure)
        self.assertTrue(result.retryable)

    def test_returns_result_lets_bugs_propagate(self):
        @returns_result
        def buggy():
            raise KeyError('oops')

        with self.assertRaises(KeyError):
            buggy()


class TestFailureResponse(SimpleTestCase):

    def test_status_mapping(self):
        self.assertEqual(failure_response(ValidationFailure('x')).status_code, 400)
        self.assertEqual(failure_response(NotFoundFailure('x')).status_code, 404)
        self.assertEqual(failure_response(BusinessRuleFailure('x')).status_code, 409)
        self.assertEqual(failure_response(NetworkFailure()).status_code, 503)
        self.assertEqual(failure_response(ServerFailure('x')).status_code, 503)

    def test_body_carries_message_verbatim(self):
        response = failure_response(BusinessRuleFailure('Period already closed'))
        self.assertEqual(response.data, {
            'error': 'Period already closed',
            'code': 'BUSINESS_RULE_ERROR',
        })


# ==========================================
# Health endpoints
# ==========================================

class TestHealthEndpoints(TestCase):

    def test_liveness(self):
        response = self.client.get('/health/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'ok')

    @patch('core.health._check_celery', return_value={'status': 'degraded'})
    def test_readiness_with_database_and_cache(self, _mock_celery):
        response = self.client.get('/health/ready/')
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['checks']['database']['status'], 'healthy')
        self.assertEqual(body['checks']['cache']['status'], 'healthy')


# ==========================================
# Account endpoints
# ==========================================

class TestAccountEndpoints(TestCase):
    """Riders and shops are provisioned by admins, never self-registered."""

    def setUp(self):
        self.client = APIClient()

    def test_anonymous_rider_registration_is_not_routed(self):
        response = self.client.post('/api/users/', {
            'phone_number': '+201000000099',
            'password': 'Str0ngPass!word',
            'role': UserRole.RIDER,
        }, format='json')

        self.assertEqual(response.status_code, 404)
        self.assertFalse(User.objects.filter(phone_number='+201000000099').exists())

    def test_api_root_does_not_advertise_users(self):
        response = self.client.get('/api/')
        self.assertEqual(response.status_code, 200)
        self.assertNotIn('users', response.json()['endpoints'])

    def test_shops_require_authentication(self):
        response = self.client.get('/api/shops/')
        self.assertEqual(response.status_code, 401)
