"""
API tests for the order endpoints.
"""

import uuid
from decimal import Decimal

from django.test import TestCase
from rest_framework.test import APIClient

from core.models import UserRole
from orders.models import OrderStatus
from orders.tests.factories import advance, create_order, create_shop, create_user


class TestOrderAPI(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.customer = create_user('+201000000051', UserRole.CUSTOMER)
        self.shop_owner = create_user('+201000000052', UserRole.SHOP)
        self.rider = create_user('+201000000053', UserRole.RIDER)
        self.shop = create_shop(self.shop_owner)

    def _payload(self, **overrides):
        payload = {
            'shop': str(self.shop.pk),
            'delivery_address': '12 Tahrir Square, Downtown Cairo',
            'items': [
                {'product_id': 'P-1', 'name': 'Koshary', 'unit_price': '200.00', 'quantity': 1},
            ],
            'points_to_redeem': 0,
        }
        payload.update(overrides)
        return payload

    # ==========================================
    # Placement
    # ==========================================

    def test_customer_places_order(self):
        self.client.force_authenticate(self.customer)
        response = self.client.post('/api/orders/', self._payload(), format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['status'], OrderStatus.PENDING)
        self.assertEqual(Decimal(response.data['total']), Decimal('215.00'))
        self.assertEqual(len(response.data['status_history']), 1)

    def test_rider_cannot_place_order(self):
        self.client.force_authenticate(self.rider)
        response = self.client.post('/api/orders/', self._payload(), format='json')
        self.assertEqual(response.status_code, 403)

    def test_business_rule_maps_to_conflict(self):
        self.shop.minimum_order = Decimal('500.00')
        self.shop.save()
        self.client.force_authenticate(self.customer)

        response = self.client.post('/api/orders/', self._payload(), format='json')

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['code'], 'BUSINESS_RULE_ERROR')

    def test_unknown_shop(self):
        self.client.force_authenticate(self.customer)
        response = self.client.post('/api/orders/', self._payload(shop=str(uuid.uuid4())), format='json')
        self.assertEqual(response.status_code, 404)

    # ==========================================
    # Visibility
    # ==========================================

    def test_querysets_are_scoped_by_role(self):
        order = create_order(self.customer, self.shop)
        other_customer = create_user('+201000000054', UserRole.CUSTOMER)

        self.client.force_authenticate(other_customer)
        self.assertEqual(self.client.get('/api/orders/').data['count'], 0)

        self.client.force_authenticate(self.shop_owner)
        self.assertEqual(self.client.get('/api/orders/').data['count'], 1)

        # Riders only see it once it is waiting for pickup
        self.client.force_authenticate(self.rider)
        self.assertEqual(self.client.get('/api/orders/').data['count'], 0)
        order = advance(order, OrderStatus.ACCEPTED, self.shop_owner)
        advance(order, OrderStatus.PREPARING, self.shop_owner)
        self.assertEqual(self.client.get('/api/orders/').data['count'], 1)

    # ==========================================
    # Transitions & cash
    # ==========================================

    def test_shop_accepts_via_api(self):
        order = create_order(self.customer, self.shop)
        self.client.force_authenticate(self.shop_owner)

        response = self.client.post(
            f'/api/orders/{order.pk}/transition/', {'status': 'accepted'}, format='json'
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], OrderStatus.ACCEPTED)

    def test_invalid_transition_returns_conflict(self):
        order = create_order(self.customer, self.shop)
        self.client.force_authenticate(self.shop_owner)

        response = self.client.post(
            f'/api/orders/{order.pk}/transition/', {'status': 'completed'}, format='json'
        )
        self.assertEqual(response.status_code, 409)

    def test_customer_cancels_via_api(self):
        order = create_order(self.customer, self.shop)
        self.client.force_authenticate(self.customer)

        response = self.client.post(
            f'/api/orders/{order.pk}/transition/',
            {'status': 'cancelled', 'note': 'Ordered twice'},
            format='json',
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['cancellation_reason'], 'Ordered twice')

    def test_rider_records_cash_collection(self):
        order = create_order(self.customer, self.shop)
        order = advance(order, OrderStatus.ACCEPTED, self.shop_owner)
        order = advance(order, OrderStatus.PREPARING, self.shop_owner)
        order = advance(order, OrderStatus.PICKED_UP, self.rider)
        self.client.force_authenticate(self.rider)

        response = self.client.post(
            f'/api/orders/{order.pk}/cash/', {'milestone': 'collected'}, format='json'
        )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data['cash_collected'])
        self.assertEqual(len(response.data['cash_transactions']), 1)
