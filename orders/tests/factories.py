"""
Shared builders for BALADI tests: users, shops and orders walked
through the lifecycle with the real services.
"""

from decimal import Decimal

from core.models import Shop, User, UserRole
from orders.models import Order, OrderStatus
from orders.services.placement import place_order
from orders.services.state_machine import transition_order


def create_user(phone_number, role=UserRole.CUSTOMER, **extra):
    extra.setdefault('full_name', f"{role.title()} {phone_number[-2:]}")
    return User.objects.create_user(
        phone_number=phone_number,
        password='testpass123',
        role=role,
        **extra,
    )


def create_shop(owner, name='Koshary Corner', **extra):
    extra.setdefault('commission_rate', Decimal('0.10'))
    extra.setdefault('default_delivery_fee', Decimal('15.00'))
    return Shop.objects.create(owner=owner, name=name, **extra)


def items_for(subtotal, name='Koshary box'):
    return [{'product_id': 'P-1', 'name': name, 'unit_price': Decimal(subtotal), 'quantity': 1}]


def create_order(customer, shop, subtotal='200.00', **kwargs):
    """Place an order through the placement service and return it."""
    kwargs.setdefault('delivery_address', '12 Tahrir Square, Downtown Cairo')
    return place_order(customer, shop, items_for(subtotal), **kwargs).unwrap()


def advance(order, target, actor, note=''):
    return transition_order(order, target, actor, note).unwrap()


def complete_order(order, shop_owner, rider):
    """pending -> completed with the right actor on every edge."""
    order = advance(order, OrderStatus.ACCEPTED, shop_owner)
    order = advance(order, OrderStatus.PREPARING, shop_owner)
    order = advance(order, OrderStatus.PICKED_UP, rider)
    order = advance(order, OrderStatus.SHOP_PAID, rider)
    return advance(order, OrderStatus.COMPLETED, shop_owner)


def backdate(order, **timestamps):
    """Move lifecycle timestamps without touching the frozen snapshot."""
    Order.objects.filter(pk=order.pk).update(**timestamps)
    order.refresh_from_db()
    return order
