"""
Order placement for BALADI

Validates the request, snapshots the items, prices the order and
persists it together with the redeemed-points ledger entry.
"""

import logging
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction

from core.failures import BusinessRuleFailure, ValidationFailure
from core.models import UserRole
from core.results import returns_result
from loyalty.services import PointsService
from orders.models import Order, OrderItem, OrderStatus, OrderStatusHistory
from orders.services.pricing import CommissionCalculator, to_money

logger = logging.getLogger(__name__)

User = get_user_model()


def validate_items(items):
    """
    Normalise raw item dicts into (product_id, name, unit_price, quantity, subtotal).

    Raises ValidationFailure with per-item field errors.
    """
    if not items:
        raise ValidationFailure("An order needs at least one item")
    if len(items) > settings.MAX_ITEMS_PER_ORDER:
        raise ValidationFailure(f"An order can have at most {settings.MAX_ITEMS_PER_ORDER} items")

    lines = []
    errors = {}
    for index, item in enumerate(items):
        try:
            unit_price = to_money(item['unit_price'])
            quantity = int(item['quantity'])
        except (KeyError, TypeError, ValueError, InvalidOperation):
            errors[index] = "unit_price and quantity are required numbers"
            continue
        if quantity <= 0:
            errors[index] = "quantity must be greater than zero"
            continue
        if unit_price < 0:
            errors[index] = "unit_price cannot be negative"
            continue
        lines.append({
            'product_id': str(item.get('product_id', '')),
            'name': item.get('name', ''),
            'unit_price': unit_price,
            'quantity': quantity,
            'subtotal': to_money(unit_price * quantity),
        })

    if errors:
        raise ValidationFailure("Invalid order items", field_errors={'items': errors})
    return lines


@returns_result
@transaction.atomic
def place_order(customer, shop, items, delivery_address: str, points_to_redeem: int = 0,
                is_free_delivery: bool = False, delivery_fee=None, customer_notes: str = ''):
    """
    Create a pending order.

    Returns Ok(order) or Err(ValidationFailure | BusinessRuleFailure).
    """
    if customer.role != UserRole.CUSTOMER:
        raise ValidationFailure("Only customers can place orders")
    if not shop.is_active:
        raise BusinessRuleFailure(f"{shop.name} is not accepting orders")

    address = (delivery_address or '').strip()
    if len(address) < settings.MIN_DELIVERY_ADDRESS_LENGTH:
        raise ValidationFailure(
            f"Delivery address must be at least {settings.MIN_DELIVERY_ADDRESS_LENGTH} characters"
        )

    lines = validate_items(items)
    subtotal = sum((line['subtotal'] for line in lines), Decimal('0.00'))
    if subtotal < shop.minimum_order:
        raise BusinessRuleFailure(f"Minimum order for {shop.name} is {shop.minimum_order} EGP")

    # Lock the customer so the balance used for pricing is the one debited
    customer = User.objects.select_for_update().get(pk=customer.pk)

    quote = CommissionCalculator().quote(
        subtotal=subtotal,
        delivery_fee=shop.default_delivery_fee if delivery_fee is None else delivery_fee,
        commission_rate=shop.commission_rate,
        points_requested=points_to_redeem or 0,
        points_balance=customer.points_balance,
        is_free_delivery=is_free_delivery,
    )

    order = Order.objects.create(
        customer=customer,
        shop=shop,
        status=OrderStatus.PENDING,
        delivery_address=address,
        customer_notes=customer_notes or '',
        **quote.as_model_fields(),
    )
    OrderItem.objects.bulk_create([OrderItem(order=order, **line) for line in lines])
    OrderStatusHistory.objects.create(
        order=order,
        from_status='',
        to_status=OrderStatus.PENDING,
        actor=customer,
        actor_role=customer.role,
        created_at=order.created_at,
    )

    PointsService.redeem_for_order(order)

    logger.info(
        f"[ORDERS] Placed {order.order_number} for {customer.pk} at {shop.name}: "
        f"total {order.total} EGP, {order.points_used} pts redeemed"
    )
    return order
