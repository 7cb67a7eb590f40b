"""
Order Status State Machine for BALADI

    pending -> accepted -> preparing -> picked_up -> shop_paid -> completed
    pending | accepted -> cancelled

Every transition locks the order row, re-checks the caller's view of the
status and writes one OrderStatusHistory row. Completion awards points
and completes referrals inside the same transaction; cancellation zeroes
pending earnings and refunds redeemed points.
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from core.failures import BusinessRuleFailure, NotFoundFailure, ValidationFailure
from core.models import UserRole
from core.results import returns_result
from loyalty.services import PointsService, ReferralService
from orders.models import Order, OrderStatus, OrderStatusHistory, STATUS_TIMESTAMP_FIELDS

logger = logging.getLogger(__name__)


# ===========================================
# TRANSITION TABLES
# ===========================================

# The only forward edge out of each status (None = terminal)
TRANSITIONS = {
    OrderStatus.PENDING: OrderStatus.ACCEPTED,
    OrderStatus.ACCEPTED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.PICKED_UP,
    OrderStatus.PICKED_UP: OrderStatus.SHOP_PAID,
    OrderStatus.SHOP_PAID: OrderStatus.COMPLETED,
    OrderStatus.COMPLETED: None,
    OrderStatus.CANCELLED: None,
}

CANCELLABLE_FROM = frozenset({OrderStatus.PENDING, OrderStatus.ACCEPTED})

# Who may move an order INTO each status
ADVANCE_ROLES = {
    OrderStatus.ACCEPTED: frozenset({UserRole.SHOP}),
    OrderStatus.PREPARING: frozenset({UserRole.SHOP}),
    OrderStatus.PICKED_UP: frozenset({UserRole.RIDER}),
    OrderStatus.SHOP_PAID: frozenset({UserRole.RIDER}),
    OrderStatus.COMPLETED: frozenset({UserRole.SHOP}),
}

CANCEL_ROLES = frozenset({UserRole.CUSTOMER, UserRole.SHOP, UserRole.ADMIN})


def next_status(current):
    return TRANSITIONS[current]


def validate_transition(current, target, actor_role):
    """
    Pure check of one transition.

    Raises BusinessRuleFailure for an invalid edge, ValidationFailure for
    an unknown status or a role not allowed to take the edge.
    """
    if target not in OrderStatus.values:
        raise ValidationFailure(f"Unknown order status: {target}")

    if target == OrderStatus.CANCELLED:
        if current not in CANCELLABLE_FROM:
            raise BusinessRuleFailure(f"Cannot cancel an order that is {current}")
        if actor_role not in CANCEL_ROLES:
            raise ValidationFailure(f"Role {actor_role} cannot cancel orders")
        return

    expected = TRANSITIONS.get(current)
    if expected is None:
        raise BusinessRuleFailure(f"Order is {current}; no further transitions allowed")
    if target != expected:
        raise BusinessRuleFailure(f"Invalid transition {current} -> {target} (next is {expected})")
    if actor_role not in ADVANCE_ROLES[target]:
        raise ValidationFailure(f"Role {actor_role} cannot move an order to {target}")


def check_actor(order: Order, actor):
    """The acting user must be a party to this order."""
    if actor.role == UserRole.SHOP and order.shop.owner_id != actor.pk:
        raise ValidationFailure("Order belongs to another shop")
    if actor.role == UserRole.CUSTOMER and order.customer_id != actor.pk:
        raise ValidationFailure("Order belongs to another customer")
    if actor.role == UserRole.RIDER and order.rider_id and order.rider_id != actor.pk:
        raise ValidationFailure("Order is assigned to another rider")


def lock_order(order: Order) -> Order:
    """
    Re-read the order under a row lock.

    A status different from the caller's copy means another actor got
    there first: fail rather than act on stale state.
    """
    try:
        locked = Order.objects.select_for_update().get(pk=order.pk)
    except Order.DoesNotExist:
        raise NotFoundFailure(f"Order {order.pk} not found")

    if locked.status != order.status:
        raise BusinessRuleFailure(
            f"Order {locked.order_number} is now {locked.status} (expected {order.status}); reload and retry",
            code='STALE_STATE',
        )
    return locked


def apply_transition(locked: Order, target, actor, note: str = '', now=None) -> Order:
    """
    Apply an already validated transition to a locked order.

    Must run inside transaction.atomic().
    """
    now = now or timezone.now()
    previous = locked.status

    locked.status = target
    timestamp_field = STATUS_TIMESTAMP_FIELDS[target]
    if getattr(locked, timestamp_field) is None:
        setattr(locked, timestamp_field, now)

    if target == OrderStatus.PICKED_UP and locked.rider_id is None:
        locked.rider = actor

    if target == OrderStatus.CANCELLED:
        _zero_pending_earnings(locked)
        if note:
            locked.cancellation_reason = note
        locked.save(recompute_financials=True)
    else:
        locked.save()

    OrderStatusHistory.objects.create(
        order=locked,
        from_status=previous,
        to_status=target,
        actor=actor,
        actor_role=actor.role,
        note=note,
        created_at=now,
    )

    if target == OrderStatus.COMPLETED:
        PointsService.award_order_points(locked)
        ReferralService.process_completed_order(locked)
    elif target == OrderStatus.CANCELLED:
        PointsService.refund_cancelled_order(locked)

    logger.info(
        f"[ORDERS] {locked.order_number}: {previous} -> {target} by {actor.role} {actor.pk}"
    )
    return locked


def _zero_pending_earnings(order: Order):
    # points_used / points_discount stay as the record of what was refunded
    order.shop_commission = Decimal('0.00')
    order.platform_commission = Decimal('0.00')
    order.rider_earnings = Decimal('0.00')
    order.points_earned = 0
    order.personal_commission_store = Decimal('0.00')
    order.personal_commission_delivery = Decimal('0.00')
    order.personal_commission = Decimal('0.00')


@returns_result
@transaction.atomic
def transition_order(order: Order, target_status, actor, note: str = ''):
    """
    Move an order to target_status on behalf of actor.

    Returns Ok(order) or Err(BusinessRuleFailure | ValidationFailure |
    NotFoundFailure).
    """
    locked = lock_order(order)
    validate_transition(locked.status, target_status, actor.role)
    check_actor(locked, actor)
    now = timezone.now()

    if target_status == OrderStatus.SHOP_PAID:
        from orders.services.custody import ensure_cash_handed_to_shop
        ensure_cash_handed_to_shop(locked, actor, now)
    elif target_status == OrderStatus.COMPLETED:
        # Completion is the shop's cash confirmation
        from orders.services.custody import mark_shop_confirmed
        mark_shop_confirmed(locked, actor, now)

    return apply_transition(locked, target_status, actor, note, now)
