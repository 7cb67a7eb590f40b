"""
Cash Custody Tracker for BALADI

Physical cash moves customer -> rider -> shop -> platform. Each hop is a
milestone flag on the order plus one CashTransaction:

    cash_collected            CUSTOMER_TO_RIDER  (rider)   amount = total
    cash_transferred_to_shop  RIDER_TO_SHOP      (rider)   amount = total - rider_earnings
    shop_confirmed_cash       SHOP_TO_ADMIN      (shop)    amount = shop_commission - points_discount

Milestones only move forward and only while the order is picked_up or
shop_paid. The shop confirmation is what completes the order.
"""

import logging

from django.db import transaction
from django.utils import timezone

from core.failures import BusinessRuleFailure, ValidationFailure
from core.models import UserRole
from core.results import Err, returns_result
from finance.models import CashTransaction, CashTransactionType
from orders.models import Order, OrderStatus
from orders.services.state_machine import apply_transition, check_actor, lock_order

logger = logging.getLogger(__name__)

CUSTODY_STATUSES = frozenset({OrderStatus.PICKED_UP, OrderStatus.SHOP_PAID})


class CashMilestone:
    COLLECTED = 'collected'
    TRANSFERRED = 'transferred'
    CONFIRMED = 'confirmed'

    ALL = (COLLECTED, TRANSFERRED, CONFIRMED)


def _require_custody_phase(order: Order):
    if order.status not in CUSTODY_STATUSES:
        raise BusinessRuleFailure(
            f"Cash milestones are only recorded after pickup (order is {order.status})"
        )


def _require_role(actor, role, action: str):
    if actor.role != role:
        raise ValidationFailure(f"Only a {role.label.lower()} can {action}")


# ===========================================
# MILESTONE RECORDERS (caller holds the row lock)
# ===========================================

def mark_cash_collected(order: Order, actor, now=None) -> CashTransaction:
    _require_role(actor, UserRole.RIDER, "collect cash from the customer")
    check_actor(order, actor)
    if order.cash_collected:
        raise BusinessRuleFailure("Cash was already collected for this order")

    now = now or timezone.now()
    order.cash_collected = True
    order.cash_collected_at = now
    order.save(update_fields=['cash_collected', 'cash_collected_at', 'updated_at'])

    logger.info(f"[CUSTODY] {order.order_number}: rider {actor.pk} collected {order.total} EGP")
    return CashTransaction.objects.create(
        order=order,
        transaction_type=CashTransactionType.CUSTOMER_TO_RIDER,
        amount=order.total,
        from_user=order.customer,
        to_user=actor,
        confirmed_by=actor,
        confirmed_at=now,
    )


def mark_cash_transferred(order: Order, actor, now=None) -> CashTransaction:
    _require_role(actor, UserRole.RIDER, "hand cash to the shop")
    check_actor(order, actor)
    if not order.cash_collected:
        raise BusinessRuleFailure("Cash must be collected before it is handed to the shop")
    if order.cash_transferred_to_shop:
        raise BusinessRuleFailure("Cash was already handed to the shop for this order")

    now = now or timezone.now()
    order.cash_transferred_to_shop = True
    order.cash_transferred_at = now
    order.save(update_fields=['cash_transferred_to_shop', 'cash_transferred_at', 'updated_at'])

    amount = order.total - order.rider_earnings
    logger.info(f"[CUSTODY] {order.order_number}: rider {actor.pk} handed {amount} EGP to shop")
    return CashTransaction.objects.create(
        order=order,
        transaction_type=CashTransactionType.RIDER_TO_SHOP,
        amount=amount,
        from_user=actor,
        to_user=order.shop.owner,
        confirmed_by=actor,
        confirmed_at=now,
    )


def mark_shop_confirmed(order: Order, actor, now=None) -> CashTransaction:
    """
    Shop confirms the cash arrived. Does not change status; callers
    apply the completed transition afterwards.
    """
    _require_role(actor, UserRole.SHOP, "confirm cash receipt")
    check_actor(order, actor)
    if not order.cash_collected:
        raise BusinessRuleFailure("Cash must be collected before the shop confirms it")
    if not order.cash_transferred_to_shop:
        raise BusinessRuleFailure("Cash must reach the shop before the shop confirms it")
    if order.shop_confirmed_cash:
        raise BusinessRuleFailure("Shop already confirmed cash for this order")
    if order.status != OrderStatus.SHOP_PAID:
        raise BusinessRuleFailure(
            f"Order must be {OrderStatus.SHOP_PAID} before the shop confirms cash (is {order.status})"
        )

    now = now or timezone.now()
    order.shop_confirmed_cash = True
    order.shop_confirmed_at = now
    order.save(update_fields=['shop_confirmed_cash', 'shop_confirmed_at', 'updated_at'])

    # Platform's net share: commission less the points discount credited to the shop
    amount = order.shop_commission - order.points_discount
    logger.info(f"[CUSTODY] {order.order_number}: shop confirmed cash, {amount} EGP owed to platform")
    return CashTransaction.objects.create(
        order=order,
        transaction_type=CashTransactionType.SHOP_TO_ADMIN,
        amount=amount,
        from_user=actor,
        to_user=None,
        confirmed_by=actor,
        confirmed_at=now,
    )


def ensure_cash_handed_to_shop(order: Order, actor, now=None):
    """Record whichever rider milestones are still missing (picked_up -> shop_paid)."""
    if not order.cash_collected:
        mark_cash_collected(order, actor, now)
    if not order.cash_transferred_to_shop:
        mark_cash_transferred(order, actor, now)


# ===========================================
# PUBLIC OPERATIONS
# ===========================================

@returns_result
@transaction.atomic
def record_cash_collected(order: Order, actor) -> Order:
    locked = lock_order(order)
    _require_custody_phase(locked)
    mark_cash_collected(locked, actor)
    return locked


@returns_result
@transaction.atomic
def record_cash_transferred(order: Order, actor) -> Order:
    locked = lock_order(order)
    _require_custody_phase(locked)
    mark_cash_transferred(locked, actor)
    return locked


@returns_result
@transaction.atomic
def confirm_cash_received(order: Order, actor, note: str = '') -> Order:
    """
    Shop confirms receipt: the only trigger of shop_paid -> completed.
    """
    locked = lock_order(order)
    _require_custody_phase(locked)
    now = timezone.now()
    mark_shop_confirmed(locked, actor, now)
    return apply_transition(locked, OrderStatus.COMPLETED, actor, note, now)


MILESTONE_OPERATIONS = {
    CashMilestone.COLLECTED: record_cash_collected,
    CashMilestone.TRANSFERRED: record_cash_transferred,
    CashMilestone.CONFIRMED: confirm_cash_received,
}


def record_milestone(order: Order, milestone: str, actor):
    """Dispatch by milestone name (used by the API)."""
    operation = MILESTONE_OPERATIONS.get(milestone)
    if operation is None:
        return Err(ValidationFailure(f"Unknown cash milestone: {milestone}"))
    return operation(order, actor)
