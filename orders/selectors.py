"""
Order storage queries used outside the orders app.
"""

from django.db.models import Q

from core.failures import NotFoundFailure
from core.results import Err

from .models import Order, OrderStatus


def get_orders_for_settlement(week_start, week_end):
    """
    Unsettled orders that completed or were cancelled inside the week.

    Both bounds are inclusive.
    """
    return (
        Order.objects.filter(weekly_period__isnull=True)
        .filter(
            Q(status=OrderStatus.COMPLETED, completed_at__gte=week_start, completed_at__lte=week_end)
            | Q(status=OrderStatus.CANCELLED, cancelled_at__gte=week_start, cancelled_at__lte=week_end)
        )
        .select_related('shop', 'rider')
        .order_by('created_at')
    )


def update_order_status(order_id, new_status, actor, note: str = ''):
    """Load an order by id and run it through the state machine."""
    from .services.state_machine import transition_order

    order = Order.objects.filter(pk=order_id).first()
    if order is None:
        return Err(NotFoundFailure(f"Order {order_id} not found"))
    return transition_order(order, new_status, actor, note)
