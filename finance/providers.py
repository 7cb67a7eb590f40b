"""
Ads cost provider for BALADI settlements.

The aggregator only needs `get_ads_cost_for_period(start, end)` returning
[{'shop_id': ..., 'total_cost': Decimal}]; any object with that method
can be injected (tests use a stub).
"""

from django.db.models import Sum

from .models import AdPlacement


class AdPlacementCostProvider:
    """Ads costs from AdPlacement rows starting inside the period."""

    def get_ads_cost_for_period(self, start, end):
        rows = (
            AdPlacement.objects.filter(starts_at__gte=start, starts_at__lte=end)
            .values('shop_id')
            .annotate(total_cost=Sum('cost'))
            .order_by('shop_id')
        )
        return [{'shop_id': row['shop_id'], 'total_cost': row['total_cost']} for row in rows]
