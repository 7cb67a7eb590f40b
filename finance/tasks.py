"""
FINANCE App - Celery Tasks for the weekly settlement close

Scheduled by Celery Beat every Saturday 00:05 (settlement zone), right
after the week ends.
"""

import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def close_weekly_settlement(self, note: str = "Automatic weekly close"):
    """
    Close the active settlement period.

    Only retryable (database/network) failures are retried; business rule
    rejections are logged and returned.
    """
    from finance.services import (
        NOTHING_TO_SETTLE,
        SettlementAggregator,
        get_current_week_settlement,
        roll_over_empty_period,
    )

    result = SettlementAggregator().close_current_period(admin=None, note=note)

    if result.ok:
        settlement = result.value
        logger.info(
            f"[CELERY] Settlement {settlement.period.label} closed: "
            f"{settlement.completed_orders} orders, {settlement.shops_settled} shops, "
            f"{settlement.riders_settled} riders"
        )
        return {
            'period': str(settlement.period.pk),
            'orders': settlement.orders_processed,
            'shops': settlement.shops_settled,
            'riders': settlement.riders_settled,
        }

    failure = result.failure
    if failure.retryable:
        logger.warning(f"[CELERY] Settlement close failed, retrying: {failure.message}")
        raise self.retry(exc=failure)

    if failure.code == NOTHING_TO_SETTLE:
        period = get_current_week_settlement()
        rolled = roll_over_empty_period(period) if period else None
        if rolled is not None and not rolled.ok:
            logger.warning(f"[CELERY] Could not roll over empty period: {rolled.failure.message}")
        logger.info(f"[CELERY] {failure.message}")
        return {'skipped': failure.message}

    logger.warning(f"[CELERY] Settlement close rejected: {failure.message}")
    return {'error': failure.message, 'code': failure.code}
