"""
LOYALTY App - Celery Tasks
"""

import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def expire_stale_referrals(self):
    """
    Expire pending referrals older than REFERRAL_EXPIRY_DAYS.

    Scheduled daily by Celery Beat.
    """
    from django.db import InterfaceError, OperationalError
    from loyalty.services import ReferralService

    try:
        expired = ReferralService.expire_stale_referrals()
    except (OperationalError, InterfaceError) as exc:
        logger.warning(f"[CELERY] Referral expiry failed, retrying: {exc}")
        raise self.retry(exc=exc)

    logger.info(f"[CELERY] Referral expiry complete: {expired} expired")
    return {'expired': expired}
