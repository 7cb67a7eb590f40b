"""
Loyalty Services for BALADI

PointsService is the only writer of User.points_balance. Each change
locks the customer row and appends one PointsTransaction carrying the
balance before and after.

ReferralService applies referral codes and pays the referrer bonus on
the referred customer's first completed order.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from core.failures import BusinessRuleFailure, NotFoundFailure, ValidationFailure
from core.models import UserRole
from core.results import returns_result

from .models import PointsTransaction, PointsTransactionType, Referral, ReferralStatus

logger = logging.getLogger(__name__)

User = get_user_model()


# ===========================================
# POINTS LEDGER
# ===========================================

class PointsService:
    """
    Service class for points operations.

    All operations use transaction.atomic() for data integrity.
    """

    @staticmethod
    @transaction.atomic
    def apply(customer, points: int, transaction_type: str, order=None,
              description: str = "", created_by=None) -> PointsTransaction:
        """
        Apply a signed points delta to a customer's balance.

        Raises:
            BusinessRuleFailure: if the balance would go negative
        """
        if points == 0:
            raise ValidationFailure("Points delta must be non-zero")

        # Lock user row for update
        customer = User.objects.select_for_update().get(pk=customer.pk)

        balance_before = customer.points_balance
        balance_after = balance_before + points
        if balance_after < 0:
            raise BusinessRuleFailure(
                f"Insufficient points: balance {balance_before}, change {points}"
            )

        customer.points_balance = balance_after
        customer.save(update_fields=['points_balance'])

        entry = PointsTransaction.objects.create(
            customer=customer,
            order=order,
            transaction_type=transaction_type,
            points=points,
            balance_before=balance_before,
            balance_after=balance_after,
            description=description,
            created_by=created_by,
        )
        logger.info(
            f"[LOYALTY] {transaction_type} {points:+d} pts for {customer.pk} "
            f"({balance_before} -> {balance_after})"
        )
        return entry

    @staticmethod
    def _already_recorded(customer, order, transaction_type) -> bool:
        return PointsTransaction.objects.filter(
            customer=customer, order=order, transaction_type=transaction_type
        ).exists()

    @staticmethod
    def redeem_for_order(order):
        """Debit the points an order redeemed (no entry for zero points)."""
        if order.points_used <= 0:
            return None
        return PointsService.apply(
            order.customer,
            -order.points_used,
            PointsTransactionType.REDEEMED,
            order=order,
            description=f"Redeemed on order {order.order_number}",
        )

    @staticmethod
    def award_order_points(order):
        """
        Credit points earned by a completed order.

        At most once per order; no entry for zero points.
        """
        if order.points_earned <= 0:
            return None
        if PointsService._already_recorded(order.customer, order, PointsTransactionType.EARNED):
            logger.info(f"[LOYALTY] Points for {order.order_number} already awarded; skipping")
            return None
        return PointsService.apply(
            order.customer,
            order.points_earned,
            PointsTransactionType.EARNED,
            order=order,
            description=f"Earned on order {order.order_number}",
        )

    @staticmethod
    def refund_cancelled_order(order):
        """Give back redeemed points when an order is cancelled."""
        if order.points_used <= 0:
            return None
        if PointsService._already_recorded(order.customer, order, PointsTransactionType.ADJUSTMENT):
            return None
        return PointsService.apply(
            order.customer,
            order.points_used,
            PointsTransactionType.ADJUSTMENT,
            order=order,
            description=f"Refund for cancelled order {order.order_number}",
        )

    @staticmethod
    def award_referral_bonus(referrer, order, points: int = None):
        return PointsService.apply(
            referrer,
            points or settings.REFERRAL_BONUS_POINTS,
            PointsTransactionType.REFERRAL_BONUS,
            order=order,
            description=f"Referral bonus (first order {order.order_number})",
        )

    @staticmethod
    def ledger_total(customer) -> int:
        """Sum of all ledger entries; equals points_balance when consistent."""
        return PointsTransaction.objects.filter(customer=customer).aggregate(
            total=Sum('points')
        )['total'] or 0

    @staticmethod
    def history(customer):
        return PointsTransaction.objects.filter(customer=customer).select_related('order')


@returns_result
@transaction.atomic
def adjust_points(customer, points: int, admin, reason: str) -> PointsTransaction:
    """
    Admin correction of a customer's points balance.
    """
    if not (admin.role == UserRole.ADMIN or admin.is_superuser):
        raise ValidationFailure("Only admins can adjust points")
    if customer.role != UserRole.CUSTOMER:
        raise ValidationFailure("Points can only be adjusted for customers")
    if not reason or not reason.strip():
        raise ValidationFailure("A reason is required for points adjustments")
    return PointsService.apply(
        customer,
        points,
        PointsTransactionType.ADJUSTMENT,
        description=reason.strip(),
        created_by=admin,
    )


# ===========================================
# REFERRALS
# ===========================================

def should_award_bonus(is_first_order: bool, referral_pending: bool) -> bool:
    return is_first_order and referral_pending


class ReferralService:

    @staticmethod
    def is_first_completed_order(order) -> bool:
        """True when no other completed order of this customer exists."""
        from orders.models import OrderStatus

        return not order.customer.orders.filter(
            status=OrderStatus.COMPLETED
        ).exclude(pk=order.pk).exists()

    @staticmethod
    @transaction.atomic
    def process_completed_order(order):
        """
        Pay the referral bonus if this is the referred customer's first
        completed order. Re-running it is a no-op.

        Returns the completed Referral, or None when nothing was awarded.
        """
        referral = (
            Referral.objects.select_for_update()
            .filter(referred_id=order.customer_id)
            .first()
        )
        if referral is None:
            return None

        if not should_award_bonus(
            ReferralService.is_first_completed_order(order),
            referral.is_pending and not referral.points_awarded,
        ):
            return None

        PointsService.award_referral_bonus(referral.referrer, order)

        referral.points_awarded = True
        referral.first_order = order
        referral.status = ReferralStatus.COMPLETED
        referral.completed_at = timezone.now()
        referral.save(update_fields=['points_awarded', 'first_order', 'status', 'completed_at'])

        logger.info(
            f"[LOYALTY] Referral {referral.pk} completed by order {order.order_number}; "
            f"referrer {referral.referrer_id} credited"
        )
        return referral

    @staticmethod
    def expire_stale_referrals(now=None) -> int:
        """Pending referrals older than REFERRAL_EXPIRY_DAYS become expired."""
        now = now or timezone.now()
        cutoff = now - timedelta(days=settings.REFERRAL_EXPIRY_DAYS)
        expired = Referral.objects.filter(
            status=ReferralStatus.PENDING,
            created_at__lt=cutoff,
        ).update(status=ReferralStatus.EXPIRED)
        if expired:
            logger.info(f"[LOYALTY] Expired {expired} stale referral(s)")
        return expired


@returns_result
@transaction.atomic
def apply_referral_code(customer, code: str) -> Referral:
    """
    Attach the customer to the owner of `code` as a pending referral.

    Failures: empty code (Validation), unknown code (NotFound),
    self-referral or a second application (BusinessRule).
    """
    code = (code or '').strip().upper()
    if not code:
        raise ValidationFailure("Referral code is required")
    if customer.role != UserRole.CUSTOMER:
        raise ValidationFailure("Only customers can apply referral codes")

    referrer = User.objects.filter(referral_code=code).first()
    if referrer is None:
        raise NotFoundFailure(f"Referral code {code} does not exist")
    if referrer.pk == customer.pk:
        raise BusinessRuleFailure("You cannot use your own referral code")
    if Referral.objects.filter(referred=customer).exists():
        raise BusinessRuleFailure("A referral code was already applied to this account")

    try:
        with transaction.atomic():
            referral = Referral.objects.create(
                referrer=referrer,
                referred=customer,
                code_used=code,
            )
    except IntegrityError:
        raise BusinessRuleFailure("A referral code was already applied to this account")

    logger.info(f"[LOYALTY] Customer {customer.pk} referred by {referrer.pk}")
    return referral
