"""Celery tasks for bookings."""

from __future__ import annotations

import logging

from celery import shared_task
from django.db.models import Q
from django.utils import timezone

from payments.payouts import payout_delay
from payments.stripe_api import (
    StripeConfigurationError,
    StripePaymentError,
    StripeTransientError,
)

from .deposits import AUTO_REFUND_NOTE, settle_deposit
from .domain import Actor
from .exceptions import BookingPaymentError
from .holds import expire_stale_holds as _expire_stale_holds
from .models import Booking

logger = logging.getLogger(__name__)


@shared_task(name="bookings.expire_stale_holds")
def expire_stale_holds() -> int:
    """Release pending holds past their expiry. Returns how many were released."""
    released = _expire_stale_holds()
    if released:
        logger.info("bookings: released %s expired holds", released)
    return released


@shared_task(name="bookings.auto_refund_due_deposits")
def auto_refund_due_deposits() -> int:
    """
    Refund charged deposits in full once the rental ended and no issue was raised.

    Bookings under an active admin payout hold are left alone; the hold is
    the signal that someone is looking into the rental. Returns the number
    of deposits refunded.
    """
    now = timezone.now()
    due_ids = list(
        Booking.objects.filter(
            deposit_status=Booking.DepositStatus.CHARGED,
            payout_processed=False,
            end_at__lte=now - payout_delay(),
        )
        .filter(Q(payout_hold_until__isnull=True) | Q(payout_hold_until__lte=now))
        .order_by("end_at", "id")
        .values_list("id", flat=True)
    )

    refunded = 0
    for booking_id in due_ids:
        try:
            settle_deposit(
                booking_id,
                actor=Actor.system(),
                policy="full",
                notes=AUTO_REFUND_NOTE,
            )
        except StripeConfigurationError:
            logger.error("bookings: processor not configured; auto-refund stopped")
            break
        except (BookingPaymentError, StripePaymentError, StripeTransientError):
            logger.warning(
                "bookings: deposit auto-refund failed",
                exc_info=True,
                extra={"booking_id": booking_id},
            )
            continue
        refunded += 1
    return refunded
