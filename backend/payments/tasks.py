"""Celery tasks for host payouts."""

from __future__ import annotations

import logging

from celery import shared_task
from django.utils import timezone

from bookings.domain import Actor
from bookings.exceptions import BookingPaymentError

from .payouts import due_payout_queryset, issue_host_payout
from .stripe_api import StripePaymentError, StripeTransientError

logger = logging.getLogger(__name__)


@shared_task(name="payments.process_due_host_payouts")
def process_due_host_payouts() -> dict[str, int]:
    """
    Pay hosts for rentals that ended at least BOOKING_PAYOUT_DELAY_HOURS ago.

    Bookings under an admin payout hold or with an unsettled deposit are not
    selected. Per-booking failures are logged and left for the next run.
    """
    now = timezone.now()
    counts = {"paid": 0, "failed": 0}
    for booking_id in list(due_payout_queryset(now).values_list("id", flat=True)):
        try:
            issue_host_payout(booking_id, actor=Actor.system(), now=now)
        except (BookingPaymentError, StripePaymentError, StripeTransientError):
            counts["failed"] += 1
            logger.warning(
                "payments: host payout failed",
                exc_info=True,
                extra={"booking_id": booking_id},
            )
            continue
        counts["paid"] += 1
    if counts["paid"] or counts["failed"]:
        logger.info("payments: host payout run finished", extra=counts)
    return counts
