"""Host payout issuance after a rental has completed."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from bookings.domain import Actor, assert_can_issue_payout
from bookings.exceptions import (
    HostPayoutNotConfigured,
    PayoutAlreadyProcessed,
    PayoutInProgress,
    PayoutNotReady,
    PayoutOnHold,
)
from bookings.models import Booking
from core.settings_resolver import get_non_negative_int
from identity.onboarding import get_payout_destination, is_payout_destination_configured
from notifications.models import OutboxEvent
from notifications.outbox import emit_event

from . import stripe_api
from .ledger import log_transaction
from .models import Transaction

logger = logging.getLogger(__name__)

# A payout claim older than this belongs to a worker that died mid-transfer.
PAYOUT_CLAIM_TTL = timedelta(minutes=15)


@dataclass(frozen=True)
class PayoutResult:
    transfer_id: str
    amount_cents: int


def payout_delay() -> timedelta:
    hours = get_non_negative_int("BOOKING_PAYOUT_DELAY_HOURS", settings.BOOKING_PAYOUT_DELAY_HOURS)
    return timedelta(hours=hours)


def _assert_ready(booking: Booking, now: datetime) -> None:
    if booking.payout_processed:
        raise PayoutAlreadyProcessed("The payout for this booking was already processed.")
    if booking.hold_status != Booking.HoldStatus.CAPTURED:
        raise PayoutNotReady("The booking payment has not been captured.")
    if booking.end_at is None or booking.end_at > now:
        raise PayoutNotReady("The rental has not ended yet.")
    if booking.deposit_status == Booking.DepositStatus.CHARGED:
        raise PayoutNotReady("The security deposit must be settled before the host is paid.")
    if booking.payout_hold_active(now):
        raise PayoutOnHold(booking.payout_hold_until, booking.payout_hold_reason)
    if booking.host_payout_cents <= 0:
        raise PayoutNotReady("There is nothing to pay out for this booking.")


def payout_claim_free(now: datetime) -> Q:
    """Rows with no transfer in flight, counting abandoned claims as free."""
    return Q(payout_started_at__isnull=True) | Q(payout_started_at__lt=now - PAYOUT_CLAIM_TTL)


def _claim_payout(booking: Booking, now: datetime, claimed_at: datetime) -> bool:
    return bool(
        Booking.objects.filter(
            pk=booking.pk,
            payout_processed=False,
            hold_status=Booking.HoldStatus.CAPTURED,
        )
        .exclude(deposit_status=Booking.DepositStatus.CHARGED)
        .filter(Q(payout_hold_until__isnull=True) | Q(payout_hold_until__lte=now))
        .filter(payout_claim_free(claimed_at))
        .update(payout_started_at=claimed_at, updated_at=claimed_at)
    )


def issue_host_payout(
    booking_id: int, *, actor: Actor, now: datetime | None = None
) -> PayoutResult:
    """
    Transfer the host's net amount and latch ``payout_processed``.

    The admin payout hold is consulted here and never modified. The row is
    claimed before the transfer so no hold can be placed while money is in
    flight; once the transfer returns the latch is always set.
    """
    now = now or timezone.now()
    assert_can_issue_payout(actor)
    booking = Booking.objects.select_related("host", "listing").get(pk=booking_id)
    _assert_ready(booking, now)

    if not is_payout_destination_configured(booking.host):
        raise HostPayoutNotConfigured(
            "The host's payout account is not fully set up, so the payout cannot be sent."
        )
    destination = get_payout_destination(booking.host)

    claimed_at = timezone.now()
    if not _claim_payout(booking, now, claimed_at):
        booking.refresh_from_db()
        _assert_ready(booking, now)
        raise PayoutInProgress()

    try:
        transfer_id = stripe_api.create_transfer(
            destination=destination,
            amount_cents=booking.host_payout_cents,
            metadata={
                **stripe_api.booking_metadata(booking),
                "kind": "host_payout",
                "payment_intent_id": booking.payment_intent_id,
                "platform_fee_cents": booking.platform_fee_cents,
                "released_by": actor.label,
            },
            description=f"Host payout for booking #{booking.id}",
            transfer_group=f"booking:{booking.id}",
            idempotency_key=f"booking:{booking.id}:{stripe_api.IDEMPOTENCY_VERSION}:host_payout",
        )
    except Exception:
        Booking.objects.filter(pk=booking.pk, payout_started_at=claimed_at).update(
            payout_started_at=None
        )
        raise

    # The money has moved: the latch is set whatever happened to the row meanwhile.
    with transaction.atomic():
        updated = Booking.objects.filter(pk=booking.pk, payout_processed=False).update(
            payout_processed=True,
            payout_processed_at=now,
            payout_transfer_id=transfer_id,
            payout_started_at=None,
            updated_at=now,
        )
        booking.refresh_from_db()
        if not updated:
            logger.error(
                "payments: payout latched by another worker",
                extra={"booking_id": booking.id, "transfer_id": transfer_id},
            )
            raise PayoutAlreadyProcessed("The payout for this booking was already processed.")
        if booking.payout_hold_active(now):
            logger.warning(
                "payments: payout sent while an admin hold was placed",
                extra={"booking_id": booking.id, "transfer_id": transfer_id},
            )

        log_transaction(
            user=booking.host,
            booking=booking,
            kind=Transaction.Kind.HOST_PAYOUT,
            amount_cents=booking.host_payout_cents,
            stripe_id=transfer_id,
        )
        if booking.platform_fee_cents:
            log_transaction(
                user=booking.host,
                booking=booking,
                kind=Transaction.Kind.PLATFORM_FEE,
                amount_cents=booking.platform_fee_cents,
                stripe_id=booking.payment_intent_id or None,
            )
        emit_event(
            OutboxEvent.Type.PAYOUT_SENT,
            recipient=booking.host,
            booking=booking,
            payload={"amount_cents": booking.host_payout_cents, "transfer_id": transfer_id},
        )

    booking.refresh_from_db()
    return PayoutResult(transfer_id=transfer_id, amount_cents=booking.host_payout_cents)


def due_payout_queryset(now: datetime | None = None):
    """Captured, settled-deposit bookings whose payout delay has elapsed and that are not held."""
    now = now or timezone.now()
    return (
        Booking.objects.filter(
            hold_status=Booking.HoldStatus.CAPTURED,
            payout_processed=False,
            end_at__lte=now - payout_delay(),
        )
        .exclude(deposit_status=Booking.DepositStatus.CHARGED)
        .filter(Q(payout_hold_until__isnull=True) | Q(payout_hold_until__lte=now))
        .filter(payout_claim_free(now))
        .order_by("end_at", "id")
    )
