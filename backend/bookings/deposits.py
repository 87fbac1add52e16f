"""Security deposit settlement at the end of a rental."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from core.pricing import format_cents
from notifications.models import OutboxEvent
from notifications.outbox import emit_event
from payments import stripe_api
from payments.ledger import log_transaction
from payments.models import Transaction

from .domain import Actor, assert_can_settle_deposit, transition_deposit
from .exceptions import (
    BookingAlreadySettled,
    DepositAlreadyRefunded,
    DepositChargeMissing,
    InvalidSettlementPolicy,
    NoDepositToRefund,
)
from .models import Booking

logger = logging.getLogger(__name__)

SettlementPolicy = Literal["full", "partial", "forfeit"]
SETTLEMENT_POLICIES = ("full", "partial", "forfeit")
AUTO_REFUND_NOTE = "Auto-refunded 24 hours after rental completion - no issues reported"
# A claim older than this belongs to a worker that died mid-refund.
SETTLEMENT_CLAIM_TTL = timedelta(minutes=15)

DepositStatus = Booking.DepositStatus


@dataclass(frozen=True)
class DepositSettlement:
    refund_cents: int
    deduction_cents: int
    final_status: str
    refund_id: str = ""


def compute_refund_cents(deposit_cents: int, policy: str, deduction_cents: int = 0) -> int:
    if policy == "full":
        return deposit_cents
    if policy == "partial":
        return max(0, deposit_cents - deduction_cents)
    if policy == "forfeit":
        return 0
    raise InvalidSettlementPolicy()


def settlement_note(policy: str, *, refund_cents: int, deduction_cents: int, notes: str = "") -> str:
    if policy == "forfeit":
        summary = f"Deposit forfeited. Deducted: {format_cents(deduction_cents)}"
    elif policy == "partial":
        summary = (
            f"Partial refund: {format_cents(refund_cents)}. "
            f"Deducted: {format_cents(deduction_cents)}"
        )
    else:
        summary = f"Full deposit refunded: {format_cents(refund_cents)}"
    extra = (notes or "").strip()
    return f"{summary}. {extra}" if extra else summary


def _validate_deduction(policy: str, deduction_cents) -> int:
    if policy not in SETTLEMENT_POLICIES:
        raise InvalidSettlementPolicy()
    if policy != "partial":
        return 0
    if type(deduction_cents) is not int or deduction_cents < 0:
        raise InvalidSettlementPolicy(
            "A partial refund needs a deduction of zero or more whole cents."
        )
    return deduction_cents


def _claim_settlement(booking: Booking, now: datetime) -> bool:
    """Mark the deposit as settling; only one writer may hold the claim."""
    stale_before = now - SETTLEMENT_CLAIM_TTL
    return bool(
        Booking.objects.filter(
            pk=booking.pk,
            deposit_status=DepositStatus.CHARGED,
            payout_processed=False,
        )
        .filter(
            Q(deposit_settlement_started_at__isnull=True)
            | Q(deposit_settlement_started_at__lt=stale_before)
        )
        .update(deposit_settlement_started_at=now, updated_at=now)
    )


def _release_settlement_claim(booking: Booking, claimed_at: datetime) -> None:
    Booking.objects.filter(pk=booking.pk, deposit_settlement_started_at=claimed_at).update(
        deposit_settlement_started_at=None
    )


def settle_deposit(
    booking_id: int,
    *,
    actor: Actor,
    policy: SettlementPolicy,
    deduction_cents: int | None = None,
    notes: str | None = None,
) -> DepositSettlement:
    """
    Refund, partially refund or forfeit a charged deposit.

    The deposit is claimed before the processor refund, so an overlapping
    settlement is rejected before any money moves. If the refund fails the
    claim is dropped and the processor's message propagates. Notifications
    are emitted only after the new status is committed and can never undo it.
    """
    deduction = _validate_deduction(policy, deduction_cents)

    booking = Booking.objects.select_related("listing", "host", "shopper").get(pk=booking_id)
    assert_can_settle_deposit(actor, booking)

    deposit_cents = booking.deposit_amount_cents or 0
    if deposit_cents <= 0:
        raise NoDepositToRefund()
    if booking.deposit_status != DepositStatus.CHARGED:
        if booking.deposit_status == DepositStatus.NONE:
            raise DepositAlreadyRefunded(
                "Cannot refund deposit with status none - the deposit was never charged."
            )
        raise DepositAlreadyRefunded(
            f"Deposit already settled (status: {booking.deposit_status})."
        )
    if booking.payout_processed:
        raise BookingAlreadySettled()

    refund_cents = compute_refund_cents(deposit_cents, policy, deduction)
    deducted_cents = deposit_cents - refund_cents
    final_status = DepositStatus.REFUNDED if refund_cents > 0 else DepositStatus.FORFEITED
    note = settlement_note(
        policy, refund_cents=refund_cents, deduction_cents=deducted_cents, notes=notes or ""
    )

    if refund_cents > 0 and not booking.deposit_charge_id:
        raise DepositChargeMissing()

    now = timezone.now()
    if not _claim_settlement(booking, now):
        booking.refresh_from_db()
        if booking.payout_processed:
            raise BookingAlreadySettled()
        if booking.deposit_status != DepositStatus.CHARGED:
            raise DepositAlreadyRefunded(
                f"Deposit already settled (status: {booking.deposit_status})."
            )
        raise DepositAlreadyRefunded("A settlement for this deposit is already in progress.")

    refund_id = ""
    if refund_cents > 0:
        try:
            refund_id = stripe_api.refund_charge(
                booking,
                charge_ref=booking.deposit_charge_id,
                amount_cents=refund_cents,
                reason="deposit_refund",
            )
        except Exception:
            _release_settlement_claim(booking, now)
            raise

    with transaction.atomic():
        moved = transition_deposit(
            booking,
            final_status,
            deposit_refund_id=refund_id,
            deposit_refund_cents=refund_cents,
            deposit_refund_notes=note,
            deposit_refunded_at=now,
            deposit_settlement_started_at=None,
        )
        if not moved:
            logger.error(
                "bookings: concurrent deposit settlement detected",
                extra={
                    "booking_id": booking.id,
                    "deposit_status": booking.deposit_status,
                    "refund_id": refund_id,
                },
            )
            raise DepositAlreadyRefunded(
                f"Deposit already settled (status: {booking.deposit_status})."
            )

        if refund_cents > 0:
            log_transaction(
                user=booking.shopper,
                booking=booking,
                kind=Transaction.Kind.DEPOSIT_REFUND,
                amount_cents=refund_cents,
                stripe_id=refund_id,
            )
        if deducted_cents > 0:
            log_transaction(
                user=booking.host,
                booking=booking,
                kind=Transaction.Kind.DEPOSIT_FORFEIT,
                amount_cents=deducted_cents,
                stripe_id=booking.deposit_charge_id or None,
            )

    emit_event(
        OutboxEvent.Type.DEPOSIT_SETTLED,
        recipient=booking.shopper,
        booking=booking,
        payload={
            "listing_title": booking.listing.title,
            "policy": policy,
            "final_status": final_status,
            "deposit_cents": deposit_cents,
            "refund_cents": refund_cents,
            "deduction_cents": deducted_cents,
            "notes": note,
            "settled_by": actor.role,
        },
    )
    return DepositSettlement(
        refund_cents=refund_cents,
        deduction_cents=deducted_cents,
        final_status=final_status,
        refund_id=refund_id,
    )
