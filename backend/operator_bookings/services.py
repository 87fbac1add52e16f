import logging
from datetime import datetime

from django.db import transaction
from django.utils import timezone

from bookings.deposits import DepositSettlement, settle_deposit
from bookings.domain import Actor, assert_is_admin
from bookings.exceptions import InvalidPayoutHold, PayoutAlreadyProcessed, PayoutInProgress
from bookings.models import Booking
from notifications.models import OutboxEvent
from notifications.outbox import emit_event
from operator_bookings.models import BookingEvent
from operator_core.audit import audit
from operator_core.models import OperatorAuditEvent
from payments.payouts import PayoutResult, issue_host_payout, payout_claim_free

logger = logging.getLogger(__name__)

NO_REASON = "No reason provided"


def _record_event(booking: Booking, *, type_value: str, payload: dict, actor) -> None:
    try:
        BookingEvent.objects.create(
            booking=booking,
            actor=actor,
            type=type_value,
            payload=payload,
        )
    except Exception:
        logger.exception(
            "booking_event: failed to record %s", type_value, extra={"booking_id": booking.id}
        )


def _hold_snapshot(booking: Booking) -> dict:
    return {
        "payout_hold_until": (
            booking.payout_hold_until.isoformat() if booking.payout_hold_until else None
        ),
        "payout_hold_reason": booking.payout_hold_reason,
        "payout_processed": booking.payout_processed,
    }


def set_admin_payout_hold(
    booking_id: int,
    *,
    hold_until: datetime,
    reason: str,
    actor: Actor,
    now: datetime | None = None,
    origin: dict | None = None,
) -> Booking:
    """
    Suspend the host payout for a booking until ``hold_until``.

    Setting a new hold replaces any existing one. Fails with
    ``PayoutAlreadyProcessed`` once the payout latch is set, and with
    ``PayoutInProgress`` while the host transfer is in flight.
    """
    assert_is_admin(actor)
    now = now or timezone.now()
    reason_text = (reason or "").strip()
    if not reason_text:
        raise InvalidPayoutHold("A reason is required to hold a payout.")
    if hold_until is None or hold_until <= now:
        raise InvalidPayoutHold("The payout hold must end in the future.")

    booking = Booking.objects.select_related("host", "listing").get(pk=booking_id)
    if booking.payout_processed:
        raise PayoutAlreadyProcessed()
    before = _hold_snapshot(booking)

    with transaction.atomic():
        updated = (
            Booking.objects.filter(pk=booking.pk, payout_processed=False)
            .filter(payout_claim_free(timezone.now()))
            .update(
                payout_hold_until=hold_until,
                payout_hold_reason=reason_text,
                payout_hold_set_by=actor.user,
                payout_hold_set_at=now,
                updated_at=now,
            )
        )
        if not updated:
            booking.refresh_from_db()
            if booking.payout_processed:
                raise PayoutAlreadyProcessed()
            raise PayoutInProgress(
                "The host payout for this booking is being sent and can no longer be held."
            )
        booking.refresh_from_db()

        audit(
            actor=actor.user,
            action="booking.payout_hold.set",
            entity_type=OperatorAuditEvent.EntityType.BOOKING,
            entity_id=booking.id,
            reason=reason_text,
            before=before,
            after=_hold_snapshot(booking),
            **(origin or {}),
        )
        _record_event(
            booking,
            type_value=BookingEvent.Type.PAYOUT_HOLD_SET,
            payload={"hold_until": hold_until.isoformat(), "reason": reason_text},
            actor=actor.user,
        )
        emit_event(
            OutboxEvent.Type.PAYOUT_HOLD_SET,
            recipient=booking.host,
            booking=booking,
            payload={
                "listing_title": booking.listing.title,
                "hold_until": hold_until.isoformat(),
                "reason": reason_text,
                "host_payout_cents": booking.host_payout_cents,
            },
        )

    logger.info(
        "operator_bookings: payout hold set",
        extra={"booking_id": booking.id, "actor_id": actor.user_id},
    )
    return booking


def clear_admin_payout_hold(
    booking_id: int,
    *,
    reason: str | None,
    actor: Actor,
    now: datetime | None = None,
    origin: dict | None = None,
) -> Booking:
    """Lift the payout hold. Clearing a booking with no hold is a no-op success."""
    assert_is_admin(actor)
    now = now or timezone.now()
    reason_text = (reason or "").strip() or NO_REASON

    booking = Booking.objects.select_related("host", "listing").get(pk=booking_id)
    if booking.payout_processed:
        raise PayoutAlreadyProcessed()
    if booking.payout_hold_until is None and not booking.payout_hold_reason:
        return booking
    before = _hold_snapshot(booking)

    with transaction.atomic():
        updated = Booking.objects.filter(pk=booking.pk, payout_processed=False).update(
            payout_hold_until=None,
            payout_hold_reason=None,
            payout_hold_cleared_by=actor.user,
            payout_hold_cleared_at=now,
            payout_hold_clear_reason=reason_text,
            updated_at=now,
        )
        if not updated:
            raise PayoutAlreadyProcessed()
        booking.refresh_from_db()

        audit(
            actor=actor.user,
            action="booking.payout_hold.clear",
            entity_type=OperatorAuditEvent.EntityType.BOOKING,
            entity_id=booking.id,
            reason=reason_text,
            before=before,
            after=_hold_snapshot(booking),
            **(origin or {}),
        )
        _record_event(
            booking,
            type_value=BookingEvent.Type.PAYOUT_HOLD_CLEARED,
            payload={"reason": reason_text},
            actor=actor.user,
        )
        emit_event(
            OutboxEvent.Type.PAYOUT_HOLD_CLEARED,
            recipient=booking.host,
            booking=booking,
            payload={
                "listing_title": booking.listing.title,
                "reason": reason_text,
                "host_payout_cents": booking.host_payout_cents,
            },
        )

    logger.info(
        "operator_bookings: payout hold cleared",
        extra={"booking_id": booking.id, "actor_id": actor.user_id},
    )
    return booking


def release_payout_now(
    booking_id: int,
    *,
    actor: Actor,
    reason: str,
    clear_hold: bool = False,
    origin: dict | None = None,
) -> PayoutResult:
    """Pay the host immediately, optionally lifting an active payout hold first."""
    assert_is_admin(actor)
    if clear_hold:
        clear_admin_payout_hold(booking_id, reason=reason, actor=actor, origin=origin)

    result = issue_host_payout(booking_id, actor=actor)
    booking = Booking.objects.get(pk=booking_id)
    with transaction.atomic():
        audit(
            actor=actor.user,
            action="booking.payout.release",
            entity_type=OperatorAuditEvent.EntityType.BOOKING,
            entity_id=booking.id,
            reason=(reason or "").strip() or NO_REASON,
            after={"transfer_id": result.transfer_id, "amount_cents": result.amount_cents},
            **(origin or {}),
        )
        _record_event(
            booking,
            type_value=BookingEvent.Type.PAYOUT_RELEASED,
            payload={"transfer_id": result.transfer_id, "amount_cents": result.amount_cents},
            actor=actor.user,
        )
    return result


def admin_settle_deposit(
    booking_id: int,
    *,
    actor: Actor,
    policy: str,
    deduction_cents: int | None = None,
    notes: str | None = None,
    reason: str,
    origin: dict | None = None,
) -> DepositSettlement:
    """Operator-initiated deposit settlement with an audit trail."""
    assert_is_admin(actor)
    before = Booking.objects.values("deposit_status", "deposit_amount_cents").get(pk=booking_id)
    settlement = settle_deposit(
        booking_id,
        actor=actor,
        policy=policy,
        deduction_cents=deduction_cents,
        notes=notes,
    )
    booking = Booking.objects.get(pk=booking_id)
    with transaction.atomic():
        audit(
            actor=actor.user,
            action="booking.deposit.settle",
            entity_type=OperatorAuditEvent.EntityType.BOOKING,
            entity_id=booking.id,
            reason=(reason or "").strip() or NO_REASON,
            before=before,
            after={
                "deposit_status": settlement.final_status,
                "refund_cents": settlement.refund_cents,
                "deduction_cents": settlement.deduction_cents,
            },
            meta={"policy": policy},
            **(origin or {}),
        )
        _record_event(
            booking,
            type_value=BookingEvent.Type.DEPOSIT_SETTLED,
            payload={
                "policy": policy,
                "refund_cents": settlement.refund_cents,
                "deduction_cents": settlement.deduction_cents,
            },
            actor=actor.user,
        )
    return settlement
