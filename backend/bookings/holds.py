"""Buyer-side authorization holds: issue, capture, release and expiry."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.settings_resolver import get_non_negative_int
from identity.onboarding import is_payout_destination_configured
from notifications.models import OutboxEvent
from notifications.outbox import emit_event
from payments import stripe_api
from payments.ledger import log_transaction
from payments.models import Transaction

from .domain import (
    Actor,
    assert_can_capture_hold,
    assert_can_issue_hold,
    assert_can_release_hold,
    transition_deposit,
    transition_hold,
)
from .exceptions import (
    BookingPaymentError,
    CannotCaptureReleasedHold,
    CannotReleaseCapturedHold,
    HoldExpired,
    HostPayoutNotConfigured,
    InvalidHoldTransition,
    PaymentMethodRequired,
)
from .models import Booking

logger = logging.getLogger(__name__)

PROCESSOR_MAX_HOLD_DAYS = 7
DEFAULT_DECLINE_REASON = "Host declined the booking request"
EXPIRED_REASON = "expired"

HoldStatus = Booking.HoldStatus


@dataclass(frozen=True)
class HoldResult:
    hold_ref: str
    expires_at: datetime | None
    hold_status: str


@dataclass(frozen=True)
class ReleaseResult:
    released: bool
    already_released: bool = False


def hold_duration() -> timedelta:
    """Configured hold lifetime, never longer than the processor's authorization window."""
    days = get_non_negative_int("BOOKING_HOLD_EXPIRY_DAYS", settings.BOOKING_HOLD_EXPIRY_DAYS)
    return timedelta(days=min(max(days, 1), PROCESSOR_MAX_HOLD_DAYS))


def _load(booking_id: int) -> Booking:
    return Booking.objects.select_related("listing", "host", "shopper").get(pk=booking_id)


def _booking_payload(booking: Booking, **extra) -> dict:
    payload = {
        "listing_title": booking.listing.title,
        "customer_total_cents": booking.customer_total_cents,
        "host_payout_cents": booking.host_payout_cents,
    }
    if booking.deposit_amount_cents:
        payload["deposit_cents"] = booking.deposit_amount_cents
    payload.update(extra)
    return payload


def _charge_deposit(booking: Booking, charge_ref: str) -> None:
    if booking.has_deposit and booking.deposit_status == Booking.DepositStatus.NONE:
        transition_deposit(booking, Booking.DepositStatus.CHARGED, deposit_charge_id=charge_ref)


def issue_hold(booking_id: int, *, actor: Actor) -> HoldResult:
    """
    Open the authorization hold for a new booking request.

    Calling this again for a booking that already has a processor reference
    returns the existing hold without contacting the processor.
    """
    booking = _load(booking_id)
    assert_can_issue_hold(actor, booking)

    if booking.payment_intent_id:
        return HoldResult(booking.payment_intent_id, booking.hold_expires_at, booking.hold_status)

    if not is_payout_destination_configured(booking.host):
        raise HostPayoutNotConfigured()
    if booking.hold_status != HoldStatus.NONE:
        raise InvalidHoldTransition(booking.hold_status, HoldStatus.PENDING)
    if not booking.payment_method_ref:
        raise PaymentMethodRequired()

    instant = booking.listing.is_instant_book
    capture_method = (
        Booking.CaptureMethod.AUTOMATIC if instant else Booking.CaptureMethod.MANUAL
    )
    handle = stripe_api.create_hold(
        booking,
        amount_cents=booking.customer_total_cents,
        payment_method_ref=booking.payment_method_ref,
        capture_method=capture_method,
        customer_id=booking.shopper.stripe_customer_id or None,
    )

    now = timezone.now()
    captured = instant and handle.status == "succeeded"
    target = HoldStatus.CAPTURED if captured else HoldStatus.PENDING
    fields = {
        "payment_intent_id": handle.id,
        "capture_method": capture_method,
        "hold_expires_at": now + hold_duration(),
        "payment_status": (
            Booking.PaymentStatus.PAID if captured else Booking.PaymentStatus.AUTHORIZED
        ),
    }
    if captured:
        fields["hold_captured_at"] = now

    with transaction.atomic():
        moved = transition_hold(booking, target, **fields)
        if not moved:
            # A concurrent retry recorded the hold first; the idempotency key
            # guarantees it is the same processor object.
            logger.info(
                "bookings: hold already recorded by a concurrent request",
                extra={"booking_id": booking.id, "payment_intent_id": handle.id},
            )
            return HoldResult(
                booking.payment_intent_id, booking.hold_expires_at, booking.hold_status
            )

        if captured:
            _charge_deposit(booking, handle.id)
        log_transaction(
            user=booking.shopper,
            booking=booking,
            kind=(
                Transaction.Kind.BOOKING_CHARGE if captured else Transaction.Kind.HOLD_AUTHORIZED
            ),
            amount_cents=booking.customer_total_cents,
            stripe_id=handle.id,
        )
        emit_event(
            OutboxEvent.Type.BOOKING_REQUESTED,
            recipient=booking.host,
            booking=booking,
            payload=_booking_payload(
                booking,
                shopper_name=booking.shopper.display_name,
                hold_expires_at=booking.hold_expires_at.isoformat(),
            ),
        )
        if captured:
            emit_event(
                OutboxEvent.Type.BOOKING_CONFIRMED,
                recipient=booking.shopper,
                booking=booking,
                payload=_booking_payload(booking),
            )

    return HoldResult(handle.id, booking.hold_expires_at, booking.hold_status)


def capture_hold(booking_id: int, *, actor: Actor, now: datetime | None = None) -> Booking:
    """Capture a pending hold when the host approves (or the processor reports a capture)."""
    now = now or timezone.now()
    booking = _load(booking_id)
    assert_can_capture_hold(actor, booking)

    if booking.hold_status == HoldStatus.CAPTURED:
        return booking
    if booking.hold_status == HoldStatus.RELEASED:
        raise CannotCaptureReleasedHold()
    if booking.hold_status != HoldStatus.PENDING:
        raise InvalidHoldTransition(booking.hold_status, HoldStatus.CAPTURED)
    if actor.role != "system" and booking.hold_expires_at and booking.hold_expires_at <= now:
        raise HoldExpired()

    stripe_api.capture_hold(booking)

    with transaction.atomic():
        moved = transition_hold(
            booking,
            HoldStatus.CAPTURED,
            payment_status=Booking.PaymentStatus.PAID,
            hold_captured_at=now,
        )
        if not moved:
            if booking.hold_status == HoldStatus.CAPTURED:
                return booking
            logger.error(
                "bookings: capture raced with release",
                extra={"booking_id": booking.id, "hold_status": booking.hold_status},
            )
            raise CannotCaptureReleasedHold()

        _charge_deposit(booking, booking.payment_intent_id)
        log_transaction(
            user=booking.shopper,
            booking=booking,
            kind=Transaction.Kind.BOOKING_CHARGE,
            amount_cents=booking.customer_total_cents,
            stripe_id=booking.payment_intent_id,
        )
        emit_event(
            OutboxEvent.Type.BOOKING_CONFIRMED,
            recipient=booking.shopper,
            booking=booking,
            payload=_booking_payload(booking),
        )
    return booking


def release_hold(booking_id: int, *, actor: Actor, reason: str | None = None) -> ReleaseResult:
    """
    Cancel an uncaptured hold and tell the shopper why.

    Releasing twice is a no-op success; releasing a captured hold raises
    ``CannotReleaseCapturedHold``.
    """
    booking = _load(booking_id)
    assert_can_release_hold(actor, booking)
    release_reason = (reason or "").strip() or DEFAULT_DECLINE_REASON

    if booking.hold_status == HoldStatus.RELEASED:
        return ReleaseResult(released=True, already_released=True)
    if booking.hold_status == HoldStatus.CAPTURED:
        raise CannotReleaseCapturedHold()
    if booking.hold_status == HoldStatus.NONE or not booking.payment_intent_id:
        logger.info(
            "bookings: release requested but no hold was issued",
            extra={"booking_id": booking.id},
        )
        return ReleaseResult(released=False)

    processor_status = stripe_api.cancel_hold(booking)
    if processor_status == "succeeded":
        raise CannotReleaseCapturedHold()

    with transaction.atomic():
        moved = transition_hold(
            booking,
            HoldStatus.RELEASED,
            payment_status=Booking.PaymentStatus.RELEASED,
            hold_released_at=timezone.now(),
            hold_release_reason=release_reason,
        )
        if not moved:
            if booking.hold_status == HoldStatus.RELEASED:
                return ReleaseResult(released=True, already_released=True)
            raise CannotReleaseCapturedHold()

        log_transaction(
            user=booking.shopper,
            booking=booking,
            kind=Transaction.Kind.HOLD_RELEASED,
            amount_cents=booking.customer_total_cents,
            stripe_id=booking.payment_intent_id,
        )
        emit_event(
            OutboxEvent.Type.HOLD_RELEASED,
            recipient=booking.shopper,
            booking=booking,
            payload=_booking_payload(booking, reason=release_reason, released_by=actor.role),
        )
    return ReleaseResult(released=True)


def expire_stale_holds(now: datetime | None = None) -> int:
    """Release every pending hold whose expiry has passed; returns how many were released."""
    now = now or timezone.now()
    stale_ids = list(
        Booking.objects.filter(
            hold_status=HoldStatus.PENDING,
            hold_expires_at__lt=now,
            payout_processed=False,
        )
        .order_by("hold_expires_at")
        .values_list("id", flat=True)
    )
    released = 0
    for booking_id in stale_ids:
        try:
            result = release_hold(booking_id, actor=Actor.system(), reason=EXPIRED_REASON)
        except (BookingPaymentError, stripe_api.StripePaymentError, stripe_api.StripeTransientError):
            logger.warning(
                "bookings: failed to release expired hold",
                exc_info=True,
                extra={"booking_id": booking_id},
            )
            continue
        if result.released and not result.already_released:
            released += 1
    return released
