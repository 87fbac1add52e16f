from datetime import timedelta

import pytest
import stripe
from django.utils import timezone

from bookings import tasks
from bookings.deposits import AUTO_REFUND_NOTE, compute_refund_cents, settle_deposit
from bookings.domain import Actor
from bookings.exceptions import (
    ActionNotPermitted,
    BookingAlreadySettled,
    DepositAlreadyRefunded,
    InvalidSettlementPolicy,
    NoDepositToRefund,
)
from bookings.models import Booking
from listings.models import Listing
from notifications.models import OutboxEvent
from payments.models import Transaction
from payments.stripe_api import StripeTransientError

pytestmark = pytest.mark.django_db


def _host(booking):
    return Actor(role="host", user=booking.host)


@pytest.mark.parametrize(
    "policy,deduction,expected",
    [
        ("full", 0, 25000),
        ("partial", 5000, 20000),
        ("partial", 30000, 0),
        ("forfeit", 0, 0),
    ],
)
def test_compute_refund_cents(policy, deduction, expected):
    assert compute_refund_cents(25000, policy, deduction) == expected


def test_compute_refund_rejects_unknown_policy():
    with pytest.raises(InvalidSettlementPolicy):
        compute_refund_cents(25000, "half")


def test_full_refund(completed_booking, fake_stripe):
    settlement = settle_deposit(completed_booking.id, actor=_host(completed_booking), policy="full")

    assert settlement.refund_cents == 25000
    assert settlement.deduction_cents == 0
    assert settlement.final_status == Booking.DepositStatus.REFUNDED

    completed_booking.refresh_from_db()
    assert completed_booking.deposit_status == Booking.DepositStatus.REFUNDED
    assert completed_booking.deposit_refund_cents == 25000
    assert completed_booking.deposit_refund_id == settlement.refund_id
    assert completed_booking.deposit_refund_notes == "Full deposit refunded: $250.00"
    assert completed_booking.deposit_refunded_at is not None

    refund_call = fake_stripe.calls["refund_create"][0]
    assert refund_call["amount"] == 25000
    assert refund_call["payment_intent"] == "pi_completed"
    assert Transaction.objects.filter(
        booking=completed_booking, kind=Transaction.Kind.DEPOSIT_REFUND, amount_cents=25000
    ).exists()
    assert not Transaction.objects.filter(
        booking=completed_booking, kind=Transaction.Kind.DEPOSIT_FORFEIT
    ).exists()


def test_partial_refund_records_deduction_and_notes(completed_booking, fake_stripe):
    settlement = settle_deposit(
        completed_booking.id,
        actor=_host(completed_booking),
        policy="partial",
        deduction_cents=7550,
        notes="Cracked fryer basket",
    )

    assert settlement.refund_cents == 17450
    assert settlement.deduction_cents == 7550
    completed_booking.refresh_from_db()
    assert completed_booking.deposit_status == Booking.DepositStatus.REFUNDED
    assert completed_booking.deposit_refund_notes == (
        "Partial refund: $174.50. Deducted: $75.50. Cracked fryer basket"
    )
    assert Transaction.objects.get(
        booking=completed_booking, kind=Transaction.Kind.DEPOSIT_FORFEIT
    ).amount_cents == 7550


def test_partial_deduction_above_deposit_forfeits(completed_booking, fake_stripe):
    settlement = settle_deposit(
        completed_booking.id,
        actor=_host(completed_booking),
        policy="partial",
        deduction_cents=40000,
    )

    assert settlement.refund_cents == 0
    assert settlement.deduction_cents == 25000
    assert settlement.final_status == Booking.DepositStatus.FORFEITED
    assert fake_stripe.calls["refund_create"] == []


def test_forfeit_skips_processor(completed_booking, fake_stripe):
    settlement = settle_deposit(
        completed_booking.id, actor=_host(completed_booking), policy="forfeit"
    )

    assert settlement.final_status == Booking.DepositStatus.FORFEITED
    assert settlement.refund_id == ""
    completed_booking.refresh_from_db()
    assert completed_booking.deposit_status == Booking.DepositStatus.FORFEITED
    assert completed_booking.deposit_refund_cents == 0
    assert completed_booking.deposit_refund_notes == "Deposit forfeited. Deducted: $250.00"
    assert fake_stripe.calls["refund_create"] == []


def test_partial_requires_deduction(completed_booking, fake_stripe):
    with pytest.raises(InvalidSettlementPolicy):
        settle_deposit(completed_booking.id, actor=_host(completed_booking), policy="partial")


def test_settlement_emits_notification(completed_booking, fake_stripe):
    settle_deposit(completed_booking.id, actor=_host(completed_booking), policy="full")

    event = OutboxEvent.objects.get(booking=completed_booking)
    assert event.event_type == OutboxEvent.Type.DEPOSIT_SETTLED
    assert event.recipient_id == completed_booking.shopper_id
    assert event.payload["refund_cents"] == 25000
    assert event.payload["settled_by"] == "host"


def test_booking_without_deposit(booking_factory, host_user, fake_stripe):
    listing = Listing.objects.create(host=host_user, title="Pizza Oven", deposit_amount_cents=None)
    booking = booking_factory(
        listing_override=listing,
        hold_status=Booking.HoldStatus.CAPTURED,
        payment_status=Booking.PaymentStatus.PAID,
    )

    with pytest.raises(NoDepositToRefund):
        settle_deposit(booking.id, actor=_host(booking), policy="full")


def test_uncharged_deposit_cannot_be_refunded(pending_booking, fake_stripe):
    with pytest.raises(DepositAlreadyRefunded) as excinfo:
        settle_deposit(pending_booking.id, actor=_host(pending_booking), policy="full")

    assert "status none" in str(excinfo.value)


def test_second_settlement_is_rejected(completed_booking, fake_stripe):
    settle_deposit(completed_booking.id, actor=_host(completed_booking), policy="full")

    with pytest.raises(DepositAlreadyRefunded):
        settle_deposit(completed_booking.id, actor=_host(completed_booking), policy="forfeit")

    assert len(fake_stripe.calls["refund_create"]) == 1


def test_settlement_after_payout_is_rejected(completed_booking, fake_stripe):
    Booking.objects.filter(pk=completed_booking.pk).update(payout_processed=True)

    with pytest.raises(BookingAlreadySettled):
        settle_deposit(completed_booking.id, actor=_host(completed_booking), policy="full")


def test_shopper_cannot_settle(completed_booking, fake_stripe):
    with pytest.raises(ActionNotPermitted):
        settle_deposit(
            completed_booking.id,
            actor=Actor(role="shopper", user=completed_booking.shopper),
            policy="full",
        )


def test_processor_failure_leaves_deposit_charged(completed_booking, fake_stripe):
    fake_stripe.fail_with["refund_create"] = stripe.error.APIConnectionError("timeout")

    with pytest.raises(StripeTransientError):
        settle_deposit(completed_booking.id, actor=_host(completed_booking), policy="full")

    completed_booking.refresh_from_db()
    assert completed_booking.deposit_status == Booking.DepositStatus.CHARGED
    assert completed_booking.deposit_refund_cents is None
    assert not Transaction.objects.filter(booking=completed_booking).exists()
    assert not OutboxEvent.objects.filter(booking=completed_booking).exists()
    assert completed_booking.deposit_settlement_started_at is None

    fake_stripe.fail_with.clear()
    settle_deposit(completed_booking.id, actor=_host(completed_booking), policy="full")
    completed_booking.refresh_from_db()
    assert completed_booking.deposit_status == Booking.DepositStatus.REFUNDED


def test_overlapping_settlement_is_rejected_before_refunding(
    completed_booking, admin_user, monkeypatch, fake_stripe
):
    overlapping = []

    def _create_refund(**kwargs):
        with pytest.raises(DepositAlreadyRefunded) as excinfo:
            settle_deposit(
                completed_booking.id,
                actor=Actor(role="admin", user=admin_user),
                policy="partial",
                deduction_cents=5000,
            )
        overlapping.append(str(excinfo.value))
        return fake_stripe.create_refund(**kwargs)

    monkeypatch.setattr(stripe.Refund, "create", _create_refund)

    settle_deposit(completed_booking.id, actor=_host(completed_booking), policy="full")

    assert overlapping == ["A settlement for this deposit is already in progress."]
    assert [call["amount"] for call in fake_stripe.calls["refund_create"]] == [25000]
    completed_booking.refresh_from_db()
    assert completed_booking.deposit_refund_cents == 25000
    assert completed_booking.deposit_settlement_started_at is None
    assert Transaction.objects.filter(
        booking=completed_booking, kind=Transaction.Kind.DEPOSIT_REFUND
    ).count() == 1


def test_abandoned_settlement_claim_expires(completed_booking, fake_stripe):
    Booking.objects.filter(pk=completed_booking.pk).update(
        deposit_settlement_started_at=timezone.now() - timedelta(minutes=5)
    )
    with pytest.raises(DepositAlreadyRefunded):
        settle_deposit(completed_booking.id, actor=_host(completed_booking), policy="full")
    assert fake_stripe.calls["refund_create"] == []

    Booking.objects.filter(pk=completed_booking.pk).update(
        deposit_settlement_started_at=timezone.now() - timedelta(hours=1)
    )
    settle_deposit(completed_booking.id, actor=_host(completed_booking), policy="full")

    completed_booking.refresh_from_db()
    assert completed_booking.deposit_status == Booking.DepositStatus.REFUNDED


def test_auto_refund_settles_due_deposits(completed_booking, fake_stripe):
    assert tasks.auto_refund_due_deposits() == 1

    completed_booking.refresh_from_db()
    assert completed_booking.deposit_status == Booking.DepositStatus.REFUNDED
    assert completed_booking.deposit_refund_notes == (
        f"Full deposit refunded: $250.00. {AUTO_REFUND_NOTE}"
    )
    event = OutboxEvent.objects.get(booking=completed_booking)
    assert event.payload["settled_by"] == "system"


def test_auto_refund_waits_for_payout_delay(completed_booking, fake_stripe):
    Booking.objects.filter(pk=completed_booking.pk).update(
        end_at=timezone.now() - timedelta(hours=2)
    )

    assert tasks.auto_refund_due_deposits() == 0
    assert fake_stripe.calls["refund_create"] == []


def test_auto_refund_skips_bookings_under_payout_hold(completed_booking, fake_stripe):
    Booking.objects.filter(pk=completed_booking.pk).update(
        payout_hold_until=timezone.now() + timedelta(days=3),
        payout_hold_reason="Damage claim under review",
    )

    assert tasks.auto_refund_due_deposits() == 0
    completed_booking.refresh_from_db()
    assert completed_booking.deposit_status == Booking.DepositStatus.CHARGED


def test_auto_refund_continues_past_failures(completed_booking, booking_factory, fake_stripe):
    now = timezone.now()
    fake_stripe.add_intent("pi_other", "succeeded")
    other = booking_factory(
        start_at=now - timedelta(days=6),
        end_at=now - timedelta(days=5),
        payment_intent_id="pi_other",
        hold_status=Booking.HoldStatus.CAPTURED,
        payment_status=Booking.PaymentStatus.PAID,
        deposit_status=Booking.DepositStatus.CHARGED,
        deposit_charge_id="",
    )

    assert tasks.auto_refund_due_deposits() == 1

    other.refresh_from_db()
    completed_booking.refresh_from_db()
    assert other.deposit_status == Booking.DepositStatus.CHARGED
    assert completed_booking.deposit_status == Booking.DepositStatus.REFUNDED
