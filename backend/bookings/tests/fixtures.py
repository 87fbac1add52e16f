"""Shared fixtures for booking payment tests."""

from __future__ import annotations

from collections import defaultdict
from datetime import timedelta
from types import SimpleNamespace
from typing import Callable

import pytest
import stripe
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.utils import timezone

from bookings.models import Booking
from bookings.services import create_booking_request
from identity.models import IdentityVerification
from listings.models import Listing
from payments.models import OwnerPayoutAccount

User = get_user_model()


def _create_user(*, username: str, **extra) -> User:
    return User.objects.create_user(
        username=username,
        email=f"{username}@example.com",
        password="testpass",
        **extra,
    )


def connect_payout_account(user: User, suffix: str | None = None) -> OwnerPayoutAccount:
    return OwnerPayoutAccount.objects.create(
        user=user,
        stripe_account_id=f"acct_test_{suffix or user.username}",
        payouts_enabled=True,
        charges_enabled=True,
        is_fully_onboarded=True,
        requirements_due={"currently_due": [], "past_due": [], "disabled_reason": ""},
        last_synced_at=timezone.now(),
    )


def verify_identity(user: User) -> IdentityVerification:
    return IdentityVerification.objects.create(
        user=user,
        session_id=f"vs_test_{user.username}",
        status=IdentityVerification.Status.VERIFIED,
        verified_at=timezone.now(),
    )


class FakeStripe:
    """In-memory stand-in for the Stripe objects the payment engine calls."""

    def __init__(self):
        self.intents: dict[str, SimpleNamespace] = {}
        self.calls: dict[str, list] = defaultdict(list)
        self.fail_with: dict[str, Exception] = {}
        self.create_status: str | None = None
        self._seq = 0

    def _next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}_test_{self._seq}"

    def _maybe_fail(self, op: str) -> None:
        exc = self.fail_with.get(op)
        if exc is not None:
            raise exc

    def _intent(self, intent_id: str) -> SimpleNamespace:
        intent = self.intents.get(intent_id)
        if intent is None:
            raise stripe.error.InvalidRequestError(
                f"No such payment_intent: '{intent_id}'", "id", code="resource_missing"
            )
        return intent

    def add_intent(self, intent_id: str, status: str) -> SimpleNamespace:
        intent = SimpleNamespace(id=intent_id, status=status, metadata={})
        self.intents[intent_id] = intent
        return intent

    def create_intent(self, **kwargs):
        self.calls["intent_create"].append(kwargs)
        self._maybe_fail("intent_create")
        status = self.create_status or (
            "succeeded" if kwargs.get("capture_method") == "automatic" else "requires_capture"
        )
        intent = self.add_intent(self._next_id("pi"), status)
        intent.metadata = kwargs.get("metadata") or {}
        return intent

    def retrieve_intent(self, intent_id, **kwargs):
        self.calls["intent_retrieve"].append(intent_id)
        self._maybe_fail("intent_retrieve")
        return self._intent(intent_id)

    def capture_intent(self, intent_id, **kwargs):
        self.calls["intent_capture"].append({"id": intent_id, **kwargs})
        self._maybe_fail("intent_capture")
        intent = self._intent(intent_id)
        intent.status = "succeeded"
        return intent

    def cancel_intent(self, intent_id, **kwargs):
        self.calls["intent_cancel"].append({"id": intent_id, **kwargs})
        self._maybe_fail("intent_cancel")
        intent = self._intent(intent_id)
        intent.status = "canceled"
        return intent

    def create_refund(self, **kwargs):
        self.calls["refund_create"].append(kwargs)
        self._maybe_fail("refund_create")
        return SimpleNamespace(id=self._next_id("re"), status="succeeded")

    def create_transfer(self, **kwargs):
        self.calls["transfer_create"].append(kwargs)
        self._maybe_fail("transfer_create")
        return SimpleNamespace(id=self._next_id("tr"))


@pytest.fixture
def fake_stripe(monkeypatch) -> FakeStripe:
    fake = FakeStripe()
    monkeypatch.setattr(stripe.PaymentIntent, "create", fake.create_intent)
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", fake.retrieve_intent)
    monkeypatch.setattr(stripe.PaymentIntent, "capture", fake.capture_intent)
    monkeypatch.setattr(stripe.PaymentIntent, "cancel", fake.cancel_intent)
    monkeypatch.setattr(stripe.Refund, "create", fake.create_refund)
    monkeypatch.setattr(stripe.Transfer, "create", fake.create_transfer)
    return fake


@pytest.fixture
def host_user():
    user = _create_user(username="host", first_name="Hana", last_name="Host")
    connect_payout_account(user)
    return user


@pytest.fixture
def shopper_user():
    return _create_user(username="shopper", first_name="Sam", last_name="Shopper")


@pytest.fixture
def other_user():
    return _create_user(username="other")


@pytest.fixture
def admin_user():
    group, _ = Group.objects.get_or_create(name="operator_admin")
    user = _create_user(username="ops-admin", is_staff=True)
    user.groups.add(group)
    return user


@pytest.fixture
def listing(host_user):
    return Listing.objects.create(
        host=host_user,
        title="Taco Truck",
        mode=Listing.Mode.RENT,
        deposit_amount_cents=25000,
        is_active=True,
    )


@pytest.fixture
def instant_listing(host_user):
    return Listing.objects.create(
        host=host_user,
        title="Coffee Trailer",
        mode=Listing.Mode.RENT,
        is_instant_book=True,
        deposit_amount_cents=25000,
        is_active=True,
    )


@pytest.fixture
def booking_factory(listing, shopper_user) -> Callable[..., Booking]:
    """
    Create a booking through the real request path, then force any lifecycle
    fields the test needs straight onto the row.
    """

    def _create_booking(
        *,
        listing_override: Listing | None = None,
        shopper=None,
        base_cents: int = 10000,
        delivery_fee_cents: int = 0,
        payment_method_ref: str = "pm_card_visa",
        start_at=None,
        end_at=None,
        **state_fields,
    ) -> Booking:
        now = timezone.now()
        booking = create_booking_request(
            listing=listing_override or listing,
            shopper=shopper or shopper_user,
            base_cents=base_cents,
            delivery_fee_cents=delivery_fee_cents,
            payment_method_ref=payment_method_ref,
            start_at=start_at or now + timedelta(days=2),
            end_at=end_at or now + timedelta(days=4),
        )
        if state_fields:
            Booking.objects.filter(pk=booking.pk).update(**state_fields)
            booking.refresh_from_db()
        return booking

    return _create_booking


@pytest.fixture
def pending_booking(booking_factory, fake_stripe):
    fake_stripe.add_intent("pi_pending", "requires_capture")
    return booking_factory(
        payment_intent_id="pi_pending",
        hold_status=Booking.HoldStatus.PENDING,
        payment_status=Booking.PaymentStatus.AUTHORIZED,
        hold_expires_at=timezone.now() + timedelta(days=7),
    )


@pytest.fixture
def completed_booking(booking_factory, fake_stripe):
    """Captured booking whose rental ended two days ago, deposit still charged."""
    now = timezone.now()
    fake_stripe.add_intent("pi_completed", "succeeded")
    return booking_factory(
        start_at=now - timedelta(days=4),
        end_at=now - timedelta(days=2),
        payment_intent_id="pi_completed",
        hold_status=Booking.HoldStatus.CAPTURED,
        payment_status=Booking.PaymentStatus.PAID,
        hold_captured_at=now - timedelta(days=5),
        deposit_status=Booking.DepositStatus.CHARGED,
        deposit_charge_id="pi_completed",
    )
