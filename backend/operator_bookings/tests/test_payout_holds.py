import importlib
from datetime import timedelta

import pytest
from django.urls import clear_url_caches
from django.utils import timezone
from rest_framework.test import APIClient

import vendibook.urls as vendibook_urls
from bookings.domain import Actor
from bookings.exceptions import ActionNotPermitted, InvalidPayoutHold, PayoutAlreadyProcessed, PayoutOnHold
from bookings.models import Booking
from notifications.models import OutboxEvent
from operator_bookings.models import BookingEvent
from operator_bookings.services import (
    NO_REASON,
    admin_settle_deposit,
    clear_admin_payout_hold,
    release_payout_now,
    set_admin_payout_hold,
)
from operator_core.models import OperatorAuditEvent
from payments.payouts import issue_host_payout

pytestmark = pytest.mark.django_db


@pytest.fixture
def admin_actor(admin_user):
    return Actor(role="admin", user=admin_user)


@pytest.fixture
def settled_booking(completed_booking):
    Booking.objects.filter(pk=completed_booking.pk).update(
        deposit_status=Booking.DepositStatus.REFUNDED
    )
    completed_booking.refresh_from_db()
    return completed_booking


def _in(days):
    return timezone.now() + timedelta(days=days)


class TestPayoutHoldServices:
    def test_set_hold_records_audit_event_and_notification(self, completed_booking, admin_actor):
        hold_until = _in(5)

        booking = set_admin_payout_hold(
            completed_booking.id,
            hold_until=hold_until,
            reason="  Damage claim under review  ",
            actor=admin_actor,
            origin={"ip": "10.0.0.1", "user_agent": "pytest"},
        )

        assert booking.payout_hold_until == hold_until
        assert booking.payout_hold_reason == "Damage claim under review"
        assert booking.payout_hold_set_by == admin_actor.user
        assert booking.payout_hold_active()

        audit_row = OperatorAuditEvent.objects.get(action="booking.payout_hold.set")
        assert audit_row.entity_id == str(booking.id)
        assert audit_row.before_json["payout_hold_until"] is None
        assert audit_row.after_json["payout_hold_reason"] == "Damage claim under review"
        assert audit_row.ip == "10.0.0.1"
        assert BookingEvent.objects.filter(
            booking=booking, type=BookingEvent.Type.PAYOUT_HOLD_SET
        ).exists()
        event = OutboxEvent.objects.get(event_type=OutboxEvent.Type.PAYOUT_HOLD_SET)
        assert event.recipient_id == booking.host_id
        assert event.payload["reason"] == "Damage claim under review"

    def test_new_hold_replaces_existing(self, completed_booking, admin_actor):
        set_admin_payout_hold(
            completed_booking.id, hold_until=_in(2), reason="First", actor=admin_actor
        )
        later = _in(9)

        booking = set_admin_payout_hold(
            completed_booking.id, hold_until=later, reason="Second", actor=admin_actor
        )

        assert booking.payout_hold_until == later
        assert booking.payout_hold_reason == "Second"

    @pytest.mark.parametrize("reason,days", [("", 3), ("   ", 3), ("Fraud", -1), ("Fraud", 0)])
    def test_hold_needs_reason_and_future_end(self, completed_booking, admin_actor, reason, days):
        now = timezone.now()

        with pytest.raises(InvalidPayoutHold):
            set_admin_payout_hold(
                completed_booking.id,
                hold_until=now + timedelta(days=days),
                reason=reason,
                actor=admin_actor,
                now=now,
            )

        completed_booking.refresh_from_db()
        assert completed_booking.payout_hold_until is None

    def test_non_admin_cannot_hold(self, completed_booking):
        with pytest.raises(ActionNotPermitted):
            set_admin_payout_hold(
                completed_booking.id,
                hold_until=_in(3),
                reason="Nope",
                actor=Actor(role="host", user=completed_booking.host),
            )

    def test_hold_after_payout_is_rejected(self, settled_booking, admin_actor, fake_stripe):
        issue_host_payout(settled_booking.id, actor=Actor.system())

        with pytest.raises(PayoutAlreadyProcessed):
            set_admin_payout_hold(
                settled_booking.id, hold_until=_in(3), reason="Too late", actor=admin_actor
            )
        with pytest.raises(PayoutAlreadyProcessed):
            clear_admin_payout_hold(settled_booking.id, reason="Too late", actor=admin_actor)

    def test_clear_hold(self, completed_booking, admin_actor):
        set_admin_payout_hold(
            completed_booking.id, hold_until=_in(3), reason="Review", actor=admin_actor
        )

        booking = clear_admin_payout_hold(completed_booking.id, reason=None, actor=admin_actor)

        assert booking.payout_hold_until is None
        assert booking.payout_hold_reason is None
        assert booking.payout_hold_cleared_by == admin_actor.user
        assert booking.payout_hold_clear_reason == NO_REASON
        assert OperatorAuditEvent.objects.filter(
            action="booking.payout_hold.clear", reason=NO_REASON
        ).exists()
        assert OutboxEvent.objects.filter(
            booking=booking, event_type=OutboxEvent.Type.PAYOUT_HOLD_CLEARED
        ).exists()

    def test_clearing_without_hold_is_a_noop(self, completed_booking, admin_actor):
        booking = clear_admin_payout_hold(completed_booking.id, reason="Nothing", actor=admin_actor)

        assert booking.payout_hold_cleared_at is None
        assert not OperatorAuditEvent.objects.exists()

    def test_hold_blocks_payout_until_cleared(self, settled_booking, admin_actor, fake_stripe):
        set_admin_payout_hold(
            settled_booking.id, hold_until=_in(3), reason="Chargeback", actor=admin_actor
        )
        with pytest.raises(PayoutOnHold):
            issue_host_payout(settled_booking.id, actor=Actor.system())

        clear_admin_payout_hold(settled_booking.id, reason="Resolved", actor=admin_actor)
        result = issue_host_payout(settled_booking.id, actor=Actor.system())

        assert result.amount_cents == settled_booking.host_payout_cents

    def test_release_now_can_clear_hold(self, settled_booking, admin_actor, fake_stripe):
        set_admin_payout_hold(
            settled_booking.id, hold_until=_in(3), reason="Review", actor=admin_actor
        )

        result = release_payout_now(
            settled_booking.id, actor=admin_actor, reason="Cleared by finance", clear_hold=True
        )

        settled_booking.refresh_from_db()
        assert settled_booking.payout_processed is True
        assert settled_booking.payout_transfer_id == result.transfer_id
        assert fake_stripe.calls["transfer_create"][0]["metadata"]["released_by"] == (
            f"admin:{admin_actor.user_id}"
        )
        assert list(
            BookingEvent.objects.filter(booking=settled_booking)
            .order_by("id")
            .values_list("type", flat=True)
        ) == [
            BookingEvent.Type.PAYOUT_HOLD_SET,
            BookingEvent.Type.PAYOUT_HOLD_CLEARED,
            BookingEvent.Type.PAYOUT_RELEASED,
        ]

    def test_release_now_respects_active_hold(self, settled_booking, admin_actor, fake_stripe):
        set_admin_payout_hold(
            settled_booking.id, hold_until=_in(3), reason="Review", actor=admin_actor
        )

        with pytest.raises(PayoutOnHold):
            release_payout_now(settled_booking.id, actor=admin_actor, reason="Try")

        assert fake_stripe.calls["transfer_create"] == []

    def test_admin_deposit_settlement_is_audited(self, completed_booking, admin_actor, fake_stripe):
        settlement = admin_settle_deposit(
            completed_booking.id,
            actor=admin_actor,
            policy="partial",
            deduction_cents=10000,
            notes="Broken hood vent",
            reason="Host sent photos",
        )

        assert settlement.refund_cents == 15000
        audit_row = OperatorAuditEvent.objects.get(action="booking.deposit.settle")
        assert audit_row.before_json["deposit_status"] == Booking.DepositStatus.CHARGED
        assert audit_row.after_json["deduction_cents"] == 10000
        assert audit_row.meta_json == {"policy": "partial"}
        assert BookingEvent.objects.filter(
            booking=completed_booking, type=BookingEvent.Type.DEPOSIT_SETTLED
        ).exists()


@pytest.fixture
def enable_operator_routes(settings):
    original_enable = settings.ENABLE_OPERATOR
    original_hosts = getattr(settings, "OPS_ALLOWED_HOSTS", [])
    original_allowed_hosts = list(getattr(settings, "ALLOWED_HOSTS", []))

    settings.ENABLE_OPERATOR = True
    settings.OPS_ALLOWED_HOSTS = ["ops.example.com"]
    settings.ALLOWED_HOSTS = ["ops.example.com", "public.example.com", "testserver"]
    clear_url_caches()
    importlib.reload(vendibook_urls)
    yield
    settings.ENABLE_OPERATOR = original_enable
    settings.OPS_ALLOWED_HOSTS = original_hosts
    settings.ALLOWED_HOSTS = original_allowed_hosts
    clear_url_caches()
    importlib.reload(vendibook_urls)


def _ops_client(user=None, host="ops.example.com"):
    client = APIClient()
    client.defaults["HTTP_HOST"] = host
    if user:
        client.force_authenticate(user=user)
    return client


@pytest.mark.usefixtures("enable_operator_routes")
class TestOperatorBookingAPI:
    def test_requires_money_role(self, completed_booking, other_user):
        other_user.is_staff = True
        other_user.save(update_fields=["is_staff"])

        assert _ops_client().get("/api/operator/bookings/").status_code in (401, 403)
        assert _ops_client(other_user).get("/api/operator/bookings/").status_code == 403

    def test_hidden_on_public_host(self, completed_booking, admin_user):
        resp = _ops_client(admin_user, host="public.example.com").get("/api/operator/bookings/")

        assert resp.status_code == 404

    def test_list_filters_by_payout_hold(self, completed_booking, booking_factory, admin_user, admin_actor):
        other = booking_factory()
        set_admin_payout_hold(
            completed_booking.id, hold_until=_in(2), reason="Review", actor=admin_actor
        )

        resp = _ops_client(admin_user).get("/api/operator/bookings/", {"payout_on_hold": "true"})

        assert resp.status_code == 200
        ids = [row["id"] for row in resp.data]
        assert ids == [completed_booking.id]
        assert other.id not in ids
        assert resp.data[0]["payout_on_hold"] is True

    def test_set_and_clear_hold(self, completed_booking, admin_user):
        client = _ops_client(admin_user)
        url = f"/api/operator/bookings/{completed_booking.id}/payout-hold/"

        resp = client.post(
            url,
            {"hold_until": _in(4).isoformat(), "reason": "Damage claim"},
            format="json",
            HTTP_USER_AGENT="ops-console",
        )
        assert resp.status_code == 200, resp.data
        assert resp.data["payout_on_hold"] is True
        assert resp.data["payout_hold_set_by"]["id"] == admin_user.id
        assert [event["type"] for event in resp.data["events"]] == [
            BookingEvent.Type.PAYOUT_HOLD_SET
        ]
        assert OperatorAuditEvent.objects.get().user_agent == "ops-console"

        resp = client.delete(url, {"reason": "Claim withdrawn"}, format="json")
        assert resp.status_code == 200, resp.data
        assert resp.data["payout_on_hold"] is False
        assert resp.data["payout_hold_clear_reason"] == "Claim withdrawn"

    def test_past_hold_end_is_rejected(self, completed_booking, admin_user):
        resp = _ops_client(admin_user).post(
            f"/api/operator/bookings/{completed_booking.id}/payout-hold/",
            {"hold_until": _in(-1).isoformat(), "reason": "Late"},
            format="json",
        )

        assert resp.status_code == 400
        assert resp.data["code"] == "invalid_payout_hold"

    def test_release_payout(self, settled_booking, admin_user, fake_stripe):
        resp = _ops_client(admin_user).post(
            f"/api/operator/bookings/{settled_booking.id}/release-payout/",
            {"reason": "Host escalation"},
            format="json",
        )

        assert resp.status_code == 200, resp.data
        assert resp.data["payout_processed"] is True
        assert resp.data["transfer_id"] == resp.data["payout_transfer_id"]

    def test_release_payout_before_deposit_settled(self, completed_booking, admin_user, fake_stripe):
        resp = _ops_client(admin_user).post(
            f"/api/operator/bookings/{completed_booking.id}/release-payout/",
            {"reason": "Host escalation"},
            format="json",
        )

        assert resp.status_code == 409
        assert resp.data["code"] == "payout_not_ready"

    def test_settle_deposit(self, completed_booking, admin_user, fake_stripe):
        resp = _ops_client(admin_user).post(
            f"/api/operator/bookings/{completed_booking.id}/deposit/settle/",
            {"policy": "full", "reason": "No damage reported"},
            format="json",
        )

        assert resp.status_code == 200, resp.data
        assert resp.data["settlement"]["refund_cents"] == 25000
        assert resp.data["deposit_status"] == Booking.DepositStatus.REFUNDED
