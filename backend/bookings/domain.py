"""Actors, authorization rules and the hold/deposit state machines."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

from django.utils import timezone

from .exceptions import (
    ActionNotPermitted,
    BookingAlreadySettled,
    InvalidDepositTransition,
    InvalidHoldTransition,
)
from .models import Booking

logger = logging.getLogger(__name__)

ActorRole = Literal["host", "shopper", "admin", "system"]
OPERATOR_ADMIN_GROUPS = ("operator_admin", "operator_finance")

HoldStatus = Booking.HoldStatus
DepositStatus = Booking.DepositStatus

# none -> captured is the instant-book edge: hold and capture are one processor step.
HOLD_TRANSITIONS: dict[str, frozenset[str]] = {
    HoldStatus.NONE: frozenset({HoldStatus.PENDING, HoldStatus.CAPTURED}),
    HoldStatus.PENDING: frozenset({HoldStatus.CAPTURED, HoldStatus.RELEASED}),
    HoldStatus.CAPTURED: frozenset(),
    HoldStatus.RELEASED: frozenset(),
}

DEPOSIT_TRANSITIONS: dict[str, frozenset[str]] = {
    DepositStatus.NONE: frozenset({DepositStatus.CHARGED}),
    DepositStatus.CHARGED: frozenset({DepositStatus.REFUNDED, DepositStatus.FORFEITED}),
    DepositStatus.REFUNDED: frozenset(),
    DepositStatus.FORFEITED: frozenset(),
}


@dataclass(frozen=True)
class Actor:
    """Who is invoking an engine operation, passed explicitly to every mutation."""

    role: ActorRole
    user: Any = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(role="system")

    @property
    def user_id(self) -> int | None:
        return getattr(self.user, "pk", None)

    @property
    def label(self) -> str:
        if self.user_id is None:
            return self.role
        return f"{self.role}:{self.user_id}"


def is_operator_admin(user) -> bool:
    if user is None or not getattr(user, "is_authenticated", False):
        return False
    if not getattr(user, "is_staff", False):
        return False
    return user.groups.filter(name__in=OPERATOR_ADMIN_GROUPS).exists()


def actor_for_user(user, booking: Booking) -> Actor:
    """Resolve the role a request user plays on this booking."""
    if user is not None and getattr(user, "pk", None) is not None:
        if booking.host_id == user.pk:
            return Actor(role="host", user=user)
        if booking.shopper_id == user.pk:
            return Actor(role="shopper", user=user)
        if is_operator_admin(user):
            return Actor(role="admin", user=user)
    raise ActionNotPermitted()


def _actor_is_admin(actor: Actor) -> bool:
    return actor.role == "admin" and bool(getattr(actor.user, "is_staff", False))


def _actor_is_booking_host(actor: Actor, booking: Booking) -> bool:
    return actor.role == "host" and actor.user_id is not None and actor.user_id == booking.host_id


def _actor_is_booking_shopper(actor: Actor, booking: Booking) -> bool:
    return (
        actor.role == "shopper"
        and actor.user_id is not None
        and actor.user_id == booking.shopper_id
    )


def assert_can_issue_hold(actor: Actor, booking: Booking) -> None:
    if _actor_is_booking_shopper(actor, booking) or _actor_is_admin(actor):
        return
    if actor.role == "system":
        return
    raise ActionNotPermitted("Only the shopper who requested this booking can pay for it.")


def assert_can_capture_hold(actor: Actor, booking: Booking) -> None:
    if _actor_is_booking_host(actor, booking) or _actor_is_admin(actor):
        return
    if actor.role == "system":
        return
    raise ActionNotPermitted("Only the host of this booking can approve it.")


def assert_can_release_hold(actor: Actor, booking: Booking) -> None:
    """Host, admin or the unattended expiry job; never the shopper."""
    if _actor_is_booking_host(actor, booking) or _actor_is_admin(actor):
        return
    if actor.role == "system":
        return
    raise ActionNotPermitted("Only the host of this booking or an administrator can release the hold.")


def assert_can_settle_deposit(actor: Actor, booking: Booking) -> None:
    if _actor_is_booking_host(actor, booking) or _actor_is_admin(actor):
        return
    if actor.role == "system":
        return
    raise ActionNotPermitted("Only the host of this booking or an administrator can settle the deposit.")


def assert_is_admin(actor: Actor) -> None:
    if not _actor_is_admin(actor):
        raise ActionNotPermitted("Administrator access is required for this action.")


def assert_can_issue_payout(actor: Actor) -> None:
    if actor.role == "system" or _actor_is_admin(actor):
        return
    raise ActionNotPermitted("Payouts are issued by the platform, not by booking participants.")


def _apply(booking: Booking, values: dict[str, Any]) -> None:
    for field, value in values.items():
        setattr(booking, field, value)


def _guarded_update(
    booking: Booking, *, status_field: str, current: str, values: dict[str, Any]
) -> bool:
    """Write ``values`` only if the row still has ``current`` status and no processed payout."""
    values = {**values, "updated_at": timezone.now()}
    updated = Booking.objects.filter(
        pk=booking.pk,
        payout_processed=False,
        **{status_field: current},
    ).update(**values)
    if updated:
        _apply(booking, values)
        return True
    booking.refresh_from_db()
    return False


def transition_hold(booking: Booking, target: str, **fields: Any) -> bool:
    """
    Move ``booking.hold_status`` to ``target`` together with related hold fields.

    This is the only writer of ``hold_status``. Illegal edges raise
    ``InvalidHoldTransition``. The write is conditional on the status the
    caller observed; if another writer got there first the instance is
    refreshed and ``False`` is returned so the caller can decide whether the
    live state is equivalent (no-op) or conflicting (error).
    """
    if booking.payout_processed:
        raise BookingAlreadySettled()
    current = booking.hold_status
    if target not in HOLD_TRANSITIONS[current]:
        raise InvalidHoldTransition(current, target)
    moved = _guarded_update(
        booking,
        status_field="hold_status",
        current=current,
        values={"hold_status": target, **fields},
    )
    if moved:
        logger.info(
            "bookings: hold %s -> %s",
            current,
            target,
            extra={"booking_id": booking.id},
        )
    return moved


def transition_deposit(booking: Booking, target: str, **fields: Any) -> bool:
    """Move ``booking.deposit_status`` forward; same contract as ``transition_hold``."""
    if booking.payout_processed:
        raise BookingAlreadySettled()
    current = booking.deposit_status
    if target not in DEPOSIT_TRANSITIONS[current]:
        raise InvalidDepositTransition(current, target)
    moved = _guarded_update(
        booking,
        status_field="deposit_status",
        current=current,
        values={"deposit_status": target, **fields},
    )
    if moved:
        logger.info(
            "bookings: deposit %s -> %s",
            current,
            target,
            extra={"booking_id": booking.id},
        )
    return moved
