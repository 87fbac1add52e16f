"""Stripe calls used by the booking payment engine.

Every function here is a thin wrapper around one processor capability (hold,
capture, cancel, refund, transfer). They never touch local state; callers own
the state transitions and only apply them after the processor call returns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import stripe
from django.conf import settings

logger = logging.getLogger(__name__)
IDEMPOTENCY_VERSION = "v1"
AUTOMATIC_PAYMENT_METHODS_CONFIG = {"enabled": True, "allow_redirects": "never"}
CANCELABLE_INTENT_STATUSES = (
    "requires_capture",
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
    "processing",
)


class StripeConfigurationError(Exception):
    """Stripe is not configured correctly in the environment."""


class StripeTransientError(Exception):
    """Temporary Stripe/API issue that should be retried."""


class StripePaymentError(Exception):
    """Permanent processor failure; the message is safe to show to the user."""


@dataclass(frozen=True)
class HoldHandle:
    id: str
    status: str


def _get_stripe_api_key() -> str:
    """Return the configured Stripe API key or raise if missing."""
    api_key = getattr(settings, "STRIPE_SECRET_KEY", "")
    if not api_key:
        raise StripeConfigurationError("Stripe secret key not configured.")
    return api_key


def _currency() -> str:
    return (getattr(settings, "STRIPE_CURRENCY", "") or "usd").lower()


def _env_label() -> str:
    return getattr(settings, "STRIPE_ENV", "dev") or "dev"


def _handle_stripe_error(exc: stripe.error.StripeError) -> None:
    """Map Stripe SDK errors onto internal exception types."""
    if isinstance(exc, stripe.error.CardError):
        message = exc.user_message or "Your card was declined."
        raise StripePaymentError(message) from exc
    if isinstance(
        exc,
        (
            stripe.error.RateLimitError,
            stripe.error.APIConnectionError,
            stripe.error.APIError,
        ),
    ):
        raise StripeTransientError("Temporary Stripe error, please retry.") from exc
    if isinstance(exc, (stripe.error.AuthenticationError, stripe.error.PermissionError)):
        raise StripeConfigurationError("Stripe credentials are invalid or unauthorized.") from exc
    if isinstance(exc, stripe.error.InvalidRequestError):
        raise StripePaymentError(exc.user_message or str(exc) or "Invalid payment request.") from exc
    raise StripePaymentError(exc.user_message or "Stripe payment failure.") from exc


def _object_id(obj: Any) -> str:
    value = getattr(obj, "id", None)
    if value is None and hasattr(obj, "get"):
        value = obj.get("id")
    return value or ""


def _object_status(obj: Any) -> str:
    value = getattr(obj, "status", None)
    if value is None and hasattr(obj, "get"):
        value = obj.get("status")
    return value or ""


def booking_metadata(booking, **extra: Any) -> dict[str, str]:
    """Metadata attached to every booking-related processor object for reconciliation."""
    metadata = {
        "booking_id": str(booking.id),
        "listing_id": str(booking.listing_id),
        "buyer_id": str(booking.shopper_id),
        "host_id": str(booking.host_id),
        "env": _env_label(),
    }
    metadata.update({key: str(value) for key, value in extra.items()})
    return metadata


def create_hold(
    booking,
    *,
    amount_cents: int,
    payment_method_ref: str,
    capture_method: str,
    customer_id: str | None = None,
) -> HoldHandle:
    """
    Authorize ``amount_cents`` against the shopper's payment method.

    ``capture_method="manual"`` leaves the funds on hold until the host
    approves; ``"automatic"`` charges immediately (instant book). The
    idempotency key is stable per booking and amount, so a retried call
    returns the original intent instead of opening a second hold.
    """
    if amount_cents <= 0:
        raise StripePaymentError("Booking total must be greater than zero.")

    stripe.api_key = _get_stripe_api_key()
    try:
        intent = stripe.PaymentIntent.create(
            amount=amount_cents,
            currency=_currency(),
            customer=customer_id or None,
            payment_method=payment_method_ref,
            automatic_payment_methods={**AUTOMATIC_PAYMENT_METHODS_CONFIG},
            confirm=True,
            off_session=False,
            capture_method=capture_method,
            metadata=booking_metadata(
                booking,
                kind="booking_hold",
                platform_fee_cents=booking.platform_fee_cents,
                host_payout_cents=booking.host_payout_cents,
            ),
            idempotency_key=(
                f"booking:{booking.id}:{IDEMPOTENCY_VERSION}:hold:{amount_cents}"
            ),
        )
    except stripe.error.StripeError as exc:
        _handle_stripe_error(exc)

    return HoldHandle(id=_object_id(intent), status=_object_status(intent))


def _retrieve_intent(intent_id: str) -> Any | None:
    """Return the PaymentIntent, or None when Stripe no longer knows it."""
    try:
        return stripe.PaymentIntent.retrieve(intent_id)
    except stripe.error.InvalidRequestError as exc:
        if getattr(exc, "code", "") == "resource_missing":
            return None
        _handle_stripe_error(exc)
    except stripe.error.StripeError as exc:
        _handle_stripe_error(exc)
    return None


def capture_hold(booking) -> str:
    """Capture the booking's held funds; returns the resulting intent status."""
    intent_id = (booking.payment_intent_id or "").strip()
    if not intent_id:
        raise StripePaymentError("Booking has no payment to capture.")

    stripe.api_key = _get_stripe_api_key()
    intent = _retrieve_intent(intent_id)
    if intent is None:
        raise StripePaymentError("Payment authorization no longer exists at the processor.")

    status = _object_status(intent)
    if status == "succeeded":
        return status
    if status != "requires_capture":
        raise StripePaymentError(f"Cannot capture payment. Current status: {status}")

    try:
        captured = stripe.PaymentIntent.capture(
            intent_id,
            idempotency_key=f"booking:{booking.id}:{IDEMPOTENCY_VERSION}:capture",
        )
    except stripe.error.StripeError as exc:
        _handle_stripe_error(exc)
    return _object_status(captured) or "succeeded"


def cancel_hold(booking) -> str:
    """
    Cancel an uncaptured hold and return the final intent status.

    Returns ``"canceled"`` when the hold is gone (including when Stripe
    already expired it) and ``"succeeded"`` when the funds were captured
    after all; the caller decides what a captured intent means.
    """
    intent_id = (booking.payment_intent_id or "").strip()
    if not intent_id:
        return "canceled"

    stripe.api_key = _get_stripe_api_key()
    intent = _retrieve_intent(intent_id)
    if intent is None:
        logger.info(
            "stripe: hold %s missing at processor; treating as released",
            intent_id,
            extra={"booking_id": booking.id},
        )
        return "canceled"

    status = _object_status(intent)
    if status in ("canceled", "succeeded"):
        return status
    if status not in CANCELABLE_INTENT_STATUSES:
        raise StripePaymentError(f"Cannot release payment hold. Current status: {status}")

    try:
        canceled = stripe.PaymentIntent.cancel(
            intent_id,
            cancellation_reason="requested_by_customer",
            idempotency_key=f"booking:{booking.id}:{IDEMPOTENCY_VERSION}:cancel",
        )
    except stripe.error.StripeError as exc:
        _handle_stripe_error(exc)
    return _object_status(canceled) or "canceled"


def refund_charge(booking, *, charge_ref: str, amount_cents: int, reason: str) -> str:
    """Refund part or all of a captured charge; returns the refund id."""
    if amount_cents <= 0:
        raise StripePaymentError("Refund amount must be greater than zero.")

    stripe.api_key = _get_stripe_api_key()
    target = {"charge": charge_ref} if charge_ref.startswith("ch_") else {"payment_intent": charge_ref}
    try:
        refund = stripe.Refund.create(
            amount=amount_cents,
            reason="requested_by_customer",
            metadata=booking_metadata(booking, kind=reason),
            idempotency_key=f"booking:{booking.id}:{IDEMPOTENCY_VERSION}:{reason}",
            **target,
        )
    except stripe.error.StripeError as exc:
        _handle_stripe_error(exc)
    return _object_id(refund)


def create_transfer(
    *,
    destination: str,
    amount_cents: int,
    metadata: dict[str, Any],
    idempotency_key: str,
    description: str = "",
    transfer_group: str | None = None,
) -> str:
    """Move ``amount_cents`` from the platform balance to a connected account."""
    if amount_cents <= 0:
        raise StripePaymentError("Transfer amount must be greater than zero.")

    stripe.api_key = _get_stripe_api_key()
    payload: dict[str, Any] = {
        "amount": amount_cents,
        "currency": _currency(),
        "destination": destination,
        "description": description,
        "metadata": {**{k: str(v) for k, v in metadata.items()}, "env": _env_label()},
        "idempotency_key": idempotency_key,
    }
    if transfer_group:
        payload["transfer_group"] = transfer_group
    try:
        transfer = stripe.Transfer.create(**payload)
    except stripe.error.StripeError as exc:
        _handle_stripe_error(exc)
    return _object_id(transfer)


def ensure_configured() -> None:
    """Fail fast, before any per-record work, when the processor key is missing."""
    stripe.api_key = _get_stripe_api_key()
