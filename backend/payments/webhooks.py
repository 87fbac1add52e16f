"""Stripe webhook reconciliation for booking holds and payout accounts."""

from __future__ import annotations

import logging
from typing import Any

import stripe
from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from bookings.domain import Actor
from bookings.exceptions import BookingPaymentError
from bookings.holds import EXPIRED_REASON, capture_hold, release_hold
from bookings.models import Booking
from identity.models import mark_session_verified

from .models import OwnerPayoutAccount
from .stripe_api import StripePaymentError, StripeTransientError

logger = logging.getLogger(__name__)
User = get_user_model()


def _value(obj: Any, field: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(field, default)
    return getattr(obj, field, default)


def sync_payout_account(account_payload: Any) -> OwnerPayoutAccount | None:
    """Update readiness flags from a Stripe ``account`` object."""
    stripe_account_id = _value(account_payload, "id", "")
    if not stripe_account_id:
        return None
    payout_account = OwnerPayoutAccount.objects.filter(stripe_account_id=stripe_account_id).first()
    if payout_account is None:
        return None

    requirements = _value(account_payload, "requirements", {}) or {}
    currently_due = list(_value(requirements, "currently_due", []) or [])
    past_due = list(_value(requirements, "past_due", []) or [])
    disabled_reason = _value(requirements, "disabled_reason", "") or ""
    payouts_enabled = bool(_value(account_payload, "payouts_enabled", False))
    charges_enabled = bool(_value(account_payload, "charges_enabled", False))

    payout_account.payouts_enabled = payouts_enabled
    payout_account.charges_enabled = charges_enabled
    payout_account.requirements_due = {
        "currently_due": currently_due,
        "past_due": past_due,
        "disabled_reason": disabled_reason,
    }
    payout_account.is_fully_onboarded = (
        payouts_enabled and charges_enabled and not disabled_reason and not past_due
    )
    payout_account.last_synced_at = timezone.now()
    payout_account.save(
        update_fields=[
            "payouts_enabled",
            "charges_enabled",
            "requirements_due",
            "is_fully_onboarded",
            "last_synced_at",
        ]
    )
    return payout_account


def _booking_for_intent(data_object: dict) -> Booking | None:
    metadata = data_object.get("metadata") or {}
    if metadata.get("kind") != "booking_hold":
        return None
    booking_id = metadata.get("booking_id")
    try:
        booking = Booking.objects.get(pk=int(booking_id))
    except (Booking.DoesNotExist, TypeError, ValueError):
        return None
    if booking.payment_intent_id and booking.payment_intent_id != data_object.get("id"):
        logger.warning(
            "stripe_webhook: intent does not match booking",
            extra={"booking_id": booking.id, "intent_id": data_object.get("id")},
        )
        return None
    return booking


def _reconcile_intent(event_type: str, data_object: dict) -> None:
    booking = _booking_for_intent(data_object)
    if booking is None or not booking.payment_intent_id:
        return
    try:
        if event_type == "payment_intent.canceled":
            release_hold(booking.id, actor=Actor.system(), reason=EXPIRED_REASON)
        elif event_type == "payment_intent.succeeded":
            capture_hold(booking.id, actor=Actor.system())
    except (BookingPaymentError, StripePaymentError, StripeTransientError) as exc:
        logger.warning(
            "stripe_webhook: could not reconcile %s",
            event_type,
            extra={"booking_id": booking.id, "error": str(exc)},
        )


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def stripe_webhook(request):
    """Handle Stripe webhook callbacks for holds, connected accounts and identity."""
    payload = request.body
    sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")
    endpoint_secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "")

    try:
        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=endpoint_secret,
        )
    except ValueError:
        return Response(status=status.HTTP_400_BAD_REQUEST)
    except stripe.error.SignatureVerificationError:
        return Response(status=status.HTTP_400_BAD_REQUEST)

    event_type = event.get("type")
    data_object = event.get("data", {}).get("object", {}) or {}

    if event_type in ("payment_intent.canceled", "payment_intent.succeeded"):
        _reconcile_intent(event_type, data_object)
        return Response(status=status.HTTP_200_OK)

    if event_type == "account.updated":
        sync_payout_account(data_object)
        return Response(status=status.HTTP_200_OK)

    if event_type == "identity.verification_session.verified":
        metadata = data_object.get("metadata") or {}
        session_id = data_object.get("id")
        try:
            user = User.objects.get(pk=int(metadata.get("user_id")))
        except (User.DoesNotExist, TypeError, ValueError):
            return Response(status=status.HTTP_200_OK)
        if session_id:
            mark_session_verified(user, session_id)
            logger.info(
                "Stripe identity session verified",
                extra={"user_id": user.id, "session_id": session_id},
            )
        return Response(status=status.HTTP_200_OK)

    return Response(status=status.HTTP_200_OK)
