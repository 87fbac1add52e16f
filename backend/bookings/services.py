"""Booking request creation."""

from __future__ import annotations

from datetime import datetime

from django.core.exceptions import ValidationError

from core.pricing import compute_fee_breakdown, current_fee_rates
from listings.models import Listing

from .models import Booking


def create_booking_request(
    *,
    listing: Listing,
    shopper,
    base_cents: int,
    delivery_fee_cents: int = 0,
    payment_method_ref: str = "",
    start_at: datetime | None = None,
    end_at: datetime | None = None,
) -> Booking:
    """
    Create a booking with its fee breakdown computed from the rates in effect now.

    The rates are stored on the row so the breakdown the hold was sized from
    can always be reproduced.
    """
    if not listing.is_active:
        raise ValidationError({"listing": ["This listing is not accepting bookings."]})
    if listing.host_id == shopper.pk:
        raise ValidationError({"listing": ["You cannot book your own listing."]})
    if start_at and end_at and end_at <= start_at:
        raise ValidationError({"end_at": ["End must be after start."]})

    breakdown = compute_fee_breakdown(
        base_cents=base_cents,
        delivery_fee_cents=delivery_fee_cents,
        deposit_cents=listing.deposit_amount_cents,
        rates=current_fee_rates(listing.mode),
    )
    return Booking.objects.create(
        listing=listing,
        host_id=listing.host_id,
        shopper=shopper,
        start_at=start_at,
        end_at=end_at,
        base_amount_cents=breakdown.base_cents,
        delivery_fee_cents=breakdown.delivery_fee_cents,
        deposit_amount_cents=listing.deposit_amount_cents,
        customer_total_cents=breakdown.customer_total_cents,
        buyer_fee_cents=breakdown.buyer_fee_cents,
        host_fee_cents=breakdown.host_fee_cents,
        platform_fee_cents=breakdown.application_fee_cents,
        host_payout_cents=breakdown.host_payout_cents,
        buyer_fee_bps=breakdown.buyer_fee_bps,
        host_fee_bps=breakdown.host_fee_bps,
        payment_method_ref=payment_method_ref or "",
    )
