"""Serializers for booking-related API endpoints."""

from __future__ import annotations

from rest_framework import serializers

from listings.models import Listing

from .deposits import SETTLEMENT_POLICIES
from .models import Booking


class BookingSerializer(serializers.ModelSerializer):
    """Read-only view of a booking and its money state."""

    listing_title = serializers.ReadOnlyField(source="listing.title")
    listing_mode = serializers.ReadOnlyField(source="listing.mode")
    host_name = serializers.ReadOnlyField(source="host.display_name")
    shopper_name = serializers.ReadOnlyField(source="shopper.display_name")
    payout_on_hold = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "listing",
            "listing_title",
            "listing_mode",
            "host",
            "host_name",
            "shopper",
            "shopper_name",
            "start_at",
            "end_at",
            "base_amount_cents",
            "delivery_fee_cents",
            "deposit_amount_cents",
            "buyer_fee_cents",
            "host_fee_cents",
            "customer_total_cents",
            "platform_fee_cents",
            "host_payout_cents",
            "buyer_fee_bps",
            "host_fee_bps",
            "capture_method",
            "hold_status",
            "payment_status",
            "hold_expires_at",
            "hold_captured_at",
            "hold_released_at",
            "hold_release_reason",
            "deposit_status",
            "deposit_refund_cents",
            "deposit_refund_notes",
            "deposit_refunded_at",
            "payout_on_hold",
            "payout_processed",
            "payout_processed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_payout_on_hold(self, obj: Booking) -> bool:
        return obj.payout_hold_active()


class BookingCreateSerializer(serializers.Serializer):
    """Input for a new booking request."""

    listing = serializers.PrimaryKeyRelatedField(queryset=Listing.objects.filter(is_active=True))
    base_cents = serializers.IntegerField(min_value=0)
    delivery_fee_cents = serializers.IntegerField(min_value=0, required=False, default=0)
    payment_method_ref = serializers.CharField(
        max_length=120, required=False, allow_blank=True, default=""
    )
    start_at = serializers.DateTimeField(required=False, allow_null=True, default=None)
    end_at = serializers.DateTimeField(required=False, allow_null=True, default=None)

    def validate(self, attrs):
        start_at = attrs.get("start_at")
        end_at = attrs.get("end_at")
        if start_at and end_at and end_at <= start_at:
            raise serializers.ValidationError({"end_at": "End must be after start."})
        return attrs


class ReleaseHoldSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class DepositSettlementSerializer(serializers.Serializer):
    """Settlement request for a charged deposit."""

    policy = serializers.ChoiceField(choices=SETTLEMENT_POLICIES)
    deduction_cents = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if attrs["policy"] == "partial" and attrs.get("deduction_cents") is None:
            raise serializers.ValidationError(
                {"deduction_cents": "A partial refund needs a deduction amount."}
            )
        return attrs
