from rest_framework import serializers

from bookings.deposits import SETTLEMENT_POLICIES
from bookings.models import Booking
from operator_bookings.models import BookingEvent


def _display_name(user) -> str:
    if not user:
        return ""
    return user.display_name


class OperatorBookingUserSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    email = serializers.EmailField(read_only=True, allow_blank=True)
    name = serializers.SerializerMethodField()

    def get_name(self, obj):
        return _display_name(obj)


class OperatorBookingEventSerializer(serializers.ModelSerializer):
    actor = OperatorBookingUserSerializer(read_only=True)

    class Meta:
        model = BookingEvent
        fields = ["id", "type", "payload", "actor", "created_at"]
        read_only_fields = fields


class OperatorBookingListSerializer(serializers.ModelSerializer):
    host = OperatorBookingUserSerializer(read_only=True)
    shopper = OperatorBookingUserSerializer(read_only=True)
    listing_title = serializers.ReadOnlyField(source="listing.title")
    payout_on_hold = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "listing",
            "listing_title",
            "host",
            "shopper",
            "end_at",
            "customer_total_cents",
            "platform_fee_cents",
            "host_payout_cents",
            "hold_status",
            "payment_status",
            "deposit_status",
            "payout_on_hold",
            "payout_hold_until",
            "payout_hold_reason",
            "payout_processed",
            "created_at",
        ]
        read_only_fields = fields

    def get_payout_on_hold(self, obj):
        return obj.payout_hold_active()


class OperatorBookingDetailSerializer(OperatorBookingListSerializer):
    payout_hold_set_by = OperatorBookingUserSerializer(read_only=True)
    payout_hold_cleared_by = OperatorBookingUserSerializer(read_only=True)
    events = serializers.SerializerMethodField()

    class Meta(OperatorBookingListSerializer.Meta):
        fields = OperatorBookingListSerializer.Meta.fields + [
            "start_at",
            "base_amount_cents",
            "delivery_fee_cents",
            "deposit_amount_cents",
            "buyer_fee_cents",
            "host_fee_cents",
            "buyer_fee_bps",
            "host_fee_bps",
            "payment_intent_id",
            "capture_method",
            "hold_expires_at",
            "hold_captured_at",
            "hold_released_at",
            "hold_release_reason",
            "deposit_charge_id",
            "deposit_refund_id",
            "deposit_refund_cents",
            "deposit_refund_notes",
            "deposit_refunded_at",
            "payout_hold_set_by",
            "payout_hold_set_at",
            "payout_hold_cleared_by",
            "payout_hold_cleared_at",
            "payout_hold_clear_reason",
            "payout_processed_at",
            "payout_transfer_id",
            "events",
        ]
        read_only_fields = fields

    def get_events(self, obj):
        events = getattr(obj, "prefetched_events", None)
        if events is None:
            events = obj.events.select_related("actor").order_by("created_at", "id")
        return OperatorBookingEventSerializer(events, many=True).data


class PayoutHoldSetSerializer(serializers.Serializer):
    hold_until = serializers.DateTimeField()
    reason = serializers.CharField(allow_blank=False, trim_whitespace=True)


class PayoutHoldClearSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class ReleasePayoutSerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=False, trim_whitespace=True)
    clear_hold = serializers.BooleanField(required=False, default=False)


class OperatorDepositSettlementSerializer(serializers.Serializer):
    policy = serializers.ChoiceField(choices=SETTLEMENT_POLICIES)
    deduction_cents = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    reason = serializers.CharField(allow_blank=False, trim_whitespace=True)

    def validate(self, attrs):
        if attrs["policy"] == "partial" and attrs.get("deduction_cents") is None:
            raise serializers.ValidationError(
                {"deduction_cents": "A partial refund needs a deduction amount."}
            )
        return attrs
