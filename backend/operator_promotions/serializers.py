from rest_framework import serializers

from promotions.models import RewardRecord


class OperatorRewardRecordSerializer(serializers.ModelSerializer):
    user_email = serializers.ReadOnlyField(source="user.email")
    listing_title = serializers.ReadOnlyField(source="listing.title")

    class Meta:
        model = RewardRecord
        fields = [
            "id",
            "pool",
            "user",
            "user_email",
            "listing",
            "listing_title",
            "payout_status",
            "disqualified_reason",
            "destination_account_id",
            "transfer_id",
            "amount_cents",
            "failure_message",
            "payout_initiated_at",
            "payout_completed_at",
            "created_at",
        ]
        read_only_fields = fields


class PromoPayoutBatchSerializer(serializers.Serializer):
    pool = serializers.ChoiceField(choices=RewardRecord.Pool.choices)
    reason = serializers.CharField(allow_blank=False, trim_whitespace=True)


class RewardRetrySerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=False, trim_whitespace=True)
