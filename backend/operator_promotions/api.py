from __future__ import annotations

from django.db import transaction
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, status
from rest_framework.response import Response

from bookings.api import ENGINE_ERRORS, error_response
from operator_core.api_base import OperatorAPIView
from operator_core.audit import audit, request_origin
from operator_core.models import OperatorAuditEvent
from operator_core.permissions import MONEY_PERMISSIONS
from operator_promotions.serializers import (
    OperatorRewardRecordSerializer,
    PromoPayoutBatchSerializer,
    RewardRetrySerializer,
)
from promotions.models import RewardRecord
from promotions.payouts import RewardNotRetryable, retry_failed_reward, run_promo_payout_batch


class OperatorRewardListView(generics.ListAPIView):
    serializer_class = OperatorRewardRecordSerializer
    permission_classes = MONEY_PERMISSIONS
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["pool", "payout_status", "user"]
    throttle_scope = "operator"
    http_method_names = ["get"]

    def get_queryset(self):
        return RewardRecord.objects.select_related("user", "listing").order_by("-created_at")


class OperatorPromoPayoutBatchView(OperatorAPIView):
    """Run a promo payout batch now instead of waiting for the schedule."""

    def post(self, request):
        serializer = PromoPayoutBatchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        pool = serializer.validated_data["pool"]
        try:
            summary = run_promo_payout_batch(pool)
        except ENGINE_ERRORS as exc:
            return error_response(exc)

        audit(
            actor=request.user,
            action="promotions.payout_batch.run",
            entity_type=OperatorAuditEvent.EntityType.REWARD_RECORD,
            entity_id=pool,
            reason=serializer.validated_data["reason"],
            after=summary.as_dict(),
            **request_origin(request),
        )
        return Response({"pool": pool, **summary.as_dict()}, status=status.HTTP_200_OK)


class OperatorRewardRetryView(OperatorAPIView):
    def post(self, request, pk: int):
        reward = get_object_or_404(RewardRecord, pk=pk)
        serializer = RewardRetrySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        before = {"payout_status": reward.payout_status, "failure_message": reward.failure_message}
        with transaction.atomic():
            try:
                reward = retry_failed_reward(reward.pk)
            except RewardNotRetryable as exc:
                return Response(
                    {"detail": str(exc), "code": "reward_not_retryable"},
                    status=status.HTTP_409_CONFLICT,
                )
            audit(
                actor=request.user,
                action="promotions.reward.retry",
                entity_type=OperatorAuditEvent.EntityType.REWARD_RECORD,
                entity_id=reward.pk,
                reason=serializer.validated_data["reason"],
                before=before,
                after={"payout_status": reward.payout_status},
                **request_origin(request),
            )
        return Response(OperatorRewardRecordSerializer(reward).data, status=status.HTTP_200_OK)
