from django.db.models import Prefetch
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, status
from rest_framework.response import Response

from bookings.api import ENGINE_ERRORS, error_response
from bookings.domain import Actor
from bookings.models import Booking
from operator_bookings import services
from operator_bookings.filters import OperatorBookingFilter
from operator_bookings.models import BookingEvent
from operator_bookings.serializers import (
    OperatorBookingDetailSerializer,
    OperatorBookingListSerializer,
    OperatorDepositSettlementSerializer,
    PayoutHoldClearSerializer,
    PayoutHoldSetSerializer,
    ReleasePayoutSerializer,
)
from operator_core.api_base import OperatorAPIView
from operator_core.audit import request_origin
from operator_core.permissions import MONEY_PERMISSIONS


def _admin(request) -> Actor:
    return Actor(role="admin", user=request.user)


def _detail(booking_id: int, http_status=status.HTTP_200_OK) -> Response:
    booking = Booking.objects.select_related(
        "listing", "host", "shopper", "payout_hold_set_by", "payout_hold_cleared_by"
    ).get(pk=booking_id)
    return Response(OperatorBookingDetailSerializer(booking).data, status=http_status)


class OperatorBookingListView(generics.ListAPIView):
    serializer_class = OperatorBookingListSerializer
    permission_classes = MONEY_PERMISSIONS
    filter_backends = [DjangoFilterBackend]
    filterset_class = OperatorBookingFilter
    throttle_scope = "operator"
    http_method_names = ["get"]

    def get_queryset(self):
        return Booking.objects.select_related("listing", "host", "shopper").order_by(
            "-created_at"
        )


class OperatorBookingDetailView(generics.RetrieveAPIView):
    serializer_class = OperatorBookingDetailSerializer
    permission_classes = MONEY_PERMISSIONS
    throttle_scope = "operator"
    lookup_field = "pk"
    http_method_names = ["get"]

    def get_queryset(self):
        events_qs = BookingEvent.objects.select_related("actor").order_by("created_at", "id")
        return Booking.objects.select_related(
            "listing", "host", "shopper", "payout_hold_set_by", "payout_hold_cleared_by"
        ).prefetch_related(Prefetch("events", queryset=events_qs, to_attr="prefetched_events"))


class OperatorPayoutHoldView(OperatorAPIView):
    """POST sets (or replaces) the admin payout hold; DELETE clears it."""

    def post(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        serializer = PayoutHoldSetSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            services.set_admin_payout_hold(
                booking.id,
                hold_until=serializer.validated_data["hold_until"],
                reason=serializer.validated_data["reason"],
                actor=_admin(request),
                origin=request_origin(request),
            )
        except ENGINE_ERRORS as exc:
            return error_response(exc)
        return _detail(booking.id)

    def delete(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        serializer = PayoutHoldClearSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            services.clear_admin_payout_hold(
                booking.id,
                reason=serializer.validated_data["reason"],
                actor=_admin(request),
                origin=request_origin(request),
            )
        except ENGINE_ERRORS as exc:
            return error_response(exc)
        return _detail(booking.id)


class OperatorReleasePayoutView(OperatorAPIView):
    def post(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        serializer = ReleasePayoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = services.release_payout_now(
                booking.id,
                actor=_admin(request),
                reason=serializer.validated_data["reason"],
                clear_hold=serializer.validated_data["clear_hold"],
                origin=request_origin(request),
            )
        except ENGINE_ERRORS as exc:
            return error_response(exc)
        response = _detail(booking.id)
        response.data["transfer_id"] = result.transfer_id
        return response


class OperatorDepositSettleView(OperatorAPIView):
    def post(self, request, pk: int):
        booking = get_object_or_404(Booking, pk=pk)
        serializer = OperatorDepositSettlementSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            settlement = services.admin_settle_deposit(
                booking.id,
                actor=_admin(request),
                policy=data["policy"],
                deduction_cents=data.get("deduction_cents"),
                notes=data.get("notes"),
                reason=data["reason"],
                origin=request_origin(request),
            )
        except ENGINE_ERRORS as exc:
            return error_response(exc)
        response = _detail(booking.id)
        response.data["settlement"] = {
            "refund_cents": settlement.refund_cents,
            "deduction_cents": settlement.deduction_cents,
            "final_status": settlement.final_status,
        }
        return response
