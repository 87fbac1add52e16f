"""API views for booking requests and their payment actions."""

from __future__ import annotations

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from payments.stripe_api import (
    StripeConfigurationError,
    StripePaymentError,
    StripeTransientError,
)

from . import deposits, holds
from .domain import actor_for_user, is_operator_admin
from .exceptions import BookingPaymentError
from .models import Booking
from .serializers import (
    BookingCreateSerializer,
    BookingSerializer,
    DepositSettlementSerializer,
    ReleaseHoldSerializer,
)
from .services import create_booking_request

logger = logging.getLogger(__name__)


def error_response(exc: Exception) -> Response:
    """Translate an engine or processor failure into an API response."""
    if isinstance(exc, BookingPaymentError):
        return Response({"detail": exc.message, "code": exc.code}, status=exc.http_status)
    if isinstance(exc, StripePaymentError):
        message = str(exc) or "Payment could not be completed."
        return Response(
            {"detail": message, "code": "payment_failed"},
            status=status.HTTP_402_PAYMENT_REQUIRED,
        )
    if isinstance(exc, StripeTransientError):
        return Response(
            {"detail": "Temporary payment issue, please retry.", "code": "processor_unavailable"},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    if isinstance(exc, StripeConfigurationError):
        logger.error("payments: processor is not configured", exc_info=exc)
        return Response(
            {"detail": "Payments are not available right now.", "code": "processor_not_configured"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    if isinstance(exc, DjangoValidationError):
        detail = exc.message_dict if hasattr(exc, "error_dict") else {"detail": exc.messages}
        return Response(detail, status=status.HTTP_400_BAD_REQUEST)
    raise exc


ENGINE_ERRORS = (
    BookingPaymentError,
    StripePaymentError,
    StripeTransientError,
    StripeConfigurationError,
    DjangoValidationError,
)


class BookingViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Booking requests plus the hold, capture, release and deposit actions."""

    serializer_class = BookingSerializer
    permission_classes = (permissions.IsAuthenticated,)

    def get_queryset(self):
        """Restrict bookings to the ones the user hosts or shops."""
        user = self.request.user
        if not user.is_authenticated:
            return Booking.objects.none()
        return (
            Booking.objects.select_related("listing", "host", "shopper")
            .filter(Q(host=user) | Q(shopper=user))
            .order_by("-created_at")
        )

    def get_object(self):
        """Fetch one booking; operator admins may act on any booking."""
        queryset = Booking.objects.select_related("listing", "host", "shopper")
        if not is_operator_admin(self.request.user):
            queryset = queryset.filter(
                Q(host=self.request.user) | Q(shopper=self.request.user)
            )
        return get_object_or_404(queryset, pk=self.kwargs["pk"])

    def _booking_response(self, booking_id: int, http_status=status.HTTP_200_OK) -> Response:
        booking = Booking.objects.select_related("listing", "host", "shopper").get(pk=booking_id)
        return Response(BookingSerializer(booking).data, status=http_status)

    def create(self, request, *args, **kwargs):
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            booking = create_booking_request(
                listing=data["listing"],
                shopper=request.user,
                base_cents=data["base_cents"],
                delivery_fee_cents=data["delivery_fee_cents"],
                payment_method_ref=data["payment_method_ref"],
                start_at=data["start_at"],
                end_at=data["end_at"],
            )
        except DjangoValidationError as exc:
            return error_response(exc)
        return self._booking_response(booking.id, http_status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="hold")
    def hold(self, request, *args, **kwargs):
        """Open the payment hold for this booking (shopper)."""
        booking = self.get_object()
        try:
            actor = actor_for_user(request.user, booking)
            holds.issue_hold(booking.id, actor=actor)
        except ENGINE_ERRORS as exc:
            return error_response(exc)
        return self._booking_response(booking.id)

    @action(detail=True, methods=["post"], url_path="capture")
    def capture(self, request, *args, **kwargs):
        """Approve the request and capture the held payment (host)."""
        booking = self.get_object()
        try:
            actor = actor_for_user(request.user, booking)
            holds.capture_hold(booking.id, actor=actor)
        except ENGINE_ERRORS as exc:
            return error_response(exc)
        return self._booking_response(booking.id)

    @action(detail=True, methods=["post"], url_path="release")
    def release(self, request, *args, **kwargs):
        """Decline the request and release the held payment (host)."""
        booking = self.get_object()
        serializer = ReleaseHoldSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            actor = actor_for_user(request.user, booking)
            result = holds.release_hold(
                booking.id, actor=actor, reason=serializer.validated_data["reason"]
            )
        except ENGINE_ERRORS as exc:
            return error_response(exc)
        response = self._booking_response(booking.id)
        response.data["released"] = result.released
        response.data["already_released"] = result.already_released
        return response

    @action(detail=True, methods=["post"], url_path="deposit/settle")
    def settle_deposit(self, request, *args, **kwargs):
        """Refund, partially refund or forfeit the security deposit (host)."""
        booking = self.get_object()
        serializer = DepositSettlementSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            actor = actor_for_user(request.user, booking)
            settlement = deposits.settle_deposit(
                booking.id,
                actor=actor,
                policy=data["policy"],
                deduction_cents=data.get("deduction_cents"),
                notes=data.get("notes"),
            )
        except ENGINE_ERRORS as exc:
            return error_response(exc)
        response = self._booking_response(booking.id)
        response.data["settlement"] = {
            "refund_cents": settlement.refund_cents,
            "deduction_cents": settlement.deduction_cents,
            "final_status": settlement.final_status,
        }
        return response
