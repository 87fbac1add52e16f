from django.urls import path

from operator_bookings.api import (
    OperatorBookingDetailView,
    OperatorBookingListView,
    OperatorDepositSettleView,
    OperatorPayoutHoldView,
    OperatorReleasePayoutView,
)

app_name = "operator_bookings"

urlpatterns = [
    path("", OperatorBookingListView.as_view(), name="operator_booking_list"),
    path("<int:pk>/", OperatorBookingDetailView.as_view(), name="operator_booking_detail"),
    path(
        "<int:pk>/payout-hold/",
        OperatorPayoutHoldView.as_view(),
        name="operator_booking_payout_hold",
    ),
    path(
        "<int:pk>/release-payout/",
        OperatorReleasePayoutView.as_view(),
        name="operator_booking_release_payout",
    ),
    path(
        "<int:pk>/deposit/settle/",
        OperatorDepositSettleView.as_view(),
        name="operator_booking_deposit_settle",
    ),
]
