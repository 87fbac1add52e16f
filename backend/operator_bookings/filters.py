import django_filters as filters
from django.db.models import Q
from django.utils import timezone

from bookings.models import Booking


class OperatorBookingFilter(filters.FilterSet):
    hold_status = filters.CharFilter(field_name="hold_status", lookup_expr="iexact")
    deposit_status = filters.CharFilter(field_name="deposit_status", lookup_expr="iexact")
    created_at_after = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_at_before = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")
    host = filters.NumberFilter(field_name="host_id")
    shopper = filters.NumberFilter(field_name="shopper_id")
    payout_processed = filters.BooleanFilter(field_name="payout_processed")
    payout_on_hold = filters.BooleanFilter(method="filter_payout_on_hold")

    class Meta:
        model = Booking
        fields = [
            "hold_status",
            "deposit_status",
            "host",
            "shopper",
            "payout_processed",
            "payout_on_hold",
        ]

    def filter_payout_on_hold(self, queryset, name, value):
        if value is None:
            return queryset

        on_hold = Q(payout_hold_until__gt=timezone.now())
        if value:
            return queryset.filter(on_hold)
        return queryset.exclude(on_hold)
