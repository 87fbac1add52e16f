from django.urls import include, path
from rest_framework.routers import DefaultRouter

from core.pricing import pricing_summary

from .api import BookingViewSet

app_name = "bookings"

router = DefaultRouter()
router.register("", BookingViewSet, basename="booking")

urlpatterns = [
    path("pricing/", pricing_summary, name="pricing"),
    path("", include(router.urls)),
]
