from django.conf import settings
from django.urls import include, path

from payments.webhooks import stripe_webhook

urlpatterns = [
    path("api/bookings/", include(("bookings.urls", "bookings"), namespace="bookings")),
    path("api/payments/webhook/", stripe_webhook, name="stripe_webhook"),
]

if settings.ENABLE_OPERATOR:
    urlpatterns.append(path("api/operator/", include("operator_core.urls")))
