from django.urls import include, path

urlpatterns = [
    path("bookings/", include("operator_bookings.urls")),
    path("promotions/", include("operator_promotions.urls")),
]
