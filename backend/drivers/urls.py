from django.urls import path
from .views import (
    DriverStatusView,
    DriverLocationUpdateView,
)

urlpatterns = [
    path("status/", DriverStatusView.as_view(), name="driver-status"),
    path("location/", DriverLocationUpdateView.as_view(), name="driver-location"),
]
