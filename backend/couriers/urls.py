from django.urls import path
from .views import (
    DeliveryPersonProfileView,
    OnlineStatusView,
    LocationUpdateView,
    CurrentOrderView,
    DeliveryHistoryView,
)

urlpatterns = [
    path("profile/", DeliveryPersonProfileView.as_view(), name="courier-profile"),
    path("status/", OnlineStatusView.as_view(), name="courier-status"),
    path("location/", LocationUpdateView.as_view(), name="courier-location"),
    path("current-order/", CurrentOrderView.as_view(), name="courier-current-order"),
    path("history/", DeliveryHistoryView.as_view(), name="courier-history"),
]
