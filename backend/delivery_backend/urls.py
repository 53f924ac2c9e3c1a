from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check),  # Health check endpoint

    # Authentication endpoints (register, login, refresh)
    path('api/auth/', include('accounts.urls')),

    # Delivery person APIs (profile, online status, location, history)
    path('api/courier/', include('couriers.urls')),

    # Orders, offers and the sweep trigger
    path('api/orders/', include('orders.urls')),
]
