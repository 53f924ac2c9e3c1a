from django.contrib import admin
from couriers.models import DeliveryPersonProfile


@admin.register(DeliveryPersonProfile)
class DeliveryPersonProfileAdmin(admin.ModelAdmin):
    """Admin panel for managing delivery person profiles"""

    list_display = [
        "user",
        "vehicle_type",
        "is_online",
        "priority_score",
        "rejections_today",
        "last_location_update",
    ]

    list_filter = [
        "is_online",
        "vehicle_type",
    ]

    search_fields = [
        "user__username",
    ]

    readonly_fields = [
        "last_location_update",
        "rejections_reset_at",
    ]

    ordering = ("priority_score", "user__username")
