from django.db import models
from django.conf import settings

User = settings.AUTH_USER_MODEL


class DeliveryPersonProfile(models.Model):
    """Dispatch-relevant state of a delivery person"""

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='delivery_profile')
    vehicle_type = models.CharField(max_length=30, blank=True, null=True)

    # Availability & location
    is_online = models.BooleanField(default=False)
    current_latitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    current_longitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    last_location_update = models.DateTimeField(null=True, blank=True)

    # Dispatch ranking: lower score is offered orders first.
    # Only ever increased, by reject/expire penalties.
    priority_score = models.IntegerField(default=0)
    rejections_today = models.IntegerField(default=0)
    rejections_reset_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'delivery_person_profiles'
        indexes = [
            models.Index(fields=['is_online', 'priority_score'], name='dp_online_priority_idx'),
        ]

    def __str__(self):
        return f"{self.user.username} ({'online' if self.is_online else 'offline'})"

    @property
    def has_location(self) -> bool:
        return self.current_latitude is not None and self.current_longitude is not None
