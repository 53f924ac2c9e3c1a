from rest_framework import serializers
from couriers.models import DeliveryPersonProfile
from accounts.serializers import UserSerializer


class DeliveryPersonProfileSerializer(serializers.ModelSerializer):
    """
    Full delivery person profile serializer
    """
    user = UserSerializer(read_only=True)

    class Meta:
        model = DeliveryPersonProfile
        fields = [
            "id",
            "user",
            "vehicle_type",
            "is_online",
            "current_latitude",
            "current_longitude",
            "last_location_update",
            "priority_score",
            "rejections_today",
        ]
        read_only_fields = [
            "id",
            "is_online",
            "current_latitude",
            "current_longitude",
            "last_location_update",
            "priority_score",
            "rejections_today",
        ]


class OnlineStatusSerializer(serializers.Serializer):
    """
    Serializer for switching availability on/off.
    """
    is_online = serializers.BooleanField()


class LocationUpdateSerializer(serializers.Serializer):
    """
    Serializer for updating delivery person GPS location.
    """
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-90, max_value=90)
    longitude = serializers.DecimalField(max_digits=10, decimal_places=6, min_value=-180, max_value=180)
