from rest_framework import serializers

from accounts.serializers import UserSerializer
from services.matching import remaining_seconds
from .models import Order, OrderOffer, OrderStatus, PaymentMethod


class OrderSerializer(serializers.ModelSerializer):
    """Serializer for orders"""
    client = UserSerializer(read_only=True)
    delivery_person = UserSerializer(read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'client', 'delivery_person',
            'origin_address', 'origin_latitude', 'origin_longitude',
            'destination_address', 'destination_latitude', 'destination_longitude',
            'distance_km', 'duration_minutes', 'notes',
            'delivery_fee', 'platform_fee', 'price', 'payment_method',
            'status', 'created_at', 'accepted_at', 'picked_up_at',
            'in_transit_at', 'completed_at', 'cancelled_at',
        ]
        read_only_fields = fields


class OrderCreateSerializer(serializers.Serializer):
    """Serializer for creating orders"""
    origin_address = serializers.CharField(max_length=500)
    destination_address = serializers.CharField(max_length=500)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.CREDIT_CARD)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class QuoteRequestSerializer(serializers.Serializer):
    origin_address = serializers.CharField(max_length=500)
    destination_address = serializers.CharField(max_length=500)


class OrderStatusUpdateSerializer(serializers.Serializer):
    """Delivery progress reported by the assigned delivery person"""
    status = serializers.ChoiceField(choices=[
        OrderStatus.PICKED_UP,
        OrderStatus.IN_TRANSIT,
        OrderStatus.DELIVERED,
    ])


class OrderOfferSerializer(serializers.ModelSerializer):
    """
    Live offer as shown to the delivery person.

    remaining_seconds is computed against the `now` passed in context so the
    app does not depend on its own clock.
    """
    order = OrderSerializer(read_only=True)
    remaining_seconds = serializers.SerializerMethodField()

    class Meta:
        model = OrderOffer
        fields = [
            'id', 'order', 'distance_to_pickup_km', 'attempt_number',
            'status', 'offered_at', 'expires_at', 'remaining_seconds',
        ]
        read_only_fields = fields

    def get_remaining_seconds(self, obj):
        return remaining_seconds(obj, self.context['now'])
