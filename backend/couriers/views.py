from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from accounts.models import UserRole
from couriers.models import DeliveryPersonProfile
from couriers.serializers import (
    DeliveryPersonProfileSerializer,
    OnlineStatusSerializer,
    LocationUpdateSerializer,
)
from orders.serializers import OrderSerializer
from services.exceptions import ImplausibleLocationError
from services.order_management import delivery_history

from couriers import services


# Utility: Ensure request.user is a delivery person
def require_delivery_person(user):
    if user.role != UserRole.DELIVERY_PERSON:
        return False, Response({"error": "Only delivery persons allowed"}, status=403)
    try:
        profile = user.delivery_profile
        return True, profile
    except DeliveryPersonProfile.DoesNotExist:
        return False, Response({"error": "Delivery person profile not found"}, status=404)


class DeliveryPersonProfileView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_delivery_person(request.user)
        if ok is False:
            return profile  # Response object

        serializer = DeliveryPersonProfileSerializer(profile)
        return Response(serializer.data)

    def post(self, request):
        ok, profile = require_delivery_person(request.user)
        if ok is False:
            return profile

        profile.vehicle_type = request.data.get("vehicle_type", profile.vehicle_type)
        profile.save(update_fields=["vehicle_type"])

        serializer = DeliveryPersonProfileSerializer(profile)
        return Response(serializer.data, status=200)


class OnlineStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_delivery_person(request.user)
        if ok is False:
            return profile

        return Response({
            "is_online": profile.is_online,
            "rejections_today": profile.rejections_today,
        })

    def put(self, request):
        ok, profile = require_delivery_person(request.user)
        if ok is False:
            return profile

        serializer = OnlineStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        is_online = serializer.validated_data["is_online"]

        services.set_online_status(profile, is_online)

        return Response({
            "message": "You are now online" if is_online else "You are now offline",
            "is_online": is_online,
        })


#    WebSocket location_update is the main path; HTTP stays as fallback.
class LocationUpdateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_delivery_person(request.user)
        if ok is False:
            return profile

        return Response({
            "latitude": float(profile.current_latitude) if profile.current_latitude is not None else None,
            "longitude": float(profile.current_longitude) if profile.current_longitude is not None else None,
            "last_updated": profile.last_location_update,
            "is_online": profile.is_online,
        })

    def post(self, request):
        ok, profile = require_delivery_person(request.user)
        if ok is False:
            return profile

        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        lat = serializer.validated_data["latitude"]
        lon = serializer.validated_data["longitude"]

        try:
            services.update_location(profile, lat, lon)
        except ImplausibleLocationError as exc:
            return Response(
                {"success": False, "error": "invalid_input", "message": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response({
            "message": "Location updated",
            "latitude": float(lat),
            "longitude": float(lon),
        })


class CurrentOrderView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_delivery_person(request.user)
        if ok is False:
            return profile

        order = services.get_current_order(request.user.pk)
        if not order:
            return Response({"message": "No active order"}, status=404)

        return Response(OrderSerializer(order).data)


class DeliveryHistoryView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_delivery_person(request.user)
        if ok is False:
            return profile

        delivered = delivery_history(request.user)
        serializer = OrderSerializer(delivered, many=True)

        return Response({"count": len(serializer.data), "orders": serializer.data})
