"""Shared builders for service tests."""

from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from accounts.models import User, UserRole
from couriers.models import DeliveryPersonProfile
from orders.models import Order, OrderStatus, PaymentMethod
from services.geocoding import Coordinates, GeocodingGateway, RouteEstimate

# Praca da Se, Sao Paulo
PICKUP_LAT = Decimal("-23.550500")
PICKUP_LON = Decimal("-46.633300")

# ~1.11 km per 0.01 degree of latitude
KM_PER_CENTIDEGREE = 1.11


def make_client(username="client"):
    return User.objects.create_user(
        username=username,
        password="pass1234",
        role=UserRole.CLIENT,
    )


def make_courier(username, km_north=1.0, priority_score=0, is_online=True, **profile_fields):
    user = User.objects.create_user(
        username=username,
        password="pass1234",
        role=UserRole.DELIVERY_PERSON,
    )
    offset = Decimal(str(round(km_north / KM_PER_CENTIDEGREE * 0.01, 6)))
    DeliveryPersonProfile.objects.create(
        user=user,
        vehicle_type="motorcycle",
        is_online=is_online,
        current_latitude=PICKUP_LAT + offset,
        current_longitude=PICKUP_LON,
        last_location_update=timezone.now() - timedelta(minutes=5),
        priority_score=priority_score,
        **profile_fields,
    )
    return user


def make_order(client, status=OrderStatus.PENDING, **fields):
    defaults = dict(
        origin_address="Praca da Se, Sao Paulo",
        origin_latitude=PICKUP_LAT,
        origin_longitude=PICKUP_LON,
        destination_address="Avenida Paulista 1000, Sao Paulo",
        destination_latitude=Decimal("-23.565000"),
        destination_longitude=Decimal("-46.652000"),
        distance_km=Decimal("10.00"),
        duration_minutes=25,
        delivery_fee=Decimal("25.00"),
        platform_fee=Decimal("5.00"),
        price=Decimal("30.00"),
        payment_method=PaymentMethod.CASH,
        status=status,
    )
    defaults.update(fields)
    return Order.objects.create(client=client, **defaults)


class FakeGateway(GeocodingGateway):
    """In-process maps provider: fixed coordinates, fixed route."""

    def __init__(self, distance_km=10.0, duration_minutes=25.0, error=None):
        self.distance_km = distance_km
        self.duration_minutes = duration_minutes
        self.error = error
        self.geocoded = []

    def geocode(self, address):
        if self.error is not None:
            raise self.error
        self.geocoded.append(address)
        if len(self.geocoded) % 2:
            return Coordinates(latitude=float(PICKUP_LAT), longitude=float(PICKUP_LON))
        return Coordinates(latitude=-23.565, longitude=-46.652)

    def route(self, origin, destination):
        return RouteEstimate(distance_km=self.distance_km, duration_minutes=self.duration_minutes)
