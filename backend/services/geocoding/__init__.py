"""
Geocoding/routing gateway.

The concrete provider is chosen by settings.GEOCODING_GATEWAY (dotted path).
"""

from django.conf import settings
from django.utils.module_loading import import_string

from .base import Coordinates, GeocodingGateway, RouteEstimate


def get_geocoding_gateway() -> GeocodingGateway:
    gateway_class = import_string(settings.GEOCODING_GATEWAY)
    return gateway_class()


__all__ = [
    "Coordinates",
    "GeocodingGateway",
    "RouteEstimate",
    "get_geocoding_gateway",
]
