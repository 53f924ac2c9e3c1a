"""Geocoding/routing gateway contract."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class RouteEstimate:
    distance_km: float
    duration_minutes: float


class GeocodingGateway:
    """
    Maps provider used by order creation and price quotes.

    Implementations raise AddressNotFoundError / RouteNotFoundError when the
    provider answers but has no result, and UpstreamUnavailableError when the
    provider cannot be reached or fails.
    """

    def geocode(self, address: str) -> Coordinates:
        raise NotImplementedError

    def route(self, origin: Coordinates, destination: Coordinates) -> RouteEstimate:
        raise NotImplementedError
