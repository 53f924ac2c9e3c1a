"""Mapbox implementation of the geocoding/routing gateway."""

import logging
from typing import Optional
from urllib.parse import quote

import requests
from django.conf import settings

from services.exceptions import (
    AddressNotFoundError,
    RouteNotFoundError,
    UpstreamUnavailableError,
)
from .base import Coordinates, GeocodingGateway, RouteEstimate

logger = logging.getLogger(__name__)

GEOCODING_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places/{query}.json"
DIRECTIONS_URL = "https://api.mapbox.com/directions/v5/mapbox/driving/{coords}"


class MapboxGateway(GeocodingGateway):

    def __init__(self, token: Optional[str] = None, session: Optional[requests.Session] = None):
        self.token = token if token is not None else settings.MAPBOX_TOKEN
        self.country = getattr(settings, "MAPBOX_COUNTRY", "br")
        self.timeout = getattr(settings, "MAPBOX_TIMEOUT_SECONDS", 10)
        self.session = session or requests.Session()

    def _get(self, url: str, params: dict) -> dict:
        if not self.token:
            raise UpstreamUnavailableError("Maps provider is not configured")

        try:
            response = self.session.get(
                url,
                params={**params, "access_token": self.token},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Mapbox request failed: %s", exc)
            raise UpstreamUnavailableError("Maps provider unreachable") from exc

        if response.status_code >= 500 or response.status_code in (401, 403, 429):
            logger.warning("Mapbox returned HTTP %s", response.status_code)
            raise UpstreamUnavailableError(f"Maps provider error (HTTP {response.status_code})")

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamUnavailableError("Maps provider returned invalid JSON") from exc

    def geocode(self, address: str) -> Coordinates:
        if not address or not address.strip():
            raise AddressNotFoundError("Address is empty")

        data = self._get(
            GEOCODING_URL.format(query=quote(address.strip(), safe="")),
            {"country": self.country, "limit": 1},
        )
        features = data.get("features") or []
        if not features:
            raise AddressNotFoundError(f"Address not found: {address}")

        # Mapbox returns [longitude, latitude]
        lng, lat = features[0]["center"]
        return Coordinates(latitude=float(lat), longitude=float(lng))

    def route(self, origin: Coordinates, destination: Coordinates) -> RouteEstimate:
        coords = (
            f"{origin.longitude},{origin.latitude};"
            f"{destination.longitude},{destination.latitude}"
        )
        data = self._get(DIRECTIONS_URL.format(coords=coords), {"overview": "false"})
        routes = data.get("routes") or []
        if not routes:
            raise RouteNotFoundError("Could not calculate a route between the addresses")

        route = routes[0]
        return RouteEstimate(
            distance_km=route["distance"] / 1000,
            duration_minutes=route["duration"] / 60,
        )
