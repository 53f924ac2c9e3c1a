from unittest.mock import MagicMock

import requests
from django.test import SimpleTestCase, override_settings

from services.exceptions import (
    AddressNotFoundError,
    RouteNotFoundError,
    UpstreamUnavailableError,
)
from services.geocoding import Coordinates, get_geocoding_gateway
from services.geocoding.mapbox import MapboxGateway


def fake_response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    return response


class MapboxGatewayTests(SimpleTestCase):

    def setUp(self):
        self.session = MagicMock()
        self.gateway = MapboxGateway(token="tok", session=self.session)

    def test_geocode_reads_lng_lat_pair(self):
        self.session.get.return_value = fake_response(payload={
            "features": [{"center": [-46.6333, -23.5505]}],
        })

        coords = self.gateway.geocode("Praca da Se")

        self.assertEqual(coords, Coordinates(latitude=-23.5505, longitude=-46.6333))
        params = self.session.get.call_args[1]["params"]
        self.assertEqual(params["access_token"], "tok")

    def test_geocode_without_match(self):
        self.session.get.return_value = fake_response(payload={"features": []})

        with self.assertRaises(AddressNotFoundError):
            self.gateway.geocode("nowhere at all")

    def test_route_converts_units(self):
        self.session.get.return_value = fake_response(payload={
            "routes": [{"distance": 12345.0, "duration": 1500.0}],
        })

        route = self.gateway.route(Coordinates(-23.55, -46.63), Coordinates(-23.56, -46.65))

        self.assertAlmostEqual(route.distance_km, 12.345)
        self.assertAlmostEqual(route.duration_minutes, 25.0)

    def test_route_not_found(self):
        self.session.get.return_value = fake_response(payload={"routes": []})

        with self.assertRaises(RouteNotFoundError):
            self.gateway.route(Coordinates(0, 0), Coordinates(1, 1))

    def test_transport_and_server_errors_are_upstream_failures(self):
        cases = (
            requests.ConnectionError("boom"),
            fake_response(status_code=502),
            fake_response(status_code=401),
        )
        for outcome in cases:
            with self.subTest(outcome=outcome):
                if isinstance(outcome, Exception):
                    self.session.get.side_effect = outcome
                else:
                    self.session.get.side_effect = None
                    self.session.get.return_value = outcome
                with self.assertRaises(UpstreamUnavailableError):
                    self.gateway.geocode("Praca da Se")

    def test_missing_token_fails_before_any_request(self):
        gateway = MapboxGateway(token="", session=self.session)

        with self.assertRaises(UpstreamUnavailableError):
            gateway.geocode("Praca da Se")
        self.session.get.assert_not_called()

    @override_settings(GEOCODING_GATEWAY="services.tests.helpers.FakeGateway")
    def test_gateway_class_comes_from_settings(self):
        self.assertEqual(type(get_geocoding_gateway()).__name__, "FakeGateway")
