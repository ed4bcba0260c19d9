import json

import pytest
import requests

from meetpoint import config
from meetpoint.cache import Cache
from meetpoint.geo import encode_polyline
from meetpoint.geocoding_client import GeocodingClient, short_area_name
from meetpoint.http import HttpClient, UpstreamError
from meetpoint.models import Coordinates
from meetpoint.places_client import PlacesClient
from meetpoint.routes_client import RoutesClient
from meetpoint.weather_client import WeatherClient


class FakeResponse:
    def __init__(self, payload=None, status_code=200, headers=None, text=None):
        self._payload = payload
        self.status_code = status_code
        self.headers = headers or {}
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("not json")
        return self._payload


class FakeSession:
    """Serves queued responses per URL; the last one repeats."""

    def __init__(self, responses_by_url):
        self.responses_by_url = {url: list(r) for url, r in responses_by_url.items()}
        self.calls = []

    def _next(self, url):
        queue = self.responses_by_url.get(url) or [FakeResponse({})]
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append(("POST", url, json.loads(data), headers, timeout))
        return self._next(url)

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append(("GET", url, params, headers, timeout))
        return self._next(url)


def make_http_client(responses_by_url, api_key="dummy", retry_max=3):
    client = HttpClient(
        api_key=api_key,
        timeout=1,
        retry_max=retry_max,
        backoff_base=0.0,
        backoff_max=0.0,
    )
    client.session = FakeSession(responses_by_url)
    return client


URL = "https://example.test/api"


def test_post_json_sets_google_headers():
    client = make_http_client({URL: [FakeResponse({"ok": True})]})
    assert client.post_json(URL, {"a": 1}, field_mask="places.id") == {"ok": True}
    _, _, body, headers, timeout = client.session.calls[0]
    assert body == {"a": 1}
    assert headers["X-Goog-Api-Key"] == "dummy"
    assert headers["X-Goog-FieldMask"] == "places.id"
    assert timeout == 1


def test_retries_transient_status_then_succeeds():
    client = make_http_client({URL: [FakeResponse({}, 503), FakeResponse({}, 429), FakeResponse({"ok": 1})]})
    assert client.post_json(URL, {}) == {"ok": 1}
    assert len(client.session.calls) == 3


def test_retries_exhausted_raises_upstream_error():
    client = make_http_client({URL: [FakeResponse({}, 500)]}, retry_max=2)
    with pytest.raises(UpstreamError) as excinfo:
        client.get_json(URL)
    assert excinfo.value.status == 500
    assert len(client.session.calls) == 2


def test_client_error_not_retried():
    client = make_http_client({URL: [FakeResponse({"error": "bad"}, 403)]})
    with pytest.raises(UpstreamError) as excinfo:
        client.post_json(URL, {})
    assert excinfo.value.status == 403
    assert len(client.session.calls) == 1


def test_non_json_body_is_upstream_error():
    client = make_http_client({URL: [FakeResponse(None, 200, text="<html>")]})
    with pytest.raises(UpstreamError):
        client.get_json(URL)


def test_transport_error_reraised_after_retries():
    client = make_http_client({URL: [requests.ConnectionError("down")]}, retry_max=2)
    with pytest.raises(requests.ConnectionError):
        client.get_json(URL)
    assert len(client.session.calls) == 2


def _places_payload():
    return {
        "places": [
            {
                "id": "p1",
                "displayName": {"text": "Cafe One"},
                "location": {"latitude": 23.35, "longitude": 85.31},
                "types": ["cafe"],
            }
        ]
    }


def test_places_client_uses_cache(tmp_path):
    cache = Cache(str(tmp_path / "cache.db"))
    try:
        http_client = make_http_client({config.PLACES_NEARBY_SEARCH_URL: [FakeResponse(_places_payload())]})
        places_client = PlacesClient(http_client, cache)

        first = places_client.search_nearby(23.35, 85.31, 3000, "cafe")
        second = places_client.search_nearby(23.35, 85.31, 3000, "cafe")
        assert first == second
        assert [p["placeId"] for p in first] == ["p1"]
        assert len(http_client.session.calls) == 1

        places_client.search_nearby(23.35, 85.31, 3000, "bar")
        assert len(http_client.session.calls) == 2
        _, _, body, headers, _ = http_client.session.calls[1]
        assert body["includedTypes"] == ["bar"]
        assert headers["X-Goog-FieldMask"] == config.PLACES_FIELD_MASK
    finally:
        cache.close()


def test_places_client_degrades_to_empty_list():
    failing = make_http_client({config.PLACES_NEARBY_SEARCH_URL: [FakeResponse({}, 500)]}, retry_max=1)
    assert PlacesClient(failing).search_nearby(1.0, 2.0, 1000, "cafe") == []

    no_key = make_http_client({}, api_key=None)
    assert PlacesClient(no_key).search_nearby(1.0, 2.0, 1000, "cafe") == []
    assert no_key.session.calls == []


def test_routes_client_decodes_route():
    origin = Coordinates(23.3441, 85.3096)
    destination = Coordinates(23.37, 85.325)
    encoded = encode_polyline([origin, destination])
    payload = {"routes": [{"distanceMeters": 3300, "duration": "420s", "polyline": {"encodedPolyline": encoded}}]}
    http_client = make_http_client({config.ROUTES_COMPUTE_URL: [FakeResponse(payload)]})

    route = RoutesClient(http_client).get_route(origin, destination)
    assert route is not None
    assert len(route.points) == 2
    assert route.duration_seconds == 420.0
    _, _, body, headers, _ = http_client.session.calls[0]
    assert body["travelMode"] == "DRIVE"
    assert headers["X-Goog-FieldMask"] == config.ROUTES_FIELD_MASK


def test_routes_client_returns_none_on_failure():
    origin = Coordinates(0.0, 0.0)
    destination = Coordinates(1.0, 1.0)
    failing = make_http_client({config.ROUTES_COMPUTE_URL: [FakeResponse({}, 400)]})
    assert RoutesClient(failing).get_route(origin, destination) is None

    empty = make_http_client({config.ROUTES_COMPUTE_URL: [FakeResponse({"routes": []})]})
    assert RoutesClient(empty).get_route(origin, destination) is None


def test_weather_client():
    payload = {"current": {"temperature_2m": 33.4, "weather_code": 2}}
    http_client = make_http_client({config.WEATHER_FORECAST_URL: [FakeResponse(payload)]}, api_key=None)
    weather = WeatherClient(http_client).get_current_weather(23.35, 85.31)
    assert weather is not None
    assert weather.temperature == 33.0
    assert weather.is_raining is False
    _, _, params, _, _ = http_client.session.calls[0]
    assert params["current"] == "temperature_2m,weather_code"

    failing = make_http_client({config.WEATHER_FORECAST_URL: [FakeResponse({}, 502)]}, retry_max=1)
    assert WeatherClient(failing).get_current_weather(0.0, 0.0) is None


def test_http_client_defaults_follow_config(monkeypatch):
    monkeypatch.setattr(config, "HTTP_TIMEOUT_SECONDS", 3)
    monkeypatch.setattr(config, "HTTP_RETRY_MAX", 5)
    client = HttpClient()
    assert client.timeout == 3
    assert client.retry_max == 5


def test_geocoding_client_forward_and_reverse():
    search = [{"lat": "23.3608", "lon": "85.3367", "display_name": "Lalpur, Ranchi, Jharkhand, India"}]
    reverse = {"display_name": "Kadru, Ranchi, Jharkhand, 834002, India"}
    http_client = make_http_client(
        {
            config.GEOCODE_SEARCH_URL: [FakeResponse(search)],
            config.GEOCODE_REVERSE_URL: [FakeResponse(reverse)],
        },
        api_key=None,
    )
    geocoder = GeocodingClient(http_client)

    found = geocoder.geocode_address(" Lalpur ")
    assert found.location == Coordinates(23.3608, 85.3367)
    assert found.display_name.startswith("Lalpur")
    _, _, params, headers, _ = http_client.session.calls[0]
    assert params["q"] == "Lalpur"
    assert params["limit"] == 1
    assert headers["User-Agent"] == config.GEOCODE_USER_AGENT

    name = geocoder.reverse_geocode(23.35, 85.32)
    assert name == "Kadru, Ranchi, Jharkhand, 834002, India"
    assert short_area_name(name) == "Kadru, Ranchi"


def test_geocoding_client_degrades_to_none():
    empty = make_http_client({config.GEOCODE_SEARCH_URL: [FakeResponse([])]}, api_key=None)
    assert GeocodingClient(empty).geocode_address("Atlantis") is None
    assert GeocodingClient(empty).geocode_address("   ") is None

    bad_coords = make_http_client({config.GEOCODE_SEARCH_URL: [FakeResponse([{"lat": "north"}])]}, api_key=None)
    assert GeocodingClient(bad_coords).geocode_address("x") is None

    failing = make_http_client(
        {config.GEOCODE_SEARCH_URL: [FakeResponse({}, 503)], config.GEOCODE_REVERSE_URL: [FakeResponse({}, 503)]},
        api_key=None,
        retry_max=1,
    )
    assert GeocodingClient(failing).geocode_address("Lalpur") is None
    assert GeocodingClient(failing).reverse_geocode(1.0, 2.0) is None

    down = make_http_client({config.GEOCODE_REVERSE_URL: [requests.ConnectionError("down")]}, api_key=None, retry_max=1)
    assert GeocodingClient(down).reverse_geocode(1.0, 2.0) is None

    no_name = make_http_client({config.GEOCODE_REVERSE_URL: [FakeResponse({"error": "Unable to geocode"})]}, api_key=None)
    assert GeocodingClient(no_name).reverse_geocode(0.0, 0.0) is None
