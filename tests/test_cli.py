import json

import pytest

import run
from meetpoint.gemini_client import BaseGeminiClient, GeminiCallResult, NoopGeminiClient
from meetpoint.geocoding_client import GeocodingResult
from meetpoint.models import Coordinates


class FakePlacesClient:
    def __init__(self):
        self.calls = []

    def search_nearby(self, lat, lon, radius_m, category=None):
        self.calls.append((lat, lon, radius_m, category))
        if category != "cafe":
            return []
        return [
            {
                "placeId": "c1",
                "name": "Lalpur Cafe",
                "geometry": {"location": {"lat": 23.357, "lng": 85.317}},
                "types": ["cafe"],
                "rating": 4.3,
                "userRatingsTotal": 40,
            }
        ]


class FakeRoutesClient:
    def get_route(self, origin, destination):
        return None


@pytest.fixture
def fake_clients(monkeypatch):
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "dummy")
    places = FakePlacesClient()
    clients = run.Clients(
        places=places,
        routes=FakeRoutesClient(),
        weather=None,
        gemini=NoopGeminiClient(),
        cache=None,
    )
    monkeypatch.setattr(run, "build_clients", lambda api_key, cache_path, no_cache: clients)
    return places


def test_cli_midpoint_mode_prints_json(fake_clients, capsys):
    code = run.main(["--me", "23.3441,85.3096", "--them", "23.37,85.325", "--mode", "midpoint", "--types", "cafe"])
    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["mode"] == "midpoint"
    assert output["center"]["latitude"] == pytest.approx(23.357, abs=1e-3)
    assert [v["id"] for v in output["venues"]] == ["google-c1"]
    assert output["weather"] is None


def test_cli_route_mode_with_curation_fallback(fake_clients, capsys):
    code = run.main(
        ["--me", "23.3441,85.3096", "--them", "23.37,85.325", "--vibe", "date", "--curate", "quiet date"]
    )
    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["route_fallback"] is True
    assert len(output["route_points"]) == 3
    assert output["curation"]["fallback"] is True
    assert [v["id"] for v in output["curation"]["venues"]] == ["google-c1"]
    assert output["discovered"] == []
    assert output["curation"]["area"] == "the area between us"


def test_cli_rejects_bad_arguments(fake_clients, capsys):
    assert run.main(["--me", "23.3441", "--them", "23.37,85.325"]) == 1
    assert run.main(["--me", "1,2", "--them", "3,4", "--diet", "keto"]) == 1
    assert "Invalid arguments" in capsys.readouterr().err


def test_cli_requires_maps_key(monkeypatch, capsys):
    monkeypatch.delenv("GOOGLE_MAPS_API_KEY", raising=False)
    monkeypatch.setattr(run, "load_env", lambda: None)
    assert run.main(["--me", "1,2", "--them", "3,4"]) == 1
    assert "GOOGLE_MAPS_API_KEY" in capsys.readouterr().err


class FakeGeminiClient(BaseGeminiClient):
    def __init__(self, handlers):
        self.handlers = handlers
        self.prompts = {}

    def generate_json(self, prompt_name, prompt_text, expect="object", temperature=0.2, validator=None):
        self.prompts[prompt_name] = prompt_text
        handler = self.handlers.get(prompt_name)
        if handler is None:
            return GeminiCallResult("invalid_json", "", None, "fake", prompt_name, "h", "no_json_object_found")
        return GeminiCallResult("ok", "", handler(), "fake", prompt_name, "h")


class FakeGeocodingClient:
    def __init__(self):
        self.lookups = []

    def geocode_address(self, address):
        self.lookups.append(address)
        if address != "Lalpur":
            return None
        return GeocodingResult(location=Coordinates(23.37, 85.325), display_name="Lalpur, Ranchi, India")

    def reverse_geocode(self, lat, lon):
        return "Kadru, Ranchi, Jharkhand, 834002, India"


def _install(monkeypatch, gemini, geocoding):
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "dummy")
    places = FakePlacesClient()
    clients = run.Clients(
        places=places,
        routes=FakeRoutesClient(),
        weather=None,
        gemini=gemini,
        cache=None,
        geocoding=geocoding,
    )
    monkeypatch.setattr(run, "build_clients", lambda api_key, cache_path, no_cache: clients)
    return places


def test_cli_ask_resolves_their_location_and_filters(monkeypatch, capsys):
    gemini = FakeGeminiClient(
        {
            "parse_query": lambda: {
                "theirLocationName": "Lalpur",
                "venueTypes": ["cafe"],
                "vibe": ["date"],
                "diet": "any",
                "searchMode": "midpoint",
            },
            "discover_new": lambda: [],
        }
    )
    geocoding = FakeGeocodingClient()
    _install(monkeypatch, gemini, geocoding)

    code = run.main(["--me", "23.3441,85.3096", "--ask", "date cafe near Lalpur", "--curate", "cosy"])
    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert geocoding.lookups == ["Lalpur"]
    assert output["mode"] == "midpoint"
    assert output["intent"]["types"] == ["cafe"]
    assert output["intent"]["vibe"] == ["date"]
    assert output["center"]["latitude"] == pytest.approx(23.357, abs=1e-3)
    assert [v["id"] for v in output["venues"]] == ["google-c1"]
    assert output["curation"]["area"] == "Kadru, Ranchi"
    assert "Kadru, Ranchi" in gemini.prompts["discover_new"]


def test_cli_ask_flags_override_intent(monkeypatch, capsys):
    gemini = FakeGeminiClient(
        {"parse_query": lambda: {"theirLocationName": "Lalpur", "venueTypes": ["bar"], "searchMode": "closer_to_me"}}
    )
    _install(monkeypatch, gemini, FakeGeocodingClient())

    code = run.main(
        ["--me", "23.3441,85.3096", "--them", "23.37,85.325", "--ask", "bar", "--types", "cafe", "--mode", "route"]
    )
    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["mode"] == "route"
    assert [v["id"] for v in output["venues"]] == ["google-c1"]


def test_cli_ask_unknown_place_is_an_error(monkeypatch, capsys):
    gemini = FakeGeminiClient({"parse_query": lambda: {"theirLocationName": "Atlantis"}})
    _install(monkeypatch, gemini, FakeGeocodingClient())

    assert run.main(["--me", "23.3441,85.3096", "--ask", "meet near Atlantis"]) == 1
    assert "--them" in capsys.readouterr().err


def test_cli_requires_them_or_ask(fake_clients, capsys):
    assert run.main(["--me", "23.3441,85.3096"]) == 1
    assert "Invalid arguments" in capsys.readouterr().err
