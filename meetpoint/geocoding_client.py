"""Nominatim (OpenStreetMap) forward and reverse geocoding."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests

from . import config
from .http import HttpClient, UpstreamError
from .models import Coordinates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeocodingResult:
    location: Coordinates
    display_name: str


class GeocodingClient:
    def __init__(self, http_client: Optional[HttpClient] = None, user_agent: Optional[str] = None) -> None:
        self.http = http_client or HttpClient()
        self.user_agent = user_agent or config.GEOCODE_USER_AGENT

    def geocode_address(self, address: str) -> Optional[GeocodingResult]:
        """Best match for a free-text address, or None."""
        if not address or not address.strip():
            return None
        params = {"q": address.strip(), "format": "json", "limit": 1}
        try:
            response = self.http.get_json(
                config.GEOCODE_SEARCH_URL, params, extra_headers={"User-Agent": self.user_agent}
            )
        except (UpstreamError, requests.RequestException) as exc:
            logger.error("Geocoding failed for %r: %s", address, exc)
            return None
        result = parse_search_result(response)
        if result is None:
            logger.info("No geocoding match for %r", address)
        return result

    def reverse_geocode(self, lat: float, lon: float) -> Optional[str]:
        params = {"lat": lat, "lon": lon, "format": "json"}
        try:
            response = self.http.get_json(
                config.GEOCODE_REVERSE_URL, params, extra_headers={"User-Agent": self.user_agent}
            )
        except (UpstreamError, requests.RequestException) as exc:
            logger.error("Reverse geocoding failed for %.4f,%.4f: %s", lat, lon, exc)
            return None
        return parse_reverse_result(response)


def parse_search_result(response: Any) -> Optional[GeocodingResult]:
    if not isinstance(response, list) or not response or not isinstance(response[0], dict):
        return None
    first = response[0]
    try:
        location = Coordinates(float(first["lat"]), float(first["lon"]))
    except (KeyError, TypeError, ValueError):
        return None
    name = first.get("display_name")
    return GeocodingResult(location=location, display_name=name if isinstance(name, str) else "")


def parse_reverse_result(response: Any) -> Optional[str]:
    if not isinstance(response, dict):
        return None
    name = response.get("display_name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return None


def short_area_name(display_name: str, parts: int = 2) -> str:
    """'Lalpur, Ranchi, Jharkhand, India' -> 'Lalpur, Ranchi'."""
    pieces = [p.strip() for p in display_name.split(",") if p.strip()]
    return ", ".join(pieces[:parts])
