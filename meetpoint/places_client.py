"""Places API client with caching and response parsing."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from . import config
from .cache import Cache, make_request_cache_key
from .http import HttpClient, UpstreamError

logger = logging.getLogger(__name__)


class PlacesClient:
    def __init__(
        self,
        http_client: HttpClient,
        cache: Optional[Cache] = None,
        no_cache: bool = False,
        field_mask: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> None:
        self.http = http_client
        self.cache = cache
        self.no_cache = no_cache or cache is None
        self.field_mask = field_mask or config.PLACES_FIELD_MASK
        self.max_results = max_results

    def search_nearby(
        self,
        lat: float,
        lon: float,
        radius_m: int,
        category: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Nearby search returning records in the provider contract shape.

        Upstream failures are logged and reported as an empty list.
        """
        if not self.http.api_key:
            logger.error("Places API key not configured; skipping search for %s", category)
            return []

        max_results = self.max_results if self.max_results is not None else config.PLACES_MAX_RESULTS
        body = build_nearby_search_body(lat, lon, radius_m, category, max_results)
        key = make_request_cache_key(config.PLACES_NEARBY_SEARCH_URL, self.field_mask, body)
        if not self.no_cache:
            cached = self.cache.get_search_cache(key)
            if cached is not None:
                logger.debug("Places cache hit for %s at %.4f,%.4f", category, lat, lon)
                return parse_places_response(cached)

        try:
            response = self.http.post_json(config.PLACES_NEARBY_SEARCH_URL, body, self.field_mask)
        except (UpstreamError, requests.RequestException) as exc:
            logger.error("Places search failed for %s at %.4f,%.4f: %s", category, lat, lon, exc)
            return []

        if not self.no_cache:
            self.cache.set_search_cache(key, response)
        places = parse_places_response(response)
        logger.info("Places: %s result(s) for %s near %.4f,%.4f", len(places), category, lat, lon)
        return places


def build_nearby_search_body(
    lat: float,
    lon: float,
    radius_m: int,
    category: Optional[str],
    max_results: Optional[int] = None,
) -> Dict[str, Any]:
    if max_results is None:
        max_results = config.PLACES_MAX_RESULTS
    body: Dict[str, Any] = {
        "maxResultCount": int(max_results),
        "locationRestriction": {
            "circle": {
                "center": {"latitude": lat, "longitude": lon},
                "radius": float(radius_m),
            }
        },
    }
    if category:
        body["includedTypes"] = [category]
    return body


# Adapter/mapper for Places response fields

def parse_places_response(response: Dict[str, Any]) -> List[Dict[str, Any]]:
    places = response.get("places") if isinstance(response, dict) else None
    if not isinstance(places, list):
        return []
    parsed: List[Dict[str, Any]] = []
    for p in places:
        if not isinstance(p, dict):
            logger.debug("Skipping malformed place entry: %r", p)
            continue
        place_id = p.get("id") or p.get("placeId")
        if not place_id:
            continue
        display = p.get("displayName")
        if isinstance(display, dict):
            name = display.get("text") or display.get("value")
        else:
            name = display
        record: Dict[str, Any] = {
            "placeId": place_id,
            "name": name,
            "types": p.get("types") or [],
            "rating": p.get("rating"),
            "userRatingsTotal": p.get("userRatingCount") or p.get("user_ratings_total"),
            "formattedAddress": p.get("formattedAddress"),
            "businessStatus": p.get("businessStatus"),
        }
        location = p.get("location")
        if not isinstance(location, dict):
            location = {}
        lat = location.get("latitude", location.get("lat"))
        lng = location.get("longitude", location.get("lng"))
        if lat is not None and lng is not None:
            record["geometry"] = {"location": {"lat": lat, "lng": lng}}
        hours = p.get("currentOpeningHours") or p.get("regularOpeningHours")
        if isinstance(hours, dict) and "openNow" in hours:
            record["openingHours"] = {"openNow": bool(hours["openNow"])}
        parsed.append(record)
    return parsed
