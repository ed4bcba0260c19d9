"""Project configuration.

Loads optional overrides from meetpoint_config.json when available, falling
back to sensible defaults. Keep API request shapes centralized here.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

_REPO_ROOT = Path(__file__).resolve().parent.parent

# --- API endpoints ---

PLACES_NEARBY_SEARCH_URL = "https://places.googleapis.com/v1/places:searchNearby"
ROUTES_COMPUTE_URL = "https://routes.googleapis.com/directions/v2:computeRoutes"
WEATHER_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
GEOCODE_SEARCH_URL = "https://nominatim.openstreetmap.org/search"
GEOCODE_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"
# Nominatim rejects requests without an identifying User-Agent
GEOCODE_USER_AGENT = "MeetPoint/0.1"

# --- Field masks ---

PLACES_FIELD_MASK = (
    "places.id,places.displayName,places.formattedAddress,places.location,"
    "places.rating,places.userRatingCount,places.types,places.businessStatus,"
    "places.currentOpeningHours.openNow"
)
ROUTES_FIELD_MASK = "routes.distanceMeters,routes.duration,routes.polyline.encodedPolyline"

# --- Search shape ---

DEFAULT_CATEGORIES: List[str] = ["restaurant", "cafe", "bar"]
CATEGORY_TYPE_MAP: Dict[str, str] = {
    "cafe": "cafe",
    "bar": "bar",
    "restaurant": "restaurant",
    "pub": "bar",
    "park": "park",
}
DISALLOWED_TYPES: Set[str] = {
    "school",
    "university",
    "college",
    "hospital",
    "lodging",
    "finance",
    "post_office",
}
POINT_SEARCH_RADIUS_M = 10000
ROUTE_SEARCH_RADIUS_M = 3000
PLACES_MAX_RESULTS = 20

# --- Routes ---

ROUTE_TRAVEL_MODE = "DRIVE"
ROUTE_SAMPLE_COUNT = 5
SYNTHETIC_ROUTE_POINTS = 10

# Route proximity bonus: (max distance in meters, points, tag label)
ROUTE_PROXIMITY_TIERS = [
    (500.0, 15, "on route"),
    (1000.0, 10, "near route"),
    (2000.0, 5, "accessible"),
]

# --- Scoring ---

SCORE_WEIGHTS: Dict[str, int] = {
    "distance": 15,
    "popularity": 15,
    "amenities": 15,
    "time": 10,
    "purpose": 20,
    "existing": 5,
    "vibe": 20,
}
DISTANCE_DECAY_RATE = 0.5
RATING_BOOST_MAX = 20.0
REVIEW_COUNT_BOOST_MAX = 10.0
SCORE_MIN = 0
SCORE_MAX = 100

# --- AI curation ---

GEMINI_MODEL = "gemini-2.5-flash"
CURATION_MAX_CANDIDATES = 30
CURATION_TOP_K = 5
CURATION_SCORE_BOOST = 20
DISCOVERY_MAX_VENUES = 5
DISCOVERY_PACE_SECONDS = 0.4
DISCOVERY_OFFSET_DEGREES = 0.02
PROFILE_BOOST_TOP_N = 20
PROFILE_BOOST_MAX = 20
PROFILE_RECOMMENDED_THRESHOLD = 10

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 15
HTTP_RETRY_MAX = 3
HTTP_BACKOFF_BASE = 0.5
HTTP_BACKOFF_MAX = 8.0

# --- Cache ---

CACHE_DB_PATH = "meetpoint_cache.db"


_INT_KEYS = {
    "point_search_radius_m": "POINT_SEARCH_RADIUS_M",
    "route_search_radius_m": "ROUTE_SEARCH_RADIUS_M",
    "places_max_results": "PLACES_MAX_RESULTS",
    "route_sample_count": "ROUTE_SAMPLE_COUNT",
    "http_timeout_seconds": "HTTP_TIMEOUT_SECONDS",
    "http_retry_max": "HTTP_RETRY_MAX",
}


def load_config(path: Optional[str] = None) -> bool:
    """Load overrides from a JSON file.

    Updates module-level globals with values from the config file.
    Returns True if config was loaded, False if file not found.
    """
    if path is None:
        path = str(_REPO_ROOT / "meetpoint_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return False

    with open(config_path, "r", encoding="utf-8") as f:
        data: Dict[str, Any] = json.load(f)

    globals_ref = globals()

    for key, name in _INT_KEYS.items():
        value = data.get(key)
        if value is not None:
            globals_ref[name] = int(value)

    categories = data.get("default_categories", [])
    if categories:
        globals_ref["DEFAULT_CATEGORIES"] = [str(c) for c in categories]

    disallowed = data.get("disallowed_types", [])
    if disallowed:
        globals_ref["DISALLOWED_TYPES"] = set(disallowed)

    model = data.get("gemini_model")
    if model:
        globals_ref["GEMINI_MODEL"] = str(model)

    pace = data.get("discovery_pace_seconds")
    if pace is not None:
        globals_ref["DISCOVERY_PACE_SECONDS"] = float(pace)

    return True
