"""Provider record -> scored Venue."""
from __future__ import annotations

import logging
from typing import Dict, Optional

from .geo import calculate_distance_km, format_distance
from .models import Coordinates, RawPlace, Venue, VenueFilters, Weather
from .scoring import clamp_score, rating_boost, review_count_boost, score_venue

logger = logging.getLogger(__name__)

VENUE_ID_PREFIX = "google"


def build_tags(raw: RawPlace, distance_display: Optional[str]) -> Dict[str, str]:
    tags: Dict[str, str] = {
        "name": raw.name,
        "amenity": (raw.types[0] if raw.types else None) or raw.category or "venue",
    }
    if raw.formatted_address:
        tags["addr:full"] = raw.formatted_address
    if distance_display:
        tags["distance"] = distance_display
    if raw.rating is not None:
        tags["rating"] = f"{raw.rating:g}"
    if raw.user_ratings_total is not None:
        tags["user_ratings_total"] = str(raw.user_ratings_total)
    if raw.open_now is not None:
        tags["open_now"] = "yes" if raw.open_now else "no"
    if raw.types:
        tags["place_types"] = ";".join(raw.types)
    return tags


def place_to_venue(
    raw: RawPlace,
    user_location: Coordinates,
    filters: Optional[VenueFilters] = None,
    weather: Optional[Weather] = None,
) -> Venue:
    distance_km: Optional[float] = None
    distance_display: Optional[str] = None
    if raw.has_geometry:
        lat, lng = float(raw.latitude), float(raw.longitude)
        distance_km = calculate_distance_km(user_location, Coordinates(lat, lng))
        distance_display = format_distance(distance_km)
    else:
        logger.warning("Missing geometry for %s (%s)", raw.name, raw.place_id)
        lat, lng = 0.0, 0.0
        # measured to the placeholder so it earns no distance points
        distance_km = calculate_distance_km(user_location, Coordinates(lat, lng))

    tags = build_tags(raw, distance_display)
    if not raw.has_geometry:
        tags["geometry_missing"] = "yes"

    vibes = filters.vibe if filters is not None else None
    score: float = score_venue(tags, vibes, distance_km, weather)
    score += rating_boost(raw.rating)
    score += review_count_boost(raw.user_ratings_total)

    return Venue(
        id=f"{VENUE_ID_PREFIX}-{raw.place_id}",
        name=raw.name,
        latitude=lat,
        longitude=lng,
        tags=tags,
        score=clamp_score(score),
        ai_recommended=False,
    )
