"""Venue desirability scoring.

Seven independently capped components plus an optional weather modifier,
clamped to [0, 100]. Provider-level boosts (rating, review count) and the
route proximity bonus live here too so every additive stage shares one table.
"""
from __future__ import annotations

import math
from typing import Dict, Iterable, Mapping, Optional, Tuple

from . import config
from .models import Weather

PURPOSE_KEYWORDS: Dict[str, int] = {
    # ambiance
    "romantic": 8,
    "candlelight": 6,
    "candle": 5,
    "intimate": 6,
    "cozy": 5,
    "quiet": 4,
    # scenic
    "rooftop": 7,
    "terrace": 6,
    "garden": 5,
    "view": 5,
    "scenic": 5,
    "lakeside": 6,
    "riverside": 6,
    # premium
    "lounge": 5,
    "wine": 5,
    "cocktail": 4,
    "speakeasy": 7,
    "bistro": 5,
    "gourmet": 5,
    # entertainment
    "live": 4,
    "music": 4,
    "jazz": 5,
    "acoustic": 4,
    # desserts
    "dessert": 3,
    "patisserie": 4,
    "bakery": 3,
    "chocolate": 3,
    # casual local spots
    "dhaba": 3,
    "chai": 3,
    "kulfi": 2,
    "lassi": 2,
}

VIBE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "date": ("romantic", "candlelight", "intimate", "cozy", "lounge", "wine", "bistro", "fine", "garden", "terrace", "quiet"),
    "work": ("cafe", "coffee", "wifi", "cowork", "study", "library", "quiet", "laptop", "workspace", "hub"),
    "rooftop": ("rooftop", "terrace", "roof", "sky", "view", "top", "balcony", "open", "outdoor"),
    "chill": ("laid-back", "casual", "relax", "hangout", "spot", "pub", "taproom", "beer", "sports", "dhaba"),
    "party": ("club", "nightclub", "bar", "disco", "dance", "dj", "lounge", "loud", "music", "live"),
}

NEUTRAL_VIBE_SCORE = 10
UNKNOWN_HOURS_SCORE = 3


def _weight(name: str) -> int:
    return config.SCORE_WEIGHTS[name]


def _text(tags: Mapping[str, str], *keys: str) -> str:
    return " ".join((tags.get(k) or "") for k in keys).lower()


def _any_tag(tags: Mapping[str, str], *keys: str) -> bool:
    return any(tags.get(k) for k in keys)


def calculate_distance_score(distance_km: Optional[float]) -> int:
    max_score = _weight("distance")
    if distance_km is None or distance_km <= 0:
        return max_score
    return int(round(max_score * math.exp(-config.DISTANCE_DECAY_RATE * distance_km)))


def calculate_popularity_score(tags: Mapping[str, str]) -> int:
    score = 0
    if tags.get("wikidata"):
        score += 6
    if tags.get("wikipedia"):
        score += 5
    if tags.get("brand"):
        score += 4

    cuisine = tags.get("cuisine") or ""
    cuisines = [c for c in cuisine.split(";") if c.strip()]
    score += min(len(cuisines) * 2, 6)

    if _any_tag(tags, "instagram", "contact:instagram"):
        score += 3
    if _any_tag(tags, "facebook", "contact:facebook"):
        score += 2

    return min(score, _weight("popularity"))


def calculate_amenities_score(tags: Mapping[str, str]) -> int:
    score = 0
    if tags.get("outdoor_seating") == "yes":
        score += 4
    internet = tags.get("internet_access") or ""
    if "wifi" in internet or internet == "wlan":
        score += 2
    if tags.get("wheelchair") == "yes":
        score += 3
    if tags.get("payment:cards") == "yes" or tags.get("payment:credit_cards") == "yes":
        score += 2
    if tags.get("payment:upi") == "yes":
        score += 2
    if tags.get("reservation") in ("yes", "required"):
        score += 3
    if tags.get("air_conditioning") == "yes":
        score += 2
    return min(score, _weight("amenities"))


def calculate_time_score(tags: Mapping[str, str]) -> int:
    opening_hours = tags.get("opening_hours")
    if not opening_hours:
        return UNKNOWN_HOURS_SCORE

    max_score = _weight("time")
    if opening_hours == "24/7":
        return max_score
    if "Mo-Su" in opening_hours:
        return int(round(max_score * 0.9))
    if "closed" in opening_hours.lower():
        return 0
    return int(round(max_score * 0.7))


def calculate_purpose_score(tags: Mapping[str, str]) -> int:
    score = 0
    search_text = _text(tags, "name", "description", "cuisine", "amenity", "note")
    for keyword, points in PURPOSE_KEYWORDS.items():
        if keyword in search_text:
            score += points

    if tags.get("private_dining") == "yes":
        score += 5
    if tags.get("diet:vegetarian") in ("yes", "only"):
        score += 3

    return min(score, _weight("purpose"))


def calculate_existing_score(tags: Mapping[str, str]) -> int:
    score = 0
    if tags.get("opening_hours"):
        score += 4
    if _any_tag(tags, "website", "contact:website"):
        score += 3
    if _any_tag(tags, "phone", "contact:phone"):
        score += 2
    if _any_tag(tags, "addr:full", "addr:street"):
        score += 1
    return min(score, _weight("existing"))


def calculate_vibe_score(tags: Mapping[str, str], vibes: Optional[Iterable[str]] = None) -> int:
    requested = list(vibes or [])
    if not requested:
        return NEUTRAL_VIBE_SCORE

    search_text = _text(tags, "name", "description", "amenity")
    match_count = 0
    for vibe in requested:
        keywords = VIBE_KEYWORDS.get(vibe, ())
        if any(kw in search_text for kw in keywords):
            match_count += 1

    if match_count == 0:
        return 0
    return min(NEUTRAL_VIBE_SCORE + match_count * 5, _weight("vibe"))


def is_outdoor(tags: Mapping[str, str]) -> bool:
    return tags.get("leisure") in ("park", "garden") or tags.get("outdoor_seating") in ("yes", "only")


def apply_weather_modifier(tags: Mapping[str, str], weather: Optional[Weather]) -> int:
    if weather is None:
        return 0

    outdoor = is_outdoor(tags)
    air_conditioned = tags.get("air_conditioning") == "yes"

    if weather.is_raining:
        if outdoor:
            return -20
        return 5 if air_conditioned else 0

    if weather.temperature > 38:
        if outdoor:
            return -15
        return 8 if air_conditioned else 0

    if weather.temperature > 32:
        if outdoor:
            return -5
        return 3 if air_conditioned else 0

    if 18 <= weather.temperature <= 28 and outdoor:
        return 10

    return 0


def clamp_score(score: float) -> float:
    return max(float(config.SCORE_MIN), min(float(config.SCORE_MAX), score))


def get_score_breakdown(
    tags: Mapping[str, str],
    vibes: Optional[Iterable[str]] = None,
    distance_km: Optional[float] = None,
    weather: Optional[Weather] = None,
) -> Dict[str, int]:
    breakdown = {
        "distance": calculate_distance_score(distance_km),
        "popularity": calculate_popularity_score(tags),
        "amenities": calculate_amenities_score(tags),
        "time": calculate_time_score(tags),
        "purpose": calculate_purpose_score(tags),
        "existing": calculate_existing_score(tags),
        "vibe": calculate_vibe_score(tags, vibes),
        "weather": apply_weather_modifier(tags, weather),
    }
    total = sum(breakdown.values())
    breakdown["total"] = int(clamp_score(total))
    return breakdown


def score_venue(
    tags: Mapping[str, str],
    vibes: Optional[Iterable[str]] = None,
    distance_km: Optional[float] = None,
    weather: Optional[Weather] = None,
) -> int:
    return get_score_breakdown(tags, vibes, distance_km, weather)["total"]


def rating_boost(rating: Optional[float]) -> float:
    if not rating:
        return 0.0
    return max(0.0, min((rating - 3) * 5, config.RATING_BOOST_MAX))


def review_count_boost(count: Optional[int]) -> float:
    if not count or count <= 0:
        return 0.0
    return min(count / 100.0, config.REVIEW_COUNT_BOOST_MAX)


def route_proximity_bonus(distance_m: float) -> Tuple[int, Optional[str]]:
    for max_distance, points, label in config.ROUTE_PROXIMITY_TIERS:
        if distance_m < max_distance:
            return points, label
    return 0, None
