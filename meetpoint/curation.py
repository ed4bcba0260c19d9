"""AI curation overlay.

Curation reranks already-scored venues with Gemini and always has a
deterministic fallback. Discovery asks Gemini for new venue names and exposes
them as a finite async stream the caller subscribes to.
"""
from __future__ import annotations

import asyncio
import json
import logging
import random
import time
from dataclasses import dataclass, replace
from typing import Any, AsyncIterator, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence

from . import config
from .aggregator import sort_venues
from .cache import Cache
from .gemini_client import BaseGeminiClient
from .models import DIETS, SEARCH_MODES, VENUE_TYPES, VIBES, Coordinates, Venue, VenueFilters, Weather
from .scoring import clamp_score

logger = logging.getLogger(__name__)

CURATION_CATEGORIES = ("romantic", "casual", "adventurous", "budget", "premium")
DEFAULT_CURATION_CATEGORY = "romantic"
FALLBACK_INSIGHT = "Here are the top-rated venues in your area."
DEFAULT_INSIGHT = "Here are my top picks for your meetup!"

PROFILE_KEYS = ("romantic", "casual", "upscale", "energetic", "dateWorthy")
PREFERENCE_BONUSES = {"romantic": 5, "casual": 3, "upscale": 5, "energetic": 3}


@dataclass(frozen=True)
class CurationContext:
    weather: Optional[Weather] = None
    time_of_day: Optional[str] = None


@dataclass
class CurationResult:
    venues: List[Venue]
    insight: str
    curation_category: str
    used_fallback: bool = False


@dataclass
class HybridCuration:
    result: CurationResult
    discoveries: AsyncIterator[Venue]
    is_loading_more: bool = True


@dataclass(frozen=True)
class SearchIntent:
    their_location_name: Optional[str]
    venue_types: FrozenSet[str] = frozenset()
    vibe: FrozenSet[str] = frozenset()
    diet: str = "any"
    search_mode: str = "midpoint"

    def to_filters(self) -> VenueFilters:
        return VenueFilters(types=self.venue_types, diet=self.diet, vibe=self.vibe)


@dataclass(frozen=True)
class VenueProfile:
    romantic: float
    casual: float
    upscale: float
    energetic: float
    date_worthy: float

    def as_cache_row(self) -> Dict[str, float]:
        return {
            "romantic": self.romantic,
            "casual": self.casual,
            "upscale": self.upscale,
            "energetic": self.energetic,
            "date_worthy": self.date_worthy,
        }


def _context_lines(context: Optional[CurationContext]) -> str:
    if context is None:
        return ""
    lines = []
    if context.weather is not None:
        condition = "Raining (prefer indoor)" if context.weather.is_raining else "Clear"
        lines.append(f"Weather: {condition}, {context.weather.temperature:g}°C")
    if context.time_of_day:
        lines.append(f"Time of day: {context.time_of_day}")
    return "\n".join(lines)


def fallback_curation(venues: Sequence[Venue]) -> CurationResult:
    top = sort_venues(venues)[: config.CURATION_TOP_K]
    return CurationResult(
        venues=[replace(v, tags=dict(v.tags), ai_recommended=False) for v in top],
        insight=FALLBACK_INSIGHT,
        curation_category=DEFAULT_CURATION_CATEGORY,
        used_fallback=True,
    )


def build_curation_prompt(venues: Sequence[Venue], query: str, context: Optional[CurationContext]) -> str:
    summaries = [
        {
            "index": i,
            "name": v.name,
            "type": v.tags.get("amenity") or v.tags.get("leisure") or "venue",
            "rating": v.tags.get("rating") or "unknown",
            "distance": v.tags.get("distance") or "unknown",
            "score": round(v.score, 1),
        }
        for i, v in enumerate(venues[: config.CURATION_MAX_CANDIDATES])
    ]
    return (
        "You help two people choose where to meet.\n"
        f"Request: {query!r}\n"
        f"{_context_lines(context)}\n"
        f"Candidate venues:\n{json.dumps(summaries, indent=2, ensure_ascii=False)}\n\n"
        f"Choose up to {config.CURATION_TOP_K} venues that best fit the request. Reply with JSON only:\n"
        '{"selectedIndices": [0, 3], "insight": "one short sentence", '
        f'"curationType": one of {list(CURATION_CATEGORIES)}}}'
    )


def _selected_indices(data: Dict[str, Any], limit: int) -> List[int]:
    raw = data.get("selectedIndices") or []
    if not isinstance(raw, list):
        return []
    picked: List[int] = []
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        index = int(value)
        if 0 <= index < limit and index not in picked:
            picked.append(index)
        if len(picked) >= config.CURATION_TOP_K:
            break
    return picked


async def curate_existing(
    venues: Sequence[Venue],
    query: str,
    context: Optional[CurationContext],
    gemini_client: BaseGeminiClient,
) -> CurationResult:
    """Pick the best existing venues for a natural-language request.

    Selected venues are copies flagged ai_recommended with +20 score (capped
    at 100). Any failure returns the top venues by score, unflagged.
    """
    if not venues:
        return fallback_curation(venues)
    candidates = sort_venues(venues)[: config.CURATION_MAX_CANDIDATES]
    logger.info("AI curating %s venues for %r", len(candidates), query)
    try:
        prompt = build_curation_prompt(candidates, query, context)
        result = await asyncio.to_thread(
            gemini_client.generate_json, "curate_existing", prompt, "object", 0.4
        )
        if not result.ok or not isinstance(result.data, dict):
            logger.warning("AI curation unavailable (%s), using top venues", result.status)
            return fallback_curation(venues)

        indices = _selected_indices(result.data, len(candidates))
        if not indices:
            logger.warning("AI curation selected no valid venues, using top venues")
            return fallback_curation(venues)

        selected = [
            replace(
                candidates[i],
                tags=dict(candidates[i].tags),
                ai_recommended=True,
                score=min(candidates[i].score + config.CURATION_SCORE_BOOST, float(config.SCORE_MAX)),
            )
            for i in indices
        ]
        insight = result.data.get("insight")
        category = result.data.get("curationType")
        logger.info("AI selected %s venues", len(selected))
        return CurationResult(
            venues=selected,
            insight=insight if isinstance(insight, str) and insight.strip() else DEFAULT_INSIGHT,
            curation_category=category if category in CURATION_CATEGORIES else DEFAULT_CURATION_CATEGORY,
        )
    except Exception:
        logger.exception("AI curation failed")
        return fallback_curation(venues)


def build_discovery_prompt(query: str, location_name: str, context: Optional[CurationContext]) -> str:
    return (
        f"You know {location_name} well. Someone is looking for: {query!r}\n"
        f"{_context_lines(context)}\n"
        f"Name up to {config.DISCOVERY_MAX_VENUES} real cafes, restaurants, bars or parks in "
        f"{location_name} that fit. Reply with a JSON array only:\n"
        '[{"name": "...", "type": "cafe|restaurant|bar|park", '
        '"description": "one sentence", "area": "neighbourhood"}]'
    )


def _discovered_venue(
    suggested: Dict[str, Any],
    index: int,
    location: Coordinates,
    location_name: str,
    rng: random.Random,
) -> Venue:
    name = str(suggested["name"]).strip()
    offset = config.DISCOVERY_OFFSET_DEGREES
    tags = {
        "name": name,
        "amenity": str(suggested.get("type") or "venue"),
        "addr:full": str(suggested.get("area") or location_name),
        "ai_discovered": "yes",
    }
    if suggested.get("description"):
        tags["description"] = str(suggested["description"])
    return Venue(
        id=f"ai-discovered-{int(time.time() * 1000)}-{index}",
        name=name,
        latitude=location.latitude + (rng.random() - 0.5) * offset,
        longitude=location.longitude + (rng.random() - 0.5) * offset,
        tags=tags,
        score=float(80 + rng.randint(0, 14)),
        ai_recommended=True,
    )


async def discover_new_venues(
    query: str,
    location: Coordinates,
    location_name: str,
    context: Optional[CurationContext],
    gemini_client: BaseGeminiClient,
    *,
    pace_seconds: Optional[float] = None,
    rng: Optional[random.Random] = None,
) -> AsyncIterator[Venue]:
    """Yield AI-suggested venues one by one, paced for progressive reveal.

    Errors end the stream early; they are logged, never raised.
    """
    pace = config.DISCOVERY_PACE_SECONDS if pace_seconds is None else pace_seconds
    rng = rng or random.Random()
    if not getattr(gemini_client, "available", True):
        return

    logger.info("AI discovering new venues for %r", query)
    prompt = build_discovery_prompt(query, location_name, context)
    try:
        result = await asyncio.to_thread(
            gemini_client.generate_json, "discover_new", prompt, "array", 0.6
        )
    except Exception:
        logger.exception("AI venue discovery failed")
        return
    if not result.ok or not isinstance(result.data, list):
        logger.warning("AI venue discovery returned nothing usable (%s)", result.status)
        return

    suggestions = [
        s for s in result.data if isinstance(s, dict) and str(s.get("name") or "").strip()
    ][: config.DISCOVERY_MAX_VENUES]
    logger.info("AI discovered %s new venues", len(suggestions))
    for index, suggested in enumerate(suggestions):
        await asyncio.sleep(pace)
        yield _discovered_venue(suggested, index, location, location_name, rng)


async def discover_new(
    query: str,
    location: Coordinates,
    location_name: str,
    context: Optional[CurationContext],
    gemini_client: BaseGeminiClient,
    on_each: Optional[Callable[[Venue], None]] = None,
    on_complete: Optional[Callable[[], None]] = None,
    *,
    pace_seconds: Optional[float] = None,
    rng: Optional[random.Random] = None,
) -> None:
    """Callback driver over discover_new_venues; on_complete always runs."""
    try:
        stream = discover_new_venues(
            query, location, location_name, context, gemini_client, pace_seconds=pace_seconds, rng=rng
        )
        async for venue in stream:
            if on_each is not None:
                on_each(venue)
    except Exception:
        logger.exception("AI venue discovery failed")
    finally:
        if on_complete is not None:
            try:
                on_complete()
            except Exception:
                logger.exception("Discovery completion callback failed")


async def hybrid_curate(
    venues: Sequence[Venue],
    query: str,
    location: Coordinates,
    location_name: str,
    context: Optional[CurationContext],
    gemini_client: BaseGeminiClient,
    *,
    pace_seconds: Optional[float] = None,
) -> HybridCuration:
    """Curate now; hand back discovery as a stream that starts when iterated."""
    result = await curate_existing(venues, query, context, gemini_client)
    discoveries = discover_new_venues(
        query, location, location_name, context, gemini_client, pace_seconds=pace_seconds
    )
    return HybridCuration(result=result, discoveries=discoveries)


def build_query_prompt(query: str) -> str:
    return (
        "Turn this meetup request into search filters. Reply with a JSON object only:\n"
        '{"theirLocationName": string or null, '
        f'"venueTypes": subset of {list(VENUE_TYPES)}, '
        f'"vibe": subset of {list(VIBES)}, '
        f'"diet": one of {list(DIETS)}, '
        f'"searchMode": one of {list(SEARCH_MODES)}}}\n'
        f"Request: {query!r}"
    )


def _allowed(values: Any, allowed: Iterable[str]) -> FrozenSet[str]:
    if not isinstance(values, list):
        return frozenset()
    allowed_set = set(allowed)
    return frozenset(str(v).lower() for v in values if str(v).lower() in allowed_set)


async def parse_search_query(query: str, gemini_client: BaseGeminiClient) -> Optional[SearchIntent]:
    result = await asyncio.to_thread(
        gemini_client.generate_json, "parse_query", build_query_prompt(query), "object", 0.1
    )
    if not result.ok or not isinstance(result.data, dict):
        return None
    data = result.data
    name = data.get("theirLocationName")
    diet = str(data.get("diet") or "any").lower()
    mode = str(data.get("searchMode") or "midpoint")
    return SearchIntent(
        their_location_name=name.strip() if isinstance(name, str) and name.strip() else None,
        venue_types=_allowed(data.get("venueTypes"), VENUE_TYPES),
        vibe=_allowed(data.get("vibe"), VIBES),
        diet=diet if diet in DIETS else "any",
        search_mode=mode if mode in SEARCH_MODES else "midpoint",
    )


def _validate_profile(data: Any) -> None:
    if not isinstance(data, dict):
        raise TypeError("profile must be an object")
    for key in PROFILE_KEYS:
        value = data.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{key} missing or not numeric")
        if not 0 <= value <= 10:
            raise ValueError(f"{key} out of range: {value}")


def analyze_venue(
    gemini_client: BaseGeminiClient,
    cache: Optional[Cache],
    venue_name: str,
    venue_type: str,
    cuisine: Optional[str] = None,
) -> Optional[VenueProfile]:
    if cache is not None:
        cached = cache.get_venue_profile(venue_name)
        if cached is not None:
            return VenueProfile(**cached)

    prompt = (
        "Rate this venue as a place for a date, each from 0 to 10. Reply with JSON only:\n"
        '{"romantic": n, "casual": n, "upscale": n, "energetic": n, "dateWorthy": n}\n'
        f"Name: {venue_name}\nType: {venue_type}\nCuisine: {cuisine or 'not specified'}"
    )
    result = gemini_client.generate_json(
        "analyze_venue", prompt, "object", 0.3, validator=_validate_profile
    )
    if not result.ok:
        return None
    data = result.data
    profile = VenueProfile(
        romantic=float(data["romantic"]),
        casual=float(data["casual"]),
        upscale=float(data["upscale"]),
        energetic=float(data["energetic"]),
        date_worthy=float(data["dateWorthy"]),
    )
    if cache is not None:
        cache.set_venue_profile(venue_name, profile.as_cache_row(), venue_type, cuisine)
    return profile


def calculate_ai_boost(profile: VenueProfile, preferences: Optional[Iterable[str]] = None) -> float:
    boost = profile.date_worthy
    wanted = set(preferences or [])
    for name, bonus in PREFERENCE_BONUSES.items():
        if name in wanted and getattr(profile, name) >= 7:
            boost += bonus
    return min(boost, float(config.PROFILE_BOOST_MAX))


async def enhance_venues_with_profiles(
    venues: Sequence[Venue],
    gemini_client: BaseGeminiClient,
    cache: Optional[Cache] = None,
    preferences: Optional[Iterable[str]] = None,
    top_n: Optional[int] = None,
) -> List[Venue]:
    if top_n is None:
        top_n = config.PROFILE_BOOST_TOP_N
    ranked = sort_venues(venues)
    top, rest = ranked[:top_n], ranked[top_n:]
    wanted = frozenset(preferences or [])

    profiles = await asyncio.gather(
        *(
            asyncio.to_thread(
                analyze_venue,
                gemini_client,
                cache,
                v.name,
                v.tags.get("amenity") or v.tags.get("leisure") or "venue",
                v.tags.get("cuisine"),
            )
            for v in top
        ),
        return_exceptions=True,
    )

    enhanced: List[Venue] = []
    for venue, profile in zip(top, profiles):
        if isinstance(profile, Exception):
            logger.error("Profile analysis failed for %s: %s", venue.name, profile)
            profile = None
        if not isinstance(profile, VenueProfile):
            enhanced.append(venue)
            continue
        boost = calculate_ai_boost(profile, wanted)
        enhanced.append(
            replace(
                venue,
                tags=dict(venue.tags),
                score=clamp_score(venue.score + boost),
                ai_recommended=boost >= config.PROFILE_RECOMMENDED_THRESHOLD,
            )
        )
    return sort_venues(enhanced + rest)
