"""Venue aggregation: multi-category fan-out, dedup, filtering and ranking.

Point mode searches once around a single center; route mode samples the route
between two people into waypoints, searches each one and rewards venues that
sit close to the route.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Set, Tuple

from . import config
from .adapter import place_to_venue
from .geo import calculate_midpoint, distance_to_route, format_distance, sample_points_along_route
from .models import Coordinates, PlaceParseError, RawPlace, RouteInfo, Venue, VenueFilters, Weather, parse_raw_place
from .scoring import clamp_score, route_proximity_bonus

logger = logging.getLogger(__name__)


@dataclass
class RouteSearchResult:
    venues: List[Venue]
    route_points: List[Coordinates]
    route: Optional[RouteInfo] = None
    used_fallback: bool = False


@dataclass
class _CategoryBatch:
    category: str
    records: List[Any] = field(default_factory=list)


def search_categories(filters: Optional[VenueFilters]) -> List[str]:
    categories = list(config.DEFAULT_CATEGORIES)
    if filters is None:
        return categories
    for venue_type in sorted(filters.types):
        mapped = config.CATEGORY_TYPE_MAP.get(venue_type)
        if mapped and mapped not in categories:
            categories.append(mapped)
    return categories


def is_disallowed(raw: RawPlace) -> bool:
    return any(t in config.DISALLOWED_TYPES for t in raw.types)


def sort_venues(venues: Iterable[Venue]) -> List[Venue]:
    # sorted() is stable, equal scores keep insertion order
    return sorted(venues, key=lambda v: v.score, reverse=True)


def collect_unique_places(
    batches: Iterable[_CategoryBatch],
    seen_ids: Set[str],
) -> Tuple[List[RawPlace], Set[str]]:
    """Parse, dedupe and blocklist-filter raw records.

    Returns the survivors and the updated seen-id set; the input set is not
    mutated. First occurrence of a place id wins.
    """
    seen = set(seen_ids)
    unique: List[RawPlace] = []
    total = 0
    for batch in batches:
        for record in batch.records:
            total += 1
            try:
                raw = parse_raw_place(record, category=batch.category)
            except PlaceParseError as exc:
                logger.debug("Dropping invalid place record: %s", exc)
                continue
            if raw.place_id in seen:
                continue
            if is_disallowed(raw):
                logger.debug("Dropping %s (%s): disallowed type", raw.name, raw.place_id)
                continue
            seen.add(raw.place_id)
            unique.append(raw)
    logger.info("Deduplicated: %s -> %s unique venues", total, len(unique))
    return unique, seen


async def _search_category(
    places_client: Any,
    center: Coordinates,
    radius_m: int,
    category: str,
) -> _CategoryBatch:
    records = await asyncio.to_thread(
        places_client.search_nearby, center.latitude, center.longitude, radius_m, category
    )
    return _CategoryBatch(category=category, records=list(records or []))


async def search_all_categories(
    places_client: Any,
    center: Coordinates,
    radius_m: int,
    filters: Optional[VenueFilters],
) -> List[_CategoryBatch]:
    categories = search_categories(filters)
    logger.info("Searching categories: %s", ", ".join(categories))
    results = await asyncio.gather(
        *(_search_category(places_client, center, radius_m, cat) for cat in categories),
        return_exceptions=True,
    )
    batches: List[_CategoryBatch] = []
    for category, result in zip(categories, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.error("Search for %s failed: %s", category, result)
            continue
        batches.append(result)
    return batches


async def _venues_near(
    places_client: Any,
    center: Coordinates,
    user_location: Coordinates,
    filters: Optional[VenueFilters],
    radius_m: int,
    seen_ids: Set[str],
    weather: Optional[Weather],
) -> Tuple[List[Venue], Set[str]]:
    batches = await search_all_categories(places_client, center, radius_m, filters)
    unique, seen = collect_unique_places(batches, seen_ids)
    venues = [place_to_venue(raw, user_location, filters, weather) for raw in unique]
    return venues, seen


async def fetch_venues(
    center: Coordinates,
    user_location: Coordinates,
    filters: Optional[VenueFilters],
    places_client: Any,
    *,
    radius_m: Optional[int] = None,
    weather: Optional[Weather] = None,
) -> List[Venue]:
    """Point mode: one wide search around center, ranked by score."""
    radius = radius_m if radius_m is not None else config.POINT_SEARCH_RADIUS_M
    try:
        venues, _ = await _venues_near(
            places_client, center, user_location, filters, radius, set(), weather
        )
    except Exception:
        logger.exception("Venue fetch failed")
        return []
    logger.info("Converted %s venues", len(venues))
    return sort_venues(venues)


def apply_route_proximity(venue: Venue, route_points: Sequence[Coordinates]) -> Venue:
    if venue.tags.get("geometry_missing") == "yes":
        return venue
    distance_m = distance_to_route(venue.location, route_points)
    bonus, label = route_proximity_bonus(distance_m)
    if label:
        venue.tags["route_proximity"] = label
        venue.tags["route_distance"] = format_distance(distance_m / 1000.0)
    venue.score = clamp_score(venue.score + bonus)
    return venue


async def _fetch_route(routes_client: Any, origin: Coordinates, destination: Coordinates) -> Optional[RouteInfo]:
    try:
        return await asyncio.to_thread(routes_client.get_route, origin, destination)
    except Exception:
        logger.exception("Routing collaborator failed")
        return None


async def fetch_venues_along_route(
    origin: Coordinates,
    destination: Coordinates,
    user_location: Coordinates,
    filters: Optional[VenueFilters],
    places_client: Any,
    routes_client: Any,
    *,
    weather: Optional[Weather] = None,
) -> RouteSearchResult:
    """Route mode: search near sampled waypoints and reward route proximity.

    Falls back to point mode at the geographic midpoint when no usable route
    is available. Never raises; a total failure yields an empty result.
    """
    try:
        route = await _fetch_route(routes_client, origin, destination)
        if route is None or not route.points:
            midpoint = calculate_midpoint(origin, destination)
            logger.warning("No route available, falling back to midpoint search")
            venues = await fetch_venues(midpoint, user_location, filters, places_client, weather=weather)
            return RouteSearchResult(
                venues=venues,
                route_points=[origin, midpoint, destination],
                route=None,
                used_fallback=True,
            )

        waypoints = sample_points_along_route(route.points, config.ROUTE_SAMPLE_COUNT)
        logger.info("Searching %s waypoints along a %s-point route", len(waypoints), len(route.points))

        seen_ids: Set[str] = set()
        collected: List[Venue] = []
        for index, waypoint in enumerate(waypoints):
            try:
                venues, seen_ids = await _venues_near(
                    places_client,
                    waypoint,
                    user_location,
                    filters,
                    config.ROUTE_SEARCH_RADIUS_M,
                    seen_ids,
                    weather,
                )
            except Exception:
                logger.exception("Search at waypoint %s failed", index)
                continue
            collected.extend(venues)

        for venue in collected:
            apply_route_proximity(venue, route.points)

        logger.info("Found %s venues along route", len(collected))
        return RouteSearchResult(venues=sort_venues(collected), route_points=list(route.points), route=route)
    except Exception:
        logger.exception("Route venue search failed")
        return RouteSearchResult(venues=[], route_points=[])
