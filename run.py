"""CLI entrypoint."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv as _load_dotenv

from meetpoint import config
from meetpoint.aggregator import fetch_venues, fetch_venues_along_route
from meetpoint.cache import Cache
from meetpoint.curation import (
    CurationContext,
    SearchIntent,
    enhance_venues_with_profiles,
    hybrid_curate,
    parse_search_query,
)
from meetpoint.gemini_client import BaseGeminiClient, GeminiClient
from meetpoint.geocoding_client import GeocodingClient, short_area_name
from meetpoint.geo import calculate_midpoint, calculate_weighted_search_location
from meetpoint.http import HttpClient
from meetpoint.models import SEARCH_MODES, VIBES, Coordinates, VenueFilters, Weather
from meetpoint.places_client import PlacesClient
from meetpoint.routes_client import RoutesClient
from meetpoint.weather_client import WeatherClient

logger = logging.getLogger("run")

MODES = ("route",) + SEARCH_MODES
DEFAULT_AREA_NAME = "the area between us"


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Optionally load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    _load_dotenv(dotenv_path=env_path, override=False)


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Find a venue to meet between two people")
    parser.add_argument("--me", required=True, help="Your location as LAT,LON")
    parser.add_argument("--them", default=None, help="Their location as LAT,LON (or named in --ask)")
    parser.add_argument(
        "--ask", type=str, default=None, help="Natural-language request, e.g. \"vegan date cafe near Lalpur\""
    )
    parser.add_argument("--mode", choices=MODES, default=None, help="Search mode (default: route)")
    parser.add_argument("--types", type=str, default=None, help="Comma-separated venue types, e.g. cafe,bar")
    parser.add_argument("--vibe", type=str, default=None, help=f"Comma-separated vibes: {', '.join(VIBES)}")
    parser.add_argument("--diet", type=str, default=None)
    parser.add_argument("--weather", action="store_true", help="Fetch current weather and apply modifiers")
    parser.add_argument("--curate", type=str, default=None, help="Natural-language request for AI curation")
    parser.add_argument("--area", type=str, default=None, help="Place name used for AI discovery (default: reverse geocoded)")
    parser.add_argument("--ai-profiles", action="store_true", help="Boost top venues with AI venue profiles")
    parser.add_argument("--top", type=int, default=10, help="Number of venues to print")
    parser.add_argument("--no-cache", action="store_true")
    parser.add_argument("--cache-path", type=str, default=config.CACHE_DB_PATH)
    return parser.parse_args(argv)


@dataclass
class Clients:
    places: PlacesClient
    routes: RoutesClient
    weather: WeatherClient
    gemini: BaseGeminiClient
    cache: Optional[Cache]
    geocoding: Optional[GeocodingClient] = None

    def close(self) -> None:
        if self.cache is not None:
            self.cache.close()


def build_clients(api_key: str, cache_path: str, no_cache: bool) -> Clients:
    http_client = HttpClient(
        api_key,
        timeout=config.HTTP_TIMEOUT_SECONDS,
        retry_max=config.HTTP_RETRY_MAX,
        backoff_base=config.HTTP_BACKOFF_BASE,
        backoff_max=config.HTTP_BACKOFF_MAX,
    )
    cache = None if no_cache else Cache(cache_path)
    return Clients(
        places=PlacesClient(http_client, cache, no_cache=no_cache),
        routes=RoutesClient(http_client),
        weather=WeatherClient(HttpClient(timeout=config.HTTP_TIMEOUT_SECONDS)),
        gemini=GeminiClient.from_env(),
        cache=cache,
        geocoding=GeocodingClient(HttpClient(timeout=config.HTTP_TIMEOUT_SECONDS)),
    )


def apply_intent(filters: VenueFilters, intent: SearchIntent, args: argparse.Namespace) -> VenueFilters:
    """Fill filters the user did not set on the command line from a parsed request."""
    return VenueFilters(
        types=filters.types if args.types else intent.venue_types,
        diet=filters.diet if args.diet else intent.diet,
        vibe=filters.vibe if args.vibe else intent.vibe,
    )


async def locate(name: str, clients: Clients) -> Optional[Coordinates]:
    if clients.geocoding is None:
        return None
    found = await asyncio.to_thread(clients.geocoding.geocode_address, name)
    if found is None:
        return None
    logger.info("Resolved %r to %s", name, found.display_name)
    return found.location


async def discovery_area_name(center: Coordinates, clients: Clients) -> str:
    if clients.geocoding is None:
        return DEFAULT_AREA_NAME
    name = await asyncio.to_thread(clients.geocoding.reverse_geocode, center.latitude, center.longitude)
    return short_area_name(name) if name else DEFAULT_AREA_NAME


async def run_search(
    args: argparse.Namespace,
    me: Coordinates,
    them: Optional[Coordinates],
    filters: VenueFilters,
    clients: Clients,
) -> Dict[str, Any]:
    output: Dict[str, Any] = {}
    mode = args.mode
    if args.ask:
        intent = await parse_search_query(args.ask, clients.gemini)
        if intent is None:
            logger.warning("Could not interpret %r, using command-line filters", args.ask)
        else:
            output["intent"] = {
                "their_location_name": intent.their_location_name,
                "types": sorted(intent.venue_types),
                "vibe": sorted(intent.vibe),
                "diet": intent.diet,
                "search_mode": intent.search_mode,
            }
            filters = apply_intent(filters, intent, args)
            mode = mode or intent.search_mode
            if them is None and intent.their_location_name:
                them = await locate(intent.their_location_name, clients)
    if them is None:
        raise LookupError("Could not work out their location; pass --them LAT,LON")
    mode = mode or "route"
    output["mode"] = mode

    weather: Optional[Weather] = None
    if args.weather:
        midpoint = calculate_midpoint(me, them)
        weather = await asyncio.to_thread(
            clients.weather.get_current_weather, midpoint.latitude, midpoint.longitude
        )

    if mode == "route":
        result = await fetch_venues_along_route(
            me, them, me, filters, clients.places, clients.routes, weather=weather
        )
        venues = result.venues
        output["route_points"] = [p.to_dict() for p in result.route_points]
        output["route_fallback"] = result.used_fallback
        center = calculate_midpoint(me, them)
    else:
        center = calculate_weighted_search_location(mode, me, them)
        venues = await fetch_venues(center, me, filters, clients.places, weather=weather)
        output["center"] = center.to_dict()

    if args.ai_profiles:
        venues = await enhance_venues_with_profiles(
            venues, clients.gemini, clients.cache, preferences=filters.vibe
        )

    output["weather"] = None if weather is None else {
        "temperature": weather.temperature,
        "is_raining": weather.is_raining,
        "description": weather.description,
    }
    output["venues"] = [v.to_dict() for v in venues[: max(0, args.top)]]

    if args.curate:
        context = CurationContext(weather=weather)
        area = args.area or await discovery_area_name(center, clients)
        hybrid = await hybrid_curate(venues, args.curate, center, area, context, clients.gemini)
        output["curation"] = {
            "insight": hybrid.result.insight,
            "category": hybrid.result.curation_category,
            "fallback": hybrid.result.used_fallback,
            "area": area,
            "venues": [v.to_dict() for v in hybrid.result.venues],
        }
        discovered = []
        async for venue in hybrid.discoveries:
            logger.info("Discovered %s", venue.name)
            discovered.append(venue.to_dict())
        output["discovered"] = discovered

    return output


def main(argv: Optional[List[str]] = None) -> int:
    load_env()
    config.load_config()
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        me = Coordinates.parse(args.me)
        them = Coordinates.parse(args.them) if args.them else None
        filters = VenueFilters.build(_split(args.types), args.diet, _split(args.vibe))
        if them is None and not args.ask:
            raise ValueError("--them is required unless --ask names their location")
    except ValueError as exc:
        print(f"Invalid arguments: {exc}", file=sys.stderr)
        return 1

    api_key = os.environ.get("GOOGLE_MAPS_API_KEY")
    if not api_key:
        print("Missing GOOGLE_MAPS_API_KEY in environment", file=sys.stderr)
        return 1

    clients = build_clients(api_key, args.cache_path, args.no_cache)
    try:
        output = asyncio.run(run_search(args, me, them, filters, clients))
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        clients.close()

    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
