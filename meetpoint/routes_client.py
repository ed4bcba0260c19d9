"""Routes API client and response parsing."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from . import config
from .geo import decode_polyline, interpolate_points
from .http import HttpClient, UpstreamError
from .models import Coordinates, RouteInfo

logger = logging.getLogger(__name__)


class RoutesClient:
    def __init__(
        self,
        http_client: HttpClient,
        field_mask: Optional[str] = None,
        travel_mode: Optional[str] = None,
    ) -> None:
        self.http = http_client
        self.field_mask = field_mask or config.ROUTES_FIELD_MASK
        self.travel_mode = travel_mode or config.ROUTE_TRAVEL_MODE

    def get_route(self, origin: Coordinates, destination: Coordinates) -> Optional[RouteInfo]:
        """Route between two points, or None when the provider has none."""
        if not self.http.api_key:
            logger.error("Routes API key not configured")
            return None

        logger.info(
            "Requesting route %.4f,%.4f -> %.4f,%.4f",
            origin.latitude,
            origin.longitude,
            destination.latitude,
            destination.longitude,
        )
        body = build_routes_body(origin, destination, self.travel_mode)
        try:
            response = self.http.post_json(config.ROUTES_COMPUTE_URL, body, self.field_mask)
        except (UpstreamError, requests.RequestException) as exc:
            logger.error("Routing failed: %s", exc)
            return None

        route = parse_route(response, origin, destination)
        if route is None:
            logger.info("No routes found")
        else:
            logger.info(
                "Route found: %sm, %ss, %s points",
                route.distance_meters,
                route.duration_seconds,
                len(route.points),
            )
        return route


def _lat_lng(point: Coordinates) -> Dict[str, Any]:
    return {"location": {"latLng": {"latitude": point.latitude, "longitude": point.longitude}}}


def build_routes_body(origin: Coordinates, destination: Coordinates, mode: str) -> Dict[str, Any]:
    return {
        "origin": _lat_lng(origin),
        "destination": _lat_lng(destination),
        "travelMode": mode,
        "polylineEncoding": "ENCODED_POLYLINE",
    }


def parse_duration_seconds(duration: Any) -> float:
    if duration is None:
        return 0.0
    if isinstance(duration, str):
        # Typically in seconds, like "123s"
        if duration.endswith("s"):
            duration = duration[:-1]
        try:
            return float(duration)
        except ValueError:
            return 0.0
    if isinstance(duration, (int, float)):
        return float(duration)
    return 0.0


def parse_route(
    response: Dict[str, Any],
    origin: Coordinates,
    destination: Coordinates,
) -> Optional[RouteInfo]:
    routes = response.get("routes") or []
    if not routes:
        return None
    route = routes[0]
    polyline = (route.get("polyline") or {}).get("encodedPolyline") or ""

    points = []
    if polyline:
        try:
            points = decode_polyline(polyline)
        except ValueError as exc:
            logger.warning("Could not decode route polyline: %s", exc)
    if not points:
        logger.info("No polyline, generating interpolated points")
        points = interpolate_points(origin, destination, config.SYNTHETIC_ROUTE_POINTS)

    return RouteInfo(
        points=points,
        distance_meters=float(route.get("distanceMeters") or 0),
        duration_seconds=parse_duration_seconds(route.get("duration")),
        polyline=polyline,
    )
