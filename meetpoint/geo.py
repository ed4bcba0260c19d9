"""Geospatial helpers."""
from __future__ import annotations

import math
from typing import List, Sequence

from .models import Coordinates

EARTH_RADIUS_M = 6371000.0
EARTH_RADIUS_KM = 6371.0


def _haversine_c(a: Coordinates, b: Coordinates) -> float:
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlambda = math.radians(b.longitude - a.longitude)

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def haversine_distance(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance in meters."""
    return EARTH_RADIUS_M * _haversine_c(a, b)


def calculate_distance_km(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance in kilometers (scoring units)."""
    return EARTH_RADIUS_KM * _haversine_c(a, b)


def calculate_midpoint(a: Coordinates, b: Coordinates) -> Coordinates:
    """Geographic midpoint via Cartesian vector averaging."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    lon1 = math.radians(a.longitude)
    dlon = math.radians(b.longitude - a.longitude)

    bx = math.cos(lat2) * math.cos(dlon)
    by = math.cos(lat2) * math.sin(dlon)

    lat3 = math.atan2(
        math.sin(lat1) + math.sin(lat2),
        math.sqrt((math.cos(lat1) + bx) ** 2 + by ** 2),
    )
    lon3 = lon1 + math.atan2(by, math.cos(lat1) + bx)

    lon_deg = math.degrees(lon3)
    # normalize to [-180, 180)
    lon_deg = (lon_deg + 540.0) % 360.0 - 180.0
    return Coordinates(latitude=math.degrees(lat3), longitude=lon_deg)


def calculate_weighted_search_location(
    mode: str,
    my_location: Coordinates,
    their_location: Coordinates,
) -> Coordinates:
    if mode == "closer_to_me":
        return _linear_blend(my_location, their_location, 0.7)
    if mode == "closer_to_them":
        return _linear_blend(my_location, their_location, 0.3)
    return calculate_midpoint(my_location, their_location)


def _linear_blend(mine: Coordinates, theirs: Coordinates, my_weight: float) -> Coordinates:
    their_weight = 1.0 - my_weight
    return Coordinates(
        latitude=mine.latitude * my_weight + theirs.latitude * their_weight,
        longitude=mine.longitude * my_weight + theirs.longitude * their_weight,
    )


def interpolate_points(start: Coordinates, end: Coordinates, n: int) -> List[Coordinates]:
    """Straight-line stand-in for a route: n evenly spaced points, ends included."""
    if n <= 1:
        return [start]
    points = []
    for i in range(n):
        t = i / (n - 1)
        points.append(
            Coordinates(
                latitude=start.latitude + t * (end.latitude - start.latitude),
                longitude=start.longitude + t * (end.longitude - start.longitude),
            )
        )
    return points


def sample_points_along_route(points: Sequence[Coordinates], n: int = 5) -> List[Coordinates]:
    if len(points) <= n:
        return list(points)
    if n <= 1:
        return [points[0]] if n == 1 else []
    step = (len(points) - 1) / (n - 1)
    samples = []
    for i in range(n):
        # round half up
        index = int(math.floor(i * step + 0.5))
        samples.append(points[min(max(index, 0), len(points) - 1)])
    return samples


def distance_to_route(point: Coordinates, route_points: Sequence[Coordinates]) -> float:
    """Minimum distance in meters from point to any route vertex."""
    min_distance = math.inf
    for route_point in route_points:
        dist = haversine_distance(point, route_point)
        if dist < min_distance:
            min_distance = dist
    return min_distance


def decode_polyline(encoded: str) -> List[Coordinates]:
    """Decode an encoded polyline (precision 1e5)."""
    points: List[Coordinates] = []
    index = 0
    length = len(encoded)
    lat = 0
    lng = 0

    while index < length:
        deltas = []
        for _ in range(2):
            shift = 0
            result = 0
            while True:
                if index >= length:
                    raise ValueError("Truncated polyline")
                b = ord(encoded[index]) - 63
                index += 1
                result |= (b & 0x1F) << shift
                shift += 5
                if b < 0x20:
                    break
            deltas.append(~(result >> 1) if result & 1 else result >> 1)
        lat += deltas[0]
        lng += deltas[1]
        points.append(Coordinates(latitude=lat / 1e5, longitude=lng / 1e5))

    return points


def _encode_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else value << 1
    chunks = []
    while value >= 0x20:
        chunks.append(chr((0x20 | (value & 0x1F)) + 63))
        value >>= 5
    chunks.append(chr(value + 63))
    return "".join(chunks)


def encode_polyline(points: Sequence[Coordinates]) -> str:
    out = []
    prev_lat = 0
    prev_lng = 0
    for point in points:
        lat = int(round(point.latitude * 1e5))
        lng = int(round(point.longitude * 1e5))
        out.append(_encode_value(lat - prev_lat))
        out.append(_encode_value(lng - prev_lng))
        prev_lat, prev_lng = lat, lng
    return "".join(out)


def format_distance(km: float) -> str:
    if km < 1:
        return f"{int(round(km * 1000))} m"
    return f"{km:.1f} km"
