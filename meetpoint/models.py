"""Data models for the venue pipeline, plus the raw-place boundary parse."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

VIBES = ("date", "work", "rooftop", "chill", "party")
VENUE_TYPES = ("cafe", "bar", "restaurant", "pub", "park")
DIETS = ("any", "vegetarian", "vegan")
SEARCH_MODES = ("midpoint", "closer_to_me", "closer_to_them")

UNKNOWN_VENUE_NAME = "Unknown Venue"


class PlaceParseError(ValueError):
    pass


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    @classmethod
    def parse(cls, text: str) -> "Coordinates":
        """Parse "lat,lon"."""
        parts = [p.strip() for p in text.split(",")]
        if len(parts) != 2:
            raise ValueError(f"Expected 'lat,lon', got {text!r}")
        return cls(latitude=float(parts[0]), longitude=float(parts[1]))

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class VenueFilters:
    types: FrozenSet[str] = frozenset()
    diet: str = "any"
    vibe: FrozenSet[str] = frozenset()

    @classmethod
    def build(
        cls,
        types: Optional[Iterable[str]] = None,
        diet: Optional[str] = None,
        vibe: Optional[Iterable[str]] = None,
    ) -> "VenueFilters":
        diet_value = (diet or "any").strip().lower()
        if diet_value not in DIETS:
            raise ValueError(f"Unknown diet: {diet}")
        return cls(
            types=frozenset(t.strip().lower() for t in (types or []) if t and t.strip()),
            diet=diet_value,
            vibe=frozenset(v.strip().lower() for v in (vibe or []) if v and v.strip()),
        )


@dataclass
class Venue:
    id: str
    name: str
    latitude: float
    longitude: float
    tags: Dict[str, str] = field(default_factory=dict)
    score: float = 0.0
    ai_recommended: bool = False

    @property
    def location(self) -> Coordinates:
        return Coordinates(self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RouteInfo:
    points: List[Coordinates]
    distance_meters: float = 0.0
    duration_seconds: float = 0.0
    polyline: str = ""


@dataclass(frozen=True)
class Weather:
    temperature: float
    is_raining: bool
    weather_code: str = "clear"
    description: str = ""


@dataclass
class RawPlace:
    place_id: str
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    types: List[str] = field(default_factory=list)
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    open_now: Optional[bool] = None
    formatted_address: Optional[str] = None
    category: Optional[str] = None

    @property
    def has_geometry(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def _first(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_int(value: Any) -> Optional[int]:
    number = _as_float(value)
    return int(number) if number is not None else None


def _extract_name(record: Mapping[str, Any]) -> str:
    name = record.get("name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    structured = record.get("structured_formatting") or record.get("structuredFormatting")
    if isinstance(structured, Mapping):
        main = structured.get("main_text") or structured.get("mainText")
        if isinstance(main, str) and main.strip():
            return main.strip()
    display = record.get("displayName")
    if isinstance(display, Mapping):
        display = display.get("text")
    if isinstance(display, str) and display.strip():
        return display.strip()
    return UNKNOWN_VENUE_NAME


def _extract_location(record: Mapping[str, Any]) -> tuple[Optional[float], Optional[float]]:
    geometry = record.get("geometry")
    location = geometry.get("location") if isinstance(geometry, Mapping) else None
    if not isinstance(location, Mapping):
        location = record.get("location")
    if not isinstance(location, Mapping):
        return None, None
    lat = _as_float(_first(location, "lat", "latitude"))
    lng = _as_float(_first(location, "lng", "lon", "longitude"))
    if lat is None or lng is None:
        return None, None
    return lat, lng


def _extract_open_now(record: Mapping[str, Any]) -> Optional[bool]:
    hours = record.get("openingHours") or record.get("opening_hours")
    if not isinstance(hours, Mapping):
        return None
    value = hours.get("openNow", hours.get("open_now"))
    return bool(value) if value is not None else None


def parse_raw_place(record: Any, category: Optional[str] = None) -> RawPlace:
    """Validate a provider record and map it onto RawPlace.

    Missing geometry is allowed (the adapter flags it); a record that is not
    a mapping or has no place id is rejected with PlaceParseError.
    """
    if not isinstance(record, Mapping):
        raise PlaceParseError(f"Place record must be a mapping, got {type(record).__name__}")
    place_id = _first(record, "placeId", "place_id", "id")
    if place_id is None:
        raise PlaceParseError("Place record has no place id")

    lat, lng = _extract_location(record)
    types = record.get("types") or []
    if not isinstance(types, list):
        types = []
    address = _first(record, "formattedAddress", "formatted_address", "description", "vicinity")

    return RawPlace(
        place_id=str(place_id),
        name=_extract_name(record),
        latitude=lat,
        longitude=lng,
        types=[str(t) for t in types],
        rating=_as_float(record.get("rating")),
        user_ratings_total=_as_int(_first(record, "userRatingsTotal", "user_ratings_total", "userRatingCount")),
        open_now=_extract_open_now(record),
        formatted_address=str(address) if address is not None else None,
        category=category,
    )
