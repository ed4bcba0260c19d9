"""Open-Meteo current-weather client (no API key)."""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional, Tuple

import requests

from . import config
from .http import HttpClient, UpstreamError
from .models import Weather

logger = logging.getLogger(__name__)

# WMO weather interpretation codes -> (code, description, is_raining)
WEATHER_CODES: Dict[int, Tuple[str, str, bool]] = {
    0: ("clear", "Clear sky", False),
    1: ("partly_cloudy", "Mainly clear", False),
    2: ("partly_cloudy", "Partly cloudy", False),
    3: ("cloudy", "Overcast", False),
    45: ("fog", "Foggy", False),
    48: ("fog", "Depositing rime fog", False),
    51: ("drizzle", "Light drizzle", True),
    53: ("drizzle", "Moderate drizzle", True),
    55: ("drizzle", "Dense drizzle", True),
    61: ("rain", "Slight rain", True),
    63: ("rain", "Moderate rain", True),
    65: ("rain", "Heavy rain", True),
    71: ("snow", "Slight snow", False),
    73: ("snow", "Moderate snow", False),
    75: ("snow", "Heavy snow", False),
    80: ("rain", "Slight rain showers", True),
    81: ("rain", "Moderate rain showers", True),
    82: ("rain", "Violent rain showers", True),
    95: ("thunderstorm", "Thunderstorm", True),
    96: ("thunderstorm", "Thunderstorm with hail", True),
    99: ("thunderstorm", "Thunderstorm with heavy hail", True),
}
UNKNOWN_WEATHER = ("clear", "Unknown", False)


class WeatherClient:
    def __init__(self, http_client: Optional[HttpClient] = None) -> None:
        self.http = http_client or HttpClient()

    def get_current_weather(self, lat: float, lon: float) -> Optional[Weather]:
        params = {
            "latitude": lat,
            "longitude": lon,
            "current": "temperature_2m,weather_code",
        }
        try:
            response = self.http.get_json(config.WEATHER_FORECAST_URL, params)
        except (UpstreamError, requests.RequestException) as exc:
            logger.error("Failed to fetch weather: %s", exc)
            return None
        return parse_current_weather(response)


def parse_current_weather(response: Any) -> Optional[Weather]:
    current = response.get("current") if isinstance(response, dict) else None
    if not isinstance(current, dict):
        return None
    try:
        temperature = float(current.get("temperature_2m"))
    except (TypeError, ValueError):
        logger.warning("Ignoring weather with bad temperature: %r", current.get("temperature_2m"))
        return None
    if not math.isfinite(temperature):
        return None
    try:
        code_num = int(current.get("weather_code"))
    except (TypeError, ValueError):
        code_num = -1
    code, description, is_raining = WEATHER_CODES.get(code_num, UNKNOWN_WEATHER)
    return Weather(
        temperature=float(math.floor(temperature + 0.5)),
        is_raining=is_raining,
        weather_code=code,
        description=description,
    )
