"""
Coordinate handling and regional feed key resolution.

The regional feed only covers a fixed set of cities. Any coordinate is mapped
to one of them by exact match, then by a one-decimal rounded match, then by
great-circle nearest neighbour.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict

from .errors import InvalidCoordinate

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371
DEFAULT_FEED_KEY = "on-118"  # Ottawa

# "lat,lon" -> province-city feed key. Iteration order breaks distance ties.
CITY_FEED_KEYS: Dict[str, str] = {
    # Ottawa
    "45.4,-75.7": "on-118",
    "45.403,-75.687": "on-118",
    "45.4,-75.69": "on-118",
    # Toronto
    "43.65,-79.38": "on-143",
    "43.7,-79.4": "on-143",
    # Vancouver
    "49.25,-123.1": "bc-74",
    "49.3,-123.1": "bc-74",
    # Calgary
    "51.05,-114.07": "ab-52",
    "51.0,-114.1": "ab-52",
    # Edmonton
    "53.55,-113.5": "ab-50",
    "53.5,-113.5": "ab-50",
    # Montreal
    "45.5,-73.58": "qc-147",
    "45.5,-73.6": "qc-147",
    # Winnipeg
    "49.9,-97.1": "mb-38",
    # Halifax
    "44.6,-63.6": "ns-19",
    # Quebec City
    "46.8,-71.2": "qc-133",
}


@dataclass(frozen=True)
class Coordinate:
    """A validated latitude/longitude pair."""
    lat: float
    lon: float

    @classmethod
    def parse(cls, lat: Any, lon: Any) -> "Coordinate":
        """Validate raw query values; raises InvalidCoordinate."""
        try:
            lat_num = float(lat)
            lon_num = float(lon)
        except (TypeError, ValueError):
            raise InvalidCoordinate(f"Invalid coordinates: latitude {lat}, longitude {lon}") from None

        if math.isnan(lat_num) or math.isnan(lon_num):
            raise InvalidCoordinate(f"Invalid coordinates: latitude {lat}, longitude {lon}")
        if not -90 <= lat_num <= 90:
            raise InvalidCoordinate(f"Latitude must be between -90 and 90, got {lat}")
        if not -180 <= lon_num <= 180:
            raise InvalidCoordinate(f"Longitude must be between -180 and 180, got {lon}")
        return cls(lat=lat_num, lon=lon_num)

    @property
    def key(self) -> str:
        """Fixed-precision identity used for cache keys."""
        return f"{self.lat:.4f},{self.lon:.4f}"

    def __str__(self) -> str:
        return f"{self.lat:.4f}, {self.lon:.4f}"


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def resolve_feed_key(lat: Any, lon: Any) -> str:
    """
    Find the regional feed key for a coordinate.

    Never fails: malformed input falls back to the default city.

    Args:
        lat: Latitude, as received (string or number)
        lon: Longitude, as received (string or number)

    Returns:
        Feed key such as "on-118"
    """
    try:
        lat_num = float(lat)
        lon_num = float(lon)
    except (TypeError, ValueError):
        lat_num = lon_num = float("nan")

    if math.isnan(lat_num) or math.isnan(lon_num):
        logger.error(f"Invalid coordinates provided: {lat}, {lon}. Using default {DEFAULT_FEED_KEY}.")
        return DEFAULT_FEED_KEY

    exact = CITY_FEED_KEYS.get(f"{lat},{lon}")
    if exact:
        return exact

    rounded = CITY_FEED_KEYS.get(f"{lat_num:.1f},{lon_num:.1f}")
    if rounded:
        return rounded

    nearest_key = DEFAULT_FEED_KEY
    min_distance = math.inf
    for coords, feed_key in CITY_FEED_KEYS.items():
        city_lat, city_lon = (float(part) for part in coords.split(","))
        distance = haversine_km(lat_num, lon_num, city_lat, city_lon)
        if distance < min_distance:
            min_distance = distance
            nearest_key = feed_key

    logger.info(
        f"Using nearest feed key {nearest_key} for coordinates {lat}, {lon} (distance: {min_distance:.2f}km)"
    )
    return nearest_key
