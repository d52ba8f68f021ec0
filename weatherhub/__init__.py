"""
WeatherHub Backend

Weather aggregation service with:
- Environment Canada city feed fetching (regional, highest trust)
- Open-Meteo forecast fetching (global coverage)
- Feels-like and weighted-average merge of both sources
- Per-location background refresh cache
- REST API for data access
"""

from .aggregator import WeatherAggregator
from .config import Settings
from .errors import (
    AllSourcesFailed,
    CacheShutDown,
    DataNotFound,
    InvalidCoordinate,
    UpstreamUnavailable,
    WeatherError,
)
from .fetcher import GlobalForecastFetcher, RegionalFeedFetcher
from .locations import Coordinate, resolve_feed_key
from .merge import average_values, feels_like, merge
from .models import NormalizedWeather
from .scheduler import CacheEntry, WeatherCache

__version__ = "1.0.0"

__all__ = [
    "WeatherAggregator",
    "Settings",
    "AllSourcesFailed",
    "CacheShutDown",
    "DataNotFound",
    "InvalidCoordinate",
    "UpstreamUnavailable",
    "WeatherError",
    "GlobalForecastFetcher",
    "RegionalFeedFetcher",
    "Coordinate",
    "resolve_feed_key",
    "average_values",
    "feels_like",
    "merge",
    "NormalizedWeather",
    "WeatherCache",
    "CacheEntry",
]
