"""
Two-source weather aggregation.

Runs the regional and global fetches concurrently, waits for both, downgrades
each failure to "source absent" and hands whatever succeeded to the merge
engine.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, TypeVar

from .config import Settings
from .fetcher import GlobalForecastFetcher, RegionalFeedFetcher
from .locations import Coordinate
from .merge import merge
from .models import NormalizedWeather

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WeatherAggregator:
    """Fetches both upstream sources for a coordinate and merges the results."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        regional: Optional[RegionalFeedFetcher] = None,
        global_forecast: Optional[GlobalForecastFetcher] = None
    ):
        self.settings = settings or Settings()
        self.regional = regional or RegionalFeedFetcher(
            timeout=self.settings.request_timeout,
            base_url=self.settings.regional_feed_base_url,
            stale_after_hours=self.settings.stale_data_hours,
        )
        self.global_forecast = global_forecast or GlobalForecastFetcher(
            timeout=self.settings.request_timeout,
            base_url=self.settings.global_forecast_url,
            forecast_days=self.settings.forecast_days,
            hourly_points=self.settings.hourly_points,
        )

    def fetch(self, coord: Coordinate) -> NormalizedWeather:
        """
        Fetch and merge weather for one coordinate.

        Raises:
            AllSourcesFailed: neither source produced data
        """
        start = time.monotonic()
        logger.info(f"Starting weather data fetch for coordinates {coord}")

        def fetch_regional_safe():
            return self._settle("Environment Canada", self.regional.fetch, coord)

        def fetch_global_safe():
            return self._settle("Open-Meteo", self.global_forecast.fetch, coord)

        with ThreadPoolExecutor(max_workers=2) as executor:
            regional_future = executor.submit(fetch_regional_safe)
            global_future = executor.submit(fetch_global_safe)
            regional_result = regional_future.result()
            global_result = global_future.result()

        weather = merge(regional_result, global_result, self.settings.regional_weight)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            f"Weather data compilation completed in {elapsed_ms}ms "
            f"with confidence {weather.sources.confidence}"
        )
        return weather

    @staticmethod
    def _settle(name: str, fetch: Callable[[float, float], T], coord: Coordinate) -> Optional[T]:
        try:
            return fetch(coord.lat, coord.lon)
        except Exception as e:
            logger.error(f"{name} source failed: {e}")
            return None

    def close(self) -> None:
        self.regional.close()
        self.global_forecast.close()
