"""
Configuration module for the weather aggregation service.

Defaults live here as module constants; deployments override them through
environment variables read by Settings.from_env().
"""

import os
from dataclasses import dataclass

# Upstream endpoints
REGIONAL_FEED_BASE_URL = "https://weather.gc.ca/rss/city"
GLOBAL_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"

# HTTP behaviour
DEFAULT_TIMEOUT = 10  # seconds
MAX_RETRIES = 2
RETRY_BACKOFF = 0.5
USER_AGENT = "WeatherHub/1.0 (Weather Aggregation Service)"

# Refresh and freshness
REFRESH_INTERVAL_MINUTES = 10
STALE_DATA_HOURS = 3

# Merge tuning
REGIONAL_WEIGHT = 0.7
HOURLY_POINTS = 24
FORECAST_DAYS = 14
SHORT_RANGE_PERIODS = 6


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Config validation error: {name} must be numeric, got {raw!r}") from None


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


@dataclass(frozen=True)
class Settings:
    """Runtime settings shared by the fetchers, the merge engine and the cache."""
    regional_feed_base_url: str = REGIONAL_FEED_BASE_URL
    global_forecast_url: str = GLOBAL_FORECAST_URL
    request_timeout: float = DEFAULT_TIMEOUT
    refresh_interval_minutes: float = REFRESH_INTERVAL_MINUTES
    regional_weight: float = REGIONAL_WEIGHT
    stale_data_hours: float = STALE_DATA_HOURS
    hourly_points: int = HOURLY_POINTS
    forecast_days: int = FORECAST_DAYS

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        settings = cls(
            regional_feed_base_url=os.getenv("REGIONAL_FEED_BASE_URL", REGIONAL_FEED_BASE_URL).rstrip("/"),
            global_forecast_url=os.getenv("GLOBAL_FORECAST_URL", GLOBAL_FORECAST_URL),
            request_timeout=_env_float("REQUEST_TIMEOUT", DEFAULT_TIMEOUT),
            refresh_interval_minutes=_env_float("REFRESH_INTERVAL_MINUTES", REFRESH_INTERVAL_MINUTES),
            regional_weight=_env_float("REGIONAL_WEIGHT", REGIONAL_WEIGHT),
            stale_data_hours=_env_float("STALE_DATA_HOURS", STALE_DATA_HOURS),
            hourly_points=_env_int("HOURLY_POINTS", HOURLY_POINTS),
            forecast_days=_env_int("FORECAST_DAYS", FORECAST_DAYS),
        )
        if not 0.0 <= settings.regional_weight <= 1.0:
            raise ValueError(
                f"Config validation error: REGIONAL_WEIGHT must be within [0, 1], got {settings.regional_weight}"
            )
        if settings.refresh_interval_minutes <= 0:
            raise ValueError("Config validation error: REFRESH_INTERVAL_MINUTES must be positive")
        return settings
