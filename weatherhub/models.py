"""
Normalized weather data model.

Every record produced by the fetchers and the merge engine is a dataclass.
Numeric fields are Optional: None means the value was not reported, which is
never the same thing as zero.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

PRIMARY_SOURCE = "Environment Canada"
GLOBAL_SOURCE = "Open-Meteo"


# =============================================================================
# Regional Source Records
# =============================================================================

@dataclass
class RegionalObservation:
    """Current conditions as reported by the regional feed, in its own units."""
    station_id: str
    temperature: Optional[float] = None
    temperature_unit: str = "°C"
    condition: Optional[str] = None
    humidity: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_speed_unit: Optional[str] = None
    wind_direction: Optional[str] = None
    wind_gust: Optional[float] = None
    pressure: Optional[float] = None
    pressure_unit: Optional[str] = None
    pressure_tendency: Optional[str] = None
    visibility: Optional[float] = None
    visibility_unit: Optional[str] = None
    dew_point: Optional[float] = None
    dew_point_unit: str = "°C"
    air_quality: Optional[float] = None
    humidex: Optional[float] = None
    wind_chill: Optional[float] = None
    station_name: Optional[str] = None
    observation_time: Optional[str] = None


@dataclass
class Precipitation:
    type: str
    amount: float
    unit: str


@dataclass
class ShortRangePeriod:
    """One named period ("Monday night") of the regional short-range forecast."""
    period: str
    summary: str
    date: Optional[str] = None
    temperature: Optional[int] = None
    temperature_type: Optional[str] = None  # "high" or "low"
    temperature_unit: str = "°C"
    condition: Optional[str] = None
    precipitation_chance: Optional[int] = None
    precipitation: Optional[Precipitation] = None
    wind_summary: Optional[str] = None


@dataclass
class Alert:
    """Warning attached to a result; currently only stale-data warnings."""
    warning: str


@dataclass
class RegionalResult:
    feed_key: str
    current: RegionalObservation
    short_range: List[ShortRangePeriod] = field(default_factory=list)
    alerts: List[Alert] = field(default_factory=list)


# =============================================================================
# Global Source Records
# =============================================================================

@dataclass
class GlobalCurrent:
    """Current block of the global forecast response, units as delivered."""
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    apparent_temperature: Optional[float] = None
    weather_code: Optional[int] = None
    condition: Optional[str] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[float] = None
    wind_gust: Optional[float] = None
    pressure_msl: Optional[float] = None  # hPa
    visibility: Optional[float] = None    # metres
    cloud_cover: Optional[float] = None
    uv_index: Optional[float] = None
    precipitation: Optional[float] = None
    is_day: Optional[bool] = None
    time: Optional[str] = None


@dataclass
class HourlyPoint:
    time: str
    condition: str
    temperature: Optional[int] = None
    feels_like: Optional[int] = None
    humidity: Optional[float] = None
    dew_point: Optional[int] = None
    precipitation_probability: Optional[float] = None
    precipitation: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[float] = None
    wind_gusts: Optional[float] = None
    pressure: Optional[float] = None
    cloud_cover: Optional[float] = None
    visibility: Optional[float] = None
    uv_index: Optional[float] = None
    temperature_unit: str = "°C"
    precipitation_unit: str = "mm"
    wind_speed_unit: str = "km/h"
    pressure_unit: str = "hPa"
    visibility_unit: str = "m"
    source: str = GLOBAL_SOURCE


@dataclass
class ExtendedDayForecast:
    date: str
    condition: str
    temperature_max: Optional[int] = None
    temperature_min: Optional[int] = None
    feels_like_max: Optional[int] = None
    feels_like_min: Optional[int] = None
    precipitation_sum: Optional[float] = None
    precipitation_probability: Optional[float] = None
    wind_speed_max: Optional[float] = None
    wind_gusts_max: Optional[float] = None
    wind_direction: Optional[float] = None
    uv_index_max: Optional[float] = None
    sunrise: Optional[str] = None
    sunset: Optional[str] = None
    daylight_duration: Optional[float] = None
    sunshine_duration: Optional[float] = None
    temperature_unit: str = "°C"
    precipitation_unit: str = "mm"
    wind_speed_unit: str = "km/h"
    source: str = GLOBAL_SOURCE


@dataclass
class GlobalResult:
    current: Optional[GlobalCurrent] = None
    hourly: List[HourlyPoint] = field(default_factory=list)
    extended: List[ExtendedDayForecast] = field(default_factory=list)


# =============================================================================
# Normalized Output
# =============================================================================

@dataclass
class CurrentSources:
    primary: str
    secondary: List[str] = field(default_factory=list)
    data_quality: str = "Single source"


@dataclass
class CurrentConditions:
    """The single fused current-conditions record published for a location."""
    sources: CurrentSources
    temperature: Optional[int] = None
    temperature_unit: str = "°C"
    feels_like: Optional[int] = None
    feels_like_unit: str = "°C"
    condition: Optional[str] = None
    humidity: Optional[float] = None
    humidity_unit: str = "%"
    wind_speed: Optional[float] = None
    wind_speed_unit: str = "km/h"
    wind_direction: Optional[Union[str, float]] = None
    wind_gust: Optional[float] = None
    wind_gust_unit: str = "km/h"
    pressure: Optional[float] = None
    pressure_unit: str = "kPa"
    pressure_tendency: Optional[str] = None
    visibility: Optional[float] = None
    visibility_unit: str = "km"
    dew_point: Optional[int] = None
    dew_point_unit: str = "°C"
    air_quality: Optional[float] = None
    air_quality_unit: Optional[str] = None
    station_name: Optional[str] = None
    station_id: Optional[str] = None
    observation_time: Optional[str] = None
    uv_index: Optional[float] = None
    cloud_cover: Optional[float] = None
    cloud_cover_unit: Optional[str] = None


@dataclass
class Sources:
    primary: str
    secondary: List[str] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class NormalizedWeather:
    """Aggregate root returned to callers."""
    sources: Sources
    current: List[CurrentConditions] = field(default_factory=list)
    hourly: List[HourlyPoint] = field(default_factory=list)
    short_range: List[ShortRangePeriod] = field(default_factory=list)
    extended: List[ExtendedDayForecast] = field(default_factory=list)
    alerts: List[Alert] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CacheStats:
    location_count: int
    total_fetches: int
    total_errors: int
    average_age_ms: float
