"""
Merge engine for the weather aggregation service.

Fuses the regional observation and the global current block into a single
current-conditions record and passes every forecast series through from the
one source that provides it:
- hourly and extended: global source only
- short range and alerts: regional source only
"""

import logging
from typing import Optional

from .config import REGIONAL_WEIGHT
from .errors import AllSourcesFailed
from .models import (
    GLOBAL_SOURCE,
    PRIMARY_SOURCE,
    CurrentConditions,
    CurrentSources,
    GlobalCurrent,
    GlobalResult,
    NormalizedWeather,
    RegionalObservation,
    RegionalResult,
    Sources,
)
from .units import hpa_to_kpa, metres_to_km, round_half_up, round_to

logger = logging.getLogger(__name__)

# Feels-like thresholds; comparisons are strict
HUMIDEX_MIN_TEMP = 20
WIND_CHILL_MAX_TEMP = 10
HEAT_INDEX_MIN_HUMIDITY = 40
WIND_CHILL_MIN_SPEED = 10

DEFAULT_WEIGHT = 0.6

CONFIDENCE_COMBINED = 0.95
CONFIDENCE_REGIONAL_ONLY = 0.90
CONFIDENCE_GLOBAL_ONLY = 0.80


def feels_like(
    temperature: Optional[float],
    humidity: Optional[float],
    wind_speed: Optional[float],
    apparent_temperature: Optional[float],
    humidex: Optional[float],
    wind_chill: Optional[float]
) -> Optional[int]:
    """
    Pick one perceived temperature by fixed precedence.

    Humidex when warm, then wind chill when cold, then the global apparent
    temperature, then simple heat/wind heuristics, then the raw temperature.

    Returns:
        Feels-like temperature rounded to the nearest degree, or None
    """
    if humidex is not None and temperature is not None and temperature > HUMIDEX_MIN_TEMP:
        return round_half_up(humidex)

    if wind_chill is not None and temperature is not None and temperature < WIND_CHILL_MAX_TEMP:
        return round_half_up(wind_chill)

    if apparent_temperature is not None:
        return round_half_up(apparent_temperature)

    if temperature is None:
        return None

    if temperature > HUMIDEX_MIN_TEMP and humidity is not None and humidity > HEAT_INDEX_MIN_HUMIDITY:
        return round_half_up(temperature + 0.5 * (humidity - HEAT_INDEX_MIN_HUMIDITY) / 10)

    if temperature < WIND_CHILL_MAX_TEMP and wind_speed is not None and wind_speed > WIND_CHILL_MIN_SPEED:
        return round_half_up(temperature - wind_speed * 0.2)

    return round_half_up(temperature)


def average_values(
    value1: Optional[float],
    value2: Optional[float],
    weight1: float = DEFAULT_WEIGHT
) -> Optional[float]:
    """Weighted average favouring value1, rounded to one decimal place."""
    if weight1 < 0 or weight1 > 1:
        logger.error(f"Invalid weight parameter: {weight1}. Using default {DEFAULT_WEIGHT}")
        weight1 = DEFAULT_WEIGHT

    if value1 is None and value2 is None:
        return None
    if value1 is None:
        return value2
    if value2 is None:
        return value1

    return round_to(value1 * weight1 + value2 * (1 - weight1), 1)


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def combine_current(
    regional: RegionalObservation,
    glob: GlobalCurrent,
    weight: float = REGIONAL_WEIGHT
) -> CurrentConditions:
    """Fuse both current records: numbers averaged, categories regional-first."""
    temperature = average_values(regional.temperature, glob.temperature, weight)
    rounded_temperature = round_half_up(temperature)
    humidity = average_values(regional.humidity, glob.humidity, weight)
    wind_speed = average_values(regional.wind_speed, glob.wind_speed, weight)

    return CurrentConditions(
        temperature=rounded_temperature,
        temperature_unit=regional.temperature_unit or "°C",
        feels_like=feels_like(
            rounded_temperature,
            humidity,
            wind_speed,
            glob.apparent_temperature,
            regional.humidex,
            regional.wind_chill,
        ),
        condition=_first(regional.condition, glob.condition),
        humidity=humidity,
        wind_speed=wind_speed,
        wind_speed_unit=regional.wind_speed_unit or "km/h",
        wind_direction=_first(regional.wind_direction, glob.wind_direction),
        wind_gust=_first(regional.wind_gust, glob.wind_gust),
        pressure=_first(regional.pressure, hpa_to_kpa(glob.pressure_msl)),
        pressure_unit=regional.pressure_unit if regional.pressure is not None and regional.pressure_unit else "kPa",
        pressure_tendency=regional.pressure_tendency,
        visibility=_first(regional.visibility, metres_to_km(glob.visibility)),
        visibility_unit=regional.visibility_unit if regional.visibility is not None and regional.visibility_unit else "km",
        dew_point=round_half_up(regional.dew_point),
        dew_point_unit=regional.dew_point_unit,
        air_quality=regional.air_quality,
        air_quality_unit="AQHI" if regional.air_quality is not None else None,
        station_name=regional.station_name,
        station_id=regional.station_id,
        observation_time=regional.observation_time,
        uv_index=glob.uv_index,
        cloud_cover=glob.cloud_cover,
        cloud_cover_unit="%" if glob.cloud_cover is not None else None,
        sources=CurrentSources(
            primary=PRIMARY_SOURCE,
            secondary=[GLOBAL_SOURCE],
            data_quality="Combined",
        ),
    )


def adapt_regional_current(regional: RegionalObservation) -> CurrentConditions:
    """Publish the regional observation on its own, without averaging."""
    temperature = round_half_up(regional.temperature)
    return CurrentConditions(
        temperature=temperature,
        temperature_unit=regional.temperature_unit or "°C",
        feels_like=feels_like(temperature, None, None, None, regional.humidex, regional.wind_chill),
        condition=regional.condition,
        humidity=regional.humidity,
        wind_speed=regional.wind_speed,
        wind_speed_unit=regional.wind_speed_unit or "km/h",
        wind_direction=regional.wind_direction,
        wind_gust=regional.wind_gust,
        pressure=regional.pressure,
        pressure_unit=regional.pressure_unit or "kPa",
        pressure_tendency=regional.pressure_tendency,
        visibility=regional.visibility,
        visibility_unit=regional.visibility_unit or "km",
        dew_point=round_half_up(regional.dew_point),
        dew_point_unit=regional.dew_point_unit,
        air_quality=regional.air_quality,
        air_quality_unit="AQHI" if regional.air_quality is not None else None,
        station_name=regional.station_name,
        station_id=regional.station_id,
        observation_time=regional.observation_time,
        sources=CurrentSources(primary=PRIMARY_SOURCE),
    )


def adapt_global_current(glob: GlobalCurrent) -> CurrentConditions:
    """Publish the global current block on its own, converted to display units."""
    temperature = round_half_up(glob.temperature)
    return CurrentConditions(
        temperature=temperature,
        feels_like=feels_like(
            temperature, glob.humidity, glob.wind_speed, glob.apparent_temperature, None, None
        ),
        condition=glob.condition,
        humidity=glob.humidity,
        wind_speed=glob.wind_speed,
        wind_direction=glob.wind_direction,
        wind_gust=glob.wind_gust,
        pressure=hpa_to_kpa(glob.pressure_msl),
        visibility=metres_to_km(glob.visibility),
        uv_index=glob.uv_index,
        cloud_cover=glob.cloud_cover,
        cloud_cover_unit="%" if glob.cloud_cover is not None else None,
        sources=CurrentSources(primary=GLOBAL_SOURCE),
    )


def merge(
    regional: Optional[RegionalResult],
    glob: Optional[GlobalResult],
    weight: float = REGIONAL_WEIGHT
) -> NormalizedWeather:
    """
    Build the normalized result from whichever sources succeeded.

    Args:
        regional: Regional feed result, or None if that source failed
        glob: Global forecast result, or None if that source failed
        weight: Weight given to the regional source when averaging

    Raises:
        AllSourcesFailed: both inputs are None
    """
    if regional is None and glob is None:
        raise AllSourcesFailed("Failed to fetch data from all weather sources")

    if regional is not None and glob is not None:
        current = combine_current(regional.current, glob.current or GlobalCurrent(), weight)
        sources = Sources(primary=PRIMARY_SOURCE, secondary=[GLOBAL_SOURCE], confidence=CONFIDENCE_COMBINED)
        logger.info("Combined current conditions from both sources")
    elif regional is not None:
        current = adapt_regional_current(regional.current)
        sources = Sources(primary=PRIMARY_SOURCE, confidence=CONFIDENCE_REGIONAL_ONLY)
        logger.warning("Using Environment Canada current conditions only")
    else:
        current = adapt_global_current(glob.current or GlobalCurrent())
        sources = Sources(primary=GLOBAL_SOURCE, confidence=CONFIDENCE_GLOBAL_ONLY)
        logger.warning("Using Open-Meteo current conditions only")

    return NormalizedWeather(
        current=[current],
        hourly=list(glob.hourly) if glob is not None else [],
        short_range=list(regional.short_range) if regional is not None else [],
        extended=list(glob.extended) if glob is not None else [],
        alerts=list(regional.alerts) if regional is not None else [],
        sources=sources,
    )
