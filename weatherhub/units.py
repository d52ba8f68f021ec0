"""
Unit normalization and weather condition decoding.

Pure helpers used by both fetchers and the merge engine:
- half-up rounding (matches how published values were always rounded)
- hPa -> kPa and metre -> kilometre conversions
- WMO weather interpretation codes -> condition text
"""

import math
from typing import Any, Optional

# WMO weather interpretation codes as used by the global forecast API
WEATHER_CODES = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    56: "Light freezing drizzle",
    57: "Dense freezing drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    66: "Light freezing rain",
    67: "Heavy freezing rain",
    71: "Slight snow",
    73: "Moderate snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Slight snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with slight hail",
    99: "Thunderstorm with heavy hail",
}


def safe_float(value: Any) -> Optional[float]:
    """Coerce to float, returning None for missing or non-numeric input."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def round_half_up(value: Optional[float]) -> Optional[int]:
    """Round to the nearest integer, halves rounding towards +infinity."""
    if value is None:
        return None
    return int(math.floor(value + 0.5))


def round_to(value: Optional[float], places: int = 1) -> Optional[float]:
    """Round to a number of decimal places, halves rounding towards +infinity."""
    if value is None:
        return None
    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


def hpa_to_kpa(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return round_to(value / 10, 1)


def metres_to_km(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return round_to(value / 1000, 1)


def describe_weather_code(code: Any) -> str:
    """Translate a WMO weather code into condition text.

    Unknown codes never fail; the raw code is embedded in the fallback text.
    """
    if code is None:
        return "Unknown"
    number = safe_float(code)
    if number is not None and number.is_integer():
        text = WEATHER_CODES.get(int(number))
        if text:
            return text
        return f"Unknown weather condition (code: {int(number)})"
    return f"Unknown weather condition (code: {code})"
