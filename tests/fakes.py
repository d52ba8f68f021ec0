"""Payload builders and fake collaborators shared by the test modules."""
from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Union

from weatherhub.locations import Coordinate
from weatherhub.models import (
    CurrentConditions,
    CurrentSources,
    GlobalCurrent,
    GlobalResult,
    NormalizedWeather,
    RegionalObservation,
    RegionalResult,
    Sources,
)

OTTAWA_FEED_URL = "https://weather.gc.ca/rss/city/on-118_e.xml"
OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"

CURRENT_SUMMARY = (
    "<b>Observed at:</b> Ottawa Macdonald-Cartier Int'l Airport 6:00 PM EDT Saturday 28 June 2025 <br/>\n"
    "<b>Condition:</b> Partly Cloudy <br/>\n"
    "<b>Temperature:</b> 18.8&deg;C <br/>\n"
    "<b>Pressure / Tendency:</b> 101.3 kPa rising<br/>\n"
    "<b>Visibility:</b> 24 km<br/>\n"
    "<b>Humidity:</b> 75 %<br/>\n"
    "<b>Dewpoint:</b> 14.2&deg;C <br/>\n"
    "<b>Wind:</b> NW 22 gust 35 km/h<br/>\n"
    "<b>Air Quality Health Index:</b> 3 <br/>"
)

FORECASTS = [
    ("Saturday night: Clear. Low 12.",
     "Clear. Wind northwest 20 km/h becoming light this evening. Low 12."),
    ("Sunday: Chance of showers. High 24. POP 40%",
     "A few clouds. Periods of rain with amount 10 mm. High 24."),
    ("Sunday night: Cloudy. Low minus 2.", "Cloudy. Low minus 2."),
    ("Monday: Sunny. High 26.", "Sunny. High 26."),
    ("Monday night: Clear. Low 14.", "Clear. Low 14."),
    ("Tuesday: Sunny. High 28.", "Sunny. High 28."),
    ("Tuesday night: Clear. Low 16.", "Clear. Low 16."),
    ("Wednesday: Sunny. High 29.", "Sunny. High 29."),
]


def atom_entry(title: str, term: str, summary: str, updated: str) -> str:
    return f"""
  <entry>
    <title>{title}</title>
    <link type="text/html" href="https://weather.gc.ca/city/pages/on-118_metric_e.html"/>
    <updated>{updated}</updated>
    <published>{updated}</published>
    <category term="{term}"/>
    <summary type="html"><![CDATA[{summary}]]></summary>
    <id>tag:weather.gc.ca,2013-04-16:on-118_{abs(hash(title))}</id>
  </entry>"""


def build_feed(
    updated: str = "2025-06-28T22:00:00Z",
    current_summary: Optional[str] = CURRENT_SUMMARY,
    forecasts: Sequence = FORECASTS,
) -> bytes:
    """Atom document shaped like an Environment Canada city feed."""
    entries = []
    if current_summary is not None:
        entries.append(atom_entry("Current Conditions: 18.8°C", "Current Conditions", current_summary, updated))
    for title, summary in forecasts:
        entries.append(atom_entry(title, "Weather Forecasts", summary, updated))

    return f"""<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xml:lang="en-ca">
  <title>Ottawa (Kanata - Orleans) - Weather - Environment Canada</title>
  <link rel="alternate" type="text/html" href="https://weather.gc.ca/city/pages/on-118_metric_e.html"/>
  <updated>{updated}</updated>
  <author><name>Environment and Climate Change Canada</name></author>
  <id>tag:weather.gc.ca,2013-04-16:20250628220000</id>
  {"".join(entries)}
</feed>""".encode("utf-8")


def build_forecast_payload(
    start: datetime = datetime(2025, 6, 28, 0, 0),
    hours: int = 48,
    days: int = 14,
) -> dict:
    """Open-Meteo style response with current, hourly and daily sections."""
    hourly_times = [(start + timedelta(hours=i)).strftime("%Y-%m-%dT%H:%M") for i in range(hours)]
    daily_times = [(start + timedelta(days=i)).strftime("%Y-%m-%d") for i in range(days)]

    return {
        "latitude": 45.42,
        "longitude": -75.7,
        "utc_offset_seconds": 0,
        "timezone": "GMT",
        "current": {
            "time": "2025-06-28T22:00",
            "temperature_2m": 17.0,
            "relative_humidity_2m": 74,
            "apparent_temperature": 16.4,
            "is_day": 1,
            "precipitation": 0.0,
            "weather_code": 61,
            "cloud_cover": 40,
            "pressure_msl": 1013.2,
            "surface_pressure": 1001.0,
            "visibility": 24100.0,
            "wind_speed_10m": 18.0,
            "wind_direction_10m": 300,
            "wind_gusts_10m": 33.0,
            "uv_index": 0.5,
        },
        "hourly": {
            "time": hourly_times,
            "temperature_2m": [15.0 + (i % 10) for i in range(hours)],
            "relative_humidity_2m": [70] * hours,
            "dew_point_2m": [10.4] * hours,
            "apparent_temperature": [14.6 + (i % 10) for i in range(hours)],
            "precipitation_probability": [20] * hours,
            "precipitation": [0.0] * hours,
            "weather_code": [3] * hours,
            "pressure_msl": [1012.5] * hours,
            "cloud_cover": [80] * hours,
            "visibility": [20000.0] * hours,
            "wind_speed_10m": [12.0] * hours,
            "wind_direction_10m": [270] * hours,
            "wind_gusts_10m": [25.0] * hours,
            "uv_index": [1.0] * hours,
        },
        "daily": {
            "time": daily_times,
            "weather_code": [61] * days,
            "temperature_2m_max": [24.6] * days,
            "temperature_2m_min": [12.4] * days,
            "apparent_temperature_max": [25.2] * days,
            "apparent_temperature_min": [11.5] * days,
            "sunrise": [f"{d}T05:15" for d in daily_times],
            "sunset": [f"{d}T20:50" for d in daily_times],
            "daylight_duration": [56100.0] * days,
            "sunshine_duration": [40000.0] * days,
            "uv_index_max": [7.5] * days,
            "precipitation_sum": [2.5] * days,
            "precipitation_probability_max": [60] * days,
            "wind_speed_10m_max": [20.0] * days,
            "wind_gusts_10m_max": [40.0] * days,
            "wind_direction_10m_dominant": [280] * days,
        },
    }


def regional_result(**overrides) -> RegionalResult:
    observation = dict(
        station_id="on-118",
        temperature=18.8,
        condition="Partly Cloudy",
        humidity=75.0,
        wind_speed=22.0,
        wind_speed_unit="km/h",
        wind_direction="NW",
        wind_gust=35.0,
        pressure=101.3,
        pressure_unit="kPa",
        pressure_tendency="rising",
        visibility=24.0,
        visibility_unit="km",
        dew_point=14.2,
        air_quality=3.0,
        station_name="Ottawa Macdonald-Cartier Int'l Airport",
        observation_time="2025-06-28T22:00:00Z",
    )
    observation.update(overrides)
    return RegionalResult(feed_key="on-118", current=RegionalObservation(**observation))


def global_result(**overrides) -> GlobalResult:
    current = dict(
        temperature=17.0,
        humidity=74.0,
        apparent_temperature=16.4,
        weather_code=61,
        condition="Slight rain",
        wind_speed=18.0,
        wind_direction=300.0,
        wind_gust=33.0,
        pressure_msl=1013.2,
        visibility=24100.0,
        cloud_cover=40.0,
        uv_index=0.5,
    )
    current.update(overrides)
    return GlobalResult(current=GlobalCurrent(**current))


def weather(temperature: int = 18, confidence: float = 0.95) -> NormalizedWeather:
    return NormalizedWeather(
        current=[CurrentConditions(
            temperature=temperature,
            feels_like=temperature,
            condition="Partly Cloudy",
            sources=CurrentSources(primary="Environment Canada", secondary=["Open-Meteo"], data_quality="Combined"),
        )],
        sources=Sources(primary="Environment Canada", secondary=["Open-Meteo"], confidence=confidence),
    )


class FakeAggregator:
    """Stands in for WeatherAggregator; replays scripted results or errors."""

    def __init__(self, *results: Union[NormalizedWeather, Exception], delay: float = 0.0):
        self.results: List[Union[NormalizedWeather, Exception]] = list(results) or [weather()]
        self.delay = delay
        self.calls = 0
        self.closed = False
        self.on_fetch = None
        self._lock = threading.Lock()

    def fetch(self, coord: Coordinate) -> NormalizedWeather:
        with self._lock:
            self.calls += 1
            item = self.results[min(self.calls, len(self.results)) - 1]
        if self.delay:
            time.sleep(self.delay)
        if self.on_fetch:
            self.on_fetch(coord)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.closed = True


class FakeFetcher:
    """Stands in for one upstream fetcher."""

    def __init__(self, result=None, error: Optional[Exception] = None, barrier: Optional[threading.Barrier] = None):
        self.result = result
        self.error = error
        self.barrier = barrier
        self.calls = []

    def fetch(self, lat, lon):
        self.calls.append((lat, lon))
        if self.barrier is not None:
            self.barrier.wait()
        if self.error is not None:
            raise self.error
        return self.result

    def close(self) -> None:
        pass
