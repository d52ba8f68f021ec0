"""
Upstream fetcher module for the weather aggregation service.

Handles data retrieval from heterogeneous sources:
- Regional feed: Environment Canada city Atom feeds (semi-structured HTML summaries)
- Global forecast: Open-Meteo JSON (parallel numeric arrays keyed by field)

Dependability through:
- Different parsing strategies for different data formats
- Best-effort field extraction (one bad field never fails the record)
- Freshness tracking (stale observation warnings)
- Fault tolerance (retry mechanism, bounded timeouts)
"""

import html
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import feedparser
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import (
    DEFAULT_TIMEOUT,
    FORECAST_DAYS,
    GLOBAL_FORECAST_URL,
    HOURLY_POINTS,
    MAX_RETRIES,
    REGIONAL_FEED_BASE_URL,
    RETRY_BACKOFF,
    SHORT_RANGE_PERIODS,
    STALE_DATA_HOURS,
    USER_AGENT,
)
from .errors import DataNotFound, UpstreamUnavailable
from .locations import resolve_feed_key
from .merge import feels_like
from .models import (
    Alert,
    ExtendedDayForecast,
    GlobalCurrent,
    GlobalResult,
    HourlyPoint,
    Precipitation,
    RegionalObservation,
    RegionalResult,
    ShortRangePeriod,
)
from .units import describe_weather_code, round_half_up, safe_float

logger = logging.getLogger(__name__)

CURRENT_CONDITIONS = "Current Conditions"
WEATHER_FORECASTS = "Weather Forecasts"

CURRENT_FIELDS = [
    "temperature_2m",
    "relative_humidity_2m",
    "apparent_temperature",
    "is_day",
    "precipitation",
    "weather_code",
    "cloud_cover",
    "pressure_msl",
    "surface_pressure",
    "visibility",
    "wind_speed_10m",
    "wind_direction_10m",
    "wind_gusts_10m",
    "uv_index",
]

HOURLY_FIELDS = [
    "temperature_2m",
    "relative_humidity_2m",
    "dew_point_2m",
    "apparent_temperature",
    "precipitation_probability",
    "precipitation",
    "weather_code",
    "pressure_msl",
    "cloud_cover",
    "visibility",
    "wind_speed_10m",
    "wind_direction_10m",
    "wind_gusts_10m",
    "uv_index",
]

DAILY_FIELDS = [
    "weather_code",
    "temperature_2m_max",
    "temperature_2m_min",
    "apparent_temperature_max",
    "apparent_temperature_min",
    "sunrise",
    "sunset",
    "daylight_duration",
    "sunshine_duration",
    "uv_index_max",
    "precipitation_sum",
    "precipitation_probability_max",
    "wind_speed_10m_max",
    "wind_gusts_10m_max",
    "wind_direction_10m_dominant",
]


def create_session(accept: str) -> requests.Session:
    """Create HTTP session with retry strategy for availability."""
    session = requests.Session()

    retry_strategy = Retry(
        total=MAX_RETRIES,
        backoff_factor=RETRY_BACKOFF,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET", "HEAD"]
    )

    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    session.headers.update({
        "User-Agent": USER_AGENT,
        "Accept": accept
    })

    return session


class BaseFetcher:
    """Shared HTTP plumbing: session, timeout and transport error translation."""

    source_name = "upstream"
    accept = "*/*"

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout
        self._session = create_session(self.accept)

    def _fetch_raw(self, url: str, params: Optional[Dict[str, str]] = None) -> Tuple[requests.Response, int]:
        """Fetch a URL with timing; every failure surfaces as UpstreamUnavailable."""
        start_time = datetime.now(timezone.utc)

        try:
            response = self._session.get(url, params=params, timeout=self.timeout, allow_redirects=True)
            response.raise_for_status()

            response_time = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)
            return response, response_time

        except requests.Timeout:
            raise UpstreamUnavailable(f"{self.source_name}: request timed out after {self.timeout}s")
        except requests.ConnectionError as e:
            raise UpstreamUnavailable(f"{self.source_name}: connection error - source unavailable: {e}")
        except requests.HTTPError as e:
            raise UpstreamUnavailable(f"{self.source_name}: HTTP error {e.response.status_code}")
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"{self.source_name}: request failed: {e}")

    def close(self) -> None:
        """Close HTTP session."""
        self._session.close()


# =============================================================================
# Regional Feed (Semi-Structured Atom)
# =============================================================================

def clean_html(text: str) -> str:
    """Remove HTML tags and decode HTML entities from text."""
    if not text:
        return ""
    text = re.sub(r'<[^>]+>', ' ', text)
    text = html.unescape(text)
    text = re.sub(r'\s+', ' ', text).strip()
    return text


def parse_summary(summary: Any) -> Dict[str, str]:
    """
    Turn a current-conditions HTML summary into a flat label -> value map.

    Each line of the form "<b>Label:</b> value" contributes one entry with a
    lower-cased label; any other line is ignored.
    """
    data: Dict[str, str] = {}
    if not isinstance(summary, str) or not summary:
        return data

    text = re.sub(r'<!\[CDATA\[|\]\]>', '', summary)
    text = re.sub(r'<br\s*/?>', '\n', text, flags=re.IGNORECASE)
    text = text.replace('&nbsp;', ' ')

    for line in text.split('\n'):
        match = re.search(r'<b>([^:<]+):</b>\s*(.+)', line.strip(), re.IGNORECASE)
        if not match:
            continue
        key = re.sub(r'\s+', ' ', match.group(1).strip().lower())
        value = html.unescape(re.sub(r'<[^>]*>', '', match.group(2))).strip()
        data[key] = value

    return data


def _search(pattern: str, text: Optional[str], flags: int = 0) -> Optional[re.Match]:
    if not text:
        return None
    return re.search(pattern, text, flags)


def extract_temperature(text: Optional[str]) -> Tuple[Optional[float], str]:
    match = _search(r'(-?\d+\.?\d*)\s*°?\s*([CF])?', text)
    if not match:
        return None, "°C"
    unit = f"°{match.group(2)}" if match.group(2) else "°C"
    return safe_float(match.group(1)), unit


def extract_pressure(text: Optional[str]) -> Tuple[Optional[float], Optional[str], Optional[str]]:
    """"101.3 kPa rising" -> (101.3, "kPa", "rising")."""
    match = _search(r'(\d+\.?\d*)\s*([A-Za-z]+)\s*([A-Za-z]+)?', text)
    if not match:
        return None, None, None
    return safe_float(match.group(1)), match.group(2), match.group(3)


def extract_wind(text: Optional[str]) -> Tuple[Optional[str], Optional[float], Optional[str], Optional[float]]:
    """"NW 22 gust 35 km/h" -> ("NW", 22.0, "km/h", 35.0)."""
    direction = speed = unit = gust = None

    match = _search(r'\b([NSEW]{1,3})\s+(\d+)\s*(?:gust(?:ing)?\s+(?:to\s+)?\d+\s*)?(\w+/?\w*)', text)
    if match:
        direction = match.group(1)
        speed = safe_float(match.group(2))
        unit = match.group(3)

    gust_match = _search(r'gust(?:ing)?\s+(?:to\s+)?(\d+)', text, re.IGNORECASE)
    if gust_match:
        gust = safe_float(gust_match.group(1))

    return direction, speed, unit, gust


def extract_measure(text: Optional[str]) -> Tuple[Optional[float], Optional[str]]:
    """"24 km" -> (24.0, "km")."""
    match = _search(r'(\d+\.?\d*)\s*([A-Za-z]+)', text)
    if not match:
        return None, None
    return safe_float(match.group(1)), match.group(2)


def extract_number(text: Optional[str]) -> Optional[float]:
    match = _search(r'(-?\d+\.?\d*)', text)
    return safe_float(match.group(1)) if match else None


def parse_current_conditions(
    weather_data: Dict[str, str],
    feed_key: str,
    observation_time: Optional[str]
) -> RegionalObservation:
    """Build the regional observation from the label -> value map."""
    temperature, temperature_unit = extract_temperature(weather_data.get("temperature"))
    pressure, pressure_unit, pressure_tendency = extract_pressure(weather_data.get("pressure / tendency"))
    wind_direction, wind_speed, wind_unit, wind_gust = extract_wind(weather_data.get("wind"))
    visibility, visibility_unit = extract_measure(weather_data.get("visibility"))
    dew_point, dew_point_unit = extract_temperature(weather_data.get("dewpoint"))

    return RegionalObservation(
        station_id=feed_key,
        temperature=temperature,
        temperature_unit=temperature_unit,
        condition=weather_data.get("condition") or None,
        humidity=extract_number(weather_data.get("humidity")),
        wind_speed=wind_speed,
        wind_speed_unit=wind_unit,
        wind_direction=wind_direction,
        wind_gust=wind_gust,
        pressure=pressure,
        pressure_unit=pressure_unit,
        pressure_tendency=pressure_tendency,
        visibility=visibility,
        visibility_unit=visibility_unit,
        dew_point=dew_point,
        dew_point_unit=dew_point_unit,
        air_quality=extract_number(weather_data.get("air quality health index")),
        humidex=extract_number(weather_data.get("humidex")),
        wind_chill=extract_number(weather_data.get("wind chill")),
        station_name=weather_data.get("observed at") or None,
        observation_time=observation_time,
    )


def parse_forecast_period(title: str, summary_html: str, date: Optional[str]) -> ShortRangePeriod:
    """Parse one "Weather Forecasts" entry into a short-range period."""
    title = title or ""
    summary = clean_html(summary_html)

    period_match = re.match(r'^([^:]+):', title)
    period = period_match.group(1).strip() if period_match else title

    temperature = temperature_type = None
    temp_match = re.search(r'\b(High|Low)\s+(minus\s+)?(-?\d+)', title, re.IGNORECASE)
    if temp_match:
        temperature = int(temp_match.group(3))
        if temp_match.group(2):
            temperature = -temperature
        temperature_type = temp_match.group(1).lower()

    pop_match = re.search(r'POP\s+(\d+)%', title, re.IGNORECASE)
    precipitation_chance = int(pop_match.group(1)) if pop_match else None

    wind_match = re.search(r'wind\s+[^.]*?\d+\s*km/h[^.]*', summary, re.IGNORECASE)
    wind_summary = wind_match.group(0).strip() if wind_match else None

    precipitation = None
    precip_match = re.search(
        r'(rain|snow|showers|flurries)[^.]*?amount[^.]*?(\d+(?:\.\d+)?)[^.]*?(mm|cm)',
        summary,
        re.IGNORECASE
    )
    if precip_match:
        precipitation = Precipitation(
            type=precip_match.group(1),
            amount=float(precip_match.group(2)),
            unit=precip_match.group(3),
        )

    return ShortRangePeriod(
        period=period,
        summary=summary,
        date=date,
        temperature=temperature,
        temperature_type=temperature_type,
        condition=summary.split('.')[0].strip() or None,
        precipitation_chance=precipitation_chance,
        precipitation=precipitation,
        wind_summary=wind_summary,
    )


def _entry_terms(entry: Any) -> List[str]:
    return [tag.get("term") for tag in (entry.get("tags") or []) if tag.get("term")]


def _entry_time(entry: Any) -> Optional[datetime]:
    parsed = entry.get("updated_parsed")
    if parsed:
        return datetime(*parsed[:6], tzinfo=timezone.utc)
    raw = entry.get("updated")
    if not raw:
        return None
    try:
        value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        logger.error(f"Unable to parse observation time: {raw}")
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def check_data_age(observed: Optional[datetime], max_age_hours: float,
                   now: Optional[datetime] = None) -> Optional[Alert]:
    """Return a stale-data alert when the observation is older than the threshold."""
    if observed is None:
        return None
    now = now or datetime.now(timezone.utc)
    age_hours = (now - observed).total_seconds() / 3600
    if age_hours > max_age_hours:
        return Alert(
            warning=f"Data is {round_half_up(age_hours)} hours old. Latest observation: {observed.isoformat()}"
        )
    return None


class RegionalFeedFetcher(BaseFetcher):
    """
    Fetcher for Environment Canada city feeds.

    Coverage is limited to the cities in the feed key table; any coordinate
    resolves to the nearest of them.
    """

    source_name = "Environment Canada"
    accept = "application/xml, text/xml, application/atom+xml, */*"

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: str = REGIONAL_FEED_BASE_URL,
        stale_after_hours: float = STALE_DATA_HOURS,
        max_periods: int = SHORT_RANGE_PERIODS
    ):
        super().__init__(timeout)
        self.base_url = base_url.rstrip("/")
        self.stale_after_hours = stale_after_hours
        self.max_periods = max_periods

    def feed_url(self, feed_key: str) -> str:
        return f"{self.base_url}/{feed_key}_e.xml"

    def fetch(self, lat: Any, lon: Any) -> RegionalResult:
        """
        Fetch and parse the regional feed for one coordinate.

        Raises:
            UpstreamUnavailable: transport failure or structurally invalid feed
            DataNotFound: feed has no current-conditions entry
        """
        feed_key = resolve_feed_key(lat, lon)
        url = self.feed_url(feed_key)

        logger.info(f"Fetching regional feed for {lat}, {lon} using feed key {feed_key}")
        response, response_time = self._fetch_raw(url)

        result = self.parse_feed(response.content, feed_key)
        logger.info(
            f"Regional feed {feed_key} fetched in {response_time}ms: "
            f"{len(result.short_range)} forecast periods, {len(result.alerts)} alerts"
        )
        return result

    def parse_feed(self, content: bytes, feed_key: str, now: Optional[datetime] = None) -> RegionalResult:
        """Parse a feed payload already fetched for feed_key."""
        parsed = feedparser.parse(content)

        if parsed.bozo and not parsed.entries:
            raise UpstreamUnavailable(f"Invalid feed structure: {parsed.get('bozo_exception')}")
        if not parsed.entries:
            raise UpstreamUnavailable("Invalid feed structure: missing entries")

        current_entry = next(
            (entry for entry in parsed.entries if CURRENT_CONDITIONS in _entry_terms(entry)),
            None
        )
        if current_entry is None:
            raise DataNotFound(f"Current conditions not found in feed {feed_key}")

        weather_data = parse_summary(current_entry.get("summary", ""))
        current = parse_current_conditions(weather_data, feed_key, current_entry.get("updated"))

        forecast_entries = [
            entry for entry in parsed.entries if WEATHER_FORECASTS in _entry_terms(entry)
        ][:self.max_periods]
        periods = []
        for entry in forecast_entries:
            try:
                periods.append(parse_forecast_period(
                    entry.get("title", ""),
                    entry.get("summary", ""),
                    entry.get("updated")
                ))
            except (ValueError, TypeError) as e:
                logger.warning(f"Failed to parse forecast period for {feed_key}: {e}")

        alerts = []
        stale = check_data_age(_entry_time(current_entry), self.stale_after_hours, now)
        if stale:
            logger.warning(f"Stale regional observation for {feed_key}: {stale.warning}")
            alerts.append(stale)

        return RegionalResult(feed_key=feed_key, current=current, short_range=periods, alerts=alerts)


# =============================================================================
# Global Forecast (Numeric JSON Arrays)
# =============================================================================

def _at(values: Any, index: int) -> Any:
    if not isinstance(values, list):
        return None
    try:
        return values[index]
    except IndexError:
        return None


def _num(values: Any, index: int) -> Optional[float]:
    return safe_float(_at(values, index))


def _parse_local_time(value: Any, tz: timezone) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=tz)


def parse_global_current(block: Any) -> Optional[GlobalCurrent]:
    if not isinstance(block, dict) or not block:
        return None
    code = safe_float(block.get("weather_code"))
    is_day = safe_float(block.get("is_day"))
    return GlobalCurrent(
        temperature=safe_float(block.get("temperature_2m")),
        humidity=safe_float(block.get("relative_humidity_2m")),
        apparent_temperature=safe_float(block.get("apparent_temperature")),
        weather_code=int(code) if code is not None else None,
        condition=describe_weather_code(block.get("weather_code")) if code is not None else None,
        wind_speed=safe_float(block.get("wind_speed_10m")),
        wind_direction=safe_float(block.get("wind_direction_10m")),
        wind_gust=safe_float(block.get("wind_gusts_10m")),
        pressure_msl=safe_float(block.get("pressure_msl")),
        visibility=safe_float(block.get("visibility")),
        cloud_cover=safe_float(block.get("cloud_cover")),
        uv_index=safe_float(block.get("uv_index")),
        precipitation=safe_float(block.get("precipitation")),
        is_day=bool(is_day) if is_day is not None else None,
        time=block.get("time"),
    )


def project_hourly(
    hourly: Any,
    now: Optional[datetime] = None,
    utc_offset_seconds: int = 0,
    limit: int = HOURLY_POINTS
) -> List[HourlyPoint]:
    """
    Select up to `limit` consecutive hourly points starting at the current hour.

    When every timestamp lies in the past the series starts at index 0.
    """
    if not isinstance(hourly, dict) or not hourly.get("time"):
        logger.error("No hourly data available from Open-Meteo")
        return []

    times = hourly["time"]
    now = now or datetime.now(timezone.utc)
    tz = timezone(timedelta(seconds=utc_offset_seconds))

    start_index = 0
    for i, raw in enumerate(times):
        stamp = _parse_local_time(raw, tz)
        if stamp is not None and stamp >= now:
            start_index = i
            break

    points = []
    for i in range(start_index, min(start_index + limit, len(times))):
        temperature = _num(hourly.get("temperature_2m"), i)
        humidity = _num(hourly.get("relative_humidity_2m"), i)
        wind_speed = _num(hourly.get("wind_speed_10m"), i)

        points.append(HourlyPoint(
            time=times[i],
            condition=describe_weather_code(_at(hourly.get("weather_code"), i)),
            temperature=round_half_up(temperature),
            feels_like=feels_like(
                temperature, humidity, wind_speed,
                _num(hourly.get("apparent_temperature"), i), None, None
            ),
            humidity=humidity,
            dew_point=round_half_up(_num(hourly.get("dew_point_2m"), i)),
            precipitation_probability=_num(hourly.get("precipitation_probability"), i),
            precipitation=_num(hourly.get("precipitation"), i),
            wind_speed=wind_speed,
            wind_direction=_num(hourly.get("wind_direction_10m"), i),
            wind_gusts=_num(hourly.get("wind_gusts_10m"), i),
            pressure=_num(hourly.get("pressure_msl"), i),
            cloud_cover=_num(hourly.get("cloud_cover"), i),
            visibility=_num(hourly.get("visibility"), i),
            uv_index=_num(hourly.get("uv_index"), i),
        ))

    logger.info(f"Processed {len(points)} hourly forecasts from Open-Meteo")
    return points


def project_daily(daily: Any) -> List[ExtendedDayForecast]:
    """Map every daily row to one extended forecast day."""
    if not isinstance(daily, dict) or not daily.get("time"):
        logger.error("No daily data available from Open-Meteo")
        return []

    days = []
    for i, date in enumerate(daily["time"]):
        temp_max = _num(daily.get("temperature_2m_max"), i)
        temp_min = _num(daily.get("temperature_2m_min"), i)
        apparent_max = _num(daily.get("apparent_temperature_max"), i)
        apparent_min = _num(daily.get("apparent_temperature_min"), i)

        days.append(ExtendedDayForecast(
            date=date,
            condition=describe_weather_code(_at(daily.get("weather_code"), i)),
            temperature_max=round_half_up(temp_max),
            temperature_min=round_half_up(temp_min),
            feels_like_max=round_half_up(apparent_max if apparent_max is not None else temp_max),
            feels_like_min=round_half_up(apparent_min if apparent_min is not None else temp_min),
            precipitation_sum=_num(daily.get("precipitation_sum"), i),
            precipitation_probability=_num(daily.get("precipitation_probability_max"), i),
            wind_speed_max=_num(daily.get("wind_speed_10m_max"), i),
            wind_gusts_max=_num(daily.get("wind_gusts_10m_max"), i),
            wind_direction=_num(daily.get("wind_direction_10m_dominant"), i),
            uv_index_max=_num(daily.get("uv_index_max"), i),
            sunrise=_at(daily.get("sunrise"), i),
            sunset=_at(daily.get("sunset"), i),
            daylight_duration=_num(daily.get("daylight_duration"), i),
            sunshine_duration=_num(daily.get("sunshine_duration"), i),
        ))

    logger.info(f"Processed {len(days)} daily forecasts from Open-Meteo")
    return days


class GlobalForecastFetcher(BaseFetcher):
    """Fetcher for the Open-Meteo forecast API (global coverage)."""

    source_name = "Open-Meteo"
    accept = "application/json"

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: str = GLOBAL_FORECAST_URL,
        forecast_days: int = FORECAST_DAYS,
        hourly_points: int = HOURLY_POINTS
    ):
        super().__init__(timeout)
        self.base_url = base_url
        self.forecast_days = forecast_days
        self.hourly_points = hourly_points

    def build_params(self, lat: Any, lon: Any) -> Dict[str, str]:
        return {
            "latitude": str(lat),
            "longitude": str(lon),
            "current": ",".join(CURRENT_FIELDS),
            "hourly": ",".join(HOURLY_FIELDS),
            "daily": ",".join(DAILY_FIELDS),
            "timezone": "auto",
            "forecast_days": str(self.forecast_days),
        }

    def fetch(self, lat: Any, lon: Any, now: Optional[datetime] = None) -> GlobalResult:
        """
        Fetch current, hourly and daily forecast data for one coordinate.

        Raises:
            UpstreamUnavailable: transport failure, malformed JSON, or no data sections
        """
        logger.info(f"Fetching Open-Meteo data for coordinates {lat}, {lon}")
        response, response_time = self._fetch_raw(self.base_url, params=self.build_params(lat, lon))

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"Invalid response format from Open-Meteo API: {e}")

        if not isinstance(payload, dict):
            raise UpstreamUnavailable("Invalid response format from Open-Meteo API")
        if not any(payload.get(section) for section in ("current", "hourly", "daily")):
            raise UpstreamUnavailable("Open-Meteo API returned no weather data")

        offset = int(safe_float(payload.get("utc_offset_seconds")) or 0)
        result = GlobalResult(
            current=parse_global_current(payload.get("current")),
            hourly=project_hourly(payload.get("hourly"), now, offset, self.hourly_points),
            extended=project_daily(payload.get("daily")),
        )
        logger.info(f"Open-Meteo data fetched successfully in {response_time}ms")
        return result
