"""Exception hierarchy shared by the fetchers, the merge engine and the cache."""


class WeatherError(Exception):
    """Base class for weather aggregation errors."""
    pass


class InvalidCoordinate(WeatherError):
    """Latitude/longitude missing, non-numeric or out of range."""
    pass


class UpstreamUnavailable(WeatherError):
    """Transport failure, timeout, bad status or malformed payload from one source."""
    pass


class DataNotFound(WeatherError):
    """Source reachable but the expected entry or section is missing."""
    pass


class AllSourcesFailed(WeatherError):
    """No upstream source produced usable data."""
    pass


class CacheShutDown(WeatherError):
    """The refresh cache has been shut down and accepts no new locations."""
    pass
