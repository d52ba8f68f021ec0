import threading

import pytest

from tests.fakes import FakeFetcher, global_result, regional_result
from weatherhub.aggregator import WeatherAggregator
from weatherhub.config import Settings
from weatherhub.errors import AllSourcesFailed, UpstreamUnavailable
from weatherhub.locations import Coordinate

OTTAWA = Coordinate.parse("45.4215", "-75.6998")


def make_aggregator(regional, glob, weight=0.7):
    return WeatherAggregator(Settings(regional_weight=weight), regional=regional, global_forecast=glob)


def test_both_sources_fetched_concurrently():
    # Each fetch blocks until the other one has started
    barrier = threading.Barrier(2, timeout=5)
    regional = FakeFetcher(result=regional_result(), barrier=barrier)
    glob = FakeFetcher(result=global_result(), barrier=barrier)

    weather = make_aggregator(regional, glob).fetch(OTTAWA)

    assert weather.sources.confidence == 0.95
    assert weather.current[0].temperature == 18
    assert regional.calls == [(45.4215, -75.6998)]
    assert glob.calls == [(45.4215, -75.6998)]


def test_regional_failure_degrades_to_global():
    regional = FakeFetcher(error=UpstreamUnavailable("Environment Canada: HTTP error 500"))
    glob = FakeFetcher(result=global_result())

    weather = make_aggregator(regional, glob).fetch(OTTAWA)

    assert weather.sources.primary == "Open-Meteo"
    assert weather.sources.confidence == 0.80


def test_global_failure_degrades_to_regional():
    regional = FakeFetcher(result=regional_result())
    glob = FakeFetcher(error=ValueError("unexpected payload"))

    weather = make_aggregator(regional, glob).fetch(OTTAWA)

    assert weather.sources.primary == "Environment Canada"
    assert weather.sources.confidence == 0.90


def test_both_failures_raise():
    regional = FakeFetcher(error=UpstreamUnavailable("down"))
    glob = FakeFetcher(error=UpstreamUnavailable("down"))

    with pytest.raises(AllSourcesFailed):
        make_aggregator(regional, glob).fetch(OTTAWA)


def test_configured_weight_is_applied():
    weather = make_aggregator(
        FakeFetcher(result=regional_result(temperature=30.0)),
        FakeFetcher(result=global_result(temperature=10.0)),
        weight=0.5,
    ).fetch(OTTAWA)

    assert weather.current[0].temperature == 20
