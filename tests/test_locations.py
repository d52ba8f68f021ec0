import pytest

from weatherhub.errors import InvalidCoordinate
from weatherhub.locations import DEFAULT_FEED_KEY, Coordinate, haversine_km, resolve_feed_key


def test_exact_match():
    assert resolve_feed_key("43.65", "-79.38") == "on-143"
    assert resolve_feed_key("45.403", "-75.687") == "on-118"


def test_rounded_match():
    assert resolve_feed_key("45.4215", "-75.6998") == "on-118"
    assert resolve_feed_key(49.28, -123.12) == "bc-74"


def test_nearest_city_fallback():
    # Rounds to 53.6,-113.6 which is not in the table
    assert resolve_feed_key(53.6, -113.6) == "ab-50"
    assert resolve_feed_key(51.1, -114.0) == "ab-52"
    assert resolve_feed_key(44.65, -63.57) == "ns-19"


def test_far_away_coordinate_still_resolves():
    assert resolve_feed_key(0, 0)
    assert resolve_feed_key(-89.9, 179.9)
    # London is closest to Halifax among the covered cities
    assert resolve_feed_key(51.5, -0.12) == "ns-19"


@pytest.mark.parametrize("lat, lon", [("abc", "-75.7"), (None, None), ("nan", "1")])
def test_invalid_input_uses_default(lat, lon):
    assert resolve_feed_key(lat, lon) == DEFAULT_FEED_KEY


def test_haversine_distance():
    assert haversine_km(45.4, -75.7, 45.4, -75.7) == 0
    # Ottawa to Toronto is roughly 350 km
    assert 340 < haversine_km(45.4, -75.7, 43.65, -79.38) < 370


def test_coordinate_parse():
    coord = Coordinate.parse("45.4215", "-75.6998")
    assert coord.lat == 45.4215
    assert coord.lon == -75.6998
    assert coord.key == "45.4215,-75.6998"
    assert str(coord) == "45.4215, -75.6998"


def test_coordinate_key_is_fixed_precision():
    assert Coordinate.parse("45.42150001", "-75.7").key == Coordinate.parse(45.4215, -75.70000).key


@pytest.mark.parametrize("lat, lon", [
    ("91", "0"),
    ("-90.5", "0"),
    ("0", "180.1"),
    ("abc", "0"),
    ("0", ""),
    ("nan", "0"),
])
def test_coordinate_parse_rejects(lat, lon):
    with pytest.raises(InvalidCoordinate):
        Coordinate.parse(lat, lon)


def test_coordinate_bounds_are_inclusive():
    assert Coordinate.parse("-90", "180").key == "-90.0000,180.0000"
