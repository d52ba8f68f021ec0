import pytest

from weatherhub.units import (
    WEATHER_CODES,
    describe_weather_code,
    hpa_to_kpa,
    metres_to_km,
    round_half_up,
    round_to,
    safe_float,
)


def test_known_weather_codes():
    assert describe_weather_code(0) == "Clear sky"
    assert describe_weather_code(61) == "Slight rain"
    assert describe_weather_code(99) == "Thunderstorm with heavy hail"
    assert len(WEATHER_CODES) == 28


def test_unknown_weather_code_keeps_raw_value():
    assert describe_weather_code(42) == "Unknown weather condition (code: 42)"
    assert describe_weather_code(None) == "Unknown"


def test_float_codes_are_accepted():
    assert describe_weather_code(3.0) == "Overcast"


@pytest.mark.parametrize("value, expected", [
    (2.5, 3),
    (-2.5, -2),
    (18.26, 18),
    (-0.4, 0),
    (0.5, 1),
    (None, None),
])
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


def test_round_to_one_decimal():
    assert round_to(18.26) == 18.3
    assert round_to(74.7) == 74.7
    assert round_to(None) is None


def test_conversions():
    assert hpa_to_kpa(1013.2) == 101.3
    assert metres_to_km(24100) == 24.1
    assert hpa_to_kpa(None) is None
    assert metres_to_km(None) is None


@pytest.mark.parametrize("value", [None, "abc", "", True, float("nan"), [1]])
def test_safe_float_rejects_non_numbers(value):
    assert safe_float(value) is None


def test_safe_float_parses_strings():
    assert safe_float("12.5") == 12.5
    assert safe_float(3) == 3.0
