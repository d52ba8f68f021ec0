import pytest

from weatherhub.config import REFRESH_INTERVAL_MINUTES, REGIONAL_WEIGHT, Settings


def test_defaults(monkeypatch):
    for name in ("REGIONAL_WEIGHT", "REFRESH_INTERVAL_MINUTES", "REQUEST_TIMEOUT", "FORECAST_DAYS"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.regional_weight == REGIONAL_WEIGHT == 0.7
    assert settings.refresh_interval_minutes == REFRESH_INTERVAL_MINUTES == 10
    assert settings.forecast_days == 14
    assert settings.hourly_points == 24


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("REGIONAL_WEIGHT", "0.5")
    monkeypatch.setenv("REFRESH_INTERVAL_MINUTES", "2.5")
    monkeypatch.setenv("FORECAST_DAYS", "7")
    monkeypatch.setenv("REGIONAL_FEED_BASE_URL", "https://feeds.test/rss/city/")

    settings = Settings.from_env()

    assert settings.regional_weight == 0.5
    assert settings.refresh_interval_minutes == 2.5
    assert settings.forecast_days == 7
    assert settings.regional_feed_base_url == "https://feeds.test/rss/city"


@pytest.mark.parametrize("name, value", [
    ("REGIONAL_WEIGHT", "1.2"),
    ("REGIONAL_WEIGHT", "heavy"),
    ("REFRESH_INTERVAL_MINUTES", "0"),
])
def test_invalid_values_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError):
        Settings.from_env()
