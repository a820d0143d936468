import asyncio
from datetime import date

import httpx
import pytest

from moodtrip.errors import ProviderUnavailable
from moodtrip.models import WeatherSnapshot
from moodtrip.services.weather import OpenMeteoWeather, weather_code_name

DAILY = {
    "daily": {
        "time": ["2026-05-01", "2026-05-02"],
        "temperature_2m_max": [26.1, 31.5],
        "temperature_2m_min": [17.0, 20.2],
        "precipitation_sum": [0.0, 12.3],
        "weather_code": [1, 63],
        "wind_speed_10m_max": [10.2, 18.0],
        "relative_humidity_2m_mean": [60, 85],
    }
}


def test_weather_for_travel_date():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["latitude"] == "30.25"
        assert request.url.params["timezone"] == "Asia/Shanghai"
        return httpx.Response(200, json=DAILY)

    weather = OpenMeteoWeather("https://weather.test/v1/forecast", transport=httpx.MockTransport(handler))

    snapshot = asyncio.run(weather.get(30.25, 120.15, date(2026, 5, 2)))

    assert snapshot.condition == "中雨"
    assert snapshot.temperature_max == 31.5
    assert snapshot.precipitation == 12.3
    assert snapshot.humidity == 85
    assert snapshot.provider == "open-meteo"


def test_date_outside_forecast_returns_none():
    weather = OpenMeteoWeather(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=DAILY)))

    assert asyncio.run(weather.get(30.25, 120.15, date(2026, 8, 1))) is None


def test_http_failure_raises():
    weather = OpenMeteoWeather(transport=httpx.MockTransport(lambda request: httpx.Response(500)))

    with pytest.raises(ProviderUnavailable):
        asyncio.run(weather.get(30.25, 120.15, date(2026, 5, 1)))


def test_weather_code_names():
    assert weather_code_name(0) == "晴"
    assert weather_code_name(95) == "雷阵雨"
    assert weather_code_name(None) == "未知"


def test_snapshot_accepts_iso_date():
    snapshot = WeatherSnapshot(date="2026-05-01", condition="晴", temperature_max=25)

    assert snapshot.date == date(2026, 5, 1)
    assert snapshot.model_dump(mode="json")["date"] == "2026-05-01"
    assert snapshot.precipitation == 0.0
