"""
天气服务 (Open-Meteo，无需Key)
"""
import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, Optional

import httpx

from moodtrip.errors import ProviderUnavailable
from moodtrip.models import WeatherSnapshot

logger = logging.getLogger(__name__)

FORECAST_DAYS = 16

# WMO 天气代码
WEATHER_CODE_NAMES = {
    0: "晴",
    1: "晴间多云",
    2: "多云",
    3: "阴",
    45: "雾",
    48: "雾凇",
    51: "小毛毛雨",
    53: "毛毛雨",
    55: "大毛毛雨",
    56: "冻毛毛雨",
    57: "冻毛毛雨",
    61: "小雨",
    63: "中雨",
    65: "大雨",
    66: "冻雨",
    67: "冻雨",
    71: "小雪",
    73: "中雪",
    75: "大雪",
    77: "雪粒",
    80: "阵雨",
    81: "中阵雨",
    82: "强阵雨",
    85: "阵雪",
    86: "强阵雪",
    95: "雷阵雨",
    96: "雷阵雨伴冰雹",
    99: "强雷阵雨伴冰雹",
}


def weather_code_name(code: Any) -> str:
    try:
        return WEATHER_CODE_NAMES.get(int(code), "未知")
    except (TypeError, ValueError):
        return "未知"


class WeatherProvider(ABC):
    """天气查询接口"""

    @abstractmethod
    async def get(self, lat: float, lng: float, day: date) -> Optional[WeatherSnapshot]:
        """
        查询某天的天气

        Returns:
            天气；日期不在预报范围内时返回 None

        Raises:
            ProviderUnavailable: 接口调用失败
        """


class OpenMeteoWeather(WeatherProvider):
    """Open-Meteo 逐日预报"""

    def __init__(
        self,
        url: str = "https://api.open-meteo.com/v1/forecast",
        timezone: str = "Asia/Shanghai",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = url
        self.timezone = timezone
        self.timeout = httpx.Timeout(timeout, connect=min(timeout, 10.0))
        self.transport = transport

    async def get(self, lat: float, lng: float, day: date) -> Optional[WeatherSnapshot]:
        params = {
            "latitude": lat,
            "longitude": lng,
            "daily": "temperature_2m_max,temperature_2m_min,precipitation_sum,weather_code,"
                     "wind_speed_10m_max,relative_humidity_2m_mean",
            "timezone": self.timezone,
            "forecast_days": FORECAST_DAYS,
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(self.url, params=params)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as e:
                raise ProviderUnavailable("open-meteo", f"HTTP 请求错误: {e}")
            except ValueError as e:
                raise ProviderUnavailable("open-meteo", f"返回内容不是JSON: {e}")

        daily = data.get("daily") or {}
        times = daily.get("time") or []
        target = day.isoformat()
        if target not in times:
            logger.info(f"   {target} 不在天气预报范围内")
            return None

        i = times.index(target)
        return WeatherSnapshot(
            date=day,
            condition=weather_code_name(self._pick(daily, "weather_code", i)),
            temperature_max=self._pick(daily, "temperature_2m_max", i),
            temperature_min=self._pick(daily, "temperature_2m_min", i),
            precipitation=self._pick(daily, "precipitation_sum", i) or 0.0,
            wind_speed=self._pick(daily, "wind_speed_10m_max", i) or 0.0,
            humidity=self._pick(daily, "relative_humidity_2m_mean", i),
            provider="open-meteo",
        )

    @staticmethod
    def _pick(daily: Dict[str, Any], key: str, index: int) -> Any:
        values = daily.get(key) or []
        return values[index] if index < len(values) else None
