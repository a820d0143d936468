"""测试用的外部服务替身"""
import inspect
from datetime import date
from typing import Dict, List, Optional

from moodtrip.errors import ProviderUnavailable
from moodtrip.models import CandidatePlace, Questionnaire, Review, TravelTime, WeatherSnapshot
from moodtrip.services.map_api import PlaceSearch
from moodtrip.services.model_gateway import Capability, ModelGateway
from moodtrip.services.reviews import ReviewProvider
from moodtrip.services.weather import WeatherProvider
from moodtrip.services.zhipu_ai import ChatModel


class ScriptedChatModel(ChatModel):
    """
    按顺序返回预设回复；回复是异常时抛出。
    也可以传 handler(kind, model, prompt) 自定义回复（支持 async）。
    """

    def __init__(self, replies=None, handler=None):
        self.replies = list(replies or [])
        self.handler = handler
        self.calls = []

    async def complete(self, prompt, model, temperature=0.7, timeout=None):
        self.calls.append(("text", model, prompt))
        return await self._reply("text", model, prompt)

    async def analyze_image(self, image_base64, prompt, model, temperature=0.3, timeout=None):
        self.calls.append(("vision", model, prompt))
        return await self._reply("vision", model, prompt)

    async def _reply(self, kind, model, prompt):
        if self.handler is not None:
            result = self.handler(kind, model, prompt)
            if inspect.isawaitable(result):
                result = await result
        elif self.replies:
            result = self.replies.pop(0)
        else:
            result = ProviderUnavailable(model, "没有预设回复")
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def models_called(self) -> List[str]:
        return [model for _, model, _ in self.calls]


def make_gateway(chat: ChatModel, vision=("vision-a", "vision-b"), text=("text-a", "text-b"), timeout=5.0) -> ModelGateway:
    return ModelGateway(
        chat,
        {Capability.VISION_FEATURES: list(vision), Capability.TEXT_GENERATION: list(text)},
        timeout=timeout
    )


def failing_gateway() -> ModelGateway:
    return make_gateway(ScriptedChatModel(handler=lambda kind, model, prompt: ProviderUnavailable(model, "down")))


class StaticPlaceSearch(PlaceSearch):
    def __init__(self, places=None, nearby_places=None, error: Optional[Exception] = None):
        self.places = list(places or [])
        self.nearby_places = list(nearby_places or [])
        self.error = error
        self.searches = []

    async def search(self, keywords, region=""):
        self.searches.append((list(keywords), region))
        if self.error:
            raise self.error
        return list(self.places)

    async def nearby(self, lat, lng, categories=("餐饮", "交通", "住宿")):
        if self.error:
            raise self.error
        return list(self.nearby_places)


class StaticWeather(WeatherProvider):
    def __init__(self, snapshot: Optional[WeatherSnapshot] = None, error: Optional[Exception] = None):
        self.snapshot = snapshot
        self.error = error

    async def get(self, lat, lng, day):
        if self.error:
            raise self.error
        return self.snapshot


class StaticReviews(ReviewProvider):
    def __init__(self, reviews: Optional[Dict[str, List[Review]]] = None, error: Optional[Exception] = None):
        self.reviews = reviews or {}
        self.error = error

    async def get(self, place):
        if self.error:
            raise self.error
        return list(self.reviews.get(place.name, []))


def questionnaire(**overrides) -> Questionnaire:
    data = {
        "travel_date": date(2026, 5, 1),
        "travel_time": TravelTime.AFTERNOON,
        "traveler_count": 2,
        "departure_location": "杭州",
    }
    data.update(overrides)
    return Questionnaire(**data)


def lake_park(**overrides) -> CandidatePlace:
    data = {
        "id": "p1",
        "name": "静湖公园",
        "address": "西湖区湖滨路1号",
        "location": {"lat": 30.25, "lng": 120.15},
        "rating": 4.5,
        "description": "湖畔自然公园，环境宁静",
        "distance": 300,
    }
    data.update(overrides)
    return CandidatePlace(**data)


def city_square(**overrides) -> CandidatePlace:
    data = {
        "id": "p2",
        "name": "城市广场",
        "address": "上城区中心路8号",
        "location": {"lat": 30.26, "lng": 120.17},
        "rating": 4.0,
        "description": "市中心商业广场",
        "distance": 1000,
    }
    data.update(overrides)
    return CandidatePlace(**data)
