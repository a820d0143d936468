"""
服务组装

所有服务在启动时创建一次，保存在 app.state.services，路由通过 Depends(get_services) 获取。
"""
import logging
from dataclasses import dataclass
from functools import partial
from typing import Optional

from fastapi import Request

from moodtrip.config import Settings
from moodtrip.services.dialogue import DialogueEngine
from moodtrip.services.enrichment import EnrichmentAggregator
from moodtrip.services.keyword_extractor import KeywordExtractor
from moodtrip.services.map_api import PlaceSearch, build_place_search
from moodtrip.services.model_gateway import Capability, ModelGateway
from moodtrip.services.ranking import ScoringWeights
from moodtrip.services.recommender import FlowRegistry, RecommendationFlow, RecommendationService
from moodtrip.services.reviews import DdgsReviewProvider, ReviewProvider, ReviewSummarizer
from moodtrip.services.session_store import SessionStore, build_session_store
from moodtrip.services.travel_advice import TravelAdvisor
from moodtrip.services.weather import OpenMeteoWeather, WeatherProvider
from moodtrip.services.zhipu_ai import ChatModel, ZhipuAI

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """应用级服务"""
    settings: Settings
    gateway: ModelGateway
    store: SessionStore
    place_search: PlaceSearch
    extractor: KeywordExtractor
    aggregator: EnrichmentAggregator
    recommender: RecommendationService
    flows: FlowRegistry

    async def close(self) -> None:
        await self.store.close()


def build_services(
    settings: Settings,
    chat_model: Optional[ChatModel] = None,
    place_search: Optional[PlaceSearch] = None,
    weather: Optional[WeatherProvider] = None,
    reviews: Optional[ReviewProvider] = None,
    store: Optional[SessionStore] = None
) -> Services:
    """按配置创建服务，外部依赖可替换"""
    gateway = ModelGateway(
        chat_model or ZhipuAI(settings),
        {
            Capability.VISION_FEATURES: settings.VISION_MODELS,
            Capability.TEXT_GENERATION: settings.TEXT_MODELS,
        },
        timeout=settings.MODEL_TIMEOUT
    )
    store = store or build_session_store(settings)
    place_search = place_search or build_place_search(settings)
    weather = weather or OpenMeteoWeather(
        url=settings.OPEN_METEO_URL,
        timezone=settings.WEATHER_TIMEZONE,
        timeout=settings.HTTP_TIMEOUT
    )
    reviews = reviews or DdgsReviewProvider(max_results=settings.REVIEW_SEARCH_RESULTS)

    extractor = KeywordExtractor(gateway)
    aggregator = EnrichmentAggregator(
        reviews=reviews,
        summarizer=ReviewSummarizer(gateway),
        weather=weather,
        place_search=place_search,
        advisor=TravelAdvisor(gateway),
        top_k=settings.TOP_K,
        timeout=settings.ENRICH_TIMEOUT
    )
    recommender = RecommendationService(
        extractor,
        place_search,
        aggregator,
        store,
        weights=ScoringWeights.from_settings(settings)
    )

    engine_factory = partial(
        DialogueEngine,
        gateway=gateway,
        store=store,
        max_questions=settings.MAX_QUESTIONS
    )
    flows = FlowRegistry(
        lambda session_id: RecommendationFlow(session_id, recommender, engine_factory),
        max_flows=settings.MAX_ACTIVE_SESSIONS
    )

    return Services(
        settings=settings,
        gateway=gateway,
        store=store,
        place_search=place_search,
        extractor=extractor,
        aggregator=aggregator,
        recommender=recommender,
        flows=flows,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
