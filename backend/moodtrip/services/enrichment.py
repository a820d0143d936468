"""
推荐景点信息补充

对排序后的前 K 个景点并行获取：评论摘要、天气、周边设施、出行建议。
每一项独立超时、独立失败，失败的项记录在 missing_fields 中，不影响其他项和其他景点。

单个景点内的依赖：
    评论 ∥ (天气 ∥ 周边 -> 出行建议)
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional, Sequence, Tuple

from moodtrip.models import EnrichedPlace, NearbyIndex, Questionnaire, RankedPlace, ReviewDigest, WeatherSnapshot
from moodtrip.services.map_api import PlaceSearch
from moodtrip.services.nearby import build_nearby_index
from moodtrip.services.reviews import ReviewProvider, ReviewSummarizer
from moodtrip.services.travel_advice import TravelAdvisor
from moodtrip.services.weather import WeatherProvider

logger = logging.getLogger(__name__)

REVIEWS = "reviews"
WEATHER = "weather"
NEARBY = "nearby"
TRAVEL_ADVICE = "travel_advice"


@dataclass
class EnrichmentContext:
    """补充信息需要的用户上下文"""
    questionnaire: Questionnaire
    keywords: List[str] = field(default_factory=list)
    answers: Dict[str, str] = field(default_factory=dict)


class EnrichmentAggregator:
    """并行补充推荐景点的详细信息"""

    def __init__(
        self,
        reviews: ReviewProvider,
        summarizer: ReviewSummarizer,
        weather: WeatherProvider,
        place_search: PlaceSearch,
        advisor: TravelAdvisor,
        top_k: int = 5,
        timeout: float = 30.0
    ):
        self.reviews = reviews
        self.summarizer = summarizer
        self.weather = weather
        self.place_search = place_search
        self.advisor = advisor
        self.top_k = top_k
        self.timeout = timeout

    async def enrich(self, ranked: Sequence[RankedPlace], context: EnrichmentContext) -> List[EnrichedPlace]:
        """补充前 top_k 个景点，结果顺序与输入一致"""
        candidates = list(ranked)[:self.top_k]
        if not candidates:
            return []

        t0 = time.time()
        logger.info(f"🧩 开始补充 {len(candidates)} 个景点的详细信息")
        enriched = await asyncio.gather(*(self.enrich_place(place, context) for place in candidates))

        partial = sum(1 for place in enriched if place.partial)
        logger.info(f"   ✓ 信息补充完成 ({time.time() - t0:.2f}s)，{partial} 个景点信息不完整")
        return list(enriched)

    async def enrich_place(self, place: RankedPlace, context: EnrichmentContext) -> EnrichedPlace:
        missing: List[str] = []

        (digest, reviews_ok), (weather, nearby, advice) = await asyncio.gather(
            self._guard(REVIEWS, place, self._fetch_reviews(place, context)),
            self._conditions_and_advice(place, context, missing),
        )
        if not reviews_ok:
            missing.insert(0, REVIEWS)

        return EnrichedPlace(
            **place.model_dump(),
            review_summary=digest.summary if digest else None,
            review_count=digest.count if digest else 0,
            sentiment=digest.sentiment if digest else None,
            weather=weather,
            nearby=nearby,
            travel_advice=advice,
            missing_fields=missing,
        )

    async def _conditions_and_advice(
        self,
        place: RankedPlace,
        context: EnrichmentContext,
        missing: List[str]
    ) -> Tuple[Optional[WeatherSnapshot], Optional[NearbyIndex], Any]:
        (weather, weather_ok), (nearby, nearby_ok) = await asyncio.gather(
            self._guard(WEATHER, place, self._fetch_weather(place, context)),
            self._guard(NEARBY, place, self._fetch_nearby(place)),
        )
        if not weather_ok:
            missing.append(WEATHER)
        if not nearby_ok:
            missing.append(NEARBY)

        # 天气和周边失败时，用已有的信息继续生成建议
        advice, advice_ok = await self._guard(TRAVEL_ADVICE, place, self.advisor.advise(
            place,
            context.questionnaire,
            weather=weather,
            nearby=nearby,
            keywords=context.keywords,
            answers=context.answers,
        ))
        if not advice_ok:
            missing.append(TRAVEL_ADVICE)
        return weather, nearby, advice

    async def _guard(self, name: str, place: RankedPlace, coro: Awaitable) -> Tuple[Any, bool]:
        """带超时执行单项补充，失败时返回 (None, False)"""
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout), True
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ {place.name} 的 {name} 获取超时({self.timeout:.0f}s)")
        except Exception as e:
            logger.warning(f"⚠️ {place.name} 的 {name} 获取失败: {e}")
        return None, False

    async def _fetch_reviews(self, place: RankedPlace, context: EnrichmentContext) -> ReviewDigest:
        reviews = await self.reviews.get(place)
        return await self.summarizer.digest(reviews, context.keywords, place.rating)

    async def _fetch_weather(self, place: RankedPlace, context: EnrichmentContext) -> Optional[WeatherSnapshot]:
        if not place.location:
            return None
        return await self.weather.get(place.location.lat, place.location.lng, context.questionnaire.travel_date)

    async def _fetch_nearby(self, place: RankedPlace) -> Optional[NearbyIndex]:
        if not place.location:
            return None
        facilities = await self.place_search.nearby(place.location.lat, place.location.lng)
        return build_nearby_index(facilities)
