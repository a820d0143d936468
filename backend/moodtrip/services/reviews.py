"""
网友评论获取与精简
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from moodtrip.errors import ProviderUnavailable
from moodtrip.models import CandidatePlace, Review, ReviewDigest, Sentiment
from moodtrip.services.model_gateway import ModelGateway
from moodtrip.utils.ddgs_utils import search_text

logger = logging.getLogger(__name__)

NO_REVIEWS = "暂无评论"
SIMPLE_SUMMARY_REVIEWS = 3
SIMPLE_SUMMARY_LENGTH = 100

SUMMARY_PROMPT = """请分析以下网友评论，提取与关键词"{keywords}"相关的核心观点，生成2-5句精简的评论摘要。只返回摘要内容，不要其他解释：

{reviews}

评论摘要："""


class ReviewProvider(ABC):
    """评论来源接口"""

    @abstractmethod
    async def get(self, place: CandidatePlace) -> List[Review]:
        """获取景点的评论"""


class DdgsReviewProvider(ReviewProvider):
    """用 DuckDuckGo 搜索网友评价，搜索摘要作为无评分的评论"""

    def __init__(self, max_results: int = 5):
        self.max_results = max_results

    async def get(self, place: CandidatePlace) -> List[Review]:
        query = f"{place.name} {place.address} 评价".strip()
        results = await asyncio.to_thread(search_text, query, self.max_results)
        reviews = []
        for item in results:
            body = (item.get("body") or "").strip()
            if body:
                reviews.append(Review(content=body))
        return reviews


def simple_summary(reviews: Sequence[Review]) -> str:
    """取前几条评论拼接，超长截断"""
    summary = "；".join(review.content for review in reviews[:SIMPLE_SUMMARY_REVIEWS])
    if len(summary) > SIMPLE_SUMMARY_LENGTH:
        return summary[:SIMPLE_SUMMARY_LENGTH] + "..."
    return summary


def analyze_sentiment(reviews: Sequence[Review], place_rating: Optional[float] = None) -> Sentiment:
    """
    按平均评分判断情感，没有评分的评论不参与计算

    评论都没有评分时（如搜索摘要）用景点本身的评分代替，也没有时为中性
    """
    ratings = [review.rating for review in reviews if review.rating is not None]
    if not ratings and place_rating is not None:
        ratings = [place_rating]
    if not ratings:
        return Sentiment.NEUTRAL
    average = sum(ratings) / len(ratings)
    if average >= 4.5:
        return Sentiment.POSITIVE
    if average >= 3.5:
        return Sentiment.NEUTRAL
    return Sentiment.NEGATIVE


class ReviewSummarizer:
    """评论摘要，模型失败时退回简单拼接"""

    def __init__(self, gateway: Optional[ModelGateway] = None):
        self.gateway = gateway

    async def digest(
        self,
        reviews: Sequence[Review],
        keywords: Sequence[str] = (),
        place_rating: Optional[float] = None
    ) -> ReviewDigest:
        if not reviews:
            return ReviewDigest(summary=NO_REVIEWS, count=0, sentiment=Sentiment.NEUTRAL)

        return ReviewDigest(
            summary=await self._summarize(reviews, keywords),
            count=len(reviews),
            sentiment=analyze_sentiment(reviews, place_rating),
        )

    async def _summarize(self, reviews: Sequence[Review], keywords: Sequence[str]) -> str:
        if self.gateway is None:
            return simple_summary(reviews)
        prompt = SUMMARY_PROMPT.format(
            keywords="、".join(keywords),
            reviews="\n".join(review.content for review in reviews)
        )
        try:
            return await self.gateway.complete(prompt)
        except ProviderUnavailable as e:
            logger.warning(f"⚠️ AI评论精简失败，使用简单摘要: {e}")
            return simple_summary(reviews)
