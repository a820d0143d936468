"""
推荐流程编排

关键词提取 -> 地图搜索 -> 评分排序 -> 前 K 个景点补充信息
个性化问答完成时自动触发一次推荐生成。
"""
import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from moodtrip.errors import InvalidState, SessionNotFound
from moodtrip.models import (
    EnrichedPlace, ExtractionInput, HistoryRecord, InputType, Questionnaire, RankedPlace
)
from moodtrip.services.dialogue import DialogueEngine
from moodtrip.services.enrichment import EnrichmentAggregator, EnrichmentContext
from moodtrip.services.keyword_extractor import KeywordExtractor
from moodtrip.services.keywords import KeywordSet
from moodtrip.services.map_api import PlaceSearch
from moodtrip.services.ranking import DEFAULT_WEIGHTS, ScoringWeights, rank_places
from moodtrip.services.session_store import SessionStore

logger = logging.getLogger(__name__)

INPUT_PREVIEW_LENGTH = 200
MAX_ACTIVE_FLOWS = 500


def new_session_id() -> str:
    return uuid.uuid4().hex


def describe_input(data: ExtractionInput) -> str:
    """历史记录中保存的输入摘要"""
    if data.type == InputType.TEXT:
        return (data.text or "")[:INPUT_PREVIEW_LENGTH]
    if data.type == InputType.IMAGE:
        return f"{len(data.images)} 张图片"
    if data.type == InputType.AUDIO:
        return "音频"
    return "视频"


class RecommendationService:
    """推荐主流程"""

    def __init__(
        self,
        extractor: KeywordExtractor,
        place_search: PlaceSearch,
        aggregator: EnrichmentAggregator,
        store: SessionStore,
        weights: ScoringWeights = DEFAULT_WEIGHTS
    ):
        self.extractor = extractor
        self.place_search = place_search
        self.aggregator = aggregator
        self.store = store
        self.weights = weights

    async def extract_keywords(
        self,
        data: ExtractionInput,
        session_id: Optional[str] = None
    ) -> Tuple[str, KeywordSet]:
        """提取关键词并记录到历史"""
        keywords = await self.extractor.extract(data)
        session_id = session_id or new_session_id()
        await self.store.save_record(HistoryRecord(
            id=session_id,
            input_type=data.type,
            input_content=describe_input(data),
            keywords=keywords.to_list(),
        ))
        return session_id, keywords

    async def rank(self, keywords: Iterable[str], region: str = "") -> List[RankedPlace]:
        """搜索候选景点并排序"""
        keyword_list = list(keywords)
        t0 = time.time()
        candidates = await self.place_search.search(keyword_list, region)
        ranked = rank_places(candidates, keyword_list, self.weights)
        logger.info(f"📍 搜索到 {len(candidates)} 个候选景点 ({time.time() - t0:.2f}s)")
        return ranked

    async def recommend(
        self,
        keywords: Iterable[str],
        questionnaire: Questionnaire,
        answers: Optional[Dict[str, str]] = None,
        session_id: Optional[str] = None
    ) -> List[EnrichedPlace]:
        """
        问答补充关键词 -> 搜索排序 -> 补充前 K 个景点

        传入 session_id 时，推荐结果和出行信息记录到该次推荐请求的历史中
        """
        t0 = time.time()
        answers = answers or {}
        keyword_set = await self.extractor.refine(KeywordSet(keywords), answers)
        keyword_list = keyword_set.to_list()
        logger.info(f"✨ 开始生成推荐，关键词: {'、'.join(keyword_list)}")

        ranked = await self.rank(keyword_list, questionnaire.departure_location)
        if ranked:
            context = EnrichmentContext(questionnaire=questionnaire, keywords=keyword_list, answers=answers)
            results = await self.aggregator.enrich(ranked, context)
        else:
            logger.info("   没有找到匹配的景点")
            results = []
        logger.info(f"✅ 推荐生成完成，共 {len(results)} 个景点 ({time.time() - t0:.2f}s)")

        if session_id:
            await self._save_history(session_id, questionnaire, results)
        return results

    async def _save_history(self, session_id: str, questionnaire: Questionnaire, places: List[EnrichedPlace]) -> None:
        ranked_fields = set(RankedPlace.model_fields)
        summaries = [RankedPlace.model_validate(place.model_dump(include=ranked_fields)) for place in places]
        if await self.store.save_recommendations(session_id, questionnaire, summaries):
            logger.info(f"💾 会话 {session_id} 的推荐结果已保存")
        else:
            logger.info(f"   会话 {session_id} 没有对应的推荐记录，不保存推荐结果")


class RecommendationFlow:
    """一次个性化问答 + 一次推荐生成"""

    def __init__(self, session_id: str, service: RecommendationService, engine_factory: Callable[..., DialogueEngine]):
        self.session_id = session_id
        self.service = service
        self.engine = engine_factory(session_id, on_complete=self._on_complete)
        self.keywords: List[str] = []
        self.questionnaire: Optional[Questionnaire] = None
        self._task: Optional[asyncio.Task] = None

    async def start(self, keywords: List[str], questionnaire: Questionnaire) -> None:
        self.keywords = KeywordSet(keywords).to_list()
        self.questionnaire = questionnaire
        await self.engine.init(self.keywords, questionnaire)

    async def _on_complete(self, engine: DialogueEngine) -> None:
        self._schedule()

    def _schedule(self) -> asyncio.Task:
        """启动推荐生成；上一次生成失败时重新开始"""
        if self._task is not None and self._failed(self._task):
            logger.info(f"🔁 会话 {self.session_id} 上次推荐生成失败，重新生成")
            self._task = None

        if self._task is None:
            logger.info(f"🚀 会话 {self.session_id} 开始生成推荐")
            self._task = asyncio.create_task(self.service.recommend(
                self.keywords,
                self.questionnaire,
                self.engine.additional_answers(),
                session_id=self.session_id
            ))
            self._task.add_done_callback(self._log_failure)
        return self._task

    @staticmethod
    def _failed(task: asyncio.Task) -> bool:
        return task.done() and not task.cancelled() and task.exception() is not None

    def _log_failure(self, task: asyncio.Task) -> None:
        if self._failed(task):
            logger.warning(f"⚠️ 会话 {self.session_id} 推荐生成失败: {task.exception()}")

    @property
    def started(self) -> bool:
        return self._task is not None

    async def result(self) -> List[EnrichedPlace]:
        """等待推荐结果；恢复的已完成会话在首次请求时生成"""
        if not self.engine.complete:
            raise InvalidState("问答尚未完成")
        return await asyncio.shield(self._schedule())

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()


class FlowRegistry:
    """
    按会话保存推荐流程

    最多保留 max_flows 个流程，超出时淘汰最久未访问的。
    消息已持久化，被淘汰的会话可以用同一个 session_id 重新打开并恢复。
    """

    def __init__(self, flow_factory: Callable[[str], RecommendationFlow], max_flows: int = MAX_ACTIVE_FLOWS):
        self.flow_factory = flow_factory
        self.max_flows = max_flows
        self._flows: "OrderedDict[str, RecommendationFlow]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._flows)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._flows

    async def open(
        self,
        keywords: List[str],
        questionnaire: Questionnaire,
        session_id: Optional[str] = None
    ) -> RecommendationFlow:
        """打开会话；同一会话已打开时直接返回"""
        session_id = session_id or new_session_id()
        if session_id in self._flows:
            return self.get(session_id)

        flow = self.flow_factory(session_id)
        self._flows[session_id] = flow
        try:
            await flow.start(keywords, questionnaire)
        except Exception:
            self._flows.pop(session_id, None)
            raise
        self._evict()
        return flow

    def get(self, session_id: str) -> RecommendationFlow:
        flow = self._flows.get(session_id)
        if flow is None:
            raise SessionNotFound(session_id)
        self._flows.move_to_end(session_id)
        return flow

    def reset(self, session_id: str) -> None:
        flow = self.get(session_id)
        flow.cancel()
        del self._flows[session_id]
        logger.info(f"🗑️ 会话 {session_id} 已重置")

    def _evict(self) -> None:
        while len(self._flows) > self.max_flows:
            session_id, flow = self._flows.popitem(last=False)
            flow.cancel()
            logger.info(f"🧹 会话 {session_id} 长时间未访问，已移出内存")
