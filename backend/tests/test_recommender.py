import asyncio
from functools import partial

import pytest

from fakes import (
    ScriptedChatModel,
    StaticPlaceSearch,
    StaticReviews,
    StaticWeather,
    city_square,
    failing_gateway,
    lake_park,
    make_gateway,
    questionnaire,
)
from moodtrip.errors import InvalidState, ProviderUnavailable, SessionNotFound
from moodtrip.models import ExtractionInput, InputType, RankedPlace
from moodtrip.services.dialogue import DialogueEngine
from moodtrip.services.enrichment import EnrichmentAggregator
from moodtrip.services.keyword_extractor import KeywordExtractor
from moodtrip.services.recommender import FlowRegistry, RecommendationFlow, RecommendationService, describe_input
from moodtrip.services.reviews import ReviewSummarizer
from moodtrip.services.session_store import InMemorySessionStore
from moodtrip.services.travel_advice import TravelAdvisor


def _service(gateway, store=None, place_search=None):
    place_search = place_search or StaticPlaceSearch(places=[city_square(), lake_park()])
    aggregator = EnrichmentAggregator(
        reviews=StaticReviews(),
        summarizer=ReviewSummarizer(gateway),
        weather=StaticWeather(),
        place_search=place_search,
        advisor=TravelAdvisor(gateway),
        top_k=1,
    )
    return RecommendationService(KeywordExtractor(gateway), place_search, aggregator, store or InMemorySessionStore())


def test_extract_keywords_records_history():
    store = InMemorySessionStore()
    reply = '{"emotions": ["宁静"], "spatial_tendencies": ["水边"]}'
    service = _service(make_gateway(ScriptedChatModel([reply])), store=store)

    session_id, keywords = asyncio.run(service.extract_keywords(ExtractionInput(type=InputType.TEXT, text="想看湖")))

    records = asyncio.run(store.recent_records())
    assert keywords.to_list() == ["宁静", "水边"]
    assert records[0].id == session_id
    assert records[0].input_content == "想看湖"
    assert records[0].keywords == ["宁静", "水边"]


def test_describe_input():
    assert describe_input(ExtractionInput(type=InputType.IMAGE, images=[b"a", b"b"])) == "2 张图片"
    assert describe_input(ExtractionInput(type=InputType.TEXT, text="x" * 500)) == "x" * 200


def test_recommend_searches_departure_region_and_keeps_top_k():
    place_search = StaticPlaceSearch(places=[city_square(), lake_park()])
    service = _service(failing_gateway(), place_search=place_search)

    results = asyncio.run(service.recommend(["宁静", "自然"], questionnaire(departure_location="上海")))

    assert place_search.searches == [(["宁静", "自然"], "上海")]
    assert [place.name for place in results] == ["静湖公园"]


def test_recommend_without_candidates():
    service = _service(failing_gateway(), place_search=StaticPlaceSearch(places=[]))

    assert asyncio.run(service.recommend(["宁静"], questionnaire())) == []


def _registry(service, gateway):
    engine_factory = partial(DialogueEngine, gateway=gateway, store=InMemorySessionStore(), max_questions=3)
    return FlowRegistry(lambda session_id: RecommendationFlow(session_id, service, engine_factory))


def test_completion_schedules_recommendation_once():
    gateway = failing_gateway()
    calls = []

    class CountingService(RecommendationService):
        async def recommend(self, keywords, questionnaire, answers=None, session_id=None):
            calls.append((list(keywords), dict(answers or {})))
            return []

    service = CountingService(None, None, None, InMemorySessionStore())
    registry = _registry(service, gateway)

    async def scenario():
        flow = await registry.open(["宁静"], questionnaire(), session_id="s1")
        with pytest.raises(InvalidState):
            await flow.result()
        await flow.engine.submit_answer("海边")
        await flow.engine.force_complete()
        first = await flow.result()
        second = await flow.result()
        return flow, first, second

    flow, first, second = asyncio.run(scenario())

    assert first == second == []
    assert len(calls) == 1
    assert calls[0] == (["宁静"], {"您希望这次旅行是放松还是探索？": "海边"})
    assert flow.started


def test_registry_open_get_and_reset():
    registry = _registry(_service(failing_gateway()), failing_gateway())

    async def scenario():
        flow = await registry.open(["宁静"], questionnaire(), session_id="s1")
        again = await registry.open(["别的"], questionnaire(), session_id="s1")
        return flow, again

    flow, again = asyncio.run(scenario())

    assert flow is again
    assert registry.get("s1") is flow
    registry.reset("s1")
    with pytest.raises(SessionNotFound):
        registry.get("s1")


class RecoveringPlaceSearch(StaticPlaceSearch):
    """第一次搜索失败，之后恢复"""

    async def search(self, keywords, region=""):
        self.searches.append((list(keywords), region))
        if len(self.searches) == 1:
            raise ProviderUnavailable("nominatim", "503")
        return list(self.places)


def test_failed_recommendation_is_generated_again():
    place_search = RecoveringPlaceSearch(places=[lake_park()])
    service = _service(failing_gateway(), place_search=place_search)
    registry = _registry(service, failing_gateway())

    async def scenario():
        flow = await registry.open(["宁静"], questionnaire(), session_id="s1")
        await flow.engine.skip()
        with pytest.raises(ProviderUnavailable):
            await flow.result()
        return await flow.result()

    results = asyncio.run(scenario())

    assert [place.name for place in results] == ["静湖公园"]
    assert len(place_search.searches) == 2


def test_successful_recommendation_is_not_repeated():
    place_search = StaticPlaceSearch(places=[lake_park()])
    registry = _registry(_service(failing_gateway(), place_search=place_search), failing_gateway())

    async def scenario():
        flow = await registry.open(["宁静"], questionnaire(), session_id="s1")
        await flow.engine.skip()
        await flow.result()
        await flow.result()

    asyncio.run(scenario())

    assert len(place_search.searches) == 1


def test_recommend_saves_results_to_history():
    store = InMemorySessionStore()
    reply = '{"emotions": ["宁静"], "spatial_tendencies": ["自然"]}'
    service = _service(make_gateway(ScriptedChatModel([reply])), store=store)

    async def scenario():
        session_id, keywords = await service.extract_keywords(ExtractionInput(type=InputType.TEXT, text="想看湖"))
        await service.recommend(keywords.to_list(), questionnaire(), session_id=session_id)
        return session_id, await store.recent_records()

    session_id, records = asyncio.run(scenario())

    assert records[0].id == session_id
    assert records[0].place_count == 1
    assert records[0].recommended_places[0].name == "静湖公园"
    assert records[0].recommended_places[0].matched_keywords == ["宁静", "自然"]
    assert type(records[0].recommended_places[0]) is RankedPlace
    assert records[0].questionnaire.departure_location == "杭州"


def test_recommend_for_unknown_session_keeps_history_empty():
    store = InMemorySessionStore()
    service = _service(failing_gateway(), store=store)

    results = asyncio.run(service.recommend(["宁静"], questionnaire(), session_id="missing"))

    assert len(results) == 1
    assert asyncio.run(store.recent_records()) == []


def test_registry_evicts_least_recently_used_flow():
    engine_factory = partial(DialogueEngine, gateway=failing_gateway(), store=InMemorySessionStore(), max_questions=3)
    registry = FlowRegistry(
        lambda session_id: RecommendationFlow(session_id, _service(failing_gateway()), engine_factory),
        max_flows=2
    )

    async def scenario():
        await registry.open(["宁静"], questionnaire(), session_id="a")
        await registry.open(["宁静"], questionnaire(), session_id="b")
        registry.get("a")
        await registry.open(["宁静"], questionnaire(), session_id="c")

    asyncio.run(scenario())

    assert len(registry) == 2
    assert "a" in registry
    assert "c" in registry
    with pytest.raises(SessionNotFound):
        registry.get("b")


def test_evicted_session_resumes_from_store():
    store = InMemorySessionStore()
    engine_factory = partial(DialogueEngine, gateway=failing_gateway(), store=store, max_questions=3)
    registry = FlowRegistry(
        lambda session_id: RecommendationFlow(session_id, _service(failing_gateway()), engine_factory),
        max_flows=1
    )

    async def scenario():
        first = await registry.open(["宁静"], questionnaire(), session_id="a")
        await first.engine.submit_answer("海边")
        await registry.open(["宁静"], questionnaire(), session_id="b")
        return await registry.open(["宁静"], questionnaire(), session_id="a")

    resumed = asyncio.run(scenario())

    assert [turn.content for turn in resumed.engine.turns][:2] == ["您希望这次旅行是放松还是探索？", "海边"]
