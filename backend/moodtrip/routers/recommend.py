"""
景点排序与推荐 API 路由
"""
from fastapi import APIRouter, Depends, HTTPException, Query

from moodtrip.dependencies import Services, get_services
from moodtrip.errors import ProviderUnavailable
from moodtrip.models import RankRequest, RecommendRequest
from moodtrip.services.ranking import rank_places
from moodtrip.services.session_store import HISTORY_LIMIT

router = APIRouter(tags=["推荐"])


@router.post("/places/rank")
async def rank(request: RankRequest, services: Services = Depends(get_services)):
    """对给定的候选景点评分排序"""
    ranked = rank_places(request.candidates, request.keywords, services.recommender.weights)
    return {
        "success": True,
        "data": [place.model_dump(mode="json") for place in ranked]
    }


@router.post("/recommendations")
async def recommend(request: RecommendRequest, services: Services = Depends(get_services)):
    """
    直接生成推荐（不经过个性化问答）

    流程: 关键词补充 -> 地图搜索 -> 评分排序 -> 前K个景点补充评论/天气/周边/出行建议
    """
    try:
        places = await services.recommender.recommend(
            request.keywords,
            request.questionnaire,
            request.additional_answers,
            session_id=request.session_id
        )
    except ProviderUnavailable as e:
        raise HTTPException(status_code=502, detail=str(e))

    return {
        "success": True,
        "data": [place.model_dump(mode="json") for place in places]
    }


@router.get("/history")
async def history(
    limit: int = Query(HISTORY_LIMIT, ge=1, le=HISTORY_LIMIT, description="返回条数"),
    services: Services = Depends(get_services)
):
    """最近的推荐记录"""
    records = await services.store.recent_records(limit)
    return {
        "success": True,
        "data": [record.model_dump(mode="json") for record in records]
    }
