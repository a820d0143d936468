"""
个性化问答 API 路由
"""
from fastapi import APIRouter, Depends, HTTPException

from moodtrip.dependencies import Services, get_services
from moodtrip.errors import InvalidState, ProviderUnavailable, SessionNotFound
from moodtrip.models import AnswerRequest, StartChatRequest
from moodtrip.services.recommender import RecommendationFlow

router = APIRouter(prefix="/chat", tags=["问答"])


def _flow(services: Services, session_id: str) -> RecommendationFlow:
    try:
        return services.flows.get(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


def _session_data(flow: RecommendationFlow) -> dict:
    engine = flow.engine
    return {
        **engine.session.model_dump(mode="json"),
        "state": engine.state.value,
        "busy": engine.busy,
        "recommendation_started": flow.started
    }


@router.post("/sessions")
async def start_chat(request: StartChatRequest, services: Services = Depends(get_services)):
    """
    开始（或恢复）个性化问答

    新会话会生成第一个问题；已有消息的会话直接恢复
    """
    flow = await services.flows.open(
        request.keywords,
        request.questionnaire,
        session_id=request.session_id
    )
    return {"success": True, "data": _session_data(flow)}


@router.get("/{session_id}")
async def get_chat(session_id: str, services: Services = Depends(get_services)):
    """获取会话状态和消息"""
    return {"success": True, "data": _session_data(_flow(services, session_id))}


@router.post("/{session_id}/answer")
async def answer(session_id: str, request: AnswerRequest, services: Services = Depends(get_services)):
    """
    回答当前问题

    处理中或已完成的会话会忽略回答，返回 accepted=false
    """
    flow = _flow(services, session_id)
    accepted = await flow.engine.submit_answer(request.answer)
    return {"success": True, "data": {"accepted": accepted, **_session_data(flow)}}


@router.post("/{session_id}/skip")
async def skip(session_id: str, services: Services = Depends(get_services)):
    """跳过剩余问题，直接生成推荐"""
    flow = _flow(services, session_id)
    await flow.engine.skip()
    return {"success": True, "data": _session_data(flow)}


@router.post("/{session_id}/finish")
async def finish(session_id: str, services: Services = Depends(get_services)):
    """立即结束问答"""
    flow = _flow(services, session_id)
    await flow.engine.force_complete()
    return {"success": True, "data": _session_data(flow)}


@router.get("/{session_id}/recommendations")
async def get_recommendations(session_id: str, services: Services = Depends(get_services)):
    """等待问答完成后生成的推荐结果"""
    flow = _flow(services, session_id)
    try:
        places = await flow.result()
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ProviderUnavailable as e:
        raise HTTPException(status_code=502, detail=str(e))

    return {
        "success": True,
        "data": {
            "session_id": session_id,
            "places": [place.model_dump(mode="json") for place in places]
        }
    }


@router.delete("/{session_id}")
async def reset_chat(session_id: str, services: Services = Depends(get_services)):
    """丢弃会话的问答流程"""
    try:
        services.flows.reset(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "message": "会话已重置"}
