"""
关键词提取 API 路由
"""
import base64
import binascii
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from moodtrip.dependencies import Services, get_services
from moodtrip.errors import ExtractionFailed
from moodtrip.models import ExtractionInput, ExtractRequest

router = APIRouter(prefix="/keywords", tags=["关键词"])


def decode_media(value: Optional[str]) -> Optional[bytes]:
    """解码 base64，兼容 data URL 前缀 (data:image/png;base64,...)"""
    if not value:
        return None
    if value.startswith("data:") and "," in value:
        value = value.split(",", 1)[1]
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="媒体内容不是合法的 base64")


@router.post("")
async def extract_keywords(request: ExtractRequest, services: Services = Depends(get_services)):
    """
    从图片 / 音频 / 视频 / 文本中提取情绪和空间倾向关键词

    返回新建的会话ID，后续问答和推荐使用同一个会话ID
    """
    data = ExtractionInput(
        type=request.type,
        text=request.text,
        images=[decode_media(image) for image in request.images if image],
        audio=decode_media(request.audio),
        video=decode_media(request.video),
    )

    try:
        session_id, keywords = await services.recommender.extract_keywords(data)
    except ExtractionFailed as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {
        "success": True,
        "data": {
            "session_id": session_id,
            "keywords": keywords.to_list()
        }
    }
