"""
数据模型定义
"""
import datetime as dt
import re
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class InputType(str, Enum):
    """输入模态"""
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    TEXT = "text"


class MapProvider(str, Enum):
    """地图数据来源"""
    NOMINATIM = "nominatim"
    AMAP = "amap"
    BAIDU = "baidu"


class Role(str, Enum):
    """对话角色"""
    ASSISTANT = "assistant"
    USER = "user"


class TurnKind(str, Enum):
    """消息类型"""
    QUESTION = "question"
    ANSWER = "answer"
    RECOMMENDATION = "recommendation"


class TravelTime(str, Enum):
    """出行时间偏好"""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"

    @property
    def label(self) -> str:
        return _TRAVEL_TIME_LABELS[self.value]


_TRAVEL_TIME_LABELS = {
    "morning": "上午",
    "afternoon": "下午",
    "evening": "晚上",
    "night": "夜间",
}


class Sentiment(str, Enum):
    """评论情感倾向"""
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


# ==================== 感知特征 ====================

class PerceptualFeatures(BaseModel):
    """图像客观特征（由视觉模型输出）"""
    model_config = ConfigDict(frozen=True)

    objects: List[str] = Field(default_factory=list, description="主要物体和元素")
    colors: List[str] = Field(default_factory=list, description="主要颜色")
    brightness: str = Field(default="", description="明暗程度: 明亮/中等/昏暗")
    contrast: str = Field(default="", description="对比度: 高/中/低")
    composition: str = Field(default="", description="构图特点")
    texture: str = Field(default="", description="质感")
    atmosphere: str = Field(default="", description="氛围特征")

    @field_validator("objects", "colors", mode="before")
    @classmethod
    def _coerce_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(item) for item in value if item is not None]

    @field_validator("brightness", "contrast", "composition", "texture", "atmosphere", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return " ".join(str(item) for item in value)
        return str(value)


class AudioFeatures(BaseModel):
    """音频特征"""
    model_config = ConfigDict(frozen=True)

    tempo: str = Field(default="中等", description="节奏")
    mood: str = Field(default="中性", description="情绪")
    instruments: List[str] = Field(default_factory=list, description="乐器/声源")
    rhythm: str = Field(default="中等", description="律动")
    volume: str = Field(default="中等", description="音量")


class ExtractionInput(BaseModel):
    """关键词提取输入"""
    type: InputType = Field(..., description="输入类型")
    text: Optional[str] = Field(default=None, description="文本描述")
    images: List[bytes] = Field(default_factory=list, description="图片文件内容")
    audio: Optional[bytes] = Field(default=None, description="音频文件内容")
    video: Optional[bytes] = Field(default=None, description="视频文件内容")


# ==================== 景点 ====================

class Location(BaseModel):
    """经纬度"""
    lat: float = Field(..., description="纬度")
    lng: float = Field(..., description="经度")


class CandidatePlace(BaseModel):
    """候选景点（地图搜索结果）"""
    id: str = Field(default="", description="景点ID")
    name: str = Field(..., description="名称")
    address: str = Field(default="", description="地址")
    location: Optional[Location] = Field(default=None, description="坐标")
    rating: Optional[float] = Field(default=None, description="评分")
    images: List[str] = Field(default_factory=list, description="图片URL")
    description: str = Field(default="", description="简介/类型")
    provider: MapProvider = Field(default=MapProvider.NOMINATIM, description="数据来源")
    distance: Optional[float] = Field(default=None, description="距离(米)")
    tel: str = Field(default="", description="电话")


class RankedPlace(CandidatePlace):
    """排序后的景点"""
    score: float = Field(default=0.0, description="综合得分")
    matched_keywords: List[str] = Field(default_factory=list, description="命中的关键词")


# ==================== 对话 ====================

class ConversationTurn(BaseModel):
    """单条对话消息"""
    role: Role = Field(..., description="消息角色")
    content: str = Field(..., description="消息内容")
    kind: TurnKind = Field(..., description="消息类型")
    timestamp: dt.datetime = Field(default_factory=dt.datetime.now, description="创建时间")


class DialogueSession(BaseModel):
    """对话会话"""
    session_id: str = Field(..., description="会话ID")
    turns: List[ConversationTurn] = Field(default_factory=list, description="消息列表")
    complete: bool = Field(default=False, description="是否已完成")

    @computed_field
    @property
    def question_count(self) -> int:
        return sum(
            1 for turn in self.turns
            if turn.role == Role.ASSISTANT and turn.kind == TurnKind.QUESTION
        )


class Questionnaire(BaseModel):
    """出行基础信息（日期、时间、人数、出发地）"""
    travel_date: dt.date = Field(..., description="出行日期")
    travel_time: TravelTime = Field(..., description="出行时间偏好")
    traveler_count: int = Field(..., ge=1, le=50, description="人数")
    departure_location: str = Field(..., min_length=1, description="出发地")


# ==================== 补充信息 ====================

class Review(BaseModel):
    """网友评论"""
    content: str = Field(..., description="评论内容")
    rating: Optional[float] = Field(default=None, description="评分")
    time: Optional[str] = Field(default=None, description="评论时间")


class ReviewDigest(BaseModel):
    """评论摘要"""
    summary: str = Field(..., description="精简摘要")
    count: int = Field(default=0, description="评论条数")
    sentiment: Sentiment = Field(default=Sentiment.NEUTRAL, description="情感倾向")


class WeatherSnapshot(BaseModel):
    """某天的天气"""
    date: dt.date = Field(..., description="日期")
    condition: str = Field(default="", description="天气状况")
    temperature_max: Optional[float] = Field(default=None, description="最高温度")
    temperature_min: Optional[float] = Field(default=None, description="最低温度")
    precipitation: float = Field(default=0.0, description="降水量(mm)")
    wind_speed: float = Field(default=0.0, description="风速")
    humidity: Optional[float] = Field(default=None, description="湿度")
    provider: str = Field(default="", description="数据来源")


class NearbyFacility(BaseModel):
    """周边设施"""
    name: str = Field(..., description="名称")
    address: str = Field(default="", description="地址")
    distance: Optional[float] = Field(default=None, description="距离(米)")
    rating: Optional[float] = Field(default=None, description="评分")
    location: Optional[Location] = Field(default=None, description="坐标")


class NearbyIndex(BaseModel):
    """按类别整理的周边设施"""
    transport: List[NearbyFacility] = Field(default_factory=list, description="交通")
    dining: List[NearbyFacility] = Field(default_factory=list, description="餐饮")
    accommodation: List[NearbyFacility] = Field(default_factory=list, description="住宿")
    other: List[NearbyFacility] = Field(default_factory=list, description="其他")


_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class TravelAdvice(BaseModel):
    """出行建议"""
    model_config = ConfigDict(populate_by_name=True)

    recommended_time: str = Field(..., alias="recommendedTime", description="推荐到达时间 HH:MM")
    recommended_transport: List[str] = Field(default_factory=list, alias="recommendedTransport", description="推荐出行方式")
    itinerary_suggestion: str = Field(default="", alias="itinerarySuggestion", description="行程建议")
    notes: str = Field(default="", description="注意事项")

    @field_validator("recommended_time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        if not _HHMM.match(value):
            raise ValueError(f"时间格式应为 HH:MM: {value}")
        return value

    @field_validator("recommended_transport", mode="before")
    @classmethod
    def _coerce_transport(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in re.split(r"[,，、/]", value) if item.strip()]
        return value


class EnrichedPlace(RankedPlace):
    """补充完整信息后的推荐景点"""
    model_config = ConfigDict(frozen=True)

    review_summary: Optional[str] = Field(default=None, description="评论摘要")
    review_count: int = Field(default=0, description="评论条数")
    sentiment: Optional[Sentiment] = Field(default=None, description="评论情感")
    weather: Optional[WeatherSnapshot] = Field(default=None, description="出行日天气")
    nearby: Optional[NearbyIndex] = Field(default=None, description="周边设施")
    travel_advice: Optional[TravelAdvice] = Field(default=None, description="出行建议")
    missing_fields: List[str] = Field(default_factory=list, description="获取失败的字段")

    @computed_field
    @property
    def partial(self) -> bool:
        return bool(self.missing_fields)


class HistoryRecord(BaseModel):
    """推荐历史记录"""
    id: str = Field(..., description="会话ID")
    input_type: InputType = Field(..., description="输入类型")
    input_content: str = Field(default="", description="输入内容摘要")
    keywords: List[str] = Field(default_factory=list, description="提取的关键词")
    created_at: dt.datetime = Field(default_factory=dt.datetime.now, description="创建时间")
    questionnaire: Optional[Questionnaire] = Field(default=None, description="出行基础信息")
    recommended_places: List[RankedPlace] = Field(default_factory=list, description="推荐的景点（按排名）")

    @computed_field
    @property
    def place_count(self) -> int:
        return len(self.recommended_places)


# ==================== API 请求 ====================

class ExtractRequest(BaseModel):
    """关键词提取请求（媒体内容使用 base64 编码）"""
    type: InputType = Field(..., description="输入类型: image/audio/video/text")
    text: Optional[str] = Field(default=None, description="文本描述")
    images: List[str] = Field(default_factory=list, description="base64 图片列表")
    audio: Optional[str] = Field(default=None, description="base64 音频")
    video: Optional[str] = Field(default=None, description="base64 视频")


class RankRequest(BaseModel):
    """景点排序请求"""
    keywords: List[str] = Field(..., description="关键词")
    candidates: List[CandidatePlace] = Field(..., description="候选景点")


class StartChatRequest(BaseModel):
    """开始个性化问答"""
    session_id: Optional[str] = Field(default=None, description="会话ID，留空则新建")
    keywords: List[str] = Field(..., min_length=1, description="情绪关键词")
    questionnaire: Questionnaire = Field(..., description="出行基础信息")


class AnswerRequest(BaseModel):
    """回答问题"""
    answer: str = Field(..., min_length=1, description="用户回答")


class RecommendRequest(BaseModel):
    """直接生成推荐（跳过问答）"""
    session_id: Optional[str] = Field(default=None, description="关键词提取时返回的会话ID，用于记录推荐历史")
    keywords: List[str] = Field(..., min_length=1, description="情绪关键词")
    questionnaire: Questionnaire = Field(..., description="出行基础信息")
    additional_answers: Dict[str, str] = Field(default_factory=dict, description="补充问答")
