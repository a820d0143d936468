"""
出行建议：到达时间、出行方式、行程安排

优先使用模型综合景点、天气、周边和问答信息给出建议；
模型不可用或回复无法解析时，使用基于规则的基础建议。
"""
import logging
import re
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError

from moodtrip.errors import ParseFailure, ProviderUnavailable
from moodtrip.models import CandidatePlace, NearbyIndex, Questionnaire, TravelAdvice, TravelTime, WeatherSnapshot
from moodtrip.services.model_gateway import ModelGateway
from moodtrip.services.parsing import extract_json_object

logger = logging.getLogger(__name__)

TIME_TABLE = {
    TravelTime.MORNING: "09:00",
    TravelTime.AFTERNOON: "14:00",
    TravelTime.EVENING: "18:00",
    TravelTime.NIGHT: "20:00",
}
DEFAULT_TIME = "14:00"
RAINY_TIME = "10:00"
HOT_AFTERNOON_TIME = "16:00"
HOT_THRESHOLD = 30

WALKING_DISTANCE = 500
TRANSIT_DISTANCE = 5000
TAXI_PARTY_SIZE = 3

_TIME_PATTERN = re.compile(r"(\d{1,2})[:：](\d{2})")

ADVICE_PROMPT = """作为旅行规划专家，请根据以下信息为这个景点生成出行推荐：

{context}

请提供：
1. 最佳出行时间（具体到小时，考虑天气和人流量）
2. 推荐出行方式（自驾/公共交通/步行等，说明理由）
3. 行程安排建议（简要说明）
4. 注意事项（如天气、交通等）

请以JSON格式返回，格式如下：
{{
  "recommendedTime": "HH:MM",
  "recommendedTransport": ["方式1", "方式2"],
  "itinerarySuggestion": "建议内容",
  "notes": "注意事项"
}}"""


def _format_temp(value: Optional[float]) -> str:
    return "?" if value is None else f"{value:g}"


def recommended_time(preference: TravelTime, weather: Optional[WeatherSnapshot]) -> str:
    """按时间偏好和天气给出到达时间"""
    time = TIME_TABLE.get(preference, DEFAULT_TIME)
    if weather:
        if "雨" in weather.condition:
            # 下雨时建议早一点出发
            time = RAINY_TIME
        elif weather.temperature_max is not None and weather.temperature_max > HOT_THRESHOLD:
            if preference == TravelTime.AFTERNOON:
                time = HOT_AFTERNOON_TIME
    return time


def recommended_transport(place: CandidatePlace, traveler_count: int) -> List[str]:
    """按距离和人数推荐出行方式"""
    if place.distance is None:
        return ["公共交通", "自驾"]
    if place.distance < WALKING_DISTANCE:
        return ["步行"]
    if place.distance < TRANSIT_DISTANCE:
        transport = ["公共交通"]
        if traveler_count >= TAXI_PARTY_SIZE:
            transport.append("打车")
        return transport
    return ["自驾", "公共交通"]


def weather_notes(weather: Optional[WeatherSnapshot]) -> str:
    if not weather:
        return "请注意天气变化"
    return (
        f"注意天气：{weather.condition}，"
        f"温度{_format_temp(weather.temperature_min)}-{_format_temp(weather.temperature_max)}°C"
    )


def basic_advice(
    place: CandidatePlace,
    questionnaire: Questionnaire,
    weather: Optional[WeatherSnapshot]
) -> TravelAdvice:
    """基于规则的基础建议"""
    time = recommended_time(questionnaire.travel_time, weather)
    return TravelAdvice(
        recommended_time=time,
        recommended_transport=recommended_transport(place, questionnaire.traveler_count),
        itinerary_suggestion=f"建议在{time}到达{place.name}，游览时间约2-3小时。",
        notes=weather_notes(weather),
    )


def normalize_time(value) -> Optional[str]:
    """从模型给出的时间描述中取出 HH:MM，如 "上午9:30左右" -> "09:30" """
    match = _TIME_PATTERN.search(str(value or ""))
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def build_context(
    place: CandidatePlace,
    questionnaire: Questionnaire,
    weather: Optional[WeatherSnapshot],
    nearby: Optional[NearbyIndex],
    keywords: Sequence[str],
    answers: Optional[Dict[str, str]] = None
) -> str:
    lines = [
        "景点信息：",
        f"- 名称：{place.name}",
        f"- 地址：{place.address}",
        f"- 评分：{place.rating or '未知'}",
        f"- 情绪关键词：{'、'.join(keywords)}",
        "",
        "出行信息：",
        f"- 日期：{questionnaire.travel_date.isoformat()}",
        f"- 时间偏好：{questionnaire.travel_time.label}",
        f"- 人数：{questionnaire.traveler_count}",
        f"- 出发地：{questionnaire.departure_location}",
    ]

    if weather:
        lines += [
            "",
            "天气信息：",
            f"- 温度：{_format_temp(weather.temperature_min)}°C - {_format_temp(weather.temperature_max)}°C",
            f"- 天气：{weather.condition}",
            f"- 降水量：{weather.precipitation:g}mm",
            f"- 风速：{weather.wind_speed:g}km/h",
        ]

    if nearby:
        facilities = [
            ("交通", nearby.transport),
            ("餐饮", nearby.dining),
            ("住宿", nearby.accommodation),
        ]
        facility_lines = [
            f"- {label}：{'、'.join(item.name for item in items[:3])}"
            for label, items in facilities if items
        ]
        if facility_lines:
            lines += ["", "周边设施："] + facility_lines

    if answers:
        lines += ["", "用户补充需求："]
        lines += [f"- {question} {answer}" for question, answer in answers.items()]

    return "\n".join(lines)


class TravelAdvisor:
    """出行建议生成"""

    def __init__(self, gateway: Optional[ModelGateway] = None):
        self.gateway = gateway

    async def advise(
        self,
        place: CandidatePlace,
        questionnaire: Questionnaire,
        weather: Optional[WeatherSnapshot] = None,
        nearby: Optional[NearbyIndex] = None,
        keywords: Sequence[str] = (),
        answers: Optional[Dict[str, str]] = None
    ) -> TravelAdvice:
        basic = basic_advice(place, questionnaire, weather)
        if self.gateway is None:
            return basic

        prompt = ADVICE_PROMPT.format(
            context=build_context(place, questionnaire, weather, nearby, keywords, answers)
        )
        try:
            reply = await self.gateway.complete(prompt)
            data = extract_json_object(reply)
        except (ProviderUnavailable, ParseFailure) as e:
            logger.warning(f"⚠️ AI出行建议生成失败，使用基础建议 ({place.name}): {e}")
            return basic

        # 模型缺失或格式不对的字段用基础建议补齐
        try:
            return TravelAdvice(
                recommended_time=normalize_time(data.get("recommendedTime")) or basic.recommended_time,
                recommended_transport=data.get("recommendedTransport") or basic.recommended_transport,
                itinerary_suggestion=str(data.get("itinerarySuggestion") or basic.itinerary_suggestion),
                notes=str(data.get("notes") or basic.notes),
            )
        except ValidationError as e:
            logger.warning(f"⚠️ AI出行建议字段不合法，使用基础建议 ({place.name}): {e}")
            return basic
