"""
景点评分与排序

score = 评分 × rating_weight
      + 每个命中的关键词 keyword_weight（名称 + 地址 + 简介，不区分大小写，每个关键词最多计一次）
      + max(0, distance_base - 距离 / distance_divisor)（已知距离时）
排序是稳定的：同分景点保持地图服务返回的原始顺序。
"""
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from moodtrip.config import Settings
from moodtrip.models import CandidatePlace, RankedPlace
from moodtrip.services.keywords import normalize_keyword


@dataclass(frozen=True)
class ScoringWeights:
    """评分权重"""
    rating: float = 10.0
    keyword: float = 20.0
    distance_base: float = 50.0
    distance_divisor: float = 100.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoringWeights":
        return cls(
            rating=settings.SCORE_RATING_WEIGHT,
            keyword=settings.SCORE_KEYWORD_WEIGHT,
            distance_base=settings.SCORE_DISTANCE_BASE,
            distance_divisor=settings.SCORE_DISTANCE_DIVISOR,
        )


DEFAULT_WEIGHTS = ScoringWeights()


def _unique_keywords(keywords: Iterable[str]) -> List[str]:
    """按归一化形式去重，保留首次出现的原始写法"""
    seen = set()
    unique = []
    for keyword in keywords:
        if keyword is None:
            continue
        normalized = normalize_keyword(keyword)
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        unique.append(keyword)
    return unique


def place_text(place: CandidatePlace) -> str:
    return f"{place.name} {place.address} {place.description}".casefold()


def score_place(
    place: CandidatePlace,
    keywords: Sequence[str],
    weights: ScoringWeights = DEFAULT_WEIGHTS
) -> Tuple[float, List[str]]:
    """计算单个景点的得分和命中的关键词"""
    score = 0.0

    if place.rating:
        score += place.rating * weights.rating

    text = place_text(place)
    matched = [keyword for keyword in _unique_keywords(keywords) if normalize_keyword(keyword) in text]
    score += len(matched) * weights.keyword

    if place.distance is not None and weights.distance_divisor:
        score += max(0.0, weights.distance_base - place.distance / weights.distance_divisor)

    return score, matched


def rank_places(
    places: Sequence[CandidatePlace],
    keywords: Iterable[str],
    weights: ScoringWeights = DEFAULT_WEIGHTS
) -> List[RankedPlace]:
    """按得分降序排列，同分保持输入顺序"""
    keyword_list = list(keywords)
    ranked = []
    for place in places:
        score, matched = score_place(place, keyword_list, weights)
        ranked.append(RankedPlace.model_validate({**place.model_dump(), "score": score, "matched_keywords": matched}))
    return sorted(ranked, key=lambda item: item.score, reverse=True)
