"""
周边设施分类
"""
from typing import Iterable

from moodtrip.models import CandidatePlace, NearbyFacility, NearbyIndex

# 按顺序匹配，先命中的类别优先
CATEGORY_KEYWORDS = (
    ("transport", ("地铁", "公交", "站", "停车场")),
    ("dining", ("餐厅", "饭店", "美食", "小吃")),
    ("accommodation", ("酒店", "宾馆", "民宿", "住宿")),
)


def categorize_place(place: CandidatePlace) -> str:
    text = f"{place.name} {place.address}".casefold()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return "other"


def build_nearby_index(places: Iterable[CandidatePlace]) -> NearbyIndex:
    """按类别整理周边设施，每类按距离升序，距离未知的排最后"""
    groups = {"transport": [], "dining": [], "accommodation": [], "other": []}
    for place in places:
        groups[categorize_place(place)].append(NearbyFacility(
            name=place.name,
            address=place.address,
            distance=place.distance,
            rating=place.rating,
            location=place.location,
        ))

    for facilities in groups.values():
        facilities.sort(key=lambda item: (item.distance is None, item.distance or 0.0))
    return NearbyIndex(**groups)
