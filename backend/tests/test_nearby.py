from moodtrip.models import CandidatePlace
from moodtrip.services.nearby import build_nearby_index, categorize_place


def test_categories_by_name_and_address():
    assert categorize_place(CandidatePlace(name="湖滨地铁站")) == "transport"
    assert categorize_place(CandidatePlace(name="西湖小吃街")) == "dining"
    assert categorize_place(CandidatePlace(name="湖畔民宿")) == "accommodation"
    assert categorize_place(CandidatePlace(name="便利店")) == "other"
    assert categorize_place(CandidatePlace(name="某某饭店", address="近公交站")) == "transport"


def test_index_sorted_by_distance_unknown_last():
    places = [
        CandidatePlace(name="远的餐厅", distance=900),
        CandidatePlace(name="不知道多远的餐厅"),
        CandidatePlace(name="近的餐厅", distance=50),
        CandidatePlace(name="湖边酒店", distance=300),
    ]

    index = build_nearby_index(places)

    assert [item.name for item in index.dining] == ["近的餐厅", "远的餐厅", "不知道多远的餐厅"]
    assert [item.name for item in index.accommodation] == ["湖边酒店"]
    assert index.transport == []
    assert index.other == []
