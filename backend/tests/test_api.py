import base64
from datetime import date

import pytest
from fastapi.testclient import TestClient

from fakes import ScriptedChatModel, StaticPlaceSearch, StaticReviews, StaticWeather, city_square, lake_park
from moodtrip.config import Settings
from moodtrip.dependencies import build_services
from moodtrip.errors import ProviderUnavailable
from moodtrip.main import create_app
from moodtrip.models import WeatherSnapshot
from moodtrip.services.session_store import InMemorySessionStore

QUESTIONNAIRE = {
    "travel_date": "2026-05-01",
    "travel_time": "afternoon",
    "traveler_count": 2,
    "departure_location": "杭州",
}


def model_replies(kind, model, prompt):
    if "请分析以下文本描述" in prompt:
        return '{"emotions": ["宁静"], "spatial_tendencies": ["自然"]}'
    if "作为旅行规划助手" in prompt:
        return "您喜欢人多还是人少的地方？"
    if "对话历史" in prompt:
        return '{"done": true, "question": ""}'
    return ProviderUnavailable(model, "offline")


def make_client(place_search=None):
    services = build_services(
        Settings(),
        chat_model=ScriptedChatModel(handler=model_replies),
        place_search=place_search or StaticPlaceSearch(places=[city_square(), lake_park()]),
        weather=StaticWeather(WeatherSnapshot(date=date(2026, 5, 1), condition="晴", temperature_max=25)),
        reviews=StaticReviews(),
        store=InMemorySessionStore(),
    )
    return TestClient(create_app(services))


@pytest.fixture
def client():
    with make_client() as test_client:
        yield test_client


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"
    assert client.get("/health").json()["status"] == "healthy"


def test_full_dialogue_flow(client):
    response = client.post("/api/keywords", json={"type": "text", "text": "想去湖边发呆"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    session_id = body["data"]["session_id"]
    assert body["data"]["keywords"] == ["宁静", "自然"]

    response = client.post("/api/chat/sessions", json={
        "session_id": session_id,
        "keywords": body["data"]["keywords"],
        "questionnaire": QUESTIONNAIRE,
    })
    data = response.json()["data"]
    assert data["state"] == "awaiting_answer"
    assert data["question_count"] == 1
    assert data["turns"][0]["content"] == "您喜欢人多还是人少的地方？"

    response = client.post(f"/api/chat/{session_id}/answer", json={"answer": "人少"})
    data = response.json()["data"]
    assert data["accepted"] is True
    assert data["complete"] is True
    assert data["recommendation_started"] is True

    # 已完成的会话不再接受回答
    response = client.post(f"/api/chat/{session_id}/answer", json={"answer": "再补充一点"})
    assert response.json()["data"]["accepted"] is False

    response = client.get(f"/api/chat/{session_id}/recommendations")
    assert response.status_code == 200
    places = response.json()["data"]["places"]
    assert [place["name"] for place in places] == ["静湖公园", "城市广场"]
    assert places[0]["score"] == 132
    assert places[0]["weather"]["condition"] == "晴"
    assert places[0]["review_summary"] == "暂无评论"

    history = client.get("/api/history").json()["data"]
    assert [record["id"] for record in history] == [session_id]
    assert history[0]["place_count"] == 2
    assert [place["name"] for place in history[0]["recommended_places"]] == ["静湖公园", "城市广场"]
    assert history[0]["recommended_places"][0]["matched_keywords"] == ["宁静", "自然"]
    assert history[0]["questionnaire"]["departure_location"] == "杭州"


def test_unknown_session_returns_404(client):
    assert client.get("/api/chat/missing").status_code == 404
    assert client.post("/api/chat/missing/answer", json={"answer": "hi"}).status_code == 404
    assert client.delete("/api/chat/missing").status_code == 404


def test_recommendations_before_completion_conflict(client):
    response = client.post("/api/chat/sessions", json={"keywords": ["宁静"], "questionnaire": QUESTIONNAIRE})
    session_id = response.json()["data"]["session_id"]

    assert client.get(f"/api/chat/{session_id}/recommendations").status_code == 409

    response = client.post(f"/api/chat/{session_id}/skip")
    assert response.json()["data"]["complete"] is True
    assert client.get(f"/api/chat/{session_id}/recommendations").status_code == 200


def test_reset_discards_session(client):
    response = client.post("/api/chat/sessions", json={"keywords": ["宁静"], "questionnaire": QUESTIONNAIRE})
    session_id = response.json()["data"]["session_id"]

    assert client.delete(f"/api/chat/{session_id}").status_code == 200
    assert client.get(f"/api/chat/{session_id}").status_code == 404


def test_extraction_failure_is_422(client):
    response = client.post("/api/keywords", json={"type": "text", "text": "  "})

    assert response.status_code == 422


def test_invalid_base64_is_400(client):
    response = client.post("/api/keywords", json={"type": "image", "images": ["###"]})

    assert response.status_code == 400


def test_audio_upload_uses_fallback_keywords(client):
    audio = base64.b64encode(b"RIFF0000WAVE").decode()

    response = client.post("/api/keywords", json={"type": "audio", "audio": audio})

    assert response.json()["data"]["keywords"] == ["音乐", "音频", "声音"]


def test_questionnaire_is_validated(client):
    bad = dict(QUESTIONNAIRE, traveler_count=0)

    response = client.post("/api/recommendations", json={"keywords": ["宁静"], "questionnaire": bad})

    assert response.status_code == 422


def test_rank_endpoint(client):
    response = client.post("/api/places/rank", json={
        "keywords": ["宁静", "自然"],
        "candidates": [city_square().model_dump(mode="json"), lake_park().model_dump(mode="json")],
    })

    data = response.json()["data"]
    assert [place["name"] for place in data] == ["静湖公园", "城市广场"]
    assert data[0]["matched_keywords"] == ["宁静", "自然"]


def test_one_shot_recommendations(client):
    response = client.post("/api/recommendations", json={"keywords": ["宁静", "自然"], "questionnaire": QUESTIONNAIRE})

    data = response.json()["data"]
    assert len(data) == 2
    assert data[0]["travel_advice"]["recommended_time"] == "14:00"


def test_map_failure_is_502():
    with make_client(StaticPlaceSearch(error=ProviderUnavailable("nominatim", "503"))) as client:
        response = client.post("/api/recommendations", json={"keywords": ["宁静"], "questionnaire": QUESTIONNAIRE})

    assert response.status_code == 502
