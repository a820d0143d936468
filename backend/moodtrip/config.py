"""
配置管理模块
"""
import os
from pathlib import Path
from typing import List
from dotenv import load_dotenv

# 加载 .env 文件
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)


def _split_models(value: str) -> List[str]:
    """逗号分隔的模型列表 -> 有序列表"""
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """应用配置"""

    # 智谱 AI 配置 (OpenAI 兼容接口)
    ZHIPU_API_KEY: str = os.getenv("ZHIPU_API_KEY", "")
    ZHIPU_BASE_URL: str = os.getenv("ZHIPU_BASE_URL", "https://open.bigmodel.cn/api/paas/v4/")

    # 模型降级链：按顺序尝试，前一个失败自动切换下一个
    VISION_MODELS: List[str] = _split_models(os.getenv("VISION_MODELS", "glm-4.7,glm-4-flash,glm-4v"))
    TEXT_MODELS: List[str] = _split_models(os.getenv("TEXT_MODELS", "glm-4.7,glm-4-flash"))
    MODEL_TIMEOUT: float = float(os.getenv("MODEL_TIMEOUT", "60"))

    # 地图服务配置: nominatim(免费，无需Key) / amap / baidu
    MAP_PROVIDER: str = os.getenv("MAP_PROVIDER", "nominatim")
    AMAP_WEB_KEY: str = os.getenv("AMAP_WEB_KEY", "")
    BAIDU_MAP_AK: str = os.getenv("BAIDU_MAP_AK", "")
    NOMINATIM_URL: str = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org/search")
    NOMINATIM_USER_AGENT: str = os.getenv("NOMINATIM_USER_AGENT", "MoodTrip/1.0")
    NEARBY_RADIUS: int = int(os.getenv("NEARBY_RADIUS", "2000"))
    HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "15"))

    # 天气服务 (Open-Meteo，无需Key)
    OPEN_METEO_URL: str = os.getenv("OPEN_METEO_URL", "https://api.open-meteo.com/v1/forecast")
    WEATHER_TIMEZONE: str = os.getenv("WEATHER_TIMEZONE", "Asia/Shanghai")

    # 网友评论搜索 (DuckDuckGo)
    REVIEW_SEARCH_RESULTS: int = int(os.getenv("REVIEW_SEARCH_RESULTS", "5"))

    # 推荐与对话策略
    TOP_K: int = int(os.getenv("TOP_K", "5"))
    MAX_QUESTIONS: int = int(os.getenv("MAX_QUESTIONS", "3"))
    MAX_ACTIVE_SESSIONS: int = int(os.getenv("MAX_ACTIVE_SESSIONS", "500"))
    ENRICH_TIMEOUT: float = float(os.getenv("ENRICH_TIMEOUT", "30"))

    # 景点评分权重
    SCORE_RATING_WEIGHT: float = float(os.getenv("SCORE_RATING_WEIGHT", "10"))
    SCORE_KEYWORD_WEIGHT: float = float(os.getenv("SCORE_KEYWORD_WEIGHT", "20"))
    SCORE_DISTANCE_BASE: float = float(os.getenv("SCORE_DISTANCE_BASE", "50"))
    SCORE_DISTANCE_DIVISOR: float = float(os.getenv("SCORE_DISTANCE_DIVISOR", "100"))

    # 会话存储: memory / duckdb
    SESSION_BACKEND: str = os.getenv("SESSION_BACKEND", "memory")
    DUCKDB_PATH: str = os.getenv(
        "DUCKDB_PATH",
        str(Path(__file__).parent.parent / "data" / "moodtrip.duckdb")
    )

    # 服务配置
    APP_NAME: str = "情绪旅行推荐 API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"


settings = Settings()
