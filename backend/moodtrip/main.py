"""
情绪旅行推荐 API 主入口
MoodTrip - 根据图片、音乐、视频或文字中的情绪推荐旅行目的地
"""
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from moodtrip.config import settings
from moodtrip.dependencies import Services, build_services
from moodtrip.routers import chat, keywords, recommend

# 配置日志格式
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

# 设置第三方库日志级别
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.INFO)

logger = logging.getLogger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """创建应用；测试时可以传入替换过外部依赖的服务"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        logger.info(f"🚀 {settings.APP_NAME} v{settings.APP_VERSION} 启动中...")
        app.state.services = services or build_services(settings)
        logger.info(f"🤖 视觉模型: {' -> '.join(settings.VISION_MODELS)}")
        logger.info(f"🤖 文本模型: {' -> '.join(settings.TEXT_MODELS)}")
        if not settings.ZHIPU_API_KEY:
            logger.warning("⚠️ ZHIPU_API_KEY 未配置，模型调用将全部降级")
        yield
        await app.state.services.close()
        logger.info("👋 服务关闭")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
## 情绪旅行推荐 API

从一张照片、一段音乐或一句话里读出你想要的心情，再为它找一个目的地。

### 核心能力

- 🎨 **情绪提取** - 图片 / 音频 / 视频 / 文字转为情绪与空间倾向关键词
- 💬 **个性化问答** - 最多三个问题，补充你的出行偏好
- 📍 **景点排序** - 评分、关键词匹配、距离综合打分
- ⛅ **信息补充** - 天气、网友评价、周边设施、出行建议
        """,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # CORS 配置
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册路由
    app.include_router(keywords.router, prefix="/api")
    app.include_router(chat.router, prefix="/api")
    app.include_router(recommend.router, prefix="/api")

    @app.get("/", tags=["健康检查"])
    async def root():
        """API 根路径"""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "status": "running",
            "docs": "/docs"
        }

    @app.get("/health", tags=["健康检查"])
    async def health_check():
        """健康检查接口"""
        return {
            "status": "healthy",
            "services": {
                "zhipu": bool(settings.ZHIPU_API_KEY),
                "map_provider": settings.MAP_PROVIDER,
                "session_backend": settings.SESSION_BACKEND
            }
        }

    return app


app = create_app()
