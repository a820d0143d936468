"""
智谱 AI 模型服务
使用 OpenAI 兼容接口
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from openai import AsyncOpenAI

from moodtrip.config import Settings
from moodtrip.errors import ProviderUnavailable

logger = logging.getLogger(__name__)


class ChatModel(ABC):
    """大模型调用接口：一次调用只针对一个具体模型，降级由 ModelGateway 负责"""

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        model: str,
        temperature: float = 0.7,
        timeout: Optional[float] = None
    ) -> str:
        """文本补全，返回回复文本"""

    @abstractmethod
    async def analyze_image(
        self,
        image_base64: str,
        prompt: str,
        model: str,
        temperature: float = 0.3,
        timeout: Optional[float] = None
    ) -> str:
        """图像理解，返回回复文本"""


class ZhipuAI(ChatModel):
    """智谱 GLM 服务"""

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):
        self.client = client or AsyncOpenAI(
            api_key=settings.ZHIPU_API_KEY or "missing-key",
            base_url=settings.ZHIPU_BASE_URL,
            max_retries=0
        )
        self.default_timeout = settings.MODEL_TIMEOUT

    async def complete(
        self,
        prompt: str,
        model: str,
        temperature: float = 0.7,
        timeout: Optional[float] = None
    ) -> str:
        """
        文本对话

        Args:
            prompt: 用户消息
            model: 模型名称
            temperature: 采样温度
            timeout: 单次请求超时(秒)

        Returns:
            模型回复
        """
        messages = [{"role": "user", "content": prompt}]
        return await self._create(model, messages, temperature, timeout)

    async def analyze_image(
        self,
        image_base64: str,
        prompt: str,
        model: str,
        temperature: float = 0.3,
        timeout: Optional[float] = None
    ) -> str:
        """
        图像理解（降低温度以获得更客观的描述）

        Args:
            image_base64: JPEG 图片的 base64 编码
            prompt: 分析要求
            model: 视觉模型名称
        """
        messages = [{
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{image_base64}"}}
            ]
        }]
        return await self._create(model, messages, temperature, timeout)

    async def _create(self, model: str, messages: list, temperature: float, timeout: Optional[float]) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                timeout=timeout or self.default_timeout
            )
        except Exception as e:
            raise ProviderUnavailable(model, f"API 调用失败: {e}")

        choices = getattr(response, "choices", None) or []
        if not choices or choices[0].message is None:
            raise ProviderUnavailable(model, "API 返回格式异常")

        content = (choices[0].message.content or "").strip()
        if not content:
            raise ProviderUnavailable(model, "API 返回内容为空")

        logger.debug(f"{model} 回复 {len(content)} 字符")
        return content
