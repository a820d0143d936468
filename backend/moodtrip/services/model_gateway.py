"""
模型降级网关

同一个逻辑能力（图像特征提取、文本生成）对应一个有序的模型列表，
依次尝试，返回第一个成功的结果；全部失败才抛出 ProviderUnavailable。
同一个模型不重试，降级只发生在不同模型之间。
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Any, Dict, List, Optional

from moodtrip.errors import ProviderUnavailable
from moodtrip.services.zhipu_ai import ChatModel

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    """模型能力"""
    VISION_FEATURES = "vision-features"
    TEXT_GENERATION = "text-generation"


class ModelGateway:
    """按能力组织的模型降级链"""

    def __init__(
        self,
        client: ChatModel,
        chains: Dict[Capability, List[str]],
        timeout: float = 60.0
    ):
        self.client = client
        self.chains = {capability: list(models) for capability, models in chains.items()}
        self.timeout = timeout

    def models_for(self, capability: Capability) -> List[str]:
        return list(self.chains.get(capability, []))

    async def call(
        self,
        capability: Capability,
        payload: Dict[str, Any],
        models: Optional[List[str]] = None,
        timeout: Optional[float] = None
    ) -> str:
        """
        依次尝试模型列表

        Args:
            capability: 能力名称
            payload: 请求内容，文本能力需要 prompt，视觉能力还需要 image (base64)
            models: 覆盖默认的模型列表
            timeout: 单次尝试的超时(秒)

        Returns:
            第一个成功模型的回复文本

        Raises:
            ProviderUnavailable: 所有模型都失败
        """
        chain = list(models) if models is not None else self.models_for(capability)
        if not chain:
            raise ProviderUnavailable(capability.value, "没有可用的模型")

        attempt_timeout = timeout or self.timeout
        errors: List[str] = []

        for model in chain:
            t0 = time.time()
            try:
                text = await asyncio.wait_for(
                    self._invoke(capability, model, payload, attempt_timeout),
                    timeout=attempt_timeout
                )
            except asyncio.TimeoutError:
                errors.append(f"{model}: 超时({attempt_timeout:.0f}s)")
                logger.warning(f"⚠️ {capability.value} 使用 {model} 超时，尝试下一个模型")
                continue
            except Exception as e:
                errors.append(f"{model}: {e}")
                logger.warning(f"⚠️ {capability.value} 使用 {model} 失败，尝试下一个模型: {e}")
                continue

            if not text or not text.strip():
                errors.append(f"{model}: 回复为空")
                logger.warning(f"⚠️ {capability.value} 使用 {model} 回复为空，尝试下一个模型")
                continue

            logger.info(f"   ✓ {capability.value} 由 {model} 完成 ({time.time() - t0:.2f}s)")
            return text.strip()

        logger.error(f"✗ {capability.value} 所有模型均失败: {'; '.join(errors)}")
        raise ProviderUnavailable(capability.value, errors=errors)

    async def complete(self, prompt: str, **kwargs) -> str:
        """文本生成的便捷入口"""
        return await self.call(Capability.TEXT_GENERATION, {"prompt": prompt}, **kwargs)

    async def _invoke(self, capability: Capability, model: str, payload: Dict[str, Any], timeout: float) -> str:
        if capability == Capability.VISION_FEATURES:
            return await self.client.analyze_image(
                payload["image"],
                payload["prompt"],
                model=model,
                temperature=payload.get("temperature", 0.3),
                timeout=timeout
            )
        return await self.client.complete(
            payload["prompt"],
            model=model,
            temperature=payload.get("temperature", 0.7),
            timeout=timeout
        )
