"""
多模态关键词提取

图片/视频：视觉模型提取客观特征 -> 规则映射为情绪和空间倾向
音频：音频特征 -> 规则映射，失败时使用固定的兜底关键词
文本：文本模型直接输出 JSON，解析失败时退回简单的逗号分隔提取
"""
import asyncio
import logging
import time
from typing import Dict, List, Optional

from pydantic import ValidationError

from moodtrip.errors import ExtractionFailed, ParseFailure, ProviderUnavailable
from moodtrip.models import ExtractionInput, InputType, PerceptualFeatures
from moodtrip.services.feature_mapper import AUDIO_FALLBACK_KEYWORDS, map_audio_features, map_features
from moodtrip.services.keywords import KeywordSet
from moodtrip.services.media import (
    AudioAnalyzer, FrameSampler, HeuristicAudioAnalyzer, PillowFrameSampler, encode_image_for_model
)
from moodtrip.services.model_gateway import Capability, ModelGateway
from moodtrip.services.parsing import extract_json_object, split_keywords, string_list

logger = logging.getLogger(__name__)


FEATURE_PROMPT = """请详细分析这张图片的客观特征，以JSON格式返回：
{
  "objects": ["物体1", "物体2"],
  "colors": ["颜色1", "颜色2"],
  "brightness": "明暗程度：明亮/中等/昏暗",
  "contrast": "对比度：高/中/低",
  "composition": "构图特点，如：开阔、紧凑、对称",
  "texture": "质感，如：光滑、粗糙、自然",
  "atmosphere": "氛围特征，如：空旷、密集、流动"
}

只返回JSON，不要其他解释。"""

TEXT_PROMPT = """请分析以下文本描述，提取：
1. 情绪关键词（如：宁静、兴奋、放松等）
2. 空间倾向关键词（如：自然、开阔、私密、水边、山地等）

文本：{text}

请以JSON格式返回：
{{
  "emotions": ["情绪1", "情绪2"],
  "spatial_tendencies": ["空间倾向1", "空间倾向2"]
}}

只返回JSON，不要其他解释。"""

SIMPLE_TEXT_PROMPT = "从以下文本中提取关键词，用逗号分隔：{text}"

# 视觉模型回复无法解析时使用的中性特征
NEUTRAL_FEATURES = PerceptualFeatures(brightness="中等", contrast="中等")


def parse_features(text: str) -> PerceptualFeatures:
    """
    解析视觉模型返回的特征 JSON

    Raises:
        ParseFailure: 不是合法的特征 JSON
    """
    data = extract_json_object(text)
    try:
        return PerceptualFeatures.model_validate(data)
    except ValidationError as e:
        raise ParseFailure(f"特征字段不合法: {e}", raw=text)


class KeywordExtractor:
    """关键词提取器"""

    def __init__(
        self,
        gateway: ModelGateway,
        audio_analyzer: Optional[AudioAnalyzer] = None,
        frame_sampler: Optional[FrameSampler] = None
    ):
        self.gateway = gateway
        self.audio_analyzer = audio_analyzer or HeuristicAudioAnalyzer()
        self.frame_sampler = frame_sampler or PillowFrameSampler()

    async def extract(self, data: ExtractionInput) -> KeywordSet:
        """
        按输入类型提取关键词

        Raises:
            ExtractionFailed: 所有策略都失败或结果为空
        """
        t0 = time.time()
        logger.info(f"🔍 开始提取关键词 (类型: {data.type.value})")

        if data.type == InputType.IMAGE:
            keywords = await self.from_images(data.images)
        elif data.type == InputType.AUDIO:
            keywords = await self.from_audio(data.audio)
        elif data.type == InputType.VIDEO:
            keywords = await self.from_video(data.video)
        elif data.type == InputType.TEXT:
            keywords = await self.from_text(data.text)
        else:
            raise ExtractionFailed(str(data.type), "不支持的输入类型")

        if not keywords:
            raise ExtractionFailed(data.type.value, "没有提取到任何关键词")

        logger.info(f"   ✓ 提取到 {len(keywords)} 个关键词 ({time.time() - t0:.2f}s): {'、'.join(keywords)}")
        return keywords

    # ==================== 图片 ====================

    async def from_images(self, images: List[bytes]) -> KeywordSet:
        """每张图片独立分析，合并结果；单张失败不影响其他图片"""
        if not images:
            raise ExtractionFailed(InputType.IMAGE.value, "没有上传图片")

        results = await asyncio.gather(
            *(self._image_keywords(image) for image in images),
            return_exceptions=True
        )

        keywords = KeywordSet()
        failures = 0
        for index, result in enumerate(results):
            if isinstance(result, Exception):
                failures += 1
                logger.warning(f"   ✗ 第 {index + 1} 张图片处理失败: {result}")
                continue
            keywords.update(result)

        if failures == len(images):
            raise ExtractionFailed(InputType.IMAGE.value, "所有图片都处理失败")
        return keywords

    async def _image_keywords(self, image: bytes) -> List[str]:
        image_base64 = encode_image_for_model(image)
        reply = await self.gateway.call(
            Capability.VISION_FEATURES,
            {"prompt": FEATURE_PROMPT, "image": image_base64, "temperature": 0.3}
        )
        try:
            features = parse_features(reply)
        except ParseFailure as e:
            logger.warning(f"   ⚠️ 图像特征解析失败，使用中性特征: {e}")
            features = NEUTRAL_FEATURES
        return map_features(features)

    # ==================== 视频 ====================

    async def from_video(self, video: Optional[bytes]) -> KeywordSet:
        """取一帧代表画面，按图片处理"""
        if not video:
            raise ExtractionFailed(InputType.VIDEO.value, "没有上传视频")
        try:
            frame = self.frame_sampler.sample(video)
        except ProviderUnavailable as e:
            raise ExtractionFailed(InputType.VIDEO.value, str(e))

        try:
            return await self.from_images([frame])
        except ExtractionFailed as e:
            raise ExtractionFailed(InputType.VIDEO.value, e.reason)

    # ==================== 音频 ====================

    async def from_audio(self, audio: Optional[bytes]) -> KeywordSet:
        """音频特征映射，失败或无结果时返回固定兜底关键词"""
        try:
            features = await self.audio_analyzer.analyze(audio)
            keywords = KeywordSet(map_audio_features(features))
        except Exception as e:
            logger.warning(f"   ⚠️ 音频分析失败，使用兜底关键词: {e}")
            return KeywordSet(AUDIO_FALLBACK_KEYWORDS)

        if not keywords:
            logger.info("   音频特征没有命中任何规则，使用兜底关键词")
            return KeywordSet(AUDIO_FALLBACK_KEYWORDS)
        return keywords

    # ==================== 文本 ====================

    async def from_text(self, text: Optional[str]) -> KeywordSet:
        """结构化提取，失败时退回简单关键词提取"""
        if not text or not text.strip():
            raise ExtractionFailed(InputType.TEXT.value, "文本为空")

        try:
            return await self._structured_text_keywords(text)
        except (ParseFailure, ProviderUnavailable) as e:
            logger.warning(f"   ⚠️ 结构化提取失败，改用简单提取: {e}")

        try:
            reply = await self.gateway.complete(SIMPLE_TEXT_PROMPT.format(text=text))
        except ProviderUnavailable as e:
            raise ExtractionFailed(InputType.TEXT.value, str(e))
        return KeywordSet(split_keywords(reply))

    async def _structured_text_keywords(self, text: str) -> KeywordSet:
        reply = await self.gateway.complete(TEXT_PROMPT.format(text=text))
        data = extract_json_object(reply)
        keywords = KeywordSet(string_list(data, "emotions") + string_list(data, "spatial_tendencies"))
        if not keywords:
            raise ParseFailure("JSON 中没有 emotions / spatial_tendencies", raw=reply)
        return keywords

    # ==================== 问答补充 ====================

    async def refine(self, keywords: KeywordSet, answers: Dict[str, str]) -> KeywordSet:
        """用个性化问答中的回答补充关键词，失败时原样返回"""
        answer_text = "；".join(answer for answer in answers.values() if answer and answer.strip())
        if not answer_text:
            return keywords
        try:
            extra = await self.from_text(answer_text)
        except ExtractionFailed as e:
            logger.warning(f"   ⚠️ 问答关键词补充失败，保留原关键词: {e}")
            return keywords
        return keywords.union(extra)
