"""
媒体预处理：图片编码、视频抽帧、音频特征
"""
import base64
import logging
from abc import ABC, abstractmethod
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from moodtrip.errors import ProviderUnavailable
from moodtrip.models import AudioFeatures

logger = logging.getLogger(__name__)

MAX_IMAGE_SIDE = 1024
JPEG_QUALITY = 85


def encode_image_for_model(data: bytes, max_side: int = MAX_IMAGE_SIDE) -> str:
    """
    统一转为 RGB JPEG 并限制尺寸，返回 base64

    Raises:
        ValueError: 不是可识别的图片
    """
    try:
        with Image.open(BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            img = img.convert("RGB")
            img.thumbnail((max_side, max_side))
            buffer = BytesIO()
            img.save(buffer, format="JPEG", quality=JPEG_QUALITY)
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"无法识别的图片: {e}")
    return base64.b64encode(buffer.getvalue()).decode("utf-8")


class FrameSampler(ABC):
    """从视频中取一帧代表画面"""

    @abstractmethod
    def sample(self, video: bytes) -> bytes:
        """返回一帧图片（PNG/JPEG 字节）"""


class PillowFrameSampler(FrameSampler):
    """
    使用 Pillow 读取多帧容器（GIF / APNG / 动态 WebP），取中间一帧

    真正的视频编码（mp4 等）需要接入外部解码服务，实现同样的接口即可。
    """

    def sample(self, video: bytes) -> bytes:
        try:
            with Image.open(BytesIO(video)) as clip:
                frames = getattr(clip, "n_frames", 1)
                clip.seek(frames // 2)
                frame = clip.convert("RGB")
                buffer = BytesIO()
                frame.save(buffer, format="PNG")
        except (UnidentifiedImageError, OSError, EOFError) as e:
            raise ProviderUnavailable("frame-sampler", f"无法解码视频帧: {e}")
        logger.debug(f"视频共 {frames} 帧，取第 {frames // 2} 帧")
        return buffer.getvalue()


class AudioAnalyzer(ABC):
    """音频特征分析"""

    @abstractmethod
    async def analyze(self, audio: bytes) -> AudioFeatures:
        """返回音频特征"""


class HeuristicAudioAnalyzer(AudioAnalyzer):
    """
    默认音频特征：模型接口暂不支持音频理解，返回中性特征

    接入真实的音频分析服务时替换此实现。
    """

    async def analyze(self, audio: bytes) -> AudioFeatures:
        if not audio:
            raise ValueError("音频内容为空")
        return AudioFeatures(tempo="中等", mood="中性", instruments=[], rhythm="中等", volume="中等")
