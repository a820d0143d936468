import asyncio
from io import BytesIO

import pytest
from PIL import Image

from fakes import ScriptedChatModel, failing_gateway, make_gateway
from moodtrip.errors import ExtractionFailed
from moodtrip.models import AudioFeatures, ExtractionInput, InputType
from moodtrip.services.keyword_extractor import KeywordExtractor, parse_features
from moodtrip.services.keywords import KeywordSet
from moodtrip.services.media import AudioAnalyzer

LAKE_FEATURES = '{"objects": ["湖"], "colors": ["蓝色"], "brightness": "明亮"}'


def png_bytes(color="blue") -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (16, 16), color).save(buffer, format="PNG")
    return buffer.getvalue()


def gif_bytes() -> bytes:
    frames = [Image.new("RGB", (16, 16), color) for color in ("red", "green", "blue")]
    buffer = BytesIO()
    frames[0].save(buffer, format="GIF", save_all=True, append_images=frames[1:])
    return buffer.getvalue()


class FixedAudioAnalyzer(AudioAnalyzer):
    def __init__(self, features=None, error=None):
        self.features = features
        self.error = error

    async def analyze(self, audio):
        if self.error:
            raise self.error
        return self.features


def test_parse_features_from_fenced_json():
    features = parse_features('这是结果：\n```json\n{"colors": "蓝色", "brightness": "明亮"}\n```')

    assert features.colors == ["蓝色"]
    assert features.brightness == "明亮"


def test_image_keywords():
    extractor = KeywordExtractor(make_gateway(ScriptedChatModel([LAKE_FEATURES])))

    keywords = asyncio.run(extractor.extract(ExtractionInput(type=InputType.IMAGE, images=[png_bytes()])))

    assert {"宁静", "开朗", "水边", "湖泊"} <= set(keywords)


def test_unparseable_vision_reply_uses_neutral_features():
    extractor = KeywordExtractor(make_gateway(ScriptedChatModel(["我看到了一片湖"])))

    keywords = asyncio.run(extractor.from_images([png_bytes()]))

    assert keywords.to_list() == ["平衡", "舒适"]


def test_broken_image_is_skipped():
    extractor = KeywordExtractor(make_gateway(ScriptedChatModel([LAKE_FEATURES])))

    keywords = asyncio.run(extractor.from_images([b"not an image", png_bytes()]))

    assert "宁静" in keywords


def test_all_images_failing_raises():
    extractor = KeywordExtractor(failing_gateway())

    with pytest.raises(ExtractionFailed):
        asyncio.run(extractor.extract(ExtractionInput(type=InputType.IMAGE, images=[png_bytes()])))


def test_video_uses_sampled_frame():
    chat = ScriptedChatModel([LAKE_FEATURES])
    extractor = KeywordExtractor(make_gateway(chat))

    keywords = asyncio.run(extractor.extract(ExtractionInput(type=InputType.VIDEO, video=gif_bytes())))

    assert "水边" in keywords
    assert chat.calls[0][0] == "vision"


def test_undecodable_video_raises():
    extractor = KeywordExtractor(make_gateway(ScriptedChatModel([LAKE_FEATURES])))

    with pytest.raises(ExtractionFailed):
        asyncio.run(extractor.extract(ExtractionInput(type=InputType.VIDEO, video=b"\x00\x01")))


def test_default_audio_falls_back_to_fixed_keywords():
    extractor = KeywordExtractor(failing_gateway())

    keywords = asyncio.run(extractor.extract(ExtractionInput(type=InputType.AUDIO, audio=b"RIFF....")))

    assert keywords.to_list() == ["音乐", "音频", "声音"]


def test_audio_analyzer_failure_falls_back():
    extractor = KeywordExtractor(failing_gateway(), audio_analyzer=FixedAudioAnalyzer(error=RuntimeError("bad codec")))

    keywords = asyncio.run(extractor.from_audio(b"data"))

    assert keywords.to_list() == ["音乐", "音频", "声音"]


def test_audio_features_are_mapped():
    analyzer = FixedAudioAnalyzer(AudioFeatures(tempo="慢", instruments=["海浪"]))
    extractor = KeywordExtractor(failing_gateway(), audio_analyzer=analyzer)

    keywords = asyncio.run(extractor.from_audio(b"data"))

    assert {"放松", "海边"} <= set(keywords)
    assert "音乐" not in keywords


def test_structured_text_keywords():
    reply = '```json\n{"emotions": ["宁静", "放松"], "spatial_tendencies": ["水边", "宁静"]}\n```'
    extractor = KeywordExtractor(make_gateway(ScriptedChatModel([reply])))

    keywords = asyncio.run(extractor.extract(ExtractionInput(type=InputType.TEXT, text="想去湖边发呆")))

    assert keywords.to_list() == ["宁静", "放松", "水边"]


def test_text_falls_back_to_simple_extraction():
    chat = ScriptedChatModel(["我觉得你需要放松一下", "宁静，自然、海边"])
    extractor = KeywordExtractor(make_gateway(chat))

    keywords = asyncio.run(extractor.from_text("最近好累"))

    assert keywords.to_list() == ["宁静", "自然", "海边"]
    assert len(chat.calls) == 2


def test_text_fails_when_every_model_fails():
    extractor = KeywordExtractor(failing_gateway())

    with pytest.raises(ExtractionFailed):
        asyncio.run(extractor.from_text("最近好累"))


def test_blank_text_raises():
    extractor = KeywordExtractor(failing_gateway())

    with pytest.raises(ExtractionFailed):
        asyncio.run(extractor.extract(ExtractionInput(type=InputType.TEXT, text="   ")))


def test_refine_adds_answer_keywords():
    reply = '{"emotions": ["兴奋"], "spatial_tendencies": ["海边"]}'
    extractor = KeywordExtractor(make_gateway(ScriptedChatModel([reply])))

    refined = asyncio.run(extractor.refine(KeywordSet(["宁静"]), {"想去哪里？": "想去海边"}))

    assert refined.to_list() == ["宁静", "兴奋", "海边"]


def test_refine_keeps_keywords_on_failure():
    extractor = KeywordExtractor(failing_gateway())
    keywords = KeywordSet(["宁静"])

    assert asyncio.run(extractor.refine(keywords, {"q": "a"})) == keywords
    assert asyncio.run(extractor.refine(keywords, {})) == keywords
