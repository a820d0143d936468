"""
感知特征 -> 情绪关键词 / 空间倾向 的规则映射

纯函数，不做任何 I/O。所有规则按子串包含匹配（先 casefold）：
- 颜色、物体、乐器：查表，同一个词命中多条规则时全部合并
- 明暗、对比度、构图、质感、氛围、节奏、情绪、音量：优先级链，每个字段只取第一条命中的规则，
  不同字段之间叠加
字段缺失或为空时不产出任何标签，任何输入都不会抛出异常。
"""
from typing import Any, Iterable, List, Sequence, Tuple

from moodtrip.models import AudioFeatures, PerceptualFeatures

Rule = Tuple[Tuple[str, ...], Tuple[str, ...]]

# 优先级链中的兜底分支：字段非空但前面的规则都没命中
OTHERWISE: Tuple[str, ...] = ()

AUDIO_FALLBACK_KEYWORDS: Tuple[str, ...] = ("音乐", "音频", "声音")


# ==================== 图像：情绪 ====================

COLOR_EMOTION_TABLE: Sequence[Rule] = (
    (("蓝", "blue"), ("宁静", "冷静", "清新")),
    (("绿", "green"), ("自然", "放松", "生机")),
    (("黄", "yellow"), ("温暖", "活力", "明亮")),
    (("红", "red"), ("热情", "活力", "温暖")),
    (("橙", "orange"), ("温暖", "舒适", "活力")),
    (("紫", "purple", "violet"), ("神秘", "优雅", "宁静")),
    (("粉", "pink"), ("温柔", "浪漫", "舒适")),
    (("白", "white"), ("纯净", "简洁", "宁静")),
    (("黑", "black"), ("深沉", "神秘", "安静")),
    (("灰", "gray", "grey"), ("平静", "中性", "沉稳")),
    (("金", "gold"), ("华丽", "温暖", "明亮")),
    (("暖色", "warm"), ("温暖", "舒适", "亲切")),
    (("冷色", "cool", "cold"), ("冷静", "清新", "宁静")),
)

BRIGHTNESS_EMOTION_CHAIN: Sequence[Rule] = (
    (("明亮", "亮", "bright"), ("开朗", "积极", "清晰")),
    (("适中", "中等", "medium", "moderate"), ("平衡", "舒适")),
    (("昏暗", "暗", "dim", "dark"), ("安静", "深沉", "神秘")),
    (OTHERWISE, ("平衡", "舒适")),
)

CONTRAST_EMOTION_CHAIN: Sequence[Rule] = (
    (("高", "强", "high", "strong"), ("鲜明", "强烈", "清晰")),
    (("低", "弱", "low", "soft"), ("柔和", "温和", "平静")),
)

COMPOSITION_EMOTION_CHAIN: Sequence[Rule] = (
    (("开阔", "空旷", "辽阔", "宽广", "open", "wide", "vast"), ("自由", "放松", "开阔")),
    (("紧凑", "密集", "狭窄", "compact", "dense", "tight"), ("温馨", "亲密", "安全")),
    (("对称", "symmetr"), ("稳定", "平衡", "庄重")),
    (("引导线", "纵深", "leading", "depth"), ("期待", "探索")),
)

TEXTURE_EMOTION_CHAIN: Sequence[Rule] = (
    (("自然", "粗糙", "原始", "natural", "rough", "organic"), ("自然", "原始", "真实")),
    (("光滑", "精致", "细腻", "smooth", "polished", "glossy"), ("优雅", "精致", "现代")),
    (("柔软", "蓬松", "soft", "fluffy"), ("温柔", "舒适")),
)

ATMOSPHERE_EMOTION_CHAIN: Sequence[Rule] = (
    (("空旷", "空灵", "empty", "open"), ("自由", "开阔", "放松")),
    (("密集", "热闹", "拥挤", "crowded", "busy", "lively"), ("热闹", "活力", "丰富")),
    (("流动", "动感", "flowing", "dynamic"), ("动态", "活力", "变化")),
    (("宁静", "安静", "静谧", "calm", "quiet", "tranquil", "serene"), ("宁静", "平静", "放松")),
    (("神秘", "朦胧", "mysterious", "misty", "foggy"), ("神秘", "深沉")),
)


# ==================== 图像：空间倾向 ====================

OBJECT_SPATIAL_TABLE: Sequence[Rule] = (
    (("山", "mountain", "hill"), ("山地", "自然", "户外")),
    (("水", "water"), ("水边", "湖泊", "河流")),
    (("湖", "lake"), ("水边", "湖泊")),
    (("河", "江", "溪", "river", "stream"), ("水边", "河流")),
    (("海", "ocean", "seaside"), ("海边", "海岸", "海洋")),
    (("沙滩", "beach"), ("海边", "沙滩", "阳光")),
    (("树", "森林", "林", "forest", "woods"), ("森林", "公园", "自然")),
    (("花", "flower", "blossom"), ("花园", "自然", "户外")),
    (("草", "grass", "meadow"), ("草原", "开阔", "自然")),
    (("建筑", "楼", "building", "architecture"), ("城市", "现代", "人文")),
    (("天空", "sky"), ("开阔", "户外", "自然")),
    (("云", "cloud"), ("开阔", "自然", "户外")),
    (("路", "path", "trail"), ("探索", "旅行", "户外")),
    (("桥", "bridge"), ("水边", "连接", "人文")),
    (("寺", "庙", "塔", "temple", "pagoda"), ("人文", "古迹", "宁静")),
    (("古镇", "老街", "old town"), ("人文", "古迹", "历史")),
    (("雪", "snow"), ("雪山", "户外", "清冷")),
    (("街", "street"), ("城市", "街巷", "人文")),
    (("灯", "neon", "lantern"), ("城市", "夜景")),
)

COLOR_SPATIAL_TABLE: Sequence[Rule] = (
    (("蓝", "blue"), ("水边", "天空", "开阔")),
    (("绿", "green"), ("自然", "森林", "公园")),
    (("黄", "yellow"), ("温暖", "阳光", "户外")),
    (("白", "white"), ("简约", "开阔")),
    (("金", "gold"), ("阳光", "户外")),
    (("暖色", "warm"), ("温暖", "舒适", "室内")),
    (("冷色", "cool", "cold"), ("清新", "自然", "户外")),
)

BRIGHTNESS_SPATIAL_CHAIN: Sequence[Rule] = (
    (("明亮", "亮", "bright"), ("开阔", "户外", "阳光")),
    (("适中", "中等", "medium", "moderate"), ()),
    (("昏暗", "暗", "dim", "dark"), ("安静", "室内", "私密")),
)

COMPOSITION_SPATIAL_CHAIN: Sequence[Rule] = (
    (("开阔", "空旷", "辽阔", "宽广", "open", "wide", "vast"), ("开阔", "户外", "自然")),
    (("紧凑", "密集", "狭窄", "compact", "dense", "tight"), ("温馨", "室内", "私密")),
)

ATMOSPHERE_SPATIAL_CHAIN: Sequence[Rule] = (
    (("空旷", "空灵", "empty", "open"), ("开阔", "自然", "户外")),
    (("密集", "热闹", "拥挤", "crowded", "busy", "lively"), ("丰富", "热闹", "城市")),
    (("流动", "动感", "flowing", "dynamic"), ("动态", "变化", "探索")),
    (("宁静", "安静", "静谧", "calm", "quiet", "tranquil", "serene"), ("安静", "自然", "私密")),
)


# ==================== 音频 ====================

TEMPO_EMOTION_CHAIN: Sequence[Rule] = (
    (("快", "急", "fast", "upbeat"), ("活力", "兴奋", "动感")),
    (("慢", "缓", "slow"), ("放松", "宁静", "舒缓")),
)

MOOD_EMOTION_CHAIN: Sequence[Rule] = (
    (("快乐", "欢快", "愉悦", "happy", "cheerful", "joy"), ("快乐", "积极", "开朗")),
    (("悲伤", "忧郁", "伤感", "sad", "melanchol"), ("深沉", "安静", "内省")),
    (("平静", "安详", "calm", "peace"), ("平静", "放松", "舒适")),
    (("激昂", "热血", "epic", "energetic"), ("激昂", "振奋", "活力")),
)

RHYTHM_EMOTION_CHAIN: Sequence[Rule] = (
    (("跳跃", "轻快", "bouncy"), ("轻快", "活泼")),
    (("舒缓", "平稳", "steady"), ("平和", "安稳")),
)

VOLUME_EMOTION_CHAIN: Sequence[Rule] = (
    (("响亮", "大", "loud"), ("强烈", "震撼", "活力")),
    (("轻柔", "小", "soft", "quiet"), ("温柔", "安静", "私密")),
)

TEMPO_SPATIAL_CHAIN: Sequence[Rule] = (
    (("快", "急", "fast", "upbeat"), ("动态", "活力", "探索")),
    (("慢", "缓", "slow"), ("安静", "放松", "私密")),
)

INSTRUMENT_SPATIAL_TABLE: Sequence[Rule] = (
    (("自然", "鸟", "虫", "nature", "bird"), ("自然", "户外", "森林")),
    (("海浪", "浪", "wave"), ("海边", "开阔")),
    (("雨", "溪", "流水", "rain", "stream"), ("水边", "自然")),
    (("城市", "电子", "合成器", "electronic", "synth"), ("城市", "现代", "活力")),
    (("古筝", "琵琶", "二胡", "笛", "guqin", "erhu"), ("人文", "古韵", "宁静")),
    (("钢琴", "吉他", "piano", "guitar"), ("温馨", "室内")),
)

MOOD_SPATIAL_CHAIN: Sequence[Rule] = (
    (("快乐", "欢快", "愉悦", "happy", "cheerful", "joy"), ("开阔", "户外", "阳光")),
    (("悲伤", "忧郁", "伤感", "sad", "melanchol"), ("安静", "私密")),
    (("平静", "安详", "calm", "peace"), ("安静", "自然", "放松")),
)


# ==================== 规则执行 ====================

def _tokens(value: Any) -> List[str]:
    """把任意输入整理成 casefold 后的字符串列表"""
    if value is None:
        return []
    if isinstance(value, str):
        return [value.casefold()] if value.strip() else []
    if isinstance(value, dict):
        return []
    try:
        items = list(value)
    except TypeError:
        items = [value]
    tokens = []
    for item in items:
        if item is None:
            continue
        text = str(item).strip()
        if text:
            tokens.append(text.casefold())
    return tokens


def _text(value: Any) -> str:
    return " ".join(_tokens(value))


def _lookup(tokens: Iterable[str], table: Sequence[Rule]) -> List[str]:
    tags: List[str] = []
    for token in tokens:
        for keys, values in table:
            if any(key in token for key in keys):
                tags.extend(values)
    return tags


def _first_match(value: Any, chain: Sequence[Rule]) -> Tuple[str, ...]:
    text = _text(value)
    if not text:
        return ()
    for keys, values in chain:
        if not keys or any(key in text for key in keys):
            return values
    return ()


def _field(features: Any, name: str) -> Any:
    if features is None:
        return None
    if isinstance(features, dict):
        return features.get(name)
    return getattr(features, name, None)


def _dedupe(tags: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(tags))


def map_to_emotions(features: PerceptualFeatures) -> List[str]:
    """图像特征 -> 情绪关键词（去重，按规则顺序）"""
    tags: List[str] = []
    tags += _lookup(_tokens(_field(features, "colors")), COLOR_EMOTION_TABLE)
    tags += _first_match(_field(features, "brightness"), BRIGHTNESS_EMOTION_CHAIN)
    tags += _first_match(_field(features, "contrast"), CONTRAST_EMOTION_CHAIN)
    tags += _first_match(_field(features, "composition"), COMPOSITION_EMOTION_CHAIN)
    tags += _first_match(_field(features, "texture"), TEXTURE_EMOTION_CHAIN)
    tags += _first_match(_field(features, "atmosphere"), ATMOSPHERE_EMOTION_CHAIN)
    return _dedupe(tags)


def map_to_spatial_tendencies(features: PerceptualFeatures) -> List[str]:
    """图像特征 -> 空间倾向（去重，按规则顺序）"""
    tags: List[str] = []
    tags += _lookup(_tokens(_field(features, "objects")), OBJECT_SPATIAL_TABLE)
    tags += _lookup(_tokens(_field(features, "colors")), COLOR_SPATIAL_TABLE)
    tags += _first_match(_field(features, "brightness"), BRIGHTNESS_SPATIAL_CHAIN)
    tags += _first_match(_field(features, "composition"), COMPOSITION_SPATIAL_CHAIN)
    tags += _first_match(_field(features, "atmosphere"), ATMOSPHERE_SPATIAL_CHAIN)
    return _dedupe(tags)


def map_features(features: PerceptualFeatures) -> List[str]:
    """情绪关键词 + 空间倾向"""
    return _dedupe(map_to_emotions(features) + map_to_spatial_tendencies(features))


def map_audio_to_emotions(features: AudioFeatures) -> List[str]:
    """音频特征 -> 情绪关键词"""
    tags: List[str] = []
    tags += _first_match(_field(features, "tempo"), TEMPO_EMOTION_CHAIN)
    tags += _first_match(_field(features, "mood"), MOOD_EMOTION_CHAIN)
    tags += _first_match(_field(features, "rhythm"), RHYTHM_EMOTION_CHAIN)
    tags += _first_match(_field(features, "volume"), VOLUME_EMOTION_CHAIN)
    return _dedupe(tags)


def map_audio_to_spatial_tendencies(features: AudioFeatures) -> List[str]:
    """音频特征 -> 空间倾向"""
    tags: List[str] = []
    tags += _first_match(_field(features, "tempo"), TEMPO_SPATIAL_CHAIN)
    tags += _lookup(_tokens(_field(features, "instruments")), INSTRUMENT_SPATIAL_TABLE)
    tags += _first_match(_field(features, "mood"), MOOD_SPATIAL_CHAIN)
    return _dedupe(tags)


def map_audio_features(features: AudioFeatures) -> List[str]:
    return _dedupe(map_audio_to_emotions(features) + map_audio_to_spatial_tendencies(features))
