"""
模型输出解析工具
"""
import json
import re
from typing import Any, Dict, List

from moodtrip.errors import ParseFailure

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
_BARE_OBJECT = re.compile(r"\{[\s\S]*\}")
_KEYWORD_SEPARATORS = re.compile(r"[,，、\n]")
_KEYWORD_STRIP = " \t\r\"'“”‘’。.;；：:[]【】"


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    从模型回复中提取 JSON 对象

    优先解析 ```json 代码块，其次取第一个 { 到最后一个 } 之间的内容。

    Raises:
        ParseFailure: 找不到或无法解析为 JSON 对象
    """
    if not text:
        raise ParseFailure("模型回复为空", raw=text or "")

    candidates = []
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    bare = _BARE_OBJECT.search(text)
    if bare:
        candidates.append(bare.group(0))

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data

    raise ParseFailure("回复中没有合法的 JSON 对象", raw=text)


def string_list(data: Dict[str, Any], key: str) -> List[str]:
    """取出 JSON 中的字符串列表字段，忽略非字符串元素"""
    value = data.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        return split_keywords(value)
    if not isinstance(value, list):
        raise ParseFailure(f"字段 {key} 不是列表", raw=json.dumps(data, ensure_ascii=False))
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def split_keywords(text: str) -> List[str]:
    """按中英文逗号、顿号、换行切分关键词"""
    if not text:
        return []
    parts = (part.strip(_KEYWORD_STRIP) for part in _KEYWORD_SEPARATORS.split(text))
    return [part for part in parts if part]
