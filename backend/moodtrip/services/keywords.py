"""
关键词集合

保持插入顺序、去重、统一归一化（去首尾空白 + casefold）。
"""
from typing import Iterable, Iterator, List


def normalize_keyword(keyword: str) -> str:
    """关键词归一化：去首尾空白并做 casefold"""
    return str(keyword).strip().casefold()


class KeywordSet:
    """有序去重的关键词集合"""

    def __init__(self, keywords: Iterable[str] = ()):
        self._items: dict = {}
        self.update(keywords)

    def add(self, keyword: str) -> bool:
        """加入一个关键词，返回是否为新成员"""
        if keyword is None:
            return False
        normalized = normalize_keyword(keyword)
        if not normalized or normalized in self._items:
            return False
        self._items[normalized] = None
        return True

    def update(self, keywords: Iterable[str]) -> None:
        for keyword in keywords or ():
            self.add(keyword)

    def union(self, other: Iterable[str]) -> "KeywordSet":
        merged = KeywordSet(self)
        merged.update(other)
        return merged

    def to_list(self) -> List[str]:
        return list(self._items)

    def __contains__(self, keyword) -> bool:
        if not isinstance(keyword, str):
            return False
        return normalize_keyword(keyword) in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __eq__(self, other) -> bool:
        if isinstance(other, KeywordSet):
            return self.to_list() == other.to_list()
        return NotImplemented

    def __repr__(self) -> str:
        return f"KeywordSet({self.to_list()!r})"
