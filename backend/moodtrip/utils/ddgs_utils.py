from typing import List

from ddgs import DDGS
from ddgs.exceptions import DDGSException, TimeoutException

from moodtrip.errors import ProviderUnavailable

# 这些错误视为"没有结果"，不当作失败
_EMPTY_RESULT_MARKERS = ("no results", "ratelimit", "blocked", "403", "429")


def search_text(query: str, max_results: int = 5, region: str = "cn-zh") -> List[dict]:
    """
    DuckDuckGo 文本搜索（同步调用，异步代码中请放到线程里执行）

    Args:
        query: 搜索词
        max_results: 最多返回条数
        region: 搜索地区

    Returns:
        ddgs 返回的结果列表，每项包含 title / href / body

    Raises:
        ProviderUnavailable: 搜索失败
    """
    if not query:
        return []

    try:
        with DDGS() as ddgs:
            results = ddgs.text(query, region=region, max_results=max_results)
            return list(results) if results else []
    except TimeoutException:
        return []
    except DDGSException as e:
        if any(marker in str(e).lower() for marker in _EMPTY_RESULT_MARKERS):
            return []
        raise ProviderUnavailable("ddgs", f"搜索失败: {e}")
