"""
错误类型定义

- ProviderUnavailable: 外部能力调用失败（模型降级链耗尽、地图/天气接口出错）
- ParseFailure: 模型输出格式不符合预期，调用方负责转入降级逻辑
- ExtractionFailed: 所有关键词提取策略都失败，整个推荐流程无法继续
- SessionNotFound / InvalidState: 问答会话不存在或状态不允许当前操作
"""
from typing import List, Optional


class MoodTripError(Exception):
    """业务错误基类"""


class ProviderUnavailable(MoodTripError):
    """外部服务不可用"""

    def __init__(self, provider: str, message: str = "", errors: Optional[List[str]] = None):
        self.provider = provider
        self.errors = errors or []
        detail = message or "; ".join(self.errors) or "调用失败"
        super().__init__(f"{provider} 不可用: {detail}")


class ParseFailure(MoodTripError):
    """模型输出解析失败"""

    def __init__(self, message: str, raw: str = ""):
        self.raw = raw
        super().__init__(message)


class ExtractionFailed(MoodTripError):
    """关键词提取失败"""

    def __init__(self, input_type: str, reason: str = ""):
        self.input_type = input_type
        self.reason = reason
        super().__init__(f"无法从 {input_type} 输入中提取关键词" + (f": {reason}" if reason else ""))


class SessionNotFound(MoodTripError):
    """会话不存在"""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"会话不存在: {session_id}")


class InvalidState(MoodTripError):
    """当前状态不允许该操作"""
