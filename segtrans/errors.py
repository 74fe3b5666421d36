"""
异常定义

- DocumentParseError: 文档结构错误，终止整个提取
- ConfigurationError: 缺少AI配置/密钥/目标语言，终止整个翻译调用
- AIServiceError: AI调用错误（超时/HTTP状态/响应体错误/未知）
- PersistenceError: 存储错误，由调用方按段落捕获
"""
from enum import Enum
from typing import Any, Optional


class AIErrorCode(str, Enum):
    TIMEOUT = "timeout"
    API_ERROR = "api_error"
    RESPONSE_ERROR = "response_error"
    INVALID_RESPONSE = "invalid_response"
    UNKNOWN_ERROR = "unknown_error"


class DocumentParseError(Exception):
    pass


class ConfigurationError(Exception):
    pass


class PersistenceError(Exception):
    pass


class AIServiceError(Exception):
    """统一的AI服务错误"""

    def __init__(
        self,
        code: AIErrorCode,
        message: str,
        provider: str,
        status_code: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.details = details

    def __str__(self):
        prefix = f"[{self.provider}:{self.code.value}"
        if self.status_code is not None:
            prefix += f":{self.status_code}"
        return f"{prefix}] {self.message}"


class SegmentTranslationError(Exception):
    """顺序翻译中至少一个段落失败"""

    def __init__(self, message: str, failed_task_ids=None):
        super().__init__(message)
        self.failed_task_ids = list(failed_task_ids or [])
