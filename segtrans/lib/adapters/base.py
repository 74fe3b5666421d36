"""
AI 适配器公共类型

BaseAIAdapter 只负责统一错误构造，各提供商的请求/解析逻辑在各自的实现中独立完成。
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from ...config import AdapterConfig
from ...errors import AIServiceError, AIErrorCode
from ...models import TokenUsage

logger = logging.getLogger(__name__)


@dataclass
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatCompletionResponse:
    content: str
    usage: TokenUsage
    model: str


@dataclass
class TranslationResponse:
    translated_text: str
    token_count: TokenUsage
    processing_time: float
    model_info: Dict[str, str] = field(default_factory=dict)


@dataclass
class ModelInfo:
    id: str
    name: str
    provider: str
    max_tokens: Optional[int] = None
    pricing: Optional[Dict[str, float]] = None


@dataclass
class SingleTranslationPrompt:
    """单段翻译的提示词"""
    source_language: str
    target_language: str
    system_prompt: Optional[str] = None
    domain: Optional[str] = None

    def build_messages(self, source_text: str) -> List[ChatMessage]:
        system_prompt = self.system_prompt or (
            f"You are a professional translator. Translate the user's text from "
            f"{self.source_language} to {self.target_language}. "
            f"Keep inline XML tags unchanged and return only the translation."
        )
        if self.domain:
            system_prompt += f" The text belongs to the {self.domain} domain."
        return [
            ChatMessage(role="system", content=system_prompt),
            ChatMessage(role="user", content=source_text),
        ]


class BaseAIAdapter(ABC):
    """AI 适配器接口"""

    provider: str = ""

    def __init__(self, config: AdapterConfig):
        config.validate()
        self.config = config

    def create_error(
        self,
        code: AIErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Any = None,
    ) -> AIServiceError:
        error = AIServiceError(code, message, self.provider, status_code=status_code, details=details)
        logger.warning(f"AI 调用失败: {error}")
        return error

    @abstractmethod
    async def translate_single(self, source_text: str, prompt: SingleTranslationPrompt,
                               model: Optional[str] = None,
                               temperature: Optional[float] = None) -> TranslationResponse:
        pass

    @abstractmethod
    async def execute_chat_completion(self, messages: List[ChatMessage],
                                      model: Optional[str] = None,
                                      temperature: Optional[float] = None,
                                      max_tokens: Optional[int] = None) -> ChatCompletionResponse:
        pass

    @abstractmethod
    async def validate_api_key(self) -> bool:
        pass

    @abstractmethod
    async def list_available_models(self) -> List[ModelInfo]:
        pass
