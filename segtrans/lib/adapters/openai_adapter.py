"""
OpenAI 适配器 - 使用 AsyncOpenAI

批量路径中不做适配器级自动重试（SDK 重试关闭），失败统一转换为 AIServiceError。
"""
import time
import logging
import asyncio
from typing import List, Dict, Any, Optional

try:
    # openai v1.x SDK - 异步版本
    import openai
    from openai import AsyncOpenAI
    _OPENAI_AVAILABLE = True
except ImportError:  # pragma: no cover
    _OPENAI_AVAILABLE = False

from ...config import AdapterConfig
from ...errors import AIServiceError, AIErrorCode, ConfigurationError
from ...models import TokenUsage
from .base import (
    BaseAIAdapter, ChatMessage, ChatCompletionResponse, TranslationResponse,
    ModelInfo, SingleTranslationPrompt,
)

logger = logging.getLogger(__name__)

# 已知模型的上下文长度与价格（每1K tokens，美元）
KNOWN_MODELS: Dict[str, Dict[str, Any]] = {
    "gpt-4": {"name": "GPT-4", "max_tokens": 8192, "pricing": {"input": 0.03, "output": 0.06}},
    "gpt-4o-mini": {"name": "GPT-4o mini", "max_tokens": 128000, "pricing": {"input": 0.00015, "output": 0.0006}},
    "gpt-3.5-turbo": {"name": "GPT-3.5 Turbo", "max_tokens": 4096, "pricing": {"input": 0.0015, "output": 0.002}},
}


class OpenAIAdapter(BaseAIAdapter):
    """OpenAI 兼容接口适配器"""

    provider = "openai"

    def __init__(self, config: AdapterConfig):
        if not _OPENAI_AVAILABLE:
            raise ConfigurationError("openai 包未安装，请安装 openai 依赖")
        super().__init__(config)

        client_kwargs: Dict[str, Any] = {
            "api_key": config.api_key,
            "timeout": float(config.timeout),
            "max_retries": 0,
        }
        if config.base_url:
            client_kwargs["base_url"] = config.base_url
        self.client = AsyncOpenAI(**client_kwargs)

    async def execute_chat_completion(
        self,
        messages: List[ChatMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatCompletionResponse:
        params: Dict[str, Any] = {
            "model": model or self.config.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": self.config.temperature if temperature is None else temperature,
            "stream": False,
        }
        max_tokens = max_tokens or self.config.max_tokens
        if max_tokens is not None:
            params["max_tokens"] = max_tokens

        try:
            # 使用 asyncio.wait_for 实现超时
            result = await asyncio.wait_for(
                self.client.chat.completions.create(**params),
                timeout=self.config.timeout,
            )
        except asyncio.TimeoutError as e:
            raise self.create_error(AIErrorCode.TIMEOUT, f"请求超时 ({self.config.timeout}s)") from e
        except openai.APITimeoutError as e:
            raise self.create_error(AIErrorCode.TIMEOUT, f"请求超时: {e}") from e
        except openai.APIStatusError as e:
            raise self.create_error(
                AIErrorCode.API_ERROR, f"API 错误: {e.message}",
                status_code=e.status_code, details=getattr(e, "body", None),
            ) from e
        except openai.OpenAIError as e:
            raise self.create_error(AIErrorCode.UNKNOWN_ERROR, f"请求失败: {e}") from e

        extra = getattr(result, "model_extra", None) or {}
        if extra.get("error"):
            error_payload = extra["error"]
            message = error_payload.get("message") if isinstance(error_payload, dict) else str(error_payload)
            raise self.create_error(AIErrorCode.RESPONSE_ERROR, f"响应包含错误: {message}", details=error_payload)

        choices = getattr(result, "choices", None)
        if not choices:
            raise self.create_error(AIErrorCode.RESPONSE_ERROR, "响应中没有 choices")

        content = choices[0].message.content or ""
        usage = getattr(result, "usage", None)
        return ChatCompletionResponse(
            content=content,
            usage=TokenUsage(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
                total_tokens=getattr(usage, "total_tokens", 0) or 0,
            ),
            model=getattr(result, "model", None) or params["model"],
        )

    async def translate_single(
        self,
        source_text: str,
        prompt: SingleTranslationPrompt,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> TranslationResponse:
        start = time.time()
        response = await self.execute_chat_completion(
            prompt.build_messages(source_text), model=model, temperature=temperature
        )
        return TranslationResponse(
            translated_text=response.content.strip(),
            token_count=response.usage,
            processing_time=time.time() - start,
            model_info={"provider": self.provider, "model": response.model},
        )

    async def list_available_models(self) -> List[ModelInfo]:
        try:
            page = await asyncio.wait_for(self.client.models.list(), timeout=self.config.timeout)
        except asyncio.TimeoutError as e:
            raise self.create_error(AIErrorCode.TIMEOUT, "获取模型列表超时") from e
        except openai.APIStatusError as e:
            raise self.create_error(AIErrorCode.API_ERROR, f"获取模型列表失败: {e.message}",
                                    status_code=e.status_code) from e
        except openai.OpenAIError as e:
            raise self.create_error(AIErrorCode.UNKNOWN_ERROR, f"获取模型列表失败: {e}") from e

        models = []
        for item in getattr(page, "data", None) or []:
            known = KNOWN_MODELS.get(item.id, {})
            models.append(ModelInfo(
                id=item.id,
                name=known.get("name", item.id),
                provider=self.provider,
                max_tokens=known.get("max_tokens"),
                pricing=known.get("pricing"),
            ))
        return models

    async def validate_api_key(self) -> bool:
        try:
            await self.list_available_models()
            return True
        except AIServiceError as e:
            logger.info(f"OpenAI API key 校验失败: {e}")
            return False
