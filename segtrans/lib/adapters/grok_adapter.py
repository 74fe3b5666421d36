"""
Grok (xAI) 适配器 - 直接调用 HTTP 接口

通过 aiohttp 发送 POST 请求，trust_env=True 以支持 HTTPS_PROXY 等代理环境变量。
"""
import time
import json
import logging
import asyncio
from typing import List, Dict, Any, Optional

import aiohttp

from ...config import AdapterConfig
from ...errors import AIServiceError, AIErrorCode
from ...models import TokenUsage
from .base import (
    BaseAIAdapter, ChatMessage, ChatCompletionResponse, TranslationResponse,
    ModelInfo, SingleTranslationPrompt,
)

logger = logging.getLogger(__name__)

GROK_BASE_URL = "https://api.x.ai/v1"


class GrokAdapter(BaseAIAdapter):
    """xAI Grok 适配器"""

    provider = "grok"

    def __init__(self, config: AdapterConfig):
        super().__init__(config)
        self.base_url = (config.base_url or GROK_BASE_URL).rstrip("/")

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout, trust_env=True) as session:
                async with session.request(method, url, json=payload, headers=self._headers()) as response:
                    body = await response.text()
                    if response.status >= 400:
                        raise self.create_error(
                            AIErrorCode.API_ERROR,
                            f"API 错误 {response.status}: {_error_message(body) or response.reason}",
                            status_code=response.status,
                            details=body,
                        )
        except AIServiceError:
            raise
        except asyncio.TimeoutError as e:
            raise self.create_error(AIErrorCode.TIMEOUT, f"请求超时 ({self.config.timeout}s)") from e
        except aiohttp.ClientError as e:
            raise self.create_error(AIErrorCode.UNKNOWN_ERROR, f"请求失败: {e}") from e

        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise self.create_error(AIErrorCode.INVALID_RESPONSE, f"响应解析失败: {e}", details=body) from e

        if isinstance(data, dict) and data.get("error"):
            message = _error_message(body) or str(data["error"])
            raise self.create_error(AIErrorCode.RESPONSE_ERROR, f"响应包含错误: {message}", details=data["error"])
        return data

    async def execute_chat_completion(
        self,
        messages: List[ChatMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatCompletionResponse:
        payload: Dict[str, Any] = {
            "messages": [m.to_dict() for m in messages],
            "model": model or self.config.model,
            "temperature": self.config.temperature if temperature is None else temperature,
            "stream": False,
        }
        max_tokens = max_tokens or self.config.max_tokens
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        data = await self._request("POST", "/chat/completions", payload)

        if isinstance(data, dict) and data.get("choices") == []:
            raise self.create_error(AIErrorCode.RESPONSE_ERROR, "响应中没有 choices", details=data)
        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise self.create_error(AIErrorCode.INVALID_RESPONSE, "响应中缺少 choices[0].message.content",
                                    details=data) from e

        return ChatCompletionResponse(
            content=content,
            usage=TokenUsage.from_dict(data.get("usage")),
            model=data.get("model") or payload["model"],
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
        data = await self._request("GET", "/models")
        if not isinstance(data, dict) or not isinstance(data.get("data", []), list):
            raise self.create_error(AIErrorCode.INVALID_RESPONSE, "模型列表响应格式无效", details=data)
        return [
            ModelInfo(id=item["id"], name=item.get("id"), provider=self.provider)
            for item in data.get("data", [])
            if isinstance(item, dict) and item.get("id")
        ]

    async def validate_api_key(self) -> bool:
        try:
            await self.list_available_models()
            return True
        except AIServiceError as e:
            logger.info(f"Grok API key 校验失败: {e}")
            return False


def _error_message(body: str) -> Optional[str]:
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict):
        return error.get("message")
    if isinstance(error, str):
        return error
    return None
