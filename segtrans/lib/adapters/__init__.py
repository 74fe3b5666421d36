"""
AI 提供商适配器
"""
from .base import (
    BaseAIAdapter, ChatMessage, ChatCompletionResponse, TranslationResponse,
    ModelInfo, SingleTranslationPrompt,
)
from .openai_adapter import OpenAIAdapter
from .grok_adapter import GrokAdapter
from .factory import AIServiceFactory, get_ai_service_factory, reset_ai_service_factory

__all__ = [
    'BaseAIAdapter', 'ChatMessage', 'ChatCompletionResponse', 'TranslationResponse',
    'ModelInfo', 'SingleTranslationPrompt',
    'OpenAIAdapter', 'GrokAdapter',
    'AIServiceFactory', 'get_ai_service_factory', 'reset_ai_service_factory',
]
