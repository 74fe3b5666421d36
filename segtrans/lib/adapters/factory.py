"""
AI 适配器工厂

每个提供商缓存一个适配器实例（首次使用时创建，显式 remove 移除）；
调用方显式传入配置时总是返回新的、不缓存的实例。
"""
import logging
from typing import Callable, Dict, Optional, Type

from ...config import AdapterConfig, load_provider_config
from ...errors import ConfigurationError
from .base import BaseAIAdapter
from .openai_adapter import OpenAIAdapter
from .grok_adapter import GrokAdapter

logger = logging.getLogger(__name__)

ADAPTER_CLASSES: Dict[str, Type[BaseAIAdapter]] = {
    "openai": OpenAIAdapter,
    "grok": GrokAdapter,
}


class AIServiceFactory:
    """按提供商缓存适配器的注册表"""

    def __init__(
        self,
        config_loader: Callable[[str], AdapterConfig] = load_provider_config,
        adapter_classes: Optional[Dict[str, Type[BaseAIAdapter]]] = None,
    ):
        self._config_loader = config_loader
        self._adapter_classes = dict(adapter_classes or ADAPTER_CLASSES)
        self._adapters: Dict[str, BaseAIAdapter] = {}

    def _create(self, provider: str, config: AdapterConfig) -> BaseAIAdapter:
        adapter_cls = self._adapter_classes.get(provider)
        if adapter_cls is None:
            raise ConfigurationError(f"不支持的 AI 提供商: {provider}")
        return adapter_cls(config)

    def get_adapter(self, provider: str, config: Optional[AdapterConfig] = None) -> BaseAIAdapter:
        provider = provider.lower()
        if config is not None:
            logger.debug(f"使用显式配置创建 {provider} 适配器（不缓存）")
            return self._create(provider, config)

        adapter = self._adapters.get(provider)
        if adapter is None:
            adapter = self._create(provider, self._config_loader(provider))
            self._adapters[provider] = adapter
            logger.info(f"已创建并缓存 {provider} 适配器")
        return adapter

    def add_adapter(self, provider: str, adapter: BaseAIAdapter):
        self._adapters[provider.lower()] = adapter

    def remove_adapter(self, provider: str) -> bool:
        return self._adapters.pop(provider.lower(), None) is not None

    def clear(self):
        self._adapters.clear()

    @property
    def cached_providers(self):
        return sorted(self._adapters)


# 便捷工厂
_global_factory: Optional[AIServiceFactory] = None


def get_ai_service_factory() -> AIServiceFactory:
    global _global_factory
    if _global_factory is None:
        _global_factory = AIServiceFactory()
    return _global_factory


def reset_ai_service_factory(factory: Optional[AIServiceFactory] = None):
    """替换或清空进程级注册表（主要用于测试）"""
    global _global_factory
    _global_factory = factory
