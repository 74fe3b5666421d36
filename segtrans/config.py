"""
统一的配置管理
集中管理所有默认参数，避免硬编码

依赖环境变量（由应用层在启动时通过 python-dotenv 加载）：
- <PROVIDER>_API_KEY: 各提供商 API 密钥（必需）
- <PROVIDER>_DEFAULT_MODEL: 默认模型名
- <PROVIDER>_BASE_URL: 可选，自定义Base URL
- LLM_TIMEOUT: 单次调用超时时间（秒），默认60
- SEGTRANS_DB_PATH / SEGTRANS_MAX_INPUT_TOKENS / SEGTRANS_MAX_ATTEMPTS
"""
import os
from dataclasses import dataclass, replace
from typing import Optional

from .errors import ConfigurationError

# ==================== 存储配置 ====================
DEFAULT_DB_PATH = os.getenv("SEGTRANS_DB_PATH", "segtrans.db")

# ==================== 批量翻译 ====================
DEFAULT_MAX_INPUT_TOKENS = int(os.getenv("SEGTRANS_MAX_INPUT_TOKENS", "4000"))
DEFAULT_TOKENIZER_MODEL = "gpt-4"

# ==================== 顺序翻译 ====================
DEFAULT_MAX_ATTEMPTS = int(os.getenv("SEGTRANS_MAX_ATTEMPTS", "3"))
DEFAULT_RETRY_DELAY = 1.0

# ==================== 提供商默认值 ====================
DEFAULT_TIMEOUT = 60.0
DEFAULT_TEMPERATURE = 0.3

PROVIDER_DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "grok": "grok-3-latest",
}


@dataclass
class AdapterConfig:
    """AI 适配器配置：可按调用传入，也可从环境变量按提供商加载"""
    provider: str
    api_key: str
    model: str
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: Optional[int] = None
    base_url: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT

    def validate(self):
        if not self.api_key:
            raise ConfigurationError(f"{self.provider} 缺少 API key")
        if not self.model:
            raise ConfigurationError(f"{self.provider} 缺少模型配置")

    def with_overrides(self, model: Optional[str] = None, temperature: Optional[float] = None) -> "AdapterConfig":
        return replace(
            self,
            model=model or self.model,
            temperature=self.temperature if temperature is None else temperature,
        )


def load_provider_config(provider: str) -> AdapterConfig:
    """从环境变量加载提供商默认配置，缺少密钥直接报错，不做静默默认"""
    provider = provider.lower()
    prefix = provider.upper()

    api_key = os.getenv(f"{prefix}_API_KEY", "")
    if not api_key:
        raise ConfigurationError(
            f"{prefix}_API_KEY 未设置！\n"
            f"请设置环境变量：export {prefix}_API_KEY='your-api-key-here'\n"
            f"或在 .env 文件中配置：{prefix}_API_KEY=your-api-key-here"
        )

    model = os.getenv(f"{prefix}_DEFAULT_MODEL") or PROVIDER_DEFAULT_MODELS.get(provider, "")
    config = AdapterConfig(
        provider=provider,
        api_key=api_key,
        model=model,
        base_url=os.getenv(f"{prefix}_BASE_URL") or None,
        timeout=float(os.getenv("LLM_TIMEOUT", str(DEFAULT_TIMEOUT))),
    )
    config.validate()
    return config
