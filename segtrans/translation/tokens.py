"""
Token 估算
"""
import math
import logging
from typing import Dict, Optional, Set

import tiktoken

from ..config import DEFAULT_TOKENIZER_MODEL

logger = logging.getLogger(__name__)


class TokenEstimator:
    """使用 tiktoken 估算 token 数，分词器不可用时退化为 ceil(len/4)"""

    def __init__(self, model_hint: str = DEFAULT_TOKENIZER_MODEL):
        self.model_hint = model_hint
        self._encoders: Dict[str, "tiktoken.Encoding"] = {}
        self._failed: Set[str] = set()

    def _encoder(self, model_hint: str) -> Optional["tiktoken.Encoding"]:
        if model_hint in self._failed:
            return None
        encoder = self._encoders.get(model_hint)
        if encoder is None:
            try:
                encoder = tiktoken.encoding_for_model(model_hint)
            except Exception as e:
                # 未知模型、编码文件下载失败等
                logger.warning(f"无法加载 {model_hint} 的分词器: {e}")
                self._failed.add(model_hint)
                return None
            self._encoders[model_hint] = encoder
        return encoder

    def estimate(self, text: str, model_hint: Optional[str] = None) -> int:
        if not text:
            return 0
        encoder = self._encoder(model_hint or self.model_hint)
        if encoder is None and model_hint and model_hint != self.model_hint:
            # 非 OpenAI 模型使用默认分词器
            encoder = self._encoder(self.model_hint)
        if encoder is not None:
            try:
                return len(encoder.encode(text, disallowed_special=()))
            except Exception as e:
                logger.warning(f"分词失败，改用字符估算: {e}")
        return fallback_estimate(text)


def fallback_estimate(text: str) -> int:
    return math.ceil(len(text) / 4)
