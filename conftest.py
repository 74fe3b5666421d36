"""
测试公共夹具
"""
import re
from typing import Callable, List, Optional, Union

import pytest

from segtrans.config import AdapterConfig
from segtrans.lib.adapters import (
    AIServiceFactory, BaseAIAdapter, ChatCompletionResponse, ChatMessage, ModelInfo,
    SingleTranslationPrompt, TranslationResponse,
)
from segtrans.lib.segment_db import SegmentDatabase
from segtrans.models import TokenUsage

SAMPLE_XLIFF = """<?xml version="1.0" encoding="UTF-8"?>
<xliff version="1.2" xmlns="urn:oasis:names:tc:xliff:document:1.2">
  <file original="contract.docx" source-language="en" target-language="zh-CN" datatype="plaintext">
    <body>
      <trans-unit id="u1">
        <source>Hello <g id="1">world</g>!</source>
        <target state="translated">你好 <g id="1">世界</g>！</target>
      </trans-unit>
      <trans-unit id="u2">
        <source>Second sentence<x id="2"/> here.</source>
        <!-- target -->
      </trans-unit>
    </body>
  </file>
</xliff>
"""


Responder = Callable[[List[ChatMessage]], Union[str, Exception]]


def echo_responder(messages: List[ChatMessage]) -> str:
    """把每个 [SEGn] 段落原文加上 'ZH:' 前缀返回"""
    user = messages[-1].content
    blocks = re.findall(r"\[SEG(\d+)\]\n(.*?)(?=\n\n\[SEG|\Z)", user, re.S)
    return "\n\n".join(f"[SEG{i}]\nZH:{text}" for i, text in blocks)


class FakeAdapter(BaseAIAdapter):
    """进程内假适配器，按 responder 返回内容或抛出异常"""

    provider = "openai"

    def __init__(self, responder: Optional[Responder] = None, model: str = "fake-model"):
        super().__init__(AdapterConfig(provider="openai", api_key="test-key", model=model))
        self.responder = responder or echo_responder
        self.calls: List[List[ChatMessage]] = []

    async def execute_chat_completion(self, messages, model=None, temperature=None, max_tokens=None):
        self.calls.append(list(messages))
        result = self.responder(messages)
        if isinstance(result, Exception):
            raise result
        return ChatCompletionResponse(
            content=result,
            usage=TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
            model=model or self.config.model,
        )

    async def translate_single(self, source_text, prompt: SingleTranslationPrompt, model=None, temperature=None):
        response = await self.execute_chat_completion(prompt.build_messages(source_text), model=model)
        return TranslationResponse(
            translated_text=response.content,
            token_count=response.usage,
            processing_time=0.01,
            model_info={"provider": self.provider, "model": response.model},
        )

    async def validate_api_key(self):
        return True

    async def list_available_models(self):
        return [ModelInfo(id=self.config.model, name=self.config.model, provider=self.provider)]


@pytest.fixture
def db(tmp_path):
    return SegmentDatabase(str(tmp_path / "segtrans.db"))


@pytest.fixture
def fake_adapter():
    return FakeAdapter()


@pytest.fixture
def factory(fake_adapter):
    factory = AIServiceFactory()
    factory.add_adapter("openai", fake_adapter)
    return factory


@pytest.fixture
def xliff_path(tmp_path):
    path = tmp_path / "sample.xlf"
    path.write_text(SAMPLE_XLIFF, encoding="utf-8")
    return str(path)
