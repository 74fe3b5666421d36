"""
单段翻译服务与翻译选项解析
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union, Tuple

from ..config import AdapterConfig, DEFAULT_MAX_INPUT_TOKENS
from ..errors import ConfigurationError, AIServiceError, PersistenceError
from ..lib.adapters import (
    AIServiceFactory, BaseAIAdapter, SingleTranslationPrompt, TranslationResponse, get_ai_service_factory,
)
from ..lib.segment_db import SegmentDatabase
from ..models import SegmentStatus, TranslationMeta, Segment

logger = logging.getLogger(__name__)


@dataclass
class TranslationOptions:
    """翻译选项

    ai_config 可以是显式的 AdapterConfig（每次新建适配器，不缓存），
    也可以是提供商名称（使用工厂缓存的适配器与环境变量配置）。
    """
    target_language: Optional[str] = None
    source_language: Optional[str] = None
    ai_config: Union[AdapterConfig, str, None] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    domain: Optional[str] = None
    max_input_tokens: int = DEFAULT_MAX_INPUT_TOKENS

    def with_file_defaults(self, file_metadata: Optional[dict]) -> "TranslationOptions":
        """用文件元数据补全缺省的源/目标语言"""
        meta = file_metadata or {}
        return TranslationOptions(
            target_language=self.target_language or meta.get("target_language"),
            source_language=self.source_language or meta.get("source_language"),
            ai_config=self.ai_config,
            model=self.model,
            temperature=self.temperature,
            domain=self.domain,
            max_input_tokens=self.max_input_tokens,
        )


def resolve_adapter(options: TranslationOptions,
                    factory: Optional[AIServiceFactory] = None) -> Tuple[BaseAIAdapter, str]:
    """解析 AI 配置，返回 (adapter, model)。缺少配置/目标语言时抛出 ConfigurationError"""
    if not options.target_language:
        raise ConfigurationError("缺少目标语言")
    if options.ai_config is None:
        raise ConfigurationError("缺少 AI 配置")

    factory = factory or get_ai_service_factory()
    if isinstance(options.ai_config, AdapterConfig):
        options.ai_config.validate()
        adapter = factory.get_adapter(options.ai_config.provider, options.ai_config)
    else:
        adapter = factory.get_adapter(options.ai_config)

    model = options.model or adapter.config.model
    if not model:
        raise ConfigurationError(f"{adapter.provider} 缺少模型配置")
    return adapter, model


class TranslationService:
    """单段翻译：供顺序翻译与单段重译使用"""

    def __init__(self, factory: Optional[AIServiceFactory] = None,
                 db: Optional[SegmentDatabase] = None):
        self.factory = factory
        self.db = db

    async def translate_text(self, source_text: str, options: TranslationOptions) -> TranslationResponse:
        adapter, model = resolve_adapter(options, self.factory)
        prompt = SingleTranslationPrompt(
            source_language=options.source_language or "auto",
            target_language=options.target_language,
            domain=options.domain,
        )
        return await adapter.translate_single(source_text, prompt, model=model, temperature=options.temperature)

    async def translate_segment(self, segment_id: str, options: TranslationOptions) -> Segment:
        """翻译已存储的单个段落并写回结果"""
        if self.db is None:
            raise ConfigurationError("translate_segment 需要数据库")
        segment = self.db.find_by_id(segment_id)
        if segment is None:
            raise ValueError(f"段落不存在: {segment_id}")

        file_record = self.db.get_file(segment.file_id)
        options = options.with_file_defaults(file_record.metadata if file_record else None)
        resolve_adapter(options, self.factory)

        self.db.update_one(segment_id, {"status": SegmentStatus.PROCESSING})
        try:
            response = await self.translate_text(segment.source_text, options)
        except AIServiceError as e:
            self.db.update_one(segment_id, {"status": SegmentStatus.TRANSLATION_FAILED, "error": str(e)})
            raise

        meta = TranslationMeta(
            provider=response.model_info.get("provider", ""),
            model=response.model_info.get("model", ""),
            usage=response.token_count,
        )
        try:
            self.db.update_one(segment_id, {
                "translation": response.translated_text,
                "translated_length": len(response.translated_text),
                "status": SegmentStatus.TRANSLATED,
                "translation_meta": meta,
                "error": None,
            })
        except PersistenceError as e:
            logger.error(f"保存段落 {segment_id} 译文失败: {e}")
            self.db.update_one(segment_id, {"status": SegmentStatus.TRANSLATION_FAILED, "error": str(e)})
            raise
        return self.db.find_by_id(segment_id)
