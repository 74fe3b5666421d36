"""
segtrans - 文档段落提取、LLM 批量翻译与 XLIFF 回写
"""
from .config import AdapterConfig, load_provider_config
from .errors import (
    AIErrorCode, AIServiceError, ConfigurationError, DocumentParseError,
    PersistenceError, SegmentTranslationError,
)
from .models import (
    Segment, SegmentStatus, TaskStatus, FileType, FileRecord,
    TranslationTask, TranslationProgress, TranslationMeta, TokenUsage,
)

__version__ = "0.1.0"

__all__ = [
    'AdapterConfig', 'load_provider_config',
    'AIErrorCode', 'AIServiceError', 'ConfigurationError', 'DocumentParseError',
    'PersistenceError', 'SegmentTranslationError',
    'Segment', 'SegmentStatus', 'TaskStatus', 'FileType', 'FileRecord',
    'TranslationTask', 'TranslationProgress', 'TranslationMeta', 'TokenUsage',
]
