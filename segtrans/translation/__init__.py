"""
翻译：分批、提示词编解码、批量编排与顺序运行
"""
from .tokens import TokenEstimator
from .prompt_codec import PromptCodec
from .batching import Batch, BatchPlan, BatchPlanner
from .service import TranslationOptions, TranslationService, resolve_adapter
from .orchestrator import TranslationOrchestrator, BatchTranslationOutcome, FailedSegment
from .runner import FileTranslationRunner

__all__ = [
    'TokenEstimator', 'PromptCodec',
    'Batch', 'BatchPlan', 'BatchPlanner',
    'TranslationOptions', 'TranslationService', 'resolve_adapter',
    'TranslationOrchestrator', 'BatchTranslationOutcome', 'FailedSegment',
    'FileTranslationRunner',
]
