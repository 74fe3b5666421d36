"""
文件处理：段落提取与译文写回
"""
from .base import FileProcessor, ExtractionResult, PlainText, MarkupFragment, render_inline
from .text import TextProcessor, render_plain_text
from .xliff import XliffProcessor, map_external_state
from .factory import FileProcessorFactory, detect_file_type

__all__ = [
    'FileProcessor', 'ExtractionResult', 'PlainText', 'MarkupFragment', 'render_inline',
    'TextProcessor', 'render_plain_text',
    'XliffProcessor', 'map_external_state',
    'FileProcessorFactory', 'detect_file_type',
]
