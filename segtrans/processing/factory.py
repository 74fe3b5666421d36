"""
文件处理器工厂
"""
import logging
from pathlib import Path
from typing import Dict, Optional

from ..models import FileType
from .base import FileProcessor
from .text import TextProcessor
from .xliff import XliffProcessor

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    ".txt": FileType.TXT,
    ".xlf": FileType.XLIFF,
    ".xliff": FileType.XLIFF,
    ".mqxliff": FileType.MEMOQ_XLIFF,
}


class FileProcessorFactory:

    def __init__(self):
        self._processors: Dict[FileType, FileProcessor] = {
            FileType.TXT: TextProcessor(),
            FileType.XLIFF: XliffProcessor(),
            FileType.MEMOQ_XLIFF: XliffProcessor(is_memoq=True),
        }

    def register(self, file_type: FileType, processor: FileProcessor):
        self._processors[file_type] = processor

    def get_processor(self, file_type: FileType) -> Optional[FileProcessor]:
        return self._processors.get(file_type)


def detect_file_type(file_path: str) -> FileType:
    suffix = Path(file_path).suffix.lower()
    file_type = _EXTENSIONS.get(suffix)
    if file_type is None:
        raise ValueError(f"不支持的文件类型: {suffix or file_path}")
    return file_type
