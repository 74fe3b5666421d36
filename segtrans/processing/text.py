"""
纯文本处理器：按空行切分段落
"""
import re
import logging
from typing import List, Dict, Any, Optional

from ..models import Segment
from ..utils import read_text_async, write_text_async
from .base import FileProcessor, ExtractionResult

logger = logging.getLogger(__name__)

_PARAGRAPH_BREAK = re.compile(r"\r?\n(?:[ \t]*\r?\n)+")


class TextProcessor(FileProcessor):

    supports_writing = True

    async def extract_segments(self, file_path: str, file_id: str,
                               options: Optional[Dict[str, Any]] = None) -> ExtractionResult:
        content = await read_text_async(file_path)
        paragraphs = [p.strip() for p in _PARAGRAPH_BREAK.split(content)]
        segments = [
            Segment(file_id=file_id, index=i, source_text=text)
            for i, text in enumerate(p for p in paragraphs if p)
        ]
        logger.info(f"从 {file_path} 提取 {len(segments)} 个段落")
        return ExtractionResult(segments=segments, metadata={"encoding": "utf-8"})

    async def write_translations(self, segments: List[Segment], original_path: str,
                                 target_path: str, options: Optional[Dict[str, Any]] = None):
        await write_text_async(render_plain_text(segments), target_path)


def render_plain_text(segments: List[Segment]) -> str:
    """按 index 排序，优先 finalText，其次 translation，最后原文"""
    ordered = sorted(segments, key=lambda s: s.index)
    return "\n\n".join(seg.output_text or seg.source_text for seg in ordered)
