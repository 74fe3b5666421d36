"""
文件处理器基类
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Union
from xml.sax.saxutils import escape

from ..models import Segment


@dataclass
class PlainText:
    text: str


@dataclass
class MarkupFragment:
    """序列化后的行内标记（如 <g id="1">...</g>、<x id="2"/>）"""
    markup: str


InlinePart = Union[PlainText, MarkupFragment]


def render_inline(parts: List[InlinePart]) -> str:
    """拼接为合法的标记片段：文本节点转义 & < >，行内标记原样保留"""
    return "".join(escape(p.text) if isinstance(p, PlainText) else p.markup for p in parts)


@dataclass
class ExtractionResult:
    segments: List[Segment]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def segment_count(self) -> int:
        return len(self.segments)


class FileProcessor(ABC):
    """文件处理器：提取段落，并在支持时将译文写回原格式"""

    supports_writing: bool = False

    @abstractmethod
    async def extract_segments(self, file_path: str, file_id: str,
                               options: Optional[Dict[str, Any]] = None) -> ExtractionResult:
        pass

    async def write_translations(self, segments: List[Segment], original_path: str,
                                 target_path: str, options: Optional[Dict[str, Any]] = None):
        raise NotImplementedError(f"{type(self).__name__} 不支持写回原格式")
