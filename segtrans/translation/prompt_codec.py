"""
多段落标记提示词的编码与解析

请求格式：
    [SEG0]
    第一段原文

    [SEG1]
    第二段原文

响应中每个 [SEG{n}] 标记之后直到下一个标记（或结尾）的文本即为该段译文。
"""
import re
import logging
from typing import Dict, List, Optional

from ..models import Segment

logger = logging.getLogger(__name__)

SEGMENT_SEPARATOR = "\n\n"
_MARKER = re.compile(r"\[SEG(\d+)\]")


class PromptCodec:

    @staticmethod
    def encode_block(segment: Segment) -> str:
        return f"[SEG{segment.index}]\n{segment.source_text}"

    def encode(self, batch: List[Segment]) -> str:
        return SEGMENT_SEPARATOR.join(self.encode_block(seg) for seg in batch)

    def decode(self, response_text: str) -> Dict[int, str]:
        """解析响应，缺失标记的段落不会出现在结果中"""
        results: Dict[int, str] = {}
        if not response_text:
            return results

        markers = list(_MARKER.finditer(response_text))
        for i, match in enumerate(markers):
            end = markers[i + 1].start() if i + 1 < len(markers) else len(response_text)
            index = int(match.group(1))
            text = response_text[match.end():end].strip()
            if index in results:
                logger.warning(f"响应中出现重复标记 [SEG{index}]，使用最后一次出现的内容")
            results[index] = text
        return results

    def build_system_prompt(self, source_language: str, target_language: str,
                            domain: Optional[str] = None) -> str:
        lines = [
            f"You are a professional translator. Translate the following text segments "
            f"from {source_language} to {target_language}.",
            "Each segment starts with a marker like [SEG0] on its own line.",
            "Maintain the original [SEG#] markers exactly and output every segment in the same order, "
            "each marker followed by its translation on the next line.",
            "Keep inline XML tags (such as <g>, <x/>, <ph>) unchanged and in the right positions.",
            "Do not add explanations or any text outside the segments.",
        ]
        if domain:
            lines.append(f"The text belongs to the {domain} domain; use its established terminology.")
        return "\n".join(lines)
